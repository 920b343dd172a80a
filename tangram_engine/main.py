"""Main FastAPI application module for the tangram placement engine."""

import logging
import uuid
from typing import Dict, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from tangram_engine.config import settings
from tangram_engine.exceptions import InvalidPuzzleError
from tangram_engine.logging_config import configure_logging
from tangram_engine.models.session_model import (
    AnchorResponse,
    CompletionResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    ObservationBatch,
    PieceShapeResponse,
    SessionUpdateResponse,
    TargetModel,
    VerdictResponse,
    VisionFrame,
)
from tangram_engine.services.coordinate_space import raw_pose_from_transform
from tangram_engine.services.cv_adapter import observations_from_frame
from tangram_engine.services.geometry import AffineTransform
from tangram_engine.services.placement.catalog import shapes_in_order
from tangram_engine.services.placement.models import AnchorState, ObservedPiece, RawPose, TargetPiece
from tangram_engine.services.session import PuzzleSession, SessionConfig, SessionUpdate

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(title=settings.PROJECT_NAME)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Store puzzle sessions in memory
sessions: Dict[str, PuzzleSession] = {}


def _to_target(model: TargetModel) -> TargetPiece:
    if model.transform is not None:
        t = model.transform
        pose = raw_pose_from_transform(AffineTransform(t.a, t.b, t.c, t.d, t.tx, t.ty), source=f"target {model.id}")
        if pose is None:
            raise HTTPException(status_code=422, detail=f"Target {model.id} has a degenerate transform")
    else:
        assert model.pose is not None
        pose = RawPose(
            position=(model.pose.x, model.pose.y),
            rotation=model.pose.rotation,
            is_mirrored=model.pose.is_mirrored,
        )
    return TargetPiece(id=model.id, piece_type=model.piece_type, pose=pose)


def _anchor_response(state: AnchorState) -> AnchorResponse:
    return AnchorResponse(anchor_piece_id=state.anchor_piece_id, missing_ticks=state.missing_ticks)


def _update_response(update: SessionUpdate) -> SessionUpdateResponse:
    verdicts = [
        VerdictResponse(
            target_id=v.target_id,
            observed_id=v.observed_id,
            is_match=v.is_match,
            position_error=v.position_error,
            rotation_error=v.rotation_error,
            mirror_match=v.mirror_match,
            failure=v.failure,
        )
        for v in update.verdicts.values()
    ]
    completion = CompletionResponse(
        status=update.completion.status,
        matched_target_ids=list(update.completion.matched_target_ids),
        events=list(update.completion.events),
        awaiting_anchor=update.completion.awaiting_anchor,
    )
    return SessionUpdateResponse(
        verdicts=verdicts,
        completion=completion,
        anchor=_anchor_response(update.anchor),
        rejected_ids=list(update.rejected_ids),
        bindings=update.bindings,
        contacts={oid: list(touching) for oid, touching in update.contacts.items()},
    )


def _get_session(session_id: str) -> PuzzleSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@app.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get(f"{settings.API_V1_STR}/pieces", response_model=List[PieceShapeResponse])
def list_pieces() -> List[PieceShapeResponse]:
    """List the seven piece shapes in display order."""
    return [
        PieceShapeResponse(
            piece_type=shape.piece_type,
            display_name=shape.display_name,
            class_id=shape.class_id,
            area=shape.area,
            symmetry_order=shape.symmetry_order,
            is_mirror_capable=shape.is_mirror_capable,
            vertices=list(shape.vertices),
            centroid=shape.centroid,
        )
        for shape in shapes_in_order()
    ]


@app.post(f"{settings.API_V1_STR}/sessions", response_model=CreateSessionResponse)
def create_session(request: CreateSessionRequest) -> CreateSessionResponse:
    """Load a puzzle into a new validation session.

    Args:
        request: Target pieces plus difficulty and mode choices.

    Returns:
        CreateSessionResponse: The session id and the effective tolerances.

    Raises:
        HTTPException: If the difficulty is unknown or the targets are invalid.
    """
    try:
        config = SessionConfig.from_settings(
            settings,
            difficulty=request.difficulty,
            validation_mode=request.validation_mode,
            input_mode=request.input_mode,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    targets = [_to_target(t) for t in request.targets]
    try:
        session = PuzzleSession(targets, config)
    except InvalidPuzzleError as e:
        raise HTTPException(status_code=422, detail=str(e))

    session_id = str(uuid.uuid4())
    sessions[session_id] = session
    logger.info("Created session %s with %d targets", session_id, len(targets))
    return CreateSessionResponse(
        session_id=session_id,
        input_mode=config.input_mode,
        validation_mode=config.validation_mode,
        position_tolerance=config.tolerances.position,
        rotation_tolerance=config.tolerances.rotation,
    )


@app.post(f"{settings.API_V1_STR}/sessions/{{session_id}}/observations", response_model=SessionUpdateResponse)
def submit_observations(session_id: str, batch: ObservationBatch) -> SessionUpdateResponse:
    """Validate the pieces currently placed by touch.

    Args:
        session_id: ID of the session.
        batch: Every piece currently on the board.

    Returns:
        SessionUpdateResponse: Verdicts, completion state and anchor.

    Raises:
        HTTPException: If the session is not found.
    """
    session = _get_session(session_id)
    observations: List[ObservedPiece] = [
        ObservedPiece(
            observation_id=o.id,
            piece_type=o.piece_type,
            pose=RawPose(position=(o.pose.x, o.pose.y), rotation=o.pose.rotation, is_mirrored=o.pose.is_mirrored),
            sequence=o.sequence,
            is_stable=o.stable,
        )
        for o in batch.observations
    ]
    return _update_response(session.process(observations))


@app.post(f"{settings.API_V1_STR}/sessions/{{session_id}}/frames", response_model=SessionUpdateResponse)
def submit_frame(session_id: str, frame: VisionFrame) -> SessionUpdateResponse:
    """Validate the pieces detected in one vision frame.

    Args:
        session_id: ID of the session.
        frame: Vision pipeline output for one frame.

    Returns:
        SessionUpdateResponse: Verdicts, completion state and anchor.

    Raises:
        HTTPException: If the session is not found.
    """
    session = _get_session(session_id)
    return _update_response(session.process(observations_from_frame(frame)))


@app.get(f"{settings.API_V1_STR}/sessions/{{session_id}}/anchor", response_model=AnchorResponse)
def get_anchor(session_id: str) -> AnchorResponse:
    """Return the session's current anchor piece."""
    return _anchor_response(_get_session(session_id).anchor_state)


@app.delete(f"{settings.API_V1_STR}/sessions/{{session_id}}")
def delete_session(session_id: str) -> dict[str, str]:
    """Discard a session."""
    _get_session(session_id)
    del sessions[session_id]
    logger.info("Deleted session %s", session_id)
    return {"status": "deleted"}
