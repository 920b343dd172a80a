"""Data models for puzzle session operations."""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from tangram_engine.services.placement.models import CompletionEvent, CompletionStatus, FailureReason, PieceType
from tangram_engine.services.session import InputMode, ValidationMode


class PoseModel(BaseModel):
    """Model representing a piece pose in raw (y-down) space."""

    x: float
    y: float
    rotation: float = Field(default=0.0, description="Rotation in radians as stored, positive counter-clockwise")
    is_mirrored: bool = False


class TransformModel(BaseModel):
    """Model representing a 2D affine transform ``[a c tx; b d ty]``."""

    a: float
    b: float
    c: float
    d: float
    tx: float
    ty: float


class TargetModel(BaseModel):
    """A target piece given either as a pose or as a stored transform."""

    id: str = Field(..., min_length=1)
    piece_type: PieceType
    pose: Optional[PoseModel] = None
    transform: Optional[TransformModel] = None

    @model_validator(mode="after")
    def check_placement(self) -> "TargetModel":
        """Require exactly one of pose and transform."""
        if (self.pose is None) == (self.transform is None):
            raise ValueError("Provide exactly one of 'pose' or 'transform'")
        return self


class CreateSessionRequest(BaseModel):
    """Request model for loading a puzzle into a new session."""

    targets: List[TargetModel] = Field(..., min_length=1)
    difficulty: Optional[str] = Field(default=None, description="easy, normal or hard; defaults to settings")
    input_mode: InputMode = InputMode.DIRECT
    validation_mode: Optional[ValidationMode] = Field(
        default=None, description="Defaults to anchor_relative for vision input, absolute otherwise"
    )


class CreateSessionResponse(BaseModel):
    """Response model for session creation."""

    session_id: str
    input_mode: InputMode
    validation_mode: ValidationMode
    position_tolerance: float
    rotation_tolerance: float


class ObservationModel(BaseModel):
    """A piece pose reported by the touch layer."""

    id: str = Field(..., min_length=1)
    piece_type: PieceType
    pose: PoseModel
    sequence: int = Field(default=0, ge=0)
    stable: bool = True


class ObservationBatch(BaseModel):
    """All pieces currently on the board."""

    observations: List[ObservationModel] = Field(default_factory=list)


class VisionPose(BaseModel):
    """Pose of one detection as reported by the vision pipeline."""

    rotation_degrees: float
    translation: List[float] = Field(..., min_length=2, max_length=2)


class VisionObject(BaseModel):
    """One detected piece in a vision frame."""

    name: str
    class_id: int
    pose: VisionPose
    vertices: List[List[float]] = Field(default_factory=list)
    mirrored: Optional[bool] = None
    stable: Optional[bool] = None


class VisionFrame(BaseModel):
    """One frame of vision pipeline output."""

    homography: Optional[List[List[float]]] = None
    scale: Optional[float] = Field(
        default=None, gt=0.0, description="Scene units per board unit; defaults to the scene's visual scale"
    )
    objects: List[VisionObject] = Field(default_factory=list)
    sequence: int = Field(default=0, ge=0)
    camera_inverted: bool = False


class VerdictResponse(BaseModel):
    """Validation verdict for one target."""

    target_id: str
    observed_id: str
    is_match: bool
    position_error: float
    rotation_error: float
    mirror_match: bool
    failure: Optional[FailureReason] = None


class AnchorResponse(BaseModel):
    """Current anchor of a session."""

    anchor_piece_id: Optional[str] = None
    missing_ticks: int = 0


class CompletionResponse(BaseModel):
    """Aggregate puzzle state after a tick."""

    status: CompletionStatus
    matched_target_ids: List[str]
    events: List[CompletionEvent]
    awaiting_anchor: bool


class SessionUpdateResponse(BaseModel):
    """Everything one observation tick produced."""

    verdicts: List[VerdictResponse]
    completion: CompletionResponse
    anchor: AnchorResponse
    rejected_ids: List[str] = Field(default_factory=list)
    bindings: Dict[str, str] = Field(default_factory=dict)
    contacts: Dict[str, List[str]] = Field(default_factory=dict, description="Observed pieces each piece touches")


class PieceShapeResponse(BaseModel):
    """Catalog entry for one piece type."""

    piece_type: PieceType
    display_name: str
    class_id: int
    area: float
    symmetry_order: int
    is_mirror_capable: bool
    vertices: List[Tuple[float, float]]
    centroid: Tuple[float, float]
