"""Per-puzzle session that turns observation batches into verdicts.

Each call to ``PuzzleSession.process`` is one observation tick. It runs
synchronously and touches only the session's own state, so concurrent puzzle
sessions each need their own ``PuzzleSession``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from tangram_engine.config import Settings
from tangram_engine.exceptions import InvalidPuzzleError, UnknownPieceTypeError
from tangram_engine.services.coordinate_space import accept_raw_pose, to_render_space
from tangram_engine.services.geometry import degrees_to_radians
from tangram_engine.services.placement import catalog
from tangram_engine.services.placement.anchor import AnchorMappingService, anchor_rotation_offsets, relative_frame
from tangram_engine.services.placement.binding import TargetBindingRegistry
from tangram_engine.services.placement.completion import CompletionEvaluator
from tangram_engine.services.placement.contact import find_contacts
from tangram_engine.services.placement.models import (
    AnchorState,
    CompletionResult,
    FailureReason,
    ObservedPiece,
    Pose,
    RenderPose,
    TargetPiece,
    ValidationVerdict,
)
from tangram_engine.services.placement.stability import StabilityTracker
from tangram_engine.services.placement.validator import PlacementValidator, Tolerances, tolerances_for_difficulty

logger = logging.getLogger(__name__)


class ValidationMode(str, Enum):
    """Frame in which placements are compared."""

    ABSOLUTE = "absolute"
    ANCHOR_RELATIVE = "anchor_relative"


class InputMode(str, Enum):
    """Where observations come from."""

    VISION = "vision"
    DIRECT = "direct"


@dataclass(frozen=True)
class SessionConfig:
    """Tolerances and tuning for one puzzle session."""

    tolerances: Tolerances
    validation_mode: ValidationMode = ValidationMode.ABSOLUTE
    input_mode: InputMode = InputMode.DIRECT
    hysteresis_ticks: int = 0
    debounce_ticks: int = 1
    movement_threshold: float = 20.0
    rotation_threshold: float = degrees_to_radians(5.0)
    contact_tolerance: float = 5.0
    strict: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        difficulty: Optional[str] = None,
        validation_mode: Optional[ValidationMode] = None,
        input_mode: InputMode = InputMode.DIRECT,
    ) -> "SessionConfig":
        """Build a session config from application settings.

        Args:
            settings: Application settings.
            difficulty: Difficulty preset; defaults to ``settings.DIFFICULTY``.
            validation_mode: Comparison frame; vision input defaults to
                anchor-relative, direct input to absolute.
            input_mode: Source of the observations.

        Returns:
            The session config.
        """
        preset = tolerances_for_difficulty(difficulty or settings.DIFFICULTY)
        position = settings.POSITION_TOLERANCE
        rotation_degrees = settings.ROTATION_TOLERANCE_DEGREES
        tolerances = Tolerances(
            position=position if position is not None else preset.position,
            rotation=degrees_to_radians(rotation_degrees) if rotation_degrees is not None else preset.rotation,
        )

        if validation_mode is None:
            validation_mode = (
                ValidationMode.ANCHOR_RELATIVE if input_mode is InputMode.VISION else ValidationMode.ABSOLUTE
            )

        vision = input_mode is InputMode.VISION
        return cls(
            tolerances=tolerances,
            validation_mode=validation_mode,
            input_mode=input_mode,
            hysteresis_ticks=settings.VISION_HYSTERESIS_TICKS if vision else settings.DIRECT_HYSTERESIS_TICKS,
            debounce_ticks=settings.VISION_DEBOUNCE_TICKS if vision else settings.DIRECT_DEBOUNCE_TICKS,
            movement_threshold=settings.MOVEMENT_THRESHOLD,
            rotation_threshold=degrees_to_radians(settings.ROTATION_THRESHOLD_DEGREES),
            contact_tolerance=settings.CONTACT_TOLERANCE,
            strict=settings.DEBUG,
        )


@dataclass(frozen=True)
class SessionUpdate:
    """Everything one tick produces for rendering, scoring and hints."""

    verdicts: Dict[str, ValidationVerdict]
    completion: CompletionResult
    anchor: AnchorState
    rejected_ids: Tuple[str, ...] = ()
    bindings: Dict[str, str] = field(default_factory=dict)
    contacts: Dict[str, Tuple[str, ...]] = field(default_factory=dict)


class PuzzleSession:
    """Validation state for one loaded puzzle."""

    def __init__(self, targets: Sequence[TargetPiece], config: SessionConfig):
        """Initialize a session for a puzzle.

        Args:
            targets: The puzzle's target pieces, in raw space.
            config: Session tolerances and modes.

        Raises:
            InvalidPuzzleError: If there are no targets or target ids repeat.
            UnknownPieceTypeError: If a target's type has no shape and the
                config is strict.
        """
        if not targets:
            raise InvalidPuzzleError("A puzzle needs at least one target piece")
        ids = [t.id for t in targets]
        if len(set(ids)) != len(ids):
            raise InvalidPuzzleError("Target piece ids must be unique")
        for target in targets:
            try:
                catalog.get_shape(target.piece_type)
            except UnknownPieceTypeError:
                if config.strict:
                    raise
                logger.error("Target %s has unregistered piece type %r", target.id, target.piece_type)

        self.config = config
        self.targets: Tuple[TargetPiece, ...] = tuple(targets)
        self._targets_by_id = {t.id: t for t in self.targets}
        self._target_render: Dict[str, RenderPose] = {t.id: to_render_space(t.pose) for t in self.targets}

        self._validator = PlacementValidator(config.tolerances, strict=config.strict)
        self._stability = StabilityTracker(config.debounce_ticks, config.movement_threshold, config.rotation_threshold)
        self._bindings = TargetBindingRegistry(self.targets)
        self._evaluator = CompletionEvaluator()
        self._anchor: Optional[AnchorMappingService] = None
        if config.validation_mode is ValidationMode.ANCHOR_RELATIVE:
            self._anchor = AnchorMappingService(config.hysteresis_ticks)

        self._last_sequence: Dict[str, int] = {}
        self._anchor_pose: Optional[RenderPose] = None

    @property
    def anchor_state(self) -> AnchorState:
        """Current anchor state; empty in absolute mode."""
        return self._anchor.state if self._anchor else AnchorState()

    @property
    def bindings(self) -> Mapping[str, str]:
        """Observation id -> target id bindings made so far."""
        return self._bindings.bindings

    def process(self, observations: Iterable[ObservedPiece]) -> SessionUpdate:
        """Run one tick over the pieces currently observed.

        Args:
            observations: Every piece observed this tick. Pieces absent from the
                batch are treated as removed; of several observations with the
                same id, the one with the highest sequence wins.

        Returns:
            SessionUpdate with verdicts keyed by target id, the completion
            result, the anchor state and which observed pieces touch.
        """
        accepted, rejected = self._accept(observations)
        self._stability.update(accepted.values())
        stable_ticks = self._stability.stable_ticks()
        observed_render = {oid: to_render_space(obs.pose) for oid, obs in accepted.items()}

        if self._anchor is None:
            verdicts = self._validate_absolute(accepted, stable_ticks, observed_render)
            awaiting = False
        else:
            verdicts, awaiting = self._validate_relative(accepted, stable_ticks, observed_render)

        contacts = find_contacts(
            {oid: (obs.piece_type, observed_render[oid]) for oid, obs in accepted.items()},
            self.config.contact_tolerance,
        )
        completion = self._evaluator.evaluate(
            [t.id for t in self.targets],
            verdicts,
            stable_ticks.keys(),
            anchor_state=self.anchor_state,
            awaiting_anchor=awaiting,
        )
        return SessionUpdate(
            verdicts=verdicts,
            completion=completion,
            anchor=self.anchor_state,
            rejected_ids=tuple(rejected),
            bindings=dict(self._bindings.bindings),
            contacts=contacts,
        )

    def _accept(self, observations: Iterable[ObservedPiece]) -> Tuple[Dict[str, ObservedPiece], List[str]]:
        latest: Dict[str, ObservedPiece] = {}
        rejected: List[str] = []
        for obs in observations:
            if accept_raw_pose(obs.pose, source=obs.observation_id) is None:
                rejected.append(obs.observation_id)
                continue
            if obs.sequence < self._last_sequence.get(obs.observation_id, obs.sequence):
                logger.debug("Ignoring stale observation %s #%d", obs.observation_id, obs.sequence)
                continue
            current = latest.get(obs.observation_id)
            if current is None or obs.sequence >= current.sequence:
                latest[obs.observation_id] = obs

        # A rejected piece is absent for this tick even if another report of it was fine
        for obs_id in rejected:
            latest.pop(obs_id, None)
        for obs_id, obs in latest.items():
            self._last_sequence[obs_id] = obs.sequence
        return latest, rejected

    def _validate_bound(
        self,
        assignments: Mapping[str, str],
        observation_ids: Iterable[str],
        observed_poses: Mapping[str, Pose],
        target_poses: Mapping[str, Pose],
    ) -> Dict[str, ValidationVerdict]:
        verdicts: Dict[str, ValidationVerdict] = {}
        for obs_id in sorted(observation_ids):
            target_id = assignments.get(obs_id)
            if target_id is None or obs_id not in observed_poses:
                continue
            target = self._targets_by_id[target_id]
            verdicts[target_id] = self._validator.validate(
                observed_poses[obs_id],
                target_poses[target_id],
                target.piece_type,
                target_id,
                obs_id,
            )
        return verdicts

    def _validate_absolute(
        self,
        accepted: Mapping[str, ObservedPiece],
        stable_ticks: Mapping[str, int],
        observed_render: Mapping[str, RenderPose],
    ) -> Dict[str, ValidationVerdict]:
        settled = [accepted[oid] for oid in stable_ticks]
        self._bindings.bind(settled, observed_render, self._target_render)
        return self._validate_bound(self._bindings.bindings, accepted.keys(), observed_render, self._target_render)

    def _anchor_candidates(self, anchor_id: str, accepted: Mapping[str, ObservedPiece]) -> List[TargetPiece]:
        bound = self._bindings.target_for(anchor_id)
        if bound is not None:
            return [bound]
        if anchor_id not in accepted:
            return []
        # A duplicated shape may be playing either of its targets
        return self._bindings.free_targets(accepted[anchor_id].piece_type)

    def _validate_relative(
        self,
        accepted: Mapping[str, ObservedPiece],
        stable_ticks: Mapping[str, int],
        observed_render: Mapping[str, RenderPose],
    ) -> Tuple[Dict[str, ValidationVerdict], bool]:
        assert self._anchor is not None

        # Only pieces that have, or can get, a target may anchor the frame
        eligible = {
            oid: ticks
            for oid, ticks in stable_ticks.items()
            if self._bindings.is_bound(oid) or self._bindings.has_free_target(accepted[oid].piece_type)
        }
        state = self._anchor.update(eligible)
        anchor_id = state.anchor_piece_id
        if anchor_id is None:
            self._anchor_pose = None
            return {}, True

        if anchor_id in observed_render:
            self._anchor_pose = observed_render[anchor_id]
        if self._anchor_pose is None:
            return {}, True

        candidates = self._anchor_candidates(anchor_id, accepted)
        if not candidates:
            return {}, True

        observed_poses: Dict[str, Pose] = dict(observed_render)
        observed_poses[anchor_id] = self._anchor_pose
        settled = [accepted[oid] for oid in stable_ticks if oid != anchor_id]
        current = self._bindings.bindings

        # Each anchor target and symmetric anchor orientation gets its own trial bindings
        best_score: Tuple[int, float] = (-1, 0.0)
        best_verdicts: Dict[str, ValidationVerdict] = {}
        best_trial: Dict[str, str] = {}
        for anchor_target in candidates:
            target_frame = relative_frame(self._target_render, anchor_target.id)
            reserved = {anchor_id: anchor_target.id}
            for offset in anchor_rotation_offsets(anchor_target.piece_type, anchor_target.pose.is_mirrored):
                observed_frame = relative_frame(observed_poses, anchor_id, offset)
                trial = dict(reserved)
                trial.update(self._bindings.propose(settled, observed_frame, target_frame, reserved))
                verdicts = self._validate_bound({**current, **trial}, accepted.keys(), observed_frame, target_frame)

                matches = sum(1 for v in verdicts.values() if v.is_match and v.observed_id != anchor_id)
                error = sum(v.position_error + v.rotation_error for v in verdicts.values())
                score = (matches, -error)
                if score > best_score:
                    best_score, best_verdicts, best_trial = score, verdicts, trial
                    logger.debug(
                        "Anchor %s as %s, offset %.3f rad: %d matches", anchor_id, anchor_target.id, offset, matches
                    )

        if best_score[0] > 0:
            self._bindings.commit(best_trial)
            return best_verdicts, False

        anchor_target_id = best_trial.get(anchor_id)
        anchor_verdict = best_verdicts.get(anchor_target_id) if anchor_target_id else None
        if anchor_verdict is not None and anchor_verdict.is_match:
            # The anchor agrees with itself by construction; it only counts once a neighbour agrees too
            best_verdicts[anchor_verdict.target_id] = ValidationVerdict(
                target_id=anchor_verdict.target_id,
                observed_id=anchor_verdict.observed_id,
                is_match=False,
                position_error=anchor_verdict.position_error,
                rotation_error=anchor_verdict.rotation_error,
                mirror_match=anchor_verdict.mirror_match,
                failure=FailureReason.NO_VALIDATED_NEIGHBOR,
            )
        return best_verdicts, False
