"""Placement validation for a single piece against its target.

The validator compares two poses that are already expressed in the same space
(render space, or the frame of the current anchor) and decides whether the
observed piece sits on its target, taking the piece's rotational symmetry and
mirror state into account.
"""

import logging
import math
from dataclasses import dataclass
from typing import Tuple

from tangram_engine.exceptions import UnknownPieceTypeError
from tangram_engine.services.geometry import (
    angular_distance,
    degrees_to_radians,
    euclidean_distance,
    normalize_angle,
    radians_to_degrees,
)
from tangram_engine.services.placement import catalog
from tangram_engine.services.placement.models import FailureReason, PieceType, Pose, ValidationVerdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tolerances:
    """Position tolerance in scene units and rotation tolerance in radians."""

    position: float
    rotation: float

    @classmethod
    def from_degrees(cls, position: float, rotation_degrees: float) -> "Tolerances":
        """Build tolerances from a rotation given in degrees."""
        return cls(position=position, rotation=degrees_to_radians(rotation_degrees))


# Per-difficulty presets: (position tolerance, rotation tolerance in degrees)
DIFFICULTY_PRESETS = {
    "easy": (55.0, 24.0),
    "normal": (40.0, 18.0),
    "hard": (28.0, 12.0),
}


def tolerances_for_difficulty(difficulty: str) -> Tolerances:
    """Return the tolerance preset for a difficulty name.

    Raises:
        ValueError: If the difficulty is not one of the presets.
    """
    try:
        position, rotation_degrees = DIFFICULTY_PRESETS[difficulty]
    except KeyError:
        raise ValueError(f"Unknown difficulty {difficulty!r}; expected one of {sorted(DIFFICULTY_PRESETS)}") from None
    return Tolerances.from_degrees(position, rotation_degrees)


def symmetric_target_angles(target_rotation: float, order: int) -> Tuple[float, ...]:
    """All rotations at which a piece of the given symmetry order matches the target."""
    step = 2.0 * math.pi / order
    return tuple(normalize_angle(target_rotation + i * step) for i in range(order))


def rotation_error(observed_rotation: float, target_rotation: float, order: int) -> float:
    """Smallest angular distance from the observed rotation to any equivalent target rotation."""
    return min(angular_distance(observed_rotation, angle) for angle in symmetric_target_angles(target_rotation, order))


def nearest_valid_rotation(
    observed_rotation: float,
    target_rotation: float,
    piece_type: PieceType,
    is_mirrored: bool = False,
) -> float:
    """Return the symmetry-equivalent target rotation closest to the observed one.

    Hint consumers use this to animate a piece towards the orientation the
    player is already nearest to, rather than the stored one.
    """
    order = catalog.symmetry_order(piece_type, is_mirrored)
    return min(
        symmetric_target_angles(target_rotation, order),
        key=lambda angle: angular_distance(observed_rotation, angle),
    )


def _check_same_space(observed: Pose, target: Pose) -> None:
    if type(observed) is not type(target):
        raise TypeError(
            f"Cannot compare a {type(observed).__name__} with a {type(target).__name__}; "
            "map both poses into the same space first"
        )


class PlacementValidator:
    """Decide whether observed poses match their targets within tolerances."""

    def __init__(self, tolerances: Tolerances, strict: bool = False):
        """Initialize the validator.

        Args:
            tolerances: Position and rotation tolerances; both bounds are inclusive.
            strict: Re-raise unknown piece types instead of reporting a no-match.
        """
        self.tolerances = tolerances
        self.strict = strict

    def validate(
        self,
        observed: Pose,
        target: Pose,
        piece_type: PieceType,
        target_id: str,
        observed_id: str,
    ) -> ValidationVerdict:
        """Compare an observed pose with its target pose.

        Args:
            observed: Observed pose, already mapped into the comparison space.
            target: Target pose in the same space.
            piece_type: Piece type, for symmetry and mirror metadata.
            target_id: Id of the target piece.
            observed_id: Id of the observed piece.

        Returns:
            ValidationVerdict with the match flag and the position and rotation
            errors. The rotation error is the smallest over all symmetry branches.

        Raises:
            TypeError: If the poses come from different coordinate spaces.
            UnknownPieceTypeError: If the piece type is unregistered and the
                validator is strict.
        """
        _check_same_space(observed, target)

        try:
            mirror_capable = catalog.is_mirror_capable(piece_type)
            order = catalog.symmetry_order(piece_type, target.is_mirrored)
        except UnknownPieceTypeError:
            if self.strict:
                raise
            logger.error("Piece type %r is not in the shape catalog; treating %s as unmatched", piece_type, target_id)
            return ValidationVerdict(
                target_id=target_id,
                observed_id=observed_id,
                is_match=False,
                position_error=math.inf,
                rotation_error=math.inf,
                mirror_match=False,
                failure=FailureReason.UNKNOWN_PIECE_TYPE,
            )

        position_error = euclidean_distance(observed.position, target.position)
        rot_error = rotation_error(observed.rotation, target.rotation, order)

        position_ok = position_error <= self.tolerances.position
        mirror_ok = not mirror_capable or observed.is_mirrored == target.is_mirrored
        rotation_ok = rot_error <= self.tolerances.rotation

        failure = None
        if not position_ok:
            failure = FailureReason.WRONG_POSITION
        elif not mirror_ok:
            failure = FailureReason.NEEDS_FLIP
        elif not rotation_ok:
            failure = FailureReason.WRONG_ROTATION

        logger.debug(
            "%s -> %s (%s, order %d): pos %.2f/%.2f rot %.1f/%.1f deg mirror_ok=%s",
            observed_id,
            target_id,
            piece_type.value,
            order,
            position_error,
            self.tolerances.position,
            radians_to_degrees(rot_error),
            radians_to_degrees(self.tolerances.rotation),
            mirror_ok,
        )

        return ValidationVerdict(
            target_id=target_id,
            observed_id=observed_id,
            is_match=failure is None,
            position_error=position_error,
            rotation_error=rot_error,
            mirror_match=mirror_ok,
            failure=failure,
        )


def validate_placement(
    observed: Pose,
    target: Pose,
    piece_type: PieceType,
    position_tolerance: float,
    rotation_tolerance: float,
    target_id: str = "target",
    observed_id: str = "observed",
) -> ValidationVerdict:
    """Validate one placement with explicit tolerances (rotation in radians)."""
    validator = PlacementValidator(Tolerances(position=position_tolerance, rotation=rotation_tolerance))
    return validator.validate(observed, target, piece_type, target_id, observed_id)
