"""Anchor selection and anchor-relative pose mapping.

Vision-only play has no absolute origin: the camera sees pieces on a table, not
a board. Validation instead picks one settled piece as an anchor and compares
every other piece's pose relative to it with the target poses relative to the
target that the anchor piece is bound to. The verdicts then say "these pieces
are mutually consistent", never "this piece is at its true coordinate".
"""

import logging
import math
from typing import Dict, Mapping, Optional, Tuple, TypeVar

from tangram_engine.services.geometry import normalize_angle, rotate_vector
from tangram_engine.services.placement import catalog
from tangram_engine.services.placement.models import AnchorState, PieceType, Pose, RelativePose

logger = logging.getLogger(__name__)

K = TypeVar("K")


def relative_pose(pose: Pose, anchor_pose: Pose, rotation_offset: float = 0.0) -> RelativePose:
    """Express a pose in the frame of an anchor pose.

    Args:
        pose: Pose to convert.
        anchor_pose: Pose of the anchor, in the same space as ``pose``.
        rotation_offset: Extra rotation added to the anchor's rotation, used to
            try the anchor's symmetry-equivalent orientations.

    Returns:
        RelativePose whose position is the offset from the anchor rotated into
        the anchor's frame, and whose rotation is the angle to the anchor.
    """
    anchor_rotation = anchor_pose.rotation + rotation_offset
    dx = pose.position[0] - anchor_pose.position[0]
    dy = pose.position[1] - anchor_pose.position[1]
    return RelativePose(
        position=rotate_vector((dx, dy), -anchor_rotation),
        rotation=normalize_angle(pose.rotation - anchor_rotation),
        is_mirrored=pose.is_mirrored,
    )


def relative_frame(
    poses: Mapping[K, Pose],
    anchor_key: K,
    rotation_offset: float = 0.0,
) -> Dict[K, RelativePose]:
    """Express every pose of a set relative to the member ``anchor_key``.

    The same function is applied to the observed set and to the target set so
    the two resulting frames are directly comparable.
    """
    anchor_pose = poses[anchor_key]
    return {key: relative_pose(pose, anchor_pose, rotation_offset) for key, pose in poses.items()}


def anchor_rotation_offsets(piece_type: PieceType, is_mirrored: bool = False) -> Tuple[float, ...]:
    """Rotations under which the anchor piece looks the same.

    A square anchor rotated by 90 degrees is indistinguishable from the
    unrotated one, so its frame is ambiguous; every offset here is an equally
    valid orientation of that frame.
    """
    order = catalog.symmetry_order(piece_type, is_mirrored)
    step = 2.0 * math.pi / order
    return tuple(i * step for i in range(order))


class AnchorMappingService:
    """Owns the anchor state of one puzzle session.

    The first piece to settle becomes the anchor. It keeps that role until it
    has been missing or unsettled for more than ``hysteresis_ticks``
    consecutive ticks; only then is the most settled remaining piece promoted.
    A better-placed competitor never displaces a settled anchor.
    """

    def __init__(self, hysteresis_ticks: int):
        """Initialize the service.

        Args:
            hysteresis_ticks: Consecutive ticks the anchor may be missing or
                moving before it is replaced. Vision play tolerates brief
                occlusion; direct manipulation uses 0 to replace on release.
        """
        if hysteresis_ticks < 0:
            raise ValueError("hysteresis_ticks must be non-negative")
        self.hysteresis_ticks = hysteresis_ticks
        self._state = AnchorState()

    @property
    def state(self) -> AnchorState:
        """Current anchor state. Read-only; only ``update`` and ``reset`` change it."""
        return self._state

    @property
    def anchor_piece_id(self) -> Optional[str]:
        """Observation id of the current anchor, if any."""
        return self._state.anchor_piece_id

    def reset(self) -> None:
        """Forget the current anchor."""
        self._state = AnchorState()

    def update(self, stable_ticks: Mapping[str, int]) -> AnchorState:
        """Re-evaluate the anchor for one tick.

        Args:
            stable_ticks: Still-tick counts of the pieces that are settled this
                tick, keyed by observation id.

        Returns:
            The anchor state after this tick.
        """
        current = self._state.anchor_piece_id

        if current is not None and current in stable_ticks:
            if self._state.missing_ticks:
                logger.debug("Anchor %s settled again after %d ticks", current, self._state.missing_ticks)
            self._state = AnchorState(anchor_piece_id=current, missing_ticks=0)
            return self._state

        if current is not None:
            missing = self._state.missing_ticks + 1
            if missing <= self.hysteresis_ticks:
                self._state = AnchorState(anchor_piece_id=current, missing_ticks=missing)
                return self._state
            logger.info("Anchor %s lost for %d ticks", current, missing)

        candidate = self._pick_candidate(stable_ticks)
        if candidate is None:
            if current is not None:
                logger.info("No settled piece left; relative validation suspended")
            self._state = AnchorState()
        else:
            if current is None:
                logger.info("Anchor established: %s", candidate)
            else:
                logger.info("Anchor promoted: %s -> %s", current, candidate)
            self._state = AnchorState(anchor_piece_id=candidate, missing_ticks=0)
        return self._state

    @staticmethod
    def _pick_candidate(stable_ticks: Mapping[str, int]) -> Optional[str]:
        if not stable_ticks:
            return None
        # Longest settled first; ids break ties deterministically
        return min(stable_ticks, key=lambda obs_id: (-stable_ticks[obs_id], obs_id))
