"""Debounce observed pieces until they have settled."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from tangram_engine.services.geometry import angular_distance, euclidean_distance
from tangram_engine.services.placement.models import ObservedPiece, RawPose

logger = logging.getLogger(__name__)


@dataclass
class _Track:
    pose: RawPose
    still_ticks: int


class StabilityTracker:
    """Count consecutive still ticks per observed piece.

    A tick is still when the input reports the piece as stable and it moved
    less than the movement and rotation thresholds since the previous tick. A
    piece is stable once it has been still for ``debounce_ticks`` ticks.
    Pieces missing from a tick are forgotten.
    """

    def __init__(self, debounce_ticks: int, movement_threshold: float, rotation_threshold: float):
        """Initialize the tracker.

        Args:
            debounce_ticks: Still ticks required before a piece counts as stable.
            movement_threshold: Largest per-tick displacement still treated as stationary.
            rotation_threshold: Largest per-tick rotation (radians) still treated as stationary.
        """
        self.debounce_ticks = debounce_ticks
        self.movement_threshold = movement_threshold
        self.rotation_threshold = rotation_threshold
        self._tracks: Dict[str, _Track] = {}

    def update(self, observations: Iterable[ObservedPiece]) -> Dict[str, int]:
        """Advance one tick.

        Returns:
            Still-tick count for every piece observed this tick.
        """
        tracks: Dict[str, _Track] = {}
        for obs in observations:
            previous = self._tracks.get(obs.observation_id)
            still = obs.is_stable and (previous is None or not self._moved(previous.pose, obs.pose))
            if not still:
                count = 0
            elif previous is None:
                count = 1
            else:
                count = previous.still_ticks + 1
            tracks[obs.observation_id] = _Track(pose=obs.pose, still_ticks=count)

        dropped = set(self._tracks) - set(tracks)
        if dropped:
            logger.debug("Pieces no longer observed: %s", sorted(dropped))
        self._tracks = tracks
        return {obs_id: track.still_ticks for obs_id, track in tracks.items()}

    def _moved(self, before: RawPose, after: RawPose) -> bool:
        return (
            euclidean_distance(before.position, after.position) > self.movement_threshold
            or angular_distance(before.rotation, after.rotation) > self.rotation_threshold
            or before.is_mirrored != after.is_mirrored
        )

    def still_ticks(self, observation_id: str) -> Optional[int]:
        """Still-tick count of a piece, or None if it was not observed last tick."""
        track = self._tracks.get(observation_id)
        return track.still_ticks if track else None

    def is_stable(self, observation_id: str) -> bool:
        """Whether a piece has been still for at least ``debounce_ticks`` ticks."""
        count = self.still_ticks(observation_id)
        return count is not None and self._settled(count)

    def stable_ticks(self) -> Dict[str, int]:
        """Still-tick counts of the pieces that are currently stable."""
        return {
            obs_id: track.still_ticks
            for obs_id, track in self._tracks.items()
            if self._settled(track.still_ticks)
        }

    def _settled(self, count: int) -> bool:
        return count > 0 and count >= self.debounce_ticks
