"""One-time binding of observed pieces to target pieces.

A puzzle can use the same shape twice (two small triangles, two large ones).
Each observed instance is bound to one target id when it first settles and
keeps that binding for the whole session, so a piece never jumps between two
equally valid targets from one frame to the next.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from tangram_engine.services.geometry import euclidean_distance
from tangram_engine.services.placement.models import ObservedPiece, PieceType, Pose, TargetPiece

logger = logging.getLogger(__name__)

# Pieces with the same silhouette can fill each other's targets
_SHAPE_FAMILIES = {
    PieceType.SMALL_TRIANGLE_1: "small_triangle",
    PieceType.SMALL_TRIANGLE_2: "small_triangle",
    PieceType.LARGE_TRIANGLE_1: "large_triangle",
    PieceType.LARGE_TRIANGLE_2: "large_triangle",
}


def shape_family(piece_type: PieceType) -> str:
    """Key shared by piece types with identical silhouettes."""
    return _SHAPE_FAMILIES.get(piece_type, piece_type.value)


class TargetBindingRegistry:
    """Assignment map from observation id to target id, fixed once made."""

    def __init__(self, targets: Sequence[TargetPiece]):
        """Initialize the registry for a puzzle's targets."""
        self._targets: Dict[str, TargetPiece] = {t.id: t for t in targets}
        self._bindings: Dict[str, str] = {}

    @property
    def bindings(self) -> Mapping[str, str]:
        """Current observation id -> target id bindings."""
        return dict(self._bindings)

    def target_for(self, observation_id: str) -> Optional[TargetPiece]:
        """Target bound to an observation, if any."""
        target_id = self._bindings.get(observation_id)
        return self._targets[target_id] if target_id is not None else None

    def is_bound(self, observation_id: str) -> bool:
        """Whether an observation already has a target."""
        return observation_id in self._bindings

    def free_targets(self, piece_type: PieceType, reserved: Iterable[str] = ()) -> List[TargetPiece]:
        """Unbound targets of this shape, in id order, excluding ``reserved`` ids."""
        taken = set(self._bindings.values()) | set(reserved)
        family = shape_family(piece_type)
        return sorted(
            (t for t in self._targets.values() if shape_family(t.piece_type) == family and t.id not in taken),
            key=lambda t: t.id,
        )

    def has_free_target(self, piece_type: PieceType) -> bool:
        """Whether a target of this shape is still unbound."""
        return bool(self.free_targets(piece_type))

    def propose(
        self,
        observations: Iterable[ObservedPiece],
        observed_poses: Optional[Mapping[str, Pose]] = None,
        target_poses: Optional[Mapping[str, Pose]] = None,
        reserved: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """Work out bindings for unbound observations without recording them.

        Observations are processed in id order. An observation whose shape
        has a single free target takes it; with several candidates the
        nearest one wins, measured between ``observed_poses`` and
        ``target_poses`` (poses in one comparison space). Without poses for
        both sides the lowest free target id is used.

        Args:
            observations: Settled observations; already bound ones are skipped.
            observed_poses: Comparison-space poses keyed by observation id.
            target_poses: Comparison-space poses keyed by target id.
            reserved: Tentative observation id -> target id assignments that
                count as taken.

        Returns:
            The proposed observation id -> target id assignments, ``reserved``
            not included.
        """
        reserved = reserved or {}
        proposed: Dict[str, str] = {}
        taken = set(reserved.values())

        for obs in sorted(observations, key=lambda o: o.observation_id):
            if obs.observation_id in self._bindings or obs.observation_id in reserved:
                continue
            free = self.free_targets(obs.piece_type, taken)
            if not free:
                logger.debug("No free target for %s (%s)", obs.observation_id, obs.piece_type.value)
                continue

            chosen = free[0]
            observed_pose = observed_poses.get(obs.observation_id) if observed_poses else None
            if len(free) > 1 and observed_pose is not None and target_poses is not None:
                located = [t for t in free if t.id in target_poses]
                if located:
                    chosen = min(
                        located,
                        key=lambda t: (euclidean_distance(observed_pose.position, target_poses[t.id].position), t.id),
                    )

            taken.add(chosen.id)
            proposed[obs.observation_id] = chosen.id
        return proposed

    def commit(self, assignments: Mapping[str, str]) -> Dict[str, str]:
        """Record proposed bindings; observations or targets already bound are skipped.

        Returns:
            The bindings actually created.
        """
        created: Dict[str, str] = {}
        taken = set(self._bindings.values())
        for obs_id, target_id in sorted(assignments.items()):
            if obs_id in self._bindings or target_id in taken:
                continue
            self._bindings[obs_id] = target_id
            taken.add(target_id)
            created[obs_id] = target_id
            logger.info("Bound %s to target %s", obs_id, target_id)
        return created

    def bind(
        self,
        observations: Iterable[ObservedPiece],
        observed_poses: Optional[Mapping[str, Pose]] = None,
        target_poses: Optional[Mapping[str, Pose]] = None,
    ) -> Dict[str, str]:
        """Bind newly settled observations to free targets; see ``propose`` for the rules.

        Returns:
            The bindings created by this call.
        """
        return self.commit(self.propose(observations, observed_poses, target_poses))
