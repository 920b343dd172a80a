"""Data models for tangram piece placement."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from tangram_engine.services.geometry import Point, polygon_centroid


class PieceType(str, Enum):
    """The seven tangram pieces. Duplicated shapes get their own identifiers."""

    SMALL_TRIANGLE_1 = "small_triangle_1"
    SMALL_TRIANGLE_2 = "small_triangle_2"
    MEDIUM_TRIANGLE = "medium_triangle"
    LARGE_TRIANGLE_1 = "large_triangle_1"
    LARGE_TRIANGLE_2 = "large_triangle_2"
    SQUARE = "square"
    PARALLELOGRAM = "parallelogram"


@dataclass(frozen=True)
class Pose:
    """Position, rotation (radians) and mirror state of a piece in some coordinate space."""

    position: Point
    rotation: float
    is_mirrored: bool = False


@dataclass(frozen=True)
class RawPose(Pose):
    """Pose in raw/storage space: y grows downward, as stored and as seen by the camera."""


@dataclass(frozen=True)
class RenderPose(Pose):
    """Pose in render space: y grows upward and the rotation sign is inverted."""


@dataclass(frozen=True)
class RelativePose(Pose):
    """Pose expressed in the frame of the current anchor piece."""


@dataclass(frozen=True)
class TargetPiece:
    """A piece of the loaded puzzle's solution."""

    id: str
    piece_type: PieceType
    pose: RawPose


@dataclass(frozen=True)
class ObservedPiece:
    """A piece as last reported by the vision pipeline or the touch layer."""

    observation_id: str
    piece_type: PieceType
    pose: RawPose
    sequence: int = 0
    is_stable: bool = True


@dataclass(frozen=True)
class AnchorState:
    """Which observed piece currently anchors relative validation."""

    anchor_piece_id: Optional[str] = None
    missing_ticks: int = 0

    @property
    def has_anchor(self) -> bool:
        """Whether an anchor is currently assigned."""
        return self.anchor_piece_id is not None


class FailureReason(str, Enum):
    """Primary reason a placement did not match."""

    WRONG_POSITION = "wrong_position"
    NEEDS_FLIP = "needs_flip"
    WRONG_ROTATION = "wrong_rotation"
    NO_VALIDATED_NEIGHBOR = "no_validated_neighbor"
    UNKNOWN_PIECE_TYPE = "unknown_piece_type"


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of comparing one observed piece with its target."""

    target_id: str
    observed_id: str
    is_match: bool
    position_error: float
    rotation_error: float
    mirror_match: bool = True
    failure: Optional[FailureReason] = None


class CompletionStatus(str, Enum):
    """Aggregate state of the whole puzzle."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class CompletionEvent(str, Enum):
    """One-shot edges emitted when the aggregate state changes."""

    STARTED = "started"
    COMPLETED = "completed"


@dataclass(frozen=True)
class CompletionResult:
    """Result of one completion evaluation."""

    status: CompletionStatus
    matched_target_ids: Tuple[str, ...] = ()
    events: Tuple[CompletionEvent, ...] = ()
    anchor_piece_id: Optional[str] = None
    awaiting_anchor: bool = False


@dataclass(frozen=True)
class PieceShape:
    """Catalog entry describing a piece's canonical geometry and symmetry."""

    piece_type: PieceType
    display_name: str
    vertices: Tuple[Point, ...]
    symmetry_order: int
    is_mirror_capable: bool
    area: float
    sort_order: int
    class_id: int
    centroid: Point = field(init=False)

    def __post_init__(self) -> None:
        """Compute the vertex centroid once."""
        object.__setattr__(self, "centroid", polygon_centroid(self.vertices))
