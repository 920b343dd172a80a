"""Tangram piece placement: shapes, validation, anchoring and completion."""

from .anchor import AnchorMappingService, anchor_rotation_offsets, relative_frame, relative_pose
from .binding import TargetBindingRegistry
from .catalog import get_shape, piece_type_for_class_id, placed_vertices, shapes_in_order, symmetry_order
from .completion import CompletionEvaluator
from .contact import find_contacts
from .models import (
    AnchorState,
    CompletionEvent,
    CompletionResult,
    CompletionStatus,
    FailureReason,
    ObservedPiece,
    PieceShape,
    PieceType,
    Pose,
    RawPose,
    RelativePose,
    RenderPose,
    TargetPiece,
    ValidationVerdict,
)
from .stability import StabilityTracker
from .validator import (
    PlacementValidator,
    Tolerances,
    nearest_valid_rotation,
    tolerances_for_difficulty,
    validate_placement,
)

__all__ = [
    # Models
    "AnchorState",
    "CompletionEvent",
    "CompletionResult",
    "CompletionStatus",
    "FailureReason",
    "ObservedPiece",
    "PieceShape",
    "PieceType",
    "Pose",
    "RawPose",
    "RelativePose",
    "RenderPose",
    "TargetPiece",
    "ValidationVerdict",
    # Catalog
    "get_shape",
    "piece_type_for_class_id",
    "placed_vertices",
    "shapes_in_order",
    "symmetry_order",
    # Validation
    "PlacementValidator",
    "Tolerances",
    "nearest_valid_rotation",
    "tolerances_for_difficulty",
    "validate_placement",
    # Anchoring
    "AnchorMappingService",
    "anchor_rotation_offsets",
    "relative_frame",
    "relative_pose",
    # Session bookkeeping
    "CompletionEvaluator",
    "StabilityTracker",
    "find_contacts",
    "TargetBindingRegistry",
]
