"""Catalog of the seven tangram piece shapes.

Vertices are in piece-local normalized units where the square has side 1. The
catalog is built once at import; a ``PieceType`` member without a shape makes
the import fail rather than surfacing later as a missing key.
"""

import math
from types import MappingProxyType
from typing import List, Mapping, Optional

import numpy as np

from tangram_engine.exceptions import UnknownPieceTypeError
from tangram_engine.services.geometry import transform_vertices
from tangram_engine.services.placement.models import PieceShape, PieceType, Pose

SQRT2 = math.sqrt(2.0)

# Pixels per normalized unit when pieces are drawn or compared in scene space
VISUAL_SCALE = 50.0


def _build_shape(piece_type: PieceType) -> PieceShape:
    if piece_type in (PieceType.SMALL_TRIANGLE_1, PieceType.SMALL_TRIANGLE_2):
        return PieceShape(
            piece_type=piece_type,
            display_name="Small Triangle",
            vertices=((0.0, 0.0), (1.0, 0.0), (0.0, 1.0)),
            symmetry_order=1,
            is_mirror_capable=False,
            area=0.5,
            sort_order=3 if piece_type is PieceType.SMALL_TRIANGLE_1 else 4,
            class_id=5 if piece_type is PieceType.SMALL_TRIANGLE_1 else 6,
        )
    elif piece_type is PieceType.MEDIUM_TRIANGLE:
        return PieceShape(
            piece_type=piece_type,
            display_name="Medium Triangle",
            vertices=((0.0, 0.0), (SQRT2, 0.0), (0.0, SQRT2)),
            symmetry_order=1,
            is_mirror_capable=False,
            area=1.0,
            sort_order=2,
            class_id=4,
        )
    elif piece_type in (PieceType.LARGE_TRIANGLE_1, PieceType.LARGE_TRIANGLE_2):
        return PieceShape(
            piece_type=piece_type,
            display_name="Large Triangle",
            vertices=((0.0, 0.0), (2.0, 0.0), (0.0, 2.0)),
            symmetry_order=1,
            is_mirror_capable=False,
            area=2.0,
            sort_order=0 if piece_type is PieceType.LARGE_TRIANGLE_1 else 1,
            class_id=2 if piece_type is PieceType.LARGE_TRIANGLE_1 else 3,
        )
    elif piece_type is PieceType.SQUARE:
        return PieceShape(
            piece_type=piece_type,
            display_name="Square",
            vertices=((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)),
            symmetry_order=4,
            is_mirror_capable=False,
            area=1.0,
            sort_order=5,
            class_id=1,
        )
    elif piece_type is PieceType.PARALLELOGRAM:
        half = SQRT2 / 2.0
        return PieceShape(
            piece_type=piece_type,
            display_name="Parallelogram",
            vertices=((0.0, 0.0), (SQRT2, 0.0), (half, half), (-half, half)),
            symmetry_order=2,
            is_mirror_capable=True,
            area=1.0,
            sort_order=6,
            class_id=0,
        )
    raise UnknownPieceTypeError(piece_type)


SHAPES: Mapping[PieceType, PieceShape] = MappingProxyType({pt: _build_shape(pt) for pt in PieceType})

_BY_CLASS_ID: Mapping[int, PieceType] = MappingProxyType({s.class_id: s.piece_type for s in SHAPES.values()})


def get_shape(piece_type: PieceType) -> PieceShape:
    """Look up the shape of a piece type.

    Raises:
        UnknownPieceTypeError: If ``piece_type`` is not a registered type.
    """
    try:
        return SHAPES[piece_type]
    except (KeyError, TypeError):
        raise UnknownPieceTypeError(piece_type) from None


def symmetry_order(piece_type: PieceType, is_mirrored: bool = False) -> int:
    """Number of evenly spaced rotations at which the piece looks unchanged.

    A mirrored parallelogram is treated as having no rotational symmetry.
    """
    shape = get_shape(piece_type)
    if shape.is_mirror_capable and is_mirrored:
        return 1
    return shape.symmetry_order


def is_mirror_capable(piece_type: PieceType) -> bool:
    """Whether the piece's reflection is distinguishable from the piece itself."""
    return get_shape(piece_type).is_mirror_capable


def piece_type_for_class_id(class_id: int) -> Optional[PieceType]:
    """Map a vision class id to its piece type, or None when unknown."""
    return _BY_CLASS_ID.get(class_id)


def placed_vertices(piece_type: PieceType, pose: Pose, scale: float = VISUAL_SCALE) -> np.ndarray:
    """Vertices of a piece placed at a pose, in the pose's coordinate space.

    The piece-local centroid is moved to the pose position before rotating, so
    the pose position is the piece's center.
    """
    shape = get_shape(piece_type)
    cx, cy = shape.centroid
    centered = [(x - cx, y - cy) for x, y in shape.vertices]
    return transform_vertices(centered, pose.position, pose.rotation, pose.is_mirrored, scale)


def shapes_in_order() -> List[PieceShape]:
    """All shapes in their display order, largest pieces first."""
    return sorted(SHAPES.values(), key=lambda s: s.sort_order)
