"""Edge contact between placed pieces.

Two pieces are in contact when their outlines come within a tolerance of each
other. Contacts are reported alongside verdicts so hint and feedback layers can
tell a piece pushed against its neighbours from one left on its own.
"""

import logging
from typing import Dict, List, Mapping, Tuple

import numpy as np

from tangram_engine.exceptions import UnknownPieceTypeError
from tangram_engine.services.geometry import polygon_distance
from tangram_engine.services.placement import catalog
from tangram_engine.services.placement.models import PieceType, Pose

logger = logging.getLogger(__name__)


def find_contacts(
    pieces: Mapping[str, Tuple[PieceType, Pose]],
    tolerance: float,
    scale: float = catalog.VISUAL_SCALE,
) -> Dict[str, Tuple[str, ...]]:
    """Find which pieces touch which.

    Args:
        pieces: Piece type and pose keyed by id, all poses in one space.
        tolerance: Largest edge-to-edge gap, in scene units, still counted as contact.
        scale: Scene units per normalized piece unit.

    Returns:
        For every piece with a known shape, the sorted ids of the pieces it touches.
    """
    outlines: Dict[str, np.ndarray] = {}
    for piece_id, (piece_type, pose) in pieces.items():
        try:
            outlines[piece_id] = catalog.placed_vertices(piece_type, pose, scale)
        except UnknownPieceTypeError:
            logger.debug("No outline for %s (%r); skipped for contacts", piece_id, piece_type)

    ids = sorted(outlines)
    touching: Dict[str, List[str]] = {piece_id: [] for piece_id in ids}
    for i, first in enumerate(ids):
        for second in ids[i + 1 :]:
            if polygon_distance(outlines[first], outlines[second]) <= tolerance:
                touching[first].append(second)
                touching[second].append(first)
    return {piece_id: tuple(sorted(others)) for piece_id, others in touching.items()}
