"""Conversion of vision pipeline frames into observed pieces.

The pipeline reports each detection with a class id, a rotation in degrees and
a translation in planar board units, optionally alongside the board homography
and the detected polygon. Everything produced here is in raw (y-down) space.
"""

import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from tangram_engine.models.session_model import VisionFrame, VisionObject
from tangram_engine.services.coordinate_space import accept_raw_pose
from tangram_engine.services.geometry import Point, degrees_to_radians, normalize_angle, signed_area
from tangram_engine.services.placement import catalog
from tangram_engine.services.placement.models import ObservedPiece, PieceType, RawPose

logger = logging.getLogger(__name__)

# Below this the homogeneous coordinate is treated as a point at infinity
_MIN_HOMOGENEOUS_W = 1e-4


def apply_homography(point: Point, homography: Optional[Sequence[Sequence[float]]]) -> Point:
    """Map a point through a 3x3 homography.

    Args:
        point: Point to map.
        homography: Row-major 3x3 matrix, or None.

    Returns:
        The mapped point. The input point is returned unchanged when the matrix
        is missing, not 3x3, or maps the point to infinity.
    """
    if homography is None:
        return point
    matrix = np.asarray(homography, dtype=float)
    if matrix.shape != (3, 3):
        logger.warning("Ignoring homography with shape %s", matrix.shape)
        return point

    x, y, w = matrix @ np.array([point[0], point[1], 1.0])
    if abs(w) <= _MIN_HOMOGENEOUS_W:
        return point
    return (float(x / w), float(y / w))


def detection_is_mirrored(detection: VisionObject, piece_type: PieceType) -> bool:
    """Whether a detection shows the flipped side of the piece.

    The explicit ``mirrored`` flag wins. Otherwise the winding of the reported
    polygon decides: canonical vertices wind counter-clockwise, so a clockwise
    polygon is mirrored. Pieces that look the same flipped are never mirrored.
    """
    if not catalog.is_mirror_capable(piece_type):
        return False
    if detection.mirrored is not None:
        return detection.mirrored
    if len(detection.vertices) < 3:
        return False
    return signed_area([(v[0], v[1]) for v in detection.vertices]) < 0


def pose_from_detection(
    detection: VisionObject,
    piece_type: PieceType,
    homography: Optional[Sequence[Sequence[float]]] = None,
    camera_inverted: bool = False,
    visual_scale: float = catalog.VISUAL_SCALE,
) -> Optional[RawPose]:
    """Build a raw-space pose from a detection.

    Args:
        detection: The detection.
        piece_type: Piece type resolved from the detection's class id.
        homography: Board homography applied to the translation, if known.
        camera_inverted: Whether the camera is mounted upside down. The pose is
            turned by half a turn about the board origin.
        visual_scale: Scene units per board unit.

    Returns:
        The pose, or None when any value is not finite.
    """
    rotation = degrees_to_radians(detection.pose.rotation_degrees)
    tx, ty = apply_homography((detection.pose.translation[0], detection.pose.translation[1]), homography)

    if camera_inverted:
        rotation = normalize_angle(rotation + math.pi)
        tx, ty = -tx, -ty

    pose = RawPose(
        position=(tx * visual_scale, ty * visual_scale),
        rotation=rotation,
        is_mirrored=detection_is_mirrored(detection, piece_type),
    )
    return accept_raw_pose(pose, source=f"vision:{detection.name}")


def observations_from_frame(frame: VisionFrame, visual_scale: float = catalog.VISUAL_SCALE) -> List[ObservedPiece]:
    """Convert a vision frame into observed pieces.

    Detections with an unknown class id or a malformed pose are skipped; the
    rest of the frame is still used.

    Args:
        frame: The vision frame.
        visual_scale: Scene units per board unit, used when the frame does not
            report its own ``scale``.

    Returns:
        One observed piece per usable detection, keyed by the detection name.
    """
    scale = frame.scale if frame.scale is not None else visual_scale
    observations: List[ObservedPiece] = []
    for detection in frame.objects:
        piece_type = catalog.piece_type_for_class_id(detection.class_id)
        if piece_type is None:
            logger.warning("Skipping detection %s with unknown class id %d", detection.name, detection.class_id)
            continue

        pose = pose_from_detection(detection, piece_type, frame.homography, frame.camera_inverted, scale)
        if pose is None:
            continue

        observations.append(
            ObservedPiece(
                observation_id=detection.name,
                piece_type=piece_type,
                pose=pose,
                sequence=frame.sequence,
                is_stable=detection.stable if detection.stable is not None else True,
            )
        )

    logger.debug("Frame %d: %d of %d detections usable", frame.sequence, len(observations), len(frame.objects))
    return observations
