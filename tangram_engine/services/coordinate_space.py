"""Conversion between raw/storage space and render space.

Raw space is what puzzle storage and the vision pipeline use: y grows downward.
Render space is what the scene draws in: y grows upward, which inverts the sign
of rotations. This module is the only place that negates a y coordinate or a
rotation; every other component goes through these functions.
"""

import logging
import math
from typing import Optional

from tangram_engine.services.geometry import AffineTransform, decompose_transform, is_degenerate
from tangram_engine.services.placement.models import RawPose, RenderPose

logger = logging.getLogger(__name__)


def to_render_space(pose: RawPose) -> RenderPose:
    """Convert a raw-space pose into render space."""
    x, y = pose.position
    return RenderPose(position=(x, -y), rotation=-pose.rotation, is_mirrored=pose.is_mirrored)


def to_raw_space(pose: RenderPose) -> RawPose:
    """Convert a render-space pose back into raw space. Exact inverse of ``to_render_space``."""
    x, y = pose.position
    return RawPose(position=(x, -y), rotation=-pose.rotation, is_mirrored=pose.is_mirrored)


def accept_raw_pose(pose: RawPose, source: str = "input") -> Optional[RawPose]:
    """Return the pose if all of its values are finite, otherwise log and return None."""
    values = (pose.position[0], pose.position[1], pose.rotation)
    if not all(math.isfinite(v) for v in values):
        logger.warning("Rejecting non-finite pose from %s: %s", source, pose)
        return None
    return pose


def raw_pose_from_transform(transform: AffineTransform, source: str = "input") -> Optional[RawPose]:
    """Decompose a raw-space transform into a pose.

    Degenerate transforms (non-finite entries or a non-invertible linear part)
    are rejected here so a bad observation only removes its own piece.

    Args:
        transform: Transform in raw/storage convention.
        source: Label used in the log message when the transform is rejected.

    Returns:
        The raw pose, or None if the transform is malformed.
    """
    if is_degenerate(transform):
        logger.warning("Rejecting degenerate transform from %s: %s", source, transform)
        return None
    components = decompose_transform(transform)
    return RawPose(
        position=components.position,
        rotation=components.rotation,
        is_mirrored=components.is_mirrored,
    )
