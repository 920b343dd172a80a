"""Tests for the stability debounce."""

import math

from tangram_engine.services.placement.models import ObservedPiece, PieceType, RawPose
from tangram_engine.services.placement.stability import StabilityTracker


def _piece(obs_id: str, x: float, rotation: float = 0.0, stable: bool = True) -> ObservedPiece:
    return ObservedPiece(
        observation_id=obs_id,
        piece_type=PieceType.SQUARE,
        pose=RawPose(position=(x, 0.0), rotation=rotation),
        is_stable=stable,
    )


def _tracker(debounce: int = 3) -> StabilityTracker:
    return StabilityTracker(debounce, movement_threshold=20.0, rotation_threshold=math.radians(5.0))


def test_piece_settles_after_debounce() -> None:
    """A piece becomes stable after the configured number of still ticks."""
    tracker = _tracker()

    assert tracker.update([_piece("a", 0.0)]) == {"a": 1}
    assert not tracker.is_stable("a")
    tracker.update([_piece("a", 5.0)])
    assert not tracker.is_stable("a")
    tracker.update([_piece("a", 10.0)])

    assert tracker.is_stable("a")
    assert tracker.stable_ticks() == {"a": 3}


def test_movement_resets_count() -> None:
    """Moving or turning past the thresholds restarts the debounce."""
    tracker = _tracker()
    tracker.update([_piece("a", 0.0)])
    tracker.update([_piece("a", 0.0)])

    assert tracker.update([_piece("a", 50.0)]) == {"a": 0}
    assert tracker.update([_piece("a", 50.0)]) == {"a": 1}
    assert tracker.update([_piece("a", 50.0, rotation=0.5)]) == {"a": 0}


def test_unstable_flag_resets_count() -> None:
    """Input that reports the piece as moving keeps it unsettled."""
    tracker = _tracker(debounce=1)
    tracker.update([_piece("a", 0.0)])

    tracker.update([_piece("a", 0.0, stable=False)])

    assert tracker.still_ticks("a") == 0
    assert tracker.stable_ticks() == {}


def test_missing_pieces_are_forgotten() -> None:
    """A piece absent from a tick starts over when it returns."""
    tracker = _tracker(debounce=1)
    tracker.update([_piece("a", 0.0), _piece("b", 100.0)])
    tracker.update([_piece("b", 100.0)])

    assert tracker.still_ticks("a") is None
    assert tracker.update([_piece("a", 0.0), _piece("b", 100.0)]) == {"a": 1, "b": 3}


def test_zero_debounce_still_requires_a_still_tick() -> None:
    """With no debounce a piece is stable as soon as it is still."""
    tracker = _tracker(debounce=0)

    tracker.update([_piece("a", 0.0, stable=False)])
    assert not tracker.is_stable("a")
    tracker.update([_piece("a", 0.0)])
    assert tracker.is_stable("a")
