"""Tests for the puzzle session orchestration."""

import math
from typing import List

import pytest

from tangram_engine.config import Settings
from tangram_engine.exceptions import InvalidPuzzleError
from tangram_engine.services.placement.models import (
    CompletionEvent,
    CompletionStatus,
    FailureReason,
    ObservedPiece,
    PieceType,
    RawPose,
    TargetPiece,
)
from tangram_engine.services.placement.validator import Tolerances
from tangram_engine.services.session import InputMode, PuzzleSession, SessionConfig, ValidationMode

TOLERANCES = Tolerances.from_degrees(10.0, 5.0)


def _target(target_id: str, piece_type: PieceType, x: float, y: float, rotation: float = 0.0) -> TargetPiece:
    return TargetPiece(id=target_id, piece_type=piece_type, pose=RawPose(position=(x, y), rotation=rotation))


def _piece(
    obs_id: str, piece_type: PieceType, x: float, y: float, rotation: float = 0.0, sequence: int = 0
) -> ObservedPiece:
    return ObservedPiece(
        observation_id=obs_id,
        piece_type=piece_type,
        pose=RawPose(position=(x, y), rotation=rotation),
        sequence=sequence,
    )


def _absolute_session(targets: List[TargetPiece]) -> PuzzleSession:
    return PuzzleSession(targets, SessionConfig(tolerances=TOLERANCES))


def _relative_session(targets: List[TargetPiece]) -> PuzzleSession:
    return PuzzleSession(targets, SessionConfig(tolerances=TOLERANCES, validation_mode=ValidationMode.ANCHOR_RELATIVE))


class TestSessionConfig:
    """Tests for building a session config from settings."""

    def test_direct_defaults(self) -> None:
        """Direct input validates absolutely and replaces the anchor at once."""
        config = SessionConfig.from_settings(Settings())

        assert config.validation_mode is ValidationMode.ABSOLUTE
        assert config.hysteresis_ticks == 0
        assert config.debounce_ticks == 1
        assert config.tolerances.position == 40.0
        assert config.tolerances.rotation == pytest.approx(math.radians(18.0))

    def test_vision_defaults(self) -> None:
        """Vision input validates relative to an anchor with hysteresis."""
        config = SessionConfig.from_settings(Settings(), input_mode=InputMode.VISION)

        assert config.validation_mode is ValidationMode.ANCHOR_RELATIVE
        assert config.hysteresis_ticks == 5
        assert config.debounce_ticks == 3

    def test_explicit_tolerances_override_preset(self) -> None:
        """Configured tolerances win over the difficulty preset."""
        config = SessionConfig.from_settings(Settings(POSITION_TOLERANCE=12.0), difficulty="easy")

        assert config.tolerances.position == 12.0
        assert config.tolerances.rotation == pytest.approx(math.radians(24.0))


class TestPuzzleLoading:
    """Tests for rejecting bad puzzles."""

    def test_empty_puzzle(self) -> None:
        """A puzzle needs targets."""
        with pytest.raises(InvalidPuzzleError):
            _absolute_session([])

    def test_duplicate_target_ids(self) -> None:
        """Target ids must be unique."""
        targets = [_target("t", PieceType.SQUARE, 0, 0), _target("t", PieceType.MEDIUM_TRIANGLE, 50, 0)]

        with pytest.raises(InvalidPuzzleError):
            _absolute_session(targets)


class TestAbsoluteMode:
    """Tests for validation in render space."""

    def test_complete_then_reversed(self) -> None:
        """Dragging a piece off a completed puzzle returns it to in-progress."""
        session = _absolute_session(
            [_target("sq", PieceType.SQUARE, 100, 100), _target("mt", PieceType.MEDIUM_TRIANGLE, 200, 100)]
        )
        placed = [_piece("a", PieceType.SQUARE, 100, 100, math.pi / 2), _piece("b", PieceType.MEDIUM_TRIANGLE, 203, 98)]

        complete = session.process(placed)
        dragged = session.process([placed[0], _piece("b", PieceType.MEDIUM_TRIANGLE, 300, 100)])

        assert complete.completion.status is CompletionStatus.COMPLETE
        assert complete.completion.events == (CompletionEvent.STARTED, CompletionEvent.COMPLETED)
        assert dragged.completion.status is CompletionStatus.IN_PROGRESS
        assert dragged.verdicts["mt"].failure is FailureReason.WRONG_POSITION

    def test_duplicate_triangles_bind_once(self) -> None:
        """Either small triangle can fill either target, and keeps the one it took."""
        session = _absolute_session(
            [_target("st1", PieceType.SMALL_TRIANGLE_1, 0, 0), _target("st2", PieceType.SMALL_TRIANGLE_2, 200, 0)]
        )

        first = session.process([_piece("p", PieceType.SMALL_TRIANGLE_2, 2, 0)])
        moved = session.process([_piece("p", PieceType.SMALL_TRIANGLE_2, 200, 0)])

        assert first.bindings == {"p": "st1"}
        assert first.verdicts["st1"].is_match
        assert moved.bindings == {"p": "st1"}
        assert "st2" not in moved.verdicts
        assert not moved.verdicts["st1"].is_match

    def test_non_finite_observation_is_rejected(self) -> None:
        """A malformed pose only removes its own piece."""
        session = _absolute_session(
            [_target("sq", PieceType.SQUARE, 0, 0), _target("mt", PieceType.MEDIUM_TRIANGLE, 100, 0)]
        )

        update = session.process(
            [_piece("a", PieceType.SQUARE, 0, 0), _piece("b", PieceType.MEDIUM_TRIANGLE, float("nan"), 0)]
        )

        assert update.rejected_ids == ("b",)
        assert update.verdicts["sq"].is_match
        assert "mt" not in update.verdicts
        assert update.completion.status is CompletionStatus.IN_PROGRESS

    def test_latest_sequence_wins(self) -> None:
        """Of several reports of one piece, the newest is used and older ones are dropped."""
        session = _absolute_session([_target("sq", PieceType.SQUARE, 0, 0)])

        update = session.process(
            [_piece("a", PieceType.SQUARE, 0, 0, sequence=2), _piece("a", PieceType.SQUARE, 80, 0, sequence=1)]
        )
        stale = session.process([_piece("a", PieceType.SQUARE, 80, 0, sequence=1)])

        assert update.verdicts["sq"].is_match
        assert stale.verdicts == {}

    def test_touching_pieces_are_reported(self) -> None:
        """Pieces pushed edge to edge are listed as contacts of each other."""
        session = _absolute_session(
            [
                _target("sq", PieceType.SQUARE, 0, 0),
                _target("st1", PieceType.SMALL_TRIANGLE_1, 42, 0),
                _target("st2", PieceType.SMALL_TRIANGLE_2, 300, 0),
            ]
        )

        update = session.process(
            [
                _piece("a", PieceType.SQUARE, 0, 0),
                _piece("b", PieceType.SMALL_TRIANGLE_1, 42, 0),
                _piece("c", PieceType.SMALL_TRIANGLE_2, 300, 0),
            ]
        )

        assert update.contacts == {"a": ("b",), "b": ("a",), "c": ()}

    def test_anchor_state_is_empty(self) -> None:
        """Absolute mode never assigns an anchor."""
        session = _absolute_session([_target("sq", PieceType.SQUARE, 0, 0)])

        update = session.process([_piece("a", PieceType.SQUARE, 0, 0)])

        assert not update.anchor.has_anchor
        assert not update.completion.awaiting_anchor


class TestAnchorRelativeMode:
    """Tests for validation relative to an anchor piece."""

    targets = [_target("sq", PieceType.SQUARE, 0, 0), _target("st", PieceType.SMALL_TRIANGLE_1, 100, 0)]

    def test_awaiting_anchor_with_empty_board(self) -> None:
        """No pieces means verdicts are withheld."""
        update = _relative_session(self.targets).process([])

        assert update.verdicts == {}
        assert update.completion.awaiting_anchor
        assert update.completion.status is CompletionStatus.NOT_STARTED

    def test_layout_anywhere_on_board_matches(self) -> None:
        """A correctly arranged layout matches away from the stored position."""
        session = _relative_session(self.targets)

        update = session.process(
            [_piece("a", PieceType.SQUARE, 500, 300), _piece("b", PieceType.SMALL_TRIANGLE_1, 600, 300)]
        )

        assert update.anchor.anchor_piece_id == "a"
        assert update.verdicts["sq"].is_match
        assert update.verdicts["st"].is_match
        assert update.completion.status is CompletionStatus.COMPLETE

    def test_rotated_layout_matches(self) -> None:
        """Turning the whole arrangement keeps it valid."""
        session = _relative_session(self.targets)

        update = session.process(
            [
                _piece("a", PieceType.SQUARE, 500, 300, math.pi / 2),
                _piece("b", PieceType.SMALL_TRIANGLE_1, 500, 400, math.pi / 2),
            ]
        )

        assert update.verdicts["st"].is_match
        assert update.completion.status is CompletionStatus.COMPLETE

    def test_square_anchor_symmetry_is_resolved(self) -> None:
        """A square anchor turned by a quarter turn does not spoil its neighbours."""
        session = _relative_session(self.targets)

        update = session.process(
            [
                _piece("a", PieceType.SQUARE, 500, 300, math.pi / 2),
                _piece("b", PieceType.SMALL_TRIANGLE_1, 600, 300),
            ]
        )

        assert update.verdicts["st"].is_match

    def test_lone_anchor_needs_a_neighbour(self) -> None:
        """The anchor alone is never counted as placed."""
        session = _relative_session(self.targets)

        update = session.process([_piece("a", PieceType.SQUARE, 500, 300)])

        assert not update.verdicts["sq"].is_match
        assert update.verdicts["sq"].failure is FailureReason.NO_VALIDATED_NEIGHBOR
        assert update.completion.status is CompletionStatus.NOT_STARTED

    def test_misplaced_neighbour(self) -> None:
        """A neighbour in the wrong spot relative to the anchor does not match."""
        session = _relative_session(self.targets)

        update = session.process(
            [_piece("a", PieceType.SQUARE, 500, 300), _piece("b", PieceType.SMALL_TRIANGLE_1, 500, 450)]
        )

        assert not update.verdicts["st"].is_match
        assert update.verdicts["st"].failure is FailureReason.WRONG_POSITION

    def test_anchor_promoted_when_removed(self) -> None:
        """Removing the anchor hands the role to a remaining piece."""
        session = _relative_session(self.targets)
        session.process(
            [_piece("a", PieceType.SQUARE, 500, 300), _piece("b", PieceType.SMALL_TRIANGLE_1, 600, 300)]
        )

        update = session.process([_piece("b", PieceType.SMALL_TRIANGLE_1, 600, 300)])

        assert update.anchor.anchor_piece_id == "b"
        assert session.anchor_state.anchor_piece_id == "b"

    def test_symmetric_anchor_with_duplicate_triangles(self) -> None:
        """Duplicate triangles are bound in the anchor orientation that fits, not the stored one."""
        session = _relative_session(
            [
                _target("sq", PieceType.SQUARE, 0, 0),
                _target("st1", PieceType.SMALL_TRIANGLE_1, 100, 0),
                _target("st2", PieceType.SMALL_TRIANGLE_2, 0, 100),
            ]
        )

        update = session.process(
            [
                _piece("a", PieceType.SQUARE, 0, 0, math.pi / 2),
                _piece("b", PieceType.SMALL_TRIANGLE_1, 0, 100),
                _piece("c", PieceType.SMALL_TRIANGLE_1, 100, 0),
            ]
        )

        assert update.bindings == {"a": "sq", "b": "st2", "c": "st1"}
        assert update.completion.status is CompletionStatus.COMPLETE

    def test_duplicated_anchor_takes_target_its_neighbours_agree_with(self) -> None:
        """A large triangle anchor is bound to whichever large triangle target makes the layout fit."""
        session = _relative_session(
            [
                _target("lt1", PieceType.LARGE_TRIANGLE_1, 0, 0),
                _target("lt2", PieceType.LARGE_TRIANGLE_2, 200, 0),
                _target("mt", PieceType.MEDIUM_TRIANGLE, 300, 0),
            ]
        )

        update = session.process(
            [
                _piece("a", PieceType.LARGE_TRIANGLE_1, 200, 0),
                _piece("b", PieceType.LARGE_TRIANGLE_2, 0, 0),
                _piece("m", PieceType.MEDIUM_TRIANGLE, 300, 0),
            ]
        )

        assert update.anchor.anchor_piece_id == "a"
        assert update.bindings == {"a": "lt2", "b": "lt1", "m": "mt"}
        assert update.completion.status is CompletionStatus.COMPLETE

    def test_lone_duplicated_anchor_stays_unbound(self) -> None:
        """A duplicated shape with no neighbour does not claim a target yet."""
        session = _relative_session(
            [_target("lt1", PieceType.LARGE_TRIANGLE_1, 0, 0), _target("lt2", PieceType.LARGE_TRIANGLE_2, 200, 0)]
        )

        alone = session.process([_piece("a", PieceType.LARGE_TRIANGLE_1, 200, 0)])
        joined = session.process(
            [_piece("a", PieceType.LARGE_TRIANGLE_1, 200, 0), _piece("b", PieceType.LARGE_TRIANGLE_2, 0, 0)]
        )

        assert alone.bindings == {}
        assert alone.completion.status is CompletionStatus.NOT_STARTED
        assert joined.bindings == {"a": "lt2", "b": "lt1"}
        assert joined.completion.status is CompletionStatus.COMPLETE
