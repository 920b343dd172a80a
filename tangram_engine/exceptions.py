"""Exceptions raised by the tangram engine."""


class TangramEngineError(Exception):
    """Base class for tangram engine errors."""


class UnknownPieceTypeError(TangramEngineError, KeyError):
    """Raised when a piece type has no entry in the shape catalog.

    This indicates a mismatch between puzzle data and the catalog, never a
    normal runtime condition.
    """

    def __init__(self, piece_type: object) -> None:
        """Record the offending piece type."""
        super().__init__(f"No shape registered for piece type {piece_type!r}")
        self.piece_type = piece_type

    def __str__(self) -> str:
        """Return the message without KeyError's quoting."""
        return str(self.args[0])


class InvalidPuzzleError(TangramEngineError, ValueError):
    """Raised when a target piece set cannot be used to start a session."""
