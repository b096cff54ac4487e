"""Exception hierarchy shared by the ranker, the cost model and the corpus driver."""

from __future__ import annotations

from typing import Optional


class RankCodeError(Exception):
    """Base class for all RankCode errors."""


class CorpusIOError(RankCodeError, OSError):
    """The corpus file could not be opened, mapped or holds no games."""


class CorpusExhausted(RankCodeError):
    """No further game is available and the driver is configured to stop."""


class TableFormatError(RankCodeError, ValueError):
    """A probability table file is malformed."""


class RankingError(RankCodeError, ValueError):
    """The played move could not be located unambiguously in a ranked order.

    Subclasses ``ValueError`` so that ``chess.pgn`` treats it like any other
    unparsable move and skips the remainder of the game.
    """

    def __init__(self, notation: str, fen: Optional[str] = None) -> None:
        self.notation = notation
        self.fen = fen
        super().__init__(self.describe())

    def describe(self) -> str:
        return f"illegal san: {self.notation}"


class MoveNotFound(RankingError):
    def describe(self) -> str:
        return f"illegal san: {self.notation}, not found"


class DuplicateMoveMatch(RankingError):
    def __init__(self, notation: str, fen: Optional[str] = None, matches: int = 2) -> None:
        self.matches = matches
        super().__init__(notation, fen)

    def describe(self) -> str:
        return f"illegal san: {self.notation}, dupe move ({self.matches} matches)"
