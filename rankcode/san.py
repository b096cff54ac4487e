"""
Structural SAN matching.

``board.parse_san`` resolves a token to a single move and is lenient about
missing capture markers. For rank lookup we need the opposite: a token that
can be compared against *every* candidate so that zero or several matches
are detected and reported separately.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import chess

from rankcode.errors import MoveNotFound

CASTLE_PATTERN = re.compile(r"^(?:O-O|0-0)(-O|-0)?[\+#]?[!?]*\Z")
ANNOTATION_SUFFIX = re.compile(r"[!?]+\Z")


@dataclass(frozen=True)
class SanToken:
    """A parsed SAN token: role, disambiguation, target and promotion."""
    notation: str
    role: chess.PieceType = chess.PAWN
    from_file: Optional[int] = None
    from_rank: Optional[int] = None
    capture: bool = False
    to_square: Optional[chess.Square] = None
    promotion: Optional[chess.PieceType] = None
    castle: Optional[str] = None   # "K" or "Q"

    @classmethod
    def parse(cls, notation: str) -> "SanToken":
        """Parses a SAN token. Raises ``MoveNotFound`` for unparsable text."""
        text = notation.strip()

        castle = CASTLE_PATTERN.match(text)
        if castle:
            side = "Q" if castle.group(1) else "K"
            return cls(notation=notation, role=chess.KING, castle=side)

        text = ANNOTATION_SUFFIX.sub("", text)
        match = chess.SAN_REGEX.match(text)
        if not match:
            raise MoveNotFound(notation)

        role = chess.PAWN
        if match.group(1):
            role = chess.PIECE_SYMBOLS.index(match.group(1).lower())

        promotion = None
        if match.group(5):
            promotion = chess.PIECE_SYMBOLS.index(match.group(5)[-1].lower())

        return cls(
            notation=notation,
            role=role,
            from_file=chess.FILE_NAMES.index(match.group(2)) if match.group(2) else None,
            from_rank=int(match.group(3)) - 1 if match.group(3) else None,
            capture="x" in text,
            to_square=chess.parse_square(match.group(4)),
            promotion=promotion,
        )

    def matches(self, board: chess.Board, move: chess.Move) -> bool:
        """True if ``move`` (legal in ``board``) is the move this token denotes."""
        if self.castle is not None:
            if not board.is_castling(move):
                return False
            return board.is_kingside_castling(move) == (self.castle == "K")

        if board.is_castling(move):
            return False
        if move.to_square != self.to_square:
            return False
        if board.piece_type_at(move.from_square) != self.role:
            return False
        if move.promotion != self.promotion:
            return False
        if board.is_capture(move) != self.capture:
            return False
        if self.from_file is not None and chess.square_file(move.from_square) != self.from_file:
            return False
        if self.from_rank is not None and chess.square_rank(move.from_square) != self.from_rank:
            return False
        return True

    def __str__(self) -> str:
        return self.notation
