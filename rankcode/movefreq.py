"""
Move frequency analysis.

Produces the per-mille probability tables the ranker looks up: for every
(role, square) pair, how often a legal move of that role landing on (or
leaving from) that square was the move actually played. Positions with a
single legal move carry no information and are not counted.
"""

from __future__ import annotations

import io
import logging
from typing import Iterable, Optional

import chess
import chess.pgn
import numpy as np
from tqdm import tqdm

from rankcode.errors import DuplicateMoveMatch, MoveNotFound
from rankcode.evaluator import MainlineVisitor
from rankcode.san import SanToken
from rankcode.tables import TABLE_SHAPE, ProbabilityTables

logger = logging.getLogger(__name__)


def _table_square(turn: chess.Color, square: chess.Square) -> int:
    return chess.square_mirror(square) if turn == chess.WHITE else square


class FrequencyCounter(MainlineVisitor):
    """Tallies available and played moves per (role, square)."""

    def __init__(self) -> None:
        super().__init__()
        self.avail_dest = np.zeros(TABLE_SHAPE, dtype=np.int64)
        self.hits_dest = np.zeros(TABLE_SHAPE, dtype=np.int64)
        self.avail_src = np.zeros(TABLE_SHAPE, dtype=np.int64)
        self.hits_src = np.zeros(TABLE_SHAPE, dtype=np.int64)
        self.games = 0
        self.positions = 0

    def begin_game(self) -> None:
        super().begin_game()
        self.games += 1

    def consume(self, board: chess.Board, token: SanToken) -> chess.Move:
        legal = list(board.legal_moves)
        matches = [move for move in legal if token.matches(board, move)]

        if not matches:
            raise MoveNotFound(token.notation, board.fen())
        if len(matches) > 1:
            raise DuplicateMoveMatch(token.notation, board.fen(), matches=len(matches))

        played = matches[0]
        if len(legal) == 1:
            return played

        turn = board.turn
        for move in legal:
            role = board.piece_type_at(move.from_square) - 1
            dest = _table_square(turn, move.to_square)
            src = _table_square(turn, move.from_square)
            self.avail_dest[role, dest] += 1
            self.avail_src[role, src] += 1
            if move == played:
                self.hits_dest[role, dest] += 1
                self.hits_src[role, src] += 1

        self.positions += 1
        return played

    @staticmethod
    def _per_mille(hits: np.ndarray, avail: np.ndarray) -> np.ndarray:
        return np.where(hits > 0, (1000 * hits) // np.maximum(avail, 1), 0)

    def tables(self) -> ProbabilityTables:
        return ProbabilityTables(
            dest=self._per_mille(self.hits_dest, self.avail_dest),
            src=self._per_mille(self.hits_src, self.avail_src),
        )


def count_frequencies(games: Iterable[str], total: Optional[int] = None, progress: bool = True) -> FrequencyCounter:
    """Runs the frequency pass over PGN game texts."""
    counter = FrequencyCounter()
    for text in tqdm(games, total=total, desc="Counting", unit="game", disable=not progress):
        chess.pgn.read_game(io.StringIO(text), Visitor=lambda: counter)

    logger.info(f"Counted {counter.positions:,} positions over {counter.games:,} games")
    return counter
