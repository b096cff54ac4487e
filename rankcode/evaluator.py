"""
Batch evaluation: replays games through python-chess and prices the ranks.

``chess.pgn.read_game`` tracks the position and hands every mainline SAN
token to ``RankingVisitor.parse_san``. The visitor ranks the legal moves,
records the played move's rank and returns the matched move, which the
reader then plays. A move that cannot be matched ends scoring for that game:
the error propagates as a ``ValueError`` and python-chess skips the rest of
the game text.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import chess
import chess.pgn
import numpy as np

from config import RANK_ALPHABET_SIZE
from rankcode.corpus import CorpusBatch
from rankcode.cost import RankCostModel
from rankcode.errors import RankingError
from rankcode.ranker import GameContext, MoveRanker
from rankcode.san import SanToken

logger = logging.getLogger(__name__)


class GameSkipped(ValueError):
    """Raised for moves after a game has been taken out of the statistics."""


@dataclass
class GameOutcome:
    scored_moves: int = 0
    custom_start: bool = False
    error: Optional[Exception] = None


class MainlineVisitor(chess.pgn.BaseVisitor):
    """
    Shared visitor behaviour: games with a ``FEN`` header are skipped, side
    variations are ignored and the first unmatched move ends the game.
    Subclasses implement ``consume``.
    """

    def __init__(self) -> None:
        self.skip = False
        self.outcome = GameOutcome()

    def begin_game(self) -> None:
        self.skip = False
        self.outcome = GameOutcome()

    def visit_header(self, tagname: str, tagvalue: str) -> None:
        if tagname == "FEN":
            self.skip = True
            self.outcome.custom_start = True

    def end_headers(self):
        return chess.pgn.SKIP if self.skip else None

    def begin_variation(self):
        return chess.pgn.SKIP

    def parse_san(self, board: chess.Board, san: str) -> chess.Move:
        if self.skip:
            raise GameSkipped(san)
        return self.consume(board, SanToken.parse(san))

    def consume(self, board: chess.Board, token: SanToken) -> chess.Move:
        raise NotImplementedError

    def handle_error(self, error: Exception) -> None:
        if isinstance(error, GameSkipped):
            return
        if isinstance(error, RankingError):
            logger.warning(str(error))
        else:
            logger.warning(f"PGN error: {error}")
        self.skip = True
        self.outcome.error = error

    def result(self) -> GameOutcome:
        return self.outcome


class RankingVisitor(MainlineVisitor):
    """Feeds each mainline move's rank into a cost model."""

    def __init__(self, ranker: MoveRanker, theta: Sequence[float], cost: RankCostModel) -> None:
        super().__init__()
        self.ranker = ranker
        self.theta = theta
        self.cost = cost
        self.context = GameContext()

    def begin_game(self) -> None:
        super().begin_game()
        self.context.reset()

    def consume(self, board: chess.Board, token: SanToken) -> chess.Move:
        rank, move = self.ranker.rank(board, token, self.theta, self.context)
        self.cost.add(rank)
        self.context.advance(move)
        self.outcome.scored_moves += 1
        return move


@dataclass
class BatchResult:
    bits: int
    games: int
    moves: int
    custom_start_games: int
    failed_games: int

    @property
    def bytes_per_game(self) -> float:
        return self.bits / (8.0 * self.games) if self.games else 0.0


class BatchEvaluator:
    """Prices a batch of games under a given weight vector."""

    def __init__(self, ranker: MoveRanker, alphabet_size: int = RANK_ALPHABET_SIZE) -> None:
        self.ranker = ranker
        self.alphabet_size = alphabet_size

    def evaluate(self, batch: Union[CorpusBatch, Sequence[str]], theta: Sequence[float]) -> BatchResult:
        games = batch.games if isinstance(batch, CorpusBatch) else list(batch)
        theta = np.asarray(theta, dtype=np.float64).tolist()

        cost = RankCostModel(alphabet_size=self.alphabet_size)
        visitor = RankingVisitor(self.ranker, theta, cost)
        custom_start = 0
        failed = 0

        for text in games:
            cost.begin_game()
            outcome = chess.pgn.read_game(io.StringIO(text), Visitor=lambda: visitor)
            if outcome is None:
                continue
            if outcome.custom_start:
                custom_start += 1
            if outcome.error is not None:
                failed += 1

        if not games:
            logger.warning("Evaluating an empty batch")

        return BatchResult(
            bits=cost.bits(),
            games=cost.games,
            moves=cost.moves,
            custom_start_games=custom_start,
            failed_games=failed,
        )

    def loss(self, batch: Union[CorpusBatch, Sequence[str]], theta: Sequence[float]) -> float:
        """Average bytes per game, the quantity SPSA minimises."""
        return self.evaluate(batch, theta).bytes_per_game
