"""
Linear Move Ranker.

Scores every legal move of a position as ``theta . features(move)`` plus a
tiny square-index tie-break, then sorts descending. The played move's index
in that order is the symbol the cost model encodes.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import List, Optional, Sequence, Tuple, Union

import chess
import numpy as np

from rankcode.errors import DuplicateMoveMatch, MoveNotFound
from rankcode.features import FEATURES, extract_features, resolve_features
from rankcode.san import SanToken
from rankcode.tables import ProbabilityTables, load_tables

logger = logging.getLogger(__name__)

TIE_BREAK_SCALE = 0.001


def _ulp_key(x: float) -> int:
    """Maps a double onto a signed integer line where adjacent floats differ by 1."""
    bits = struct.unpack("<q", struct.pack("<d", x))[0]
    return bits if bits >= 0 else -(bits & 0x7FFFFFFFFFFFFFFF)


def approx_cmp(a: float, b: float, ulps: int = 1) -> int:
    """Three-way comparison treating values within ``ulps`` units in the last place as equal."""
    if a == b:
        return 0
    if abs(_ulp_key(a) - _ulp_key(b)) <= ulps:
        return 0
    return -1 if a < b else 1


@dataclass
class GameContext:
    """Per-game state carried between successive rank lookups."""
    last_dest: Optional[chess.Square] = None

    def reset(self) -> None:
        self.last_dest = None

    def advance(self, move: chess.Move) -> None:
        self.last_dest = move.to_square


@dataclass
class RankedOrder:
    """Legal moves of one position, most plausible first."""
    board: chess.Board
    entries: List[Tuple[chess.Move, float]] = field(default_factory=list)

    @property
    def moves(self) -> List[chess.Move]:
        return [move for move, _ in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def rank_of(self, played: Union[chess.Move, SanToken, str]) -> int:
        """
        Returns the 0-based rank of ``played``.

        ``played`` may be a move (compared by equality), a parsed SAN token
        or raw SAN text (both compared structurally against each candidate).
        """
        if isinstance(played, str):
            played = SanToken.parse(played)

        if isinstance(played, chess.Move):
            hits = [i for i, (move, _) in enumerate(self.entries) if move == played]
            notation = played.uci()
        else:
            hits = [i for i, (move, _) in enumerate(self.entries) if played.matches(self.board, move)]
            notation = played.notation

        if not hits:
            raise MoveNotFound(notation, self.board.fen())
        if len(hits) > 1:
            raise DuplicateMoveMatch(notation, self.board.fen(), matches=len(hits))
        return hits[0]


class MoveRanker:
    """
    Configurable linear move ranker.

    The feature list is fixed at construction; ``arity`` is the weight
    vector length every call must supply.
    """

    def __init__(
        self,
        tables: Optional[ProbabilityTables] = None,
        features: Union[str, Sequence[str]] = "full",
        tie_ulps: int = 1,
    ) -> None:
        self.tables = tables if tables is not None else load_tables()
        self.feature_names = resolve_features(features)
        self._feature_fns = [FEATURES[name] for name in self.feature_names]
        self.tie_ulps = tie_ulps

    @property
    def arity(self) -> int:
        return len(self.feature_names)

    def _check_theta(self, theta: Sequence[float]) -> Sequence[float]:
        if len(theta) != self.arity:
            raise ValueError(
                f"Weight vector has {len(theta)} entries, features {list(self.feature_names)} need {self.arity}"
            )
        return theta

    def score(
        self,
        board: chess.Board,
        move: chess.Move,
        theta: Sequence[float],
        context: Optional[GameContext] = None,
    ) -> float:
        last_dest = context.last_dest if context is not None else None
        feats = extract_features(board, move, self.tables, last_dest)

        total = 0.0
        for weight, fn in zip(theta, self._feature_fns):
            total += float(weight) * fn(feats)

        total += move.to_square * TIE_BREAK_SCALE
        total += move.from_square * TIE_BREAK_SCALE
        return total

    def order(
        self,
        board: chess.Board,
        theta: Sequence[float],
        context: Optional[GameContext] = None,
        moves: Optional[Sequence[chess.Move]] = None,
    ) -> RankedOrder:
        """Scores and sorts ``moves`` (default: all legal moves) descending."""
        theta = self._check_theta(np.asarray(theta, dtype=np.float64).tolist())
        candidates = list(board.legal_moves) if moves is None else list(moves)

        scored = [(move, self.score(board, move, theta, context)) for move in candidates]

        ulps = self.tie_ulps
        by_score_desc = cmp_to_key(lambda a, b: approx_cmp(b[1], a[1], ulps))
        return RankedOrder(board=board, entries=sorted(scored, key=by_score_desc))

    def rank(
        self,
        board: chess.Board,
        played: Union[chess.Move, SanToken, str],
        theta: Sequence[float],
        context: Optional[GameContext] = None,
    ) -> Tuple[int, chess.Move]:
        """Ranks the legal moves and locates ``played``; returns (rank, matched move)."""
        order = self.order(board, theta, context)
        idx = order.rank_of(played)
        return idx, order.entries[idx][0]
