"""
Move Features for the linear ranker.

Each candidate move is reduced to a ``MoveFeatures`` record once; named
feature functions then map that record to the scalar multiplied by the
matching weight. A feature preset is just an ordered tuple of names, so the
weight arity follows from the preset chosen at setup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

import chess

from rankcode.tables import ProbabilityTables

# Captured-role values (King is never captured in legal play)
ROLE_VALUES = {
    chess.PAWN: 1.0,
    chess.KNIGHT: 3.0,
    chess.BISHOP: 3.0,
    chess.ROOK: 3.0,
    chess.QUEEN: 9.0,
    chess.KING: 1000.0,
}

PROMOTION_VALUES = {
    chess.KNIGHT: 2.0,
    chess.BISHOP: 1.0,
    chess.ROOK: 1.0,
    chess.QUEEN: 5.0,
}

TABLE_SCALE = 0.005      # Per-mille -> score units
CASTLE_BONUS = 50.0


@dataclass(frozen=True)
class MoveFeatures:
    """Scoring inputs of one candidate move."""
    capture_value: float
    promotion_value: float
    role_value: float
    pawn_attacked: float       # 1.0 if an enemy pawn covers the destination
    dest_prob: float
    src_prob: float
    is_castle: bool
    last_dest_distance: float  # Chebyshev distance, 0 without history


def pawn_attacked(board: chess.Board, square: chess.Square) -> bool:
    """True if a pawn of the side not to move attacks ``square``."""
    them = board.occupied_co[not board.turn]
    return bool(chess.BB_PAWN_ATTACKS[board.turn][square] & board.pawns & them)


def extract_features(
    board: chess.Board,
    move: chess.Move,
    tables: ProbabilityTables,
    last_dest: Optional[chess.Square] = None,
) -> MoveFeatures:
    turn = board.turn
    role = board.piece_type_at(move.from_square)

    if board.is_en_passant(move):
        captured = chess.PAWN
    else:
        captured = board.piece_type_at(move.to_square) if board.is_capture(move) else None

    return MoveFeatures(
        capture_value=ROLE_VALUES[captured] if captured else 0.0,
        promotion_value=PROMOTION_VALUES.get(move.promotion, 0.0) if move.promotion else 0.0,
        role_value=ROLE_VALUES[role],
        pawn_attacked=1.0 if pawn_attacked(board, move.to_square) else 0.0,
        dest_prob=tables.dest_value(turn, role, move.to_square) * TABLE_SCALE,
        src_prob=tables.src_value(turn, role, move.from_square) * TABLE_SCALE,
        is_castle=board.is_castling(move),
        last_dest_distance=(
            float(chess.square_distance(move.to_square, last_dest)) if last_dest is not None else 0.0
        ),
    )


# ---------------------------------------------------------------------------
# Feature Registry
# ---------------------------------------------------------------------------

FeatureFn = Callable[[MoveFeatures], float]

FEATURES: Dict[str, FeatureFn] = {
    "material": lambda f: f.capture_value + f.promotion_value,
    "pawn_threat": lambda f: f.pawn_attacked * (0.5 - f.role_value),
    "dest_prob": lambda f: f.dest_prob,
    "dest_src_prob": lambda f: f.dest_prob * f.src_prob,
    "castle": lambda f: CASTLE_BONUS if f.is_castle else 0.0,
    "last_dest_distance": lambda f: f.last_dest_distance * f.last_dest_distance,
}

PRESETS: Dict[str, Tuple[str, ...]] = {
    "compact": ("material", "pawn_threat", "dest_prob", "dest_src_prob"),
    "castling": ("material", "pawn_threat", "dest_prob", "dest_src_prob", "castle"),
    "full": ("material", "pawn_threat", "dest_prob", "dest_src_prob", "castle", "last_dest_distance"),
}


def resolve_features(selection: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    """Turns a preset name, a comma separated list or a sequence into feature names."""
    if isinstance(selection, str):
        if selection in PRESETS:
            return PRESETS[selection]
        names = tuple(name.strip() for name in selection.split(",") if name.strip())
    else:
        names = tuple(selection)

    unknown = [name for name in names if name not in FEATURES]
    if unknown:
        raise ValueError(f"Unknown feature(s) {unknown}; known: {sorted(FEATURES)} or presets {sorted(PRESETS)}")
    if not names:
        raise ValueError("Feature set is empty")
    return names
