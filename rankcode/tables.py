"""
Empirical move probability tables.

Two (6, 64) per-mille tables indexed by ``(piece_type - 1, square)``:

- ``dest``: how often a legal move of that role to that square was played.
- ``src``:  the same statistic keyed on the origin square.

Squares are stored from Black's point of view; lookups for White mirror the
square vertically so that one table serves both sides. Tables are produced by
``scripts/build_tables.py`` and injected into the ranker, never mutated.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import chess
import numpy as np

from rankcode.errors import TableFormatError

logger = logging.getLogger(__name__)

DEFAULT_TABLES_PATH = Path(__file__).resolve().parent / "data" / "move_tables.json"
TABLE_SHAPE = (6, 64)


def _frozen(values, name: str) -> np.ndarray:
    try:
        arr = np.asarray(values, dtype=np.uint16)
    except (TypeError, ValueError, OverflowError) as e:
        raise TableFormatError(f"{name} table is not numeric: {e}") from e
    if arr.shape != TABLE_SHAPE:
        raise TableFormatError(f"{name} table has shape {arr.shape}, expected {TABLE_SHAPE}")
    arr = arr.copy()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ProbabilityTables:
    """Immutable destination/source tables."""
    dest: np.ndarray
    src: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "dest", _frozen(self.dest, "dest"))
        object.__setattr__(self, "src", _frozen(self.src, "src"))

    @staticmethod
    def _index(turn: chess.Color, square: chess.Square) -> int:
        return chess.square_mirror(square) if turn == chess.WHITE else square

    def dest_value(self, turn: chess.Color, piece_type: chess.PieceType, square: chess.Square) -> int:
        return int(self.dest[piece_type - 1, self._index(turn, square)])

    def src_value(self, turn: chess.Color, piece_type: chess.PieceType, square: chess.Square) -> int:
        return int(self.src[piece_type - 1, self._index(turn, square)])

    def to_dict(self) -> dict:
        return {
            "format": "per-mille",
            "dest": self.dest.tolist(),
            "src": self.src.tolist(),
        }

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=1)
        logger.info(f"Tables written: {path}")


def load_tables(path: Optional[Union[str, Path]] = None) -> ProbabilityTables:
    """Loads tables from JSON; ``None`` selects the bundled defaults."""
    path = Path(path) if path else DEFAULT_TABLES_PATH
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise TableFormatError(f"{path}: invalid JSON ({e})") from e

    if not isinstance(data, dict) or "dest" not in data or "src" not in data:
        raise TableFormatError(f"{path}: expected an object with 'dest' and 'src'")

    tables = ProbabilityTables(dest=data["dest"], src=data["src"])
    logger.debug(f"Loaded probability tables from {path}")
    return tables
