"""
PGN Corpus Driver.

The corpus is mapped read-only and consumed strictly forward. Game
boundaries are found by ``chess.pgn.skip_game`` running over a line reader
that tracks the byte offset, so the cursor is an exact file position that
can be stored in a checkpoint and restored later.
"""

from __future__ import annotations

import logging
import mmap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Union

import chess.pgn

from config import DEFAULT_BATCH_SIZE
from rankcode.errors import CorpusExhausted, CorpusIOError

logger = logging.getLogger(__name__)

EXHAUSTION_POLICIES = ("wrap", "stop")


class PgnLineReader:
    """Minimal text handle over a mapped buffer, as consumed by ``chess.pgn``."""

    def __init__(self, buffer: mmap.mmap, offset: int = 0):
        self._buffer = buffer
        self._buffer.seek(offset)

    def readline(self) -> str:
        return self._buffer.readline().decode("utf-8", errors="replace")

    def tell(self) -> int:
        return self._buffer.tell()

    def seek(self, offset: int) -> None:
        self._buffer.seek(offset)


@dataclass
class CorpusCursor:
    offset: int = 0
    games_read: int = 0
    wraps: int = 0


@dataclass
class CorpusBatch:
    """Consecutive games handed to one loss evaluation."""
    games: List[str] = field(default_factory=list)
    start_offset: int = 0
    end_offset: int = 0

    def __len__(self) -> int:
        return len(self.games)


class CorpusDriver:
    """
    Owns the mapped corpus and the read cursor.

    Usage:
        with CorpusDriver("games.pgn") as corpus:
            batch = corpus.next_batch(200)
    """

    def __init__(self, path: Union[str, Path], on_exhausted: str = "wrap"):
        if on_exhausted not in EXHAUSTION_POLICIES:
            raise ValueError(f"on_exhausted must be one of {EXHAUSTION_POLICIES}, got {on_exhausted!r}")

        self.path = Path(path)
        self.on_exhausted = on_exhausted
        self.cursor = CorpusCursor()

        try:
            self._file = open(self.path, "rb")
        except OSError as e:
            raise CorpusIOError(f"Cannot open corpus {self.path}: {e}") from e

        try:
            self._buffer = mmap.mmap(self._file.fileno(), 0, access=mmap.ACCESS_READ)
        except (OSError, ValueError) as e:
            self._file.close()
            raise CorpusIOError(f"Cannot map corpus {self.path}: {e}") from e

        if hasattr(mmap, "MADV_SEQUENTIAL"):
            self._buffer.madvise(mmap.MADV_SEQUENTIAL)

        self._reader = PgnLineReader(self._buffer)
        self._games_since_rewind = 0
        logger.info(f"Corpus mapped: {self.path} ({len(self._buffer) / (1024**2):.1f}MB)")

    def __enter__(self) -> "CorpusDriver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if not self._buffer.closed:
            self._buffer.close()
        self._file.close()

    @property
    def size(self) -> int:
        return len(self._buffer)

    def seek(self, offset: int) -> None:
        """Restores a cursor position, e.g. from a checkpoint."""
        if not 0 <= offset <= self.size:
            raise ValueError(f"Offset {offset} outside corpus of {self.size} bytes")
        self.cursor.offset = offset
        self._reader.seek(offset)

    def _read_game(self) -> Optional[str]:
        start = self._reader.tell()
        if not chess.pgn.skip_game(self._reader):
            return None
        end = self._reader.tell()

        self.cursor.offset = end
        self.cursor.games_read += 1
        self._games_since_rewind += 1
        return self._buffer[start:end].decode("utf-8", errors="replace")

    def _rewind(self) -> None:
        if self._games_since_rewind == 0 and self.cursor.offset == 0:
            raise CorpusIOError(f"Corpus {self.path} contains no games")
        self.cursor.wraps += 1
        self._games_since_rewind = 0
        self.seek(0)
        logger.info(f"Corpus exhausted after {self.cursor.games_read:,} games, wrapping (pass {self.cursor.wraps + 1})")

    def next_batch(self, batch_size: int = DEFAULT_BATCH_SIZE) -> CorpusBatch:
        """
        Reads the next ``batch_size`` games and advances the cursor past them.

        With ``wrap`` the corpus restarts from the beginning when it runs out.
        With ``stop`` a short final batch is returned and the following call
        raises ``CorpusExhausted``.
        """
        batch = CorpusBatch(start_offset=self.cursor.offset)

        while len(batch.games) < batch_size:
            text = self._read_game()
            if text is None:
                if self.on_exhausted == "stop":
                    if not batch.games:
                        raise CorpusExhausted(f"No games left in {self.path} after {self.cursor.games_read:,}")
                    break
                self._rewind()
                continue
            batch.games.append(text)

        batch.end_offset = self.cursor.offset
        return batch

    def iter_games(self, limit: Optional[int] = None) -> Iterator[str]:
        """Yields games from the cursor onward, without wrapping."""
        count = 0
        while limit is None or count < limit:
            text = self._read_game()
            if text is None:
                return
            count += 1
            yield text
