"""
Rank Cost Model.

Collects the ranks of one batch into a histogram and prices them with a
Huffman code built for the add-one smoothed frequencies. Smoothing gives
every symbol a positive weight, so even ranks never seen in the batch get a
finite code length and an empty batch still yields a valid code.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from config import MAX_LEGAL_MOVES, RANK_ALPHABET_SIZE

logger = logging.getLogger(__name__)


class CodeNode:
    """Huffman tree node. Leaves carry a symbol, internal nodes two children."""
    __slots__ = ("weight", "symbol", "left", "right")

    def __init__(
        self,
        weight: int,
        symbol: Optional[int] = None,
        left: Optional["CodeNode"] = None,
        right: Optional["CodeNode"] = None,
    ):
        self.weight = weight
        self.symbol = symbol
        self.left = left
        self.right = right

    def is_leaf(self) -> bool:
        return self.symbol is not None


@dataclass
class PrefixCode:
    """Optimal prefix code: per-symbol bit strings, their lengths and the tree."""
    root: CodeNode
    book: Dict[int, str]
    lengths: np.ndarray

    def encode(self, symbols: Iterable[int]) -> str:
        return "".join(self.book[s] for s in symbols)

    def decode(self, bits: str) -> List[int]:
        out = []
        if self.root.is_leaf():
            # Single-symbol alphabet: every symbol has the empty code
            return out
        node = self.root
        for bit in bits:
            node = node.left if bit == "0" else node.right
            if node.is_leaf():
                out.append(node.symbol)
                node = self.root
        if node is not self.root:
            raise ValueError("Bit string ends inside a code word")
        return out


def build_prefix_code(weights: Sequence[int]) -> PrefixCode:
    """
    Builds a Huffman code for ``weights`` (one strictly positive weight per symbol).

    Ties are broken by insertion order, so the same weights always produce
    the same code.
    """
    if len(weights) == 0:
        raise ValueError("Cannot build a code for an empty alphabet")

    order = itertools.count()
    heap = []
    for symbol, weight in enumerate(weights):
        if weight <= 0:
            raise ValueError(f"Symbol {symbol} has non-positive weight {weight}")
        heapq.heappush(heap, (int(weight), next(order), CodeNode(int(weight), symbol=symbol)))

    while len(heap) > 1:
        w1, _, a = heapq.heappop(heap)
        w2, _, b = heapq.heappop(heap)
        heapq.heappush(heap, (w1 + w2, next(order), CodeNode(w1 + w2, left=a, right=b)))

    root = heap[0][2]
    book: Dict[int, str] = {}
    lengths = np.zeros(len(weights), dtype=np.int64)

    stack = [(root, "")]
    while stack:
        node, prefix = stack.pop()
        if node.is_leaf():
            book[node.symbol] = prefix
            lengths[node.symbol] = len(prefix)
        else:
            stack.append((node.left, prefix + "0"))
            stack.append((node.right, prefix + "1"))

    return PrefixCode(root=root, book=book, lengths=lengths)


class RankCostModel:
    """
    Batch-local rank histogram and its Huffman cost.

    A fresh instance is created for every loss evaluation.
    """

    def __init__(self, alphabet_size: int = RANK_ALPHABET_SIZE, move_ceiling: int = MAX_LEGAL_MOVES):
        # Every possible rank must have its own symbol
        assert alphabet_size > move_ceiling, (
            f"Rank alphabet of {alphabet_size} cannot hold {move_ceiling} legal moves"
        )
        self.alphabet_size = alphabet_size
        self.counts = np.zeros(alphabet_size, dtype=np.int64)
        self.games = 0

    @classmethod
    def from_counts(cls, counts: Sequence[int], games: int = 0) -> "RankCostModel":
        """Wraps an existing histogram; the alphabet is the histogram length."""
        model = cls(alphabet_size=len(counts), move_ceiling=len(counts) - 1)
        model.counts[:] = np.asarray(counts, dtype=np.int64)
        model.games = games
        return model

    def begin_game(self) -> None:
        self.games += 1

    def add(self, rank: int) -> None:
        assert 0 <= rank < self.alphabet_size, f"Rank {rank} outside alphabet [0, {self.alphabet_size})"
        self.counts[rank] += 1

    @property
    def moves(self) -> int:
        return int(self.counts.sum())

    def code(self) -> PrefixCode:
        return build_prefix_code((self.counts + 1).tolist())

    def bits(self) -> int:
        """Total code length of all observed ranks under the smoothed code."""
        code = self.code()
        return int((code.lengths * self.counts).sum())

    def bytes_per_game(self) -> float:
        if self.games == 0:
            logger.debug("Empty batch, reporting zero cost")
            return 0.0
        return self.bits() / (8.0 * self.games)
