"""
Rank cost model tests.

Usage:
    pytest tests/test_cost.py -v
"""

from __future__ import annotations

import logging
import math
import sys
from pathlib import Path

import numpy as np
import pytest

# Inject project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import MAX_LEGAL_MOVES, RANK_ALPHABET_SIZE
from rankcode.cost import RankCostModel, build_prefix_code

# Configure test logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("TEST")


class TestPrefixCode:
    """Huffman construction."""

    def test_hand_built_code(self):
        # Smoothed weights 101, 51, 26, 2, 2:
        #   2+2=4, 4+26=30, 30+51=81, 81+101=182  ->  lengths 1, 2, 3, 4, 4
        code = build_prefix_code([101, 51, 26, 2, 2])
        assert code.lengths.tolist() == [1, 2, 3, 4, 4]

    def test_book_is_prefix_free(self):
        code = build_prefix_code([5, 9, 12, 13, 16, 45])
        words = list(code.book.values())
        for i, a in enumerate(words):
            for j, b in enumerate(words):
                if i != j:
                    assert not b.startswith(a), f"{a} is a prefix of {b}"
        assert [len(code.book[s]) for s in range(6)] == code.lengths.tolist()

    def test_encode_decode(self):
        code = build_prefix_code([10, 1, 3, 7])
        ranks = [0, 3, 2, 0, 1, 0]
        bits = code.encode(ranks)
        assert len(bits) == sum(int(code.lengths[r]) for r in ranks)
        assert code.decode(bits) == ranks

    def test_rejects_zero_weight(self):
        with pytest.raises(ValueError):
            build_prefix_code([3, 0, 1])


class TestRankCostModel:
    """Batch histogram pricing."""

    def test_reference_histogram_bits(self):
        model = RankCostModel.from_counts([100, 50, 25, 1, 1], games=1)
        assert model.bits() == 100 * 1 + 50 * 2 + 25 * 3 + 1 * 4 + 1 * 4  # 283

    def test_counts_sum_to_moves(self):
        model = RankCostModel()
        for rank in [0, 0, 1, 5, 0, 17]:
            model.add(rank)
        assert model.moves == 6
        assert model.counts[0] == 3

    def test_every_symbol_gets_finite_code(self):
        model = RankCostModel()
        model.add(0)
        lengths = model.code().lengths
        assert lengths.shape == (RANK_ALPHABET_SIZE,)
        assert (lengths > 0).all()

    @pytest.mark.parametrize("counts", [
        [1000 // (2 ** i) for i in range(10)],
        [1] * RANK_ALPHABET_SIZE,
        [0, 0, 0, 7, 0, 3],
    ])
    def test_bits_bounded(self, counts):
        model = RankCostModel()
        for rank, n in enumerate(counts):
            model.counts[rank] = n
        n_moves = model.moves
        bound = n_moves * math.ceil(math.log2(RANK_ALPHABET_SIZE + 1))
        assert 0 <= model.bits() <= bound

    def test_empty_batch_is_not_an_error(self):
        model = RankCostModel()
        assert model.bits() == 0
        assert model.bytes_per_game() == 0.0

        model.begin_game()
        model.begin_game()
        assert model.bytes_per_game() == 0.0

    def test_bytes_per_game(self):
        model = RankCostModel.from_counts([100, 50, 25, 1, 1], games=2)
        assert model.bytes_per_game() == pytest.approx(283 / 16)

    def test_alphabet_must_exceed_move_ceiling(self):
        with pytest.raises(AssertionError):
            RankCostModel(alphabet_size=MAX_LEGAL_MOVES)

    def test_rank_outside_alphabet(self):
        model = RankCostModel()
        with pytest.raises(AssertionError):
            model.add(RANK_ALPHABET_SIZE)
        with pytest.raises(AssertionError):
            model.add(-1)

    def test_histogram_is_batch_local(self):
        a = RankCostModel()
        a.add(3)
        b = RankCostModel()
        assert b.moves == 0
        assert np.array_equal(b.counts, np.zeros(RANK_ALPHABET_SIZE, dtype=np.int64))
