"""
Structural SAN matching tests.

Usage:
    pytest tests/test_san.py -v
"""

import sys
from pathlib import Path

import chess
import pytest

# Inject project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rankcode.errors import MoveNotFound
from rankcode.san import SanToken


def matching(board: chess.Board, san: str):
    token = SanToken.parse(san)
    return [m for m in board.legal_moves if token.matches(board, m)]


class TestParse:

    def test_pawn_push(self):
        token = SanToken.parse("e4")
        assert token.role == chess.PAWN
        assert token.to_square == chess.E4
        assert not token.capture

    def test_piece_capture_with_disambiguation(self):
        token = SanToken.parse("Nbxd2+")
        assert token.role == chess.KNIGHT
        assert token.from_file == 1
        assert token.from_rank is None
        assert token.capture

    def test_promotion(self):
        assert SanToken.parse("e8=Q").promotion == chess.QUEEN
        assert SanToken.parse("exf1N#").promotion == chess.KNIGHT

    @pytest.mark.parametrize("san,side", [("O-O", "K"), ("O-O-O", "Q"), ("0-0+", "K"), ("0-0-0", "Q")])
    def test_castling(self, san, side):
        assert SanToken.parse(san).castle == side

    @pytest.mark.parametrize("san", ["--", "Zf3", "e9", ""])
    def test_garbage_is_not_found(self, san):
        with pytest.raises(MoveNotFound):
            SanToken.parse(san)


class TestMatches:

    def test_single_match_in_start_position(self):
        board = chess.Board()
        assert matching(board, "Nf3") == [chess.Move.from_uci("g1f3")]
        assert matching(board, "e4") == [chess.Move.from_uci("e2e4")]

    def test_capture_marker_is_structural(self):
        board = chess.Board()
        board.push_san("e4")
        board.push_san("d5")
        assert matching(board, "exd5") == [chess.Move.from_uci("e4d5")]
        # Missing capture marker does not match the capture
        assert matching(board, "ed5") == []

    def test_ambiguous_token_matches_twice(self):
        board = chess.Board()
        for san in ["d4", "d5", "Nf3", "Nf6"]:
            board.push_san(san)
        assert len(matching(board, "Nd2")) == 2
        assert matching(board, "Nbd2") == [chess.Move.from_uci("b1d2")]

    def test_castling_matches_king_move(self):
        board = chess.Board("r3k2r/8/8/8/8/8/8/R3K2R w KQkq - 0 1")
        assert matching(board, "O-O") == [board.parse_san("O-O")]
        assert matching(board, "O-O-O") == [board.parse_san("O-O-O")]
        assert matching(board, "Kg1") == []
