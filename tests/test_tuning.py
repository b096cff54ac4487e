"""
Tuning loop tests: batch sharing, history, checkpoints.

Usage:
    pytest tests/test_tuning.py -v
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import numpy as np
import pytest

# Inject project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import CorpusConfig, RankerConfig, SPSAConfig, TuneConfig
from rankcode.corpus import CorpusDriver
from rankcode.evaluator import BatchEvaluator
from rankcode.ranker import MoveRanker
from rankcode.tables import load_tables
from rankcode.tuning import Tuner, make_paired_loss

# Configure test logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("TEST")

GAMES = [
    '[Event "1"]\n\n1. e4 e5 2. Nf3 Nc6 3. Bb5 a6 4. Ba4 Nf6 5. O-O Be7 *\n\n',
    '[Event "2"]\n\n1. d4 Nf6 2. c4 e6 3. Nc3 Bb4 4. Qc2 O-O *\n\n',
    '[Event "3"]\n\n1. c4 e5 2. Nc3 Nf6 3. g3 d5 4. cxd5 Nxd5 *\n\n',
    '[Event "4"]\n\n1. e4 c5 2. Nf3 d6 3. d4 cxd4 4. Nxd4 Nf6 5. Nc3 a6 *\n\n',
]


@pytest.fixture
def corpus_path(tmp_path):
    path = tmp_path / "games.pgn"
    path.write_text("".join(GAMES))
    return path


def small_config(**overrides) -> TuneConfig:
    cfg = TuneConfig(
        iterations=3,
        ranker=RankerConfig(feature_preset="compact"),
        spsa=SPSAConfig(ensemble_size=2, seed=5),
        corpus=CorpusConfig(batch_size=2),
    )
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


class TestPairedLoss:

    @pytest.mark.parametrize("share,expected_games", [(True, 1), (False, 2)])
    def test_batches_consumed_per_pair(self, corpus_path, share, expected_games):
        evaluator = BatchEvaluator(MoveRanker(load_tables(), features="compact"))
        with CorpusDriver(corpus_path) as corpus:
            loss = make_paired_loss(corpus, evaluator, batch_size=1, share_batch=share)
            j_plus, j_minus = loss(np.ones(4), -np.ones(4))
            assert corpus.cursor.games_read == expected_games
        assert np.isfinite(j_plus) and np.isfinite(j_minus)

    def test_shared_batch_identical_weights_give_equal_losses(self, corpus_path):
        evaluator = BatchEvaluator(MoveRanker(load_tables(), features="compact"))
        with CorpusDriver(corpus_path) as corpus:
            loss = make_paired_loss(corpus, evaluator, batch_size=2, share_batch=True)
            theta = np.array([1.0, 0.5, 2.0, 1.0])
            j_plus, j_minus = loss(theta, theta.copy())
        assert j_plus == j_minus


class TestTuner:

    def test_run_records_every_step(self, corpus_path, tmp_path):
        history = tmp_path / "history.jsonl"
        cfg = small_config(history_path=history)
        with CorpusDriver(corpus_path) as corpus:
            records = Tuner(cfg, corpus).run(progress=False)

        assert [r.iteration for r in records] == [0, 1, 2]
        lines = history.read_text().splitlines()
        assert len(lines) == 3
        assert json.loads(lines[-1])["iteration"] == 2
        assert len(json.loads(lines[0])["theta"]) == 4

    def test_checkpoint_resume(self, corpus_path, tmp_path):
        ckpt = tmp_path / "spsa.json"
        cfg = small_config(checkpoint_path=ckpt, checkpoint_every=1)

        with CorpusDriver(corpus_path) as corpus:
            straight = Tuner(small_config(iterations=4), corpus)
            straight.run(progress=False)

        with CorpusDriver(corpus_path) as corpus:
            Tuner(small_config(checkpoint_path=ckpt, iterations=2), corpus).run(progress=False)

        state = json.loads(ckpt.read_text())
        assert state["optimizer"]["k"] == 2.0
        assert state["features"] == ["material", "pawn_threat", "dest_prob", "dest_src_prob"]

        with CorpusDriver(corpus_path) as corpus:
            resumed = Tuner(cfg, corpus)
            resumed.load_checkpoint(ckpt)
            resumed.run(iterations=2, progress=False)

        assert np.allclose(resumed.theta, straight.theta)

    def test_feature_mismatch_rejected(self, corpus_path, tmp_path):
        ckpt = tmp_path / "spsa.json"
        with CorpusDriver(corpus_path) as corpus:
            Tuner(small_config(checkpoint_path=ckpt, iterations=1), corpus).run(progress=False)

        cfg = small_config()
        cfg.ranker = RankerConfig(feature_preset="full")
        with CorpusDriver(corpus_path) as corpus:
            with pytest.raises(ValueError):
                Tuner(cfg, corpus).load_checkpoint(ckpt)

    def test_exhausted_corpus_ends_run(self, corpus_path):
        cfg = small_config(iterations=50)
        cfg.corpus = CorpusConfig(batch_size=2, on_exhausted="stop")
        with CorpusDriver(corpus_path, on_exhausted="stop") as corpus:
            records = Tuner(cfg, corpus).run(progress=False)
        # 4 games, 2 per shared pair, 2 pairs per step
        assert len(records) == 1

    def test_stop_request_honoured(self, corpus_path):
        with CorpusDriver(corpus_path) as corpus:
            tuner = Tuner(small_config(iterations=10), corpus)
            tuner.stop_requested = True
            assert tuner.run(progress=False) == []
