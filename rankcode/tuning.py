"""
Tuning loop: corpus batches -> ranker/cost model -> SPSA.

The two evaluations of an ensemble member (theta + delta and theta - delta)
share one batch by default, so their difference reflects the weights rather
than the games drawn. ``share_batch=False`` gives each evaluation its own
batch as a purely forward-moving cursor would.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from config import TuneConfig
from rankcode.corpus import CorpusDriver
from rankcode.errors import CorpusExhausted
from rankcode.evaluator import BatchEvaluator
from rankcode.ranker import MoveRanker
from rankcode.spsa import SPSA, PairedLoss, StepRecord
from rankcode.tables import load_tables

logger = logging.getLogger(__name__)


def make_paired_loss(
    corpus: CorpusDriver,
    evaluator: BatchEvaluator,
    batch_size: int,
    share_batch: bool = True,
) -> PairedLoss:
    def paired(theta_plus: np.ndarray, theta_minus: np.ndarray) -> Tuple[float, float]:
        if share_batch:
            batch = corpus.next_batch(batch_size)
            return evaluator.loss(batch, theta_plus), evaluator.loss(batch, theta_minus)
        j_plus = evaluator.loss(corpus.next_batch(batch_size), theta_plus)
        j_minus = evaluator.loss(corpus.next_batch(batch_size), theta_minus)
        return j_plus, j_minus

    return paired


class Tuner:
    """Owns the ranker, the evaluator and the optimizer for one run."""

    def __init__(self, cfg: TuneConfig, corpus: CorpusDriver, ranker: Optional[MoveRanker] = None) -> None:
        self.cfg = cfg
        self.corpus = corpus
        self.ranker = ranker or MoveRanker(
            load_tables(cfg.ranker.tables_path),
            features=cfg.ranker.feature_preset,
            tie_ulps=cfg.ranker.tie_ulps,
        )
        self.evaluator = BatchEvaluator(self.ranker, alphabet_size=cfg.ranker.alphabet_size)
        self.optimizer = SPSA(cfg.spsa, arity=self.ranker.arity)
        self.loss = make_paired_loss(
            corpus, self.evaluator, cfg.corpus.batch_size, share_batch=cfg.corpus.share_batch,
        )
        self.history: List[StepRecord] = []
        self.stop_requested = False

        logger.info(f"Features ({self.ranker.arity}): {', '.join(self.ranker.feature_names)}")

    @property
    def theta(self) -> np.ndarray:
        return self.optimizer.theta

    # -------------------------------------------------------------------------
    # Checkpointing
    # -------------------------------------------------------------------------

    def save_checkpoint(self, path: Path) -> None:
        state = {
            "features": list(self.ranker.feature_names),
            "optimizer": self.optimizer.state_dict(),
            "corpus": {
                "path": str(self.corpus.path),
                "offset": self.corpus.cursor.offset,
                "games_read": self.corpus.cursor.games_read,
                "wraps": self.corpus.cursor.wraps,
            },
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(state, f, indent=2)
        tmp.replace(path)

    def load_checkpoint(self, path: Path) -> None:
        with open(path) as f:
            state = json.load(f)

        if list(state["features"]) != list(self.ranker.feature_names):
            raise ValueError(
                f"Checkpoint features {state['features']} differ from configured {list(self.ranker.feature_names)}"
            )

        self.optimizer.load_state_dict(state["optimizer"])
        cursor = state["corpus"]
        self.corpus.seek(cursor["offset"])
        self.corpus.cursor.games_read = cursor["games_read"]
        self.corpus.cursor.wraps = cursor["wraps"]
        logger.info(f"Resumed at k={int(self.optimizer.k)}, corpus offset {cursor['offset']:,}")

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    def _append_history(self, record: StepRecord) -> None:
        if self.cfg.history_path is None:
            return
        self.cfg.history_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.cfg.history_path, "a") as f:
            f.write(json.dumps(record.to_dict()) + "\n")

    def run(self, iterations: Optional[int] = None, progress: bool = True) -> List[StepRecord]:
        """Runs ``iterations`` SPSA steps (default: the configured budget)."""
        iterations = self.cfg.iterations if iterations is None else iterations
        start = time.perf_counter()

        pbar = tqdm(range(iterations), desc="SPSA", unit="step", disable=not progress, dynamic_ncols=True)
        for _ in pbar:
            if self.stop_requested:
                logger.warning("Stop requested, ending run early")
                break

            try:
                record = self.optimizer.step(self.loss)
            except CorpusExhausted as e:
                logger.warning(f"{e}; ending run")
                break

            self.history.append(record)
            self._append_history(record)
            pbar.set_postfix_str(f"bytes={record.loss:.2f}", refresh=False)

            if self.cfg.checkpoint_path and int(self.optimizer.k) % self.cfg.checkpoint_every == 0:
                self.save_checkpoint(self.cfg.checkpoint_path)

        pbar.close()
        if self.cfg.checkpoint_path:
            self.save_checkpoint(self.cfg.checkpoint_path)

        elapsed = time.perf_counter() - start
        logger.info(f"{len(self.history)} steps in {elapsed:.1f}s, theta=[{', '.join(f'{v:.3f}' for v in self.theta)}]")
        return self.history
