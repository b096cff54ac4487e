#!/usr/bin/env python3
"""SPSA weight search for the RankCode move ranker.

Usage
-----
    python tune.py games.pgn
    python tune.py games.pgn --iterations 500 --features compact
    python tune.py games.pgn --checkpoint runs/spsa.json --history runs/history.jsonl
    python tune.py games.pgn --checkpoint runs/spsa.json --resume

Each step prints ``k=NNN bytes=X.XX theta=[...]`` where ``bytes`` is the
average Huffman-coded rank cost per game over the step's evaluations.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

from config import CorpusConfig, RankerConfig, SPSAConfig, TuneConfig
from rankcode.corpus import CorpusDriver
from rankcode.errors import CorpusIOError
from rankcode.log import setup_logging
from rankcode.tuning import Tuner

logger = logging.getLogger(__name__)

_TUNER: Tuner | None = None


def _signal_handler(signum: int, frame: object) -> None:
    if _TUNER is None or _TUNER.stop_requested:
        logger.warning("Force quitting...")
        sys.exit(1)
    _TUNER.stop_requested = True
    logger.warning("Ctrl+C, finishing current step, saving checkpoint (press again to force quit)")


def build_config(args: argparse.Namespace) -> TuneConfig:
    return TuneConfig(
        iterations=args.iterations,
        ranker=RankerConfig(feature_preset=args.features, tables_path=args.tables),
        spsa=SPSAConfig(seed=args.seed, theta=args.theta),
        corpus=CorpusConfig(
            batch_size=args.batch_size,
            on_exhausted=args.on_exhausted,
            share_batch=not args.disjoint_batches,
        ),
        checkpoint_path=args.checkpoint,
        history_path=args.history,
    )


def main() -> None:
    global _TUNER

    parser = argparse.ArgumentParser(description="Tune move-ranking weights with SPSA")
    parser.add_argument("corpus", type=Path, help="PGN corpus file")
    parser.add_argument("--iterations", type=int, default=1000, help="SPSA steps")
    parser.add_argument("--batch-size", type=int, default=200, help="Games per loss evaluation")
    parser.add_argument("--features", default="full", help="Preset (compact|castling|full) or comma list")
    parser.add_argument("--tables", type=Path, default=None, help="Probability tables JSON")
    parser.add_argument("--theta", type=float, nargs="+", default=None, help="Initial weights")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--on-exhausted", choices=["wrap", "stop"], default="wrap")
    parser.add_argument("--disjoint-batches", action="store_true",
                        help="Give theta+ and theta- separate batches")
    parser.add_argument("--checkpoint", type=Path, default=None, help="Optimizer checkpoint JSON")
    parser.add_argument("--resume", action="store_true", help="Resume from --checkpoint")
    parser.add_argument("--history", type=Path, default=None, help="Append step records (JSON lines)")
    parser.add_argument("--no-progress", action="store_true")
    args = parser.parse_args()

    setup_logging()
    cfg = build_config(args)

    logger.info(f"reading {args.corpus} ...")
    try:
        corpus = CorpusDriver(args.corpus, on_exhausted=cfg.corpus.on_exhausted)
    except CorpusIOError as e:
        logger.critical(str(e))
        sys.exit(1)

    with corpus:
        try:
            _TUNER = Tuner(cfg, corpus)
        except ValueError as e:
            logger.critical(str(e))
            sys.exit(1)

        if args.resume:
            if cfg.checkpoint_path is None or not cfg.checkpoint_path.exists():
                logger.warning("Resume requested but no checkpoint found, starting fresh")
            else:
                _TUNER.load_checkpoint(cfg.checkpoint_path)

        signal.signal(signal.SIGINT, _signal_handler)
        try:
            _TUNER.run(progress=not args.no_progress)
        except CorpusIOError as e:
            logger.critical(str(e))
            sys.exit(1)


if __name__ == "__main__":
    main()
