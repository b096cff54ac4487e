#!/usr/bin/env python3
"""
Reports the rank coding cost of a fixed weight vector.

    python scripts/evaluate_weights.py games.pgn --theta 6.380 3.631 4.146 3.555 2.823 0 --games 100000
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rankcode.corpus import CorpusDriver
from rankcode.errors import CorpusIOError
from rankcode.evaluator import BatchEvaluator
from rankcode.log import setup_logging
from rankcode.ranker import MoveRanker
from rankcode.tables import load_tables

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Evaluate move-ranking weights")
    parser.add_argument("corpus", type=Path, help="PGN corpus file")
    parser.add_argument("--theta", type=float, nargs="+", required=True, help="Weights, one per feature")
    parser.add_argument("--features", default="full", help="Preset (compact|castling|full) or comma list")
    parser.add_argument("--tables", type=Path, default=None, help="Probability tables JSON")
    parser.add_argument("--games", type=int, default=100_000, help="Games to evaluate")
    args = parser.parse_args()

    setup_logging()
    ranker = MoveRanker(load_tables(args.tables), features=args.features)
    if len(args.theta) != ranker.arity:
        logger.critical(f"--theta needs {ranker.arity} values for {', '.join(ranker.feature_names)}")
        sys.exit(1)

    start_time = time.perf_counter()
    try:
        with CorpusDriver(args.corpus, on_exhausted="stop") as corpus:
            games = list(corpus.iter_games(args.games))
    except CorpusIOError as e:
        logger.critical(str(e))
        sys.exit(1)

    result = BatchEvaluator(ranker).evaluate(games, args.theta)
    logger.info(
        f"{result.bytes_per_game:.3f} bytes over {result.games:,} games "
        f"({result.moves:,} moves, {result.custom_start_games} custom starts, {result.failed_games} truncated)"
    )
    logger.info(f"Total time: {time.perf_counter() - start_time:.2f}s")


if __name__ == "__main__":
    main()
