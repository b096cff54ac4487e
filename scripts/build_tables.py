#!/usr/bin/env python3
"""
Builds the destination/source probability tables from a PGN corpus.

    python scripts/build_tables.py games.pgn -o tables.json --games 1000000
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
from rankcode.log import setup_logging
from rankcode.movefreq import count_frequencies

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Move frequency analysis")
    parser.add_argument("corpus", type=Path, help="PGN corpus file")
    parser.add_argument("--output", "-o", type=Path, default=Path("tables.json"), help="Output tables JSON")
    parser.add_argument("--games", type=int, default=1_000_000, help="Maximum games to read")
    args = parser.parse_args()

    setup_logging()
    start_time = time.perf_counter()

    try:
        with CorpusDriver(args.corpus, on_exhausted="stop") as corpus:
            counter = count_frequencies(corpus.iter_games(args.games), total=args.games)
    except CorpusIOError as e:
        logger.critical(str(e))
        sys.exit(1)

    counter.tables().save(args.output)
    logger.info(f"Total time: {time.perf_counter() - start_time:.2f}s")


if __name__ == "__main__":
    main()
