"""
Central Configuration for RankCode.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

# --- Rank Alphabet ---
# Upper bound on legal moves in any reachable chess position
MAX_LEGAL_MOVES = 218

# Symbols 0..255, one per possible rank
RANK_ALPHABET_SIZE = 256

# Games per loss evaluation
DEFAULT_BATCH_SIZE = 200


@dataclass
class RankerConfig:
    """Move ranker setup."""
    feature_preset: str = "full"           # compact (4) | castling (5) | full (6)
    tables_path: Optional[Path] = None     # None -> bundled per-mille tables
    alphabet_size: int = RANK_ALPHABET_SIZE
    tie_ulps: int = 1                      # Scores within N ULP compare equal


@dataclass
class SPSAConfig:
    """SPSA hyperparameters."""
    alpha: float = 0.7
    gamma: float = 0.101
    a: float = 0.7                         # Step scale
    c0: float = 1.8                        # Perturbation scale
    stability_offset: float = 100.0        # Delays large early steps
    ensemble_size: int = 3
    perturbation_range: Tuple[int, int] = (-4, 4)   # Inclusive
    seed: int = 42
    theta: Optional[List[float]] = None    # None -> zeros of the feature arity


@dataclass
class CorpusConfig:
    """Corpus streaming settings."""
    batch_size: int = DEFAULT_BATCH_SIZE
    on_exhausted: str = "wrap"             # wrap | stop
    share_batch: bool = True               # theta+/theta- see the same games


@dataclass
class TuneConfig:
    """Tuning run configuration."""
    iterations: int = 1000
    ranker: RankerConfig = field(default_factory=RankerConfig)
    spsa: SPSAConfig = field(default_factory=SPSAConfig)
    corpus: CorpusConfig = field(default_factory=CorpusConfig)

    # Persistence
    checkpoint_path: Optional[Path] = None
    checkpoint_every: int = 10
    history_path: Optional[Path] = None    # JSON lines, one record per step
