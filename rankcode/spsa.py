"""
SPSA (Simultaneous Perturbation Stochastic Approximation) optimizer.

Per step, with iteration counter k:

  a_k = a / (k + 1 + offset)^alpha
  c_k = c0 / (k + 1)^gamma

  repeat E times:
      delta_i = c_k * u_i,   u_i ~ Uniform{lo..hi}  (may be 0)
      J+ = L(theta + delta),  J- = L(theta - delta)
      ghat_i += (J+ - J-) / (2 delta_i)   for delta_i != 0

  theta -= a_k * ghat

Ensemble contributions are summed, not averaged. There is no convergence
test and no clipping; the caller decides how many steps to run.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from config import SPSAConfig

logger = logging.getLogger(__name__)

# Loss evaluated at (theta + delta, theta - delta) -> (J+, J-)
PairedLoss = Callable[[np.ndarray, np.ndarray], Tuple[float, float]]


def pairwise(loss: Callable[[np.ndarray], float]) -> PairedLoss:
    """Adapts a scalar loss to the paired interface (two independent calls)."""
    def evaluate(theta_plus: np.ndarray, theta_minus: np.ndarray) -> Tuple[float, float]:
        return float(loss(theta_plus)), float(loss(theta_minus))
    return evaluate


@dataclass
class StepRecord:
    """What one optimizer step reports."""
    iteration: int
    loss: float            # Mean of the 2E loss evaluations
    theta: np.ndarray

    def format(self) -> str:
        weights = ", ".join(f"{v:.3f}" for v in self.theta)
        return f"k={self.iteration:03} bytes={self.loss:.2f} theta=[{weights}]"

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "loss": round(float(self.loss), 6),
            "theta": [round(float(v), 3) for v in self.theta],
        }


class SPSA:
    """SPSA optimizer over a fixed-length weight vector."""

    def __init__(self, cfg: Optional[SPSAConfig] = None, arity: Optional[int] = None) -> None:
        self.cfg = cfg or SPSAConfig()
        if self.cfg.c0 <= 0.0:
            raise ValueError(f"Perturbation scale c0 must be positive, got {self.cfg.c0}")
        if self.cfg.ensemble_size < 1:
            raise ValueError(f"Ensemble size must be at least 1, got {self.cfg.ensemble_size}")
        lo, hi = self.cfg.perturbation_range
        if lo > hi:
            raise ValueError(f"Empty perturbation range {self.cfg.perturbation_range}")

        if self.cfg.theta is not None:
            theta = np.asarray(self.cfg.theta, dtype=np.float64)
            if arity is not None and theta.size != arity:
                raise ValueError(f"Initial theta has {theta.size} entries, expected {arity}")
        elif arity is not None:
            theta = np.zeros(arity, dtype=np.float64)
        else:
            raise ValueError("Need either an initial theta or the weight arity")

        self.theta = theta.copy()
        self.k = 0.0
        self.rng = np.random.default_rng(self.cfg.seed)

    @property
    def arity(self) -> int:
        return int(self.theta.size)

    def gains(self, k: Optional[float] = None) -> Tuple[float, float]:
        """Returns (a_k, c_k) for iteration ``k`` (default: current)."""
        k = self.k if k is None else k
        cfg = self.cfg
        a_k = cfg.a / (k + 1.0 + cfg.stability_offset) ** cfg.alpha
        c_k = cfg.c0 / (k + 1.0) ** cfg.gamma
        return a_k, c_k

    def draw_perturbation(self, c_k: float) -> np.ndarray:
        lo, hi = self.cfg.perturbation_range
        return c_k * self.rng.integers(lo, hi + 1, size=self.arity).astype(np.float64)

    def estimate_gradient(self, loss: PairedLoss, c_k: Optional[float] = None) -> Tuple[np.ndarray, float]:
        """
        Sums the ensemble of two-sided gradient estimates at the current theta.

        Returns (ghat, mean loss over all 2E evaluations). Components whose
        perturbation is exactly zero receive no contribution from that draw.
        """
        if c_k is None:
            _, c_k = self.gains()

        ghat = np.zeros(self.arity, dtype=np.float64)
        loss_sum = 0.0
        ens = self.cfg.ensemble_size

        for _ in range(ens):
            delta = self.draw_perturbation(c_k)
            j_plus, j_minus = loss(self.theta + delta, self.theta - delta)
            loss_sum += j_plus + j_minus

            active = delta != 0.0
            ghat[active] += (j_plus - j_minus) / (2.0 * delta[active])

        return ghat, loss_sum / (2 * ens)

    def step(self, loss: PairedLoss) -> StepRecord:
        a_k, c_k = self.gains()
        ghat, mean_loss = self.estimate_gradient(loss, c_k)

        self.theta = self.theta - a_k * ghat

        record = StepRecord(iteration=int(self.k), loss=mean_loss, theta=self.theta.copy())
        logger.info(record.format())

        self.k += 1.0
        return record

    def run(self, loss: PairedLoss, iterations: int) -> List[StepRecord]:
        return [self.step(loss) for _ in range(iterations)]

    # -------------------------------------------------------------------------
    # Checkpointing
    # -------------------------------------------------------------------------

    def state_dict(self) -> dict:
        return {
            "k": self.k,
            "theta": self.theta.tolist(),
            "rng": self.rng.bit_generator.state,
            "hyperparameters": {
                "alpha": self.cfg.alpha,
                "gamma": self.cfg.gamma,
                "a": self.cfg.a,
                "c0": self.cfg.c0,
                "stability_offset": self.cfg.stability_offset,
                "ensemble_size": self.cfg.ensemble_size,
                "perturbation_range": list(self.cfg.perturbation_range),
                "seed": self.cfg.seed,
            },
        }

    def load_state_dict(self, state: dict) -> None:
        theta = np.asarray(state["theta"], dtype=np.float64)
        if theta.size != self.arity:
            raise ValueError(f"Checkpoint theta has {theta.size} entries, optimizer has {self.arity}")
        self.theta = theta
        self.k = float(state["k"])
        self.rng.bit_generator.state = state["rng"]

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(self.state_dict(), f, indent=2)
        tmp.replace(path)

    @classmethod
    def load(cls, path: Union[str, Path], cfg: Optional[SPSAConfig] = None) -> "SPSA":
        with open(path) as f:
            state = json.load(f)
        opt = cls(cfg, arity=len(state["theta"]))
        opt.load_state_dict(state)
        logger.info(f"Resumed optimizer at k={int(opt.k)} from {Path(path).name}")
        return opt
