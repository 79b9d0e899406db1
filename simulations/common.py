# simulations/common.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import time

import numpy as np

from pity_outcomes.errors import ConfigurationError


@dataclass(frozen=True)
class RunSpec:
    """
    Trial count and checkpoint segments shared by every run.

    checkpoints[i] is the number of pulls in segment i; segments run back to
    back within one trial, so checkpoint i samples the state after
    sum(checkpoints[:i + 1]) pulls.
    """
    ntrials: int
    checkpoints: Tuple[int, ...]

    def __post_init__(self) -> None:
        if isinstance(self.ntrials, bool) or not isinstance(self.ntrials, (int, np.integer)):
            raise ConfigurationError("ntrials must be an integer")
        if self.ntrials <= 0:
            raise ConfigurationError("ntrials must be > 0")
        checkpoints = tuple(self.checkpoints)
        if not checkpoints:
            raise ConfigurationError("at least one checkpoint is required")
        for n in checkpoints:
            if isinstance(n, bool) or not isinstance(n, (int, np.integer)):
                raise ConfigurationError(f"checkpoint pull counts must be integers, got {n!r}")
            if n < 0:
                raise ConfigurationError("checkpoint pull counts must be >= 0")
        object.__setattr__(self, "checkpoints", tuple(int(n) for n in checkpoints))

    @property
    def cumulative_pulls(self) -> Tuple[int, ...]:
        total = 0
        out = []
        for n in self.checkpoints:
            total += n
            out.append(total)
        return tuple(out)


@dataclass
class ResultMatrix:
    """
    counts[q * num_checkpoints + c] = number of trials for which query q held
    at checkpoint c. Flat, row-major, uint64.
    """
    labels: List[str]
    spec: RunSpec
    counts: np.ndarray

    runtime_s: Optional[float] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.counts = np.asarray(self.counts, dtype=np.uint64).reshape(-1)

        expected = self.num_queries * self.num_checkpoints
        if self.counts.shape[0] != expected:
            raise ValueError(
                f"counts length mismatch: expected {expected}, got {self.counts.shape[0]}"
            )
        if self.counts.size and int(self.counts.max()) > self.spec.ntrials:
            raise ValueError("a count exceeds the number of trials")

    @property
    def num_queries(self) -> int:
        return len(self.labels)

    @property
    def num_checkpoints(self) -> int:
        return len(self.spec.checkpoints)

    @property
    def ntrials(self) -> int:
        return self.spec.ntrials

    def count(self, query: int, checkpoint: int) -> int:
        return int(self.counts[query * self.num_checkpoints + checkpoint])

    def rows(self) -> np.ndarray:
        """
        Counts as a (num_queries, num_checkpoints) view.
        """
        return self.counts.reshape(self.num_queries, self.num_checkpoints)

    def percentages(self) -> np.ndarray:
        return 100.0 * self.rows().astype(np.float64) / self.ntrials


class Timer:
    """
    Wall-clock stopwatch around a whole run. `elapsed_s` is set on exit,
    including when the block raises.
    """
    def __init__(self) -> None:
        self._start: Optional[float] = None
        self.elapsed_s: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._start is not None:
            self.elapsed_s = time.perf_counter() - self._start


def format_table(r: ResultMatrix, label_width: int = 25) -> str:
    """
    Percentage table: one header row of cumulative pull counts, then one row
    per query.
    """
    lines = [" " * label_width + "".join(f" {n:>6}" for n in r.spec.cumulative_pulls)]
    for label, row in zip(r.labels, r.percentages()):
        name = label[:label_width].rjust(label_width)
        lines.append(name + "".join(f" {p:>6.2f}" for p in row))
    return "\n".join(lines)


def format_run_line(r: ResultMatrix) -> str:
    """
    Human-friendly one-liner describing a finished run.
    """
    return (
        f"trials={r.ntrials:,}, queries={r.num_queries}, checkpoints={list(r.spec.cumulative_pulls)}"
        + (f", runtime={r.runtime_s:.3f}s" if r.runtime_s is not None else "")
    )
