# simulations/executor.py

from __future__ import annotations

import logging
import os
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from typing import List, Optional, Tuple

import numpy as np

from pity_outcomes.errors import BackendUnavailableError, ConfigurationError

from .common import ResultMatrix, RunSpec, Timer
from .trials import TrialOrchestrator


logger = logging.getLogger("pity_outcomes.executor")

# Trials simulated together as numpy lanes in one task. Bounds peak memory
# (a few hundred bytes per lane) independently of ntrials.
DEFAULT_WAVE_SIZE = 250_000


def plan_waves(ntrials: int, wave_size: int) -> List[Tuple[int, int]]:
    """
    Split trial indices [0, ntrials) into contiguous (start, stop) waves.
    """
    return [(start, min(start + wave_size, ntrials)) for start in range(0, ntrials, wave_size)]


def _run_wave(task: Tuple[TrialOrchestrator, int, int]) -> np.ndarray:
    orchestrator, start, stop = task
    return orchestrator.run(start, stop)


def resolve_workers(workers: Optional[int]) -> int:
    if workers is None:
        available = os.cpu_count()
        if not available:
            raise BackendUnavailableError("could not determine the number of CPUs")
        return available
    if workers < 1:
        raise BackendUnavailableError(f"no parallel execution units requested (workers={workers})")
    return workers


class ParallelExecutor:
    """
    Fans trials out over worker processes and sums their counts.

    Trials are independent and unordered. Each wave returns a partial
    (queries, checkpoints) count matrix, and partials are added into one
    zeroed accumulator. Addition is associative and commutative, so the
    result does not depend on which wave finishes first. Results are only
    handed back once every wave has completed; any failing wave aborts the
    whole run.
    """

    def __init__(self, workers: Optional[int] = None, wave_size: int = DEFAULT_WAVE_SIZE):
        if isinstance(wave_size, bool) or not isinstance(wave_size, int) or wave_size < 1:
            raise ConfigurationError("wave_size must be a positive integer")
        self.workers = resolve_workers(workers)
        self.wave_size = wave_size

    def execute(self, orchestrator: TrialOrchestrator, ntrials: int) -> ResultMatrix:
        spec = RunSpec(ntrials=ntrials, checkpoints=orchestrator.checkpoints)
        waves = plan_waves(spec.ntrials, self.wave_size)
        total = np.zeros(orchestrator.shape, dtype=np.uint64)
        tasks = [(orchestrator, start, stop) for start, stop in waves]
        processes = min(self.workers, len(tasks))

        logger.debug(
            "dispatching %d trials in %d wave(s) of <= %d over %d process(es)",
            spec.ntrials, len(tasks), self.wave_size, processes,
        )

        with Timer() as t:
            if processes == 1:
                for task in tasks:
                    total += _run_wave(task)
            else:
                for partial in self._map(processes, tasks):
                    total += partial

        logger.info("finished %d trials in %.3fs", spec.ntrials, t.elapsed_s)

        return ResultMatrix(
            labels=[q.label for q in orchestrator.queries],
            spec=spec,
            counts=total.reshape(-1),
            runtime_s=t.elapsed_s,
            meta={"waves": len(tasks), "processes": processes},
        )

    @staticmethod
    def _map(processes: int, tasks):
        try:
            pool = ProcessPoolExecutor(max_workers=processes)
        except (OSError, NotImplementedError) as e:
            raise BackendUnavailableError(f"cannot start worker processes: {e}") from e
        # Leaving the with-block waits for every wave: the completion barrier.
        with pool:
            try:
                return list(pool.map(_run_wave, tasks))
            except BrokenProcessPool as e:
                raise BackendUnavailableError(f"worker processes died: {e}") from e
