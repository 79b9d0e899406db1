# simulations/run.py

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import List, Optional, Sequence, Tuple, Union

from pity_outcomes.predicate import Query, compile_query, describe
from pity_outcomes.pull_state import BannerConfig

from .common import ResultMatrix, RunSpec
from .executor import DEFAULT_WAVE_SIZE, ParallelExecutor
from .presets import get_preset, resolve_config, resolve_queries
from .trials import TrialOrchestrator


logger = logging.getLogger("pity_outcomes.run")

QueryLike = Union[Query, Tuple[str, str]]


def compile_queries(queries: Sequence[QueryLike]) -> List[Query]:
    """
    Compile every (label, expression) pair up front; a bad query raises
    QueryError before anything is simulated.
    """
    compiled = []
    for q in queries:
        if not isinstance(q, Query):
            label, expression = q
            q = compile_query(label, expression)
        logger.debug("query %r: %s", q.label, describe(q.predicate))
        compiled.append(q)
    return compiled


def run_simulation(
    config: BannerConfig,
    checkpoints: Sequence[int],
    queries: Sequence[QueryLike],
    ntrials: int,
    workers: Optional[int] = None,
    wave_size: int = DEFAULT_WAVE_SIZE,
) -> ResultMatrix:
    """
    Run a full simulation and return its ResultMatrix.

    Parameters
    ----------
    config:
        Banner configuration (preset-derived or fully custom).
    checkpoints:
        Pulls per segment; segments run back to back in each trial.
    queries:
        Query objects or (label, expression) pairs.
    ntrials:
        Number of independent trials; trial i is seeded with i.
    workers:
        Worker processes (defaults to the CPU count).
    wave_size:
        Maximum trials simulated together in one task.

    Returns
    -------
    ResultMatrix
    """
    spec = RunSpec(ntrials=ntrials, checkpoints=tuple(checkpoints))
    compiled = compile_queries(queries)
    executor = ParallelExecutor(workers=workers, wave_size=wave_size)

    logger.debug("banner config: %s", asdict(config))
    logger.info(
        "simulating %d trials, %d queries, checkpoints %s",
        spec.ntrials, len(compiled), list(spec.cumulative_pulls),
    )
    if not compiled:
        logger.warning("no queries given; result matrix will be empty")

    orchestrator = TrialOrchestrator(config, spec.checkpoints, compiled)
    return executor.execute(orchestrator, spec.ntrials)


def run_preset(
    banner: str,
    checkpoints: Sequence[int],
    ntrials: int,
    queries: Sequence[QueryLike] = (),
    include_builtin: bool = False,
    workers: Optional[int] = None,
    wave_size: int = DEFAULT_WAVE_SIZE,
    **overrides: Optional[int],
) -> ResultMatrix:
    """
    Convenience helper: start from a banner archetype, apply config overrides
    (n6=..., rate6b=..., ...) and merge custom queries with the built-ins.
    """
    preset = get_preset(banner)
    config = resolve_config(preset, **overrides)
    merged = resolve_queries(preset, compile_queries(queries), include_builtin)
    return run_simulation(
        config=config,
        checkpoints=checkpoints,
        queries=merged,
        ntrials=ntrials,
        workers=workers,
        wave_size=wave_size,
    )
