from __future__ import annotations

from concurrent.futures.process import BrokenProcessPool

import numpy as np
import pytest

from pity_outcomes.errors import BackendUnavailableError, ConfigurationError, QueryError
from pity_outcomes.predicate import compile_query
from pity_outcomes.pull_state import BannerConfig
from simulations import executor
from simulations.common import ResultMatrix, RunSpec, Timer, format_table
from simulations.executor import ParallelExecutor, plan_waves
from simulations.run import run_simulation
from simulations.trials import TrialOrchestrator


CONFIG = BannerConfig(n6=2, n5=3)
QUERIES = [
    compile_query("Any 6*", "(onBanner6 + offBanner6) >= 1"),
    compile_query("Specific 6*", "onItem6[0] > 0"),
]


def test_plan_waves_covers_every_trial_once() -> None:
    assert plan_waves(10, 4) == [(0, 4), (4, 8), (8, 10)]
    assert plan_waves(3, 100) == [(0, 3)]


def test_wave_size_does_not_change_results() -> None:
    orchestrator = TrialOrchestrator(CONFIG, [30, 70], QUERIES)

    one_wave = ParallelExecutor(workers=1, wave_size=10_000).execute(orchestrator, 1500)
    many_waves = ParallelExecutor(workers=1, wave_size=7).execute(orchestrator, 1500)

    assert np.array_equal(one_wave.counts, many_waves.counts)
    assert many_waves.meta["waves"] == 215


def test_process_pool_matches_inline_run() -> None:
    orchestrator = TrialOrchestrator(CONFIG, [30, 70], QUERIES)

    inline = ParallelExecutor(workers=1, wave_size=250).execute(orchestrator, 2000)
    pooled = ParallelExecutor(workers=2, wave_size=250).execute(orchestrator, 2000)

    assert pooled.meta["processes"] == 2
    assert np.array_equal(inline.counts, pooled.counts)


def test_result_layout_is_query_major() -> None:
    result = run_simulation(
        config=CONFIG,
        checkpoints=[5, 5, 5],
        queries=[("always", "1"), ("never", "0")],
        ntrials=300,
        workers=1,
    )

    assert result.counts.dtype == np.uint64
    assert result.counts.tolist() == [300, 300, 300, 0, 0, 0]
    assert result.count(1, 2) == 0
    assert result.rows().shape == (2, 3)


def test_bad_query_fails_before_any_trial_runs(monkeypatch) -> None:
    def explode(*args, **kwargs):
        raise AssertionError("trials must not start")

    monkeypatch.setattr(TrialOrchestrator, "run", explode)

    with pytest.raises(QueryError) as exc:
        run_simulation(
            config=CONFIG,
            checkpoints=[10],
            queries=[("ok", "pity6 >= 0"), ("broken", "sixes >= 1")],
            ntrials=100,
            workers=1,
        )

    assert exc.value.label == "broken"


def test_oversized_literal_fails_before_any_trial_runs(monkeypatch) -> None:
    def explode(*args, **kwargs):
        raise AssertionError("trials must not start")

    monkeypatch.setattr(TrialOrchestrator, "run", explode)

    with pytest.raises(QueryError) as exc:
        run_simulation(
            config=CONFIG,
            checkpoints=[10],
            queries=[("big", "onBanner6 < 99999999999999999999")],
            ntrials=100,
            workers=1,
        )

    assert exc.value.label == "big"
    assert "out of range" in str(exc.value)


def test_no_workers_is_a_backend_error() -> None:
    with pytest.raises(BackendUnavailableError):
        ParallelExecutor(workers=0)


class _DyingPool:
    def __init__(self, max_workers=None):
        self.max_workers = max_workers

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def map(self, fn, tasks):
        raise BrokenProcessPool("a child process terminated abruptly")


def test_dead_worker_pool_is_a_backend_error(monkeypatch) -> None:
    monkeypatch.setattr(executor, "ProcessPoolExecutor", _DyingPool)
    orchestrator = TrialOrchestrator(CONFIG, [10], QUERIES)

    with pytest.raises(BackendUnavailableError) as exc:
        ParallelExecutor(workers=2, wave_size=10).execute(orchestrator, 100)

    assert isinstance(exc.value.__cause__, BrokenProcessPool)


@pytest.mark.parametrize("wave_size", [0, -5, True])
def test_invalid_wave_size_rejected(wave_size) -> None:
    with pytest.raises(ConfigurationError):
        ParallelExecutor(workers=1, wave_size=wave_size)


@pytest.mark.parametrize(
    "ntrials, checkpoints",
    [(0, (10,)), (-1, (10,)), (10, ()), (10, (5, -1)), (10, (1.5,))],
)
def test_invalid_run_spec_rejected(ntrials, checkpoints) -> None:
    with pytest.raises(ConfigurationError):
        RunSpec(ntrials=ntrials, checkpoints=checkpoints)


def test_run_spec_cumulative_pulls() -> None:
    assert RunSpec(ntrials=1, checkpoints=(50, 50, 0, 10)).cumulative_pulls == (50, 100, 100, 110)


def test_result_matrix_sanity_checks() -> None:
    spec = RunSpec(ntrials=10, checkpoints=(1, 1))

    with pytest.raises(ValueError):
        ResultMatrix(labels=["a"], spec=spec, counts=[1, 2, 3])
    with pytest.raises(ValueError):
        ResultMatrix(labels=["a"], spec=spec, counts=[1, 11])


def test_format_table_shows_percentages() -> None:
    spec = RunSpec(ntrials=200, checkpoints=(50, 50))
    result = ResultMatrix(labels=["Any 6*"], spec=spec, counts=[50, 200])

    lines = format_table(result).splitlines()

    assert lines[0].split() == ["50", "100"]
    assert lines[1].split() == ["Any", "6*", "25.00", "100.00"]


def test_timer_records_elapsed_even_when_block_raises() -> None:
    timer = Timer()

    with pytest.raises(RuntimeError):
        with timer:
            raise RuntimeError("boom")

    assert timer.elapsed_s is not None
    assert timer.elapsed_s >= 0
