# simulations/trials.py

from __future__ import annotations

from typing import Iterator, Sequence, Tuple

import numpy as np

from pity_outcomes.predicate import Query, count_true
from pity_outcomes.pull_state import BannerConfig, PullStateMachine, TrialState
from pity_outcomes.random_stream import RandomStream


class TrialOrchestrator:
    """
    Drives a contiguous range of trials through every checkpoint segment.

    Trial i is seeded with i, so its pull sequence does not depend on which
    range (wave) it is simulated in. All trials of a range run together as
    numpy lanes; lanes never read each other's state.

    Instances hold only plain data and are picklable, so they can be shipped
    to worker processes as-is.
    """

    def __init__(
        self,
        config: BannerConfig,
        checkpoints: Sequence[int],
        queries: Sequence[Query],
    ):
        self.config = config
        self.checkpoints: Tuple[int, ...] = tuple(int(n) for n in checkpoints)
        self.queries: Tuple[Query, ...] = tuple(queries)

    @property
    def shape(self) -> Tuple[int, int]:
        return len(self.queries), len(self.checkpoints)

    def iter_checkpoints(self, start: int, stop: int) -> Iterator[Tuple[int, TrialState]]:
        """
        Yield (checkpoint_index, state) after each segment for trials
        start..stop-1. The yielded state is live: read it, don't keep or
        modify it.
        """
        if not 0 <= start <= stop:
            raise ValueError("expected 0 <= start <= stop")
        machine = PullStateMachine(self.config)
        state = machine.new_state(stop - start)
        stream = RandomStream(np.arange(start, stop, dtype=np.uint64))
        for c, pulls in enumerate(self.checkpoints):
            machine.advance(state, stream, pulls)
            yield c, state

    def run(self, start: int, stop: int) -> np.ndarray:
        """
        Simulate trials start..stop-1 and return a (queries, checkpoints)
        matrix of how many of them satisfied each query at each checkpoint.
        """
        counts = np.zeros(self.shape, dtype=np.uint64)
        for c, state in self.iter_checkpoints(start, stop):
            for q, query in enumerate(self.queries):
                counts[q, c] = count_true(query, state)
        return counts
