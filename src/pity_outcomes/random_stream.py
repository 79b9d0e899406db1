# src/pity_outcomes/random_stream.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

import numpy as np


# Hex digits of pi and e, used to spread a 64-bit seed over 256 bits of state.
PI_MIX = np.uint64(0x243F6A8885A308D3)
E_MIX = np.uint64(0x93C467E37DB0C7A4)

# Steps discarded after seeding. Without them the low bits of neighbouring
# seeds show up almost linearly in the first outputs.
WARMUP_STEPS = 10

SeedLike = Union[int, Iterable[int], np.ndarray]


def _rotl(x: np.ndarray, k: int) -> np.ndarray:
    return (x << np.uint64(k)) | (x >> np.uint64(64 - k))


@dataclass(frozen=True)
class StreamState:
    """
    xoshiro256 state for a batch of lanes.

    Each of s0..s3 is a uint64 array with one entry per lane; lane i of every
    array belongs to the same independent stream.
    """
    s0: np.ndarray
    s1: np.ndarray
    s2: np.ndarray
    s3: np.ndarray

    @property
    def lanes(self) -> int:
        return int(self.s0.shape[0])


def as_seeds(seeds: SeedLike) -> np.ndarray:
    """
    Normalize an int or a sequence of ints to a 1-D uint64 seed array.
    """
    arr = np.atleast_1d(np.asarray(seeds, dtype=np.uint64))
    if arr.ndim != 1:
        raise ValueError("seeds must be a scalar or a 1-D sequence")
    return arr


def step(state: StreamState) -> StreamState:
    """
    Advance every lane by one xoshiro256 transition.

    Pure: the input arrays are left untouched and a new state is returned.
    """
    t = state.s1 << np.uint64(17)
    s2 = state.s2 ^ state.s0
    s3 = state.s3 ^ state.s1
    s1 = state.s1 ^ s2
    s0 = state.s0 ^ s3
    s2 = s2 ^ t
    s3 = _rotl(s3, 45)
    return StreamState(s0=s0, s1=s1, s2=s2, s3=s3)


def read(state: StreamState) -> np.ndarray:
    """
    The ++ output function: rotl(s0 + s3, 23) + s0, modulo 2**64.
    """
    return _rotl(state.s0 + state.s3, 23) + state.s0


def init_state(seeds: SeedLike) -> StreamState:
    """
    Derive a 256-bit state per seed, then run the warm-up steps.
    """
    s = as_seeds(seeds)
    state = StreamState(s0=s.copy(), s1=s ^ PI_MIX, s2=~s, s3=s ^ E_MIX)
    for _ in range(WARMUP_STEPS):
        state = step(state)
    return state


def next_value(state: StreamState):
    """
    Return (outputs, next_state). The old state should not be reused.
    """
    return read(state), step(state)


class RandomStream:
    """
    Deterministic per-trial pseudo-random streams, one lane per seed.

    The simulation uses the trial index as the seed, so trial i always sees the
    same sequence no matter how trials are batched. Lanes never share state and
    a stream is never reseeded once created.

    Usage:
        stream = RandomStream(np.arange(1000))
        r = stream.next()   # uint64 array of length 1000
    """

    def __init__(self, seeds: SeedLike):
        self.seeds = as_seeds(seeds)
        self.state = init_state(self.seeds)

    @property
    def lanes(self) -> int:
        return self.state.lanes

    def next(self) -> np.ndarray:
        """
        Emit one uniform 64-bit value per lane and advance.
        """
        value, self.state = next_value(self.state)
        return value

    def take(self, n: int) -> np.ndarray:
        """
        Emit n values per lane as an array of shape (n, lanes).
        """
        if n < 0:
            raise ValueError("n must be >= 0")
        out = np.empty((n, self.lanes), dtype=np.uint64)
        for i in range(n):
            out[i] = self.next()
        return out
