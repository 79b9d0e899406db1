# src/pity_outcomes/pull_state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np

from .errors import ConfigurationError
from .random_stream import RandomStream


# Upper bound on rate-up items per tier; sizes the per-item counters.
MAX_RATE_UP_ITEMS = 64

# Top tier: flat 2% through pity6 == 50, then +2 points per pull,
# reaching 100 (hard pity) at pity6 == 99.
BASE_TOP_TIER_RATE = 2
SOFT_PITY_START = 49
SOFT_PITY_STEP = 2

# Second tier: flat 8% band directly above the top-tier threshold.
SECOND_TIER_RATE = 8

# pity5 == 9 forces a second-tier result. Any qualifying hit parks pity5 at
# the sentinel, which is past the trigger and only grows from there.
SECOND_TIER_HARD_PITY = 9
PITY5_SENTINEL = 10

_HUNDRED = np.uint64(100)

# Predicate-visible schema: public name -> TrialState attribute.
SCALAR_FIELDS: Dict[str, str] = {
    "pity6": "pity6",
    "pity5": "pity5",
    "onBanner6": "on_banner6",
    "offBanner6": "off_banner6",
    "onBanner5": "on_banner5",
    "offBanner5": "off_banner5",
}
ITEM_FIELDS: Dict[str, str] = {
    "onItem6": "on_item6",
    "onItem5": "on_item5",
}
# Short legacy names still accepted in query expressions.
FIELD_ALIASES: Dict[str, str] = {
    "banner6": "onBanner6",
    "off6": "offBanner6",
    "banner5": "onBanner5",
    "off5": "offBanner5",
    "banner6s": "onItem6",
    "banner5s": "onItem5",
}


def _check_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class BannerConfig:
    """
    Reward-tier configuration for one banner.

    n6, n5:
        Number of rate-up items at the top and second tier.
    rate6b, rate5b:
        Percent chance (0-100) that a top / second tier hit is on-banner.
    n6p, stdpool:
        Previous-limited count and standard pool size. Accepted and carried
        through, but no pull decision reads them yet.
    """
    n6: int = 1
    n5: int = 1
    n6p: int = 0
    rate6b: int = 50
    rate5b: int = 50
    stdpool: int = 44

    def __post_init__(self) -> None:
        for name in ("n6", "n5", "n6p", "rate6b", "rate5b", "stdpool"):
            _check_int(name, getattr(self, name))
        if self.n6 < 1:
            raise ConfigurationError("n6 must be >= 1")
        if self.n5 < 1:
            raise ConfigurationError("n5 must be >= 1")
        if max(self.n6, self.n5) > MAX_RATE_UP_ITEMS:
            raise ConfigurationError(
                f"at most {MAX_RATE_UP_ITEMS} rate-up items per tier are supported"
            )
        if not 0 <= self.rate6b <= 100:
            raise ConfigurationError("rate6b must be within [0, 100]")
        if not 0 <= self.rate5b <= 100:
            raise ConfigurationError("rate5b must be within [0, 100]")
        if self.n6p < 0:
            raise ConfigurationError("n6p must be >= 0")
        if self.stdpool < 0:
            raise ConfigurationError("stdpool must be >= 0")

    @property
    def item_slots(self) -> int:
        return max(self.n6, self.n5)


class TrialState:
    """
    Mutable pity/reward counters for a batch of independent trials.

    Every attribute holds one entry per lane (trial). A batch with a single
    lane is just one trial. The state is created zeroed, mutated only by
    advance_one_pull, and read by predicates at checkpoints.
    """

    def __init__(self, lanes: int, item_slots: int):
        if lanes < 0:
            raise ValueError("lanes must be >= 0")
        if item_slots < 1:
            raise ValueError("item_slots must be >= 1")
        self.lanes = lanes
        self.item_slots = item_slots

        self.pity6 = np.zeros(lanes, dtype=np.int64)
        self.pity5 = np.zeros(lanes, dtype=np.int64)
        self.on_item6 = np.zeros((lanes, item_slots), dtype=np.int64)
        self.on_item5 = np.zeros((lanes, item_slots), dtype=np.int64)
        self.on_banner6 = np.zeros(lanes, dtype=np.int64)
        self.off_banner6 = np.zeros(lanes, dtype=np.int64)
        self.on_banner5 = np.zeros(lanes, dtype=np.int64)
        self.off_banner5 = np.zeros(lanes, dtype=np.int64)

    @classmethod
    def zeros(cls, lanes: int, item_slots: int) -> "TrialState":
        return cls(lanes, item_slots)

    def scalar(self, name: str) -> np.ndarray:
        return getattr(self, SCALAR_FIELDS[name])

    def items(self, name: str) -> np.ndarray:
        return getattr(self, ITEM_FIELDS[name])

    def item(self, name: str, index: np.ndarray) -> np.ndarray:
        """
        Per-lane read of items(name)[lane, index[lane]].

        Indices outside [0, item_slots) read as zero.
        """
        table = self.items(name)
        idx = np.broadcast_to(np.asarray(index, dtype=np.int64), (self.lanes,))
        valid = (idx >= 0) & (idx < self.item_slots)
        safe = np.where(valid, idx, 0)
        values = table[np.arange(self.lanes), safe]
        return np.where(valid, values, 0)


def top_tier_threshold(pity6):
    """
    Pity-adjusted top-tier threshold in percentage points.

    Works on a plain int or on an array of pity counters.
    """
    return np.maximum(BASE_TOP_TIER_RATE, SOFT_PITY_STEP * (pity6 - SOFT_PITY_START))


def _draw_percent(stream: RandomStream) -> np.ndarray:
    return (stream.next() % _HUNDRED).astype(np.int64)


def _credit_items(table: np.ndarray, hits: np.ndarray, r3: np.ndarray, pool: int) -> None:
    lanes = np.flatnonzero(hits)
    if lanes.size == 0:
        return
    picks = (r3[lanes] % np.uint64(pool)).astype(np.intp)
    # Each lane appears once, so plain fancy-index increment is exact.
    table[lanes, picks] += 1


def advance_one_pull(state: TrialState, config: BannerConfig, stream: RandomStream) -> None:
    """
    Advance every lane of `state` by exactly one pull.

    Three values are drawn per lane regardless of outcome: r1 decides the tier,
    r2 decides on/off banner, r3 picks the rate-up item.
    """
    r1 = _draw_percent(stream)
    r2 = _draw_percent(stream)
    r3 = stream.next()

    add6 = top_tier_threshold(state.pity6)
    top = r1 < add6
    second = ~top & ((r1 < add6 + SECOND_TIER_RATE) | (state.pity5 == SECOND_TIER_HARD_PITY))
    miss = ~(top | second)

    on6 = top & (r2 < config.rate6b)
    on5 = second & (r2 < config.rate5b)

    _credit_items(state.on_item6, on6, r3, config.n6)
    _credit_items(state.on_item5, on5, r3, config.n5)
    state.on_banner6 += on6
    state.off_banner6 += top & ~on6
    state.on_banner5 += on5
    state.off_banner5 += second & ~on5

    state.pity6 = np.where(top, 0, state.pity6 + miss)
    state.pity5 = np.where(top | second, PITY5_SENTINEL, state.pity5 + miss)


class PullStateMachine:
    """
    Binds a BannerConfig so callers can advance a batch by many pulls.
    """

    def __init__(self, config: BannerConfig):
        self.config = config

    def new_state(self, lanes: int) -> TrialState:
        return TrialState.zeros(lanes, self.config.item_slots)

    def advance(self, state: TrialState, stream: RandomStream, pulls: int) -> None:
        for _ in range(pulls):
            advance_one_pull(state, self.config, stream)
