# simulations/presets.py

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from pity_outcomes.predicate import Query, compile_query
from pity_outcomes.pull_state import BannerConfig


QuerySource = Tuple[str, str]  # (label, expression)


# Applies to every banner archetype.
COMMON_QUERIES: Tuple[QuerySource, ...] = (
    ("1x 6*", "(onBanner6 + offBanner6) >= 1"),
    ("2x 6*", "(onBanner6 + offBanner6) >= 2"),
    ("3x 6*", "(onBanner6 + offBanner6) >= 3"),
    ("4x 6*", "(onBanner6 + offBanner6) >= 4"),
    ("5x 6*", "(onBanner6 + offBanner6) >= 5"),
    ("6x 6*", "(onBanner6 + offBanner6) >= 6"),
    ("Specific 6*", "onItem6[0] > 0"),
    ("Specific 6* Max Pot", "onItem6[0] >= 6"),
    ("Specific 5*", "onItem5[0] > 0"),
    ("Specific 5* Max Pot", "onItem5[0] >= 6"),
)

# Only meaningful with two or more top-tier rate-ups.
DUAL_RATE_UP_QUERIES: Tuple[QuerySource, ...] = (
    ("Both 6*", "onItem6[0] > 0 && onItem6[1] > 0"),
    ("Both 6* Max Pot", "onItem6[0] >= 6 && onItem6[1] >= 6"),
)


@dataclass(frozen=True)
class BannerPreset:
    """
    A banner archetype: its default configuration and built-in queries.
    """
    name: str
    config: BannerConfig
    queries: Tuple[QuerySource, ...] = ()


PRESETS: Dict[str, BannerPreset] = {
    "standard": BannerPreset(
        name="standard",
        config=BannerConfig(n6=2, n5=3, n6p=0, rate6b=50, rate5b=50),
        queries=COMMON_QUERIES + DUAL_RATE_UP_QUERIES,
    ),
    "limited": BannerPreset(
        name="limited",
        config=BannerConfig(n6=2, n5=1, n6p=0, rate6b=70, rate5b=50),
        queries=COMMON_QUERIES + DUAL_RATE_UP_QUERIES,
    ),
    "event": BannerPreset(
        name="event",
        config=BannerConfig(n6=1, n5=2, n6p=0, rate6b=50, rate5b=50),
        queries=COMMON_QUERIES,
    ),
    "custom": BannerPreset(
        name="custom",
        config=BannerConfig(),
        queries=(),
    ),
}


def get_preset(name: str, presets: Optional[Dict[str, BannerPreset]] = None) -> BannerPreset:
    table = PRESETS if presets is None else presets
    key = name.strip().lower()
    if key not in table:
        raise ValueError(f"unknown banner '{name}'. Available: {sorted(table.keys())}")
    return table[key]


def resolve_config(preset: BannerPreset, **overrides: Optional[int]) -> BannerConfig:
    """
    Preset config with every non-None override applied (and re-validated).
    """
    changes = {k: v for k, v in overrides.items() if v is not None}
    return replace(preset.config, **changes)


def resolve_queries(
    preset: BannerPreset,
    custom: Sequence[Query] = (),
    include_builtin: bool = False,
) -> List[Query]:
    """
    Custom queries come first. Built-ins are appended when there are no
    custom queries, or when include_builtin asks to keep them anyway.
    """
    queries = list(custom)
    if not queries or include_builtin:
        queries.extend(compile_query(label, expr) for label, expr in preset.queries)
    return queries
