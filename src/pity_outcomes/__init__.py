# src/pity_outcomes/__init__.py
"""
Monte Carlo estimation of outcome probabilities for pity-based gacha banners.

The simulation harness (checkpoint orchestration, parallel waves, presets,
CLI) lives in the top-level `simulations` package.
"""

from .errors import (
    BackendUnavailableError,
    ConfigurationError,
    QueryError,
    SimulationError,
)
from .predicate import Query, compile_query, evaluate, parse, parse_query_arg
from .pull_state import (
    BannerConfig,
    PullStateMachine,
    TrialState,
    advance_one_pull,
    top_tier_threshold,
)
from .random_stream import RandomStream

__all__ = [
    "BackendUnavailableError",
    "BannerConfig",
    "ConfigurationError",
    "PullStateMachine",
    "Query",
    "QueryError",
    "RandomStream",
    "SimulationError",
    "TrialState",
    "advance_one_pull",
    "compile_query",
    "evaluate",
    "parse",
    "parse_query_arg",
    "top_tier_threshold",
]
