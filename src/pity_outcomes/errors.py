# src/pity_outcomes/errors.py

from __future__ import annotations

from typing import Optional


class SimulationError(Exception):
    """Base class for every fatal error raised by a simulation run."""


class ConfigurationError(SimulationError, ValueError):
    """Banner, checkpoint or executor settings outside their valid range."""


class QueryError(SimulationError, ValueError):
    """
    A query expression failed to parse or referenced an unknown field.

    Raised before any trial runs, so a bad query never produces partial results.
    """

    def __init__(
        self,
        message: str,
        label: Optional[str] = None,
        expression: Optional[str] = None,
    ):
        self.message = message
        self.label = label
        self.expression = expression
        if label is not None:
            message = f"query '{label}': {message}"
        super().__init__(message)


class BackendUnavailableError(SimulationError, RuntimeError):
    """No parallel execution backend could be started."""
