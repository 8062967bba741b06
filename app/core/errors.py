"""Exception hierarchy for the governance engine.

Engines return total results for well-typed input; these exceptions mark
configuration mistakes and collaborator failures at the edges.
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """Base error for the application."""


class ConfigurationError(AppError):
    """Raised when a policy table or setting is invalid or incomplete."""


class GovernanceError(AppError):
    """Raised when a governance operation is requested with inconsistent arguments."""


class MarketDataUnavailableError(AppError):
    """Raised by a market/indicator collaborator that cannot serve a signal."""

    def __init__(self, pair: str, timeframe: str, *, detail: Optional[str] = None) -> None:
        message = f"market data unavailable for {pair} {timeframe}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.pair = pair
        self.timeframe = timeframe
        self.detail = detail


__all__ = [
    "AppError",
    "ConfigurationError",
    "GovernanceError",
    "MarketDataUnavailableError",
]
