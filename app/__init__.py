"""Application package for the adaptive trade governance engine."""

from importlib import metadata
from typing import Optional

from app.core.config import Settings, get_settings
from app.core.logging import get_logger, setup_logging


def get_version() -> str:
    """Return the installed package version."""
    try:
        return metadata.version("fx-trade-governance")
    except metadata.PackageNotFoundError:  # pragma: no cover - fallback for editable installs
        return "0.0.0"


def bootstrap(settings: Optional[Settings] = None) -> Settings:
    """Configure logging from settings and announce the engine version.

    Call once at process start, before constructing a GovernanceCycle.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_logs=settings.json_logs)
    get_logger(__name__).info(
        "governance_engine_started",
        version=get_version(),
        log_level=settings.log_level,
        governance_learning_milestone=settings.governance_learning_milestone,
        coalition_learning_milestone=settings.coalition_learning_milestone,
        primary_pair=settings.primary_pair,
    )
    return settings


__all__ = ["bootstrap", "get_version"]
