"""Versioned policy tables shared across governance services."""

from .config import (
    DEFAULT_DECISION_TABLES,
    DEFAULT_GATE_THRESHOLDS,
    DEFAULT_MULTIPLIER_TABLES,
    DEFAULT_STATE_THRESHOLDS,
    GOVERNANCE_TABLES_VERSION,
    MAJOR_PAIRS,
    MULTIPLIER_BOUNDS,
    STATE_CONFIG_TABLE,
)

__all__ = [
    "DEFAULT_DECISION_TABLES",
    "DEFAULT_GATE_THRESHOLDS",
    "DEFAULT_MULTIPLIER_TABLES",
    "DEFAULT_STATE_THRESHOLDS",
    "GOVERNANCE_TABLES_VERSION",
    "MAJOR_PAIRS",
    "MULTIPLIER_BOUNDS",
    "STATE_CONFIG_TABLE",
]
