"""Governance configuration loaded from environment via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime policy knobs for the trade governance engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True,
    )

    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="JSON_LOGS")

    # Bootstrap policy: below these trade counts the engine favours continuity over caution.
    governance_learning_milestone: int = Field(500, alias="GOVERNANCE_LEARNING_MILESTONE", ge=0)
    coalition_learning_milestone: int = Field(500, alias="COALITION_LEARNING_MILESTONE", ge=0)

    sizing_min_units: int = Field(500, alias="SIZING_MIN_UNITS", ge=1)
    sizing_max_units: int = Field(5000, alias="SIZING_MAX_UNITS", ge=1)
    default_account_balance: float = Field(100_000.0, alias="DEFAULT_ACCOUNT_BALANCE", gt=0)

    primary_pair: str = Field("USD_CAD", alias="PRIMARY_PAIR")
    history_lookback: int = Field(250, alias="HISTORY_LOOKBACK", ge=200)
    governance_rng_seed: Optional[int] = Field(None, alias="GOVERNANCE_RNG_SEED")

    @field_validator("primary_pair", mode="before")
    @classmethod
    def _normalize_pair(cls, value: str) -> str:
        """Accept EUR/USD, EURUSD or eur_usd and store the broker form EUR_USD."""
        raw = str(value).strip().upper().replace("/", "_")
        if "_" not in raw and len(raw) == 6:
            raw = f"{raw[:3]}_{raw[3:]}"
        return raw

    @field_validator("governance_rng_seed", mode="before")
    @classmethod
    def _normalize_seed(cls, value: Optional[str | int]) -> Optional[int]:
        if value in (None, "", "null", "None"):
            return None
        if isinstance(value, int):
            return value
        return int(value)

    @model_validator(mode="after")
    def _check_unit_bounds(self) -> "Settings":
        if self.sizing_min_units > self.sizing_max_units:
            raise ValueError("SIZING_MIN_UNITS must not exceed SIZING_MAX_UNITS")
        return self


@lru_cache(1)
def get_settings() -> Settings:
    """Return cached Settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
