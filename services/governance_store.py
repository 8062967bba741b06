"""Process-scoped governance state.

Holds the mutable pieces the engines themselves never touch: the last batch
statistics, the shadow-mode flag (evaluate but never execute) and the
registry of temporary gate bypasses. Create one store at process start,
inject it into the evaluation cycle and mutate it only through its methods.
``reset()`` restores the start-of-process state.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from app.core.errors import GovernanceError
from schemas.governance import GovernanceResult, GovernanceStats
from services.trade_governance import compute_governance_stats

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BypassEntry:
    """Operator-granted exemption for one key (e.g. a pair or agent id)."""

    key: str
    reason: str
    granted_at: datetime
    expires_at: Optional[datetime] = None

    def is_active(self, at: datetime) -> bool:
        return self.expires_at is None or at < self.expires_at


class GovernanceStore:
    """Explicit container for governance state shared across cycles."""

    def __init__(self, *, shadow_mode: bool = False) -> None:
        self._lock = threading.Lock()
        self._initial_shadow_mode = shadow_mode
        self._shadow_mode = shadow_mode
        self._shadow_violations = 0
        self._last_stats: Optional[GovernanceStats] = None
        self._last_results: List[GovernanceResult] = []
        self._bypasses: Dict[str, BypassEntry] = {}

    # --- Lifecycle ---------------------------------------------------------

    def reset(self) -> None:
        with self._lock:
            self._shadow_mode = self._initial_shadow_mode
            self._shadow_violations = 0
            self._last_stats = None
            self._last_results = []
            self._bypasses = {}

    # --- Governance stats --------------------------------------------------

    def record_results(self, results: Sequence[GovernanceResult]) -> GovernanceStats:
        stats = compute_governance_stats(results)
        with self._lock:
            self._last_results = list(results)
            self._last_stats = stats
        return stats

    @property
    def last_stats(self) -> Optional[GovernanceStats]:
        return self._last_stats

    @property
    def last_results(self) -> List[GovernanceResult]:
        return list(self._last_results)

    # --- Shadow mode -------------------------------------------------------

    def set_shadow_mode(self, enabled: bool) -> None:
        with self._lock:
            if enabled != self._shadow_mode:
                logger.info("Shadow mode %s", "enabled" if enabled else "disabled")
            self._shadow_mode = enabled

    @property
    def shadow_mode(self) -> bool:
        return self._shadow_mode

    @property
    def shadow_violations(self) -> int:
        return self._shadow_violations

    def assert_not_shadow_mode(self, context: str = "execution") -> bool:
        """Return False (and count a violation) when execution is attempted in shadow mode."""
        with self._lock:
            if not self._shadow_mode:
                return True
            self._shadow_violations += 1
        logger.warning("Blocked %s attempted in shadow mode; order not placed", context)
        return False

    # --- Bypass registry ---------------------------------------------------

    def grant_bypass(
        self,
        key: str,
        reason: str,
        *,
        expires_at: Optional[datetime] = None,
        at: Optional[datetime] = None,
    ) -> BypassEntry:
        granted_at = at or _now()
        if not key.strip():
            raise GovernanceError("bypass key must name a pair")
        if expires_at is not None and expires_at <= granted_at:
            raise GovernanceError(f"bypass for {key} would expire before it is granted")
        entry = BypassEntry(key=key, reason=reason, granted_at=granted_at, expires_at=expires_at)
        with self._lock:
            self._bypasses[key] = entry
        logger.info("Bypass granted for %s: %s", key, reason)
        return entry

    def revoke_bypass(self, key: str) -> bool:
        with self._lock:
            return self._bypasses.pop(key, None) is not None

    def is_bypassed(self, key: str, at: Optional[datetime] = None) -> bool:
        at = at or _now()
        entry = self._bypasses.get(key)
        return entry is not None and entry.is_active(at)

    def active_bypasses(self, at: Optional[datetime] = None) -> List[BypassEntry]:
        at = at or _now()
        return [entry for entry in self._bypasses.values() if entry.is_active(at)]

    def prune_expired(self, at: Optional[datetime] = None) -> int:
        at = at or _now()
        with self._lock:
            expired = [k for k, entry in self._bypasses.items() if not entry.is_active(at)]
            for key in expired:
                del self._bypasses[key]
        return len(expired)
