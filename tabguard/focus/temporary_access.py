"""
Temporary Access — time-limited exemptions from focus-mode domain blocking.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Dict, Optional


class TemporaryAccessRegistry:
    """
    domain → expiry map. Expired entries are dropped when looked up; nothing
    sweeps them in the background.
    """

    def __init__(self, clock: Callable[[], datetime]):
        self._clock = clock
        self._expiry: Dict[str, datetime] = {}

    def grant(self, domain: str, minutes: float) -> datetime:
        expires_at = self._clock() + timedelta(minutes=minutes)
        self._expiry[domain.lower()] = expires_at
        return expires_at

    def has_access(self, domain: str) -> bool:
        domain = domain.lower()
        expires_at = self._expiry.get(domain)
        if expires_at is None:
            return False
        if self._clock() >= expires_at:
            del self._expiry[domain]
            return False
        return True

    def expires_at(self, domain: str) -> Optional[datetime]:
        return self._expiry.get(domain.lower()) if self.has_access(domain) else None

    def clear(self) -> None:
        self._expiry.clear()

    def __len__(self) -> int:
        return len(self._expiry)
