"""Owner keys — hashing, tier caps and the validator contract.

Callers present a plain key; only its salted sha256 hash is ever stored or
compared. Resolving a key to a tier belongs to an external license service;
``StaticKeyValidator`` covers local deployments and tests.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from cadence.config import settings

logger = logging.getLogger(__name__)

# Maximum concurrently enabled schedules per tier.
TIER_LIMITS = {"pro": 5, "premium": 15}
DEFAULT_TIER = "pro"


def hash_key(key: str, salt: str | None = None) -> str:
    """Return the hex sha256 of *key* + *salt*."""
    salt = settings.owner_key_salt if salt is None else salt
    return hashlib.sha256((key + salt).encode()).hexdigest()


def tier_limit(tier: str) -> int:
    """Enabled-schedule cap for *tier*; unknown tiers get the default tier's."""
    return TIER_LIMITS.get(tier, TIER_LIMITS[DEFAULT_TIER])


@dataclass
class OwnerIdentity:
    owner_key: str
    tier: str = DEFAULT_TIER
    expires_at: datetime | None = None

    @property
    def max_enabled(self) -> int:
        return tier_limit(self.tier)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


@runtime_checkable
class OwnerValidator(Protocol):
    async def resolve(self, key: str) -> OwnerIdentity | None:
        """Map a presented key to an identity, or None if it is not valid."""
        ...


class StaticKeyValidator:
    """Validates keys against a fixed hash → tier table.

    Defaults to the ``OWNER_KEYS`` setting (``hash:tier,hash:tier``).
    """

    def __init__(self, keys: dict[str, str] | None = None, salt: str | None = None) -> None:
        self._keys = settings.get_owner_keys() if keys is None else keys
        self._salt = salt

    async def resolve(self, key: str) -> OwnerIdentity | None:
        if not key:
            return None
        hashed = hash_key(key, self._salt)
        tier = self._keys.get(hashed)
        if tier is None:
            logger.info("Rejected unknown owner key %s…", hashed[:8])
            return None
        return OwnerIdentity(owner_key=hashed, tier=tier)
