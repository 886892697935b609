"""
Policy Application Services
===========================

Config store contract, the snapshot cache on the triage path, and the
admin-facing policy service.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError

from supportdesk.config import Role
from supportdesk.core import ConfigurationException, PermissionDeniedException, ValidationException
from supportdesk.policy.domain import PolicyConfig, PolicyPatch
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IConfigStore(ABC):
    """Interface for the single versioned policy record."""

    @abstractmethod
    async def get(self) -> PolicyConfig:
        """Current policy."""

    @abstractmethod
    async def update(self, patch: PolicyPatch) -> PolicyConfig:
        """Apply a validated patch and return the new policy."""


# ========== Snapshot Cache ==========

class PolicySnapshotCache:
    """
    Bounded-staleness cache in front of the config store.

    - A snapshot is served for at most `ttl_seconds` before the store is asked again
    - `invalidate()` forces the next read to go to the store
    - If the store fails and a snapshot exists, the old one keeps being served
    - Concurrent refreshes collapse into one store read
    """

    def __init__(
        self,
        store: IConfigStore,
        ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock
        self._snapshot: Optional[PolicyConfig] = None
        self._expires_at = 0.0
        self._stale = True
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._snapshot is not None
            and not self._stale
            and self._clock() < self._expires_at
        )

    async def get(self) -> PolicyConfig:
        """
        Current policy snapshot.

        Raises:
            ConfigurationException: the store failed and nothing is cached yet
        """
        if self._is_fresh():
            return self._snapshot

        async with self._lock:
            if self._is_fresh():
                return self._snapshot

            try:
                snapshot = await self._store.get()
            except Exception as e:
                if self._snapshot is None:
                    raise ConfigurationException(
                        "Policy config unavailable", {"error": str(e)}
                    ) from e
                logger.warning(
                    "Config store read failed, serving stale policy",
                    extra={"policy_version": self._snapshot.version, "error": str(e)}
                )
                self._expires_at = self._clock() + self._ttl
                return self._snapshot

            self._remember(snapshot)
            return snapshot

    def _remember(self, snapshot: PolicyConfig) -> None:
        if self._snapshot is not None and snapshot.version != self._snapshot.version:
            logger.info(
                "Policy snapshot refreshed",
                extra={"policy_version": snapshot.version, "previous_version": self._snapshot.version}
            )
        self._snapshot = snapshot
        self._expires_at = self._clock() + self._ttl
        self._stale = False

    def invalidate(self) -> None:
        """Drop freshness; safe to call from any thread."""
        self._stale = True


# ========== Application Services ==========

class PolicyService:
    """Read and update the triage policy."""

    def __init__(self, store: IConfigStore, cache: PolicySnapshotCache):
        self._store = store
        self._cache = cache

    async def get_config(self) -> PolicyConfig:
        return await self._cache.get()

    async def update_config(self, patch: Mapping[str, Any], role: Role) -> PolicyConfig:
        """
        Validate and apply a policy change.

        Args:
            patch: Fields to change, snake_case or camelCase
            role: Caller role; only admins may update

        Raises:
            PermissionDeniedException: caller is not an admin
            ValidationException: unknown key, null, or out-of-range value
        """
        if Role(role) != Role.ADMIN:
            raise PermissionDeniedException(
                "Only admins may update the policy", {"role": Role(role).value}
            )

        try:
            validated = PolicyPatch.model_validate(dict(patch))
        except ValidationError as e:
            raise ValidationException(
                "Invalid policy update",
                {"errors": e.errors(include_url=False, include_context=False)}
            ) from e

        if validated.is_empty:
            return await self.get_config()

        updated = await self._store.update(validated)
        self._cache.invalidate()

        logger.info(
            "Policy updated",
            extra={"policy_version": updated.version, "changes": validated.changes()}
        )
        return updated
