"""Just-in-time resolution of the secrets an ability declares.

The resolver turns an ability's ``dynamic_header_keys`` into a transient
``CredentialSet`` holding only those keys. Environment overrides are consulted
first; anything left is read from the credential store through the injected
``CredentialCache``. Values are never logged.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..registry.base import CredentialStore
from ..schemas.core import AbilityDescriptor, CredentialSet, HeaderKey
from .cache import CredentialCache, domain_variants
from .env import EnvCredentialSource

logger = logging.getLogger(__name__)


class CredentialResolver:
    """Resolve and invalidate per-domain credentials for ability executions."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        cache: Optional[CredentialCache] = None,
        env: Optional[EnvCredentialSource] = None,
    ) -> None:
        self._store = store
        self._cache = cache if cache is not None else CredentialCache()
        self._env = env

    @property
    def cache(self) -> CredentialCache:
        return self._cache

    @staticmethod
    def candidates(descriptor: AbilityDescriptor, key: HeaderKey) -> List[str]:
        """Store lookup names for a key: the service first, then domain variants."""
        names = [descriptor.service_name, *domain_variants(key.domain)]
        return [n for n in dict.fromkeys(names) if n]

    async def resolve(self, descriptor: AbilityDescriptor) -> CredentialSet:
        credentials: CredentialSet = self._env.resolve(descriptor) if self._env is not None else {}
        if credentials:
            logger.debug(
                "CredentialResolver.resolve: %d key(s) satisfied from environment for %s",
                len(credentials),
                descriptor.ability_id,
            )

        for key in descriptor.dynamic_header_keys:
            raw_key = str(key)
            if raw_key in credentials:
                continue
            for candidate in self.candidates(descriptor, key):
                found = await self._lookup(candidate)
                if not found:
                    continue
                value = found.get(raw_key, found.get(key.header_name))
                if value is not None:
                    credentials[raw_key] = value
                    break
            else:
                logger.debug("CredentialResolver.resolve: no credential for %s (%s)", raw_key, descriptor.ability_id)

        return credentials

    async def _lookup(self, candidate: str) -> Optional[CredentialSet]:
        hit, cached = await self._cache.get(candidate)
        if hit:
            return cached
        try:
            found = await self._store.get_credentials(candidate)
        except Exception as e:
            # Not cached: a store outage should not pin a negative lookup.
            logger.warning("Failed to read credentials for %s: %s", candidate, e)
            return None
        await self._cache.set(candidate, found)
        logger.debug(
            "CredentialResolver._lookup: %s -> %s",
            candidate,
            f"{len(found)} key(s)" if found else "none",
        )
        return found

    async def invalidate(self, descriptor: AbilityDescriptor) -> int:
        """Drop cached credentials for the ability's service and credential domains."""
        removed = 0
        for domain in dict.fromkeys([descriptor.service_name, *descriptor.credential_domains]):
            removed += await self._cache.expire(domain)
        logger.debug("CredentialResolver.invalidate: %s dropped %d cache entr(ies)", descriptor.service_name, removed)
        return removed
