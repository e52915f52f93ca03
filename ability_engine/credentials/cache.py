"""Credential caching for resolved per-domain secrets.

This module provides an explicit, injectable cache used by the credential
resolver so that repeated executions against the same domain do not hit the
credential store every time.
"""

import asyncio
from typing import Dict, Optional, Tuple

from ..schemas.core import CredentialSet

_MISSING = object()


def domain_variants(domain: str) -> list[str]:
    """Return the lookup names a domain may be stored under.

    ``api.example.com`` is also tried as ``api-example-com`` and
    ``api_example_com``.
    """
    trimmed = domain.strip()
    if not trimmed:
        return []
    variants = [trimmed, trimmed.replace(".", "-"), trimmed.replace(".", "_")]
    return list(dict.fromkeys(variants))


class CredentialCache:
    """Cache for resolved credential sets keyed by domain.

    This cache handles:
    - Positive and negative lookups (a domain with no credentials is cached as None)
    - Safe access from concurrent executions
    - Invalidation of a domain and all its lookup variants

    Concurrent misses for the same domain may each fetch and store a value; the
    last write wins and the map is never left half-updated.

    Attributes:
        max_size: Maximum number of domains to cache (0 = unlimited)
    """

    def __init__(self, max_size: int = 0) -> None:
        """Initialize the credential cache.

        Args:
            max_size: Maximum number of domains to cache (0 = unlimited)
        """
        self._entries: Dict[str, Optional[CredentialSet]] = {}
        self._max_size = max_size
        self._lock = asyncio.Lock()

    async def get(self, domain: str) -> Tuple[bool, Optional[CredentialSet]]:
        """Look up a domain.

        Args:
            domain: Domain or lookup variant

        Returns:
            ``(hit, credentials)``; ``credentials`` is None for a cached negative lookup
        """
        async with self._lock:
            if domain not in self._entries:
                return False, None
            cached = self._entries[domain]
            return True, dict(cached) if cached is not None else None

    async def set(self, domain: str, credentials: Optional[CredentialSet]) -> None:
        """Store the credentials resolved for a domain (None marks a miss)."""
        async with self._lock:
            self._store(domain, dict(credentials) if credentials is not None else None)

    async def expire(self, domain: str) -> int:
        """Drop a domain and its lookup variants.

        Returns:
            Number of entries removed
        """
        removed = 0
        async with self._lock:
            for candidate in domain_variants(domain):
                if self._entries.pop(candidate, _MISSING) is not _MISSING:
                    removed += 1
        return removed

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def size(self) -> int:
        """Get the current cache size."""
        return len(self._entries)

    def _store(self, domain: str, credentials: Optional[CredentialSet]) -> None:
        if domain not in self._entries and self._max_size > 0 and len(self._entries) >= self._max_size:
            # Remove oldest entry (simple FIFO)
            oldest = next(iter(self._entries))
            self._entries.pop(oldest)
        self._entries[domain] = credentials

