"""Error types specific to the ability registry layer.

Purpose:
- Provide typed exceptions thrown by `RegistryApiClient` and consumers of the
  registry REST API.
- Expose HTTP-oriented context (e.g., status code, error body) for diagnosis.

Usage:
- Catch `RegistryApiError` for general failures and inspect `status_code` or
  `details`.
- Catch `AbilityNotFoundError` when an ability lookup by ID returns 404.
"""

from __future__ import annotations

from typing import Any, Optional


class RegistryApiError(Exception):
    """Base error for registry API failures.

    Args:
        message: Human-readable error description.
        status_code: Optional HTTP status code associated with the failure.
        details: Optional structured payload from the server (e.g., JSON body).
    """
    def __init__(self, message: str, *, status_code: Optional[int] = None, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AbilityNotFoundError(RegistryApiError):
    """Raised when the requested ability cannot be found (HTTP 404).

    Args:
        ability_id: The ability identifier that was not found.
    """
    def __init__(self, ability_id: str) -> None:
        super().__init__(f"Ability not found: {ability_id}", status_code=404)
        self.ability_id = ability_id
