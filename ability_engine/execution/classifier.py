"""Turn a sandbox outcome into an ``ExecutionResult``.

Status handling:

- 2xx / 3xx: success.
- 401-499: the service's credentials are treated as expired. They are deleted
  from the store (once), the local cache is invalidated and login abilities for
  the service are suggested in the error.
- 400, 1xx, 5xx: plain failure, no credential mutation.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from ..credentials.resolver import CredentialResolver
from ..registry.base import AbilityRegistry, CredentialStore
from ..sandbox.network import SandboxResponse
from ..schemas.core import AbilityDescriptor, ExecutionResult, LoginAbility, SideEffectOutcome

logger = logging.getLogger(__name__)

LOGIN_TERMS = ("login", "auth", "signin", "sign-in", "sign in")
LOGIN_SEARCH_LIMIT = 10


def is_credential_failure(status: int) -> bool:
    return 401 <= status <= 499


def is_success(status: int) -> bool:
    return 200 <= status < 400


class FailureClassifier:
    def __init__(
        self,
        registry: AbilityRegistry,
        store: CredentialStore,
        resolver: Optional[CredentialResolver] = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._resolver = resolver

    async def classify(
        self,
        descriptor: AbilityDescriptor,
        response: SandboxResponse,
        body: Any,
    ) -> ExecutionResult:
        status = response.status
        headers = response.headers

        if is_success(status):
            return ExecutionResult(
                success=True,
                status_code=status,
                response_body=body,
                response_headers=headers,
            )

        if is_credential_failure(status):
            return await self._credential_failure(descriptor, status, body, headers)

        logger.info("Ability %s failed with HTTP %d", descriptor.ability_id, status)
        return ExecutionResult.failure(
            f"HTTP {status}: request to {descriptor.service_name} failed",
            status_code=status,
            response_body=body,
            response_headers=headers,
        )

    async def _credential_failure(
        self,
        descriptor: AbilityDescriptor,
        status: int,
        body: Any,
        headers: dict,
    ) -> ExecutionResult:
        service = descriptor.service_name
        logger.warning("Ability %s got HTTP %d; expiring credentials for %s", descriptor.ability_id, status, service)
        side_effects: List[SideEffectOutcome] = []

        try:
            ack = await self._store.expire_credentials(service)
        except Exception as e:
            logger.warning("Failed to expire credentials for %s: %s", service, e)
            side_effects.append(SideEffectOutcome(name="expire_credentials", ok=False, error=str(e)))
        else:
            logger.debug("FailureClassifier: expire_credentials(%s) acknowledged: %r", service, ack)
            side_effects.append(SideEffectOutcome(name="expire_credentials"))

        if self._resolver is not None:
            await self._resolver.invalidate(descriptor)

        login_abilities, search_outcome = await self._find_login_abilities(service)
        side_effects.append(search_outcome)

        error = f"Authentication failed ({status}). Credentials marked as expired."
        if login_abilities:
            error += " Please authenticate using one of these login abilities: " + ", ".join(
                a.id for a in login_abilities
            )

        return ExecutionResult.failure(
            error,
            status_code=status,
            response_body=body,
            response_headers=headers,
            credentials_expired=True,
            login_abilities=login_abilities,
            side_effects=side_effects,
        )

    async def _find_login_abilities(self, service: str) -> Tuple[List[LoginAbility], SideEffectOutcome]:
        try:
            candidates = await self._registry.search_abilities(f"login {service}", limit=LOGIN_SEARCH_LIMIT)
        except Exception as e:
            logger.warning("Login ability search for %s failed: %s", service, e)
            return [], SideEffectOutcome(name="find_login_abilities", ok=False, error=str(e))

        found: List[LoginAbility] = []
        for ability in candidates:
            if ability.service_name != service or ability.requires_credentials:
                continue
            text = f"{ability.ability_name} {ability.description}".lower()
            if not any(term in text for term in LOGIN_TERMS):
                continue
            found.append(
                LoginAbility(id=ability.ability_id, name=ability.ability_name, description=ability.description)
            )
        logger.debug("FailureClassifier: %d login abilities for %s", len(found), service)
        return found, SideEffectOutcome(name="find_login_abilities")

    @staticmethod
    def transient(descriptor: AbilityDescriptor, exc: BaseException) -> ExecutionResult:
        """Result for a transport failure; credentials are left untouched."""
        logger.warning("Ability %s transport failure: %s", descriptor.ability_id, exc)
        return ExecutionResult.failure(str(exc) or type(exc).__name__)

    @staticmethod
    def missing_dependencies(descriptor: AbilityDescriptor) -> ExecutionResult:
        ids = ", ".join(dep.ability_id for dep in descriptor.missing_dependencies)
        return ExecutionResult.failure(f"Missing dependencies: {ids}. Execute these abilities first.")
