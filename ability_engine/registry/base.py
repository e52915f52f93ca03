"""Collaborator protocols consumed by the ability engine.

The engine never talks to the registry or the credential store directly; it
depends on these protocols so that tests and alternative backends can supply
their own implementations. `RegistryApiClient` satisfies both over HTTP.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from ability_engine.schemas.core import AbilityDescriptor, ChainStep, CredentialSet


@runtime_checkable
class AbilityRegistry(Protocol):
    async def get_ability(self, ability_id: str) -> AbilityDescriptor: ...

    async def search_abilities(self, query: str, *, limit: int = 30) -> List[AbilityDescriptor]: ...

    async def register_workflow(self, name: str, steps: Sequence[ChainStep]) -> Dict[str, Any]: ...


@runtime_checkable
class CredentialStore(Protocol):
    async def get_credentials(self, domain: str) -> Optional[CredentialSet]: ...

    async def expire_credentials(self, domain: str) -> Any: ...
