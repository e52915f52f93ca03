"""In-memory collaborators and builders shared by the engine tests."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import httpx

from ability_engine.execution.orchestrator import AbilityExecutor
from ability_engine.registry.errors import AbilityNotFoundError
from ability_engine.sandbox.network import NetworkPrimitive
from ability_engine.schemas.core import AbilityDescriptor, ChainStep, CredentialSet

API_BASE = "https://mock-api.example.com"


def ability_code(path: str = "/items", *, method: str = "GET", extra_headers: Optional[Dict[str, str]] = None) -> str:
    """Ability fragment that forwards scalar payload values as query params (or the payload as JSON for POST)."""
    headers = repr(extra_headers or {})
    if method == "GET":
        query = "{k: v for k, v in payload.items() if isinstance(v, (str, int, float, bool))}"
        call = f'fetch("{API_BASE}{path}", params={query}, headers={headers})'
    else:
        call = f'fetch("{API_BASE}{path}", method="{method}", json=payload, headers={headers})'
    return f"async def invoke(payload, options):\n    return await {call}\n"


def make_descriptor(
    ability_id: str = "ab-1",
    *,
    service_name: str = "api.example.com",
    code: Optional[str] = None,
    dynamic_header_keys: Iterable[str] = (),
    static_headers: Iterable[Dict[str, str]] = (),
    missing: Iterable[str] = (),
    **kwargs: Any,
) -> AbilityDescriptor:
    return AbilityDescriptor(
        ability_id=ability_id,
        ability_name=kwargs.pop("ability_name", f"Ability {ability_id}"),
        service_name=service_name,
        description=kwargs.pop("description", f"Calls {service_name}"),
        code=code if code is not None else ability_code(),
        static_headers=list(static_headers),
        dynamic_header_keys=list(dynamic_header_keys),
        missing_dependencies=[{"ability_id": m} for m in missing],
        **kwargs,
    )


class FakeRegistry:
    def __init__(
        self,
        abilities: Iterable[AbilityDescriptor] = (),
        *,
        search_results: Sequence[AbilityDescriptor] = (),
        search_error: Optional[Exception] = None,
        register_error: Optional[Exception] = None,
    ) -> None:
        self.abilities: Dict[str, AbilityDescriptor] = {a.ability_id: a for a in abilities}
        self.search_results = list(search_results)
        self.search_error = search_error
        self.register_error = register_error
        self.exploding: Dict[str, Exception] = {}
        self.get_calls: List[str] = []
        self.search_calls: List[str] = []
        self.registered: List[Dict[str, Any]] = []

    async def get_ability(self, ability_id: str) -> AbilityDescriptor:
        self.get_calls.append(ability_id)
        if ability_id in self.exploding:
            raise self.exploding[ability_id]
        if ability_id not in self.abilities:
            raise AbilityNotFoundError(ability_id)
        return self.abilities[ability_id]

    async def search_abilities(self, query: str, *, limit: int = 30) -> List[AbilityDescriptor]:
        self.search_calls.append(query)
        if self.search_error is not None:
            raise self.search_error
        return self.search_results[:limit]

    async def register_workflow(self, name: str, steps: Sequence[ChainStep]) -> Dict[str, Any]:
        if self.register_error is not None:
            raise self.register_error
        self.registered.append({"name": name, "steps": list(steps)})
        return {"success": True, "abilityId": f"workflow-{len(self.registered)}"}


class FakeStore:
    def __init__(self, credentials: Optional[Dict[str, CredentialSet]] = None, *, expire_error: Optional[Exception] = None) -> None:
        self.credentials: Dict[str, CredentialSet] = dict(credentials or {})
        self.expire_error = expire_error
        self.get_calls: List[str] = []
        self.expire_calls: List[str] = []

    async def get_credentials(self, domain: str) -> Optional[CredentialSet]:
        self.get_calls.append(domain)
        found = self.credentials.get(domain)
        return dict(found) if found is not None else None

    async def expire_credentials(self, domain: str) -> Dict[str, Any]:
        self.expire_calls.append(domain)
        if self.expire_error is not None:
            raise self.expire_error
        removed = self.credentials.pop(domain, None)
        count = len(removed) if removed else 0
        return {"success": True, "message": f"Deleted {count} credentials for {domain}"}


Handler = Callable[[httpx.Request], httpx.Response]


def recording_transport(handler: Handler, seen: List[httpx.Request]) -> httpx.MockTransport:
    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return httpx.MockTransport(_handler)


def build_executor(
    registry: FakeRegistry,
    store: FakeStore,
    handler: Handler,
    *,
    seen: Optional[List[httpx.Request]] = None,
    **kwargs: Any,
) -> AbilityExecutor:
    """Executor whose sandbox network is served by ``handler`` through httpx.MockTransport."""
    client = httpx.AsyncClient(transport=recording_transport(handler, seen if seen is not None else []))
    network = NetworkPrimitive(timeout=2.0, client=client)
    return AbilityExecutor(registry, store, network_factory=network.bind, **kwargs)
