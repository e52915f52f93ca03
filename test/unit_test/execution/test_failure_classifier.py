from __future__ import annotations

from typing import Any

import httpx
import pytest

from ability_engine.credentials.cache import CredentialCache
from ability_engine.credentials.resolver import CredentialResolver
from ability_engine.execution.classifier import FailureClassifier
from ability_engine.sandbox.network import SandboxResponse
from test.fakes import FakeRegistry, FakeStore, make_descriptor

SERVICE = "api.example.com"


def _response(status: int, body: Any = None) -> SandboxResponse:
    request = httpx.Request("GET", "https://mock-api.example.com/items")
    return SandboxResponse(httpx.Response(status, json=body if body is not None else {}, request=request))


def _login_candidates():
    return [
        make_descriptor("login-1", ability_name="Login to Example", description="Sign in with a password"),
        make_descriptor("login-other", service_name="other.example.com", ability_name="Login"),
        make_descriptor("login-dyn", ability_name="Refresh auth", dynamic_header_keys=[f"{SERVICE}::Cookie"]),
        make_descriptor("list-items", ability_name="List items", description="Lists items"),
        make_descriptor("oauth-1", ability_name="Start OAuth flow", description="Begins the oauth handshake"),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 201, 204, 302])
async def test_success_statuses_leave_credentials_alone(status: int) -> None:
    store = FakeStore({SERVICE: {"k": "v"}})
    registry = FakeRegistry()
    classifier = FailureClassifier(registry, store)

    result = await classifier.classify(make_descriptor(), _response(status), {"ok": True})

    assert result.success is True
    assert result.status_code == status
    assert result.response_body == {"ok": True}
    assert store.expire_calls == []
    assert registry.search_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403, 404, 429, 499])
async def test_client_errors_expire_credentials_exactly_once(status: int) -> None:
    store = FakeStore({SERVICE: {"k": "v"}})
    registry = FakeRegistry(search_results=_login_candidates())
    classifier = FailureClassifier(registry, store)

    result = await classifier.classify(make_descriptor(), _response(status), {"error": "denied"})

    assert result.success is False
    assert result.credentials_expired is True
    assert result.status_code == status
    assert result.response_body == {"error": "denied"}
    assert store.expire_calls == [SERVICE]
    assert registry.search_calls == [f"login {SERVICE}"]
    assert [a.id for a in result.login_abilities] == ["login-1", "oauth-1"]
    assert result.error == (
        f"Authentication failed ({status}). Credentials marked as expired."
        " Please authenticate using one of these login abilities: login-1, oauth-1"
    )
    assert [s.name for s in result.side_effects] == ["expire_credentials", "find_login_abilities"]
    assert all(s.ok for s in result.side_effects)


@pytest.mark.asyncio
async def test_auth_failure_without_login_abilities() -> None:
    classifier = FailureClassifier(FakeRegistry(), FakeStore())

    result = await classifier.classify(make_descriptor(), _response(401), None)

    assert result.error == "Authentication failed (401). Credentials marked as expired."
    assert result.login_abilities == []


@pytest.mark.asyncio
async def test_side_effect_failures_are_recorded_not_raised() -> None:
    store = FakeStore(expire_error=ConnectionError("store down"))
    registry = FakeRegistry(search_error=RuntimeError("search down"))
    classifier = FailureClassifier(registry, store)

    result = await classifier.classify(make_descriptor(), _response(403), None)

    assert result.credentials_expired is True
    assert store.expire_calls == [SERVICE]
    outcomes = {s.name: s for s in result.side_effects}
    assert outcomes["expire_credentials"].ok is False
    assert outcomes["expire_credentials"].error == "store down"
    assert outcomes["find_login_abilities"].ok is False


@pytest.mark.asyncio
async def test_auth_failure_invalidates_resolver_cache() -> None:
    store = FakeStore({SERVICE: {f"{SERVICE}::Authorization": "Bearer old"}})
    cache = CredentialCache()
    resolver = CredentialResolver(store, cache=cache)
    descriptor = make_descriptor(dynamic_header_keys=[f"{SERVICE}::Authorization"])
    await resolver.resolve(descriptor)
    assert cache.size() == 1

    await FailureClassifier(FakeRegistry(), store, resolver).classify(descriptor, _response(401), None)

    assert cache.size() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 500, 502, 503])
async def test_other_failures_do_not_touch_credentials(status: int) -> None:
    store = FakeStore({SERVICE: {"k": "v"}})
    registry = FakeRegistry(search_results=_login_candidates())

    result = await FailureClassifier(registry, store).classify(make_descriptor(), _response(status), {"detail": "x"})

    assert result.success is False
    assert result.credentials_expired is False
    assert result.response_body == {"detail": "x"}
    assert str(status) in (result.error or "")
    assert store.expire_calls == []
    assert registry.search_calls == []


def test_transient_and_missing_dependency_results() -> None:
    descriptor = make_descriptor(missing=["dep-1", "dep-2"])

    transient = FailureClassifier.transient(descriptor, httpx.ConnectTimeout("timed out"))
    assert transient.success is False
    assert transient.error == "timed out"
    assert transient.credentials_expired is False

    missing = FailureClassifier.missing_dependencies(descriptor)
    assert missing.error == "Missing dependencies: dep-1, dep-2. Execute these abilities first."


class _AckStore(FakeStore):
    def __init__(self, ack: Any) -> None:
        super().__init__()
        self.ack = ack

    async def expire_credentials(self, domain: str) -> Any:
        self.expire_calls.append(domain)
        return self.ack


@pytest.mark.asyncio
@pytest.mark.parametrize("ack", [None, True, "ok", {"success": True}])
async def test_any_expiry_ack_counts_as_success(ack: Any) -> None:
    store = _AckStore(ack)

    result = await FailureClassifier(FakeRegistry(), store).classify(make_descriptor(), _response(401), None)

    assert store.expire_calls == [SERVICE]
    outcome = next(s for s in result.side_effects if s.name == "expire_credentials")
    assert outcome.ok is True
    assert outcome.error is None


@pytest.mark.asyncio
async def test_login_candidates_flagged_as_needing_credentials_are_skipped() -> None:
    flagged = make_descriptor("login-flagged", ability_name="Login", requires_dynamic_headers=True)
    plain = make_descriptor("login-plain", ability_name="Login with password")
    registry = FakeRegistry(search_results=[flagged, plain])

    result = await FailureClassifier(registry, FakeStore()).classify(make_descriptor(), _response(401), None)

    assert [a.id for a in result.login_abilities] == ["login-plain"]
