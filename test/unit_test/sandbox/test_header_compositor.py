from __future__ import annotations

import logging

import pytest

from ability_engine.sandbox.headers import HeaderCompositor
from ability_engine.schemas.core import HeaderKey, StaticHeader


def _lower(headers: dict) -> dict:
    return {k.lower(): v for k, v in headers.items()}


def test_precedence_static_dynamic_caller() -> None:
    compositor = HeaderCompositor(
        [
            StaticHeader(key="api.example.com::Accept", value_code="lambda: 'application/json'"),
            StaticHeader(key="api.example.com::Authorization", value_code="'static'"),
            StaticHeader(key="api.example.com::X-Client", value_code="'engine'"),
        ],
        [HeaderKey.parse("api.example.com::Authorization")],
        {"api.example.com::Authorization": "Bearer dynamic"},
    )

    composed = _lower(compositor.compose({"x-client": "caller"}))

    assert composed == {
        "accept": "application/json",
        "authorization": "Bearer dynamic",
        "x-client": "caller",
    }


def test_cookies_are_concatenated_in_precedence_order() -> None:
    compositor = HeaderCompositor(
        [StaticHeader(key="api.example.com::Cookie", value_code="'a'")],
        [HeaderKey.parse("api.example.com::Cookie")],
        {"api.example.com::Cookie": "b"},
    )

    composed = _lower(compositor.compose({"Cookie": "c"}))

    assert composed["cookie"] == "a; b; c"


def test_caller_and_request_layers_both_count() -> None:
    compositor = HeaderCompositor(caller_headers={"Cookie": "caller=1", "X-Mode": "caller"})

    composed = _lower(compositor.compose({"cookie": "req=2", "X-MODE": "request"}))

    assert composed == {"cookie": "caller=1; req=2", "x-mode": "request"}


@pytest.mark.parametrize("name", ["Content-Length", "content-length", "Host", "Transfer-Encoding", "Connection"])
def test_transport_headers_never_survive(name: str) -> None:
    compositor = HeaderCompositor([StaticHeader(key="Upgrade", value_code="'h2c'")])

    composed = _lower(compositor.compose({name: "123", "X-Keep": "1"}))

    assert name.lower() not in composed
    assert "upgrade" not in composed
    assert composed["x-keep"] == "1"


def test_failed_static_header_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    compositor = HeaderCompositor(
        [
            StaticHeader(key="svc::X-Broken", value_code="1 / 0"),
            StaticHeader(key="svc::X-Forbidden", value_code="open('x')"),
            StaticHeader(key="svc::X-Good", value_code="'ok'"),
        ]
    )

    with caplog.at_level(logging.WARNING, logger="ability_engine.sandbox.headers"):
        composed = compositor.compose()

    assert composed == {"X-Good": "ok"}
    assert "svc::X-Broken" in caplog.text
    assert "svc::X-Forbidden" in caplog.text


def test_dynamic_keys_without_credentials_are_omitted() -> None:
    compositor = HeaderCompositor(
        dynamic_header_keys=[HeaderKey.parse("svc::Authorization"), HeaderKey.parse("svc::X-Token")],
        credentials={"svc::X-Token": "t"},
    )
    assert compositor.dynamic_values() == {"X-Token": "t"}
