"""Execution of ability fragments and transform expressions.

An ability fragment is Python source defining an ``invoke`` (or legacy
``wrapper``) function::

    async def invoke(payload, options):
        return await fetch(
            "https://api.example.com/items",
            params={"q": payload["query"]},
        )

The fragment sees only the names placed in its namespace here plus the safe
builtins. It never sees resolved secrets; those are attached by ``fetch``.
"""

from __future__ import annotations

import inspect
import json
import logging
import os
from types import MappingProxyType, SimpleNamespace
from typing import Any, Dict, Iterable, Mapping, Optional
from urllib.parse import quote, urlencode

from ..errors import SandboxEntryPointError, SandboxError, TransformError
from ..schemas.core import AbilityDescriptor
from .guard import compile_function, exec_fragment, restricted_globals, sandbox_logger
from .network import FetchFunction, SandboxResponse

logger = logging.getLogger(__name__)

ENTRY_POINTS = ("invoke", "wrapper")
SECRET_ENV_NAME = "SECRET"

_JSON_HELPERS = SimpleNamespace(dumps=json.dumps, loads=json.loads)


class SandboxRuntime:
    """Runs ability code with a fixed, minimal set of capabilities.

    Args:
        env_allowlist: Environment variable names ability code may read via ``env``.
        secret: Optional value exposed to ability code as ``env["SECRET"]``.
        environ: Source mapping for the allow-listed variables (defaults to ``os.environ``).
    """

    def __init__(
        self,
        env_allowlist: Iterable[str] = (),
        *,
        secret: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        source = environ if environ is not None else os.environ
        visible: Dict[str, str] = {name: source[name] for name in env_allowlist if name in source}
        if secret:
            visible[SECRET_ENV_NAME] = secret
        self._env = MappingProxyType(visible)

    @property
    def env(self) -> Mapping[str, str]:
        return self._env

    def _namespace(self, fetch: Optional[FetchFunction] = None) -> Dict[str, Any]:
        extra: Dict[str, Any] = {
            "json": _JSON_HELPERS,
            "urlencode": urlencode,
            "quote": quote,
            "log": sandbox_logger.info,
            "env": self._env,
        }
        if fetch is not None:
            extra["fetch"] = fetch
        return restricted_globals(extra)

    async def invoke(
        self,
        descriptor: AbilityDescriptor,
        payload: Mapping[str, Any],
        options: Optional[Mapping[str, Any]],
        fetch: FetchFunction,
    ) -> SandboxResponse:
        """Run the descriptor's code and return the response its entry point produced.

        Raises:
            SandboxError: If the code does not compile, breaks the guard, has no
                entry point or returns something other than a fetch response.
            httpx.HTTPError: Transport failures raised by ``fetch``.
        """
        namespace = self._namespace(fetch)
        exec_fragment(descriptor.code, namespace, filename=f"<ability:{descriptor.ability_id}>")

        entry = None
        for name in ENTRY_POINTS:
            candidate = namespace.get(name)
            if callable(candidate):
                entry = candidate
                break
        if entry is None:
            raise SandboxEntryPointError()

        logger.debug("SandboxRuntime.invoke: running %s for %s", entry.__name__, descriptor.ability_id)
        result = entry(dict(payload), dict(options or {}))
        if inspect.isawaitable(result):
            result = await result

        if not isinstance(result, SandboxResponse):
            raise SandboxError(
                f"Ability code must return the response from fetch(), got {type(result).__name__}"
            )
        return result

    def transform(self, code: str, data: Any) -> Any:
        """Apply a transform expression such as ``lambda data: data["items"]``."""
        try:
            fn = compile_function(code, self._namespace())
            return fn(data)
        except TransformError:
            raise
        except Exception as e:
            raise TransformError(str(e)) from e
