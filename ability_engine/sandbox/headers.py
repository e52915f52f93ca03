"""Header composition for outgoing sandbox requests.

Merge precedence, lowest to highest:

1. static headers declared by the ability (evaluated expressions)
2. dynamic headers backed by resolved secrets
3. headers supplied by the caller of the execution
4. headers passed by the ability code on an individual request

Header names are matched case-insensitively. ``Cookie`` values from several
sources are joined with ``"; "`` instead of overwritten. Transport-managed
headers are always dropped so the HTTP client computes them itself.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..schemas.core import CredentialSet, HeaderKey, StaticHeader
from .guard import evaluate_expression

logger = logging.getLogger(__name__)

STRIPPED_HEADERS = frozenset(
    {
        "content-length",
        "transfer-encoding",
        "host",
        "connection",
        "keep-alive",
        "upgrade",
    }
)
COOKIE_HEADER = "cookie"
COOKIE_SEPARATOR = "; "

ExpressionEvaluator = Callable[[str], Any]


class HeaderCompositor:
    def __init__(
        self,
        static_headers: Sequence[StaticHeader] = (),
        dynamic_header_keys: Sequence[HeaderKey] = (),
        credentials: Optional[CredentialSet] = None,
        *,
        caller_headers: Optional[Mapping[str, Any]] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
    ) -> None:
        self._static_headers = list(static_headers)
        self._dynamic_header_keys = list(dynamic_header_keys)
        self._credentials: CredentialSet = dict(credentials or {})
        self._caller_headers = dict(caller_headers or {})
        self._evaluate = evaluator or evaluate_expression

    def static_values(self) -> Dict[str, str]:
        """Evaluate static headers; a header whose expression fails is skipped."""
        values: Dict[str, str] = {}
        for header in self._static_headers:
            name = header.header_name
            if not name:
                continue
            try:
                value = self._evaluate(header.value_code)
            except Exception as e:
                logger.warning("Failed to evaluate static header %s: %s", header.key, e)
                continue
            if value is None:
                continue
            values[name] = str(value)
        return values

    def dynamic_values(self) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for key in self._dynamic_header_keys:
            secret = self._credentials.get(str(key))
            if secret:
                values[key.header_name] = secret
        return values

    def compose(self, request_headers: Optional[Mapping[str, Any]] = None) -> Dict[str, str]:
        layers: List[Mapping[str, Any]] = [
            self.static_values(),
            self.dynamic_values(),
            self._caller_headers,
            dict(request_headers or {}),
        ]
        merged: Dict[str, Tuple[str, str]] = {}
        for layer in layers:
            for name, value in layer.items():
                if value is None:
                    continue
                lower = name.lower()
                text = str(value)
                if lower == COOKIE_HEADER and lower in merged:
                    _, existing = merged[lower]
                    merged[lower] = (name, f"{existing}{COOKIE_SEPARATOR}{text}")
                else:
                    merged[lower] = (name, text)

        composed = {name: value for lower, (name, value) in merged.items() if lower not in STRIPPED_HEADERS}
        logger.debug(
            "HeaderCompositor.compose: headers=%s",
            sorted(composed.keys()),
        )
        return composed
