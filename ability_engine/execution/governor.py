"""Bounding of response bodies handed back to callers."""

from __future__ import annotations

import json
import logging
from typing import Any, Tuple

from ..schemas.core import ExecutionResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 30000
TRUNCATION_HEADROOM = 1000


class ResponseGovernor:
    """Truncate oversized bodies to a head slice plus a marker.

    Strings are measured as-is; any other body is measured by its compact JSON
    serialization. A body within the limit is returned unchanged.
    """

    def __init__(self, max_chars: int = DEFAULT_MAX_CHARS) -> None:
        if max_chars <= TRUNCATION_HEADROOM:
            raise ValueError(f"max_chars must be greater than {TRUNCATION_HEADROOM}")
        self.max_chars = max_chars

    @staticmethod
    def _serialize(body: Any) -> str:
        if isinstance(body, str):
            return body
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False, default=str)

    def govern(self, body: Any) -> Tuple[Any, bool]:
        if body is None:
            return body, False
        text = self._serialize(body)
        if len(text) <= self.max_chars:
            return body, False

        shown = self.max_chars - TRUNCATION_HEADROOM
        logger.info("Response truncated from %d to %d characters", len(text), shown)
        marker = f"\n\n[... Response truncated. Original length: {len(text)} characters, showing first {shown} characters]"
        return text[:shown] + marker, True

    def apply(self, result: ExecutionResult) -> ExecutionResult:
        body, truncated = self.govern(result.response_body)
        if not truncated:
            return result
        return result.model_copy(update={"response_body": body, "truncated": True})
