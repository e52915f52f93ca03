from __future__ import annotations

import json

import pytest

from ability_engine.execution.governor import ResponseGovernor
from ability_engine.schemas.core import ExecutionResult


def test_under_limit_bodies_are_returned_identical() -> None:
    governor = ResponseGovernor()
    body = {"items": list(range(100))}

    governed, truncated = governor.govern(body)

    assert governed is body
    assert truncated is False
    assert governor.govern(None) == (None, False)


def test_oversized_string_is_truncated_with_marker() -> None:
    governor = ResponseGovernor(max_chars=2000)
    body = "x" * 5000

    governed, truncated = governor.govern(body)

    assert truncated is True
    assert governed.startswith("x" * 1000)
    assert governed[:1000] == body[:1000]
    assert governed.endswith(
        "\n\n[... Response truncated. Original length: 5000 characters, showing first 1000 characters]"
    )


def test_structured_bodies_are_measured_by_compact_json() -> None:
    governor = ResponseGovernor(max_chars=1500)
    body = [{"id": i, "name": "n" * 20} for i in range(100)]
    serialized = json.dumps(body, separators=(",", ":"))

    governed, truncated = governor.govern(body)

    assert truncated is True
    assert governed.startswith(serialized[:500])
    assert f"Original length: {len(serialized)} characters" in governed


def test_apply_marks_result_truncated() -> None:
    governor = ResponseGovernor(max_chars=1001)
    result = ExecutionResult(success=True, status_code=200, response_body="y" * 2000)

    governed = governor.apply(result)

    assert governed.truncated is True
    assert governed.response_body.startswith("y")
    assert result.truncated is False
    assert governor.apply(ExecutionResult(success=True, response_body="ok")).truncated is False


def test_limit_must_leave_room_for_the_marker() -> None:
    with pytest.raises(ValueError):
        ResponseGovernor(max_chars=1000)
