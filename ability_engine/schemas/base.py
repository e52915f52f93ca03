"""Pydantic base schema utilities for ability engine models.

Provides a common `BaseSchema` that enforces aliasing and extra-field policy
for the domain models under `ability_engine.schemas`, and a lenient
`BaseDTO` for payloads read from the remote ability registry.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


def _to_camel(s: str) -> str:
    """Convert snake_case to camelCase for JSON aliasing."""
    parts = s.split("_")
    return parts[0] + "".join(p.capitalize() or "_" for p in parts[1:])


class BaseSchema(BaseModel):
    """Shared base for all domain models in ability_engine.

    - Sets strict handling for extra fields
    - Enables populate_by_name for using either snake_case or camelCase
    - Uses a snake->camel alias generator for JSON interop
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        alias_generator=_to_camel,  # snake_case -> camelCase aliases
    )


class BaseDTO(BaseModel):
    """Base for registry wire payloads.

    Registry responses carry many fields the engine does not use, so unknown
    keys are ignored instead of rejected.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        alias_generator=_to_camel,
    )
