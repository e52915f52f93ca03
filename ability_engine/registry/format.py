"""Text rendering of ability descriptors for whoever selects abilities."""

from __future__ import annotations

from ..schemas.core import AbilityDescriptor


def describe_ability(ability: AbilityDescriptor) -> str:
    """Return the ability description enriched with dependency and credential hints.

    Callers surface this text to whoever picks the next ability to run, so it
    spells out what has to be executed first and which credentials are needed.
    """
    desc = ability.description

    if ability.dependency_order:
        order = " -> ".join(f"`{dep}`" for dep in ability.dependency_order)
        desc += f"\n\n**Dependency Order:** This ability must be called AFTER: {order}"
        desc += "\nCall these abilities in sequence before executing this one."

    if ability.missing_dependencies:
        desc += "\n\n**Missing Dependencies:**"
        for dep in ability.missing_dependencies:
            line = f"\n- {dep.ability_id}"
            if dep.ability_name:
                line += f" ({dep.ability_name})"
            if dep.reference:
                line += f" - Referenced as {dep.reference}"
            desc += line

    if ability.requires_credentials:
        keys = ", ".join(str(k) for k in ability.dynamic_header_keys) or "not listed by the registry"
        desc += f"\n\n**Required Credentials:** {keys}"

    return desc
