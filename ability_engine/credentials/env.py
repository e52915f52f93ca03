"""Environment-variable credential overrides.

Lets operators satisfy an ability's secret headers from the process
environment instead of the credential store. Two mechanisms are supported:

- JSON maps of ``{"domain::Header": "value"}`` in one of ``OVERRIDE_VARS``.
- Individual variables whose names are derived from the header key, e.g.
  ``api.example.com::Authorization`` is looked up as
  ``API_EXAMPLE_COM__AUTHORIZATION``, ``ABILITY_API_EXAMPLE_COM_AUTHORIZATION``
  and so on.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Dict, List, Mapping, Optional

from ..schemas.core import AbilityDescriptor, CredentialSet, HeaderKey

logger = logging.getLogger(__name__)

OVERRIDE_VARS = (
    "ABILITY_TOOL_HEADERS",
    "ABILITY_DYNAMIC_HEADERS",
    "TOOL_DYNAMIC_HEADERS",
    "MCP_TOOL_HEADERS",
)
ENV_PREFIXES = ("ABILITY", "TOOL", "MCP")
API_KEY_HEADERS = ("X_API_KEY", "API_KEY")
# Engine secrets; never sent to an ability's service.
RESERVED_ENV_NAMES = frozenset({"ABILITY_API_KEY", "ABILITY_SANDBOX_SECRET"})


def sanitize_env_segment(value: str) -> str:
    collapsed = re.sub(r"_+", "_", re.sub(r"[^a-zA-Z0-9]", "_", value.strip()))
    return collapsed.strip("_").upper()


def env_candidates(key: HeaderKey) -> List[str]:
    """Environment variable names checked for a header key, most specific first."""
    domain = sanitize_env_segment(key.domain)
    header = sanitize_env_segment(key.header_name)
    combined = sanitize_env_segment(str(key).replace("::", "__"))
    domain_no_www = re.sub(r"^WWW_", "", domain)

    base: List[str] = []
    if combined:
        base.append(combined)
    if domain and header:
        base += [f"{domain}__{header}", f"{domain}_{header}"]
    if domain_no_www and header:
        base += [f"{domain_no_www}__{header}", f"{domain_no_www}_{header}"]
    if header:
        base.append(header)

    expanded: List[str] = []
    for candidate in dict.fromkeys(base):
        expanded.append(candidate)
        expanded.extend(f"{prefix}_{candidate}" for prefix in ENV_PREFIXES)
    return [name for name in dict.fromkeys(expanded) if name not in RESERVED_ENV_NAMES]


def api_key_candidates(key: HeaderKey) -> List[str]:
    """Fallback names for API-key style headers."""
    if sanitize_env_segment(key.header_name) not in API_KEY_HEADERS:
        return []
    domain = sanitize_env_segment(key.domain)
    domain_no_www = re.sub(r"^WWW_", "", domain)
    names: List[str] = []
    if domain:
        names += [f"{domain}_API_KEY", f"{domain}__API_KEY", f"{domain}_KEY", f"{domain}__KEY"]
    if domain_no_www:
        names += [f"{domain_no_www}_API_KEY", f"{domain_no_www}__API_KEY"]
    names.append("API_KEY")
    return list(dict.fromkeys(names))


class EnvCredentialSource:
    """Resolve header keys from environment variables, memoizing each lookup."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ: Mapping[str, str] = environ if environ is not None else os.environ
        self._overrides = self._load_overrides()
        self._memo: Dict[str, Optional[str]] = {}

    def _load_overrides(self) -> Dict[str, str]:
        mapping: Dict[str, str] = {}
        for var_name in OVERRIDE_VARS:
            raw = self._environ.get(var_name)
            if not raw:
                continue
            try:
                parsed = json.loads(raw)
            except ValueError as e:
                logger.warning("Failed to parse %s as JSON: %s", var_name, e)
                continue
            if isinstance(parsed, dict):
                for k, v in parsed.items():
                    if isinstance(k, str) and isinstance(v, str):
                        mapping[k] = v
        return mapping

    def lookup(self, key: HeaderKey) -> Optional[str]:
        raw_key = str(key)
        if raw_key in self._memo:
            return self._memo[raw_key]

        value: Optional[str] = None
        if raw_key in self._overrides:
            value = self._overrides[raw_key]
        else:
            for name in env_candidates(key) + api_key_candidates(key):
                if name in self._environ:
                    value = self._environ[name]
                    if value.strip():
                        break

        value = value.strip() if isinstance(value, str) and value.strip() else None
        self._memo[raw_key] = value
        return value

    def resolve(self, descriptor: AbilityDescriptor) -> CredentialSet:
        """Return the descriptor's keys that the environment can satisfy."""
        found: CredentialSet = {}
        for key in descriptor.dynamic_header_keys:
            value = self.lookup(key)
            if value is not None:
                found[str(key)] = value
        return found

    def group_by_domain(self, descriptor: AbilityDescriptor) -> Dict[str, CredentialSet]:
        grouped: Dict[str, CredentialSet] = {}
        for key in descriptor.dynamic_header_keys:
            value = self.lookup(key)
            if value is None or not key.domain:
                continue
            grouped.setdefault(key.domain, {})[str(key)] = value
        return grouped
