"""Ability execution engine.

Runs registry-defined "abilities" (small pieces of Python code that call one
HTTP API) inside a restricted sandbox, injecting the credentials each ability
declares just before its request leaves the process.

Core subpackages
----------------

- ``ability_engine.schemas``: descriptors, results and settings.
- ``ability_engine.registry``: registry / credential store protocols and the
  HTTP client implementing them.
- ``ability_engine.credentials``: credential cache, environment overrides and
  the just-in-time resolver.
- ``ability_engine.sandbox``: code guard, header composition, the ``fetch``
  capability and the runtime.
- ``ability_engine.execution``: failure classification, response bounding and
  the ``AbilityExecutor`` orchestrator.

Typical workflow
----------------

1. Load ``EngineSettings`` from the environment.
2. Build an executor with ``AbilityExecutor.from_settings(settings)``.
3. Call ``execute_ability``, ``execute_abilities_parallel`` or
   ``execute_ability_chain``; each returns a result object and never raises.
"""

from .execution.orchestrator import AbilityExecutor
from .schemas.config import EngineSettings, load_settings

__all__ = [
    "AbilityExecutor",
    "EngineSettings",
    "load_settings",
]
