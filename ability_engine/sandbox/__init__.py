"""Sandboxed execution of registry-supplied ability code.

- ``guard``: AST checks and restricted builtins for untrusted source.
- ``headers``: static / dynamic / caller header composition.
- ``network``: the timeout-bounded ``fetch`` capability.
- ``runtime``: runs ability entry points and transform expressions.
"""

from .guard import evaluate_expression
from .headers import HeaderCompositor
from .network import NetworkPrimitive, SandboxResponse
from .runtime import SandboxRuntime

__all__ = [
    "HeaderCompositor",
    "NetworkPrimitive",
    "SandboxResponse",
    "SandboxRuntime",
    "evaluate_expression",
]
