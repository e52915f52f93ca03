"""Exceptions raised inside the ability engine.

The executor folds these into result objects; they only reach callers that use
the sandbox or chain validation directly.
"""

from __future__ import annotations


class AbilityEngineError(Exception):
    pass


class SandboxError(AbilityEngineError):
    """Base error for failures inside the ability sandbox."""


class SandboxCompileError(SandboxError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Ability code failed to compile: {message}")


class SandboxViolationError(SandboxError):
    def __init__(self, construct: str, line: int | None = None) -> None:
        where = f" (line {line})" if line else ""
        super().__init__(f"Ability code uses a forbidden construct: {construct}{where}")
        self.construct = construct
        self.line = line


class SandboxEntryPointError(SandboxError):
    def __init__(self, message: str = "entry point not found") -> None:
        super().__init__(message)


class TransformError(SandboxError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Transform failed: {message}")


class ChainValidationError(AbilityEngineError):
    pass
