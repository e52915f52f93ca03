from .config import EngineSettings, load_settings
from .core import (
    AbilityDescriptor,
    BatchFailure,
    BatchItem,
    BatchItemResult,
    BatchResult,
    ChainResult,
    ChainStep,
    ChainStepResult,
    CredentialSet,
    ExecutionResult,
    HeaderKey,
    LoginAbility,
    MissingDependency,
    SideEffectOutcome,
    StaticHeader,
)

__all__ = [
    "AbilityDescriptor",
    "BatchFailure",
    "BatchItem",
    "BatchItemResult",
    "BatchResult",
    "ChainResult",
    "ChainStep",
    "ChainStepResult",
    "CredentialSet",
    "EngineSettings",
    "ExecutionResult",
    "HeaderKey",
    "LoginAbility",
    "MissingDependency",
    "SideEffectOutcome",
    "StaticHeader",
    "load_settings",
]
