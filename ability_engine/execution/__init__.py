from .classifier import FailureClassifier
from .governor import ResponseGovernor
from .orchestrator import AbilityExecutor

__all__ = [
    "AbilityExecutor",
    "FailureClassifier",
    "ResponseGovernor",
]
