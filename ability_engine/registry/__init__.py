from .base import AbilityRegistry, CredentialStore
from .client import RegistryApiClient
from .errors import AbilityNotFoundError, RegistryApiError
from .format import describe_ability

__all__ = [
    "AbilityNotFoundError",
    "AbilityRegistry",
    "CredentialStore",
    "RegistryApiClient",
    "RegistryApiError",
    "describe_ability",
]
