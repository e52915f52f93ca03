from .cache import CredentialCache, domain_variants
from .env import EnvCredentialSource
from .resolver import CredentialResolver

__all__ = [
    "CredentialCache",
    "CredentialResolver",
    "EnvCredentialSource",
    "domain_variants",
]
