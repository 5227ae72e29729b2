"""
Adapters package for the Portal Service.

HTTP client wrappers for the Identity and Entitlements services. Each
adapter owns its base URL, retry policy and circuit breaker, and maps
every downstream failure onto ``ExternalServiceError``.
"""

from .entitlements_client import EntitlementsClient
from .identity_client import IdentityClient

__all__ = ["EntitlementsClient", "IdentityClient"]
