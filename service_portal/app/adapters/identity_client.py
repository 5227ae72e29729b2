"""
Identity service client for the Portal.
"""

from typing import Any, Dict

from .base import DownstreamClient


class IdentityClient(DownstreamClient):
    """Client for communicating with the Identity service."""

    service = "identity"

    async def reconcile(self, principal: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve the principal's role, creating a profile on first login."""
        return await self._post("/identity/reconcile", principal)
