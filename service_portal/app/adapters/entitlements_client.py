"""
Entitlements service client for the Portal.
"""

from typing import Any, Dict, List, Optional

from .base import DownstreamClient


class EntitlementsClient(DownstreamClient):
    """Client for communicating with the Entitlements service."""

    service = "entitlements"

    async def entitlement_map(self, user_id: str,
                              flags: Optional[Dict[str, Any]] = None) -> Dict[str, List[str]]:
        """Allowed sections per feature for a user."""
        payload: Dict[str, Any] = {"user_id": user_id}
        if flags is not None:
            payload["flags"] = flags

        body = await self._post("/entitlements/map", payload)
        return body.get("features", {})
