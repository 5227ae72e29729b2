"""
Portal service for the Campus Access Layer.

Bootstraps a dashboard session: reconciles the signed-in principal with the
Identity service, then fetches the user's entitlement map.
"""

from typing import Dict, Optional

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ExternalServiceError, ReconciliationError
from shared.logging import set_user_context
from shared.circuit_breaker import circuit_breakers

from .adapters.entitlements_client import EntitlementsClient
from .adapters.identity_client import IdentityClient
from .models import LoginRequest, LoginResponse


class PortalService(BaseService):
    """Portal service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None,
                 identity_client: Optional[IdentityClient] = None,
                 entitlements_client: Optional[EntitlementsClient] = None):
        super().__init__("portal", 8000, config)

        self.identity_client = identity_client or IdentityClient(
            self.config.identity_service_url,
            timeout=self.config.downstream_timeout
        )
        self.entitlements_client = entitlements_client or EntitlementsClient(
            self.config.entitlements_service_url,
            timeout=self.config.downstream_timeout
        )

        self._setup_portal_routes()

    def _setup_portal_routes(self):
        """Set up portal-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "portal",
                "message": "Campus Access Layer - Portal Service",
                "version": "1.0.0",
                "capabilities": ["session_bootstrap"]
            }

        @self.app.post("/session/login", response_model=LoginResponse)
        async def login(request: LoginRequest):
            """Reconcile the user and load their dashboard entitlements."""
            principal = request.principal

            try:
                identity = await self.identity_client.reconcile(
                    principal.model_dump(by_alias=True, exclude_none=True)
                )
            except ExternalServiceError as e:
                self.metrics.increment_counter("logins_total", outcome="identity_unavailable")
                raise ReconciliationError(
                    "User role could not be determined",
                    details={"uid": principal.uid, "cause": e.message}
                ) from e

            set_user_context(principal.uid, identity["role"])
            outcome = "ok"

            try:
                features = await self.entitlements_client.entitlement_map(principal.uid, request.flags)
            except ExternalServiceError as e:
                self.logger.warning(
                    "Entitlements unavailable, serving no extended features",
                    uid=principal.uid,
                    error=e.message
                )
                features = {}
                outcome = "degraded"

            self.metrics.increment_counter("logins_total", outcome=outcome)
            self.logger.info(
                "Session bootstrapped",
                uid=principal.uid,
                role=identity["role"],
                created=identity["created"],
                features=len(features)
            )

            return LoginResponse(
                role=identity["role"],
                created=identity["created"],
                profile=identity["profile"],
                features=features
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report downstream circuit states."""
        states = circuit_breakers.states()
        return {
            name: states.get(name, "closed")
            for name in ("identity_service", "entitlements_service")
        }


def create_app(**kwargs):
    """Create portal service application."""
    service = PortalService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = PortalService()
    service.run()
