"""
Entitlements service for the Campus Access Layer.
"""

from typing import Any, Dict, Mapping, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .access.catalog import TEACHER_FEATURES, catalog_response, feature_id_by_path
from .access.evaluator import EntitlementEvaluator
from .access.models import (
    EntitlementState,
    EntitlementCheckRequest, EntitlementCheckResponse,
    EntitlementMapRequest, EntitlementMapResponse,
)
from .flags.redis_flags import RedisFlagStore


class EntitlementsService(BaseService):
    """Entitlements service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None,
                 flag_store: Optional[RedisFlagStore] = None):
        super().__init__("entitlements", 8011, config)

        self.catalog = TEACHER_FEATURES
        self.flag_store = flag_store or RedisFlagStore(
            self.config.redis_url,
            key_prefix=self.config.flag_key_prefix,
            metrics=self.metrics
        )

        self._setup_entitlements_routes()

    async def _load_state(self, user_id: str, flags: Optional[Mapping[str, Any]]) -> EntitlementState:
        """Use the caller's flag snapshot when given, else the flag store."""
        if flags is not None:
            return EntitlementState.from_flags(flags)
        return await self.flag_store.load_state(user_id)

    def _setup_entitlements_routes(self):
        """Set up entitlements-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "entitlements",
                "message": "Campus Access Layer - Entitlements Service",
                "version": "1.0.0",
                "capabilities": ["feature_gating", "section_gating", "catalog"]
            }

        @self.app.post("/entitlements/check", response_model=EntitlementCheckResponse)
        async def check_entitlement(request: EntitlementCheckRequest):
            """Check visibility of a feature, or of one section within it."""
            state = await self._load_state(request.user_id, request.flags)
            evaluator = EntitlementEvaluator(state)

            if request.section_id is None:
                allowed, reason = evaluator.explain_feature(request.feature_id)
            else:
                allowed, reason = evaluator.explain_section(request.feature_id, request.section_id)

            self.metrics.increment_counter(
                "entitlement_checks_total",
                decision="allow" if allowed else "deny"
            )
            self.logger.debug(
                "Entitlement decided",
                user_id=request.user_id,
                feature_id=request.feature_id,
                section_id=request.section_id,
                allowed=allowed,
                reason=reason.value
            )

            return EntitlementCheckResponse(
                allowed=allowed,
                feature_id=request.feature_id,
                section_id=request.section_id,
                reason=reason
            )

        @self.app.post("/entitlements/map", response_model=EntitlementMapResponse)
        async def entitlement_map(request: EntitlementMapRequest):
            """Allowed sections for every catalog feature."""
            state = await self._load_state(request.user_id, request.flags)
            features = EntitlementEvaluator(state).entitlement_map(self.catalog)
            self.metrics.record_business_event("entitlement_map_built")
            return EntitlementMapResponse(features=features)

        @self.app.get("/entitlements/catalog")
        async def get_catalog():
            """The feature catalog the UI renders."""
            return catalog_response(self.catalog)

        @self.app.get("/entitlements/catalog/resolve")
        async def resolve_path(path: str = Query(..., description="Dashboard URL path")) -> Dict[str, Optional[str]]:
            """Resolve a dashboard path to its feature id."""
            return {"path": path, "feature_id": feature_id_by_path(path, self.catalog)}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check entitlements service dependencies."""
        return {"redis": "ok" if await self.flag_store.health_check() else "error"}

    async def start(self):
        """Start entitlements service components."""
        await self.flag_store.start()
        self.logger.info("Entitlements service started", features=len(self.catalog))

    async def stop(self):
        """Stop entitlements service components."""
        await self.flag_store.stop()
        self.logger.info("Entitlements service stopped")


def create_app(**kwargs):
    """Create entitlements service application."""
    service = EntitlementsService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = EntitlementsService()
    service.run()
