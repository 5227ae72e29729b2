"""
Identity service for the Campus Access Layer.
"""

from typing import Any, Dict, List, Mapping, Optional

from fastapi import Body

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ProfileNotFoundError

from .persistence.postgres import PostgreSQLPersistence
from .profiles.models import (
    DirectoryEntry, OwnedProfile, PeerMatch, PermissionsUpdateRequest,
    Principal, Reconciliation, Role, StatusUpdateRequest,
)
from .profiles.reconciler import IdentityReconciler
from .profiles.service import ProfileService


class IdentityService(BaseService):
    """Identity service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None,
                 persistence: Optional[PostgreSQLPersistence] = None,
                 partitions: Optional[Mapping[Role, Any]] = None):
        super().__init__("identity", 8013, config)

        if partitions is None:
            self.persistence = persistence or PostgreSQLPersistence(
                self.config.postgres_dsn,
                min_size=self.config.postgres_min_pool,
                max_size=self.config.postgres_max_pool,
                command_timeout=self.config.postgres_command_timeout
            )
            partitions = self.persistence.partitions
        else:
            self.persistence = persistence

        self.reconciler = IdentityReconciler(
            partitions,
            bootstrap_admin_email=self.config.bootstrap_admin_email,
            new_user_display_name=self.config.new_user_display_name,
            metrics=self.metrics
        )
        self.profiles = ProfileService(partitions, metrics=self.metrics)

        self._setup_identity_routes()

    def _setup_identity_routes(self):
        """Set up identity-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "identity",
                "message": "Campus Access Layer - Identity Service",
                "version": "1.0.0",
                "capabilities": ["reconciliation", "profile_management", "directory", "peers"]
            }

        @self.app.post("/identity/reconcile", response_model=Reconciliation)
        async def reconcile(principal: Principal):
            """Map a signed-in principal onto its role, creating a profile on first login."""
            return await self.reconciler.reconcile(principal)

        @self.app.get("/identity/profiles/{uid}", response_model=OwnedProfile)
        async def get_profile(uid: str):
            """The profile owning uid."""
            profile = await self.reconciler.get_owning_profile(uid)
            if profile is None:
                raise ProfileNotFoundError(uid, "any partition")
            return OwnedProfile(role=profile.partition_role, profile=profile.to_document())

        @self.app.get("/identity/directory", response_model=List[DirectoryEntry], response_model_by_alias=True)
        async def directory():
            """All users across roles, newest first."""
            return await self.profiles.list_directory()

        @self.app.patch("/identity/profiles/{role}/{uid}/status")
        async def set_status(role: Role, uid: str, request: StatusUpdateRequest):
            """Activate or suspend a profile."""
            await self.profiles.set_active(uid, role, request.is_active)
            return {"uid": uid, "role": role, "is_active": request.is_active}

        @self.app.patch("/identity/profiles/{role}/{uid}")
        async def update_profile(role: Role, uid: str, partial: Dict[str, Any] = Body(...)):
            """Apply a partial profile update."""
            profile = await self.profiles.update_fields(uid, role, partial)
            return {"role": role, "profile": profile}

        @self.app.delete("/identity/profiles/{role}/{uid}")
        async def delete_profile(role: Role, uid: str):
            """Delete a profile; deleting a missing one succeeds."""
            deleted = await self.profiles.delete(uid, role)
            return {"uid": uid, "role": role, "deleted": deleted}

        @self.app.put("/identity/admins/{uid}/permissions")
        async def update_permissions(uid: str, request: PermissionsUpdateRequest):
            """Replace an admin's permissions."""
            permissions = await self.profiles.update_admin_permissions(uid, request.permissions)
            return {"uid": uid, "permissions": permissions}

        @self.app.get("/identity/admins/{uid}/permissions/{permission}")
        async def check_permission(uid: str, permission: str):
            """Whether an admin may exercise a permission."""
            allowed = await self.profiles.check_admin_permission(uid, permission)
            return {"uid": uid, "permission": permission, "allowed": allowed}

        @self.app.post("/identity/students/{uid}/courses/{course_id}")
        async def enroll(uid: str, course_id: str):
            """Enroll a student in a course."""
            courses = await self.profiles.enroll_in_course(uid, course_id)
            return {"uid": uid, "enrolled_courses": courses}

        @self.app.delete("/identity/students/{uid}/courses/{course_id}")
        async def unenroll(uid: str, course_id: str):
            """Remove a student from a course."""
            courses = await self.profiles.unenroll_from_course(uid, course_id)
            return {"uid": uid, "enrolled_courses": courses}

        @self.app.post("/identity/students/{uid}/teachers/{teacher_id}")
        async def link_teacher(uid: str, teacher_id: str):
            """Link a student to a teacher."""
            teachers = await self.profiles.link_teacher(uid, teacher_id)
            return {"uid": uid, "linked_teachers": teachers}

        @self.app.get("/identity/students/{uid}/peers", response_model=List[PeerMatch], response_model_by_alias=True)
        async def peers(uid: str):
            """Fellow students sharing a course."""
            return await self.profiles.find_peers(uid)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check identity service dependencies."""
        if self.persistence is None:
            return {}
        return {"postgres": "ok" if await self.persistence.health_check() else "error"}

    async def start(self):
        """Start identity service components."""
        if self.persistence is not None:
            await self.persistence.start()
        self.logger.info("Identity service started")

    async def stop(self):
        """Stop identity service components."""
        if self.persistence is not None:
            await self.persistence.stop()
        self.logger.info("Identity service stopped")


def create_app(**kwargs):
    """Create identity service application."""
    service = IdentityService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = IdentityService()
    service.run()
