"""
Identity reconciliation for the Identity Service.

Maps an authenticated principal onto exactly one role partition, creating a
profile on first login. The owning partition is found by querying all three
partitions concurrently; a single failing partition is absorbed as "not
found", but when every lookup fails no role is ever assumed.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.errors import CampusError, PersistenceError, ReconciliationError
from .fanout import gather_partitions
from .models import (
    DEFAULT_ADMIN_PERMISSIONS, PROFILE_MODELS, ROLE_PRECEDENCE,
    AdminRole, Principal, Reconciliation, Role, RoleProfile,
    liveness_fields, utc_now,
)


class IdentityReconciler:
    """Resolves and bootstraps the profile owning a uid."""

    def __init__(self, partitions: Mapping[Role, Any], bootstrap_admin_email: str,
                 new_user_display_name: str = "New user",
                 metrics: Optional[MetricsCollector] = None):
        self.partitions = partitions
        self.bootstrap_admin_email = bootstrap_admin_email.strip().lower()
        self.new_user_display_name = new_user_display_name
        self.metrics = metrics or get_metrics_collector("identity")
        self.logger = get_logger("identity.reconciler")

    async def _lookup(self, uid: str) -> Dict[Role, Dict[str, Any]]:
        """Documents stored for uid, keyed by the partitions holding one."""
        results, failed = await gather_partitions(
            self.partitions,
            lambda partition: partition.get(uid),
            self.logger,
            self.metrics
        )

        if len(failed) == len(self.partitions):
            self.logger.error("All partition lookups failed", uid=uid)
            raise ReconciliationError(details={"uid": uid})

        return {role: document for role, document in results.items() if document is not None}

    def _owner(self, uid: str, found: Dict[Role, Dict[str, Any]]) -> Role:
        owners = [role for role in ROLE_PRECEDENCE if role in found]
        if len(owners) > 1:
            self.logger.warning(
                "profile_partition_conflict",
                uid=uid,
                partitions=[role.partition for role in owners],
                chosen=owners[0].partition
            )
        return owners[0]

    def _to_profile(self, role: Role, document: Dict[str, Any]) -> RoleProfile:
        try:
            return PROFILE_MODELS[role].model_validate(document)
        except PydanticValidationError as e:
            self.logger.error("Stored profile is malformed", uid=document.get("id"), partition=role.partition)
            raise PersistenceError(
                "Stored profile is malformed",
                details={"uid": document.get("id"), "partition": role.partition, "errors": e.error_count()}
            ) from e

    async def _write(self, operation: str, role: Role, uid: str, call):
        try:
            return await call
        except CampusError:
            raise
        except Exception as e:
            self.logger.error("Profile write failed", operation=operation, uid=uid, partition=role.partition, error=str(e))
            raise PersistenceError(
                f"{operation} on {role.partition} failed",
                details={"uid": uid, "partition": role.partition}
            ) from e

    async def _touch(self, role: Role, uid: str, document: Dict[str, Any], now: str) -> Optional[Dict[str, Any]]:
        """Stamp liveness; None when the record is gone."""
        fields = liveness_fields(role, now)
        updated = await self._write("touch", role, uid, self.partitions[role].update(uid, fields))
        if not updated:
            return None
        return {**document, **fields}

    def _is_bootstrap_admin(self, principal: Principal) -> bool:
        """An empty bootstrap address disables the admin rule."""
        email = principal.email.strip().lower()
        return bool(self.bootstrap_admin_email) and email == self.bootstrap_admin_email

    def _new_profile(self, principal: Principal, now: str) -> Tuple[Role, RoleProfile]:
        common = {
            "id": principal.uid,
            "full_name": principal.display_name or self.new_user_display_name,
            "email": principal.email,
            "photo_url": principal.photo_url or "",
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }

        if self._is_bootstrap_admin(principal):
            return Role.ADMIN, PROFILE_MODELS[Role.ADMIN](
                **common,
                permissions=list(DEFAULT_ADMIN_PERMISSIONS),
                role=AdminRole.ADMIN,
                last_login=now
            )

        return Role.STUDENT, PROFILE_MODELS[Role.STUDENT](
            **common,
            enrolled_courses=[],
            linked_teachers=[],
            last_activity=now
        )

    async def get_owning_profile(self, uid: str) -> Optional[RoleProfile]:
        """The profile owning uid, or None. Has no side effects."""
        found = await self._lookup(uid)
        if not found:
            return None
        role = self._owner(uid, found)
        return self._to_profile(role, found[role])

    async def reconcile(self, principal: Principal) -> Reconciliation:
        """Resolve the owning role for a principal, creating a profile if needed."""
        with self.metrics.time_operation("reconciliation_duration_seconds"):
            try:
                result = await self._reconcile(principal)
            except CampusError:
                self.metrics.increment_counter("reconciliations_total", role="unknown", outcome="failed")
                raise

        self.metrics.increment_counter(
            "reconciliations_total",
            role=result.role.value,
            outcome="created" if result.created else "existing"
        )
        set_user_context(principal.uid, result.role.value)
        self.logger.info("User reconciled", uid=principal.uid, role=result.role.value, created=result.created)
        return result

    async def _reconcile(self, principal: Principal) -> Reconciliation:
        uid = principal.uid
        found = await self._lookup(uid)
        now = utc_now()

        if found:
            role = self._owner(uid, found)
            document = await self._touch(role, uid, found[role], now)
            if document is not None:
                return Reconciliation(role=role, created=False, profile=self._to_profile(role, document).to_document())
            self.logger.warning("Profile vanished before liveness stamp", uid=uid, partition=role.partition)

        role, profile = self._new_profile(principal, now)
        partition = self.partitions[role]
        document = profile.to_document()

        created = await self._write("create", role, uid, partition.create_if_absent(uid, document))
        if created:
            self.logger.info("Profile bootstrapped", uid=uid, partition=role.partition)
            return Reconciliation(role=role, created=True, profile=document)

        # Lost the create race: the concurrent winner's record is authoritative.
        existing = await self._write("get", role, uid, partition.get(uid))
        if existing is None:
            raise PersistenceError("Profile create was not applied", details={"uid": uid, "partition": role.partition})

        self.logger.info("Concurrent create detected", uid=uid, partition=role.partition)
        document = await self._touch(role, uid, existing, now)
        if document is None:
            raise PersistenceError("Profile disappeared during create", details={"uid": uid, "partition": role.partition})
        return Reconciliation(role=role, created=False, profile=self._to_profile(role, document).to_document())
