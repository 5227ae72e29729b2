"""
Profile mutation and query operations for the Identity Service.

Mutations target exactly one partition chosen by the caller-supplied role,
stamp ``updatedAt`` and never cascade into another partition.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.errors import PersistenceError, ProfileNotFoundError, ValidationError
from .fanout import gather_partitions
from .models import (
    IMMUTABLE_FIELDS, PROFILE_MODELS,
    AdminProfile, DirectoryEntry, PeerMatch, Role, StudentProfile,
    parse_timestamp, unique, utc_now,
)

# Overlap queries are limited to this many of the student's courses.
PEER_COURSE_LIMIT = 10
ONLINE_WINDOW = timedelta(minutes=10)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _field_aliases(role: Role) -> Dict[str, str]:
    """Attribute name and wire name, both mapped to the wire name."""
    aliases = {}
    for name, field in PROFILE_MODELS[role].model_fields.items():
        alias = field.alias or name
        aliases[name] = alias
        aliases[alias] = alias
    return aliases


class ProfileService:
    """Role-dispatched profile operations."""

    def __init__(self, partitions: Mapping[Role, Any], metrics: Optional[MetricsCollector] = None):
        self.partitions = partitions
        self.metrics = metrics or get_metrics_collector("identity")
        self.logger = get_logger("identity.profiles")

    async def _require(self, uid: str, role: Role) -> Dict[str, Any]:
        document = await self.partitions[role].get(uid)
        if document is None:
            raise ProfileNotFoundError(uid, role.partition)
        return document

    async def _update(self, uid: str, role: Role, fields: Dict[str, Any]) -> None:
        updated = await self.partitions[role].update(uid, fields)
        if not updated:
            raise ProfileNotFoundError(uid, role.partition)

    def normalize_updates(self, role: Role, partial: Mapping[str, Any]) -> Dict[str, Any]:
        """Map attribute or wire keys onto wire keys, rejecting immutable ones."""
        aliases = _field_aliases(role)
        updates = {}
        for key, value in partial.items():
            wire_key = aliases.get(key, key)
            if wire_key in IMMUTABLE_FIELDS or key in IMMUTABLE_FIELDS:
                raise ValidationError(f"Field '{key}' cannot be updated", details={"field": key})
            updates[wire_key] = value
        return updates

    async def set_active(self, uid: str, role: Role, is_active: bool) -> None:
        """Activate or suspend a profile."""
        await self._update(uid, role, {"isActive": is_active, "updatedAt": utc_now()})
        self.metrics.record_business_event("profile_activated" if is_active else "profile_suspended")
        self.logger.info("Profile status changed", uid=uid, partition=role.partition, is_active=is_active)

    async def delete(self, uid: str, role: Role) -> bool:
        """Delete a profile. Deleting a missing profile is a no-op."""
        deleted = await self.partitions[role].delete(uid)
        if deleted:
            self.metrics.record_business_event("profile_deleted")
        else:
            self.logger.debug("Delete of missing profile ignored", uid=uid, partition=role.partition)
        return deleted

    async def update_fields(self, uid: str, role: Role, partial: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply a partial update after validating it against the role's model."""
        updates = self.normalize_updates(role, partial)
        now = utc_now()
        existing = await self._require(uid, role)

        try:
            profile = PROFILE_MODELS[role].model_validate({**existing, **updates, "updatedAt": now})
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid profile update",
                details={"errors": [
                    {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                    for error in e.errors()
                ]}
            ) from e

        document = profile.to_document()
        fields = {key: document.get(key) for key in updates}
        fields["updatedAt"] = now

        await self._update(uid, role, fields)
        self.logger.info("Profile updated", uid=uid, partition=role.partition, fields=sorted(updates))
        return document

    async def update_admin_permissions(self, uid: str, permissions: List[str]) -> List[str]:
        """Replace an admin's permission set."""
        permissions = unique(permissions)
        await self._update(uid, Role.ADMIN, {"permissions": permissions, "updatedAt": utc_now()})
        self.logger.info("Admin permissions replaced", uid=uid, permissions=permissions)
        return permissions

    async def check_admin_permission(self, uid: str, permission: str) -> bool:
        """True when an active admin holds permission or is a super admin."""
        try:
            document = await self.partitions[Role.ADMIN].get(uid)
            if document is None:
                return False
            return AdminProfile.model_validate(document).has_permission(permission)
        except Exception as e:
            self.logger.warning("Permission check failed", uid=uid, permission=permission, error=str(e))
            return False

    async def _student(self, uid: str) -> StudentProfile:
        document = await self._require(uid, Role.STUDENT)
        try:
            return StudentProfile.model_validate(document)
        except PydanticValidationError as e:
            raise PersistenceError("Stored profile is malformed", details={"uid": uid, "partition": "students"}) from e

    async def enroll_in_course(self, uid: str, course_id: str) -> List[str]:
        student = await self._student(uid)
        courses = unique(student.enrolled_courses + [course_id])
        await self._update(uid, Role.STUDENT, {"enrolledCourses": courses, "updatedAt": utc_now()})
        self.metrics.record_business_event("course_enrolled")
        return courses

    async def unenroll_from_course(self, uid: str, course_id: str) -> List[str]:
        student = await self._student(uid)
        courses = [course for course in student.enrolled_courses if course != course_id]
        await self._update(uid, Role.STUDENT, {"enrolledCourses": courses, "updatedAt": utc_now()})
        self.metrics.record_business_event("course_unenrolled")
        return courses

    async def link_teacher(self, uid: str, teacher_id: str) -> List[str]:
        student = await self._student(uid)
        teachers = unique(student.linked_teachers + [teacher_id])
        await self._update(uid, Role.STUDENT, {"linkedTeachers": teachers, "updatedAt": utc_now()})
        return teachers

    @staticmethod
    def _directory_entry(role: Role, document: Dict[str, Any]) -> DirectoryEntry:
        return DirectoryEntry(
            id=document["id"],
            full_name=document.get("fullName") or "",
            email=document.get("email") or "",
            role=role,
            status="active" if document.get("isActive", True) else "suspended",
            created_at=document.get("createdAt") or "",
            updated_at=document.get("updatedAt") or "",
            last_activity=document.get("lastLogin") if role == Role.ADMIN else document.get("lastActivity"),
            photo_url=document.get("photoURL") or "",
            subject_specialization=document.get("subjectSpecialization") if role == Role.TEACHER else None,
            enrolled_courses=list(document.get("enrolledCourses") or []) if role == Role.STUDENT else None,
        )

    async def list_directory(self) -> List[DirectoryEntry]:
        """Every profile across the three partitions, newest first."""
        results, failed = await gather_partitions(
            self.partitions,
            lambda partition: partition.list_all(),
            self.logger,
            self.metrics,
            operation="list"
        )
        if len(failed) == len(self.partitions):
            raise PersistenceError("No partition could be listed")

        entries = [
            self._directory_entry(role, document)
            for role, documents in results.items()
            for document in documents
        ]
        entries.sort(key=lambda entry: parse_timestamp(entry.created_at) or _EPOCH, reverse=True)
        return entries

    async def find_peers(self, uid: str, now: Optional[datetime] = None) -> List[PeerMatch]:
        """Active fellow students sharing a course, online ones first."""
        now = now or datetime.now(timezone.utc)
        document = await self.partitions[Role.STUDENT].get(uid)
        if document is None:
            return []

        student = StudentProfile.model_validate(document)
        if not student.enrolled_courses:
            return []

        linked = set(student.linked_teachers)
        candidates = await self.partitions[Role.STUDENT].find_by_courses(
            student.enrolled_courses[:PEER_COURSE_LIMIT]
        )

        peers = []
        for candidate in candidates:
            if candidate.get("id") == uid or not candidate.get("isActive", True):
                continue
            if linked and not linked.intersection(candidate.get("linkedTeachers") or []):
                continue

            common = [course for course in candidate.get("enrolledCourses") or []
                      if course in student.enrolled_courses]
            if not common:
                continue

            last_activity = parse_timestamp(candidate.get("lastActivity"))
            email = candidate.get("email") or ""
            peers.append(PeerMatch(
                id=candidate["id"],
                name=candidate.get("fullName") or email.split("@")[0] or "Student",
                avatar=candidate.get("photoURL") or "",
                common_courses=common,
                courses_count=len(common),
                is_online=last_activity is not None and now - last_activity < ONLINE_WINDOW,
            ))

        peers.sort(key=lambda peer: (not peer.is_online, -peer.courses_count))
        return peers
