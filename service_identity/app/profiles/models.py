"""
Profile data models for the Identity Service.

A user's profile lives in exactly one of three partitions. At the
application boundary the three record shapes form one tagged union,
``RoleProfile``; each variant knows the partition it is stored in via
``partition_role``. Stored documents use camelCase keys; attributes are
snake_case and both spellings are accepted on input.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    """Role partitions, in lookup precedence order."""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"

    @property
    def partition(self) -> str:
        return PARTITION_NAMES[self]


PARTITION_NAMES: Dict[Role, str] = {
    Role.ADMIN: "admins",
    Role.TEACHER: "teachers",
    Role.STUDENT: "students",
}

# When a uid is (wrongly) present in several partitions the first wins.
ROLE_PRECEDENCE = (Role.ADMIN, Role.TEACHER, Role.STUDENT)


class AdminRole(str, Enum):
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


DEFAULT_ADMIN_PERMISSIONS = ["read", "write", "delete", "manage_users"]

# Document keys no update may touch.
IMMUTABLE_FIELDS = frozenset({"id", "uid", "createdAt"})


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO-8601 timestamp; unparseable values are None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def unique(values: List[str]) -> List[str]:
    """Drop duplicates, keeping first occurrence order."""
    return list(dict.fromkeys(values))


class Principal(BaseModel):
    """Authenticated identity handed over by the identity provider."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    uid: str = Field(..., min_length=1)
    email: str = ""
    display_name: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")


class ProfileBase(BaseModel):
    """Fields shared by every role profile."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    partition_role: ClassVar[Role]

    id: str
    full_name: str = ""
    email: str = ""
    photo_url: Optional[str] = Field("", alias="photoURL")
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the stored document shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AdminProfile(ProfileBase):
    partition_role: ClassVar[Role] = Role.ADMIN

    permissions: List[str] = Field(default_factory=list)
    role: AdminRole = AdminRole.ADMIN
    last_login: Optional[str] = None

    @field_validator("permissions")
    @classmethod
    def _dedupe_permissions(cls, value: List[str]) -> List[str]:
        return unique(value)

    def has_permission(self, permission: str) -> bool:
        if not self.is_active:
            return False
        return self.role == AdminRole.SUPER_ADMIN or permission in self.permissions


class TeacherProfile(ProfileBase):
    partition_role: ClassVar[Role] = Role.TEACHER

    subject_specialization: Optional[str] = None
    last_activity: Optional[str] = None


class StudentProfile(ProfileBase):
    partition_role: ClassVar[Role] = Role.STUDENT

    enrolled_courses: List[str] = Field(default_factory=list)
    linked_teachers: List[str] = Field(default_factory=list)
    last_activity: Optional[str] = None


RoleProfile = Union[AdminProfile, TeacherProfile, StudentProfile]

PROFILE_MODELS: Dict[Role, Type[ProfileBase]] = {
    Role.ADMIN: AdminProfile,
    Role.TEACHER: TeacherProfile,
    Role.STUDENT: StudentProfile,
}


def liveness_fields(role: Role, now: str) -> Dict[str, str]:
    """Document fields stamped on every successful login."""
    if role == Role.ADMIN:
        return {"lastLogin": now, "updatedAt": now}
    return {"lastActivity": now, "updatedAt": now}


class Reconciliation(BaseModel):
    """Outcome of mapping a principal onto its owning partition."""
    role: Role
    created: bool
    profile: Dict[str, Any]


class OwnedProfile(BaseModel):
    role: Role
    profile: Dict[str, Any]


class DirectoryEntry(BaseModel):
    """One row of the cross-role user directory."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    full_name: str
    email: str
    role: Role
    status: str
    created_at: str
    updated_at: str
    last_activity: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")
    subject_specialization: Optional[str] = None
    enrolled_courses: Optional[List[str]] = None


class PeerMatch(BaseModel):
    """A fellow student sharing at least one course."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    avatar: str = ""
    common_courses: List[str]
    courses_count: int
    is_online: bool


class StatusUpdateRequest(BaseModel):
    is_active: bool


class PermissionsUpdateRequest(BaseModel):
    permissions: List[str]
