"""
Test helper functions and factory methods for the Campus Access Layer.
"""

import copy
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from shared.errors import PersistenceError


class InMemoryPartition:
    """Dict-backed stand-in for one profile partition table.

    Mirrors the operations of the PostgreSQL partition. ``fail_on`` makes
    the named operations raise, ``preempt`` plants a record that appears
    just before the next conditional create (a lost create race).
    """

    def __init__(self, name: str, documents: Optional[Iterable[Dict[str, Any]]] = None):
        self.name = name
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.fail_on: set = set()
        self.calls: List[str] = []
        self._preempted: Dict[str, Dict[str, Any]] = {}
        for document in documents or []:
            self.documents[document["id"]] = copy.deepcopy(document)

    def fail(self, *operations: str) -> "InMemoryPartition":
        self.fail_on.update(operations)
        return self

    def preempt(self, uid: str, document: Dict[str, Any]):
        self._preempted[uid] = {**copy.deepcopy(document), "id": uid}

    def _enter(self, operation: str):
        self.calls.append(operation)
        if operation in self.fail_on:
            raise PersistenceError(f"{operation} on {self.name} failed", details={"partition": self.name})

    async def get(self, uid: str) -> Optional[Dict[str, Any]]:
        self._enter("get")
        document = self.documents.get(uid)
        return copy.deepcopy(document) if document else None

    async def create_if_absent(self, uid: str, document: Dict[str, Any]) -> bool:
        self._enter("create")
        if uid in self._preempted:
            self.documents[uid] = self._preempted.pop(uid)
        if uid in self.documents:
            return False
        self.documents[uid] = {**copy.deepcopy(document), "id": uid}
        return True

    async def update(self, uid: str, fields: Dict[str, Any]) -> bool:
        self._enter("update")
        if uid not in self.documents:
            return False
        self.documents[uid] = {**self.documents[uid], **copy.deepcopy(fields)}
        return True

    async def delete(self, uid: str) -> bool:
        self._enter("delete")
        return self.documents.pop(uid, None) is not None

    async def list_all(self) -> List[Dict[str, Any]]:
        self._enter("list")
        documents = sorted(self.documents.values(), key=lambda d: d.get("createdAt", ""), reverse=True)
        return copy.deepcopy(documents)

    async def find_by_courses(self, course_ids: Sequence[str]) -> List[Dict[str, Any]]:
        self._enter("find_by_courses")
        wanted = set(course_ids)
        return [
            copy.deepcopy(document)
            for document in self.documents.values()
            if wanted.intersection(document.get("enrolledCourses") or [])
            and document.get("isActive", True)
        ]


def make_partitions(admins=None, teachers=None, students=None) -> Dict[str, InMemoryPartition]:
    """Three in-memory partitions keyed by role value."""
    return {
        "admin": InMemoryPartition("admins", admins),
        "teacher": InMemoryPartition("teachers", teachers),
        "student": InMemoryPartition("students", students),
    }


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

    @classmethod
    def timestamp(cls, minutes: int = 0) -> str:
        return (cls.BASE_TIME + timedelta(minutes=minutes)).isoformat()

    @staticmethod
    def principal(uid: str = "u1", email: str = "student@example.com",
                  display_name: Optional[str] = "Student One",
                  photo_url: Optional[str] = None) -> Dict[str, Any]:
        """Principal payload as the identity provider would hand it over."""
        payload = {"uid": uid, "email": email}
        if display_name is not None:
            payload["displayName"] = display_name
        if photo_url is not None:
            payload["photoURL"] = photo_url
        return payload

    @classmethod
    def _base_document(cls, uid: str, created_minutes: int, **overrides) -> Dict[str, Any]:
        document = {
            "id": uid,
            "fullName": f"User {uid}",
            "email": f"{uid}@example.com",
            "photoURL": "",
            "isActive": True,
            "createdAt": cls.timestamp(created_minutes),
            "updatedAt": cls.timestamp(created_minutes),
        }
        document.update(overrides)
        return document

    @classmethod
    def admin_document(cls, uid: str = "a1", created_minutes: int = 0, **overrides) -> Dict[str, Any]:
        document = cls._base_document(uid, created_minutes, permissions=["read"], role="admin")
        document.update(overrides)
        return document

    @classmethod
    def teacher_document(cls, uid: str = "t1", created_minutes: int = 0, **overrides) -> Dict[str, Any]:
        document = cls._base_document(uid, created_minutes, subjectSpecialization="Mathematics")
        document.update(overrides)
        return document

    @classmethod
    def student_document(cls, uid: str = "s1", created_minutes: int = 0,
                         courses: Optional[List[str]] = None,
                         teachers: Optional[List[str]] = None, **overrides) -> Dict[str, Any]:
        document = cls._base_document(
            uid,
            created_minutes,
            enrolledCourses=list(courses or []),
            linkedTeachers=list(teachers or [])
        )
        document.update(overrides)
        return document

    @staticmethod
    def flags(approved: Optional[bool] = None, trial: Optional[bool] = None,
              sections: Optional[Dict[str, List[str]]] = None) -> Dict[str, str]:
        """Flag hash the way the billing flow stores it."""
        flags = {}
        if approved is not None:
            flags["isSubscriptionApproved"] = "true" if approved else "false"
        if trial is not None:
            flags["trialActive"] = "true" if trial else "false"
        if sections is not None:
            flags["allowedSections"] = json.dumps(sections)
        return flags


class TestEnvironment:
    """Test environment configuration."""

    __test__ = False

    @staticmethod
    def get_mock_config() -> Dict[str, Any]:
        """Settings overrides for services under test."""
        return {
            "env": "test",
            "log_level": "debug",
            "redis_url": "redis://localhost:6379/15",
            "postgres_dsn": "postgres://localhost:5432/campus_test",
            "identity_service_url": "http://identity.test",
            "entitlements_service_url": "http://entitlements.test",
            "bootstrap_admin_email": "admin@campus.test",
            "new_user_display_name": "New user",
        }
