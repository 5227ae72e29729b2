"""
PostgreSQL persistence layer for the Identity Service.

Each role partition is its own table holding one JSONB document per uid.
Reads and writes raise ``PersistenceError`` on any database failure so the
caller can tell "not found" (``None``/``False``) apart from "could not ask".
"""

import json
from typing import Any, Dict, List, Optional, Sequence

import asyncpg

from shared.logging import get_logger
from shared.errors import PersistenceError
from ..profiles.models import PARTITION_NAMES, Role


class PostgresPartition:
    """Document operations against one partition table."""

    def __init__(self, persistence: "PostgreSQLPersistence", role: Role):
        self.persistence = persistence
        self.role = role
        self.table = role.partition
        self.logger = get_logger(f"identity.persistence.{self.table}")

    def _fail(self, operation: str, uid: Optional[str], error: Exception) -> PersistenceError:
        self.logger.error("Partition operation failed", operation=operation, uid=uid, error=str(error))
        return PersistenceError(
            f"{operation} on {self.table} failed",
            details={"partition": self.table, "operation": operation, "uid": uid}
        )

    @staticmethod
    def _row_to_document(row) -> Dict[str, Any]:
        document = dict(row["data"])
        document["id"] = row["id"]
        return document

    async def get(self, uid: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by uid."""
        try:
            async with self.persistence.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT id, data FROM {self.table} WHERE id = $1", uid
                )
        except Exception as e:
            raise self._fail("get", uid, e) from e

        return self._row_to_document(row) if row else None

    async def put(self, uid: str, document: Dict[str, Any]) -> None:
        """Create or overwrite a document."""
        try:
            async with self.persistence.acquire() as conn:
                await conn.execute(f"""
                    INSERT INTO {self.table} (id, data) VALUES ($1, $2::jsonb)
                    ON CONFLICT (id) DO UPDATE SET data = EXCLUDED.data, updated_at = NOW()
                """, uid, document)
        except Exception as e:
            raise self._fail("put", uid, e) from e

        self.logger.info("Profile written", uid=uid)

    async def create_if_absent(self, uid: str, document: Dict[str, Any]) -> bool:
        """Insert only when no document exists; True when this call created it."""
        try:
            async with self.persistence.acquire() as conn:
                result = await conn.execute(f"""
                    INSERT INTO {self.table} (id, data) VALUES ($1, $2::jsonb)
                    ON CONFLICT (id) DO NOTHING
                """, uid, document)
        except Exception as e:
            raise self._fail("create", uid, e) from e

        created = result == "INSERT 0 1"
        if created:
            self.logger.info("Profile created", uid=uid)
        return created

    async def update(self, uid: str, fields: Dict[str, Any]) -> bool:
        """Merge fields into an existing document; False when it does not exist."""
        try:
            async with self.persistence.acquire() as conn:
                result = await conn.execute(f"""
                    UPDATE {self.table} SET data = data || $2::jsonb, updated_at = NOW()
                    WHERE id = $1
                """, uid, fields)
        except Exception as e:
            raise self._fail("update", uid, e) from e

        return result == "UPDATE 1"

    async def delete(self, uid: str) -> bool:
        """Delete a document; False when there was nothing to delete."""
        try:
            async with self.persistence.acquire() as conn:
                result = await conn.execute(f"DELETE FROM {self.table} WHERE id = $1", uid)
        except Exception as e:
            raise self._fail("delete", uid, e) from e

        deleted = result == "DELETE 1"
        if deleted:
            self.logger.info("Profile deleted", uid=uid)
        return deleted

    async def list_all(self) -> List[Dict[str, Any]]:
        """All documents, newest first."""
        try:
            async with self.persistence.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT id, data FROM {self.table} ORDER BY data->>'createdAt' DESC"
                )
        except Exception as e:
            raise self._fail("list", None, e) from e

        return [self._row_to_document(row) for row in rows]

    async def find_by_courses(self, course_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Active documents whose enrolledCourses overlap the given ids."""
        try:
            async with self.persistence.acquire() as conn:
                rows = await conn.fetch(f"""
                    SELECT id, data FROM {self.table}
                    WHERE data->'enrolledCourses' ?| $1::text[]
                      AND COALESCE((data->>'isActive')::boolean, TRUE)
                """, list(course_ids))
        except Exception as e:
            raise self._fail("find_by_courses", None, e) from e

        return [self._row_to_document(row) for row in rows]


class PostgreSQLPersistence:
    """Connection pool and schema for the three profile partitions."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10, command_timeout: float = 30.0):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("identity.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None
        self.partitions: Dict[Role, PostgresPartition] = {
            role: PostgresPartition(self, role) for role in PARTITION_NAMES
        }

    @staticmethod
    async def _init_connection(conn):
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog"
        )

    def acquire(self):
        if self.pool is None:
            raise PersistenceError("Profile store not started")
        return self.pool.acquire()

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
                init=self._init_connection
            )
            await self._create_tables()
            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise PersistenceError("Failed to start profile store", details={"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create partition tables."""
        async with self.pool.acquire() as conn:
            for table in PARTITION_NAMES.values():
                await conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        data JSONB NOT NULL,
                        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                    );
                """)
                await conn.execute(f"""
                    CREATE INDEX IF NOT EXISTS idx_{table}_created ON {table} ((data->>'createdAt'));
                """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_students_courses
                ON students USING GIN ((data->'enrolledCourses'));
            """)

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False
