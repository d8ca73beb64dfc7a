"""PostgreSQL-backed project store with automatic table migration."""

from __future__ import annotations

import json
import threading
import uuid
from datetime import UTC, datetime
from typing import Any

from workspace_agent.errors import PersistenceError
from workspace_agent.storage.models import (
    EntryKind,
    ExecutionRecord,
    LearningEntry,
    MemoryEntry,
)


class PostgresProjectStore:
    """Persist memories, learnings and execution records in PostgreSQL."""

    def __init__(self, database_url: str, *, auto_migrate: bool = True) -> None:
        if not database_url:
            raise ValueError("WORKSPACE_AGENT_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()
        if auto_migrate:
            self.migrate()

    def migrate(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS agent_memories (
                    memory_id UUID PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    memory_type TEXT NOT NULL,
                    category TEXT,
                    content TEXT NOT NULL,
                    metadata_json JSONB,
                    importance SMALLINT NOT NULL DEFAULT 5,
                    created_at TIMESTAMPTZ NOT NULL,
                    last_accessed_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_agent_memories_project_created
                ON agent_memories(project_id, created_at DESC)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS agent_learnings (
                    learning_id UUID PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    learning_type TEXT NOT NULL,
                    pattern TEXT NOT NULL,
                    insight TEXT NOT NULL,
                    applicable_contexts_json JSONB,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_agent_learnings_project_created
                ON agent_learnings(project_id, created_at DESC)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS execution_records (
                    record_id UUID PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    goal TEXT NOT NULL,
                    plan_json JSONB,
                    execution_steps_json JSONB NOT NULL DEFAULT '[]'::jsonb,
                    evaluation_results_json JSONB NOT NULL DEFAULT '[]'::jsonb,
                    final_outcome TEXT NOT NULL,
                    lessons_learned_json JSONB NOT NULL DEFAULT '[]'::jsonb,
                    total_iterations INTEGER NOT NULL DEFAULT 0,
                    started_at TIMESTAMPTZ NOT NULL,
                    completed_at TIMESTAMPTZ
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_execution_records_project_started
                ON execution_records(project_id, started_at DESC)
                """)
            conn.commit()

    def retrieve(
        self,
        project_id: str,
        kind: EntryKind,
        limit: int,
        most_recent_first: bool = True,
    ) -> list[MemoryEntry] | list[LearningEntry]:
        direction = "DESC" if most_recent_first else "ASC"
        if kind == "memory":
            now = datetime.now(tz=UTC)
            with self._lock, self._connect() as conn:
                rows = conn.execute(
                    f"""
                    UPDATE agent_memories
                    SET last_accessed_at = %s
                    WHERE memory_id IN (
                        SELECT memory_id
                        FROM agent_memories
                        WHERE project_id = %s
                        ORDER BY created_at {direction}
                        LIMIT %s
                    )
                    RETURNING *
                    """,
                    (now, project_id, max(0, limit)),
                ).fetchall()
                conn.commit()
            memories = [self._row_to_memory(row) for row in rows]
            # RETURNING does not preserve the subquery order.
            memories.sort(key=lambda item: item.created_at, reverse=most_recent_first)
            return memories

        with self._lock, self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM agent_learnings
                WHERE project_id = %s
                ORDER BY created_at {direction}
                LIMIT %s
                """,
                (project_id, max(0, limit)),
            ).fetchall()
        return [self._row_to_learning(row) for row in rows]

    def store(self, project_id: str, entry: MemoryEntry | LearningEntry) -> None:
        with self._lock, self._connect() as conn:
            if isinstance(entry, MemoryEntry):
                conn.execute(
                    """
                    INSERT INTO agent_memories (
                        memory_id,
                        project_id,
                        memory_type,
                        category,
                        content,
                        metadata_json,
                        importance,
                        created_at,
                        last_accessed_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        uuid.uuid4(),
                        project_id,
                        entry.type,
                        entry.category,
                        entry.content,
                        self._json_wrapper(entry.metadata) if entry.metadata is not None else None,
                        entry.importance,
                        entry.created_at,
                        entry.last_accessed_at,
                    ),
                )
            else:
                conn.execute(
                    """
                    INSERT INTO agent_learnings (
                        learning_id,
                        project_id,
                        learning_type,
                        pattern,
                        insight,
                        applicable_contexts_json,
                        created_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        uuid.uuid4(),
                        project_id,
                        entry.learning_type,
                        entry.pattern,
                        entry.insight,
                        (
                            self._json_wrapper(entry.applicable_contexts)
                            if entry.applicable_contexts is not None
                            else None
                        ),
                        entry.created_at,
                    ),
                )
            conn.commit()

    def create_record(self, project_id: str, record: ExecutionRecord) -> str:
        record_id = uuid.uuid4()
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO execution_records (
                    record_id,
                    project_id,
                    goal,
                    plan_json,
                    execution_steps_json,
                    evaluation_results_json,
                    final_outcome,
                    lessons_learned_json,
                    total_iterations,
                    started_at,
                    completed_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (record_id, project_id, record.goal, *self._record_payload(record)),
            )
            conn.commit()
        return str(record_id)

    def update_record(self, record_id: str, record: ExecutionRecord) -> None:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE execution_records
                SET plan_json = %s,
                    execution_steps_json = %s,
                    evaluation_results_json = %s,
                    final_outcome = %s,
                    lessons_learned_json = %s,
                    total_iterations = %s,
                    started_at = %s,
                    completed_at = %s
                WHERE record_id::text = %s
                """,
                (*self._record_payload(record), record_id),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise PersistenceError(f"Execution record {record_id} does not exist")

    def get_latest_record(self, project_id: str) -> ExecutionRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM execution_records
                WHERE project_id = %s
                ORDER BY started_at DESC
                LIMIT 1
                """,
                (project_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def _record_payload(self, record: ExecutionRecord) -> tuple[Any, ...]:
        return (
            self._json_wrapper(record.plan) if record.plan is not None else None,
            self._json_wrapper(record.execution_steps),
            self._json_wrapper(record.evaluation_results),
            record.final_outcome,
            self._json_wrapper(record.lessons_learned),
            record.total_iterations,
            record.started_at,
            record.completed_at,
        )

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json(raw: Any) -> Any:
        if isinstance(raw, str):
            return json.loads(raw)
        return raw

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_memory(cls, row: Any) -> MemoryEntry:
        return MemoryEntry(
            type=row["memory_type"],
            category=row.get("category"),
            content=row["content"],
            metadata=cls._parse_json(row.get("metadata_json")),
            importance=int(row.get("importance") or 5),
            created_at=cls._parse_datetime(row["created_at"]),
            last_accessed_at=cls._parse_datetime(row["last_accessed_at"]),
        )

    @classmethod
    def _row_to_learning(cls, row: Any) -> LearningEntry:
        return LearningEntry(
            learning_type=row["learning_type"],
            pattern=row["pattern"],
            insight=row["insight"],
            applicable_contexts=cls._parse_json(row.get("applicable_contexts_json")),
            created_at=cls._parse_datetime(row["created_at"]),
        )

    @classmethod
    def _row_to_record(cls, row: Any) -> ExecutionRecord:
        completed_at = row.get("completed_at")
        return ExecutionRecord(
            record_id=str(row["record_id"]),
            project_id=row["project_id"],
            goal=row["goal"],
            plan=cls._parse_json(row.get("plan_json")),
            execution_steps=cls._parse_json(row.get("execution_steps_json")) or [],
            evaluation_results=cls._parse_json(row.get("evaluation_results_json")) or [],
            final_outcome=row["final_outcome"],
            lessons_learned=cls._parse_json(row.get("lessons_learned_json")) or [],
            total_iterations=int(row.get("total_iterations") or 0),
            started_at=cls._parse_datetime(row["started_at"]),
            completed_at=cls._parse_datetime(completed_at) if completed_at is not None else None,
        )
