"""SQLite thought store implementation."""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, TypeVar

import aiosqlite

from ..config import resolve_db_path
from ..errors import InvalidThoughtError, StoreUnavailableError
from ..logging_config import get_logger
from ..models import (
    AuditEvent,
    BufferedThought,
    Priority,
    SynthesisEvent,
    ThoughtStatus,
)
from ..validation import DEFAULT_MAX_THOUGHT_CHARS, normalize_priority, normalize_thought

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_S = 2.0

_THOUGHT_COLUMNS = "id, agent_id, channel, target, content, priority, created_at, status"


class IThoughtStore(Protocol):
    """Durable per-agent queue of buffered thoughts (SQLite)."""

    async def init(self) -> None:
        """Open the database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Thoughts
    async def insert(
        self,
        agent_id: str,
        channel: str,
        target: str,
        content: Any,
        priority: Any = Priority.P1,
    ) -> int:
        """Queue a thought and return its id."""
        ...

    async def pending(self, agent_id: str) -> list[BufferedThought]:
        """Pending thoughts for an agent, ordered by priority then creation."""
        ...

    async def pending_count(self, agent_id: str | None = None) -> int:
        """Pending thoughts for one agent, or across all agents."""
        ...

    async def pending_counts(self) -> dict[str, int]:
        """Pending thoughts per agent."""
        ...

    async def agents_with_pending(self) -> set[str]:
        """Agents that currently have pending thoughts."""
        ...

    async def mark_synthesized(
        self, agent_id: str, output: str | None, through_id: int | None = None
    ) -> int:
        """Atomically transition pending thoughts and record one SynthesisEvent."""
        ...

    async def purge(self, agent_id: str | None = None) -> int:
        """Discard pending thoughts without synthesis."""
        ...

    # Audit
    async def synthesis_events(
        self, agent_id: str | None = None, limit: int = 100
    ) -> list[SynthesisEvent]:
        """Synthesis audit log (newest first)."""
        ...

    async def record_metric(self, latency_ms: int, queue_depth: int | None = None) -> None:
        """Append a latency observation to the metrics log."""
        ...

    async def save_audit_event(self, event: AuditEvent) -> None:
        """Persist an operator/mode audit record."""
        ...

    async def get_audit_events(
        self,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Audit records with optional filters (newest first)."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class ThoughtStore:
    """SQLite thought store.

    All access goes through one connection guarded by an asyncio lock, so a
    transaction always sees a point-in-time view. Each operation is bounded by
    ``timeout_s``; a stalled or failing database surfaces as
    StoreUnavailableError on writes and as empty results on reads.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        max_thought_chars: int = DEFAULT_MAX_THOUGHT_CHARS,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self._db_path = resolve_db_path(db_path)
        self._max_thought_chars = max_thought_chars
        self._timeout_s = timeout_s
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._last_created_at: datetime | None = None

    @property
    def available(self) -> bool:
        return self._conn is not None

    async def init(self) -> None:
        """Open the database and create tables."""
        if isinstance(self._db_path, Path):
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None: transactions are opened explicitly below
        self._conn = await aiosqlite.connect(
            self._db_path, timeout=self._timeout_s, isolation_level=None
        )
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        logger.info("Thought store initialized at %s", self._db_path)

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # Plumbing

    async def _run(self, operation: str, fn: Callable[[aiosqlite.Connection], Awaitable[T]]) -> T:
        async def guarded() -> T:
            async with self._lock:
                if not self._conn:
                    raise StoreUnavailableError(operation)
                if self._conn.in_transaction:
                    logger.warning(
                        "Rolling back transaction left open before %s",
                        operation,
                        extra={"operation": operation},
                    )
                    await self._conn.rollback()
                return await fn(self._conn)

        try:
            return await asyncio.wait_for(guarded(), timeout=self._timeout_s)
        except StoreUnavailableError:
            raise
        # OverflowError/ValueError: values sqlite3 cannot bind
        except (aiosqlite.Error, asyncio.TimeoutError, OverflowError, ValueError) as e:
            raise StoreUnavailableError(operation, e) from e

    async def _read(self, operation: str, fn: Callable[[aiosqlite.Connection], Awaitable[T]], empty: T) -> T:
        try:
            return await self._run(operation, fn)
        except StoreUnavailableError as e:
            logger.warning("%s; returning empty result", e, extra={"operation": operation})
            return empty

    @staticmethod
    @asynccontextmanager
    async def _transaction(conn: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
        try:
            await conn.execute("BEGIN IMMEDIATE")
            yield conn
            await conn.execute("COMMIT")
        except BaseException:
            # Queued behind any statement still running on the connection
            # thread (a cancelled BEGIN included); a no-op outside a transaction.
            try:
                await conn.rollback()
            except aiosqlite.Error:
                logger.error("Rollback failed", exc_info=True)
            raise

    def _next_created_at(self) -> datetime:
        # Never step backwards, so creation order matches id order
        now = datetime.now(timezone.utc)
        if self._last_created_at and now < self._last_created_at:
            now = self._last_created_at
        self._last_created_at = now
        return now

    # Thoughts

    async def insert(
        self,
        agent_id: str,
        channel: str,
        target: str,
        content: Any,
        priority: Any = Priority.P1,
    ) -> int:
        """Queue a thought and return its id.

        Blank content raises InvalidThoughtError. Oversized content is
        truncated, unknown priorities become P1.
        """
        text = normalize_thought(content, self._max_thought_chars)
        if text is None:
            raise InvalidThoughtError("Thought content must be a non-empty string")
        tier = normalize_priority(priority)

        async def op(conn: aiosqlite.Connection) -> int:
            async with self._transaction(conn):
                cursor = await conn.execute(
                    """
                    INSERT INTO buffered_thoughts
                    (agent_id, channel, target, content, priority, created_at, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        agent_id,
                        channel or "unknown",
                        target or "",
                        text,
                        tier.value,
                        self._next_created_at().isoformat(timespec="microseconds"),
                        ThoughtStatus.PENDING.value,
                    ),
                )
                return cursor.lastrowid

        return await self._run("insert", op)

    async def pending(self, agent_id: str) -> list[BufferedThought]:
        """Pending thoughts for an agent, ordered by priority then creation."""

        async def op(conn: aiosqlite.Connection) -> list[BufferedThought]:
            cursor = await conn.execute(
                f"""
                SELECT {_THOUGHT_COLUMNS}
                FROM buffered_thoughts
                WHERE agent_id = ? AND status = 'pending'
                ORDER BY priority ASC, created_at ASC, id ASC
                """,
                (agent_id,),
            )
            return [_row_to_thought(row) for row in await cursor.fetchall()]

        return await self._read("pending", op, [])

    async def get_thought(self, thought_id: int) -> BufferedThought | None:
        """Get a thought by ID, whatever its status."""

        async def op(conn: aiosqlite.Connection) -> BufferedThought | None:
            cursor = await conn.execute(
                f"SELECT {_THOUGHT_COLUMNS} FROM buffered_thoughts WHERE id = ?",
                (thought_id,),
            )
            row = await cursor.fetchone()
            return _row_to_thought(row) if row else None

        return await self._read("get_thought", op, None)

    async def pending_count(self, agent_id: str | None = None) -> int:
        """Pending thoughts for one agent, or across all agents."""

        async def op(conn: aiosqlite.Connection) -> int:
            if agent_id is not None:
                cursor = await conn.execute(
                    """
                    SELECT COUNT(*) FROM buffered_thoughts
                    WHERE agent_id = ? AND status = 'pending'
                    """,
                    (agent_id,),
                )
            else:
                cursor = await conn.execute(
                    "SELECT COUNT(*) FROM buffered_thoughts WHERE status = 'pending'"
                )
            row = await cursor.fetchone()
            return row[0]

        return await self._read("pending_count", op, 0)

    async def pending_counts(self) -> dict[str, int]:
        """Pending thoughts per agent."""

        async def op(conn: aiosqlite.Connection) -> dict[str, int]:
            cursor = await conn.execute(
                """
                SELECT agent_id, COUNT(*) FROM buffered_thoughts
                WHERE status = 'pending'
                GROUP BY agent_id
                ORDER BY agent_id
                """
            )
            return {row[0]: row[1] for row in await cursor.fetchall()}

        return await self._read("pending_counts", op, {})

    async def agents_with_pending(self) -> set[str]:
        """Agents that currently have pending thoughts."""
        return set(await self.pending_counts())

    async def mark_synthesized(
        self, agent_id: str, output: str | None, through_id: int | None = None
    ) -> int:
        """Atomically transition pending thoughts and record one SynthesisEvent.

        The batch is bounded by id: ``through_id`` when given, otherwise the
        newest pending id seen inside the transaction. Thoughts inserted after
        that bound stay pending for the next cycle. Returns the number of
        thoughts transitioned; with none pending nothing is recorded.
        """

        async def op(conn: aiosqlite.Connection) -> int:
            async with self._transaction(conn):
                cursor = await conn.execute(
                    """
                    SELECT MAX(id) FROM buffered_thoughts
                    WHERE agent_id = ? AND status = 'pending'
                    """,
                    (agent_id,),
                )
                row = await cursor.fetchone()
                newest = row[0]
                if newest is None:
                    return 0
                bound = newest if through_id is None else min(newest, through_id)

                now = datetime.now(timezone.utc).isoformat(timespec="microseconds")
                cursor = await conn.execute(
                    """
                    UPDATE buffered_thoughts
                    SET status = 'synthesized', resolved_at = ?
                    WHERE agent_id = ? AND status = 'pending' AND id <= ?
                    """,
                    (now, agent_id, bound),
                )
                count = cursor.rowcount
                if count <= 0:
                    return 0

                await conn.execute(
                    """
                    INSERT INTO synthesis_events
                    (agent_id, thought_count, final_output, triggered_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (agent_id, count, output, now),
                )
                return count

        return await self._run("mark_synthesized", op)

    async def purge(self, agent_id: str | None = None) -> int:
        """Discard pending thoughts without synthesis."""

        async def op(conn: aiosqlite.Connection) -> int:
            now = datetime.now(timezone.utc).isoformat(timespec="microseconds")
            async with self._transaction(conn):
                if agent_id is not None:
                    cursor = await conn.execute(
                        """
                        UPDATE buffered_thoughts
                        SET status = 'discarded', resolved_at = ?
                        WHERE agent_id = ? AND status = 'pending'
                        """,
                        (now, agent_id),
                    )
                else:
                    cursor = await conn.execute(
                        """
                        UPDATE buffered_thoughts
                        SET status = 'discarded', resolved_at = ?
                        WHERE status = 'pending'
                        """,
                        (now,),
                    )
                return cursor.rowcount

        return await self._run("purge", op)

    # Synthesis log

    async def synthesis_events(
        self, agent_id: str | None = None, limit: int = 100
    ) -> list[SynthesisEvent]:
        """Synthesis audit log (newest first)."""

        async def op(conn: aiosqlite.Connection) -> list[SynthesisEvent]:
            if agent_id is not None:
                cursor = await conn.execute(
                    """
                    SELECT id, agent_id, thought_count, final_output, triggered_at
                    FROM synthesis_events
                    WHERE agent_id = ?
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (agent_id, limit),
                )
            else:
                cursor = await conn.execute(
                    """
                    SELECT id, agent_id, thought_count, final_output, triggered_at
                    FROM synthesis_events
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (limit,),
                )
            return [
                SynthesisEvent(
                    id=row[0],
                    agent_id=row[1],
                    thought_count=row[2],
                    final_output=row[3],
                    triggered_at=_parse_ts(row[4]),
                )
                for row in await cursor.fetchall()
            ]

        return await self._read("synthesis_events", op, [])

    # Metrics

    async def record_metric(self, latency_ms: int, queue_depth: int | None = None) -> None:
        """Append a latency observation to the metrics log."""

        async def op(conn: aiosqlite.Connection) -> None:
            async with self._transaction(conn):
                await conn.execute(
                    """
                    INSERT INTO network_metrics (latency_ms, queue_depth, recorded_at)
                    VALUES (?, ?, ?)
                    """,
                    (
                        latency_ms,
                        queue_depth,
                        datetime.now(timezone.utc).isoformat(timespec="microseconds"),
                    ),
                )

        await self._run("record_metric", op)

    async def recent_metrics(self, limit: int = 100) -> list[dict]:
        """Latency log rows (newest first)."""

        async def op(conn: aiosqlite.Connection) -> list[dict]:
            cursor = await conn.execute(
                """
                SELECT latency_ms, queue_depth, recorded_at
                FROM network_metrics
                ORDER BY id DESC
                LIMIT ?
                """,
                (limit,),
            )
            return [
                {"latency_ms": row[0], "queue_depth": row[1], "recorded_at": row[2]}
                for row in await cursor.fetchall()
            ]

        return await self._read("recent_metrics", op, [])

    # Audit events

    async def save_audit_event(self, event: AuditEvent) -> None:
        """Persist an operator/mode audit record."""

        async def op(conn: aiosqlite.Connection) -> None:
            async with self._transaction(conn):
                await conn.execute(
                    """
                    INSERT INTO audit_events (id, event_type, actor, data, timestamp)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        event.id,
                        event.event_type,
                        event.actor,
                        json.dumps(event.data, ensure_ascii=False),
                        event.timestamp.isoformat(timespec="microseconds"),
                    ),
                )

        await self._run("save_audit_event", op)

    async def get_audit_events(
        self,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Audit records with optional filters (newest first)."""
        conditions = []
        params: list[Any] = []

        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM audit_events
            {where_clause}
            ORDER BY rowid DESC
            LIMIT ?
        """
        params.append(limit)

        async def op(conn: aiosqlite.Connection) -> list[AuditEvent]:
            cursor = await conn.execute(query, params)
            return [
                AuditEvent(
                    id=row[0],
                    event_type=row[1],
                    actor=row[2],
                    data=json.loads(row[3]),
                    timestamp=_parse_ts(row[4]),
                )
                for row in await cursor.fetchall()
            ]

        return await self._read("get_audit_events", op, [])

    # Lifecycle

    async def clear(self) -> None:
        """Clear all data."""

        async def op(conn: aiosqlite.Connection) -> None:
            async with self._transaction(conn):
                for table in [
                    "buffered_thoughts",
                    "synthesis_events",
                    "network_metrics",
                    "audit_events",
                ]:
                    await conn.execute(f"DELETE FROM {table}")

        await self._run("clear", op)
        self._last_created_at = None


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _row_to_thought(row: tuple) -> BufferedThought:
    return BufferedThought(
        id=row[0],
        agent_id=row[1],
        channel=row[2],
        target=row[3],
        content=row[4],
        priority=Priority.normalize(row[5]),
        created_at=_parse_ts(row[6]),
        status=ThoughtStatus(row[7]),
    )
