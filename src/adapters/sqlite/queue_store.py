import json
import sqlite3
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from src.core.entities import (
    PublishingQueueItem,
    PublishResult,
    ensure_transition,
)
from src.core.ports.db import EligibilityQuery, ScheduleWindow

# Column names that may appear in generated SQL. Anything else is rejected.
_DUE_FIELDS = {"scheduled_for", "retry_after", "started_at"}

_ORDER_SQL = {
    "scheduled": "scheduled_for ASC, priority DESC, created_at ASC, id ASC",
    "priority": "priority DESC, queued_at ASC, created_at ASC, id ASC",
    "retry": "retry_after ASC, priority DESC, created_at ASC, id ASC",
    "created": "created_at DESC, id ASC",
}

_TRANSITION_FIELDS = {
    "queued_at",
    "started_at",
    "completed_at",
    "scheduled_for",
    "retry_after",
    "error_type",
    "error_message",
    "published_url",
    "published_post_id",
    "published_data",
}


# Helper to convert sqlite rows to dicts
def dict_factory(cursor: sqlite3.Cursor, row: Any) -> dict[str, Any]:
    d = {}
    for idx, col in enumerate(cursor.description):
        d[col[0]] = row[idx]
    return d


def to_iso(dt: datetime | None) -> str | None:
    """
    Serialize a timestamp for storage.

    Naive datetimes are taken as UTC. A fixed format keeps lexical and
    chronological order identical, which the due-time comparisons rely on.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_dt(s: str | None) -> datetime | None:
    return datetime.fromisoformat(s) if s else None


def _to_db(column: str, value: Any) -> tuple[str, Any]:
    if column == "published_data":
        return "published_data_json", json.dumps(value or {})
    if isinstance(value, datetime):
        return column, to_iso(value)
    if isinstance(value, UUID):
        return column, str(value)
    return column, value


class SQLitePublishingQueueRepo:
    def __init__(self, db_path: str, timeout: float = 30.0):
        self.db_path = db_path
        self.timeout = timeout

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _map_row(self, row: dict[str, Any]) -> PublishingQueueItem:
        return PublishingQueueItem(
            id=UUID(row["id"]),
            organization_id=UUID(row["organization_id"]),
            article_id=UUID(row["article_id"]),
            integration_id=UUID(row["integration_id"]) if row["integration_id"] else None,
            platform=row["platform"],
            status=row["status"],
            priority=row["priority"],
            scheduled_for=parse_dt(row["scheduled_for"]),
            retry_after=parse_dt(row["retry_after"]),
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            error_type=row["error_type"],
            error_message=row["error_message"],
            published_url=row["published_url"],
            published_post_id=row["published_post_id"],
            published_data=json.loads(row["published_data_json"] or "{}"),
            metadata=json.loads(row["metadata_json"] or "{}"),
            queued_at=parse_dt(row["queued_at"]),
            started_at=parse_dt(row["started_at"]),
            completed_at=parse_dt(row["completed_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            deleted_at=parse_dt(row["deleted_at"]),
        )

    # --- Lane queries ---

    def _where(self, query: EligibilityQuery) -> tuple[str, list[Any]]:
        clauses = ["status = ?", "deleted_at IS NULL"]
        params: list[Any] = [query.status]

        if query.due_field is not None:
            if query.due_field not in _DUE_FIELDS:
                raise ValueError(f"Unknown due field: {query.due_field}")
            clauses.append(f"{query.due_field} IS NOT NULL AND {query.due_field} <= ?")
            params.append(to_iso(query.now))

        for column in query.require_null:
            if column not in _DUE_FIELDS:
                raise ValueError(f"Unknown field: {column}")
            clauses.append(f"{column} IS NULL")

        if query.platform:
            clauses.append("platform = ?")
            params.append(query.platform)

        if query.organization_id:
            clauses.append("organization_id = ?")
            params.append(str(query.organization_id))

        return " AND ".join(clauses), params

    def select_eligible(self, query: EligibilityQuery) -> list[PublishingQueueItem]:
        where, params = self._where(query)
        order = _ORDER_SQL[query.order]
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"SELECT * FROM publishing_queue WHERE {where} ORDER BY {order} LIMIT ?",
                (*params, query.limit),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            conn.close()

    def count_eligible(self, query: EligibilityQuery) -> int:
        where, params = self._where(query)
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT COUNT(*) AS n FROM publishing_queue WHERE {where}",
                params,
            ).fetchone()
            return int(row["n"])
        finally:
            conn.close()

    # --- Guarded transitions ---

    def conditional_transition(
        self,
        item_id: UUID,
        from_status: str,
        to_status: str,
        fields: dict[str, Any],
        now: datetime,
    ) -> bool:
        ensure_transition(from_status, to_status)

        unknown = set(fields) - _TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable by a transition: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [to_status, to_iso(now)]
        for name, value in fields.items():
            column, db_value = _to_db(name, value)
            assignments.append(f"{column} = ?")
            params.append(db_value)

        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"""
                UPDATE publishing_queue
                SET {", ".join(assignments)}
                WHERE id = ? AND status = ? AND deleted_at IS NULL
                """,
                (*params, str(item_id), from_status),
            )
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    def mark_started(
        self,
        item_id: UUID,
        from_status: str,
        now: datetime,
    ) -> PublishingQueueItem | None:
        ensure_transition(from_status, "publishing")
        conn = self._get_conn()
        try:
            # Atomic update
            cursor = conn.execute(
                """
                UPDATE publishing_queue
                SET status = 'publishing', started_at = ?, updated_at = ?
                WHERE id = ? AND status = ? AND deleted_at IS NULL
                RETURNING *
            """,
                (to_iso(now), to_iso(now), str(item_id), from_status),
            )

            row = cursor.fetchone()
            conn.commit()

            if not row:
                return None
            return self._map_row(row)
        finally:
            conn.close()

    def mark_completed(self, item_id: UUID, result: PublishResult, now: datetime) -> bool:
        return self.conditional_transition(
            item_id,
            "publishing",
            "published",
            {
                "completed_at": now,
                "published_url": result.published_url,
                "published_post_id": result.published_post_id,
                "published_data": result.published_data,
                "error_type": None,
                "error_message": None,
            },
            now,
        )

    def mark_failed(self, item_id: UUID, message: str, error_type: str, now: datetime) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE publishing_queue
                SET status = 'failed',
                    error_type = ?,
                    error_message = ?,
                    retry_count = retry_count + 1,
                    updated_at = ?
                WHERE id = ? AND status = 'publishing' AND deleted_at IS NULL
                """,
                (error_type, message, to_iso(now), str(item_id)),
            )
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    # --- Management ---

    def get_by_id(self, item_id: UUID) -> PublishingQueueItem | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM publishing_queue WHERE id = ? AND deleted_at IS NULL",
                (str(item_id),),
            ).fetchone()
            if not row:
                return None
            return self._map_row(row)
        finally:
            conn.close()

    def save(self, item: PublishingQueueItem) -> PublishingQueueItem:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO publishing_queue (
                    id, organization_id, article_id, integration_id, platform, status,
                    priority, scheduled_for, retry_after, retry_count, max_retries,
                    error_type, error_message, published_url, published_post_id,
                    published_data_json, metadata_json, queued_at, started_at,
                    completed_at, created_at, updated_at, deleted_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    integration_id=excluded.integration_id,
                    platform=excluded.platform,
                    status=excluded.status,
                    priority=excluded.priority,
                    scheduled_for=excluded.scheduled_for,
                    retry_after=excluded.retry_after,
                    retry_count=excluded.retry_count,
                    max_retries=excluded.max_retries,
                    error_type=excluded.error_type,
                    error_message=excluded.error_message,
                    published_url=excluded.published_url,
                    published_post_id=excluded.published_post_id,
                    published_data_json=excluded.published_data_json,
                    metadata_json=excluded.metadata_json,
                    queued_at=excluded.queued_at,
                    started_at=excluded.started_at,
                    completed_at=excluded.completed_at,
                    updated_at=excluded.updated_at,
                    deleted_at=excluded.deleted_at
            """,
                (
                    str(item.id),
                    str(item.organization_id),
                    str(item.article_id),
                    str(item.integration_id) if item.integration_id else None,
                    item.platform,
                    item.status,
                    item.priority,
                    to_iso(item.scheduled_for),
                    to_iso(item.retry_after),
                    item.retry_count,
                    item.max_retries,
                    item.error_type,
                    item.error_message,
                    item.published_url,
                    item.published_post_id,
                    json.dumps(item.published_data),
                    json.dumps(item.metadata),
                    to_iso(item.queued_at),
                    to_iso(item.started_at),
                    to_iso(item.completed_at),
                    to_iso(item.created_at),
                    to_iso(item.updated_at),
                    to_iso(item.deleted_at),
                ),
            )
            conn.commit()
            return item
        finally:
            conn.close()

    def _org_where(
        self, organization_id: UUID, status: str | None, platform: str | None
    ) -> tuple[str, list[Any]]:
        clauses = ["organization_id = ?", "deleted_at IS NULL"]
        params: list[Any] = [str(organization_id)]
        if status:
            clauses.append("status = ?")
            params.append(status)
        if platform:
            clauses.append("platform = ?")
            params.append(platform)
        return " AND ".join(clauses), params

    def list_for_organization(
        self,
        organization_id: UUID,
        status: str | None = None,
        platform: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PublishingQueueItem]:
        where, params = self._org_where(organization_id, status, platform)
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"""
                SELECT * FROM publishing_queue
                WHERE {where}
                ORDER BY {_ORDER_SQL["created"]}
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            conn.close()

    def count_for_organization(
        self,
        organization_id: UUID,
        status: str | None = None,
        platform: str | None = None,
    ) -> int:
        where, params = self._org_where(organization_id, status, platform)
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT COUNT(*) AS n FROM publishing_queue WHERE {where}", params
            ).fetchone()
            return int(row["n"])
        finally:
            conn.close()

    # --- Schedule ---

    def _window_where(self, window: ScheduleWindow) -> tuple[str, list[Any]]:
        clauses = [
            "organization_id = ?",
            "status = 'pending'",
            "deleted_at IS NULL",
            "retry_after IS NULL",
            "scheduled_for IS NOT NULL",
            "scheduled_for >= ?",
        ]
        params: list[Any] = [str(window.organization_id), to_iso(window.start)]
        if window.end is not None:
            clauses.append("scheduled_for <= ?")
            params.append(to_iso(window.end))
        if window.platform:
            clauses.append("platform = ?")
            params.append(window.platform)
        return " AND ".join(clauses), params

    def list_scheduled(
        self,
        window: ScheduleWindow,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PublishingQueueItem]:
        where, params = self._window_where(window)
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"""
                SELECT * FROM publishing_queue
                WHERE {where}
                ORDER BY {_ORDER_SQL["scheduled"]}
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            conn.close()

    def count_scheduled(self, window: ScheduleWindow) -> int:
        where, params = self._window_where(window)
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT COUNT(*) AS n FROM publishing_queue WHERE {where}", params
            ).fetchone()
            return int(row["n"])
        finally:
            conn.close()

    def reschedule(
        self,
        item_id: UUID,
        scheduled_for: datetime,
        metadata: dict[str, Any],
        now: datetime,
    ) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE publishing_queue
                SET scheduled_for = ?, retry_after = NULL, metadata_json = ?, updated_at = ?
                WHERE id = ? AND status = 'pending' AND deleted_at IS NULL
                """,
                (to_iso(scheduled_for), json.dumps(metadata), to_iso(now), str(item_id)),
            )
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    def soft_delete(self, item_id: UUID, now: datetime) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE publishing_queue
                SET deleted_at = ?, updated_at = ?
                WHERE id = ? AND deleted_at IS NULL
                """,
                (to_iso(now), to_iso(now), str(item_id)),
            )
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    def stats_for_organization(self, organization_id: UUID) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT status, platform, COUNT(*) AS n, SUM(retry_count) AS retries
                FROM publishing_queue
                WHERE organization_id = ? AND deleted_at IS NULL
                GROUP BY status, platform
                """,
                (str(organization_id),),
            ).fetchall()
        finally:
            conn.close()

        by_status: dict[str, int] = {}
        by_platform: dict[str, int] = {}
        total = 0
        retry_sum = 0
        for r in rows:
            by_status[r["status"]] = by_status.get(r["status"], 0) + r["n"]
            by_platform[r["platform"]] = by_platform.get(r["platform"], 0) + r["n"]
            total += r["n"]
            retry_sum += r["retries"] or 0

        return {
            "total": total,
            "by_status": by_status,
            "by_platform": by_platform,
            "retry_sum": retry_sum,
        }
