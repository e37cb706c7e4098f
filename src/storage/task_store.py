# src/storage/task_store.py — v1
"""SQLite-backed Task/TaskDetail store.

Uses stdlib sqlite3 in WAL mode. The store is the only shared mutable
resource between workers: claims are a BEGIN IMMEDIATE transaction that
selects the oldest eligible row and conditionally updates it
(`WHERE worker_id IS NULL`), so two workers can never own the same row,
whether they run as asyncio tasks, threads or separate processes.

Methods are async for symmetry with the rest of the pipeline but never
await inside a transaction; each call runs to completion on the calling
thread.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

from pageflow.core.errors import ClaimConflict, TaskNotFoundError, TaskStateError
from pageflow.core.models import (
    TERMINAL_TASK_STATUSES,
    CleanupResult,
    ConversionResult,
    PageInfo,
    PageStats,
    PageStatus,
    RecoveryReport,
    Task,
    TaskDetail,
    TaskStatus,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    filename TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT 'pdf',
    page_range TEXT NOT NULL DEFAULT '',
    pages INTEGER NOT NULL DEFAULT 0,
    provider TEXT NOT NULL DEFAULT '',
    model TEXT NOT NULL DEFAULT '',
    model_name TEXT NOT NULL DEFAULT '',
    progress INTEGER NOT NULL DEFAULT 0,
    status INTEGER NOT NULL,
    worker_id TEXT,
    completed_count INTEGER NOT NULL DEFAULT 0,
    failed_count INTEGER NOT NULL DEFAULT 0,
    merged_path TEXT,
    error TEXT,
    timeout_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, created_at);

CREATE TABLE IF NOT EXISTS task_details (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    page INTEGER NOT NULL,
    page_source INTEGER NOT NULL,
    status INTEGER NOT NULL,
    worker_id TEXT,
    provider TEXT NOT NULL DEFAULT '',
    model TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    error TEXT,
    retry_count INTEGER NOT NULL DEFAULT 0,
    input_tokens INTEGER NOT NULL DEFAULT 0,
    output_tokens INTEGER NOT NULL DEFAULT 0,
    conversion_time_ms INTEGER NOT NULL DEFAULT 0,
    timeout_count INTEGER NOT NULL DEFAULT 0,
    retry_after TEXT,
    started_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (task_id, page)
);
CREATE INDEX IF NOT EXISTS idx_details_task ON task_details(task_id, page);
CREATE INDEX IF NOT EXISTS idx_details_status ON task_details(status, created_at);
"""

_TASK_COLUMNS = frozenset(Task.model_fields) - {"id", "created_at"}
_DETAIL_COLUMNS = frozenset(TaskDetail.model_fields) - {"id", "task_id", "created_at"}

_CLAIMABLE_DETAIL = (int(PageStatus.PENDING), int(PageStatus.RETRYING))
_TERMINAL = tuple(int(s) for s in TERMINAL_TASK_STATUSES)

CANCELLED_MESSAGE = "Task was cancelled"
ORPHANED_MESSAGE = "Orphaned: parent task no longer active"


def _iso(dt: datetime) -> str:
    """Fixed-width UTC ISO format, so timestamps compare as strings."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_column(value: Any) -> Any:
    if isinstance(value, datetime):
        return _iso(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bool):
        return int(value)
    return value


class SqliteTaskStore:
    """Persistent Task/TaskDetail store with an atomic claim primitive."""

    def __init__(
        self,
        db_path: Path | str,
        max_failed_page_ratio: float = 0.5,
        clock: Callable[[], datetime] | None = None,
        busy_timeout_s: float = 5.0,
    ) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._max_failed_page_ratio = max_failed_page_ratio
        self._clock = clock or _utcnow
        # Autocommit mode: transactions are explicit BEGIN IMMEDIATE blocks.
        self._conn = sqlite3.connect(
            str(self._db_path),
            isolation_level=None,
            timeout=busy_timeout_s,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        self._conn.close()

    def now(self) -> datetime:
        """Current time on the store clock (UTC)."""
        return self._clock()

    def _now(self) -> str:
        return _iso(self._clock())

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        else:
            self._conn.execute("COMMIT")

    # === TASKS ===

    async def create_task(
        self,
        filename: str,
        type: str = "pdf",  # noqa: A002
        page_range: str = "",
        provider: str = "",
        model: str = "",
        model_name: str = "",
        status: TaskStatus = TaskStatus.PENDING,
        task_id: str | None = None,
    ) -> Task:
        """Insert a new task and return it."""
        task_id = task_id or uuid.uuid4().hex
        now = self._now()
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO tasks
                   (id, filename, type, page_range, provider, model, model_name,
                    status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    task_id, filename, type, page_range, provider, model,
                    model_name or model, int(status), now, now,
                ),
            )
        task = await self.get_task(task_id)
        assert task is not None
        return task

    async def get_task(self, task_id: str) -> Task | None:
        row = self._conn.execute(
            "SELECT * FROM tasks WHERE id = ?", (task_id,)
        ).fetchone()
        return Task.model_validate(dict(row)) if row else None

    async def list_tasks(
        self, status: TaskStatus | None = None, limit: int | None = None
    ) -> list[Task]:
        """List tasks, oldest first."""
        sql = "SELECT * FROM tasks"
        params: list[Any] = []
        if status is not None:
            sql += " WHERE status = ?"
            params.append(int(status))
        sql += " ORDER BY created_at, rowid"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [Task.model_validate(dict(r)) for r in self._conn.execute(sql, params)]

    async def claim_task(
        self, from_status: TaskStatus, to_status: TaskStatus, worker_id: str
    ) -> Task | None:
        """Atomically claim the oldest unclaimed task in from_status.

        Returns:
            The claimed task, or None when no row is eligible (or another
            worker won the race).
        """
        with self._transaction() as conn:
            row = conn.execute(
                """SELECT id FROM tasks
                   WHERE status = ? AND worker_id IS NULL
                   ORDER BY created_at, rowid LIMIT 1""",
                (int(from_status),),
            ).fetchone()
            if row is None:
                return None
            cur = conn.execute(
                """UPDATE tasks SET status = ?, worker_id = ?, updated_at = ?
                   WHERE id = ? AND status = ? AND worker_id IS NULL""",
                (int(to_status), worker_id, self._now(), row["id"], int(from_status)),
            )
            if cur.rowcount != 1:
                return None
        return await self.get_task(row["id"])

    async def update_task(
        self, task_id: str, status: TaskStatus | None = None, **fields: Any
    ) -> None:
        """Unconditional write of status plus extra fields; stamps updated_at."""
        if status is not None:
            fields["status"] = int(status)
        self._update("tasks", _TASK_COLUMNS, task_id, fields)

    async def fail_task(self, task_id: str, worker_id: str, error: str) -> bool:
        """Mark a task failed and release its claim, while worker_id owns it.

        A cancelled task keeps its cancelled status.

        Returns:
            False when the task was cancelled, recovered or reclaimed meanwhile.
        """
        cur = self._conn.execute(
            """UPDATE tasks SET status = ?, error = ?, worker_id = NULL, updated_at = ?
               WHERE id = ? AND worker_id = ? AND status != ?""",
            (
                int(TaskStatus.FAILED), error, self._now(),
                task_id, worker_id, int(TaskStatus.CANCELLED),
            ),
        )
        return cur.rowcount == 1

    async def touch_task(self, task_id: str, worker_id: str) -> bool:
        """Refresh updated_at of a claimed task so it does not look stuck.

        Returns:
            False once worker_id no longer owns the task.
        """
        cur = self._conn.execute(
            "UPDATE tasks SET updated_at = ? WHERE id = ? AND worker_id = ?",
            (self._now(), task_id, worker_id),
        )
        return cur.rowcount == 1

    async def finish_task(
        self, task_id: str, worker_id: str, status: TaskStatus, **fields: Any
    ) -> bool:
        """Write a stage result only while worker_id still owns the task.

        The claim is released in the same statement.

        Returns:
            False when the task was cancelled, recovered or reclaimed meanwhile.
        """
        fields.update(status=int(status), worker_id=None)
        return self._update(
            "tasks", _TASK_COLUMNS, task_id, fields, owner=worker_id
        ) == 1

    async def release_task(
        self, task_id: str, worker_id: str, status: TaskStatus
    ) -> bool:
        """Hand a claimed task back (e.g. on shutdown) in a claimable status."""
        return await self.finish_task(task_id, worker_id, status)

    async def start_processing(
        self,
        task_id: str,
        worker_id: str,
        pages: list[PageInfo],
        provider: str = "",
        model: str = "",
    ) -> bool:
        """Insert one pending detail per page and move the task to processing.

        Runs in one transaction and only while worker_id owns the splitting
        task, so a split whose task was cancelled or recovered leaves no rows.
        """
        now = self._now()
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT worker_id, status FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()
            if (
                row is None
                or row["worker_id"] != worker_id
                or row["status"] != int(TaskStatus.SPLITTING)
            ):
                return False
            conn.execute("DELETE FROM task_details WHERE task_id = ?", (task_id,))
            conn.executemany(
                """INSERT INTO task_details
                   (task_id, page, page_source, status, provider, model,
                    created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        task_id, p.page, p.page_source, int(PageStatus.PENDING),
                        provider, model, now, now,
                    )
                    for p in pages
                ],
            )
            conn.execute(
                """UPDATE tasks SET status = ?, pages = ?, progress = 0,
                       completed_count = 0, failed_count = 0, error = NULL,
                       worker_id = NULL, updated_at = ?
                   WHERE id = ?""",
                (int(TaskStatus.PROCESSING), len(pages), now, task_id),
            )
        return True

    # === DETAILS ===

    async def get_detail(self, detail_id: int) -> TaskDetail | None:
        row = self._conn.execute(
            "SELECT * FROM task_details WHERE id = ?", (detail_id,)
        ).fetchone()
        return TaskDetail.model_validate(dict(row)) if row else None

    async def list_details(self, task_id: str) -> list[TaskDetail]:
        """All details of a task ordered by page."""
        rows = self._conn.execute(
            "SELECT * FROM task_details WHERE task_id = ? ORDER BY page",
            (task_id,),
        )
        return [TaskDetail.model_validate(dict(r)) for r in rows]

    async def claim_detail(self, worker_id: str) -> TaskDetail | None:
        """Atomically claim the oldest convertible page.

        Eligible: pending, or retrying with retry_after elapsed, unclaimed,
        and the parent task is processing.
        """
        now = self._now()
        with self._transaction() as conn:
            row = conn.execute(
                """SELECT d.id FROM task_details d
                   JOIN tasks t ON t.id = d.task_id
                   WHERE d.status IN (?, ?) AND d.worker_id IS NULL
                     AND (d.retry_after IS NULL OR d.retry_after <= ?)
                     AND t.status = ?
                   ORDER BY d.created_at, d.id LIMIT 1""",
                (*_CLAIMABLE_DETAIL, now, int(TaskStatus.PROCESSING)),
            ).fetchone()
            if row is None:
                return None
            cur = conn.execute(
                """UPDATE task_details
                   SET status = ?, worker_id = ?, started_at = ?, updated_at = ?,
                       retry_after = NULL
                   WHERE id = ? AND status IN (?, ?) AND worker_id IS NULL""",
                (
                    int(PageStatus.PROCESSING), worker_id, now, now,
                    row["id"], *_CLAIMABLE_DETAIL,
                ),
            )
            if cur.rowcount != 1:
                return None
        return await self.get_detail(row["id"])

    async def update_detail(
        self, detail_id: int, status: PageStatus | None = None, **fields: Any
    ) -> None:
        """Unconditional write of status plus extra fields; stamps updated_at."""
        if status is not None:
            fields["status"] = int(status)
        self._update("task_details", _DETAIL_COLUMNS, detail_id, fields)

    async def release_detail(self, detail_id: int, worker_id: str) -> bool:
        """Return an in-flight page to pending (used on shutdown)."""
        cur = self._conn.execute(
            """UPDATE task_details
               SET status = ?, worker_id = NULL, started_at = NULL, updated_at = ?
               WHERE id = ? AND worker_id = ? AND status = ?""",
            (
                int(PageStatus.PENDING), self._now(), detail_id, worker_id,
                int(PageStatus.PROCESSING),
            ),
        )
        return cur.rowcount == 1

    async def complete_detail(
        self, detail_id: int, worker_id: str, result: ConversionResult
    ) -> TaskStatus:
        """Record a converted page and advance the task aggregate.

        Returns:
            The task status after accounting.

        Raises:
            ClaimConflict: worker_id no longer owns the detail.
        """
        now = self._now()
        with self._transaction() as conn:
            detail = self._owned_detail(conn, detail_id, worker_id)
            task_status = self._task_status(conn, detail["task_id"])
            if task_status != TaskStatus.PROCESSING:
                self._discard_detail(conn, detail_id, now)
                return task_status
            conn.execute(
                """UPDATE task_details
                   SET status = ?, content = ?, input_tokens = ?, output_tokens = ?,
                       conversion_time_ms = ?, error = NULL, worker_id = NULL,
                       completed_at = ?, updated_at = ?
                   WHERE id = ?""",
                (
                    int(PageStatus.COMPLETED), result.markdown, result.input_tokens,
                    result.output_tokens, result.conversion_time_ms, now, now, detail_id,
                ),
            )
            return self._account(conn, detail["task_id"], completed=1, now=now)

    async def fail_detail(
        self, detail_id: int, worker_id: str, error: str
    ) -> TaskStatus:
        """Permanently fail a page and advance the task aggregate.

        Raises:
            ClaimConflict: worker_id no longer owns the detail.
        """
        now = self._now()
        with self._transaction() as conn:
            detail = self._owned_detail(conn, detail_id, worker_id)
            task_status = self._task_status(conn, detail["task_id"])
            if task_status != TaskStatus.PROCESSING:
                self._discard_detail(conn, detail_id, now)
                return task_status
            conn.execute(
                """UPDATE task_details
                   SET status = ?, error = ?, worker_id = NULL, updated_at = ?
                   WHERE id = ?""",
                (int(PageStatus.FAILED), error, now, detail_id),
            )
            return self._account(conn, detail["task_id"], failed=1, now=now)

    async def schedule_detail_retry(
        self, detail_id: int, worker_id: str, error: str, retry_after: datetime
    ) -> bool:
        """Move a failed page to retrying and release it.

        Returns:
            False when the parent task is no longer processing (the page is
            discarded instead).

        Raises:
            ClaimConflict: worker_id no longer owns the detail.
        """
        now = self._now()
        with self._transaction() as conn:
            detail = self._owned_detail(conn, detail_id, worker_id)
            if self._task_status(conn, detail["task_id"]) != TaskStatus.PROCESSING:
                self._discard_detail(conn, detail_id, now)
                return False
            conn.execute(
                """UPDATE task_details
                   SET status = ?, retry_count = retry_count + 1, error = ?,
                       retry_after = ?, worker_id = NULL, updated_at = ?
                   WHERE id = ?""",
                (int(PageStatus.RETRYING), error, _iso(retry_after), now, detail_id),
            )
        return True

    # === RECOVERY ===

    async def recover_stale(
        self,
        timeout: timedelta,
        max_recoveries: int,
        now: datetime | None = None,
    ) -> RecoveryReport:
        """Revert rows stuck in an in-progress status past the timeout.

        splitting -> pending, merging -> ready_to_merge, processing page ->
        pending; each recovery bumps timeout_count and a row recovered more
        than max_recoveries times is failed instead.
        """
        now_s = _iso(now or self._clock())
        cutoff = _iso((now or self._clock()) - timeout)
        report = RecoveryReport()
        revert = {
            int(TaskStatus.SPLITTING): TaskStatus.PENDING,
            int(TaskStatus.MERGING): TaskStatus.READY_TO_MERGE,
        }

        with self._transaction() as conn:
            stale_tasks = conn.execute(
                """SELECT id, status, timeout_count FROM tasks
                   WHERE status IN (?, ?) AND updated_at < ?""",
                (int(TaskStatus.SPLITTING), int(TaskStatus.MERGING), cutoff),
            ).fetchall()
            for row in stale_tasks:
                count = row["timeout_count"] + 1
                stage = TaskStatus(row["status"]).name.lower()
                if count > max_recoveries:
                    conn.execute(
                        """UPDATE tasks SET status = ?, worker_id = NULL,
                               timeout_count = ?, error = ?, updated_at = ?
                           WHERE id = ?""",
                        (
                            int(TaskStatus.FAILED), count,
                            f"Timed out {count} times while {stage}", now_s, row["id"],
                        ),
                    )
                    report.tasks_failed += 1
                else:
                    conn.execute(
                        """UPDATE tasks SET status = ?, worker_id = NULL,
                               timeout_count = ?, updated_at = ?
                           WHERE id = ?""",
                        (int(revert[row["status"]]), count, now_s, row["id"]),
                    )
                    report.tasks_requeued += 1

            stale_details = conn.execute(
                """SELECT id, task_id, timeout_count FROM task_details
                   WHERE status = ? AND updated_at < ?""",
                (int(PageStatus.PROCESSING), cutoff),
            ).fetchall()
            for row in stale_details:
                count = row["timeout_count"] + 1
                if count > max_recoveries:
                    conn.execute(
                        """UPDATE task_details SET status = ?, worker_id = NULL,
                               timeout_count = ?, error = ?, updated_at = ?
                           WHERE id = ?""",
                        (
                            int(PageStatus.FAILED), count,
                            f"Timed out {count} times while converting", now_s, row["id"],
                        ),
                    )
                    if self._task_status(conn, row["task_id"]) == TaskStatus.PROCESSING:
                        self._account(conn, row["task_id"], failed=1, now=now_s)
                    report.pages_failed += 1
                else:
                    conn.execute(
                        """UPDATE task_details SET status = ?, worker_id = NULL,
                               started_at = NULL, timeout_count = ?, updated_at = ?
                           WHERE id = ?""",
                        (int(PageStatus.PENDING), count, now_s, row["id"]),
                    )
                    report.pages_requeued += 1
        return report

    async def cleanup_orphaned_work(self) -> CleanupResult:
        """Release every claim left behind by a previous process."""
        now = self._now()
        result = CleanupResult()
        with self._transaction() as conn:
            result.orphaned_pages = conn.execute(
                """UPDATE task_details SET status = ?, worker_id = NULL,
                       started_at = NULL, updated_at = ?
                   WHERE status = ?""",
                (int(PageStatus.PENDING), now, int(PageStatus.PROCESSING)),
            ).rowcount
            result.orphaned_splitting_tasks = conn.execute(
                """UPDATE tasks SET status = ?, worker_id = NULL, updated_at = ?
                   WHERE status = ?""",
                (int(TaskStatus.PENDING), now, int(TaskStatus.SPLITTING)),
            ).rowcount
            result.orphaned_merging_tasks = conn.execute(
                """UPDATE tasks SET status = ?, worker_id = NULL, updated_at = ?
                   WHERE status = ?""",
                (int(TaskStatus.READY_TO_MERGE), now, int(TaskStatus.MERGING)),
            ).rowcount
            result.orphaned_pending_pages = conn.execute(
                f"""UPDATE task_details SET status = ?, error = ?, worker_id = NULL,
                        updated_at = ?
                    WHERE status IN (?, ?) AND task_id IN (
                        SELECT id FROM tasks
                        WHERE status IN ({",".join("?" * len(_TERMINAL))})
                    )""",
                (
                    int(PageStatus.FAILED), ORPHANED_MESSAGE, now,
                    *_CLAIMABLE_DETAIL, *_TERMINAL,
                ),
            ).rowcount
        return result

    # === ADMINISTRATION ===

    async def cancel_task(self, task_id: str) -> bool:
        """Cancel a non-terminal task; pages not yet converted are failed.

        In-flight work is not interrupted; its owner discards the result
        when it next writes.
        """
        now = self._now()
        with self._transaction() as conn:
            cur = conn.execute(
                f"""UPDATE tasks SET status = ?, worker_id = NULL, updated_at = ?
                    WHERE id = ? AND status NOT IN ({",".join("?" * len(_TERMINAL))})""",
                (int(TaskStatus.CANCELLED), now, task_id, *_TERMINAL),
            )
            if cur.rowcount != 1:
                return False
            conn.execute(
                """UPDATE task_details SET status = ?, error = ?, updated_at = ?
                   WHERE task_id = ? AND status IN (?, ?) AND worker_id IS NULL""",
                (int(PageStatus.FAILED), CANCELLED_MESSAGE, now, task_id, *_CLAIMABLE_DETAIL),
            )
        return True

    async def delete_task(self, task_id: str) -> bool:
        """Delete a task and its pages."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM task_details WHERE task_id = ?", (task_id,))
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        return cur.rowcount == 1

    async def retry_page(self, task_id: str, page: int) -> TaskDetail:
        """Send one failed or completed page back for conversion.

        The page's retry budget is reset and the task returns to processing.

        Raises:
            TaskNotFoundError: Unknown task or page.
            TaskStateError: Task cancelled or mid-stage, or page not terminal.
        """
        now = self._now()
        with self._transaction() as conn:
            self._retryable_task(conn, task_id)
            row = conn.execute(
                "SELECT id, status FROM task_details WHERE task_id = ? AND page = ?",
                (task_id, page),
            ).fetchone()
            if row is None:
                raise TaskNotFoundError(f"Page {page} not found in task {task_id}")
            status = PageStatus(row["status"])
            if status not in (PageStatus.FAILED, PageStatus.COMPLETED):
                raise TaskStateError(
                    f"Page {page} is {status.name.lower()}; only failed or "
                    f"completed pages can be retried"
                )
            counter = "failed_count" if status == PageStatus.FAILED else "completed_count"
            self._reset_details(conn, [row["id"]], now)
            conn.execute(
                f"UPDATE tasks SET {counter} = MAX({counter} - 1, 0) WHERE id = ?",
                (task_id,),
            )
            self._reopen_task(conn, task_id, now)
        detail = await self.get_detail(row["id"])
        assert detail is not None
        return detail

    async def retry_failed_pages(self, task_id: str) -> int:
        """Send every failed page of a task back for conversion.

        Returns:
            Number of pages requeued.
        """
        now = self._now()
        with self._transaction() as conn:
            self._retryable_task(conn, task_id)
            ids = [
                r["id"]
                for r in conn.execute(
                    "SELECT id FROM task_details WHERE task_id = ? AND status = ?",
                    (task_id, int(PageStatus.FAILED)),
                )
            ]
            if not ids:
                return 0
            self._reset_details(conn, ids, now)
            conn.execute(
                "UPDATE tasks SET failed_count = MAX(failed_count - ?, 0) WHERE id = ?",
                (len(ids), task_id),
            )
            self._reopen_task(conn, task_id, now)
        return len(ids)

    async def page_stats(self, task_id: str) -> PageStats:
        """Page counts by status plus token and time totals."""
        stats = PageStats(task_id=task_id)
        for row in self._conn.execute(
            """SELECT status, COUNT(*) AS n, SUM(input_tokens) AS inp,
                      SUM(output_tokens) AS outp, SUM(conversion_time_ms) AS ms
               FROM task_details WHERE task_id = ? GROUP BY status""",
            (task_id,),
        ):
            stats.by_status[PageStatus(row["status"]).name.lower()] = row["n"]
            stats.input_tokens += row["inp"] or 0
            stats.output_tokens += row["outp"] or 0
            stats.conversion_time_ms += row["ms"] or 0
        return stats

    async def has_running_tasks(self) -> bool:
        """True if any task is queued or in a pipeline stage."""
        row = self._conn.execute(
            "SELECT 1 FROM tasks WHERE status BETWEEN ? AND ? LIMIT 1",
            (int(TaskStatus.PENDING), int(TaskStatus.MERGING)),
        ).fetchone()
        return row is not None

    # --- Internal helpers ---

    def _update(
        self,
        table: str,
        allowed: frozenset[str],
        row_id: object,
        fields: dict[str, Any],
        owner: str | None = None,
    ) -> int:
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown {table} column(s): {', '.join(sorted(unknown))}")
        fields["updated_at"] = self._clock()
        values = [_to_column(v) for v in fields.values()]
        sql = f"UPDATE {table} SET {', '.join(f'{k} = ?' for k in fields)} WHERE id = ?"
        params = [*values, row_id]
        if owner is not None:
            sql += " AND worker_id = ?"
            params.append(owner)
        return self._conn.execute(sql, params).rowcount

    @staticmethod
    def _owned_detail(
        conn: sqlite3.Connection, detail_id: int, worker_id: str
    ) -> sqlite3.Row:
        row = conn.execute(
            "SELECT id, task_id, worker_id, status FROM task_details WHERE id = ?",
            (detail_id,),
        ).fetchone()
        if (
            row is None
            or row["worker_id"] != worker_id
            or row["status"] != int(PageStatus.PROCESSING)
        ):
            raise ClaimConflict(f"Page row {detail_id} is no longer owned by {worker_id}")
        return row

    @staticmethod
    def _task_status(conn: sqlite3.Connection, task_id: str) -> TaskStatus | None:
        row = conn.execute("SELECT status FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return TaskStatus(row["status"]) if row else None

    @staticmethod
    def _discard_detail(conn: sqlite3.Connection, detail_id: int, now: str) -> None:
        conn.execute(
            """UPDATE task_details SET status = ?, error = ?, worker_id = NULL,
                   updated_at = ?
               WHERE id = ?""",
            (int(PageStatus.FAILED), CANCELLED_MESSAGE, now, detail_id),
        )

    def _account(
        self,
        conn: sqlite3.Connection,
        task_id: str,
        completed: int = 0,
        failed: int = 0,
        now: str = "",
    ) -> TaskStatus:
        """Apply counter deltas, recompute progress, advance a finished task."""
        row = conn.execute(
            "SELECT pages, completed_count, failed_count, status FROM tasks WHERE id = ?",
            (task_id,),
        ).fetchone()
        pages = row["pages"]
        done = row["completed_count"] + completed
        lost = row["failed_count"] + failed
        progress = round((done + lost) / pages * 100) if pages else 100
        status = TaskStatus(row["status"])
        error = None

        if pages and done + lost >= pages and status == TaskStatus.PROCESSING:
            if lost / pages > self._max_failed_page_ratio:
                status = TaskStatus.FAILED
                error = (
                    f"{lost} of {pages} pages failed, more than the allowed "
                    f"{self._max_failed_page_ratio:.0%}"
                )
            else:
                status = TaskStatus.READY_TO_MERGE

        conn.execute(
            """UPDATE tasks SET completed_count = ?, failed_count = ?, progress = ?,
                   status = ?, error = COALESCE(?, error), updated_at = ?
               WHERE id = ?""",
            (done, lost, progress, int(status), error, now or self._now(), task_id),
        )
        if status != TaskStatus.PROCESSING:
            logger.info(
                "Task %s: all %d pages done (%d failed) -> %s",
                task_id, pages, lost, status.name.lower(),
            )
        return status

    @staticmethod
    def _retryable_task(conn: sqlite3.Connection, task_id: str) -> None:
        row = conn.execute("SELECT status FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        status = TaskStatus(row["status"])
        if status == TaskStatus.CANCELLED:
            raise TaskStateError(f"Task {task_id} was cancelled and cannot be retried")
        if status in (
            TaskStatus.CREATED, TaskStatus.PENDING, TaskStatus.SPLITTING, TaskStatus.MERGING
        ):
            raise TaskStateError(
                f"Task {task_id} is {status.name.lower()}; retry it once the stage finishes"
            )

    @staticmethod
    def _reset_details(conn: sqlite3.Connection, ids: list[int], now: str) -> None:
        conn.execute(
            f"""UPDATE task_details
                SET status = ?, worker_id = NULL, content = '', error = NULL,
                    retry_count = 0, timeout_count = 0, retry_after = NULL,
                    started_at = NULL, completed_at = NULL, updated_at = ?
                WHERE id IN ({",".join("?" * len(ids))})""",
            (int(PageStatus.PENDING), now, *ids),
        )

    @staticmethod
    def _reopen_task(conn: sqlite3.Connection, task_id: str, now: str) -> None:
        conn.execute(
            """UPDATE tasks SET status = ?, worker_id = NULL, error = NULL,
                   progress = CASE WHEN pages > 0
                       THEN CAST(ROUND((completed_count + failed_count) * 100.0 / pages) AS INTEGER)
                       ELSE 0 END,
                   updated_at = ?
               WHERE id = ?""",
            (int(TaskStatus.PROCESSING), now, task_id),
        )
