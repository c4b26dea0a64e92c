"""Notification outbox service.

Delivery is at-least-once: a handler may run more than once for the same
task (eager delivery racing a drain, or a crash between success and delete),
so handlers must tolerate repeats. Attendance is idempotent by key.
"""

from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import structlog

from orah.utils.dates import utc_now

from .models import OutboxTask, TaskKind, decode_payload, encode_payload


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

# Handler: payload -> delivered?
TaskHandler = Callable[[dict[str, Any]], Awaitable[bool]]

# Tasks younger than this are left to their eager delivery
DRAIN_GRACE = timedelta(seconds=30)


@dataclass
class DrainReport:
    """Outcome of one outbox drain."""

    delivered: int = 0
    failed: int = 0
    dead_lettered: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class OutboxService:
    """Durable queue for enrollment side effects."""

    def __init__(self, session: "Session", keyspace: str, max_attempts: int = 5):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self.max_attempts = max_attempts
        self._handlers: dict[TaskKind, TaskHandler] = {}
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_task = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.outbox_tasks
            (kind, task_id, payload, attempts, last_error, enqueued_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        self._get_due_tasks = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.outbox_tasks
            WHERE kind = ? AND task_id < maxTimeuuid(?)
            LIMIT ?
        """)

        self._record_failure = self.session.prepare(f"""
            UPDATE {self.keyspace}.outbox_tasks
            SET attempts = ?, last_error = ?
            WHERE kind = ? AND task_id = ?
        """)

        self._delete_task = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.outbox_tasks
            WHERE kind = ? AND task_id = ?
        """)

        self._insert_dead_letter = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.outbox_dead_letters
            (kind, task_id, payload, attempts, last_error, enqueued_at, failed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

    def register_handler(self, kind: TaskKind, handler: TaskHandler) -> None:
        """Register the delivery handler for a task kind."""
        self._handlers[kind] = handler

    # ==========================================================================
    # Enqueue / Deliver
    # ==========================================================================

    async def enqueue(self, kind: TaskKind, payload: dict[str, Any]) -> OutboxTask:
        """Persist a task for delivery.

        The payload is stored as JSON and handed to handlers in its decoded
        form, so eager and drained deliveries see the same values.
        """
        encoded = encode_payload(payload)
        task = OutboxTask(kind=kind, payload=decode_payload(encoded))
        await self.session.aexecute(
            self._insert_task,
            [
                task.kind.value,
                task.task_id,
                encoded,
                task.attempts,
                task.last_error,
                task.enqueued_at,
            ],
        )
        logger.debug("outbox_task_enqueued", kind=kind.value, task_id=str(task.task_id))
        return task

    async def deliver(self, task: OutboxTask) -> bool:
        """Run the task's handler once and settle the task.

        Never raises for handler failures: they are recorded on the task.
        """
        handler = self._handlers.get(task.kind)
        error: str | None = None

        if handler is None:
            error = f"No handler registered for {task.kind.value}"
            delivered = False
        else:
            try:
                delivered = await handler(task.payload)
            except Exception as e:
                logger.exception(
                    "outbox_handler_failed",
                    kind=task.kind.value,
                    task_id=str(task.task_id),
                )
                delivered = False
                error = f"{type(e).__name__}: {e}"

        if delivered:
            await self.session.aexecute(
                self._delete_task, [task.kind.value, task.task_id]
            )
            logger.info(
                "outbox_task_delivered",
                kind=task.kind.value,
                task_id=str(task.task_id),
                attempts=task.attempts + 1,
            )
            return True

        await self._settle_failure(task, error or "Handler reported failure")
        return False

    async def dispatch(self, kind: TaskKind, payload: dict[str, Any]) -> bool:
        """Enqueue a task and attempt delivery right away.

        Returns whether the eager delivery succeeded. A failed task stays
        queued for the drain.
        """
        task = await self.enqueue(kind, payload)
        return await self.deliver(task)

    async def _settle_failure(self, task: OutboxTask, error: str) -> None:
        task.attempts += 1
        task.last_error = error

        if task.attempts >= self.max_attempts:
            await self.session.aexecute(
                self._insert_dead_letter,
                [
                    task.kind.value,
                    task.task_id,
                    encode_payload(task.payload),
                    task.attempts,
                    task.last_error,
                    task.enqueued_at,
                    utc_now(),
                ],
            )
            await self.session.aexecute(
                self._delete_task, [task.kind.value, task.task_id]
            )
            logger.error(
                "outbox_task_dead_lettered",
                kind=task.kind.value,
                task_id=str(task.task_id),
                attempts=task.attempts,
                error=error,
            )
            return

        await self.session.aexecute(
            self._record_failure,
            [task.attempts, task.last_error, task.kind.value, task.task_id],
        )
        logger.warning(
            "outbox_task_failed",
            kind=task.kind.value,
            task_id=str(task.task_id),
            attempts=task.attempts,
            error=error,
        )

    # ==========================================================================
    # Drain
    # ==========================================================================

    async def drain(self, limit: int = 100) -> DrainReport:
        """Redeliver queued tasks, oldest first, up to ``limit`` per kind."""
        report = DrainReport()
        cutoff = utc_now() - DRAIN_GRACE

        for kind in TaskKind:
            rows = await self.session.aexecute(
                self._get_due_tasks, [kind.value, cutoff, limit]
            )
            for row in rows:
                task = OutboxTask.from_row(row)
                if await self.deliver(task):
                    report.delivered += 1
                elif task.attempts >= self.max_attempts:
                    report.dead_lettered += 1
                else:
                    report.failed += 1

        if report.delivered or report.failed or report.dead_lettered:
            logger.info("outbox_drained", **report.to_dict())
        return report
