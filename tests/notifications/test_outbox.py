"""Tests for OutboxService delivery, retry and dead-lettering."""

from datetime import UTC, date, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid1, uuid4

import orjson
import pytest
from cassandra.cluster import Session

from orah.notifications.models import OutboxTask, TaskKind
from orah.notifications.service import OutboxService


@pytest.fixture
def mock_session():
    """Mock Cassandra session; prepared statements are their CQL text."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: cql)
    session.aexecute = AsyncMock(return_value=[])
    return session


@pytest.fixture
def outbox(mock_session) -> OutboxService:
    return OutboxService(session=mock_session, keyspace="test_keyspace", max_attempts=3)


def executed(mock_session) -> list[str]:
    return [c.args[0] for c in mock_session.aexecute.call_args_list]


def make_row(kind: TaskKind, attempts: int = 0, payload: dict | None = None):
    return SimpleNamespace(
        kind=kind.value,
        task_id=uuid1(),
        payload=orjson.dumps(payload or {}).decode(),
        attempts=attempts,
        last_error=None,
        enqueued_at=datetime(2026, 6, 1, 12, 0),
    )


class TestDispatch:
    @pytest.mark.asyncio
    async def test_success_deletes_task(self, outbox: OutboxService, mock_session) -> None:
        handler = AsyncMock(return_value=True)
        outbox.register_handler(TaskKind.ATTENDANCE_PRESENT, handler)

        delivered = await outbox.dispatch(
            TaskKind.ATTENDANCE_PRESENT,
            {"student_id": uuid4(), "date": date(2026, 6, 1)},
        )

        assert delivered is True
        assert executed(mock_session) == [outbox._insert_task, outbox._delete_task]

    @pytest.mark.asyncio
    async def test_handler_sees_json_values(self, outbox: OutboxService) -> None:
        student_id = uuid4()
        handler = AsyncMock(return_value=True)
        outbox.register_handler(TaskKind.ATTENDANCE_PRESENT, handler)

        await outbox.dispatch(
            TaskKind.ATTENDANCE_PRESENT,
            {"student_id": student_id, "date": date(2026, 6, 1)},
        )

        handler.assert_awaited_once_with(
            {"student_id": str(student_id), "date": "2026-06-01"}
        )

    @pytest.mark.asyncio
    async def test_failure_stays_queued(self, outbox: OutboxService, mock_session) -> None:
        outbox.register_handler(
            TaskKind.NOTIFY_STUDENT_MISSED, AsyncMock(side_effect=RuntimeError("smtp"))
        )

        delivered = await outbox.dispatch(TaskKind.NOTIFY_STUDENT_MISSED, {})

        assert delivered is False
        assert executed(mock_session) == [outbox._insert_task, outbox._record_failure]
        params = mock_session.aexecute.call_args_list[-1].args[1]
        assert params[0] == 1
        assert params[1] == "RuntimeError: smtp"

    @pytest.mark.asyncio
    async def test_missing_handler_is_a_failure(
        self, outbox: OutboxService, mock_session
    ) -> None:
        delivered = await outbox.dispatch(TaskKind.NOTIFY_LESSON_REMINDER, {})

        assert delivered is False
        params = mock_session.aexecute.call_args_list[-1].args[1]
        assert "No handler registered" in params[1]


class TestDeliver:
    @pytest.mark.asyncio
    async def test_dead_letter_after_max_attempts(
        self, outbox: OutboxService, mock_session
    ) -> None:
        outbox.register_handler(TaskKind.NOTIFY_STUDENT_MISSED, AsyncMock(return_value=False))
        task = OutboxTask(kind=TaskKind.NOTIFY_STUDENT_MISSED, payload={}, attempts=2)

        assert await outbox.deliver(task) is False

        assert task.attempts == 3
        assert executed(mock_session) == [
            outbox._insert_dead_letter,
            outbox._delete_task,
        ]


class TestDrain:
    @pytest.mark.asyncio
    async def test_drain_reports_outcomes(
        self, outbox: OutboxService, mock_session
    ) -> None:
        rows = {
            TaskKind.ATTENDANCE_PRESENT.value: [make_row(TaskKind.ATTENDANCE_PRESENT)],
            TaskKind.NOTIFY_STUDENT_MISSED.value: [
                make_row(TaskKind.NOTIFY_STUDENT_MISSED, attempts=0),
                make_row(TaskKind.NOTIFY_STUDENT_MISSED, attempts=2),
            ],
        }

        async def aexecute(statement, params=None):
            if statement == outbox._get_due_tasks:
                return rows.get(params[0], [])
            return None

        mock_session.aexecute.side_effect = aexecute
        outbox.register_handler(TaskKind.ATTENDANCE_PRESENT, AsyncMock(return_value=True))
        outbox.register_handler(TaskKind.NOTIFY_STUDENT_MISSED, AsyncMock(return_value=False))

        report = await outbox.drain(limit=10)

        assert report.to_dict() == {"delivered": 1, "failed": 1, "dead_lettered": 1}

    @pytest.mark.asyncio
    async def test_drain_respects_grace_period(
        self, outbox: OutboxService, mock_session
    ) -> None:
        before = datetime.now(UTC)

        await outbox.drain(limit=5)

        queries = [
            c.args[1]
            for c in mock_session.aexecute.call_args_list
            if c.args[0] == outbox._get_due_tasks
        ]
        assert [q[0] for q in queries] == [kind.value for kind in TaskKind]
        for _kind, cutoff, limit in queries:
            assert cutoff < before
            assert limit == 5
