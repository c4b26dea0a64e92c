"""API tests for the admin job endpoints."""

from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

from orah.auth.schemas import Caller
from orah.directory.models import Lesson
from orah.jobs.deadline_sweep import DeadlineSweep
from orah.utils.dates import utc_now


def test_admin_runs_sweep(
    app: FastAPI,
    client: TestClient,
    auth_headers,
    store,
    directory,
    outbox,
    admin: Caller,
    student: Caller,
    lesson: Lesson,
) -> None:
    app.state.deadline_sweep = DeadlineSweep(store, directory, outbox)
    enrollment = store.seed(
        lesson_id=lesson.id,
        user_id=student.id,
        enrolled_at=utc_now() - timedelta(days=10),
    )

    response = client.post(
        "/v1/admin/jobs/deadline-sweep", headers=auth_headers(admin)
    )

    assert response.status_code == 200
    assert response.json()["missed"] == 1
    assert store.records[enrollment.id].status == "missed"


def test_students_cannot_run_sweep(
    app: FastAPI, client: TestClient, auth_headers, store, directory, outbox, student: Caller
) -> None:
    app.state.deadline_sweep = DeadlineSweep(store, directory, outbox)

    response = client.post(
        "/v1/admin/jobs/deadline-sweep", headers=auth_headers(student)
    )

    assert response.status_code == 403


def test_sweep_unavailable(client: TestClient, auth_headers, admin: Caller) -> None:
    response = client.post(
        "/v1/admin/jobs/deadline-sweep", headers=auth_headers(admin)
    )
    assert response.status_code == 503
