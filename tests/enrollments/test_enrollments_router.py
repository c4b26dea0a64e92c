"""API tests for the enrollment endpoints."""

from uuid import uuid4

from fastapi.testclient import TestClient

from orah.auth.schemas import Caller
from orah.directory.models import Lesson


def test_requires_token(client: TestClient, lesson: Lesson) -> None:
    response = client.post("/v1/enrollments", json={"lesson_id": str(lesson.id)})
    assert response.status_code == 401
    assert response.json()["error"] is True


def test_enroll_then_duplicate(
    client: TestClient, auth_headers, student: Caller, lesson: Lesson
) -> None:
    headers = auth_headers(student)

    created = client.post(
        "/v1/enrollments", json={"lesson_id": str(lesson.id)}, headers=headers
    )
    assert created.status_code == 201
    body = created.json()
    assert body["progress"] == 0
    assert body["status"] == "active"
    assert body["user_id"] == str(student.id)

    duplicate = client.post(
        "/v1/enrollments", json={"lesson_id": str(lesson.id)}, headers=headers
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "already_enrolled"


def test_enroll_unknown_lesson(
    client: TestClient, auth_headers, student: Caller
) -> None:
    response = client.post(
        "/v1/enrollments",
        json={"lesson_id": str(uuid4())},
        headers=auth_headers(student),
    )
    assert response.status_code == 404
    assert response.json()["code"] == "lesson_not_found"


def test_progress_flow(
    client: TestClient, auth_headers, student: Caller, lesson: Lesson
) -> None:
    headers = auth_headers(student)
    enrollment_id = client.post(
        "/v1/enrollments", json={"lesson_id": str(lesson.id)}, headers=headers
    ).json()["id"]

    halfway = client.patch(
        f"/v1/enrollments/{enrollment_id}/progress",
        json={"progress": 50, "timeSpentSeconds": 10},
        headers=headers,
    )
    assert halfway.status_code == 200
    assert halfway.json()["progress"] == 50
    assert halfway.json()["time_spent_seconds"] == 10

    done = client.patch(
        f"/v1/enrollments/{enrollment_id}/progress",
        json={"progress": 100, "timeSpentSeconds": 10},
        headers=headers,
    )
    assert done.status_code == 200
    assert done.json()["status"] == "completed"
    assert done.json()["time_spent_seconds"] == 20


def test_invalid_progress_is_400(
    client: TestClient, auth_headers, student: Caller, lesson: Lesson
) -> None:
    headers = auth_headers(student)
    enrollment_id = client.post(
        "/v1/enrollments", json={"lesson_id": str(lesson.id)}, headers=headers
    ).json()["id"]

    for payload in ({"progress": 120}, {"progress": "lots"}, {}):
        response = client.patch(
            f"/v1/enrollments/{enrollment_id}/progress", json=payload, headers=headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_input"


def test_full_progress_with_missed_status_completes(
    client: TestClient, auth_headers, student: Caller, lesson: Lesson
) -> None:
    headers = auth_headers(student)
    enrollment_id = client.post(
        "/v1/enrollments", json={"lesson_id": str(lesson.id)}, headers=headers
    ).json()["id"]

    response = client.patch(
        f"/v1/enrollments/{enrollment_id}/progress",
        json={"progress": 100, "status": "missed"},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "completed"


def test_completion_committed_when_relock_fails(
    client: TestClient, auth_headers, store, student: Caller, past_lesson: Lesson
) -> None:
    enrollment = store.seed(
        lesson_id=past_lesson.id, user_id=student.id, redo_granted=True
    )
    apply = store.apply

    async def fail_relock(enrollment_id, mutator):
        if store.records[enrollment_id].is_completed:
            raise RuntimeError("write timeout")
        return await apply(enrollment_id, mutator)

    store.apply = fail_relock

    response = client.patch(
        f"/v1/enrollments/{enrollment.id}/progress",
        json={"progress": 100},
        headers=auth_headers(student),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["version"] == enrollment.version + 1


def test_locked_lesson_returns_distinct_code(
    client: TestClient, auth_headers, store, student: Caller, past_lesson: Lesson
) -> None:
    enrollment = store.seed(lesson_id=past_lesson.id, user_id=student.id)

    response = client.patch(
        f"/v1/enrollments/{enrollment.id}/progress",
        json={"progress": 10},
        headers=auth_headers(student),
    )

    assert response.status_code == 403
    assert response.json()["code"] == "LESSON_LOCKED"


def test_redo_endpoints(
    client: TestClient,
    auth_headers,
    store,
    student: Caller,
    instructor: Caller,
    past_lesson: Lesson,
) -> None:
    enrollment = store.seed(lesson_id=past_lesson.id, user_id=student.id)

    requested = client.post(
        f"/v1/enrollments/{enrollment.id}/redo-request",
        headers=auth_headers(student),
    )
    assert requested.status_code == 200
    assert requested.json()["redo_requested"] is True

    pending = client.get(
        "/v1/enrollments/redo-requests", headers=auth_headers(instructor)
    )
    assert pending.status_code == 200
    assert [e["id"] for e in pending.json()["items"]] == [str(enrollment.id)]

    granted = client.post(
        f"/v1/enrollments/{enrollment.id}/redo-grant",
        headers=auth_headers(instructor),
    )
    assert granted.status_code == 200
    assert granted.json()["redo_granted"] is True
    assert granted.json()["redo_requested"] is False


def test_students_cannot_list_redo_requests(
    client: TestClient, auth_headers, student: Caller
) -> None:
    response = client.get(
        "/v1/enrollments/redo-requests", headers=auth_headers(student)
    )
    assert response.status_code == 403


def test_me_and_unenroll(
    client: TestClient, auth_headers, student: Caller, lesson: Lesson
) -> None:
    headers = auth_headers(student)
    enrollment_id = client.post(
        "/v1/enrollments", json={"lesson_id": str(lesson.id)}, headers=headers
    ).json()["id"]

    mine = client.get("/v1/enrollments/me", headers=headers)
    assert mine.status_code == 200
    assert mine.json()["total"] == 1

    deleted = client.delete(f"/v1/enrollments/{enrollment_id}", headers=headers)
    assert deleted.status_code == 204

    missing = client.get(f"/v1/enrollments/{enrollment_id}", headers=headers)
    assert missing.status_code == 404


def test_unenroll_by_other_student_forbidden(
    client: TestClient,
    auth_headers,
    student: Caller,
    other_student: Caller,
    lesson: Lesson,
) -> None:
    enrollment_id = client.post(
        "/v1/enrollments",
        json={"lesson_id": str(lesson.id)},
        headers=auth_headers(student),
    ).json()["id"]

    response = client.delete(
        f"/v1/enrollments/{enrollment_id}", headers=auth_headers(other_student)
    )
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"
