"""API tests for the exam app endpoints."""

import uuid
from datetime import timedelta

from app.common.clock import utcnow
from app.core.config import settings
from app.models.exam import AttemptStatus, ExamAttempt
from tests.helpers.auth import auth_headers
from tests.helpers.seed import TEACHER_PASSWORD, create_exam_code, create_test_instructor

BASE = "/api/exam-app"


def _authorize(client, headers, code, password=TEACHER_PASSWORD):
    return client.post(
        f"{BASE}/authorize", json={"code": code, "teacherPassword": password}, headers=headers
    )


def _start(client, headers, token):
    return client.post(f"{BASE}/start", json={"authorizationToken": token}, headers=headers)


def _launch(client, headers, code):
    token = _authorize(client, headers, code).json()["authorizationToken"]
    return _start(client, headers, token).json()


def test_get_exam_info(client, student_headers, exam, exam_code):
    response = client.get(f"{BASE}/code/{exam_code.code}", headers=student_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["exam"]["examId"] == str(exam.id)
    assert data["exam"]["durationMinutes"] == 60
    assert data["exam"]["questionCount"] == 3
    assert data["exam"]["isProgrammingExam"] is False
    assert response.headers["Cache-Control"] == "no-store"


def test_get_exam_info_unknown_code_is_404(client, student_headers, exam):
    response = client.get(f"{BASE}/code/NOPE", headers=student_headers)

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "Invalid or expired exam code.",
        "errorCode": "INVALID_CODE",
    }


def test_requires_authentication(client, exam_code):
    assert client.get(f"{BASE}/code/{exam_code.code}").status_code == 401
    response = client.post(f"{BASE}/authorize", json={"code": exam_code.code})
    assert response.status_code == 401
    assert response.json()["error_code"] == "HTTP_ERROR"


def test_rejects_garbage_bearer_token(client, exam_code):
    response = client.get(
        f"{BASE}/code/{exam_code.code}", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


def test_requires_student_role(client, instructor_headers, exam_code):
    response = _authorize(client, instructor_headers, exam_code.code)

    assert response.status_code == 403


def test_authorize_and_start(client, db, student, student_headers, exam_code):
    authorized = _authorize(client, student_headers, exam_code.code)

    assert authorized.status_code == 200
    body = authorized.json()
    assert body["success"] is True
    assert body["authorizationToken"]
    assert body["expiresAtUtc"]
    assert body["exam"]["title"] == "Mathematics 101"
    assert authorized.headers["Cache-Control"] == "no-store"

    started = _start(client, student_headers, body["authorizationToken"])

    assert started.status_code == 200
    launch = started.json()
    assert launch["success"] is True
    assert launch["launchToken"]
    assert launch["isProgrammingExam"] is False
    attempt = db.get(ExamAttempt, uuid.UUID(launch["attemptId"]))
    assert attempt.student_id == student.id


def test_authorize_failures_are_structured(client, student_headers, exam_code):
    missing = _authorize(client, student_headers, exam_code.code, password=None)
    wrong = _authorize(client, student_headers, exam_code.code, password="nope")
    bad_code = _authorize(client, student_headers, "NOPE")

    assert missing.status_code == 400
    assert missing.json()["errorCode"] == "TEACHER_PASSWORD_REQUIRED"
    assert wrong.status_code == 400
    assert wrong.json()["errorCode"] == "TEACHER_PASSWORD_INVALID"
    assert bad_code.status_code == 400
    assert bad_code.json() == {
        "success": False,
        "error": "Invalid or expired exam code.",
        "errorCode": "INVALID_CODE",
    }


def test_oversized_inputs_fail_like_unknown_ones(client, student_headers, exam_code):
    long_code = "A" * 100
    lookup = client.get(f"{BASE}/code/{long_code}", headers=student_headers)
    authorize = _authorize(client, student_headers, long_code)
    start = _start(client, student_headers, "t" * 1000)
    password = _authorize(client, student_headers, exam_code.code, password="p" * 1000)

    assert lookup.status_code == 404
    assert lookup.json()["errorCode"] == "INVALID_CODE"
    assert authorize.status_code == 400
    assert authorize.json()["errorCode"] == "INVALID_CODE"
    assert start.status_code == 400
    assert start.json()["errorCode"] == "INVALID_OR_EXPIRED_AUTHORIZATION"
    assert password.status_code == 400
    assert password.json()["errorCode"] == "TEACHER_PASSWORD_INVALID"


def test_locked_gate_rejects_correct_password(client, student_headers, exam_code):
    for i in range(settings.EXAM_APP_GATE_FAIL_THRESHOLD):
        wrong = _authorize(client, student_headers, exam_code.code, password=f"guess-{i}")
        assert wrong.status_code == 400

    response = _authorize(client, student_headers, exam_code.code)

    assert response.status_code == 400
    assert response.json()["errorCode"] == "TEACHER_PASSWORD_INVALID"


def test_single_use_code_over_http(client, db, exam, student_headers):
    create_exam_code(db, exam, code="MATH101-X", max_uses=1)

    assert _authorize(client, student_headers, "MATH101-X").status_code == 200
    second = _authorize(client, student_headers, "MATH101-X")
    assert second.status_code == 400
    assert second.json()["errorCode"] == "INVALID_CODE"


def test_start_twice_with_same_token(client, student_headers, exam_code):
    token = _authorize(client, student_headers, exam_code.code).json()["authorizationToken"]

    assert _start(client, student_headers, token).status_code == 200
    second = _start(client, student_headers, token)
    assert second.status_code == 400
    assert second.json()["errorCode"] == "INVALID_OR_EXPIRED_AUTHORIZATION"


def test_start_without_token(client, student_headers, exam_code):
    response = client.post(f"{BASE}/start", json={}, headers=student_headers)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_validate_old_launch_token_after_restart(client, student_headers, exam_code):
    first = _launch(client, student_headers, exam_code.code)
    second = _launch(client, student_headers, exam_code.code)
    assert second["attemptId"] == first["attemptId"]

    old = client.post(
        f"{BASE}/validate",
        json={"attemptId": first["attemptId"], "launchToken": first["launchToken"]},
        headers=student_headers,
    )
    new = client.post(
        f"{BASE}/validate",
        json={"attemptId": second["attemptId"], "launchToken": second["launchToken"]},
        headers=student_headers,
    )

    assert old.json() == {"success": True, "valid": False}
    assert new.json() == {"success": True, "valid": True}


def test_validate_requires_fields(client, student_headers):
    response = client.post(f"{BASE}/validate", json={}, headers=student_headers)

    assert response.status_code == 422
    assert response.json()["error_code"] == "VALIDATION_ERROR"


def test_finalize_attempt(client, db, student_headers, exam_code):
    launch = _launch(client, student_headers, exam_code.code)
    headers = {**student_headers, "X-Exam-Launch-Token": launch["launchToken"]}

    response = client.post(f"{BASE}/attempts/{launch['attemptId']}/finalize", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == AttemptStatus.COMPLETED.value
    assert body["submittedAtUtc"]

    # Sessions are revoked with the attempt
    again = client.post(f"{BASE}/attempts/{launch['attemptId']}/finalize", headers=headers)
    assert again.status_code == 401
    assert again.json()["errorCode"] == "INVALID_LAUNCH_SESSION"

    blocked = _authorize(client, student_headers, exam_code.code)
    assert blocked.status_code == 400
    assert blocked.json()["errorCode"] == "ATTEMPT_ALREADY_FINALIZED"


def test_finalize_rejects_mismatched_attempt(client, student_headers, exam_code):
    launch = _launch(client, student_headers, exam_code.code)
    headers = {**student_headers, "X-Exam-Launch-Token": launch["launchToken"]}

    response = client.post(f"{BASE}/attempts/{uuid.uuid4()}/finalize", headers=headers)

    assert response.status_code == 401


def test_finalize_requires_launch_token(client, student_headers, exam_code):
    launch = _launch(client, student_headers, exam_code.code)

    response = client.post(
        f"{BASE}/attempts/{launch['attemptId']}/finalize", headers=student_headers
    )

    assert response.status_code == 401


def test_instructor_creates_code(client, instructor_headers, student_headers, exam):
    expires = (utcnow() + timedelta(days=1)).isoformat()

    response = client.post(
        f"{BASE}/codes",
        json={"examId": str(exam.id), "expiresAtUtc": expires, "maxUses": 25},
        headers=instructor_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert len(body["code"]) == 8
    assert body["maxUses"] == 25
    lookup = client.get(f"{BASE}/code/{body['code']}", headers=student_headers)
    assert lookup.status_code == 200


def test_create_code_permissions_and_validation(client, db, exam, student_headers):
    outsider = auth_headers(create_test_instructor(db))
    expires = (utcnow() + timedelta(days=1)).isoformat()
    payload = {"examId": str(exam.id), "expiresAtUtc": expires}

    assert client.post(f"{BASE}/codes", json=payload, headers=student_headers).status_code == 403
    assert client.post(f"{BASE}/codes", json=payload, headers=outsider).status_code == 403

    missing = client.post(
        f"{BASE}/codes", json={**payload, "examId": str(uuid.uuid4())}, headers=outsider
    )
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "EXAM_NOT_FOUND"


def test_create_code_rejects_past_expiry(client, exam, instructor_headers):
    expires = (utcnow() - timedelta(minutes=1)).isoformat()

    response = client.post(
        f"{BASE}/codes",
        json={"examId": str(exam.id), "expiresAtUtc": expires},
        headers=instructor_headers,
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_EXPIRY"


def test_request_id_round_trip(client, student_headers, exam_code):
    response = client.get(
        f"{BASE}/code/{exam_code.code}",
        headers={**student_headers, "X-Request-ID": "req-123"},
    )

    assert response.headers["X-Request-ID"] == "req-123"
