"""HTTP tests for the attendance endpoints."""

import pytest

from unitrack.models.attendance import AttendanceRecord

from conftest import OFF_CAMPUS_IP, as_user, make_user


@pytest.fixture
def session_code(client, course, lecturer, clock):
    response = client.post("/api/attendance/generate-code",
                           json={"course_id": course.id, "session_topic": "Scheduling"},
                           headers=as_user(lecturer))
    assert response.status_code == 200
    clock.advance(30)
    return response.json()["code"]


def _submit(client, course, student, code, ip=None):
    headers = as_user(student) if ip is None else as_user(student, ip=ip)
    return client.post("/api/attendance/submit",
                       json={"course_id": course.id, "code": code}, headers=headers)


def test_generate_code_response(client, course, lecturer, clock):
    response = client.post("/api/attendance/generate-code",
                           json={"course_id": course.id}, headers=as_user(lecturer))

    assert response.status_code == 200
    data = response.json()
    assert len(data["code"]) == 6 and data["code"].isdigit()
    assert data["validity_minutes"] == 15
    assert data["students_count"] == 3
    assert data["expires_at"] == "2026-03-02T09:15:00"
    assert response.headers["X-Request-ID"]


def test_generate_code_requires_course_owner(client, course, db):
    other = make_user(db, role="lecturer")
    response = client.post("/api/attendance/generate-code",
                           json={"course_id": course.id}, headers=as_user(other))
    assert response.status_code == 403
    assert response.json()["error"] == "not_authorized"


def test_admin_may_generate_for_any_course(client, course, admin):
    response = client.post("/api/attendance/generate-code",
                           json={"course_id": course.id}, headers=as_user(admin))
    assert response.status_code == 200


def test_generate_code_for_unknown_course(client, lecturer):
    response = client.post("/api/attendance/generate-code",
                           json={"course_id": "nope"}, headers=as_user(lecturer))
    assert response.status_code == 404
    assert response.json() == {"detail": "Course not found", "error": "not_found"}


def test_requests_without_identity_are_rejected(client, course):
    response = client.post("/api/attendance/submit",
                           json={"course_id": course.id, "code": "123456"})
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"


def test_unknown_identity_is_rejected(client, course):
    response = client.post("/api/attendance/submit",
                           json={"course_id": course.id, "code": "123456"},
                           headers={"X-User-ID": "ghost"})
    assert response.status_code == 401


def test_submit_verified_then_already_submitted(client, course, students, session_code):
    first = _submit(client, course, students[0], session_code)
    assert first.status_code == 200
    body = first.json()
    assert body["status"] == "verified"
    assert "note" not in body

    second = _submit(client, course, students[0], session_code)
    assert second.status_code == 409
    assert second.json()["error"] == "already_submitted"


def test_submit_off_campus_is_flagged(client, course, students, session_code, db):
    response = _submit(client, course, students[0], session_code, ip=OFF_CAMPUS_IP)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "flagged"
    assert "flagged for review" in body["note"]

    db.expire_all()
    record = db.query(AttendanceRecord).filter(AttendanceRecord.id == body["record_id"]).one()
    assert record.flag_reasons_list == ["Submitted from off-campus network"]
    assert record.device_info == "pytest-browser"
    assert record.ip_address == OFF_CAMPUS_IP


def test_submit_invalid_code(client, course, students, session_code):
    wrong = "000000" if session_code != "000000" else "111111"
    response = _submit(client, course, students[0], wrong)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_or_expired_code"


def test_submit_expired_code(client, course, students, session_code, clock):
    clock.advance(15 * 60)
    response = _submit(client, course, students[0], session_code)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or expired attendance code"


@pytest.mark.parametrize("code", ["12345", "1234567", "12a456"])
def test_submit_malformed_code(client, course, students, code):
    response = _submit(client, course, students[0], code)
    assert response.status_code == 422


def test_only_students_submit(client, course, lecturer, session_code):
    response = _submit(client, course, lecturer, session_code)
    assert response.status_code == 403


def test_flagged_queue_and_review(client, course, students, lecturer, session_code):
    flagged_id = _submit(client, course, students[0], session_code, ip=OFF_CAMPUS_IP).json()["record_id"]
    _submit(client, course, students[1], session_code)

    queue = client.get(f"/api/attendance/flagged/{course.id}", headers=as_user(lecturer))
    assert queue.status_code == 200
    assert queue.json()["count"] == 1
    assert queue.json()["flagged"][0]["id"] == flagged_id
    assert queue.json()["flagged"][0]["student"]["id"] == students[0].id

    review = client.put(f"/api/attendance/{flagged_id}/review",
                        json={"action": "approve", "note": "Verified in person"},
                        headers=as_user(lecturer))
    assert review.status_code == 200
    assert review.json()["message"] == "Attendance approved successfully"
    attendance = review.json()["attendance"]
    assert attendance["verification_status"] == "manual-approved"
    assert attendance["reviewed_by"] == lecturer.id
    assert attendance["review_note"] == "Verified in person"

    queue = client.get(f"/api/attendance/flagged/{course.id}", headers=as_user(lecturer))
    assert queue.json()["count"] == 0


def test_review_unknown_record(client, lecturer):
    response = client.put("/api/attendance/missing/review",
                          json={"action": "reject"}, headers=as_user(lecturer))
    assert response.status_code == 404


def test_review_invalid_action(client, course, lecturer, session_code, db):
    record_id = db.query(AttendanceRecord).first().id
    response = client.put(f"/api/attendance/{record_id}/review",
                          json={"action": "maybe"}, headers=as_user(lecturer))
    assert response.status_code == 422


def test_session_view_stats(client, course, students, lecturer, session_code):
    _submit(client, course, students[0], session_code)
    _submit(client, course, students[1], session_code, ip=OFF_CAMPUS_IP)

    response = client.get(f"/api/attendance/session/{course.id}/2026-03-02",
                          headers=as_user(lecturer))

    assert response.status_code == 200
    assert response.json()["stats"] == {"total": 3, "present": 1, "flagged": 1, "absent": 1}
    assert len(response.json()["attendance"]) == 3

    other_day = client.get(f"/api/attendance/session/{course.id}/2026-03-03",
                           headers=as_user(lecturer))
    assert other_day.json()["stats"]["total"] == 0


def test_session_view_rejects_bad_date(client, course, lecturer):
    response = client.get(f"/api/attendance/session/{course.id}/yesterday",
                          headers=as_user(lecturer))
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_bulk_review_endpoint(client, course, students, lecturer, session_code):
    ids = [
        _submit(client, course, s, session_code, ip=OFF_CAMPUS_IP).json()["record_id"]
        for s in students[:2]
    ]

    response = client.post("/api/attendance/bulk-review",
                           json={"attendance_ids": ids + ["unknown"], "action": "reject"},
                           headers=as_user(lecturer))

    assert response.status_code == 200
    assert response.json() == {
        "message": "2 attendance records rejected",
        "requested": 3,
        "modified_count": 2,
    }


def test_bulk_review_requires_ids(client, lecturer):
    response = client.post("/api/attendance/bulk-review",
                           json={"attendance_ids": [], "action": "approve"},
                           headers=as_user(lecturer))
    assert response.status_code == 422


def test_student_stats(client, course, students, session_code, lecturer):
    _submit(client, course, students[0], session_code)

    own = client.get(f"/api/attendance/student/{students[0].id}/{course.id}",
                     headers=as_user(students[0]))
    assert own.status_code == 200
    stats = own.json()["statistics"]
    assert stats["total_sessions"] == 1
    assert stats["present_count"] == 1
    assert stats["absent_count"] == 0
    assert stats["attendance_percentage"] == 100.0
    assert stats["records"][0]["verification_status"] == "verified"

    by_lecturer = client.get(f"/api/attendance/student/{students[1].id}/{course.id}",
                             headers=as_user(lecturer))
    assert by_lecturer.json()["statistics"]["attendance_percentage"] == 0.0

    someone_else = client.get(f"/api/attendance/student/{students[0].id}/{course.id}",
                              headers=as_user(students[1]))
    assert someone_else.status_code == 403


def test_single_review_reject_message(client, course, students, lecturer, session_code):
    record_id = _submit(client, course, students[0], session_code, ip=OFF_CAMPUS_IP).json()["record_id"]

    response = client.put(f"/api/attendance/{record_id}/review",
                          json={"action": "reject"}, headers=as_user(lecturer))

    assert response.status_code == 200
    assert response.json()["message"] == "Attendance rejected successfully"
    assert response.json()["attendance"]["verification_status"] == "manual-rejected"


def test_submissions_are_rate_limited_per_student(client, course, students, session_code):
    wrong = "000000" if session_code != "000000" else "111111"
    for _ in range(3):
        assert _submit(client, course, students[0], wrong).status_code == 400

    limited = _submit(client, course, students[0], session_code)
    assert limited.status_code == 429
    assert limited.json()["error"] == "rate_limited"

    # Another student behind the same campus address keeps their own budget
    assert _submit(client, course, students[1], session_code).status_code == 200
