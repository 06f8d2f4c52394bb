"""HTTP tests for assessment entry and the analytics endpoints."""

from datetime import datetime, timedelta

from unitrack.models.attendance import AttendanceRecord
from unitrack.models.risk_assessment import RiskAssessment

from conftest import as_user, make_course, make_user


def _record_score(client, course, student, lecturer, score, max_score=50,
                  kind="CA1", when=None):
    payload = {
        "course_id": course.id,
        "student_id": student.id,
        "assessment_type": kind,
        "score": score,
        "max_score": max_score,
    }
    if when:
        payload["submission_date"] = when
    return client.post("/api/assessments", json=payload, headers=as_user(lecturer))


def _sessions(db, course, student, statuses):
    start = datetime(2026, 2, 2, 9, 0)
    for i, status in enumerate(statuses):
        when = start + timedelta(days=i)
        db.add(AttendanceRecord(
            course_id=course.id, student_id=student.id, session_date=when,
            attendance_code="654321", code_generated_at=when,
            code_expires_at=when + timedelta(minutes=15),
            verification_status=status, flag_reasons="[]",
        ))
    db.commit()


def test_create_assessment_derives_percentage(client, course, students, lecturer):
    response = _record_score(client, course, students[0], lecturer, 40)

    assert response.status_code == 201
    assessment = response.json()["assessment"]
    assert assessment["percentage"] == 80.0
    assert assessment["entered_by"] == lecturer.id
    assert assessment["submission_date"] == "2026-03-02T09:00:00"


def test_zero_max_score_leaves_percentage_undefined(client, course, students, lecturer):
    response = _record_score(client, course, students[0], lecturer, 0, max_score=0)
    assert response.status_code == 201
    assert response.json()["assessment"]["percentage"] is None


def test_create_assessment_validation(client, course, students, lecturer):
    non_numeric = client.post("/api/assessments", json={
        "course_id": course.id, "student_id": students[0].id,
        "assessment_type": "CA1", "score": "lots", "max_score": 50,
    }, headers=as_user(lecturer))
    assert non_numeric.status_code == 422

    bad_type = _record_score(client, course, students[0], lecturer, 10, kind="quiz")
    assert bad_type.status_code == 422

    negative = _record_score(client, course, students[0], lecturer, -1)
    assert negative.status_code == 422


def test_assessment_requires_enrollment_and_ownership(client, db, course, lecturer):
    outsider = make_user(db, role="student")
    response = _record_score(client, course, outsider, lecturer, 10)
    assert response.status_code == 400

    other = make_user(db, role="lecturer")
    enrolled = course.enrolled_students[0]
    assert _record_score(client, course, enrolled, other, 10).status_code == 403


def test_update_recomputes_percentage(client, course, students, lecturer):
    assessment_id = _record_score(client, course, students[0], lecturer, 20).json()["assessment"]["id"]

    response = client.put(f"/api/assessments/{assessment_id}",
                          json={"score": 45, "remarks": "Remarked"},
                          headers=as_user(lecturer))

    assert response.status_code == 200
    assert response.json()["assessment"]["percentage"] == 90.0
    assert response.json()["assessment"]["remarks"] == "Remarked"


def test_delete_assessment(client, course, students, lecturer):
    assessment_id = _record_score(client, course, students[0], lecturer, 20).json()["assessment"]["id"]

    assert client.delete(f"/api/assessments/{assessment_id}",
                         headers=as_user(lecturer)).status_code == 200
    assert client.delete(f"/api/assessments/{assessment_id}",
                         headers=as_user(lecturer)).status_code == 404


def test_course_and_student_assessment_lists(client, course, students, lecturer):
    _record_score(client, course, students[0], lecturer, 40, kind="CA1",
                  when="2026-02-01T10:00:00")
    _record_score(client, course, students[0], lecturer, 25, kind="CA2",
                  when="2026-02-15T10:00:00")
    _record_score(client, course, students[1], lecturer, 10, kind="CA1",
                  when="2026-02-01T10:00:00")

    course_list = client.get(f"/api/assessments/course/{course.id}?assessment_type=CA1",
                             headers=as_user(lecturer))
    assert len(course_list.json()["assessments"]) == 2

    own = client.get(f"/api/assessments/student/{students[0].id}/{course.id}",
                     headers=as_user(students[0]))
    assert own.status_code == 200
    assert [a["assessment_type"] for a in own.json()["assessments"]] == ["CA2", "CA1"]
    assert own.json()["statistics"] == {"total_assessments": 2, "average_score": 65.0}

    forbidden = client.get(f"/api/assessments/student/{students[0].id}/{course.id}",
                           headers=as_user(students[1]))
    assert forbidden.status_code == 403


def test_risk_assessment_endpoint(client, db, course, students, lecturer):
    _sessions(db, course, students[0], ["verified"] * 9 + ["absent"])
    _sessions(db, course, students[1], ["manual-approved"] * 3 + ["absent"] * 7)
    _sessions(db, course, students[2], ["verified"] * 10)
    _record_score(client, course, students[0], lecturer, 45, when="2026-02-01T10:00:00")
    _record_score(client, course, students[1], lecturer, 40, when="2026-02-01T10:00:00")
    _record_score(client, course, students[2], lecturer, 20, when="2026-02-01T10:00:00")
    _record_score(client, course, students[2], lecturer, 24, when="2026-02-08T10:00:00")

    response = client.get(f"/api/analytics/risk-assessment/{course.id}", headers=as_user(lecturer))

    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {"low": 1, "medium": 0, "high": 2}
    by_student = {r["student"]["id"]: r for r in body["risk_assessments"]}
    assert by_student[students[0].id]["factors"] == ["Good attendance and performance"]
    assert by_student[students[1].id]["factors"] == ["Critically low attendance"]
    assert by_student[students[1].id]["attendance_percentage"] == 30.0
    assert by_student[students[2].id]["factors"] == ["Multiple consecutive failures"]

    # Recomputing keeps a single row per student
    client.get(f"/api/analytics/risk-assessment/{course.id}", headers=as_user(lecturer))
    assert db.query(RiskAssessment).count() == 3


def test_risk_assessment_is_staff_only(client, course, students):
    response = client.get(f"/api/analytics/risk-assessment/{course.id}",
                          headers=as_user(students[0]))
    assert response.status_code == 403


def test_performance_trends_grouped_by_course(client, db, course, students, lecturer):
    second = make_course(db, lecturer, [students[0]], code="CSC302")
    _record_score(client, course, students[0], lecturer, 30, when="2026-02-10T10:00:00")
    _record_score(client, course, students[0], lecturer, 20, kind="CA2", when="2026-02-01T10:00:00")
    _record_score(client, second, students[0], lecturer, 50, when="2026-02-05T10:00:00")

    response = client.get(f"/api/analytics/performance-trends/{students[0].id}",
                          headers=as_user(students[0]))

    trends = {t["course"]["course_code"]: t for t in response.json()["trends"]}
    assert set(trends) == {"CSC301", "CSC302"}
    assert [a["type"] for a in trends["CSC301"]["assessments"]] == ["CA2", "CA1"]

    filtered = client.get(f"/api/analytics/performance-trends/{students[0].id}?course_id={second.id}",
                          headers=as_user(lecturer))
    assert len(filtered.json()["trends"]) == 1


def test_attendance_vs_performance(client, db, course, students, lecturer):
    _sessions(db, course, students[0], ["verified", "verified", "absent"])
    _record_score(client, course, students[0], lecturer, 35)

    response = client.get(f"/api/analytics/attendance-vs-performance/{course.id}",
                          headers=as_user(lecturer))

    rows = {r["student"]["id"]: r for r in response.json()["data"]}
    assert rows[students[0].id]["attendance_percentage"] == 66.67
    assert rows[students[0].id]["average_score"] == 70.0
    assert rows[students[1].id]["attendance_percentage"] == 0.0


def test_department_summary(client, db, course, students, lecturer, admin):
    _sessions(db, course, students[0], ["verified", "absent"])
    make_course(db, lecturer, code="PHY101", department="Physics")
    client.get(f"/api/analytics/risk-assessment/{course.id}", headers=as_user(lecturer))

    response = client.get("/api/analytics/department-summary/Computer%20Science",
                          headers=as_user(admin))

    assert response.status_code == 200
    assert response.json()["summary"] == {
        "total_courses": 1,
        "total_students": 3,
        "at_risk_students": 3,
        "average_attendance": 50.0,
    }

    assert client.get("/api/analytics/department-summary/Physics",
                      headers=as_user(lecturer)).status_code == 403
