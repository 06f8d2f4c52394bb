"""
Attendance Verification Service - session codes, submissions and reviews.

Flow of a session:
1. The lecturer opens a session: a six-digit code is generated and an
   ``absent`` placeholder row is inserted for every enrolled student.
2. Students submit the code. The matching unexpired row is claimed exactly
   once and every heuristic is evaluated:
   - network origin: the caller IP must be on a campus range
   - timing: submissions within a few seconds of generation are suspicious
   - burst: many submissions from one IP within a minute suggest code sharing
   Any triggered heuristic leaves the row ``flagged`` instead of ``verified``.
3. The lecturer reviews flagged rows individually or in bulk, which sets
   ``manual-approved`` or ``manual-rejected`` without re-running heuristics.

Heuristics flag, they never reject: a flagged student still has a submission
on record and waits for a human decision.
"""

import json
import time
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from unitrack.config import AttendancePolicy
from unitrack.errors import (
    AlreadySubmittedError, InvalidOrExpiredCodeError, ValidationError
)
from unitrack.models.attendance import (
    AttendanceRecord, STATUS_ABSENT, STATUS_FLAGGED, STATUS_VERIFIED,
    STATUS_MANUAL_APPROVED, STATUS_MANUAL_REJECTED
)
from unitrack.models.course import Course
from unitrack.services.codes import generate_attendance_code, is_on_campus_network
from unitrack.logging_config import get_logger, log_with_context

logger = get_logger("attendance")

FLAG_OFF_CAMPUS = "Submitted from off-campus network"
FLAG_FAST_SUBMISSION = "Unusually fast submission"
FLAG_IP_BURST = "Multiple submissions from same IP"

REVIEW_NOTE = "Your submission has been flagged for review. Your lecturer will verify it."

REVIEW_ACTIONS = {
    "approve": STATUS_MANUAL_APPROVED,
    "reject": STATUS_MANUAL_REJECTED,
}


def open_session(db: Session, course: Course, policy: AttendancePolicy,
                 now: datetime, topic: Optional[str] = None,
                 randint=None) -> dict:
    """
    Generate a code for ``course`` and create one absent row per enrolled student.

    Returns:
        Dict with code, generated_at, expires_at, validity_minutes and students_count
    """
    code = generate_attendance_code(randint)
    expires_at = now + timedelta(minutes=policy.validity_minutes)

    records = [
        AttendanceRecord(
            course_id=course.id,
            student_id=student.id,
            session_date=now,
            session_topic=topic,
            attendance_code=code,
            code_generated_at=now,
            code_expires_at=expires_at,
            verification_status=STATUS_ABSENT,
            flag_reasons="[]",
        )
        for student in course.enrolled_students
    ]
    db.add_all(records)
    db.commit()

    log_with_context(logger, "INFO",
        "Attendance session opened for {} students".format(len(records)),
        context={"course_id": str(course.id)},
        extra_data={"validity_minutes": policy.validity_minutes, "topic": topic})

    return {
        "code": code,
        "generated_at": now,
        "expires_at": expires_at,
        "validity_minutes": policy.validity_minutes,
        "students_count": len(records),
    }


def count_recent_ip_submissions(db: Session, course_id: str, ip_address: Optional[str],
                                now: datetime, window_seconds: int) -> int:
    """Submissions already recorded for the course from this IP inside the window."""
    if not ip_address:
        return 0
    window_start = now - timedelta(seconds=window_seconds)
    return db.query(AttendanceRecord).filter(
        AttendanceRecord.course_id == course_id,
        AttendanceRecord.ip_address == ip_address,
        AttendanceRecord.submission_time.isnot(None),
        AttendanceRecord.submission_time >= window_start,
    ).count()


def evaluate_flags(code_generated_at: datetime, ip_address: Optional[str], now: datetime,
                   policy: AttendancePolicy, recent_ip_submissions: int) -> List[str]:
    """
    Run every heuristic and collect the reasons that fired, in a fixed order.
    No heuristic short-circuits another.
    """
    reasons = []

    if not is_on_campus_network(ip_address, policy.campus_ip_ranges):
        reasons.append(FLAG_OFF_CAMPUS)

    elapsed = (now - code_generated_at).total_seconds()
    if elapsed < policy.fast_submission_seconds:
        reasons.append(FLAG_FAST_SUBMISSION)

    if recent_ip_submissions > policy.burst_threshold:
        reasons.append(FLAG_IP_BURST)

    return reasons


def submit_attendance(db: Session, course: Course, student_id: str, code: str,
                      ip_address: Optional[str], device_info: Optional[str],
                      now: datetime, policy: AttendancePolicy) -> dict:
    """
    Claim the student's outstanding row for ``code`` and verify the submission.

    Raises:
        InvalidOrExpiredCodeError: no unexpired row matches (course, student, code)
        AlreadySubmittedError: the row was already submitted, including when a
            concurrent request claimed it first
    """
    start_time = time.time()
    context = {"course_id": str(course.id), "student_id": str(student_id)}

    record = db.query(AttendanceRecord).filter(
        AttendanceRecord.course_id == course.id,
        AttendanceRecord.student_id == student_id,
        AttendanceRecord.attendance_code == code,
        AttendanceRecord.code_expires_at > now,
    ).order_by(AttendanceRecord.code_generated_at.desc()).first()

    if not record:
        log_with_context(logger, "INFO", "Rejected invalid or expired attendance code",
                         context=context)
        raise InvalidOrExpiredCodeError()

    context["record_id"] = str(record.id)

    if record.submission_time is not None:
        log_with_context(logger, "INFO", "Rejected repeated attendance submission",
                         context=context)
        raise AlreadySubmittedError()

    recent = count_recent_ip_submissions(
        db, course.id, ip_address, now, policy.burst_window_seconds)
    reasons = evaluate_flags(record.code_generated_at, ip_address, now, policy, recent)
    status = STATUS_FLAGGED if reasons else STATUS_VERIFIED

    # Compare-and-set on submission_time so two racing requests cannot both win
    claimed = db.query(AttendanceRecord).filter(
        AttendanceRecord.id == record.id,
        AttendanceRecord.submission_time.is_(None),
    ).update({
        AttendanceRecord.submission_time: now,
        AttendanceRecord.ip_address: ip_address,
        AttendanceRecord.device_info: device_info,
        AttendanceRecord.flag_reasons: json.dumps(reasons),
        AttendanceRecord.verification_status: status,
    }, synchronize_session=False)

    if claimed != 1:
        db.rollback()
        log_with_context(logger, "INFO", "Lost submission race for attendance record",
                         context=context)
        raise AlreadySubmittedError()

    db.commit()
    db.refresh(record)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "WARNING" if reasons else "INFO",
        "Attendance submitted: {}".format(status),
        context=context,
        extra_data={
            "ip": ip_address,
            "flag_reasons": reasons,
            "recent_ip_submissions": recent,
            "duration_ms": round(duration_ms, 2),
        })

    result = {
        "record_id": str(record.id),
        "status": status,
        "flag_reasons": reasons,
    }
    if reasons:
        result["note"] = REVIEW_NOTE
    return result


def resolve_review_status(action: str) -> str:
    try:
        return REVIEW_ACTIONS[action]
    except KeyError:
        raise ValidationError("Review action must be 'approve' or 'reject'")


def review_attendance(db: Session, record: AttendanceRecord, action: str,
                      reviewer_id: str, note: Optional[str], now: datetime) -> AttendanceRecord:
    """Set a manual decision on one record, from any status; last review wins."""
    status = resolve_review_status(action)
    previous = record.verification_status

    record.verification_status = status
    record.reviewed_by = reviewer_id
    record.review_note = note
    record.reviewed_at = now
    db.commit()
    db.refresh(record)

    log_with_context(logger, "INFO",
        "Attendance record reviewed: {} -> {}".format(previous, status),
        context={
            "record_id": str(record.id),
            "course_id": str(record.course_id),
            "reviewer_id": str(reviewer_id)
        })
    return record


def bulk_review_attendance(db: Session, record_ids: Iterable[str], action: str,
                           reviewer_id: str, note: Optional[str], now: datetime,
                           lecturer_id: Optional[str] = None) -> dict:
    """
    Apply one review decision to many records in a single UPDATE.

    Only rows whose status actually changes are touched, so ``modified_count``
    is the number of status changes and never exceeds the number of distinct
    ids requested. With ``lecturer_id`` set, rows of other lecturers' courses
    are left alone and show up as the gap between requested and modified.
    """
    status = resolve_review_status(action)
    ids = list(dict.fromkeys(str(i) for i in record_ids))
    if not ids:
        raise ValidationError("At least one attendance record id is required")

    query = db.query(AttendanceRecord).filter(
        AttendanceRecord.id.in_(ids),
        AttendanceRecord.verification_status != status,
    )
    if lecturer_id is not None:
        owned_courses = select(Course.id).where(Course.lecturer_id == lecturer_id)
        query = query.filter(AttendanceRecord.course_id.in_(owned_courses))

    modified = query.update({
        AttendanceRecord.verification_status: status,
        AttendanceRecord.reviewed_by: reviewer_id,
        AttendanceRecord.review_note: note,
        AttendanceRecord.reviewed_at: now,
    }, synchronize_session=False)
    db.commit()

    log_with_context(logger, "INFO",
        "Bulk review applied: {} of {} records set to {}".format(modified, len(ids), status),
        context={"reviewer_id": str(reviewer_id)},
        extra_data={"requested": len(ids), "modified_count": modified})

    return {"requested": len(ids), "modified_count": modified, "status": status}


def session_records(db: Session, course_id: str, day_start: datetime,
                    day_end: datetime) -> List[AttendanceRecord]:
    """Rows of every session opened on one calendar day, latest submissions first."""
    return db.query(AttendanceRecord).options(
        joinedload(AttendanceRecord.student)
    ).filter(
        AttendanceRecord.course_id == course_id,
        AttendanceRecord.session_date >= day_start,
        AttendanceRecord.session_date <= day_end,
    ).order_by(
        AttendanceRecord.submission_time.is_(None),
        AttendanceRecord.submission_time.desc(),
    ).all()


def flagged_records(db: Session, course_id: str) -> List[AttendanceRecord]:
    return db.query(AttendanceRecord).options(
        joinedload(AttendanceRecord.student)
    ).filter(
        AttendanceRecord.course_id == course_id,
        AttendanceRecord.verification_status == STATUS_FLAGGED,
    ).order_by(AttendanceRecord.session_date.desc()).all()


def student_records(db: Session, student_id: str, course_id: str) -> List[AttendanceRecord]:
    return db.query(AttendanceRecord).filter(
        AttendanceRecord.student_id == student_id,
        AttendanceRecord.course_id == course_id,
    ).order_by(AttendanceRecord.session_date.desc()).all()
