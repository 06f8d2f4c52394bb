"""
Attendance API routes - session codes, student submissions and lecturer review.

Provides endpoints for:
- Opening a session (generating a code and absent placeholders)
- Submitting a code as a student
- Live session view and the flagged-submission queue
- Single and bulk review of submissions
- Per-student attendance statistics
"""

import time
from datetime import date, datetime, time as dt_time
from typing import List, Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from unitrack.auth import (
    Caller, get_caller, require_roles, ensure_course_access, ensure_self_or_staff
)
from unitrack.clock import get_clock
from unitrack.config import Settings, get_settings, settings as app_settings
from unitrack.database import get_db
from unitrack.errors import NotFoundError, ValidationError
from unitrack.models.attendance import AttendanceRecord
from unitrack.routes.common import (
    client_ip, get_course_or_404, serialize_attendance
)
from unitrack.services import verification
from unitrack.services.statistics import summarize_session, student_attendance_summary
from unitrack.rate_limit import limiter
from unitrack.logging_config import get_logger, log_with_context

router = APIRouter(prefix="/api/attendance")
logger = get_logger("http")

REVIEW_OUTCOMES = {"approve": "approved", "reject": "rejected"}


class GenerateCodeRequest(BaseModel):
    course_id: str
    session_topic: Optional[str] = None


class SubmitRequest(BaseModel):
    course_id: str
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class ReviewRequest(BaseModel):
    action: str = Field(..., pattern="^(approve|reject)$")
    note: Optional[str] = None


class BulkReviewRequest(BaseModel):
    attendance_ids: List[str] = Field(..., min_length=1)
    action: str = Field(..., pattern="^(approve|reject)$")
    note: Optional[str] = None


@router.post("/generate-code")
def generate_code(request: GenerateCodeRequest,
                  caller: Caller = Depends(require_roles("lecturer", "admin")),
                  settings: Settings = Depends(get_settings),
                  clock=Depends(get_clock),
                  db: Session = Depends(get_db)):
    """Open an attendance session and return its code."""
    course = get_course_or_404(db, request.course_id)
    ensure_course_access(caller, course)

    session = verification.open_session(
        db, course, settings.for_course(course), clock(), topic=request.session_topic)

    return {
        "message": "Attendance code generated",
        "code": session["code"],
        "expires_at": session["expires_at"].isoformat(),
        "validity_minutes": session["validity_minutes"],
        "students_count": session["students_count"],
    }


@router.post("/submit")
@limiter.limit(app_settings.submit_rate_limit)
def submit_attendance(request: Request, body: SubmitRequest,
                      caller: Caller = Depends(require_roles("student")),
                      settings: Settings = Depends(get_settings),
                      clock=Depends(get_clock),
                      db: Session = Depends(get_db)):
    """Submit a session code as the calling student."""
    course = get_course_or_404(db, body.course_id)

    result = verification.submit_attendance(
        db,
        course,
        student_id=caller.id,
        code=body.code,
        ip_address=client_ip(request, settings),
        device_info=request.headers.get("user-agent"),
        now=clock(),
        policy=settings.for_course(course),
    )

    response = {
        "message": "Attendance submitted successfully",
        "record_id": result["record_id"],
        "status": result["status"],
    }
    if "note" in result:
        response["note"] = result["note"]
    return response


def _day_bounds(day: str):
    try:
        parsed = date.fromisoformat(day)
    except ValueError:
        raise ValidationError("Date must be in YYYY-MM-DD format")
    return datetime.combine(parsed, dt_time.min), datetime.combine(parsed, dt_time.max)


@router.get("/session/{course_id}/{day}")
def session_attendance(course_id: str, day: str,
                       caller: Caller = Depends(require_roles("lecturer", "admin")),
                       db: Session = Depends(get_db)):
    """All attendance rows of the sessions a course held on ``day``."""
    start_time = time.time()
    course = get_course_or_404(db, course_id)
    ensure_course_access(caller, course)

    day_start, day_end = _day_bounds(day)
    records = verification.session_records(db, course.id, day_start, day_end)
    stats = summarize_session(r.verification_status for r in records)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Session attendance listed: {} records".format(len(records)),
        context={"course_id": course_id},
        extra_data={"duration_ms": round(duration_ms, 2), "day": day})

    return {
        "attendance": [serialize_attendance(r, include_student=True) for r in records],
        "stats": stats,
    }


@router.get("/flagged/{course_id}")
def flagged_attendance(course_id: str,
                       caller: Caller = Depends(require_roles("lecturer", "admin")),
                       db: Session = Depends(get_db)):
    """Flagged submissions of a course awaiting review."""
    course = get_course_or_404(db, course_id)
    ensure_course_access(caller, course)

    records = verification.flagged_records(db, course.id)
    return {
        "count": len(records),
        "course": {"id": str(course.id), "course_code": course.course_code,
                   "course_title": course.course_title},
        "flagged": [serialize_attendance(r, include_student=True) for r in records],
    }


@router.put("/{record_id}/review")
def review_attendance(record_id: str, request: ReviewRequest,
                      caller: Caller = Depends(require_roles("lecturer", "admin")),
                      clock=Depends(get_clock),
                      db: Session = Depends(get_db)):
    """Approve or reject a single attendance record."""
    record = db.query(AttendanceRecord).filter(AttendanceRecord.id == record_id).first()
    if not record:
        raise NotFoundError("Attendance record not found")
    ensure_course_access(caller, record.course)

    record = verification.review_attendance(
        db, record, request.action, caller.id, request.note, clock())

    return {
        "message": "Attendance {} successfully".format(REVIEW_OUTCOMES[request.action]),
        "attendance": serialize_attendance(record),
    }


@router.post("/bulk-review")
def bulk_review_attendance(request: BulkReviewRequest,
                           caller: Caller = Depends(require_roles("lecturer", "admin")),
                           clock=Depends(get_clock),
                           db: Session = Depends(get_db)):
    """Approve or reject many attendance records at once."""
    result = verification.bulk_review_attendance(
        db,
        request.attendance_ids,
        request.action,
        reviewer_id=caller.id,
        note=request.note,
        now=clock(),
        lecturer_id=None if caller.is_admin else caller.id,
    )
    return {
        "message": "{} attendance records {}".format(
            result["modified_count"], REVIEW_OUTCOMES[request.action]),
        "requested": result["requested"],
        "modified_count": result["modified_count"],
    }


@router.get("/student/{student_id}/{course_id}")
def student_attendance_stats(student_id: str, course_id: str,
                             caller: Caller = Depends(get_caller),
                             db: Session = Depends(get_db)):
    """Attendance statistics of one student in one course."""
    ensure_self_or_staff(caller, student_id)
    course = get_course_or_404(db, course_id, active_only=False)
    if caller.is_lecturer:
        ensure_course_access(caller, course)

    records = verification.student_records(db, student_id, course.id)
    statistics = student_attendance_summary(records)
    statistics["records"] = [serialize_attendance(r) for r in records]
    return {"statistics": statistics}
