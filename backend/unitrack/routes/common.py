"""
Serializers and lookups shared by the API route modules.
"""

from datetime import datetime
from typing import Optional
from fastapi import Request
from sqlalchemy.orm import Session

from unitrack.config import Settings
from unitrack.errors import NotFoundError
from unitrack.models.assessment import Assessment
from unitrack.models.attendance import AttendanceRecord
from unitrack.models.course import Course
from unitrack.models.risk_assessment import RiskAssessment
from unitrack.models.user import User


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def client_ip(request: Request, settings: Settings) -> Optional[str]:
    """Caller IP, taken from X-Forwarded-For only behind a trusted proxy."""
    if settings.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_course_or_404(db: Session, course_id: str, active_only: bool = True) -> Course:
    query = db.query(Course).filter(Course.id == course_id)
    if active_only:
        query = query.filter(Course.is_active.is_(True))
    course = query.first()
    if not course:
        raise NotFoundError("Course not found")
    return course


def get_user_or_404(db: Session, user_id: str, role: Optional[str] = None) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user or (role and user.role != role):
        raise NotFoundError("{} not found".format((role or "user").capitalize()))
    return user


def serialize_user_brief(user: Optional[User]) -> Optional[dict]:
    if not user:
        return None
    return {
        "id": str(user.id),
        "user_id": user.user_id,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "user_id": user.user_id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "role": user.role,
        "department": user.department,
        "is_active": user.is_active,
        "created_at": iso(user.created_at),
    }


def serialize_course(course: Course, include_students: bool = False) -> dict:
    result = {
        "id": str(course.id),
        "course_code": course.course_code,
        "course_title": course.course_title,
        "department": course.department,
        "semester": course.semester,
        "academic_year": course.academic_year,
        "credit_units": course.credit_units,
        "lecturer": serialize_user_brief(course.lecturer),
        "max_students": course.max_students,
        "enrolled_count": len(course.enrolled_students),
        "attendance_code_settings": {
            "validity_minutes": course.code_validity_minutes,
            "campus_ip_ranges": course.ip_ranges_list,
        },
        "is_active": course.is_active,
        "created_at": iso(course.created_at),
    }
    if include_students:
        result["enrolled_students"] = [serialize_user_brief(s) for s in course.enrolled_students]
    return result


def serialize_attendance(record: AttendanceRecord, include_student: bool = False) -> dict:
    result = {
        "id": str(record.id),
        "course_id": str(record.course_id),
        "student_id": str(record.student_id),
        "session_date": iso(record.session_date),
        "session_topic": record.session_topic,
        "code_generated_at": iso(record.code_generated_at),
        "code_expires_at": iso(record.code_expires_at),
        "submission_time": iso(record.submission_time),
        "verification_status": record.verification_status,
        "ip_address": record.ip_address,
        "device_info": record.device_info,
        "flag_reasons": record.flag_reasons_list,
        "reviewed_by": str(record.reviewed_by) if record.reviewed_by else None,
        "review_note": record.review_note,
        "reviewed_at": iso(record.reviewed_at),
    }
    if include_student:
        result["student"] = serialize_user_brief(record.student)
    return result


def serialize_assessment(assessment: Assessment) -> dict:
    return {
        "id": str(assessment.id),
        "course_id": str(assessment.course_id),
        "student_id": str(assessment.student_id),
        "assessment_type": assessment.assessment_type,
        "score": float(assessment.score),
        "max_score": float(assessment.max_score),
        "percentage": float(assessment.percentage) if assessment.percentage is not None else None,
        "submission_date": iso(assessment.submission_date),
        "entered_by": str(assessment.entered_by),
        "remarks": assessment.remarks,
    }


def serialize_risk(risk: RiskAssessment) -> dict:
    return {
        "id": str(risk.id),
        "student": serialize_user_brief(risk.student),
        "course_id": str(risk.course_id),
        "risk_level": risk.risk_level,
        "attendance_percentage": round(float(risk.attendance_percentage), 2),
        "average_score": round(float(risk.average_score), 2),
        "factors": risk.factors_list,
        "calculated_at": iso(risk.calculated_at),
        "notification_sent": risk.notification_sent,
    }
