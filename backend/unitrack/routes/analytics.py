"""
Analytics API routes - at-risk students, performance trends and
department-level summaries.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from unitrack.auth import (
    Caller, get_caller, require_roles, ensure_course_access, ensure_self_or_staff
)
from unitrack.clock import get_clock
from unitrack.database import get_db
from unitrack.models.assessment import Assessment
from unitrack.models.attendance import AttendanceRecord
from unitrack.models.course import Course
from unitrack.models.risk_assessment import RiskAssessment
from unitrack.models.user import User
from unitrack.routes.common import get_course_or_404, iso, serialize_risk
from unitrack.services.risk import refresh_course_risk, gather_inputs, MEDIUM, HIGH
from unitrack.services.statistics import attendance_percentage, round2
from unitrack.logging_config import get_logger, log_with_context

router = APIRouter(prefix="/api/analytics")
logger = get_logger("http")


@router.get("/risk-assessment/{course_id}")
def course_risk_assessment(course_id: str,
                           caller: Caller = Depends(require_roles("lecturer", "admin")),
                           clock=Depends(get_clock),
                           db: Session = Depends(get_db)):
    """Recompute and return the risk classification of every enrolled student."""
    course = get_course_or_404(db, course_id)
    ensure_course_access(caller, course)

    result = refresh_course_risk(db, course, clock())
    return {
        "risk_assessments": [serialize_risk(r) for r in result["risk_assessments"]],
        "summary": result["summary"],
    }


@router.get("/performance-trends/{student_id}")
def performance_trends(student_id: str,
                       course_id: Optional[str] = Query(None),
                       caller: Caller = Depends(get_caller),
                       db: Session = Depends(get_db)):
    """A student's assessment history grouped by course, oldest first."""
    ensure_self_or_staff(caller, student_id)

    query = db.query(Assessment).options(joinedload(Assessment.course)).filter(
        Assessment.student_id == student_id)
    if course_id:
        query = query.filter(Assessment.course_id == course_id)
    assessments = query.order_by(Assessment.submission_date.asc()).all()

    trends = {}
    for assessment in assessments:
        key = str(assessment.course_id)
        if key not in trends:
            trends[key] = {
                "course": {
                    "id": key,
                    "course_code": assessment.course.course_code,
                    "course_title": assessment.course.course_title,
                },
                "assessments": [],
            }
        trends[key]["assessments"].append({
            "type": assessment.assessment_type,
            "score": float(assessment.score),
            "percentage": float(assessment.percentage) if assessment.percentage is not None else None,
            "date": iso(assessment.submission_date),
        })

    return {"trends": list(trends.values())}


@router.get("/attendance-vs-performance/{course_id}")
def attendance_vs_performance(course_id: str,
                              caller: Caller = Depends(require_roles("lecturer", "admin")),
                              db: Session = Depends(get_db)):
    """Attendance percentage and assessment average per enrolled student."""
    course = get_course_or_404(db, course_id)
    ensure_course_access(caller, course)

    data = []
    for student in course.enrolled_students:
        inputs = gather_inputs(db, course.id, student.id)
        data.append({
            "student": {"id": str(student.id), "name": student.full_name},
            "attendance_percentage": round2(inputs.attendance_percentage),
            "average_score": round2(inputs.average_score),
        })
    return {"data": data}


@router.get("/department-summary/{department}")
def department_summary(department: str,
                       caller: Caller = Depends(require_roles("admin")),
                       db: Session = Depends(get_db)):
    """Course, student and at-risk counts for one department."""
    courses = db.query(Course).filter(
        Course.department == department,
        Course.is_active.is_(True)
    ).all()
    course_ids = [c.id for c in courses]

    total_students = db.query(User).filter(
        User.department == department,
        User.role == "student",
        User.is_active.is_(True)
    ).count()

    at_risk = 0
    average_attendance = 0.0
    if course_ids:
        at_risk = db.query(RiskAssessment).filter(
            RiskAssessment.course_id.in_(course_ids),
            RiskAssessment.risk_level.in_([MEDIUM, HIGH])
        ).count()
        statuses = [
            row.verification_status for row in db.query(AttendanceRecord.verification_status).filter(
                AttendanceRecord.course_id.in_(course_ids))
        ]
        average_attendance = attendance_percentage(statuses)

    log_with_context(logger, "INFO", "Department summary computed",
                     context={"department": department},
                     extra_data={"courses": len(course_ids), "at_risk": at_risk})

    return {
        "summary": {
            "total_courses": len(courses),
            "total_students": total_students,
            "at_risk_students": at_risk,
            "average_attendance": round2(average_attendance),
        }
    }
