"""
Assessment API routes - entering and correcting continuous assessment and
exam scores. Percentages are derived on every write.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from unitrack.auth import (
    Caller, get_caller, require_roles, ensure_course_access, ensure_self_or_staff
)
from unitrack.clock import get_clock, to_naive_utc
from unitrack.database import get_db
from unitrack.errors import NotFoundError, ValidationError
from unitrack.models.assessment import Assessment, ASSESSMENT_TYPES
from unitrack.routes.common import get_course_or_404, get_user_or_404, serialize_assessment
from unitrack.services.statistics import average_percentage, round2
from unitrack.logging_config import get_logger, log_with_context

router = APIRouter(prefix="/api/assessments")
logger = get_logger("http")

ASSESSMENT_TYPE_PATTERN = "^({})$".format("|".join(ASSESSMENT_TYPES))


class AssessmentCreateRequest(BaseModel):
    course_id: str
    student_id: str
    assessment_type: str = Field(..., pattern=ASSESSMENT_TYPE_PATTERN)
    score: float = Field(..., ge=0)
    max_score: float
    submission_date: Optional[datetime] = None
    remarks: Optional[str] = None


class AssessmentUpdateRequest(BaseModel):
    score: Optional[float] = Field(None, ge=0)
    max_score: Optional[float] = None
    remarks: Optional[str] = None


def _get_assessment_or_404(db: Session, assessment_id: str) -> Assessment:
    assessment = db.query(Assessment).filter(Assessment.id == assessment_id).first()
    if not assessment:
        raise NotFoundError("Assessment not found")
    return assessment


@router.post("", status_code=201)
def create_assessment(request: AssessmentCreateRequest,
                      caller: Caller = Depends(require_roles("lecturer", "admin")),
                      clock=Depends(get_clock),
                      db: Session = Depends(get_db)):
    """Record a score for an enrolled student."""
    course = get_course_or_404(db, request.course_id)
    ensure_course_access(caller, course)

    student = get_user_or_404(db, request.student_id, role="student")
    if not course.is_enrolled(student.id):
        raise ValidationError("Student is not enrolled in this course")

    assessment = Assessment(
        course_id=course.id,
        student_id=student.id,
        assessment_type=request.assessment_type,
        score=request.score,
        max_score=request.max_score,
        submission_date=to_naive_utc(request.submission_date) if request.submission_date else clock(),
        entered_by=caller.id,
        remarks=request.remarks,
    )
    assessment.recalculate()
    db.add(assessment)
    db.commit()
    db.refresh(assessment)

    log_with_context(logger, "INFO",
        "Assessment {} recorded: {}/{}".format(
            assessment.assessment_type, assessment.score, assessment.max_score),
        context={"course_id": str(course.id), "student_id": str(student.id),
                 "assessment_id": str(assessment.id)})
    return {"message": "Assessment created successfully",
            "assessment": serialize_assessment(assessment)}


@router.get("/course/{course_id}")
def course_assessments(course_id: str,
                       assessment_type: Optional[str] = Query(None),
                       caller: Caller = Depends(require_roles("lecturer", "admin")),
                       db: Session = Depends(get_db)):
    """List a course's assessments, newest first, optionally by type."""
    course = get_course_or_404(db, course_id, active_only=False)
    ensure_course_access(caller, course)

    query = db.query(Assessment).filter(Assessment.course_id == course.id)
    if assessment_type:
        query = query.filter(Assessment.assessment_type == assessment_type)
    assessments = query.order_by(Assessment.submission_date.desc()).all()
    return {"assessments": [serialize_assessment(a) for a in assessments]}


@router.get("/student/{student_id}/{course_id}")
def student_assessments(student_id: str, course_id: str,
                        caller: Caller = Depends(get_caller),
                        db: Session = Depends(get_db)):
    """A student's assessments in one course with their average."""
    ensure_self_or_staff(caller, student_id)
    course = get_course_or_404(db, course_id, active_only=False)
    if caller.is_lecturer:
        ensure_course_access(caller, course)

    assessments = db.query(Assessment).filter(
        Assessment.student_id == student_id,
        Assessment.course_id == course.id
    ).order_by(Assessment.submission_date.desc()).all()

    return {
        "assessments": [serialize_assessment(a) for a in assessments],
        "statistics": {
            "total_assessments": len(assessments),
            "average_score": round2(average_percentage([a.percentage for a in assessments])),
        }
    }


@router.put("/{assessment_id}")
def update_assessment(assessment_id: str, request: AssessmentUpdateRequest,
                      caller: Caller = Depends(require_roles("lecturer", "admin")),
                      db: Session = Depends(get_db)):
    """Correct a score or remarks and recompute the percentage."""
    assessment = _get_assessment_or_404(db, assessment_id)
    ensure_course_access(caller, assessment.course)

    if request.score is not None:
        assessment.score = request.score
    if request.max_score is not None:
        assessment.max_score = request.max_score
    if request.remarks is not None:
        assessment.remarks = request.remarks
    assessment.recalculate()
    db.commit()
    db.refresh(assessment)

    log_with_context(logger, "INFO", "Assessment updated",
                     context={"assessment_id": str(assessment.id), "updated_by": caller.id})
    return {"message": "Assessment updated successfully",
            "assessment": serialize_assessment(assessment)}


@router.delete("/{assessment_id}")
def delete_assessment(assessment_id: str,
                      caller: Caller = Depends(require_roles("lecturer", "admin")),
                      db: Session = Depends(get_db)):
    """Delete an assessment."""
    assessment = _get_assessment_or_404(db, assessment_id)
    ensure_course_access(caller, assessment.course)

    db.delete(assessment)
    db.commit()

    log_with_context(logger, "INFO", "Assessment deleted",
                     context={"assessment_id": assessment_id, "deleted_by": caller.id})
    return {"message": "Assessment deleted successfully"}
