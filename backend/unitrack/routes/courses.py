"""
Course API routes - course catalogue, attendance code settings and enrollment.
"""

import json
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, joinedload

from unitrack.auth import Caller, get_caller, require_roles, ensure_course_access
from unitrack.config import Settings, get_settings
from unitrack.database import get_db
from unitrack.errors import ValidationError
from unitrack.models.course import Course
from unitrack.models.user import User
from unitrack.routes.common import get_course_or_404, get_user_or_404, serialize_course
from unitrack.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")

SEMESTER_PATTERN = "^(First|Second)$"


class AttendanceCodeSettings(BaseModel):
    validity_minutes: Optional[int] = Field(None, ge=1, le=240)
    campus_ip_ranges: Optional[List[str]] = None


class CourseCreateRequest(BaseModel):
    course_code: str = Field(..., min_length=2)
    course_title: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    semester: str = Field(..., pattern=SEMESTER_PATTERN)
    academic_year: str = Field(..., min_length=4)
    credit_units: int = Field(..., ge=1, le=6)
    lecturer_id: str
    max_students: int = Field(100, ge=1)
    attendance_code_settings: Optional[AttendanceCodeSettings] = None


class CourseUpdateRequest(BaseModel):
    course_title: Optional[str] = None
    semester: Optional[str] = Field(None, pattern=SEMESTER_PATTERN)
    credit_units: Optional[int] = Field(None, ge=1, le=6)
    attendance_code_settings: Optional[AttendanceCodeSettings] = None


class EnrollRequest(BaseModel):
    student_ids: List[str] = Field(..., min_length=1)


def _apply_code_settings(course: Course, code_settings: Optional[AttendanceCodeSettings]):
    if code_settings is None:
        return
    if code_settings.validity_minutes is not None:
        course.code_validity_minutes = code_settings.validity_minutes
    if code_settings.campus_ip_ranges is not None:
        ranges = [r.strip() for r in code_settings.campus_ip_ranges if r.strip()]
        course.campus_ip_ranges = json.dumps(ranges)


@router.post("/api/courses", status_code=201)
def create_course(request: CourseCreateRequest,
                  caller: Caller = Depends(require_roles("admin")),
                  settings: Settings = Depends(get_settings),
                  db: Session = Depends(get_db)):
    """Create a course for a lecturer."""
    course_code = request.course_code.strip().upper()

    existing = db.query(Course).filter(
        Course.course_code == course_code,
        Course.academic_year == request.academic_year
    ).first()
    if existing:
        raise ValidationError("Course already exists for this academic year")

    lecturer = db.query(User).filter(User.id == request.lecturer_id).first()
    if not lecturer or lecturer.role != "lecturer":
        raise ValidationError("Invalid lecturer")

    course = Course(
        course_code=course_code,
        course_title=request.course_title.strip(),
        department=request.department,
        semester=request.semester,
        academic_year=request.academic_year,
        credit_units=request.credit_units,
        lecturer_id=lecturer.id,
        max_students=request.max_students,
        code_validity_minutes=settings.code_validity_minutes,
        campus_ip_ranges=json.dumps(settings.campus_ip_ranges),
    )
    _apply_code_settings(course, request.attendance_code_settings)
    db.add(course)
    db.commit()
    db.refresh(course)

    log_with_context(logger, "INFO", "Course {} created".format(course.course_code),
                     context={"course_id": str(course.id), "lecturer_id": str(lecturer.id)})
    return {"message": "Course created successfully", "course": serialize_course(course)}


@router.get("/api/courses")
def list_courses(
    department: Optional[str] = Query(None),
    semester: Optional[str] = Query(None),
    academic_year: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    """List active courses with filters and pagination."""
    query = db.query(Course).options(
        joinedload(Course.lecturer),
        joinedload(Course.enrolled_students)
    ).filter(Course.is_active.is_(True))

    if department:
        query = query.filter(Course.department == department)
    if semester:
        query = query.filter(Course.semester == semester)
    if academic_year:
        query = query.filter(Course.academic_year == academic_year)

    total_count = query.count()
    offset = (page - 1) * per_page
    courses = query.order_by(Course.course_code).offset(offset).limit(per_page).all()

    return {
        "data": [serialize_course(c) for c in courses],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total_count,
            "total_pages": (total_count + per_page - 1) // per_page
        }
    }


@router.get("/api/courses/lecturer/{lecturer_id}")
def lecturer_courses(lecturer_id: str, caller: Caller = Depends(get_caller),
                     db: Session = Depends(get_db)):
    """Active courses taught by a lecturer, with their students."""
    courses = db.query(Course).filter(
        Course.lecturer_id == lecturer_id,
        Course.is_active.is_(True)
    ).order_by(Course.course_code).all()
    return {"courses": [serialize_course(c, include_students=True) for c in courses]}


@router.get("/api/courses/student/{student_id}")
def student_courses(student_id: str, caller: Caller = Depends(get_caller),
                    db: Session = Depends(get_db)):
    """Active courses a student is enrolled in."""
    student = get_user_or_404(db, student_id, role="student")
    courses = sorted(
        (c for c in student.enrolled_courses if c.is_active),
        key=lambda c: c.course_code
    )
    return {"courses": [serialize_course(c) for c in courses]}


@router.get("/api/courses/{course_id}")
def get_course(course_id: str, caller: Caller = Depends(get_caller),
               db: Session = Depends(get_db)):
    """Get a course with its enrolled students."""
    course = get_course_or_404(db, course_id)
    return {"course": serialize_course(course, include_students=True)}


@router.put("/api/courses/{course_id}")
def update_course(course_id: str, request: CourseUpdateRequest,
                  caller: Caller = Depends(require_roles("admin", "lecturer")),
                  db: Session = Depends(get_db)):
    """Update course details and attendance code settings."""
    course = get_course_or_404(db, course_id)
    ensure_course_access(caller, course)

    if request.course_title:
        course.course_title = request.course_title.strip()
    if request.semester:
        course.semester = request.semester
    if request.credit_units:
        course.credit_units = request.credit_units
    _apply_code_settings(course, request.attendance_code_settings)

    db.commit()
    db.refresh(course)

    log_with_context(logger, "INFO", "Course {} updated".format(course.course_code),
                     context={"course_id": str(course.id), "updated_by": caller.id})
    return {"message": "Course updated successfully", "course": serialize_course(course)}


@router.delete("/api/courses/{course_id}")
def delete_course(course_id: str,
                  caller: Caller = Depends(require_roles("admin")),
                  db: Session = Depends(get_db)):
    """Deactivate a course."""
    course = get_course_or_404(db, course_id)
    course.is_active = False
    db.commit()

    log_with_context(logger, "INFO", "Course {} deactivated".format(course.course_code),
                     context={"course_id": str(course.id)})
    return {"message": "Course deleted successfully"}


@router.post("/api/courses/{course_id}/enroll")
def enroll_students(course_id: str, request: EnrollRequest,
                    caller: Caller = Depends(require_roles("admin", "lecturer")),
                    db: Session = Depends(get_db)):
    """Enroll students, skipping those already enrolled."""
    course = get_course_or_404(db, course_id)
    ensure_course_access(caller, course)

    requested_ids = list(dict.fromkeys(request.student_ids))
    students = db.query(User).filter(
        User.id.in_(requested_ids),
        User.role == "student"
    ).all()
    if len(students) != len(requested_ids):
        raise ValidationError("Some student IDs are invalid")

    new_students = [s for s in students if not course.is_enrolled(s.id)]
    if len(course.enrolled_students) + len(new_students) > course.max_students:
        raise ValidationError("Enrollment would exceed the course capacity of {}".format(
            course.max_students))

    course.enrolled_students.extend(new_students)
    db.commit()
    db.refresh(course)

    log_with_context(logger, "INFO", "Enrolled {} new students".format(len(new_students)),
                     context={"course_id": str(course.id)},
                     extra_data={"enrolled_count": len(course.enrolled_students)})
    return {
        "message": "Students enrolled successfully",
        "newly_enrolled": len(new_students),
        "enrolled_count": len(course.enrolled_students),
    }
