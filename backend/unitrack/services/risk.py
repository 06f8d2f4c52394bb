"""
Risk Scoring Service - early-warning classification per student and course.

``classify`` is a pure function over attendance percentage, assessment
average and the assessment history in submission order. It applies an
ordered list of rules; each rule sees the level left by the rules before it:

1. attendance < 60 and average < 50      -> high
2. otherwise attendance < 40             -> high
3. last two assessments both below 50    -> high (regardless of 1 and 2)
4. not high yet, 60 <= attendance < 75
   and average < 60                      -> medium
5. still low                             -> informational "good" factor

``materialize_risk`` recomputes the inputs from the database and overwrites
the cached RiskAssessment row, so it can be re-run at any time.
"""

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from unitrack.models.assessment import Assessment
from unitrack.models.attendance import AttendanceRecord
from unitrack.models.course import Course
from unitrack.models.risk_assessment import RiskAssessment
from unitrack.services.statistics import attendance_percentage, average_percentage
from unitrack.logging_config import get_logger, log_with_context

logger = get_logger("risk")

LOW = "low"
MEDIUM = "medium"
HIGH = "high"
RISK_LEVELS = (LOW, MEDIUM, HIGH)

FACTOR_LOW_ATTENDANCE_POOR_PERFORMANCE = "Low attendance with poor performance"
FACTOR_CRITICAL_ATTENDANCE = "Critically low attendance"
FACTOR_CONSECUTIVE_FAILURES = "Multiple consecutive failures"
FACTOR_MODERATE_ATTENDANCE = "Moderate attendance with declining performance"
FACTOR_GOOD_STANDING = "Good attendance and performance"

FAIL_THRESHOLD = 50


@dataclass
class RiskInputs:
    attendance_percentage: float
    average_score: float
    recent_percentages: Sequence[Optional[float]] = ()


@dataclass
class RiskResult:
    level: str = LOW
    factors: List[str] = field(default_factory=list)


def _low_attendance_poor_performance(inputs: RiskInputs, result: RiskResult) -> bool:
    return inputs.attendance_percentage < 60 and inputs.average_score < 50


def _critically_low_attendance(inputs: RiskInputs, result: RiskResult) -> bool:
    # Only reached as the "else" branch of the previous rule
    return (inputs.attendance_percentage < 40
            and not _low_attendance_poor_performance(inputs, result))


def _consecutive_failures(inputs: RiskInputs, result: RiskResult) -> bool:
    recent = list(inputs.recent_percentages)[-2:]
    if len(recent) < 2:
        return False
    return all(p is not None and p < FAIL_THRESHOLD for p in recent)


def _moderate_attendance(inputs: RiskInputs, result: RiskResult) -> bool:
    return (result.level != HIGH
            and 60 <= inputs.attendance_percentage < 75
            and inputs.average_score < 60)


def _still_low(inputs: RiskInputs, result: RiskResult) -> bool:
    return result.level == LOW


Rule = Tuple[Callable[[RiskInputs, RiskResult], bool], Optional[str], str]

# (predicate, level to set or None to keep, factor to append), applied in order
RULES: List[Rule] = [
    (_low_attendance_poor_performance, HIGH, FACTOR_LOW_ATTENDANCE_POOR_PERFORMANCE),
    (_critically_low_attendance, HIGH, FACTOR_CRITICAL_ATTENDANCE),
    (_consecutive_failures, HIGH, FACTOR_CONSECUTIVE_FAILURES),
    (_moderate_attendance, MEDIUM, FACTOR_MODERATE_ATTENDANCE),
    (_still_low, None, FACTOR_GOOD_STANDING),
]


def classify(attendance_pct: float, average_score: float,
             recent_percentages: Sequence[Optional[float]] = ()) -> RiskResult:
    """
    Classify a student's risk level.

    Args:
        attendance_pct: Share of sessions attended, 0-100
        average_score: Mean assessment percentage, 0-100
        recent_percentages: Assessment percentages in submission-date order

    Returns:
        RiskResult with the level and the factors of every rule that fired
    """
    inputs = RiskInputs(attendance_pct, average_score, recent_percentages)
    result = RiskResult()
    for predicate, level, factor in RULES:
        if predicate(inputs, result):
            if level is not None:
                result.level = level
            result.factors.append(factor)
    return result


def gather_inputs(db: Session, course_id: str, student_id: str) -> RiskInputs:
    statuses = [
        row.verification_status for row in db.query(AttendanceRecord.verification_status).filter(
            AttendanceRecord.course_id == course_id,
            AttendanceRecord.student_id == student_id,
        )
    ]
    assessments = db.query(Assessment).filter(
        Assessment.course_id == course_id,
        Assessment.student_id == student_id,
    ).order_by(Assessment.submission_date.asc()).all()
    percentages = [a.percentage for a in assessments]

    return RiskInputs(
        attendance_percentage=attendance_percentage(statuses),
        average_score=average_percentage(percentages),
        recent_percentages=percentages,
    )


# Dialect inserts that support ON CONFLICT ... DO UPDATE
UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def materialize_risk(db: Session, course_id: str, student_id: str,
                     now: datetime, commit: bool = True) -> RiskAssessment:
    """
    Recompute one student's risk and upsert the cached row.

    The write is a single INSERT ... ON CONFLICT DO UPDATE on the
    (student_id, course_id) unique key, so concurrent refreshes of the same
    student end with one row holding the last result.
    """
    inputs = gather_inputs(db, course_id, student_id)
    result = classify(inputs.attendance_percentage, inputs.average_score,
                      inputs.recent_percentages)

    dialect = db.get_bind().dialect.name
    insert = UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError("Risk upsert is not supported on {}".format(dialect))

    values = {
        "risk_level": result.level,
        "attendance_percentage": inputs.attendance_percentage,
        "average_score": inputs.average_score,
        "factors": json.dumps(result.factors),
        "calculated_at": now,
    }
    statement = insert(RiskAssessment.__table__).values(
        student_id=student_id, course_id=course_id, **values
    ).on_conflict_do_update(
        index_elements=["student_id", "course_id"],
        set_=values,
    )
    db.execute(statement)

    risk_record = db.query(RiskAssessment).populate_existing().filter(
        RiskAssessment.student_id == student_id,
        RiskAssessment.course_id == course_id,
    ).one()

    if commit:
        db.commit()
        db.refresh(risk_record)

    log_with_context(logger, "DEBUG",
        "Risk classified as {}".format(result.level),
        context={"course_id": str(course_id), "student_id": str(student_id)},
        extra_data={
            "attendance_percentage": round(inputs.attendance_percentage, 2),
            "average_score": round(inputs.average_score, 2),
            "factors": result.factors,
        })
    return risk_record


def refresh_course_risk(db: Session, course: Course, now: datetime) -> dict:
    """
    Recompute risk for every student enrolled in ``course``.

    Returns:
        Dict with the RiskAssessment rows and a per-level summary
    """
    start_time = time.time()

    rows = [
        materialize_risk(db, course.id, student.id, now, commit=False)
        for student in course.enrolled_students
    ]
    db.commit()
    for row in rows:
        db.refresh(row)

    summary = {level: 0 for level in RISK_LEVELS}
    for row in rows:
        summary[row.risk_level] += 1

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Risk refreshed for {} students".format(len(rows)),
        context={"course_id": str(course.id)},
        extra_data={"summary": summary, "duration_ms": round(duration_ms, 2)})

    return {"risk_assessments": rows, "summary": summary}
