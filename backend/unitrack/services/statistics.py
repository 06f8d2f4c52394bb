"""
Shared attendance and assessment arithmetic.

Used by the attendance queries, the analytics routes and the risk service so
that "present", percentages and averages mean the same thing everywhere.
"""

from typing import Iterable, Optional, Sequence
from unitrack.models.attendance import (
    STATUS_ABSENT, STATUS_FLAGGED, STATUS_VERIFIED, STATUS_MANUAL_APPROVED
)

# Statuses that count as attending a session
PRESENT_STATUSES = frozenset({STATUS_VERIFIED, STATUS_MANUAL_APPROVED})


def is_present(status: str) -> bool:
    return status in PRESENT_STATUSES


def round2(value: float) -> float:
    return round(float(value), 2)


def assessment_percentage(score, max_score) -> Optional[float]:
    """score / max_score * 100, or None when max_score is not positive."""
    if max_score is None or max_score <= 0:
        return None
    return float(score) / float(max_score) * 100


def attendance_percentage(statuses: Iterable[str]) -> float:
    """Share of sessions attended, 0 when there were no sessions."""
    statuses = list(statuses)
    if not statuses:
        return 0.0
    present = sum(1 for s in statuses if is_present(s))
    return present / len(statuses) * 100


def average_percentage(percentages: Sequence[Optional[float]]) -> float:
    """Mean of assessment percentages; undefined percentages count as 0."""
    if not percentages:
        return 0.0
    return sum(p or 0 for p in percentages) / len(percentages)


def summarize_session(statuses: Iterable[str]) -> dict:
    statuses = list(statuses)
    return {
        "total": len(statuses),
        "present": sum(1 for s in statuses if is_present(s)),
        "flagged": sum(1 for s in statuses if s == STATUS_FLAGGED),
        "absent": sum(1 for s in statuses if s == STATUS_ABSENT),
    }


def student_attendance_summary(records) -> dict:
    """Totals for one student in one course from their attendance rows."""
    statuses = [r.verification_status for r in records]
    present = sum(1 for s in statuses if is_present(s))
    return {
        "total_sessions": len(statuses),
        "present_count": present,
        "absent_count": len(statuses) - present,
        "attendance_percentage": round2(attendance_percentage(statuses)),
    }
