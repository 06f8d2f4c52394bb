from unitrack.models.user import User
from unitrack.models.course import Course, course_enrollments
from unitrack.models.attendance import AttendanceRecord
from unitrack.models.assessment import Assessment
from unitrack.models.risk_assessment import RiskAssessment

__all__ = ["User", "Course", "course_enrollments", "AttendanceRecord", "Assessment", "RiskAssessment"]
