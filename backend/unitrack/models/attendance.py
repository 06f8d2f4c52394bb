"""
AttendanceRecord model - one row per enrolled student per session.

Rows are created as ``absent`` placeholders when the lecturer opens a session
and move through the verification states:

- absent: placeholder, nothing submitted yet
- verified: submitted with no heuristic flags
- flagged: submitted but at least one heuristic fired, awaiting review
- manual-approved / manual-rejected: set by a lecturer review
"""

import uuid
import json
from sqlalchemy import Column, Text, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from unitrack.database import Base

STATUS_ABSENT = "absent"
STATUS_VERIFIED = "verified"
STATUS_FLAGGED = "flagged"
STATUS_MANUAL_APPROVED = "manual-approved"
STATUS_MANUAL_REJECTED = "manual-rejected"

VERIFICATION_STATUSES = (
    STATUS_ABSENT,
    STATUS_VERIFIED,
    STATUS_FLAGGED,
    STATUS_MANUAL_APPROVED,
    STATUS_MANUAL_REJECTED,
)


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique attendance record identifier")
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    session_date = Column(DateTime, nullable=False,
                          doc="When the session was opened")
    session_topic = Column(Text, nullable=True)
    attendance_code = Column(String(6), nullable=False,
                             doc="Six-digit code shared with the session")
    code_generated_at = Column(DateTime, nullable=False)
    code_expires_at = Column(DateTime, nullable=False,
                             doc="code_generated_at + the course's validity minutes")
    submission_time = Column(DateTime, nullable=True,
                             doc="Set exactly once when the student submits")
    verification_status = Column(String(20), nullable=False, default=STATUS_ABSENT)
    ip_address = Column(String(64), nullable=True)
    device_info = Column(Text, nullable=True)
    flag_reasons = Column(Text, nullable=False, default="[]",
                          doc="Heuristic reasons as a JSON list, in evaluation order")
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    review_note = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    course = relationship("Course")
    student = relationship("User", foreign_keys=[student_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])

    __table_args__ = (
        Index("ix_attendance_course_session", "course_id", "session_date"),
        Index("ix_attendance_student_course", "student_id", "course_id"),
        Index("ix_attendance_course_ip_submitted", "course_id", "ip_address", "submission_time"),
    )

    @property
    def flag_reasons_list(self):
        """Parse the flag_reasons JSON string into a list."""
        if isinstance(self.flag_reasons, list):
            return self.flag_reasons
        try:
            return json.loads(self.flag_reasons) if self.flag_reasons else []
        except (json.JSONDecodeError, TypeError):
            return []

    def __repr__(self):
        return (f"<AttendanceRecord(id={self.id}, course={self.course_id}, "
                f"student={self.student_id}, status='{self.verification_status}')>")
