"""
Assessment model - one score entered by a lecturer for a student.

``percentage`` is derived from score/max_score and kept in sync by
``Assessment.recalculate``; it is NULL when max_score is not positive.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Float, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from unitrack.database import Base

ASSESSMENT_TYPES = ("CA1", "CA2", "midterm", "exam", "assignment", "project")


class Assessment(Base):
    __tablename__ = "assessments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique assessment identifier")
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    assessment_type = Column(String(16), nullable=False,
                             doc="CA1 | CA2 | midterm | exam | assignment | project")
    score = Column(Float, nullable=False)
    max_score = Column(Float, nullable=False)
    percentage = Column(Float, nullable=True,
                        doc="score / max_score * 100, NULL when max_score <= 0")
    submission_date = Column(DateTime, nullable=False,
                             default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    entered_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    remarks = Column(Text, nullable=True)

    course = relationship("Course")
    student = relationship("User", foreign_keys=[student_id])

    __table_args__ = (
        Index("ix_assessments_course_student", "course_id", "student_id"),
    )

    def recalculate(self):
        from unitrack.services.statistics import assessment_percentage
        self.percentage = assessment_percentage(self.score, self.max_score)

    def __repr__(self):
        return (f"<Assessment(id={self.id}, type='{self.assessment_type}', "
                f"score={self.score}/{self.max_score})>")
