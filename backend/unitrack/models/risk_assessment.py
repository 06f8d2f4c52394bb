"""
RiskAssessment model - cached risk classification per (student, course).

The row is fully recomputed and overwritten by the risk service; it has no
state of its own beyond the intervention bookkeeping fields.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Text, Float, DateTime, ForeignKey, String, Boolean, UniqueConstraint
)
from sqlalchemy.orm import relationship
from unitrack.database import Base


class RiskAssessment(Base):
    __tablename__ = "risk_assessments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False)
    risk_level = Column(String(8), nullable=False,
                        doc="low | medium | high")
    attendance_percentage = Column(Float, nullable=False)
    average_score = Column(Float, nullable=False)
    factors = Column(Text, nullable=False, default="[]",
                     doc="Contributing factors as a JSON list, in rule order")
    calculated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    notification_sent = Column(Boolean, nullable=False, default=False)
    intervention_notes = Column(Text, nullable=True)

    student = relationship("User")
    course = relationship("Course")

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_risk_student_course"),
    )

    @property
    def factors_list(self):
        if isinstance(self.factors, list):
            return self.factors
        try:
            return json.loads(self.factors) if self.factors else []
        except (json.JSONDecodeError, TypeError):
            return []

    def __repr__(self):
        return f"<RiskAssessment(student={self.student_id}, course={self.course_id}, level='{self.risk_level}')>"
