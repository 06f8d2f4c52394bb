"""
Course model and the course/student enrollment association.

Each course carries its own attendance code settings: how long a generated
code stays valid and which campus network ranges count as on-campus.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Text, Integer, DateTime, String, Boolean, ForeignKey, Index,
    Table, UniqueConstraint
)
from sqlalchemy.orm import relationship
from unitrack.database import Base

course_enrollments = Table(
    "course_enrollments",
    Base.metadata,
    Column("course_id", String(36), ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Course(Base):
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique course identifier")
    course_code = Column(String(32), nullable=False,
                         doc="Upper-cased course code, e.g. CSC301")
    course_title = Column(Text, nullable=False)
    department = Column(Text, nullable=False)
    semester = Column(String(16), nullable=False,
                      doc="First | Second")
    academic_year = Column(String(16), nullable=False,
                           doc="e.g. 2024/2025")
    credit_units = Column(Integer, nullable=False)
    lecturer_id = Column(String(36), ForeignKey("users.id"), nullable=False,
                         doc="Lecturer who owns the course")
    max_students = Column(Integer, nullable=False, default=100)
    code_validity_minutes = Column(Integer, nullable=False, default=15,
                                   doc="Minutes an attendance code stays valid")
    campus_ip_ranges = Column(Text, nullable=False, default="[]",
                              doc="Campus network ranges as a JSON list of CIDR-like strings")
    is_active = Column(Boolean, nullable=False, default=True,
                       doc="False once the course is deleted")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))

    lecturer = relationship("User", back_populates="taught_courses")
    enrolled_students = relationship("User", secondary=course_enrollments,
                                     back_populates="enrolled_courses")

    __table_args__ = (
        UniqueConstraint("course_code", "academic_year", name="uq_courses_code_year"),
        Index("ix_courses_lecturer_id", "lecturer_id"),
        Index("ix_courses_department", "department"),
    )

    @property
    def ip_ranges_list(self):
        """Parse the campus_ip_ranges JSON string into a list."""
        if isinstance(self.campus_ip_ranges, list):
            return self.campus_ip_ranges
        try:
            parsed = json.loads(self.campus_ip_ranges) if self.campus_ip_ranges else []
        except (json.JSONDecodeError, TypeError):
            return []
        return parsed if isinstance(parsed, list) else []

    def is_enrolled(self, student_id: str) -> bool:
        return any(s.id == student_id for s in self.enrolled_students)

    def __repr__(self):
        return f"<Course(id={self.id}, code='{self.course_code}', year='{self.academic_year}')>"
