"""
User model - students, lecturers and administrators.

Passwords and tokens live with the upstream identity provider; this table
only holds what enrollment, review attribution and analytics need.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Boolean, Index
from sqlalchemy.orm import relationship
from unitrack.database import Base

ROLES = ("admin", "lecturer", "student")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique user identifier")
    user_id = Column(String(64), nullable=False, unique=True,
                     doc="Institution number (matric number or staff number)")
    email = Column(Text, nullable=False, unique=True,
                   doc="Lower-cased email address")
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    role = Column(String(16), nullable=False, default="student",
                  doc="admin | lecturer | student")
    department = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))

    taught_courses = relationship("Course", back_populates="lecturer")
    enrolled_courses = relationship("Course", secondary="course_enrollments",
                                    back_populates="enrolled_students")

    __table_args__ = (
        Index("ix_users_role_department", "role", "department"),
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<User(id={self.id}, user_id='{self.user_id}', role='{self.role}')>"
