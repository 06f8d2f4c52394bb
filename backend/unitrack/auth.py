"""
Caller identity.

Authentication happens upstream; requests arrive with an ``X-User-ID`` header
naming an active user, whose stored role is trusted from then on. Routes
declare the roles they accept with ``require_roles`` and check course
ownership with ``ensure_course_access``.
"""

from typing import Optional
from fastapi import Depends, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from unitrack.database import get_db
from unitrack.errors import AuthenticationError, UnauthorizedError
from unitrack.models.user import User, ROLES


class Caller(BaseModel):
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_lecturer(self) -> bool:
        return self.role == "lecturer"

    @property
    def is_student(self) -> bool:
        return self.role == "student"


def get_caller(x_user_id: Optional[str] = Header(None),
               db: Session = Depends(get_db)) -> Caller:
    if not x_user_id:
        raise AuthenticationError("Missing X-User-ID header")
    user = db.query(User).filter(User.id == x_user_id).first()
    if not user or not user.is_active or user.role not in ROLES:
        raise AuthenticationError("Unknown or inactive user")
    return Caller(id=user.id, role=user.role)


def require_roles(*roles: str):
    """Dependency factory: the caller must hold one of ``roles``."""
    def dependency(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role not in roles:
            raise UnauthorizedError()
        return caller
    return dependency


def ensure_course_access(caller: Caller, course) -> None:
    """Admins see every course, lecturers only the ones they teach."""
    if caller.is_admin:
        return
    if caller.is_lecturer and course.lecturer_id == caller.id:
        return
    raise UnauthorizedError()


def ensure_self_or_staff(caller: Caller, student_id: str) -> None:
    """Students may only read their own records."""
    if caller.is_student and caller.id != student_id:
        raise UnauthorizedError()
