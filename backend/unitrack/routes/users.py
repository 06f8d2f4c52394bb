"""
User API routes - registering students, lecturers and admins for enrollment
and attribution. Credentials are handled by the upstream identity provider.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from unitrack.auth import Caller, require_roles, get_caller
from unitrack.database import get_db
from unitrack.errors import ValidationError
from unitrack.models.user import User
from unitrack.routes.common import get_user_or_404, serialize_user
from unitrack.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


class UserCreateRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="Matric or staff number")
    email: str = Field(..., min_length=3)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    role: str = Field("student", pattern="^(admin|lecturer|student)$")
    department: str = Field(..., min_length=1)


@router.post("/api/users", status_code=201)
def create_user(request: UserCreateRequest,
                caller: Caller = Depends(require_roles("admin")),
                db: Session = Depends(get_db)):
    """Register a student, lecturer or admin."""
    email = request.email.strip().lower()
    user_id = request.user_id.strip()

    clash = db.query(User).filter((User.email == email) | (User.user_id == user_id)).first()
    if clash:
        raise ValidationError("A user with this email or user ID already exists")

    user = User(
        user_id=user_id,
        email=email,
        first_name=request.first_name.strip(),
        last_name=request.last_name.strip(),
        role=request.role,
        department=request.department.strip(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    log_with_context(logger, "INFO", "User created with role {}".format(user.role),
                     context={"user_id": str(user.id), "created_by": caller.id})
    return {"message": "User created successfully", "user": serialize_user(user)}


@router.get("/api/users")
def list_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    department: Optional[str] = Query(None, description="Filter by department"),
    caller: Caller = Depends(require_roles("admin", "lecturer")),
    db: Session = Depends(get_db)
):
    """List active users, optionally by role or department."""
    query = db.query(User).filter(User.is_active.is_(True))
    if role:
        query = query.filter(User.role == role)
    if department:
        query = query.filter(User.department == department)
    users = query.order_by(User.last_name, User.first_name).all()
    return {"users": [serialize_user(u) for u in users], "count": len(users)}


@router.get("/api/users/{user_id}")
def get_user(user_id: str, caller: Caller = Depends(get_caller),
             db: Session = Depends(get_db)):
    """Get a single user."""
    return {"user": serialize_user(get_user_or_404(db, user_id))}


class UserStatusRequest(BaseModel):
    is_active: bool


@router.put("/api/users/{user_id}/status")
def update_user_status(user_id: str, request: UserStatusRequest,
                       caller: Caller = Depends(require_roles("admin")),
                       db: Session = Depends(get_db)):
    """Activate or deactivate a user; inactive users are refused on every request."""
    user = get_user_or_404(db, user_id)
    if user.id == caller.id and not request.is_active:
        raise ValidationError("Admins cannot deactivate themselves")

    user.is_active = request.is_active
    db.commit()
    db.refresh(user)

    outcome = "activated" if user.is_active else "deactivated"
    log_with_context(logger, "INFO", "User {}".format(outcome),
                     context={"user_id": str(user.id), "updated_by": caller.id})
    return {"message": "User {} successfully".format(outcome), "user": serialize_user(user)}
