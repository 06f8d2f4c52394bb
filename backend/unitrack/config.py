"""
Runtime configuration.

Values are read from the environment once into a ``Settings`` object which is
handed to the attendance and risk services explicitly. A course can override
the code validity and campus ranges; ``Settings.for_course`` merges those into
the ``AttendancePolicy`` the verification engine actually uses.
"""

import os
from typing import List, Optional
from pydantic import BaseModel, Field


def _split_ranges(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class AttendancePolicy(BaseModel):
    """Effective verification parameters for one course."""
    validity_minutes: int = Field(15, ge=1)
    campus_ip_ranges: List[str] = Field(default_factory=list)
    fast_submission_seconds: float = 5
    burst_window_seconds: int = 60
    burst_threshold: int = 5


class Settings(BaseModel):
    code_validity_minutes: int = Field(15, ge=1)
    campus_ip_ranges: List[str] = Field(default_factory=list)
    fast_submission_seconds: float = 5
    ip_burst_window_seconds: int = 60
    ip_burst_threshold: int = 5
    trust_proxy_headers: bool = False
    submit_rate_limit: str = "3 per minute"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            code_validity_minutes=int(os.getenv("ATTENDANCE_CODE_VALIDITY", "15")),
            campus_ip_ranges=_split_ranges(os.getenv("CAMPUS_IP_RANGES")),
            fast_submission_seconds=float(os.getenv("FAST_SUBMISSION_SECONDS", "5")),
            ip_burst_window_seconds=int(os.getenv("IP_BURST_WINDOW_SECONDS", "60")),
            ip_burst_threshold=int(os.getenv("IP_BURST_THRESHOLD", "5")),
            trust_proxy_headers=_env_bool("TRUST_PROXY_HEADERS"),
            submit_rate_limit=os.getenv("SUBMIT_RATE_LIMIT", "3 per minute"),
        )

    def for_course(self, course=None) -> AttendancePolicy:
        """Merge a course's own attendance settings over the global defaults."""
        validity = self.code_validity_minutes
        ranges = list(self.campus_ip_ranges)
        if course is not None:
            if course.code_validity_minutes:
                validity = course.code_validity_minutes
            if course.ip_ranges_list:
                ranges = course.ip_ranges_list
        return AttendancePolicy(
            validity_minutes=validity,
            campus_ip_ranges=ranges,
            fast_submission_seconds=self.fast_submission_seconds,
            burst_window_seconds=self.ip_burst_window_seconds,
            burst_threshold=self.ip_burst_threshold,
        )


settings = Settings.from_env()


def get_settings() -> Settings:
    """FastAPI dependency; overridden in tests."""
    return settings
