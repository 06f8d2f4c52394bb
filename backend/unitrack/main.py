"""
UniTrack - FastAPI application entry point.

Wires together:
1. Structured JSON logging and the request ID middleware (X-Request-ID)
2. CORS for the web frontend
3. The domain error handler (RecordsError -> JSON error body)
4. Route modules: users, courses, attendance, assessments, analytics

Layout:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: attendance verification, risk scoring, shared statistics
- config.py, clock.py, auth.py: settings, time source, caller identity
"""

import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from unitrack.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from unitrack.errors import RecordsError
from unitrack.rate_limit import limiter, rate_limit_exceeded_handler
from unitrack.routes import users, courses, attendance, assessments, analytics
from unitrack.database import DATABASE_URL, create_tables

setup_logging()
logger = get_logger("http")

if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

app = FastAPI(
    title="UniTrack",
    description=(
        "University attendance and academic records: course enrollment, "
        "code-based attendance with fraud heuristics, assessment scores "
        "and at-risk student analytics."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Tag every request with a UUID, exposed in the X-Request-ID response header
    and attached to every log entry written while the request is handled.
    """
    req_id = generate_request_id()
    request_id_var.set(req_id)
    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


@app.exception_handler(RecordsError)
async def records_error_handler(request: Request, exc: RecordsError):
    log_with_context(logger, "WARNING",
        f"{request.method} {request.url.path} failed: {exc.message}",
        extra_data={"error": exc.error_code, "status_code": exc.status_code})
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error_code}
    )


app.include_router(users.router, tags=["Users"])
app.include_router(courses.router, tags=["Courses"])
app.include_router(attendance.router, tags=["Attendance"])
app.include_router(assessments.router, tags=["Assessments"])
app.include_router(analytics.router, tags=["Analytics"])


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "healthy", "service": "unitrack-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Service information and the main entry points."""
    return {
        "service": "UniTrack",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "generate_code": "POST /api/attendance/generate-code",
            "submit": "POST /api/attendance/submit",
            "flagged": "GET /api/attendance/flagged/{course_id}",
            "review": "PUT /api/attendance/{id}/review",
            "bulk_review": "POST /api/attendance/bulk-review",
            "risk_assessment": "GET /api/analytics/risk-assessment/{course_id}"
        }
    }
