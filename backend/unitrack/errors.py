"""
Domain errors raised by the services and rendered by the exception handler
in ``unitrack.main`` as ``{"detail": ..., "error": ...}``.
"""


class RecordsError(Exception):
    status_code = 400
    error_code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(RecordsError):
    status_code = 404
    error_code = "not_found"


class InvalidOrExpiredCodeError(RecordsError):
    status_code = 400
    error_code = "invalid_or_expired_code"

    def __init__(self, message: str = "Invalid or expired attendance code"):
        super().__init__(message)


class AlreadySubmittedError(RecordsError):
    status_code = 409
    error_code = "already_submitted"

    def __init__(self, message: str = "Attendance already submitted for this session"):
        super().__init__(message)


class AuthenticationError(RecordsError):
    status_code = 401
    error_code = "unauthenticated"


class UnauthorizedError(RecordsError):
    status_code = 403
    error_code = "not_authorized"

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class ValidationError(RecordsError):
    status_code = 400
    error_code = "validation_error"
