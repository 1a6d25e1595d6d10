from app.core.error_codes import ErrorCode


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = str(code)
        self.message = message
        super().__init__(message)


class Unauthorized(ApiError):
    """Missing capability, bad credentials or an invalid form token."""

    def __init__(self, message: str = "Not authorized", code: str = ErrorCode.UNAUTHORIZED, status_code: int = 403):
        super().__init__(status_code, code, message)


class ValidationFailed(ApiError):
    def __init__(self, message: str, code: str = ErrorCode.VALIDATION_ERROR):
        super().__init__(400, code, message)


class NotFound(ApiError):
    def __init__(self, message: str, code: str):
        super().__init__(404, code, message)


class CapacityExceeded(ApiError):
    def __init__(self, message: str = "The student pool is full", code: str = ErrorCode.SEAT_POOL_FULL):
        super().__init__(409, code, message)


class ConflictError(ApiError):
    def __init__(self, message: str, code: str):
        super().__init__(409, code, message)


class CreationFailed(ApiError):
    def __init__(self, message: str = "No invite codes could be created"):
        super().__init__(500, ErrorCode.INVITE_CREATION_FAILED, message)


class RecoverableError(Exception):
    """A side effect (mail, enrollment) failed after the state change was committed.

    Never propagated to the caller of an operation; logged where it is raised.
    """
