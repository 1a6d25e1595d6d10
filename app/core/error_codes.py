class ErrorCode:
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_USER = "INVALID_USER"
    INVALID_FORM_TOKEN = "INVALID_FORM_TOKEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    REFRESH_TOKEN_EXPIRED = "REFRESH_TOKEN_EXPIRED"
    DEVICE_MISMATCH = "DEVICE_MISMATCH"

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_DATE = "INVALID_DATE"
    INVALID_DAYS = "INVALID_DAYS"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_PASSWORD = "INVALID_PASSWORD"

    INVITE_NOT_FOUND = "INVITE_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    SEAT_POOL_FULL = "SEAT_POOL_FULL"

    INVITE_IN_USE = "INVITE_IN_USE"
    INVITE_ALREADY_USED = "INVITE_ALREADY_USED"
    ALREADY_ACTIVE = "ALREADY_ACTIVE"
    NOT_ACTIVE = "NOT_ACTIVE"
    EMAIL_ALREADY_REGISTERED = "EMAIL_ALREADY_REGISTERED"
    ACCOUNT_CONFLICT = "ACCOUNT_CONFLICT"

    INVITE_CREATION_FAILED = "INVITE_CREATION_FAILED"
    SERVER_MISCONFIGURED = "SERVER_MISCONFIGURED"
