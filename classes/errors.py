class ProgressLensError(Exception):
    """Base error. ``kind`` is the stable identifier clients may switch on."""

    kind = "Unknown"
    status_code = 500
    message = "Internal server error"

    def __init__(self, detail=None):
        super().__init__(detail or self.message)
        self.detail = detail

    def to_dict(self, include_detail=False):
        body = {"error": self.message, "code": self.kind}
        if include_detail and self.detail:
            body["details"] = self.detail
        return body


class InvalidCredentials(ProgressLensError):
    kind = "InvalidCredentials"
    status_code = 401
    message = "Invalid credentials"


class Unauthenticated(ProgressLensError):
    kind = "Unauthenticated"
    status_code = 401
    message = "Authentication required"


class Expired(ProgressLensError):
    kind = "Expired"
    status_code = 401
    message = "Session expired"


class Revoked(ProgressLensError):
    kind = "Revoked"
    status_code = 401
    message = "Invalid or expired session"


class Forbidden(ProgressLensError):
    kind = "Forbidden"
    status_code = 403
    message = "Access denied"


class NotFound(ProgressLensError):
    kind = "NotFound"
    status_code = 404
    message = "Not found"


class InvalidReference(ProgressLensError):
    kind = "InvalidReference"
    status_code = 400
    message = "One or more video IDs are invalid"


class InvalidRequest(ProgressLensError):
    kind = "InvalidRequest"
    status_code = 400
    message = "Validation failed"


class Conflict(ProgressLensError):
    kind = "Conflict"
    status_code = 409
    message = "Resource already exists"


class RateLimited(ProgressLensError):
    kind = "RateLimited"
    status_code = 429
    message = "Too many progress update requests. Please slow down."


class Unavailable(ProgressLensError):
    kind = "Unavailable"
    status_code = 503
    message = "Service temporarily unavailable"


class Unknown(ProgressLensError):
    pass


AUTH_ERRORS = (InvalidCredentials, Unauthenticated, Expired, Revoked)
