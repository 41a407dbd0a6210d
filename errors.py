"""Error types shared by the API handlers and the client library."""


class ApiError(Exception):
    """Raised by domain code; rendered by the app as {"error": message}."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class ServiceError(Exception):
    """Client-side failure talking to the REST API."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code
