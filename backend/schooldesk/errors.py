"""Domain errors raised by services and rendered by the API layer."""


class SchoolDeskError(RuntimeError):
    """Base error for access and notification flows."""

    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidCredentials(SchoolDeskError):
    status_code = 401
    default_message = "Invalid email or password"


class InvalidToken(SchoolDeskError):
    status_code = 401
    default_message = "Invalid authentication token"


class ExpiredToken(InvalidToken):
    default_message = "Authentication token expired"


class Forbidden(SchoolDeskError):
    status_code = 403
    default_message = "Not authorized"


class NotFound(SchoolDeskError):
    status_code = 404
    default_message = "Resource not found"


class TemplateNotFound(NotFound):
    default_message = "Email template not found"


class ValidationError(SchoolDeskError):
    status_code = 422
    default_message = "Invalid input"


class ConflictError(SchoolDeskError):
    status_code = 409
    default_message = "Resource already exists"


class InvalidOrExpiredToken(SchoolDeskError):
    status_code = 400
    default_message = "Invalid or expired token"


class UpstreamSendError(SchoolDeskError):
    """Raised by mail senders; bulk flows record it instead of propagating."""

    status_code = 502
    default_message = "Email delivery failed"


class StorageError(SchoolDeskError):
    status_code = 500
    default_message = "Storage operation failed"
