"""
Error hierarchy for the service.

Every error carries an internal `message` (logged) and a public body
(`to_response()`) that never reveals which credential check failed or any
storage detail.
"""


class TrameError(Exception):
    """Base exception for all service errors."""

    code = "INTERNAL_ERROR"
    http_status = 500
    public_message = "An unexpected error occurred."

    def __init__(self, message: str = ""):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    def to_response(self) -> dict:
        """Body returned to the client."""
        return {"detail": self.public_message, "code": self.code}

    def headers(self):
        return None


# ─── Credential errors ──────────────────────────────────────────

class AuthError(TrameError):
    """Signup or login rejected."""


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    http_status = 401
    public_message = "Invalid credentials."


class DuplicateUsername(AuthError):
    code = "DUPLICATE_USERNAME"
    http_status = 409
    public_message = "Username already taken."


class WeakCredential(AuthError):
    code = "WEAK_CREDENTIAL"
    http_status = 400
    public_message = "Username or password does not meet the minimum requirements."

    def __init__(self, message: str = ""):
        super().__init__(message)
        # validation rules are not secret, so the specific rule is returned
        if message:
            self.public_message = message


# ─── Session errors ─────────────────────────────────────────────

class SessionError(TrameError):
    """Token rejected. Subclasses differ only in logs, never in the response."""

    code = "UNAUTHORIZED"
    http_status = 401
    public_message = "Could not validate credentials."

    def headers(self):
        return {"WWW-Authenticate": "Bearer"}


class SessionNotFound(SessionError):
    pass


class SessionExpired(SessionError):
    pass


# ─── Storage errors ─────────────────────────────────────────────

class StorageError(TrameError):
    """Persistence failed. Detail stays in the logs."""

    code = "STORAGE_ERROR"
    http_status = 500
    public_message = "A storage error occurred."


class IOFailure(StorageError):
    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(f"Storage {operation} failed: {message}")
        self.operation = operation


class NotFound(StorageError):
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} '{resource_id}' not found")
        self.resource_type = resource_type
        self.resource_id = resource_id
