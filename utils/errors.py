"""Error taxonomy shared by the gate, supervisor, bridge and dispatcher."""


class NautilusError(Exception):
    """Base error carrying a machine-readable code and an HTTP status.

    The message is safe to show to the client; it never includes internal
    detail such as file contents or tracebacks.
    """

    code = "OPERATION_FAILED"
    status = 500

    def __init__(self, message, code=None, status=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status:
            self.status = status

    def __str__(self):
        return f"{self.code}: {self.message}"


class AuthRejected(NautilusError):
    """Origin/referer mismatch or a bad, missing or reused token."""

    code = "AUTH_REJECTED"
    status = 403


class PathRejected(NautilusError):
    """Traversal attempt, path outside the payload root, wrong filename or missing file."""

    code = "PATH_REJECTED"
    status = 400


class ValidationRejected(NautilusError):
    """Unsafe or oversized prompt response."""

    code = "INVALID_RESPONSE"
    status = 400


class JobStartFailed(NautilusError):
    code = "JOB_START_FAILED"
    status = 500


class CatalogRefreshFailed(NautilusError):
    code = "CATALOG_REFRESH_FAILED"
    status = 500
