"""
Error taxonomy shared by every feature.

Services raise these; the handler registered in ``app.main`` turns them into
``{"detail": message}`` responses with the matching status code.
"""


class AppError(Exception):
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = 401
    message = "Unauthorized"


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class FeatureDisabled(NotFound):
    """Raised when a feature toggle is off. Renders exactly like ResourceNotFound."""

    def __init__(self, feature_key: str):
        self.feature_key = feature_key
        super().__init__()


class ResourceNotFound(NotFound):
    pass


class PermissionDenied(AppError):
    status_code = 403
    message = "Access denied"


class InvalidRequest(AppError):
    status_code = 400
    message = "Invalid request"


class RequestTimedOut(AppError):
    status_code = 503
    message = "Service temporarily unavailable"


class Conflict(AppError):
    status_code = 409
    message = "Conflict"
