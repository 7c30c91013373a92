import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

log = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception class for application-specific errors."""

    def __init__(self, message=None, details=None, status_code=None):
        super().__init__(message)
        self.message = message or "An unexpected error occurred"
        self.details = details
        self.status_code = status_code or 500


class AuthException(AppError):
    """Exception for authentication errors."""

    def __init__(self, message=None, details=None):
        super().__init__(
            message=message or "Authentication error",
            details=details,
            status_code=401
        )


class ValidationError(AppError):
    """Exception for data validation errors."""

    def __init__(self, message=None, details=None):
        super().__init__(
            message=message or "Validation error",
            details=details,
            status_code=400
        )


class ResourceNotFoundError(AppError):
    """Exception for requests to non-existent resources."""

    def __init__(self, message=None, details=None):
        super().__init__(
            message=message or "Resource not found",
            details=details,
            status_code=404
        )


class RideStateError(AppError):
    """Raised when a recording intent does not fit the current ride state."""

    def __init__(self, message=None, details=None):
        super().__init__(
            message=message or "Invalid ride state",
            details=details,
            status_code=409
        )


class InvalidStatusTransition(AppError):
    """Raised when a record would leave the pending/synced/failed state machine."""

    def __init__(self, message=None, details=None):
        super().__init__(
            message=message or "Invalid sync status transition",
            details=details,
            status_code=500
        )


class CheckpointError(AppError):
    """Raised when the crash-recovery checkpoint cannot be written or read."""

    def __init__(self, message=None, details=None):
        super().__init__(
            message=message or "Checkpoint persistence error",
            details=details,
            status_code=500
        )


def _error_response(message, status_code, details=None):
    payload = {'success': False, 'error': message}
    if details is not None:
        payload['details'] = details
    return jsonify(payload), status_code


def register_error_handlers(app):
    """Register application error handlers."""

    @app.errorhandler(AppError)
    def handle_app_error(e):
        """Handle application specific errors."""
        if e.status_code >= 500:
            log.error(f"{type(e).__name__}: {e.message}")
        return _error_response(e.message, e.status_code, e.details)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """Handle Werkzeug HTTP exceptions."""
        return _error_response(e.description, e.code)

    @app.errorhandler(500)
    def internal_server_error(e):
        """Handle 500 errors."""
        return _error_response("Internal server error", 500)
