"""
errors.py - Centralized error handling for the Reaction API

This module defines custom exceptions, error handlers, and utilities
for consistent error management across the application. Callers only
ever see two coarse failure classes: client errors (400) and
"failed to process image" (500).
"""

import logging
import json
import time
from typing import Dict, Any, Optional, Tuple
from flask import jsonify, Response, request, g, has_request_context
import requests

logger = logging.getLogger(__name__)

# Base exception classes
class ReactionAPIError(Exception):
    """Base exception for all Reaction API errors"""
    status_code = 500
    error_code = "internal_error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str = None, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None,
                 error_code: Optional[str] = None):
        self.message = message or self.__class__.default_message
        self.status_code = status_code or self.__class__.status_code
        self.details = details or {}
        self.error_code = error_code or self.__class__.error_code
        self.timestamp = time.time()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response"""
        error_dict = {
            "status": "error",
            "error": self.message,
            "error_code": self.error_code,
            "timestamp": self.timestamp,
        }

        # Only client errors expose details; server-side details stay in the logs
        if self.details and self.status_code < 500:
            error_dict["details"] = self.details

        if has_request_context() and g.get("request_id"):
            error_dict["request_id"] = g.request_id

        return error_dict

    def get_response(self) -> Tuple[Response, int]:
        """Convert exception to Flask response"""
        return jsonify(self.to_dict()), self.status_code

# HTTP error classes
class BadRequestError(ReactionAPIError):
    """Exception for invalid request data"""
    status_code = 400
    error_code = "bad_request"
    default_message = "Bad request"

class AuthenticationError(ReactionAPIError):
    """Exception for authentication failures"""
    status_code = 401
    error_code = "authentication_error"
    default_message = "Authentication required"

class NotFoundError(ReactionAPIError):
    """Exception for resource not found"""
    status_code = 404
    error_code = "not_found"
    default_message = "Resource not found"

# Validation errors
class ValidationError(BadRequestError):
    """Exception for data validation failures"""
    error_code = "validation_error"
    default_message = "Validation error"

class MissingRequiredInput(BadRequestError):
    """Base image or overlay reference absent. Raised before any workspace exists."""
    error_code = "missing_required_input"
    default_message = "Missing required files"

# Processing errors
class ProcessingError(ReactionAPIError):
    """Base exception for render failures, from staging through engine execution"""
    status_code = 500
    error_code = "processing_error"
    default_message = "Failed to process image"

class StagingFailed(ProcessingError):
    """Inputs could not be written into the workspace"""
    error_code = "staging_failed"

class EngineExecutionFailed(ProcessingError):
    """The media engine failed or did not produce its declared output"""
    error_code = "engine_execution_failed"

    @classmethod
    def from_engine_output(cls, returncode: Optional[int], stderr: str,
                           cmd: Optional[list] = None) -> 'EngineExecutionFailed':
        """Create from a failed engine run. stderr is kept in details for logging only."""
        details = {"return_code": returncode, "engine_stderr": (stderr or "")[-500:]}
        if cmd:
            details["command"] = " ".join(str(part) for part in cmd)
        return cls(details=details)

class CleanupFailed(ReactionAPIError):
    """Workspace removal failed. Logged only, never returned to the caller."""
    error_code = "cleanup_failed"
    default_message = "Failed to remove workspace"

class NetworkError(BadRequestError):
    """Exception for remote base-image fetch failures"""
    error_code = "network_error"
    default_message = "Could not fetch remote image"

    @classmethod
    def from_request_exception(cls, exception: requests.RequestException) -> 'NetworkError':
        """Create from requests exception"""
        url = getattr(exception.request, 'url', None)
        if isinstance(exception, requests.Timeout):
            return cls(message="Network timeout occurred", details={"url": url},
                       error_code="network_timeout")
        if isinstance(exception, requests.ConnectionError):
            return cls(message="Connection error occurred", details={"url": url},
                       error_code="connection_error")
        return cls(details={"url": url})

# Registration with Flask
def register_error_handlers(app):
    """Register error handlers with Flask app"""

    @app.errorhandler(ReactionAPIError)
    def handle_api_error(error):
        """Handle all Reaction API errors"""
        if error.status_code >= 500:
            log_exception(error, {"error_code": error.error_code, **error.details})
        return error.get_response()

    @app.errorhandler(404)
    def handle_not_found(error):
        """Handle 404 errors"""
        return NotFoundError().get_response()

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        """Handle 405 errors"""
        return BadRequestError(
            message=f"Method {request.method} not allowed for this endpoint",
            status_code=405,
            error_code="method_not_allowed"
        ).get_response()

    @app.errorhandler(413)
    def handle_too_large(error):
        """Handle uploads over MAX_CONTENT_LENGTH"""
        return BadRequestError(
            message="Uploaded file too large",
            status_code=413,
            error_code="payload_too_large"
        ).get_response()

    @app.errorhandler(500)
    def handle_internal_error(error):
        """Handle 500 errors"""
        logger.exception("Unhandled exception occurred")
        return ReactionAPIError().get_response()

# Utility functions
def log_exception(exc: Exception, context: Optional[Dict[str, Any]] = None) -> str:
    """Log an exception with additional context"""
    error_id = f"err_{int(time.time())}_{id(exc):x}"

    log_context = {
        "error_id": error_id,
        "error_type": exc.__class__.__name__,
        "error_message": str(exc)
    }

    if context:
        log_context.update({f"ctx_{key}": value for key, value in context.items()})

    logger.error(
        f"Exception {error_id}: {exc.__class__.__name__}: {str(exc)}"
        + (f" | context={json.dumps(context, default=str)}" if context else ""),
        extra=log_context,
        exc_info=exc if exc.__traceback__ else None
    )

    return error_id

def classify_exception(exc: Exception) -> Tuple[str, bool]:
    """
    Classify an exception as client-side or server-side

    Args:
        exc: The exception to classify

    Returns:
        tuple: (error_code, is_client_error)
    """
    if isinstance(exc, ReactionAPIError):
        return exc.error_code, exc.status_code < 500

    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return "network_error", True

    if isinstance(exc, OSError):
        return "system_error", False

    if isinstance(exc, (TypeError, ValueError)):
        return "data_error", False

    return "unknown_error", False

def capture_exception(exc: Exception, context: Optional[Dict[str, Any]] = None) -> str:
    """
    Capture and log an exception, and send it to Sentry when configured

    Args:
        exc: Exception to capture
        context: Additional context to include

    Returns:
        str: Error ID for reference
    """
    error_id = log_exception(exc, context)

    try:
        import sentry_sdk
    except ImportError:
        return error_id

    if sentry_sdk.get_client().is_active():
        with sentry_sdk.new_scope() as scope:
            for key, value in (context or {}).items():
                scope.set_extra(key, value)
            scope.set_tag("error_id", error_id)
            sentry_sdk.capture_exception(exc)

    return error_id
