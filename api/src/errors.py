"""
Domain error taxonomy and the error normalizer.

Every repository and gateway failure is funnelled through ``normalize``
exactly once, at the boundary where it is first caught. ``normalize``
never returns: it classifies the failure and raises a ``PixelyzeError``.

Credential related failures are always reduced to one generic message so
internal detail never reaches a caller.
"""

import json
from typing import Any, NoReturn

import structlog

logger = structlog.get_logger(__name__)

AUTH_KEYWORDS = ("auth", "authentication", "credentials", "unauthorized")
AUTH_FAILED_MESSAGE = "Authentication failed. Please check your credentials and try again."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"


class PixelyzeError(Exception):
    """Base class for every error raised by the data-access layer."""

    kind = "Error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.normalized = False

    def __str__(self) -> str:
        return self.message


class ConfigurationError(PixelyzeError):
    """Required configuration (connection string, API keys) is missing."""

    kind = "Configuration Error"
    status_code = 500


class AuthenticationError(PixelyzeError):
    """Identity or credential failure. Messages are intentionally generic."""

    kind = "Authentication Error"
    status_code = 401


class AuthorizationError(PixelyzeError):
    """The caller does not own the resource."""

    kind = "Authorization Error"
    status_code = 403


class NotFoundError(PixelyzeError):
    """A referenced entity does not exist."""

    kind = "Not Found Error"
    status_code = 404


class ValidationError(PixelyzeError):
    """Caller supplied input is malformed."""

    kind = "Validation Error"
    status_code = 422


class EnvironmentContextError(PixelyzeError):
    """Operation invoked outside the execution context it requires."""

    kind = "Environment Error"
    status_code = 500


class UnknownError(PixelyzeError):
    """Catch-all for failures that match no other kind."""

    kind = "Unknown Error"
    status_code = 500


def _mentions_auth(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in AUTH_KEYWORDS)


def _raise(error: PixelyzeError, cause: Any = None) -> NoReturn:
    error.normalized = True
    if isinstance(cause, BaseException):
        raise error from cause
    raise error


def normalize(error: Any) -> NoReturn:
    """
    Classify an arbitrary failure and raise a consistent domain error.

    Classification order:
    1. A domain error is re-raised as the same kind with its kind prefix.
    2. An exception mentioning an authentication keyword becomes an
       ``AuthenticationError`` with a fixed message.
    3. Any other exception becomes ``UnknownError("Error: <message>")``.
    4. A string gets the keyword check of step 2, else step 3's wrapping.
    5. Anything else is serialized to JSON for the message, falling back
       to a fixed message when it cannot be serialized.

    An error that already went through ``normalize`` is re-raised as is.

    Args:
        error: The caught exception or raised value

    Raises:
        PixelyzeError: Always
    """
    if isinstance(error, PixelyzeError):
        if error.normalized:
            raise error
        logger.error("domain_error", kind=error.kind, error=error.message)
        _raise(type(error)(f"{error.kind}: {error.message}"), error)

    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
        if _mentions_auth(message):
            logger.error("authentication_error_detected", error=message)
            _raise(AuthenticationError(AUTH_FAILED_MESSAGE), error)

        logger.error(
            "unexpected_error",
            error_type=type(error).__name__,
            error=message,
            exc_info=error,
        )
        _raise(UnknownError(f"Error: {message}"), error)

    if isinstance(error, str):
        if _mentions_auth(error):
            logger.error("authentication_error_string_detected", error=error)
            _raise(AuthenticationError(AUTH_FAILED_MESSAGE))

        logger.error("error_string", error=error)
        _raise(UnknownError(f"Error: {error}"))

    logger.error("unknown_error_type", value=repr(error))
    try:
        serialized = json.dumps(error)
    except (TypeError, ValueError):
        _raise(UnknownError(UNKNOWN_ERROR_MESSAGE))
    _raise(UnknownError(f"Unknown error: {serialized}"))
