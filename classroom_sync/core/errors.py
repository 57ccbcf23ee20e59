"""
Centralized Error Handling for Classroom Sync.

Provides:
- The error taxonomy raised by the API client and the fetchers
- User-friendly error messages
- Graceful degradation helpers
"""

from typing import Dict, Optional

from loguru import logger


class ConfigurationError(Exception):
    """Raised when a required configuration is missing."""
    pass


class ClassroomError(Exception):
    """Base class for every error raised while talking to the course platform."""

    message_key = "generic"
    reconnect_required = False
    retryable = False

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message or self.__class__.__name__)
        self.status_code = status_code


class Unauthenticated(ClassroomError):
    """No credential is stored for the user."""
    message_key = "reconnect"
    reconnect_required = True


class AuthExpired(ClassroomError):
    """The remote API rejected the token (HTTP 401)."""
    message_key = "reconnect"
    reconnect_required = True


class Forbidden(ClassroomError):
    """The token lacks permission for the resource (HTTP 403)."""
    message_key = "forbidden"


class TransientError(ClassroomError):
    """Rate limiting or a connectivity problem; worth retrying."""
    message_key = "retry_later"
    retryable = True


class InvalidResponse(ClassroomError):
    """The payload did not have the expected shape."""
    message_key = "generic"


class ValidationError(ClassroomError):
    """A domain record is malformed (e.g. missing its id)."""
    message_key = "generic"


class ApiError(ClassroomError):
    """Any other HTTP error returned by the remote API."""
    message_key = "generic"


# User-friendly error messages with setup instructions
ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "reconnect": {
        "short": "Google Classroom connection expired",
        "detailed": """Your Google Classroom connection is missing or has expired.

To reconnect:
1. Open the Classroom page of the portal
2. Click "Connect Google Classroom"
3. Approve the requested permissions

Then sync again.""",
    },
    "forbidden": {
        "short": "Insufficient permissions",
        "detailed": """Google Classroom denied access to this resource.

Please check:
1. You are enrolled in the course
2. The portal was granted the Classroom and Drive scopes
3. Your school administrator allows third-party access""",
    },
    "retry_later": {
        "short": "Google Classroom is busy",
        "detailed": """Google Classroom could not be reached after several attempts.

Please check:
1. Your internet connection
2. The service might be rate limiting requests

Try again in a few moments.""",
    },
    "generic": {
        "short": "Something went wrong",
        "detailed": """Google Classroom returned data we could not understand.

Showing whatever data could be loaded. Try syncing again later.""",
    },
    "client_id": {
        "short": "Google OAuth not configured",
        "detailed": """Google OAuth is not configured.

To enable Google Classroom integration:
1. Create an OAuth client in the Google Cloud console
2. Add to your .env file:
   GOOGLE_CLIENT_ID=your_client_id
   GOOGLE_CLIENT_SECRET=your_client_secret

Then restart.""",
    },
}


def get_error_message(error_key: str, detailed: bool = False) -> str:
    """
    Get user-friendly error message.

    Args:
        error_key: Key for the error type
        detailed: Whether to return detailed message with setup instructions

    Returns:
        User-friendly error message
    """
    if error_key not in ERROR_MESSAGES:
        return f"An error occurred: {error_key}"

    msg = ERROR_MESSAGES[error_key]
    return msg["detailed"] if detailed else msg["short"]


def user_message(error: Exception, detailed: bool = False) -> str:
    """Map an exception to the text shown to the user."""
    if isinstance(error, ClassroomError):
        return get_error_message(error.message_key, detailed=detailed)
    logger.error(f"Unexpected error: {error}")
    return get_error_message("generic", detailed=detailed)


def handle_missing_config(
    service_name: str,
    config_key: str,
    env_var: str,
) -> str:
    """
    Handle missing configuration gracefully.

    Args:
        service_name: Name of the service (e.g., "Google Classroom")
        config_key: Key in ERROR_MESSAGES
        env_var: Environment variable name

    Returns:
        User-friendly error message
    """
    logger.warning(f"{service_name} not configured: {env_var} not set")
    return get_error_message(config_key, detailed=True)
