"""Exception classes for the recipe client.

Only genuine failures are exceptions. Superseded and stale responses are
reported as SyncResult statuses (see recipe_client.models.models) and never
raised to callers.
"""

from typing import Optional


class RecipeClientError(Exception):
    """Base exception for the recipe client."""

    # Text suitable for a toast; subclasses override with something friendlier than str(exc)
    user_message: str = "Something went wrong"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message:
            self.user_message = user_message


class RequestFailedError(RecipeClientError):
    """Raised when the resource server could not be reached or answered with an error status."""

    def __init__(self, message: str, status: Optional[int] = None, user_message: Optional[str] = None):
        self.status = status
        super().__init__(message, user_message=user_message or message)


class NoteValidationError(RecipeClientError):
    """Raised when note content is rejected locally, before any request is made."""

    def __init__(self, message: str = "Note cannot be empty"):
        super().__init__(message, user_message=message)


class AuthenticationRequiredError(RecipeClientError):
    """Raised when an operation needs a signed-in user and there is none."""

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Authentication required to {action}", user_message=f"Please login to {action}.")


def describe_http_error(status: int, payload: object = None) -> str:
    """Build the user-facing message for an HTTP error status.

    Args:
        status: HTTP status code (>= 400).
        payload: Decoded error body, if any. A `message` or `error` field is preferred
            for 4xx statuses that have no dedicated wording.

    Returns:
        Human readable message.
    """
    if status >= 500:
        return "Server error. Please try again later."
    if status == 401:
        return "You are not authorized. Please login again."
    if status == 403:
        return "You do not have permission to perform this action."

    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

    return f"Request failed with status {status}"
