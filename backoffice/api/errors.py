"""
Backend error types.

Every non-2xx response from the HAL backend is turned into an ApiError
(or one of its subclasses) carrying the best human-readable message the
body offers.
"""

import json
from typing import Any


class ApiError(Exception):
    """A failed backend request."""

    def __init__(
        self,
        status: int,
        message: str,
        details: Any = None,
        error: str | None = None,
        timestamp: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.message = message
        self.details = details
        self.error = error
        self.timestamp = timestamp

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, message={self.message!r})"

    @property
    def field_errors(self) -> dict[str, str]:
        """Backend ``details`` as a field → message map (empty if not a dict)."""
        if isinstance(self.details, dict):
            return {str(k): str(v) for k, v in self.details.items()}
        return {}


class UnauthorizedError(ApiError):
    """401 from the backend: the session has to be re-established."""


class NotFoundError(ApiError):
    """404 from the backend."""


class ValidationFailed(Exception):
    """Local form validation failed. ``errors`` maps field → message."""

    def __init__(self, errors: dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


def message_from_body(body: Any) -> str:
    """Pick the most useful message out of a decoded error body.

    Order: ``message``, a non-string ``error``, ``errors[]``, ``violations[]``,
    then the values of a ``details`` map.
    """
    if not isinstance(body, dict):
        return ""

    if body.get("message"):
        return str(body["message"])

    error = body.get("error")
    if error and not isinstance(error, str):
        return json.dumps(error)

    errors = body.get("errors")
    if isinstance(errors, list) and errors:
        return ", ".join(
            str(e.get("message", e)) if isinstance(e, dict) else str(e)
            for e in errors
        )

    violations = body.get("violations")
    if isinstance(violations, list) and violations:
        return ", ".join(
            f"{v.get('field', '')}: {v.get('message', '')}" for v in violations
        )

    details = body.get("details")
    if isinstance(details, dict) and details:
        return ", ".join(str(v) for v in details.values())

    return ""


def error_from_response(status: int, text: str) -> ApiError:
    """Build the right ApiError subclass from a response status and body text."""
    body: Any = None
    message = ""
    if text:
        try:
            body = json.loads(text)
        except ValueError:
            message = text
        else:
            message = message_from_body(body)

    title = None
    details = None
    timestamp = None
    if isinstance(body, dict):
        if isinstance(body.get("error"), str):
            title = body["error"]
        details = body.get("details")
        timestamp = body.get("timestamp")

    # Bodies like {"error": "Stripe account not found"} carry only a title
    if not message:
        message = title or f"Request failed with status {status}"

    if status == 401:
        cls = UnauthorizedError
    elif status == 404:
        cls = NotFoundError
    else:
        cls = ApiError
    return cls(status, message, details=details, error=title, timestamp=timestamp)
