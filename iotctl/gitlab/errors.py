"""GitLab REST errors."""

from __future__ import annotations

from iotctl.validation import IotctlError


class GitLabAPIError(IotctlError):
    """Raised when GitLab returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int, body: str = "") -> GitLabAPIError:
        """Return an error for non-2xx HTTP responses."""
        detail = f": {body}" if body else ""
        return cls(f"GitLab API HTTP {status_code}{detail}", status_code=status_code)

    @classmethod
    def error_payload(cls, payload: object) -> GitLabAPIError:
        """Return an error for bodies carrying ``error`` or ``message`` keys."""
        return cls(f"Error creating repository: {payload}")

    @classmethod
    def unreachable(cls, url: str, exc: Exception) -> GitLabAPIError:
        """Return an error when the API cannot be reached at all."""
        return cls(f"GitLab API at {url} is unreachable: {exc}")


class GitLabResponseShapeError(IotctlError):
    """Raised when GitLab responses are missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> GitLabResponseShapeError:
        """Return an error for a missing response field."""
        return cls(f"GitLab response missing expected field: {field}")
