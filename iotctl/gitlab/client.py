"""GitLab REST API client used to create projects."""

from __future__ import annotations

import dataclasses
import typing as typ

import httpx
import msgspec

from iotctl.logging import get_logger, log_info

from .errors import GitLabAPIError, GitLabResponseShapeError
from .models import GitLabProject

logger = get_logger(__name__)

_HTTP_ERROR_STATUS_THRESHOLD = 400
_ERROR_KEYS = ("error", "message")


@dataclasses.dataclass(frozen=True, slots=True)
class GitLabAPIConfig:
    """Connection settings for the GitLab REST API."""

    base_url: str
    username: str
    password: str
    timeout_s: float = 30.0
    user_agent: str = "iotctl/0.1"

    @property
    def api_url(self) -> str:
        """Return the ``/api/v4`` root."""
        return f"{self.base_url.rstrip('/')}/api/v4"

    def fallback_repo_url(self, project_name: str) -> str:
        """Return the clone URL GitLab uses for ``project_name`` under this user."""
        return f"{self.base_url.rstrip('/')}/{self.username}/{project_name}.git"


def _error_in_payload(payload: object) -> bool:
    return isinstance(payload, dict) and any(key in payload for key in _ERROR_KEYS)


class GitLabClient:
    """Basic-auth client for the handful of GitLab endpoints iotctl calls."""

    def __init__(
        self,
        config: GitLabAPIConfig,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=config.api_url,
            auth=(config.username, config.password),
            timeout=config.timeout_s,
            headers={
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            },
        )

    def close(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> GitLabClient:
        """Return the client for use in a ``with`` block."""
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Close owned resources on leaving a ``with`` block."""
        self.close()

    def _post_form(self, path: str, fields: dict[str, str]) -> typ.Any:  # noqa: ANN401
        try:
            response = self._client.post(path, data=fields)
        except httpx.TransportError as exc:
            raise GitLabAPIError.unreachable(self._config.api_url, exc) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitLabAPIError.http_error(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise GitLabResponseShapeError.missing("JSON body") from exc

    def create_project(self, name: str, *, visibility: str = "private") -> GitLabProject:
        """Create a project owned by the authenticated user.

        A response without ``http_url_to_repo`` gets the conventional
        ``<base>/<user>/<name>.git`` clone URL filled in.

        Raises:
            GitLabAPIError: On an error status or a body reporting an error.
            GitLabResponseShapeError: If the body is not a project object.

        """
        payload = self._post_form(
            "/projects", {"name": name, "visibility": visibility}
        )
        if _error_in_payload(payload):
            raise GitLabAPIError.error_payload(payload)
        try:
            project = msgspec.convert(payload, type=GitLabProject)
        except msgspec.ValidationError as exc:
            raise GitLabResponseShapeError.missing(str(exc)) from exc

        if not project.http_url_to_repo:
            project = msgspec.structs.replace(
                project, http_url_to_repo=self._config.fallback_repo_url(name)
            )
        log_info(logger, "created GitLab project %s (id %d)", project.name, project.id)
        return project
