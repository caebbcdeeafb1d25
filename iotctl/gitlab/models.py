"""Typed GitLab API payloads."""

from __future__ import annotations

import msgspec


class GitLabProject(msgspec.Struct, kw_only=True):
    """The fields of a created project that iotctl uses."""

    id: int
    name: str
    http_url_to_repo: str | None = None
    web_url: str | None = None
