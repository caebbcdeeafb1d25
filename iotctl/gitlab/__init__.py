"""GitLab installation, REST client and repository publishing."""

from __future__ import annotations

from .client import GitLabAPIConfig, GitLabClient
from .errors import GitLabAPIError, GitLabResponseShapeError
from .install import has_hosts_entry, setup_gitlab
from .menu import build_gitlab_menu
from .models import GitLabProject
from .operations import create_repo, preflight, root_password
from .repo import push_directory

__all__ = [
    "GitLabAPIConfig",
    "GitLabAPIError",
    "GitLabClient",
    "GitLabProject",
    "GitLabResponseShapeError",
    "build_gitlab_menu",
    "create_repo",
    "has_hosts_entry",
    "preflight",
    "push_directory",
    "root_password",
    "setup_gitlab",
]
