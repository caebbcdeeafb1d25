"""The GitLab management menu."""

from __future__ import annotations

import typing as typ

from iotctl import console
from iotctl.gitlab import operations as ops
from iotctl.menu import Menu, MenuItem

if typ.TYPE_CHECKING:
    from iotctl.config import GitLabConfig


def build_gitlab_menu(
    cfg: GitLabConfig,
    env: dict[str, str],
    *,
    ask: typ.Callable[[str], str] = console.ask,
    pause: typ.Callable[[], None] = console.pause,
) -> Menu:
    """Return the four-entry GitLab menu bound to ``cfg`` and ``env``."""
    items = [
        MenuItem("1", "Show GitLab logs", lambda: ops.show_logs(cfg, env)),
        MenuItem("2", "Show password and credentials", lambda: ops.show_password(cfg, env)),
        MenuItem("3", "Start port forwarding", lambda: ops.port_forward(cfg, env)),
        MenuItem("4", "Show all", lambda: ops.show_all(cfg, env)),
    ]
    return Menu("GitLab Management Menu", items, prompt=ask, pause=pause)
