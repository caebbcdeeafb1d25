"""The ArgoCD management menu."""

from __future__ import annotations

import typing as typ

from iotctl import console
from iotctl.argocd import operations as ops
from iotctl.menu import Menu, MenuItem

if typ.TYPE_CHECKING:
    from iotctl.config import ArgoCDConfig


def _logs(cfg: ArgoCDConfig, env: dict[str, str], ask: typ.Callable[[str], str]) -> int:
    component = ops.choose_component(ask)
    if component is None:
        console.error("Invalid choice")
        return 1
    return ops.show_logs(cfg, env, component)


def build_argocd_menu(
    cfg: ArgoCDConfig,
    env: dict[str, str],
    *,
    ask: typ.Callable[[str], str] = console.ask,
    pause: typ.Callable[[], None] = console.pause,
) -> Menu:
    """Return the eight-entry ArgoCD menu bound to ``cfg`` and ``env``."""
    items = [
        MenuItem("1", "Show ArgoCD logs", lambda: _logs(cfg, env, ask)),
        MenuItem("2", "Show admin password", lambda: ops.show_password(cfg, env)),
        MenuItem("3", "Start port forwarding", lambda: ops.port_forward(cfg, env)),
        MenuItem(
            "4",
            "List applications",
            lambda: ops.show_applications(cfg, env, ask=ask),
        ),
        MenuItem("5", "Show cluster status", lambda: ops.show_status(cfg, env)),
        MenuItem("6", "Sync application", lambda: ops.prompt_and_sync(cfg, env, ask)),
        MenuItem("7", "Install ArgoCD CLI", lambda: ops.install_cli(cfg)),
        MenuItem(
            "8",
            "Show all (password, port-forward, status)",
            lambda: ops.show_all(cfg, env),
        ),
    ]
    return Menu("ArgoCD Management", items, prompt=ask, pause=pause)
