"""ArgoCD installation and day-two management."""

from __future__ import annotations

from iotctl.argocd.install import setup_argocd
from iotctl.argocd.manifest import ApplicationManifest, load_application
from iotctl.argocd.menu import build_argocd_menu
from iotctl.argocd.operations import (
    admin_password,
    install_cli,
    port_forward,
    preflight,
    show_applications,
    show_logs,
    show_password,
    show_status,
    sync_application,
)

__all__ = [
    "ApplicationManifest",
    "admin_password",
    "build_argocd_menu",
    "install_cli",
    "load_application",
    "port_forward",
    "preflight",
    "setup_argocd",
    "show_applications",
    "show_logs",
    "show_password",
    "show_status",
    "sync_application",
]
