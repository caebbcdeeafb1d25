"""Tear down every k3d cluster and the Docker and kubeconfig state it leaves.

The reset runs as a fixed sequence of phases. A phase that fails is reported
as a warning and the next phase still runs, so a half-broken environment can
always be cleaned up. The returned :class:`ResetReport` counts what was
removed in each category.
"""

from __future__ import annotations

import dataclasses
import subprocess
import time
import typing as typ

from iotctl import console
from iotctl.k3d import cluster_names, delete_k3d_cluster, kubeconfig_env
from iotctl.k8s import config_clusters, config_contexts, config_users, delete_config_entry
from iotctl.logging import get_logger, log_command, log_exception, log_info
from iotctl.port_forward import forward_processes, stop_port_forwards

if typ.TYPE_CHECKING:
    from iotctl.config import ResetConfig

logger = get_logger(__name__)

PLANNED_ACTIONS: tuple[str, ...] = (
    "Kill all kubectl processes",
    "Delete ALL k3d clusters",
    "Remove all k3d containers",
    "Remove all k3d networks",
    "Remove all k3d volumes",
    "Remove all k3d images",
    "Clean kubeconfig",
    "Remove temporary files",
    "Prune Docker system",
)


@dataclasses.dataclass(slots=True)
class ResetReport:
    """Counts of what a reset removed, plus the phases that failed."""

    processes_stopped: int = 0
    clusters: int = 0
    containers: int = 0
    networks: int = 0
    volumes: int = 0
    images: int = 0
    kubeconfig_entries: int = 0
    temp_files: int = 0
    pruned: bool = False
    failed_phases: list[str] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return True when every phase completed."""
        return not self.failed_phases


def _docker_lines(args: list[str]) -> list[str]:
    """Run a docker listing command and return its non-empty output lines."""
    cmd = ["docker", *args]
    log_command(logger, cmd)
    # S603/S607: docker via PATH; fixed arguments
    result = subprocess.run(  # noqa: S603
        cmd, capture_output=True, text=True, check=False
    )
    if result.returncode != 0:
        msg = f"{' '.join(cmd)} failed: {result.stderr.strip()}"
        raise RuntimeError(msg)
    return [line for line in result.stdout.splitlines() if line.strip()]


def _docker(args: list[str]) -> bool:
    cmd = ["docker", *args]
    log_command(logger, cmd)
    result = subprocess.run(  # noqa: S603
        cmd, capture_output=True, text=True, check=False
    )
    return result.returncode == 0


def matching_ids(lines: typ.Iterable[str], needles: typ.Iterable[str], column: int) -> list[str]:
    """Return column ``column`` of every line mentioning one of ``needles``.

    Examples
    --------
    >>> matching_ids(["abc123 rancher/k3s:v1 k3d-iot-server-0"], ["k3d"], 0)
    ['abc123']

    """
    wanted = tuple(needles)
    ids: list[str] = []
    for line in lines:
        if not any(needle in line for needle in wanted):
            continue
        fields = line.split()
        if len(fields) > column and fields[column] not in ids:
            ids.append(fields[column])
    return ids


def stop_processes(report: ResetReport, _cfg: ResetConfig) -> None:
    """Kill kubectl port-forward and proxy processes."""
    for pattern in ("kubectl port-forward", "kubectl proxy"):
        if stop_port_forwards(pattern):
            report.processes_stopped += 1
            console.success(f"Killed {pattern} processes")
        else:
            console.warning(f"No {pattern} processes running")


def delete_clusters(report: ResetReport, cfg: ResetConfig) -> None:
    """Delete every k3d cluster on this machine."""
    names = cluster_names()
    if not names:
        console.warning("No k3d clusters found")
    for name in names:
        console.info(f"Deleting cluster: {name}")
        try:
            delete_k3d_cluster(name)
        except RuntimeError as exc:
            console.warning(f"Failed to delete {name}: {exc}")
            continue
        report.clusters += 1
    time.sleep(cfg.settle_seconds)


def remove_containers(report: ResetReport, cfg: ResetConfig) -> None:
    """Stop and remove containers whose listing mentions k3d."""
    ids = matching_ids(_docker_lines(["ps", "-a"]), [cfg.match], 0)
    if not ids:
        console.warning("No k3d containers to remove")
        return
    _docker(["stop", *ids])
    if _docker(["rm", "-f", *ids]):
        report.containers += len(ids)


def remove_networks(report: ResetReport, cfg: ResetConfig) -> None:
    """Remove k3d Docker networks."""
    ids = matching_ids(_docker_lines(["network", "ls"]), [cfg.match], 0)
    if not ids:
        console.warning("No k3d networks to remove")
        return
    if _docker(["network", "rm", *ids]):
        report.networks += len(ids)


def remove_volumes(report: ResetReport, cfg: ResetConfig) -> None:
    """Remove k3d Docker volumes."""
    names = matching_ids(_docker_lines(["volume", "ls"]), [cfg.match], 1)
    if not names:
        console.warning("No k3d volumes to remove")
        return
    if _docker(["volume", "rm", *names]):
        report.volumes += len(names)


def remove_images(report: ResetReport, cfg: ResetConfig) -> None:
    """Remove k3d and k3s images."""
    ids = matching_ids(_docker_lines(["images"]), cfg.image_matches, 2)
    if not ids:
        console.warning("No k3d or k3s images to remove")
        return
    if _docker(["rmi", "-f", *ids]):
        report.images += len(ids)


def clean_kubeconfig(report: ResetReport, cfg: ResetConfig) -> None:
    """Delete kubeconfig contexts, clusters and users naming k3d."""
    env = kubeconfig_env()
    listings = (
        ("context", config_contexts(env)),
        ("cluster", config_clusters(env)),
        ("user", config_users(env)),
    )
    found = False
    for kind, names in listings:
        for name in names:
            if cfg.match not in name:
                continue
            found = True
            if delete_config_entry(kind, name, env):
                report.kubeconfig_entries += 1
                console.info(f"Deleted {kind}: {name}")
            else:
                console.warning(f"Failed to delete {kind} {name}")
    if not found:
        console.warning("No k3d entries found in kubeconfig")


def remove_temp_files(report: ResetReport, cfg: ResetConfig) -> None:
    """Remove files earlier runs left in /tmp."""
    for path in cfg.temp_files:
        if path.exists():
            path.unlink()
            report.temp_files += 1
    console.success("Temporary files cleaned")


def prune_docker(report: ResetReport, _cfg: ResetConfig) -> None:
    """Run ``docker system prune -af --volumes``."""
    if not _docker(["system", "prune", "-af", "--volumes"]):
        msg = "Docker prune failed"
        raise RuntimeError(msg)
    report.pruned = True


Phase = typ.Callable[[ResetReport, "ResetConfig"], None]

PHASES: tuple[tuple[str, Phase], ...] = (
    ("Stopping Processes", stop_processes),
    ("Deleting k3d Clusters", delete_clusters),
    ("Cleaning Docker Containers", remove_containers),
    ("Cleaning Docker Networks", remove_networks),
    ("Cleaning Docker Volumes", remove_volumes),
    ("Cleaning Docker Images", remove_images),
    ("Cleaning Kubeconfig", clean_kubeconfig),
    ("Cleaning Temporary Files", remove_temp_files),
    ("Pruning Docker System", prune_docker),
)


def _remaining(title: str, lines: list[str]) -> None:
    console.info(f"{title}:")
    if lines:
        for line in lines:
            console.plain(f"  {line}")
    else:
        console.success("None found")


def _safe_lines(args: list[str], needles: typ.Iterable[str]) -> list[str]:
    wanted = tuple(needles)
    try:
        lines = _docker_lines(args)
    except (OSError, RuntimeError):
        return []
    return [line for line in lines if any(needle in line for needle in wanted)]


def verify_cleanup(cfg: ResetConfig) -> None:
    """Print whatever k3d-related state is still present."""
    console.heading("Verifying cleanup")
    _remaining("k3d clusters", cluster_names())
    _remaining("Docker containers (k3d)", _safe_lines(["ps", "-a"], [cfg.match]))
    _remaining("Docker images (k3d/k3s)", _safe_lines(["images"], cfg.image_matches))
    _remaining("Docker networks (k3d)", _safe_lines(["network", "ls"], [cfg.match]))
    _remaining("Docker volumes (k3d)", _safe_lines(["volume", "ls"], [cfg.match]))
    contexts = [c for c in config_contexts(kubeconfig_env()) if cfg.match in c]
    _remaining("kubectl contexts (k3d)", contexts)
    _remaining("Port-forward processes", forward_processes())


def print_summary(report: ResetReport) -> None:
    """Print the closing banner and removal counts."""
    style = "green" if report.ok else "yellow"
    title = (
        "Complete Reset Finished Successfully!"
        if report.ok
        else "Reset Finished With Warnings"
    )
    console.console.print()
    console.console.print(f"[{style}]{'═' * 60}[/{style}]")
    console.console.print(f"[{style}]  {title}[/{style}]")
    console.console.print(f"[{style}]{'═' * 60}[/{style}]")
    console.field("Processes stopped", str(report.processes_stopped))
    console.field("Clusters deleted", str(report.clusters))
    console.field("Containers removed", str(report.containers))
    console.field("Networks removed", str(report.networks))
    console.field("Volumes removed", str(report.volumes))
    console.field("Images removed", str(report.images))
    console.field("Kubeconfig entries removed", str(report.kubeconfig_entries))
    console.field("Temporary files removed", str(report.temp_files))
    for phase in report.failed_phases:
        console.warning(f"Phase failed: {phase}")
    console.info("You can now run 'iotctl up' to start fresh")


def reset_environment(
    cfg: ResetConfig,
    *,
    assume_yes: bool = False,
    confirm: typ.Callable[[str], bool] | None = None,
) -> ResetReport | None:
    """Run every reset phase after confirmation.

    Returns:
        The report, or None when the operator declined.

    """
    console.section("Complete System Reset")
    console.warning("This will:")
    for index, action in enumerate(PLANNED_ACTIONS, start=1):
        console.plain(f"  {index}. {action}")

    ask = confirm or console.confirm
    if not assume_yes and not ask(
        "Are you ABSOLUTELY SURE you want to proceed? (yes/no)"
    ):
        console.error("Reset cancelled")
        return None

    report = ResetReport()
    for index, (title, phase) in enumerate(PHASES, start=1):
        console.heading(f"Phase {index}: {title}")
        try:
            phase(report, cfg)
        except (OSError, RuntimeError, subprocess.SubprocessError) as exc:
            log_exception(logger, f"reset phase '{title}' failed", exc)
            console.warning(f"{title} failed: {exc}")
            report.failed_phases.append(title)

    verify_cleanup(cfg)
    print_summary(report)
    log_info(logger, "reset finished: %s", report)
    return report
