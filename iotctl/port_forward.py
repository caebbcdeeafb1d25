"""Background ``kubectl port-forward`` tunnels.

A tunnel is identified by a pkill pattern rather than by a PID file: starting
a tunnel first kills anything matching the pattern, so re-running the command
always leaves exactly one forwarder for a service. The forwarder is detached
into its own session so it outlives the command that started it, and its
output goes to a log file that is shown when it dies during start-up.
"""

from __future__ import annotations

import dataclasses
import subprocess
import time
import typing as typ

from iotctl.k8s import service_exists
from iotctl.logging import get_logger, log_command, log_info
from iotctl.validation import PortForwardError, validate_host_port

if typ.TYPE_CHECKING:
    from pathlib import Path

logger = get_logger(__name__)

_KILL_SETTLE_SECONDS = 1.0


@dataclasses.dataclass(frozen=True, slots=True)
class PortForwardSpec:
    """What to forward and how to recognise an existing forwarder.

    Attributes:
        service: Service name (without the ``svc/`` prefix).
        namespace: Namespace containing the service.
        local_port: Host port to listen on.
        remote_port: Service port to forward to.
        log_path: File receiving the forwarder's stdout and stderr.
        match: ``pkill -f`` pattern matching forwarders for this service.
        url: URL printed once the tunnel is up.

    """

    service: str
    namespace: str
    local_port: int
    remote_port: int
    log_path: Path
    match: str
    url: str

    def __post_init__(self) -> None:
        """Validate the local port."""
        validate_host_port(self.local_port)

    def command(self) -> list[str]:
        """Return the kubectl command line for this tunnel."""
        return [
            "kubectl",
            "port-forward",
            f"svc/{self.service}",
            "-n",
            self.namespace,
            f"{self.local_port}:{self.remote_port}",
        ]


@dataclasses.dataclass(frozen=True, slots=True)
class PortForwardHandle:
    """A running forwarder."""

    pid: int
    url: str
    log_path: Path
    stop_hint: str


def stop_port_forwards(pattern: str) -> bool:
    """Kill processes whose command line matches ``pattern``.

    Returns:
        True if at least one process was signalled.

    """
    cmd = ["pkill", "-f", pattern]
    log_command(logger, cmd)
    try:
        # S603/S607: pkill via PATH; the pattern is built from configuration
        result = subprocess.run(cmd, capture_output=True, check=False)  # noqa: S603
    except OSError:
        return False
    return result.returncode == 0


def forward_processes(pattern: str = "kubectl port-forward") -> list[str]:
    """Return the command lines of running processes matching ``pattern``."""
    try:
        # S603/S607: pgrep via PATH; fixed pattern
        result = subprocess.run(  # noqa: S603
            ["pgrep", "-af", pattern],  # noqa: S607
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return []
    if result.returncode != 0:
        return []
    return [line for line in result.stdout.splitlines() if line.strip()]


def _read_log(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def start_port_forward(
    spec: PortForwardSpec,
    env: dict[str, str],
    *,
    settle: float = 2.0,
    on_progress: typ.Callable[[str], None] | None = None,
) -> PortForwardHandle:
    """Replace any running forwarder for ``spec`` with a fresh one.

    Args:
        spec: Tunnel specification.
        env: Environment dict with KUBECONFIG set.
        settle: Seconds to wait before checking the forwarder is still alive.
        on_progress: Optional callback receiving human-readable progress.

    Returns:
        Handle describing the running forwarder.

    Raises:
        PortForwardError: If the service does not exist or the forwarder
            exits during start-up. The message carries the forwarder's log.

    """
    report = on_progress or (lambda _message: None)

    report("Checking for existing port-forward processes...")
    if stop_port_forwards(spec.match):
        report("Killed existing port-forward process")
        time.sleep(_KILL_SETTLE_SECONDS)
    else:
        report("No existing port-forward found")

    if not service_exists(spec.service, spec.namespace, env):
        msg = f"Service {spec.service} not found in namespace {spec.namespace}"
        raise PortForwardError(msg)

    report("Starting port forwarding...")
    cmd = spec.command()
    log_command(logger, cmd)
    spec.log_path.parent.mkdir(parents=True, exist_ok=True)
    with spec.log_path.open("wb") as log_file:
        # S603: kubectl via PATH; arguments from PortForwardSpec
        process = subprocess.Popen(  # noqa: S603
            cmd,
            stdout=log_file,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            env=env,
            start_new_session=True,
        )

    time.sleep(settle)
    if process.poll() is not None:
        details = _read_log(spec.log_path).strip()
        msg = f"Port forwarding failed to start (logs at {spec.log_path})"
        if details:
            msg = f"{msg}\n{details}"
        raise PortForwardError(msg)

    log_info(logger, "port-forward %s running as pid %d", spec.service, process.pid)
    return PortForwardHandle(
        pid=process.pid,
        url=spec.url,
        log_path=spec.log_path,
        stop_hint=f"pkill -f '{spec.match}'",
    )
