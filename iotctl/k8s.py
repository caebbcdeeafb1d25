"""Kubernetes operations through kubectl.

Every function takes an ``env`` mapping whose KUBECONFIG selects the target
cluster (see :func:`iotctl.k3d.kubeconfig_env`). Functions named ``*_exists``
and :func:`cluster_reachable` are probes: they never raise on kubectl errors.
Functions that display resources let kubectl write straight to the terminal.

Examples
--------
Make sure the namespaces exist, then wait for ArgoCD:

    env = kubeconfig_env("iot-cluster")
    for ns in ("argocd", "dev"):
        ensure_namespace(ns, env)
    wait_for_deployment_available("argocd-server", "argocd", env)

Read a generated password:

    password = read_secret_field(
        "argocd-initial-admin-secret", "password", "argocd", env
    )

"""

from __future__ import annotations

import json
import re
import subprocess
import typing as typ

from iotctl.logging import get_logger, log_command, log_warning
from iotctl.validation import SecretNotFoundError, b64decode_k8s_secret_field

if typ.TYPE_CHECKING:
    from pathlib import Path

logger = get_logger(__name__)

# Kubernetes secret keys must contain only alphanumeric, dot, underscore, or hyphen
_SECRET_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

# Timeout bounds for kubectl wait operations (in seconds).
_MIN_WAIT_TIMEOUT = 1
_MAX_WAIT_TIMEOUT = 3600

_KUBECTL_TIMEOUT = 30
_APPLY_TIMEOUT = 120


def _kubectl(
    args: list[str],
    env: dict[str, str],
    *,
    capture: bool = False,
    check: bool = True,
    timeout: float | None = _KUBECTL_TIMEOUT,
    stdin: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run kubectl with the given arguments."""
    cmd = ["kubectl", *args]
    log_command(logger, cmd)
    # S603: kubectl via PATH is standard; arguments come from config or callers
    return subprocess.run(  # noqa: S603
        cmd,
        capture_output=capture,
        text=True,
        check=check,
        env=env,
        timeout=timeout,
        input=stdin,
    )


def _probe(args: list[str], env: dict[str, str]) -> bool:
    """Return True when kubectl exits zero; output is discarded."""
    try:
        result = _kubectl(args, env, capture=True, check=False)
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "kubectl %s failed: %s", " ".join(args), e)
        return False
    return result.returncode == 0


def _validate_timeout(timeout: int) -> None:
    if not _MIN_WAIT_TIMEOUT <= timeout <= _MAX_WAIT_TIMEOUT:
        msg = (
            f"timeout must be between {_MIN_WAIT_TIMEOUT} and "
            f"{_MAX_WAIT_TIMEOUT} seconds, got {timeout}"
        )
        raise ValueError(msg)


def cluster_reachable(env: dict[str, str]) -> bool:
    """Return True when ``kubectl cluster-info`` succeeds."""
    return _probe(["cluster-info"], env)


def namespace_exists(namespace: str, env: dict[str, str]) -> bool:
    """Check if a Kubernetes namespace exists."""
    return _probe(["get", "namespace", namespace], env)


def create_namespace(namespace: str, env: dict[str, str]) -> None:
    """Create a Kubernetes namespace idempotently.

    Uses the dry-run + apply pattern so an existing namespace is left as is.

    Raises
    ------
    RuntimeError
        If kubectl fails to render or apply the namespace.

    """
    try:
        result = _kubectl(
            ["create", "namespace", namespace, "--dry-run=client", "-o", "yaml"],
            env,
            capture=True,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        msg = f"Failed to create namespace '{namespace}': {e}"
        raise RuntimeError(msg) from e
    apply_manifest(result.stdout, env)


def ensure_namespace(namespace: str, env: dict[str, str]) -> None:
    """Ensure a Kubernetes namespace exists, creating if necessary."""
    if not namespace_exists(namespace, env):
        create_namespace(namespace, env)


def apply_manifest(manifest: str, env: dict[str, str]) -> None:
    """Apply a YAML or JSON manifest passed on stdin."""
    try:
        _kubectl(["apply", "-f", "-"], env, stdin=manifest, timeout=_APPLY_TIMEOUT)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        msg = f"Failed to apply manifest: {e}"
        raise RuntimeError(msg) from e


def apply_file(path: Path, env: dict[str, str], *, namespace: str | None = None) -> None:
    """Apply a manifest file from disk."""
    args = ["apply", "-f", str(path)]
    if namespace:
        args[1:1] = ["-n", namespace]
    try:
        _kubectl(args, env, timeout=_APPLY_TIMEOUT)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        msg = f"Failed to apply {path}: {e}"
        raise RuntimeError(msg) from e


def apply_url(url: str, namespace: str, env: dict[str, str]) -> None:
    """Apply a published manifest URL into ``namespace``.

    Raises
    ------
    RuntimeError
        If kubectl cannot fetch or apply the manifest.

    """
    try:
        _kubectl(["apply", "-n", namespace, "-f", url], env, timeout=300)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        msg = f"Failed to apply manifest {url}: {e}"
        raise RuntimeError(msg) from e


def wait_for_nodes_ready(env: dict[str, str], timeout: int = 300) -> None:
    """Block until every node reports the Ready condition."""
    _validate_timeout(timeout)
    try:
        _kubectl(
            ["wait", "--for=condition=ready", "nodes", "--all", f"--timeout={timeout}s"],
            env,
            timeout=timeout + 30,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        msg = f"Nodes did not become ready within {timeout}s: {e}"
        raise RuntimeError(msg) from e


def wait_for_pods_ready(
    selector: str, namespace: str, env: dict[str, str], timeout: int = 300
) -> None:
    """Wait for pods matching a label selector to be ready.

    Raises
    ------
    ValueError
        If timeout is outside the valid range (1-3600 seconds).
    RuntimeError
        If the pods are not ready before the timeout.

    """
    _validate_timeout(timeout)
    # Add buffer to subprocess timeout beyond kubectl's --timeout
    try:
        _kubectl(
            [
                "wait",
                "--for=condition=ready",
                "pod",
                f"--selector={selector}",
                f"--namespace={namespace}",
                f"--timeout={timeout}s",
            ],
            env,
            timeout=timeout + 30,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        msg = f"Pods matching '{selector}' in '{namespace}' not ready: {e}"
        raise RuntimeError(msg) from e


def wait_for_deployment_available(
    name: str, namespace: str, env: dict[str, str], timeout: int = 300
) -> bool:
    """Wait for a deployment's Available condition.

    Returns
    -------
    bool
        True if the deployment became available, False if kubectl gave up.

    """
    _validate_timeout(timeout)
    try:
        _kubectl(
            [
                "wait",
                "--for=condition=available",
                f"--timeout={timeout}s",
                f"deployment/{name}",
                "-n",
                namespace,
            ],
            env,
            capture=True,
            timeout=timeout + 30,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "deployment/%s not available: %s", name, e)
        return False
    return True


def resource_exists(
    kind: str, name: str, namespace: str, env: dict[str, str]
) -> bool:
    """Return True when ``kubectl get <kind> <name>`` succeeds."""
    return _probe(["get", kind, name, "-n", namespace], env)


def secret_exists(name: str, namespace: str, env: dict[str, str]) -> bool:
    """Check whether a secret exists."""
    return resource_exists("secret", name, namespace, env)


def service_exists(name: str, namespace: str, env: dict[str, str]) -> bool:
    """Check whether a service exists."""
    return resource_exists("svc", name, namespace, env)


def read_secret_field(
    secret_name: str, field: str, namespace: str, env: dict[str, str]
) -> str:
    """Read and decode a field from a Kubernetes secret.

    Dotted field names (e.g. ``ca.crt``) are supported via quoted jsonpath.

    Raises
    ------
    ValueError
        If ``field`` is empty or contains characters outside the Kubernetes
        secret key alphabet.
    SecretNotFoundError
        If the secret cannot be read or the field is empty.
    SecretDecodeError
        If the value is not valid base64 UTF-8.

    """
    if not field:
        msg = "field cannot be empty"
        raise ValueError(msg)
    if not _SECRET_KEY_PATTERN.match(field):
        msg = (
            f"field '{field}' contains invalid characters; "
            "only alphanumeric, dot, underscore, and hyphen are allowed"
        )
        raise ValueError(msg)

    jsonpath = f"jsonpath={{.data['{field}']}}"
    try:
        result = _kubectl(
            ["get", "secret", secret_name, f"--namespace={namespace}", "-o", jsonpath],
            env,
            capture=True,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "reading secret %s failed: %s", secret_name, e)
        output = ""
    else:
        output = result.stdout.strip() if result.returncode == 0 else ""
    if not output:
        msg = (
            f"Secret '{secret_name}' field '{field}' is empty or missing "
            f"in namespace '{namespace}'"
        )
        raise SecretNotFoundError(msg)

    return b64decode_k8s_secret_field(output)


def list_resource_names(kind: str, namespace: str, env: dict[str, str]) -> list[str]:
    """Return the names of every ``kind`` object in ``namespace``.

    Returns an empty list when the kind is unknown (e.g. a missing CRD).
    """
    try:
        result = _kubectl(
            ["get", kind, "-n", namespace, "-o", "jsonpath={.items[*].metadata.name}"],
            env,
            capture=True,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "listing %s failed: %s", kind, e)
        return []
    if result.returncode != 0:
        return []
    return result.stdout.split()


def show_resources(  # noqa: PLR0913
    kind: str,
    namespace: str,
    env: dict[str, str],
    *,
    name: str | None = None,
    selector: str | None = None,
    wide: bool = False,
    output: str | None = None,
) -> bool:
    """Print ``kubectl get`` output for a resource kind.

    Returns False when kubectl fails instead of raising, so status screens
    can keep going.
    """
    args = ["get", kind]
    if name:
        args.append(name)
    args.extend(["-n", namespace])
    if selector:
        args.extend(["-l", selector])
    if wide:
        args.extend(["-o", "wide"])
    elif output:
        args.extend(["-o", output])
    try:
        result = _kubectl(args, env, check=False)
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "kubectl get %s failed: %s", kind, e)
        return False
    return result.returncode == 0


def show_nodes(env: dict[str, str]) -> bool:
    """Print cluster nodes."""
    try:
        result = _kubectl(["get", "nodes"], env, check=False)
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "kubectl get nodes failed: %s", e)
        return False
    return result.returncode == 0


def pod_logs(
    selector: str,
    namespace: str,
    env: dict[str, str],
    *,
    tail: int = 100,
    prefix: bool = False,
) -> bool:
    """Print logs for pods matching ``selector``.

    Returns
    -------
    bool
        True when kubectl succeeded.

    """
    args = ["logs", "-n", namespace, "-l", selector, f"--tail={tail}"]
    if prefix:
        args.append("--prefix")
    try:
        result = _kubectl(args, env, check=False, timeout=60)
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "kubectl logs -l %s failed: %s", selector, e)
        return False
    return result.returncode == 0


def recent_events(namespace: str, env: dict[str, str], limit: int = 10) -> list[str]:
    """Return the last ``limit`` event lines sorted by ``.lastTimestamp``."""
    try:
        result = _kubectl(
            ["get", "events", "-n", namespace, "--sort-by=.lastTimestamp"],
            env,
            capture=True,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "kubectl get events failed: %s", e)
        return []
    if result.returncode != 0:
        return []
    lines = result.stdout.splitlines()
    return lines[-limit:]


def patch_resource(  # noqa: PLR0913
    kind: str,
    name: str,
    namespace: str,
    patch: dict[str, typ.Any],
    env: dict[str, str],
    *,
    patch_type: str = "merge",
) -> bool:
    """Apply a patch to a resource; return False when kubectl rejects it."""
    try:
        result = _kubectl(
            [
                "patch",
                kind,
                name,
                "-n",
                namespace,
                "--type",
                patch_type,
                "-p",
                json.dumps(patch, separators=(",", ":")),
            ],
            env,
            capture=True,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "patch %s/%s failed: %s", kind, name, e)
        return False
    if result.returncode != 0:
        log_warning(logger, "patch %s/%s failed: %s", kind, name, result.stderr)
        return False
    return True


def annotate_resource(
    kind: str, name: str, namespace: str, annotation: str, env: dict[str, str]
) -> bool:
    """Set an annotation (``key=value``), overwriting any previous value."""
    try:
        result = _kubectl(
            ["annotate", kind, name, "-n", namespace, annotation, "--overwrite"],
            env,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "annotate %s/%s failed: %s", kind, name, e)
        return False
    return result.returncode == 0


def _config_names(args: list[str], env: dict[str, str]) -> list[str]:
    try:
        result = _kubectl(["config", *args], env, capture=True, check=False)
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "kubectl config %s failed: %s", args[0], e)
        return []
    if result.returncode != 0:
        return []
    return result.stdout.split()


def config_contexts(env: dict[str, str]) -> list[str]:
    """Return every context name in the active kubeconfig."""
    return _config_names(["get-contexts", "-o", "name"], env)


def config_clusters(env: dict[str, str]) -> list[str]:
    """Return every cluster entry in the active kubeconfig."""
    names = _config_names(["get-clusters"], env)
    # First token is the NAME column header
    return names[1:] if names[:1] == ["NAME"] else names


def config_users(env: dict[str, str]) -> list[str]:
    """Return every user entry in the active kubeconfig."""
    return _config_names(["view", "-o", "jsonpath={.users[*].name}"], env)


def delete_config_entry(kind: str, name: str, env: dict[str, str]) -> bool:
    """Delete a kubeconfig ``context``, ``cluster`` or ``user`` entry."""
    if kind not in {"context", "cluster", "user"}:
        msg = f"unknown kubeconfig entry kind '{kind}'"
        raise ValueError(msg)
    try:
        result = _kubectl(
            ["config", f"delete-{kind}", name], env, capture=True, check=False
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log_warning(logger, "kubectl config delete-%s failed: %s", kind, e)
        return False
    return result.returncode == 0
