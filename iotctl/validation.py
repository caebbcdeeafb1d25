"""Validation helpers and the exception hierarchy for iotctl.

This module provides the foundational utilities shared by every other module
in the package: executable verification, Kubernetes secret decoding, and the
custom exceptions raised when an external tool or cluster resource is not in
the expected state.

Utilities
---------
- ``require_exe``: Verifies CLI tools (k3d, kubectl, helm, docker) are available
- ``b64decode_k8s_secret_field``: Decodes base64-encoded Kubernetes secret values
- ``validate_host_port``: Checks that a host port is a non-privileged port
- ``validate_resource_name``: Checks a name against the DNS-1123 label rules
- ``release_arch``: Maps the host CPU onto release binary naming

Custom Exceptions
-----------------
- ``IotctlError``: Base exception for all package errors
- ``ExecutableNotFoundError``: Raised when a required CLI tool is missing
- ``SecretDecodeError``: Raised when secret decoding fails
- ``SecretNotFoundError``: Raised when a secret or one of its fields is absent
- ``ClusterUnreachableError``: Raised when kubectl cannot reach the cluster
- ``NamespaceNotFoundError``: Raised when a required namespace is absent
- ``PortForwardError``: Raised when a port-forward tunnel cannot be started
- ``UnsupportedPlatformError``: Raised for unknown CPU architectures
- ``ManifestError``: Raised when a manifest file is unreadable or malformed
- ``RepositoryPushError``: Raised when pushing a folder to GitLab fails

Examples
--------
Verify required executables before proceeding:

    for exe in ("docker", "kubectl", "k3d"):
        require_exe(exe)

Decode a password retrieved from Kubernetes:

    password = b64decode_k8s_secret_field("c2VjcmV0")

"""

from __future__ import annotations

import base64
import binascii
import platform
import re
import shutil

_MIN_PORT = 1024
_MAX_PORT = 65535

# DNS-1123 label: lowercase alphanumerics and '-', starting and ending alphanumeric
_DNS_LABEL_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_DNS_LABEL_MAX_LENGTH = 63


class IotctlError(Exception):
    """Base exception for all iotctl errors."""


class ExecutableNotFoundError(IotctlError):
    """Required CLI tool is not installed."""


class SecretDecodeError(IotctlError):
    """Failed to decode a Kubernetes secret field."""


class SecretNotFoundError(IotctlError):
    """Secret, or the requested field within it, does not exist."""


class ClusterUnreachableError(IotctlError):
    """kubectl cannot connect to the Kubernetes API server."""


class NamespaceNotFoundError(IotctlError):
    """Required namespace is not present in the cluster."""


class PortForwardError(IotctlError):
    """A kubectl port-forward tunnel could not be started."""


class UnsupportedPlatformError(IotctlError):
    """The host operating system or architecture is not supported."""


class ManifestError(IotctlError):
    """A manifest file could not be read or failed validation."""


class RepositoryPushError(IotctlError):
    """Pushing a local directory to a Git remote failed."""


def require_exe(name: str) -> None:
    """Verify a CLI tool is available in PATH.

    Parameters
    ----------
    name : str
        Name of the executable to check for.

    Raises
    ------
    ExecutableNotFoundError
        If the executable is not found in PATH.

    """
    if shutil.which(name) is None:
        msg = f"Required executable '{name}' not found in PATH"
        raise ExecutableNotFoundError(msg)


def b64decode_k8s_secret_field(b64_text: str) -> str:
    """Decode a base64-encoded Kubernetes secret value.

    Parameters
    ----------
    b64_text : str
        Base64-encoded string from a Kubernetes secret.

    Returns
    -------
    str
        The decoded UTF-8 string.

    Raises
    ------
    SecretDecodeError
        If the input is not valid base64 or cannot be decoded as UTF-8 text.

    """
    try:
        return base64.b64decode(b64_text, validate=True).decode("utf-8")
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        msg = f"Failed to decode secret field: {e}"
        raise SecretDecodeError(msg) from e


def validate_host_port(port: int) -> None:
    """Raise ValueError unless ``port`` is a non-privileged TCP port."""
    if not _MIN_PORT <= port <= _MAX_PORT:
        msg = f"port must be between {_MIN_PORT} and {_MAX_PORT}, got {port}"
        raise ValueError(msg)


def validate_resource_name(name: str, *, kind: str = "resource") -> str:
    """Return ``name`` when it is a valid DNS-1123 label.

    Parameters
    ----------
    name : str
        Candidate Kubernetes or k3d resource name.
    kind : str, default "resource"
        Human-readable kind used in the error message.

    Raises
    ------
    ValueError
        If the name is empty, too long, or contains invalid characters.

    """
    if not name:
        msg = f"{kind} name cannot be empty"
        raise ValueError(msg)
    if len(name) > _DNS_LABEL_MAX_LENGTH:
        msg = f"{kind} name '{name}' exceeds {_DNS_LABEL_MAX_LENGTH} characters"
        raise ValueError(msg)
    if not _DNS_LABEL_PATTERN.match(name):
        msg = (
            f"{kind} name '{name}' is invalid; use lowercase letters, digits "
            "and '-', starting and ending with an alphanumeric character"
        )
        raise ValueError(msg)
    return name


_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def release_arch(machine: str | None = None) -> str:
    """Map ``platform.machine()`` onto the Go release naming (amd64/arm64).

    Raises
    ------
    UnsupportedPlatformError
        For architectures without published release binaries.

    """
    raw = machine if machine is not None else platform.machine()
    arch = _ARCH_ALIASES.get(raw.lower())
    if arch is None:
        msg = f"Unsupported architecture: {raw}"
        raise UnsupportedPlatformError(msg)
    return arch
