"""Behavioural coverage for the local cluster lifecycle."""

from __future__ import annotations

import base64
import subprocess
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from iotctl.cli import app
from iotctl.config import ARGOCD_INSTALL_MANIFEST

if typ.TYPE_CHECKING:
    from pathlib import Path

    from conftest import ConsoleOutput

ADMIN_PASSWORD = "Adm1n-Pa55"

APPLICATION_YAML = """\
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: {name}
  namespace: argocd
spec:
  project: default
  destination:
    server: https://kubernetes.default.svc
    namespace: dev
"""


class LifecycleContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    cluster_exists: bool
    app_file: Path
    captured_calls: list[tuple[str, ...]]
    exit_code: int


class SubprocessMock:
    """Mock for subprocess.run that tracks calls and returns appropriate results."""

    def __init__(self, context: LifecycleContext) -> None:
        """Initialize the mock with the scenario context."""
        self.context = context
        self._handlers: dict[str, typ.Callable[[list[str]], tuple[str, int]]] = {
            "k3d": self._handle_k3d,
            "kubectl": self._handle_kubectl,
        }

    def _handle_k3d(self, args: list[str]) -> tuple[str, int]:
        if args[1:3] == ["cluster", "list"]:
            if self.context.get("cluster_exists", False):
                return '[{"name": "iot-cluster"}]', 0
            return "[]", 0
        if args[1:3] == ["kubeconfig", "write"]:
            return "/mock/kubeconfig-iot-cluster.yaml", 0
        return "", 0  # create, delete

    def _handle_kubectl(self, args: list[str]) -> tuple[str, int]:
        if args[1:3] == ["get", "secret"] and "-o" in args:
            return base64.b64encode(ADMIN_PASSWORD.encode()).decode(), 0
        return "", 0  # wait, apply, get, create

    def __call__(
        self,
        args: list[str],
        **kwargs: object,
    ) -> subprocess.CompletedProcess[str]:
        """Handle a subprocess.run call."""
        check = kwargs.get("check", False)
        self.context["captured_calls"].append(tuple(args))

        handler = self._handlers.get(args[0], lambda _: ("", 0))
        stdout, returncode = handler(args)

        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, args, stdout, "")

        return subprocess.CompletedProcess(
            args=args, returncode=returncode, stdout=stdout, stderr=""
        )


# Scenario wrappers
@scenario("../cluster_lifecycle.feature", "Create the cluster from scratch")
def test_create_cluster_from_scratch() -> None:
    """Wrap the pytest-bdd scenario for creating the cluster."""


@scenario("../cluster_lifecycle.feature", "Up replaces an existing cluster")
def test_up_replaces_existing_cluster() -> None:
    """Wrap the pytest-bdd scenario for re-running up."""


@scenario("../cluster_lifecycle.feature", "Show the ArgoCD admin password")
def test_show_argocd_password() -> None:
    """Wrap the pytest-bdd scenario for the password menu entry."""


@scenario("../cluster_lifecycle.feature", "Delete the cluster")
def test_delete_cluster() -> None:
    """Wrap the pytest-bdd scenario for down."""


@pytest.fixture
def lifecycle_context() -> LifecycleContext:
    """Provide shared context for the BDD steps."""
    return {"cluster_exists": False, "captured_calls": [], "exit_code": -1}


# Background steps
@given("the CLI tools docker, k3d and kubectl are available")
def given_tools_available(monkeypatch: pytest.MonkeyPatch) -> None:
    """Report every executable as installed."""
    monkeypatch.setattr("shutil.which", lambda name: f"/usr/bin/{name}")


@given(parsers.parse("an ArgoCD Application manifest named {name}"))
def given_application_manifest(
    lifecycle_context: LifecycleContext,
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    name: str,
) -> None:
    """Write an Application manifest and point IOT_ARGOCD_APP_FILE at it."""
    app_file = tmp_path / "argocd-application.yaml"
    app_file.write_text(APPLICATION_YAML.format(name=name), encoding="utf-8")
    monkeypatch.setenv("IOT_ARGOCD_APP_FILE", str(app_file))
    lifecycle_context["app_file"] = app_file


# Given steps
@given(parsers.parse("no k3d cluster named {cluster_name} exists"))
def given_no_cluster_exists(
    lifecycle_context: LifecycleContext, cluster_name: str
) -> None:
    """Configure context to indicate no cluster exists."""
    lifecycle_context["cluster_exists"] = False


@given(parsers.parse("a k3d cluster named {cluster_name} exists"))
def given_cluster_exists(
    lifecycle_context: LifecycleContext, cluster_name: str
) -> None:
    """Configure context to indicate the cluster already exists."""
    lifecycle_context["cluster_exists"] = True


# When steps
@when(parsers.parse("I run iotctl {command}"))
def when_run_iotctl(
    lifecycle_context: LifecycleContext,
    monkeypatch: pytest.MonkeyPatch,
    console_output: ConsoleOutput,
    command: str,
) -> None:
    """Execute an iotctl command with mocked subprocess and sleep."""
    monkeypatch.setattr("subprocess.run", SubprocessMock(lifecycle_context))
    monkeypatch.setattr("time.sleep", lambda _seconds: None)
    try:
        exit_code = app(command.split())
        lifecycle_context["exit_code"] = exit_code if exit_code is not None else 0
    except SystemExit as e:
        lifecycle_context["exit_code"] = e.code if isinstance(e.code, int) else 1


# Then steps - assertions on captured calls
def _calls(ctx: LifecycleContext, prefix: tuple[str, ...]) -> list[tuple[str, ...]]:
    return [c for c in ctx["captured_calls"] if c[: len(prefix)] == prefix]


@then(parsers.parse("a k3d cluster named {cluster_name} is created"))
def then_cluster_created(
    lifecycle_context: LifecycleContext, cluster_name: str
) -> None:
    """Verify k3d cluster create was called with the name."""
    assert _calls(lifecycle_context, ("k3d", "cluster", "create", cluster_name)), (
        "Expected k3d cluster create with cluster name"
    )


@then("the namespaces argocd and dev are ensured")
def then_namespaces_ensured(lifecycle_context: LifecycleContext) -> None:
    """Verify both namespaces were checked."""
    for namespace in ("argocd", "dev"):
        assert _calls(lifecycle_context, ("kubectl", "get", "namespace", namespace)), (
            f"Expected namespace check for {namespace}"
        )


@then("the ArgoCD install manifest is applied")
def then_argocd_installed(lifecycle_context: LifecycleContext) -> None:
    """Verify the upstream install manifest was applied."""
    assert _calls(
        lifecycle_context,
        ("kubectl", "apply", "-n", "argocd", "-f", ARGOCD_INSTALL_MANIFEST),
    ), "Expected kubectl apply of the ArgoCD install manifest"


@then(parsers.parse("the Application {name} is applied"))
def then_application_applied(lifecycle_context: LifecycleContext, name: str) -> None:
    """Verify the Application manifest file was applied."""
    app_file = str(lifecycle_context["app_file"])
    assert _calls(lifecycle_context, ("kubectl", "apply", "-n", "argocd", "-f", app_file)), (
        f"Expected kubectl apply of the {name} manifest"
    )


@then("the existing cluster is deleted before it is created again")
def then_cluster_recreated(lifecycle_context: LifecycleContext) -> None:
    """Verify delete precedes create."""
    calls = lifecycle_context["captured_calls"]
    delete = calls.index(("k3d", "cluster", "delete", "iot-cluster"))
    create = next(
        i for i, c in enumerate(calls) if c[:3] == ("k3d", "cluster", "create")
    )
    assert delete < create, "Expected delete before create"


@then("the admin password is printed")
def then_password_printed(console_output: ConsoleOutput) -> None:
    """Verify the decoded password appears on stdout."""
    assert ADMIN_PASSWORD in console_output.stdout, "Expected password in stdout"


@then("the k3d cluster is deleted")
def then_cluster_deleted(lifecycle_context: LifecycleContext) -> None:
    """Verify k3d cluster was deleted."""
    assert _calls(lifecycle_context, ("k3d", "cluster", "delete")), (
        "Expected k3d delete"
    )


@then(parsers.parse("the exit code is {code:d}"))
def then_exit_code(lifecycle_context: LifecycleContext, code: int) -> None:
    """Verify the exit code matches expected."""
    assert lifecycle_context["exit_code"] == code, (
        f"Expected exit code {code}, got {lifecycle_context['exit_code']}"
    )
