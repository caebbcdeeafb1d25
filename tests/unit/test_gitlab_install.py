"""Unit tests for the GitLab installer."""

from __future__ import annotations

import base64
import typing as typ

import pytest

from iotctl.config import GitLabConfig
from iotctl.gitlab.install import (
    ensure_helm,
    ensure_hosts_entry,
    has_hosts_entry,
    release_spec,
    setup_gitlab,
)
from iotctl.validation import IotctlError

if typ.TYPE_CHECKING:
    from pathlib import Path

    from conftest import ConsoleOutput, FakeCommands, FakePopen

HOST = "gitlab.k3d.gitlab.com"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        (f"127.0.0.1 {HOST}\n", True),
        (f"127.0.0.1\tlocalhost {HOST}\n", True),
        (f"127.0.0.1 localhost\n127.0.0.1 {HOST} # gitlab\n", True),
        (f"# 127.0.0.1 {HOST}\n", False),
        (f"10.0.0.5 {HOST}\n", False),
        (f"127.0.0.1 {HOST}.other\n", False),
        ("", False),
    ],
)
def test_has_hosts_entry(text: str, expected: bool) -> None:  # noqa: FBT001
    """Only active loopback lines naming the exact host count."""
    assert has_hosts_entry(text, HOST) is expected


class TestEnsureHostsEntry:
    """Tests for ensure_hosts_entry."""

    def test_appends_with_sudo_tee(
        self, commands: FakeCommands, tmp_path: Path
    ) -> None:
        """A missing mapping is appended through sudo tee -a."""
        hosts = tmp_path / "hosts"
        hosts.write_text("127.0.0.1 localhost\n", encoding="utf-8")

        assert ensure_hosts_entry(HOST, hosts) is True

        assert commands.calls == [("sudo", "tee", "-a", str(hosts))]
        assert commands.inputs == [f"127.0.0.1 {HOST}\n"]

    def test_existing_entry_is_left_alone(
        self, commands: FakeCommands, tmp_path: Path
    ) -> None:
        """Nothing runs when the mapping already exists."""
        hosts = tmp_path / "hosts"
        hosts.write_text(f"127.0.0.1 {HOST}\n", encoding="utf-8")

        assert ensure_hosts_entry(HOST, hosts) is False
        assert commands.calls == []

    def test_missing_file_counts_as_empty(
        self, commands: FakeCommands, tmp_path: Path
    ) -> None:
        """A hosts file that does not exist yet is created by tee."""
        assert ensure_hosts_entry(HOST, tmp_path / "hosts") is True
        assert len(commands.calls) == 1

    def test_sudo_failure(self, commands: FakeCommands, tmp_path: Path) -> None:
        """A refused sudo becomes an IotctlError."""
        commands.on("sudo", "tee", returncode=1)
        with pytest.raises(IotctlError, match=f"Failed to add {HOST}"):
            ensure_hosts_entry(HOST, tmp_path / "hosts")


class TestEnsureHelm:
    """Tests for ensure_helm."""

    def test_present(self, commands: FakeCommands, all_tools: None) -> None:
        """An installed helm is used as is."""
        ensure_helm()
        assert commands.calls == []

    def test_installs_with_snap(
        self,
        commands: FakeCommands,
        console_output: ConsoleOutput,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A missing helm is installed from the classic snap."""
        monkeypatch.setattr("shutil.which", lambda _name: None)
        ensure_helm()
        assert commands.calls == [("sudo", "snap", "install", "helm", "--classic")]


def test_release_spec_uses_minimal_values() -> None:
    """The release uses the minikube values file and disables TLS."""
    spec = release_spec(GitLabConfig())
    assert spec.chart_name == "gitlab/gitlab"
    assert spec.values[0].endswith("values-minikube-minimum.yaml")
    assert ("global.hosts.https", "false") in spec.set_values
    assert spec.timeout == 600


def test_setup_gitlab_end_to_end(
    commands: FakeCommands,
    popen: FakePopen,
    sleeps: list[float],
    all_tools: None,
    console_output: ConsoleOutput,
    test_env: dict[str, str],
    tmp_path: Path,
) -> None:
    """Install, wait, read the password and open the tunnel."""
    hosts = tmp_path / "hosts"
    hosts.write_text("127.0.0.1 localhost\n", encoding="utf-8")
    cfg = GitLabConfig(hosts_file=hosts, portforward_log=tmp_path / "gitlab-pf.log")
    commands.on(
        "kubectl",
        "get",
        "secret",
        "gitlab-gitlab-initial-root-password",
        stdout=base64.b64encode(b"r00t-pw").decode(),
    )

    assert setup_gitlab(cfg, test_env) == 0

    assert commands.called("sudo", "tee", "-a", str(hosts))
    assert commands.called("helm", "upgrade", "--install", "gitlab", "gitlab/gitlab")
    assert commands.called(
        "kubectl",
        "wait",
        "--for=condition=ready",
        "pod",
        "--selector=app=webservice",
        "--namespace=gitlab",
        "--timeout=1200s",
    )
    assert popen.launched == [
        (
            "kubectl",
            "port-forward",
            "svc/gitlab-webservice-default",
            "-n",
            "gitlab",
            "8181:8181",
        )
    ]
    out = console_output.stdout
    assert "http://gitlab.k3d.gitlab.com:8181" in out
    assert "r00t-pw" in out
