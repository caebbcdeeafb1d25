"""Shared fixtures for iotctl tests.

External tools are never executed: ``subprocess.run`` and ``subprocess.Popen``
are replaced by recording fakes, ``time.sleep`` is a no-op, and the rich
consoles write into in-memory buffers that tests can inspect.
"""

from __future__ import annotations

import dataclasses
import io
import os
import subprocess
import typing as typ

import pytest
from rich.console import Console

if typ.TYPE_CHECKING:
    from pathlib import Path


@dataclasses.dataclass(frozen=True, slots=True)
class CommandResult:
    """Canned outcome for a faked command."""

    stdout: str = ""
    returncode: int = 0
    stderr: str = ""


class FakeCommands:
    """A ``subprocess.run`` replacement answering by command prefix.

    Rules registered later win over earlier ones, so tests can set a broad
    default and then override a single command.
    """

    def __init__(self) -> None:
        """Start with no rules; unknown commands succeed with empty output."""
        self.calls: list[tuple[str, ...]] = []
        self.inputs: list[str] = []
        self.kwargs: list[dict[str, object]] = []
        self._rules: list[tuple[tuple[str, ...], CommandResult]] = []

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        returncode: int = 0,
        stderr: str = "",
    ) -> FakeCommands:
        """Answer commands starting with ``prefix`` with the given result."""
        self._rules.insert(0, (prefix, CommandResult(stdout, returncode, stderr)))
        return self

    def _match(self, args: tuple[str, ...]) -> CommandResult:
        for prefix, result in self._rules:
            if args[: len(prefix)] == prefix:
                return result
        return CommandResult()

    def __call__(
        self, args: list[str], **kwargs: object
    ) -> subprocess.CompletedProcess[str]:
        """Record the call and return the matching canned result."""
        call = tuple(args)
        self.calls.append(call)
        self.kwargs.append(kwargs)
        if kwargs.get("input") is not None:
            self.inputs.append(str(kwargs["input"]))
        result = self._match(call)
        if kwargs.get("check") and result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, args, result.stdout, result.stderr
            )
        return subprocess.CompletedProcess(
            args=args,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def called(self, *prefix: str) -> bool:
        """Return True if any recorded call starts with ``prefix``."""
        return any(call[: len(prefix)] == prefix for call in self.calls)

    def calls_with(self, *prefix: str) -> list[tuple[str, ...]]:
        """Return every recorded call starting with ``prefix``."""
        return [call for call in self.calls if call[: len(prefix)] == prefix]


class FakeProcess:
    """The parts of ``subprocess.Popen`` the port-forward code touches."""

    def __init__(self, args: list[str], exit_code: int | None, pid: int) -> None:
        """Store the command line and the value ``poll`` will report."""
        self.args = args
        self.pid = pid
        self._exit_code = exit_code

    def poll(self) -> int | None:
        """Return None while running, else the exit code."""
        return self._exit_code


@dataclasses.dataclass(slots=True)
class FakePopen:
    """A ``subprocess.Popen`` replacement that never starts anything."""

    exit_code: int | None = None
    log_output: bytes = b""
    pid: int = 4242
    launched: list[tuple[str, ...]] = dataclasses.field(default_factory=list)
    options: list[dict[str, object]] = dataclasses.field(default_factory=list)

    def __call__(self, args: list[str], **kwargs: object) -> FakeProcess:
        """Record the launch and write ``log_output`` to the given stdout."""
        self.launched.append(tuple(args))
        self.options.append(kwargs)
        stdout = kwargs.get("stdout")
        if self.log_output and hasattr(stdout, "write"):
            typ.cast("typ.BinaryIO", stdout).write(self.log_output)
        return FakeProcess(args, self.exit_code, self.pid)


@dataclasses.dataclass(slots=True)
class ConsoleOutput:
    """In-memory stdout and stderr consoles."""

    out: io.StringIO
    err: io.StringIO

    @property
    def stdout(self) -> str:
        """Return everything printed to stdout."""
        return self.out.getvalue()

    @property
    def stderr(self) -> str:
        """Return everything printed to stderr."""
        return self.err.getvalue()

    @property
    def text(self) -> str:
        """Return stdout followed by stderr."""
        return self.stdout + self.stderr


@pytest.fixture
def commands(monkeypatch: pytest.MonkeyPatch) -> FakeCommands:
    """Replace ``subprocess.run`` with a :class:`FakeCommands` instance."""
    fake = FakeCommands()
    monkeypatch.setattr("subprocess.run", fake)
    return fake


@pytest.fixture
def popen(monkeypatch: pytest.MonkeyPatch) -> FakePopen:
    """Replace ``subprocess.Popen`` with a :class:`FakePopen` instance."""
    fake = FakePopen()
    monkeypatch.setattr("subprocess.Popen", fake)
    return fake


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Make ``time.sleep`` return immediately and record requested delays."""
    recorded: list[float] = []
    monkeypatch.setattr("time.sleep", recorded.append)
    return recorded


@pytest.fixture
def all_tools(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pretend every executable is installed."""
    monkeypatch.setattr("shutil.which", lambda name: f"/usr/bin/{name}")


@pytest.fixture
def console_output(monkeypatch: pytest.MonkeyPatch) -> ConsoleOutput:
    """Redirect the rich consoles into string buffers."""
    out = io.StringIO()
    err = io.StringIO()
    monkeypatch.setattr(
        "iotctl.console.console",
        Console(file=out, width=200, color_system=None, highlight=False),
    )
    monkeypatch.setattr(
        "iotctl.console.err_console",
        Console(file=err, width=200, color_system=None, highlight=False),
    )
    return ConsoleOutput(out=out, err=err)


@pytest.fixture
def test_env(tmp_path: Path) -> dict[str, str]:
    """Return a copy of the environment with KUBECONFIG pointing at tmp_path."""
    env = dict(os.environ)
    env["KUBECONFIG"] = str(tmp_path / "kubeconfig-test.yaml")
    return env


@pytest.fixture(autouse=True)
def _clean_iot_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep IOT_* overrides from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("IOT_"):
            monkeypatch.delenv(name, raising=False)
