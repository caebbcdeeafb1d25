"""Numbered interactive menus.

A :class:`Menu` maps single-key choices to actions returning an exit code.
Run with a choice it behaves like a one-shot command, which is what
``iotctl argocd 2`` does; run without one it loops until ``0`` is entered.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from rich.panel import Panel

from iotctl import console
from iotctl.logging import get_logger, log_exception
from iotctl.validation import IotctlError

logger = get_logger(__name__)

EXIT_CHOICE = "0"

Action = typ.Callable[[], int]


@dataclasses.dataclass(frozen=True, slots=True)
class MenuItem:
    """One numbered entry."""

    key: str
    label: str
    action: Action


@dataclasses.dataclass(slots=True)
class Menu:
    """A titled list of numbered actions plus ``0) Exit``."""

    title: str
    items: list[MenuItem]
    prompt: typ.Callable[[str], str] = console.ask
    pause: typ.Callable[[], None] = console.pause

    @property
    def max_choice(self) -> int:
        """Return the highest numbered choice."""
        return len(self.items)

    def render(self) -> None:
        """Print the menu panel."""
        lines = [f"  [green]{item.key})[/green] {item.label}" for item in self.items]
        lines.append(f"  [red]{EXIT_CHOICE})[/red] Exit")
        console.console.print()
        console.console.print(
            Panel(
                "\n".join(lines),
                title=f"[cyan]{self.title}[/cyan]",
                border_style="blue",
                expand=False,
            )
        )

    def _find(self, choice: str) -> MenuItem | None:
        return next((item for item in self.items if item.key == choice), None)

    def _run_action(self, item: MenuItem) -> int:
        try:
            return item.action()
        except (IotctlError, RuntimeError, ValueError) as exc:
            log_exception(logger, f"menu action '{item.label}' failed", exc)
            console.error(str(exc))
            return 1

    def dispatch(self, choice: str) -> tuple[bool, int]:
        """Run the action for ``choice``.

        Returns:
            ``(keep_going, exit_code)``. ``keep_going`` is False only for the
            exit choice. Unknown choices report an error and yield code 1.

        """
        choice = choice.strip()
        if choice == EXIT_CHOICE:
            console.console.print("\n[green]Goodbye![/green]\n")
            return False, 0
        item = self._find(choice)
        if item is None:
            console.error(
                f"Invalid choice. Please select {EXIT_CHOICE}-{self.max_choice}."
            )
            return True, 1
        return True, self._run_action(item)

    def run(self, choice: str | None = None) -> int:
        """Run one choice, or loop interactively when ``choice`` is None."""
        if choice is not None:
            _keep_going, code = self.dispatch(choice)
            return code

        while True:
            self.render()
            selected = self.prompt(f"Enter your choice [0-{self.max_choice}]")
            keep_going, _code = self.dispatch(selected)
            if not keep_going:
                return 0
            self.pause()
