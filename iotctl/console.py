"""Coloured terminal output and prompts built on rich.

All user-facing text goes through the module-level ``console`` (stdout) and
``err_console`` (stderr) so tests can swap them for recording consoles.
"""

from __future__ import annotations

from rich.console import Console
from rich.prompt import Prompt
from rich.rule import Rule

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

_YES_ANSWERS = frozenset({"y", "yes"})


def info(message: str) -> None:
    """Print an informational line prefixed with a blue ``ℹ``."""
    console.print(f"[blue]ℹ[/blue] {message}")


def success(message: str) -> None:
    """Print a green ``✓`` line."""
    console.print(f"[green]✓[/green] {message}")


def warning(message: str) -> None:
    """Print a yellow ``⚠`` line."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def error(message: str) -> None:
    """Print a red ``✗`` line on stderr."""
    err_console.print(f"[red]✗[/red] {message}")


def step(index: int, total: int, message: str) -> None:
    """Print a ``[n/N]`` progress line."""
    console.print(f"[green]\\[{index}/{total}][/green] {message}")


def heading(message: str) -> None:
    """Print a yellow ``=== message ===`` sub-heading."""
    console.print(f"\n[yellow]=== {message} ===[/yellow]")


def section(title: str) -> None:
    """Print the cyan banner that opens every menu action."""
    console.print()
    console.print(Rule(style="cyan"))
    console.print(f"  [cyan]{title}[/cyan]")
    console.print(Rule(style="cyan"))
    console.print()


def field(label: str, value: str) -> None:
    """Print an aligned ``Label: value`` credential line."""
    console.print(f"  [green]{label + ':':<10}[/green] {value}")


def plain(message: str = "") -> None:
    """Print text without any decoration."""
    console.print(message, markup=False)


def ask(prompt: str, *, default: str = "") -> str:
    """Prompt for a line of input and return it stripped."""
    answer = Prompt.ask(
        f"[cyan]{prompt}[/cyan]",
        default=default,
        show_default=bool(default),
        console=console,
    )
    return answer.strip()


def confirm(prompt: str) -> bool:
    """Return True when the operator answers ``y`` or ``yes`` (any case).

    End of input (Ctrl-D) counts as a refusal.
    """
    try:
        answer = Prompt.ask(
            f"[yellow]{prompt}[/yellow]", default="", show_default=False, console=console
        )
    except EOFError:
        console.print()
        return False
    return answer.strip().lower() in _YES_ANSWERS


def pause() -> None:
    """Wait for Enter between interactive menu actions."""
    Prompt.ask(
        "\n[yellow]Press Enter to continue...[/yellow]",
        default="",
        show_default=False,
        console=console,
    )
