"""
Interactive CLI prompts.

Provides user input and message helpers for interactive commands.
"""

from __future__ import annotations

from rich.console import Console
from rich.prompt import Confirm

console = Console()


def confirm(
    message: str,
    default: bool = False,
    auto_yes: bool = False,
) -> bool:
    """Ask for yes/no confirmation.

    Args:
        message: Question to ask
        default: Default value if user presses Enter
        auto_yes: If True, automatically return True without prompting

    Returns:
        True if confirmed, False otherwise
    """
    if auto_yes:
        console.print(f"{message} [auto-yes]")
        return True

    return bool(Confirm.ask(message, default=default))


def error_message(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]ERROR:[/red] {message}")


def warning_message(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]WARNING:[/yellow] {message}")


def note_message(message: str) -> None:
    """Print a note."""
    console.print(f"[blue]NOTE:[/blue] {message}")
