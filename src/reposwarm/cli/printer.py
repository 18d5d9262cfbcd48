"""Printer implementations handed to the setup orchestrator.

:class:`RichPrinter` renders progress on the stderr console.
:class:`SilentPrinter` discards everything; it is used with ``--json``
so stdout carries only the result document.
"""

from __future__ import annotations

from reposwarm.cli.console import console, escape


class RichPrinter:
    """Human-readable progress output."""

    def section(self, title: str) -> None:
        console.print(f"\n[bold cyan]==> {escape(title)}[/bold cyan]")

    def info(self, message: str) -> None:
        console.print(f"  [cyan]i[/cyan] {escape(message)}")

    def success(self, message: str) -> None:
        console.print(f"  [green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        console.print(f"  [yellow]![/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        console.print(f"  [bold red]✗[/bold red] {escape(message)}")

    def line(self, text: str = "") -> None:
        console.print(escape(text))


class SilentPrinter:
    """No-op printer for machine-readable runs."""

    def section(self, title: str) -> None:
        pass

    def info(self, message: str) -> None:
        pass

    def success(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def line(self, text: str = "") -> None:
        pass
