"""Console UI for terminal output using Rich."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table

from paperchat.models.chat import User
from paperchat.models.paper import Paper
from paperchat.utils.text import truncate


def setup_logging(level: int = logging.INFO, console: Optional[Console] = None) -> None:
    """Route stdlib logging through a Rich handler."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


class ConsoleUI:
    """Rich-based console UI for paper display and notifications."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def info(self, message: str) -> None:
        self.console.print(message)

    def success(self, message: str) -> None:
        """Print a success message in green."""
        self.console.print(f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        """Print a warning message in yellow."""
        self.console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        """Print an error message in red."""
        self.console.print(f"[red]Error:[/red] {message}")

    def signed_up(self, user: User) -> None:
        self.console.print(f"[green]Created account[/green] {user.email} (id {user.id})")

    def display_papers(self, papers: list[Paper], title: str) -> None:
        """Display papers in a formatted table.

        Args:
            papers: Papers to display, in order
            title: Table caption
        """
        if not papers:
            self.console.print("No papers found.")
            return

        table = Table(title=title)
        table.add_column("#", justify="right")
        table.add_column("Date", width=10)
        table.add_column("Title", overflow="fold")
        table.add_column("Authors", overflow="fold")
        table.add_column("Link", overflow="fold")

        for i, paper in enumerate(papers, 1):
            authors = ", ".join(paper.authors[:3]) + (" et al." if len(paper.authors) > 3 else "")
            table.add_row(
                str(i),
                paper.published or "-",
                paper.title,
                authors or "-",
                paper.link,
            )

        self.console.print(table)

    def display_reply(self, paper: Paper, question: str, reply: str, source: str) -> None:
        """Print a chat exchange, rendering the reply as markdown."""
        self.console.print(f"[bold]{truncate(paper.title, 100)}[/bold]")
        self.console.print(f"[cyan]You:[/cyan] {question}")
        self.console.print(Markdown(reply))
        self.console.print(f"[dim]source: {source}[/dim]")
