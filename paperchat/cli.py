"""Command-line interface handlers."""

import argparse
import asyncio
import logging
import sys
from typing import Optional

import uvicorn
from rich.progress import Progress, SpinnerColumn, TextColumn

from paperchat.config import Settings
from paperchat.console import ConsoleUI, setup_logging
from paperchat.database.repository import Repository
from paperchat.exceptions import NotFoundError, PaperChatError
from paperchat.models.chat import User
from paperchat.services.arxiv_service import ArxivService
from paperchat.services.auth_service import AuthService
from paperchat.services.chat_service import CompletionClient, ConversationResponder

SORT_CHOICES = {"relevance": "relevance", "date": "submittedDate"}


class PaperChatCLI:
    """CLI application for PaperChat."""

    def __init__(self, settings: Optional[Settings] = None, ui: Optional[ConsoleUI] = None):
        """Initialize CLI with settings.

        Args:
            settings: Application settings (loaded from .metadata if not provided)
            ui: Console output (a fresh Rich console if not provided)
        """
        self.settings = settings or Settings.load()
        self.ui = ui or ConsoleUI()
        self.repo = Repository(self.settings.db_path)
        self.arxiv = ArxivService(self.settings.arxiv_base_url, timeout=self.settings.http_timeout)

    def cmd_serve(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Run the web API under uvicorn."""
        uvicorn.run(
            "paperchat.web.app:create_app",
            factory=True,
            host=host or self.settings.host,
            port=port or self.settings.port,
        )

    def cmd_search(self, query: str, max_results: int = 15, sort: str = "date") -> None:
        """Search arXiv and print the results.

        Args:
            query: Free-text query
            max_results: Maximum papers to display
            sort: 'relevance' or 'date' (newest first)
        """
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            console=self.ui.console,
            transient=True,
        ) as progress:
            progress.add_task(f"Searching arXiv for '{query}'...", total=None)
            papers = asyncio.run(
                self.arxiv.search(query, max_results=max_results, sort_by=SORT_CHOICES[sort])
            )
        self.ui.display_papers(papers, f"arXiv: {query}")

    def cmd_signup(self, name: str, email: str, password: str) -> None:
        user = AuthService(self.repo, self.settings.session_days).signup(name, email, password)
        self.ui.signed_up(user)

    def cmd_library(self, email: str) -> None:
        """List a user's saved papers."""
        user = self._user(email)
        self.ui.display_papers(self.repo.list_library(user.id), f"Library of {user.email}")

    def cmd_history(self, email: str) -> None:
        """List the papers a user has chatted about."""
        user = self._user(email)
        self.ui.display_papers(self.repo.list_history(user.id), f"History of {user.email}")

    def cmd_ask(self, link: str, question: str) -> None:
        """Fetch a paper from arXiv and answer one question about it."""
        paper = asyncio.run(self.arxiv.get_by_id(link))
        if paper is None:
            raise NotFoundError(f"Paper not found: {link}")
        responder = ConversationResponder(CompletionClient.from_settings(self.settings))
        reply = asyncio.run(responder.respond(question, paper))
        self.ui.display_reply(paper, question, reply.content, reply.source)

    def _user(self, email: str) -> User:
        user = self.repo.find_user_by_email(email)
        if user is None:
            raise NotFoundError(f"No user with email {email}")
        return user


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="paperchat",
        description="arXiv search, paper chat and personal library",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the web API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: from app.yaml)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: from app.yaml)")

    # search command
    search_parser = subparsers.add_parser("search", help="Search arXiv")
    search_parser.add_argument("query", help="Search terms")
    search_parser.add_argument(
        "--max",
        type=int,
        default=15,
        dest="max_results",
        help="Maximum papers to display (default: 15)",
    )
    search_parser.add_argument(
        "--sort",
        default="date",
        choices=sorted(SORT_CHOICES),
        help="Sort by relevance or date (default: date)",
    )

    # signup command
    signup_parser = subparsers.add_parser("signup", help="Create a user account")
    signup_parser.add_argument("name")
    signup_parser.add_argument("email")
    signup_parser.add_argument("password")

    # library / history commands
    library_parser = subparsers.add_parser("library", help="List a user's saved papers")
    library_parser.add_argument("email")
    history_parser = subparsers.add_parser("history", help="List a user's chat history papers")
    history_parser.add_argument("email")

    # ask command
    ask_parser = subparsers.add_parser("ask", help="Ask a question about an arXiv paper")
    ask_parser.add_argument("link", help="arXiv id or abs/pdf URL")
    ask_parser.add_argument("question")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    quiet = logging.INFO if args.command == "serve" else logging.WARNING
    setup_logging(logging.DEBUG if args.verbose else quiet)

    cli = PaperChatCLI()

    try:
        if args.command == "serve":
            cli.cmd_serve(args.host, args.port)
        elif args.command == "search":
            cli.cmd_search(args.query, args.max_results, args.sort)
        elif args.command == "signup":
            cli.cmd_signup(args.name, args.email, args.password)
        elif args.command == "library":
            cli.cmd_library(args.email)
        elif args.command == "history":
            cli.cmd_history(args.email)
        elif args.command == "ask":
            cli.cmd_ask(args.link, args.question)
    except PaperChatError as e:
        cli.ui.error(str(e))
        return 1
    return 0


def run_cli() -> None:
    sys.exit(main())
