"""Entry point for running paperchat as a module or installed script.

Usage:
    paperchat / python -m paperchat         → web API (uvicorn)
    paperchat <command> ... / python -m paperchat <command> ... → CLI
"""

import logging
import sys

import uvicorn


def run() -> None:
    """Entry point: no args → web API, else → CLI."""
    if len(sys.argv) == 1:
        from paperchat.config import Settings
        from paperchat.console import setup_logging

        setup_logging(logging.INFO)
        settings = Settings.load()
        uvicorn.run(
            "paperchat.web.app:create_app",
            factory=True,
            host=settings.host,
            port=settings.port,
        )
    else:
        from paperchat.cli import run_cli
        run_cli()


if __name__ == "__main__":
    run()
