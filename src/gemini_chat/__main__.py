"""CLI entrypoint: a line-oriented chat host around ``ChatSession``."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from importlib import metadata
from pathlib import Path
import shlex
from typing import Any

from rich.console import Console

from .attachments import AttachmentSource
from .config import load_config, settings_from_config
from .logging_utils import configure_logging
from .session import ChatSession

HELP_TEXT = (
    "/attach PATH...  queue images for the next message\n"
    "/clear           start a new conversation\n"
    "/save [DIR]      export the transcript\n"
    "/tokens          show the token estimate\n"
    "/retry           resend the last unanswered message\n"
    "/quit            exit"
)


class ChatRepl:
    """Reads lines from the terminal and feeds them to a chat session."""

    def __init__(
        self,
        session: ChatSession,
        config: dict[str, dict[str, Any]],
        console: Console | None = None,
    ) -> None:
        self.session = session
        self.config = config
        self.settings = settings_from_config(config)
        self.console = console or Console()
        self.pending: list[AttachmentSource] = []
        self._printed = 0
        session.on_notify(self._show_notice)
        session.on_update(self._show_delta)

    def _show_notice(self, message: str) -> None:
        self.console.print(f"[yellow]{message}[/yellow]")

    def _show_delta(self, cumulative: str) -> None:
        self.console.print(cumulative[self._printed :], end="", markup=False, highlight=False)
        self._printed = len(cumulative)

    async def handle_line(self, line: str) -> bool:
        """Process one input line; return False when the user asked to quit."""
        text = line.strip()
        if not text:
            return True
        if text.startswith("/"):
            return await self._handle_command(text)

        attachments, self.pending = self.pending, []
        self._printed = 0
        self.console.print("[bold green]Gemini:[/bold green] ", end="")
        outcome = await self.session.send(text, self.settings, attachments)
        if outcome.status == "completed" and self._printed == 0:
            self.console.print(outcome.text, end="", markup=False)
        self.console.print()
        return True

    async def _handle_command(self, text: str) -> bool:
        try:
            command, *args = shlex.split(text)
        except ValueError as exc:
            self.console.print(f"Could not parse command: {exc}.", markup=False)
            self.console.print(HELP_TEXT, markup=False)
            return True
        if command in {"/quit", "/exit"}:
            return False
        if command == "/help":
            self.console.print(HELP_TEXT, markup=False)
        elif command == "/attach":
            self.pending.extend(AttachmentSource.from_path(arg) for arg in args)
            self.console.print(f"{len(self.pending)} attachment(s) queued.")
        elif command == "/clear":
            await self.session.clear(self.settings)
            self.console.print("Conversation cleared.")
        elif command == "/save":
            directory = args[0] if args else self.config["export"]["directory"]
            path = self.session.export(directory, self.config["export"]["filename"])
            if path is not None:
                self.console.print(f"Saved to {path}")
        elif command == "/tokens":
            estimate = await self.session.estimate_tokens("", self.settings)
            self.console.print(f"Token Count: {estimate.count}")
        elif command == "/retry":
            self._printed = 0
            outcome = await self.session.retry(self.settings)
            if outcome.status == "completed":
                self.console.print()
        else:
            self.console.print(f"Unknown command {command}. Try /help.")
        return True

    async def run(self) -> None:
        self.console.print(f"[bold]{self.config['app']['title']}[/bold] (/help for commands)")
        while True:
            try:
                line = await asyncio.to_thread(self.console.input, "[bold]You:[/bold] ")
            except (EOFError, KeyboardInterrupt):
                break
            if not await self.handle_line(line):
                break


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gemini-chat",
        description="Gemini Chat - conversational assistant with streamed replies",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to an alternative config.toml",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Load configuration, handle CLI flags, and run the chat loop."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("gemini-chat")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"gemini-chat {version}")
        return

    config = load_config(args.config)
    configure_logging(config["logging"])
    session = ChatSession(
        config["backend"]["system_instruction"],
        max_attachment_bytes=config["attachments"]["max_bytes"],
        default_caption=config["attachments"]["default_caption"],
    )
    asyncio.run(ChatRepl(session, config).run())


if __name__ == "__main__":
    main()
