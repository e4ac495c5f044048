#!/usr/bin/env python3
"""
Run a chat command against the local docker daemon, without Discord.

Usage:
  python scripts/run_snippet.py '?play `cout << "hi";`'
  python scripts/run_snippet.py --file snippet.txt
  echo '?eval `1 << 10`' | python scripts/run_snippet.py -

Replies that would be sent to (or edited in) the chat are printed instead.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from src.config import settings
from src.models import ChatMessage, ThreadRef
from src.services.container import ContainerConfig, DockerEngine
from src.services.dispatcher import RequestDispatcher
from src.services.execution import ExecutionPipeline
from src.services.sandbox import SandboxStore
from src.utils.logging import setup_logging

console = Console()


class ConsoleChat:
    """ChatPlatform that prints replies to the terminal."""

    def __init__(self):
        self._sent = 0

    async def send_message(self, thread: ThreadRef, text: str) -> Any:
        self._sent += 1
        console.print(Panel(Text(text), title=f"reply #{self._sent}", border_style="green"))
        return self._sent

    async def edit_message(self, reply: Any, text: str) -> None:
        console.print(
            Panel(Text(text), title=f"reply #{reply} (edited)", border_style="yellow")
        )


def read_message(args: argparse.Namespace) -> str:
    if args.file:
        return Path(args.file).read_text()
    if args.message == "-":
        return sys.stdin.read()
    return args.message


async def run(message: str, user: str) -> int:
    engine = DockerEngine()
    if not await engine.ping():
        console.print("[red]Error:[/red] Cannot connect to the docker daemon.")
        return 1

    chat = ConsoleChat()
    store = SandboxStore(
        engine=engine,
        container_config=ContainerConfig.from_settings(),
        idle_timeout=settings.sandbox.sandbox_idle_timeout_seconds,
    )
    pipeline = ExecutionPipeline.from_settings(store=store, engine=engine, chat=chat)
    dispatcher = RequestDispatcher(store, pipeline, prefix=settings.command_prefix)

    thread = ThreadRef(message_id="local-1", channel_id="local")
    try:
        await dispatcher.handle_message(
            ChatMessage(author_id=user, content=message.strip(), thread=thread)
        )
    finally:
        await store.close()

    if chat._sent == 0:
        console.print("[dim]No reply (not a command, or the sandbox failed).[/dim]")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a chat command locally")
    parser.add_argument("message", nargs="?", default="-", help="Chat message, or - for stdin")
    parser.add_argument("--file", help="Read the chat message from a file")
    parser.add_argument("--user", default="local-user", help="Identity to run as")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    setup_logging(level=args.log_level, log_format="console")
    return asyncio.run(run(read_message(args), args.user))


if __name__ == "__main__":
    sys.exit(main())
