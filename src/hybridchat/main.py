"""
HybridChat - Command-line entry points.

hybridchat         interactive terminal chat client
hybridchat-server  relay server
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from . import __version__
from .client import ChatClient, join_session, poll_forever
from .config import Config
from .constants import LOG_DATE_FORMAT
from .errors import ConfigError, HybridChatError
from .keys import KeyManager
from .server import ChatServer
from .session import ChatEntry, ChatSession, EntryStatus
from .utils import format_fingerprint, format_millis, validate_username

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """Route all hybridchat logging through a rich handler."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        log_time_format=f"[{LOG_DATE_FORMAT}]",
    )
    logging.basicConfig(level=level.upper(), format="%(message)s", handlers=[handler], force=True)


def load_config(path: Optional[str]) -> Config:
    try:
        return Config(Path(path).expanduser() if path else None)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)


# Server


async def async_server_main(argv: Optional[List[str]] = None) -> None:
    """Async main entry point for the relay server."""
    parser = argparse.ArgumentParser(
        description="HybridChat Server - relay for end-to-end encrypted group chat"
    )
    parser.add_argument("--version", action="version", version=f"HybridChat {__version__}")
    parser.add_argument("--host", type=str, default=None, help="Interface to listen on")
    parser.add_argument("--port", type=int, default=None, help="TCP port to listen on")
    parser.add_argument("--config", type=str, default=None, help="Path to config.toml")
    parser.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write the effective configuration to the config path and exit",
    )

    args = parser.parse_args(argv)
    config = load_config(args.config)

    if args.host:
        config.set("server", "host", args.host)
    if args.port is not None:
        config.set("server", "port", args.port)
    if args.log_level:
        config.set("logging", "level", args.log_level)

    if args.init_config:
        try:
            config.save()
        except ConfigError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(2)
        print(f"Wrote {config.config_path}")
        return

    setup_logging(config.get("logging", "level", "INFO"))

    server = ChatServer.from_config(config)
    if not await server.start():
        sys.exit(1)

    server.install_signal_handlers()
    await server.run()


def server_main() -> None:
    """Main entry point - runs async_server_main."""
    asyncio.run(async_server_main())


# Client


STATUS_STYLES = {
    EntryStatus.OK: "",
    EntryStatus.NOT_FOR_ME: "dim italic",
    EntryStatus.UNDECRYPTABLE: "bold red",
}


def render_entry(entry: ChatEntry, own_username: str) -> Text:
    text = Text()
    text.append(f"[{format_millis(entry.timestamp)}] ", style="dim")
    text.append(entry.sender, style="bold green" if entry.sender == own_username else "bold cyan")
    text.append(" 🔒 " if entry.encrypted else "    ")
    text.append(entry.text, style=STATUS_STYLES.get(entry.status, ""))
    return text


class ChatApp:
    """Line-oriented terminal front end for one ChatSession."""

    HELP = "/users  list participants   /dismiss  clear notices   /quit  leave"

    def __init__(self, session: ChatSession, client: ChatClient, config: Config, console: Console):
        self.session = session
        self.client = client
        self.config = config
        self.console = console
        self.stop = asyncio.Event()
        self._shown_notices = set()

        client.on_connection_change = self._on_connection_change

    def _on_connection_change(self, connected: bool) -> None:
        if connected:
            self.console.print("[green]Connected[/green]")
        else:
            self.console.print("[yellow]Disconnected, retrying...[/yellow]")

    async def on_entries(self, entries: List[ChatEntry]) -> None:
        for entry in entries:
            self.console.print(render_entry(entry, self.session.username))
        self.show_notices()

    def show_notices(self) -> None:
        for notice in self.session.notices.active():
            if notice.notice_id in self._shown_notices:
                continue
            self._shown_notices.add(notice.notice_id)
            style = "red" if notice.level == "error" else "yellow"
            self.console.print(f"[{style}]! {notice.text}[/{style}]")

    async def handle_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return

        if line == "/quit":
            self.stop.set()
            return
        if line == "/users":
            users = ", ".join(self.session.room.users) or "(none)"
            self.console.print(f"Active: {users}")
            return
        if line == "/dismiss":
            for notice in self.session.notices.active():
                self.session.notices.dismiss(notice.notice_id)
            return
        if line.startswith("/"):
            self.console.print(self.HELP)
            return

        try:
            params = await self.session.compose_async(line)
        except HybridChatError as e:
            logger.debug(f"Compose failed: {e}")
            self.show_notices()
            return

        response = await self.client.send_message(params)
        if response.get("queued"):
            self.console.print("[yellow]Server unreachable, message queued[/yellow]")
        elif not response.get("success"):
            self.console.print(f"[red]Send failed: {response.get('error')}[/red]")

    async def input_loop(self) -> None:
        while not self.stop.is_set():
            try:
                line = await asyncio.to_thread(input)
            except EOFError:
                self.stop.set()
                break
            await self.handle_line(line)

    async def run(self) -> int:
        await self.session.start_async()
        fingerprint = KeyManager.fingerprint(self.session.encoded_public_key) or ""
        self.console.print(f"Key fingerprint: {format_fingerprint(fingerprint[:32])}")

        if not await self.client.connect():
            self.console.print(f"[red]Cannot reach {self.client.host}:{self.client.port}[/red]")
            return 1
        if not await join_session(self.client, self.session):
            self.console.print("[red]Join rejected by server[/red]")
            return 1

        self.console.print(f"Joined as [bold]{self.session.username}[/bold]. {self.HELP}")

        poller = asyncio.create_task(
            poll_forever(
                self.client,
                self.session,
                self.on_entries,
                interval=self.config.get("chat", "poll_interval"),
                stop=self.stop,
            )
        )
        reader = asyncio.create_task(self.input_loop())

        await self.stop.wait()
        reader.cancel()
        await poller
        await self.client.disconnect()
        return 0


async def async_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="HybridChat - end-to-end encrypted group chat client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hybridchat --username alice
  hybridchat --username bob --host 10.0.0.5 --port 5080
        """,
    )
    parser.add_argument("--version", action="version", version=f"HybridChat {__version__}")
    parser.add_argument("--username", type=str, required=True, help="Display name in the room")
    parser.add_argument("--host", type=str, default=None, help="Server host")
    parser.add_argument("--port", type=int, default=None, help="Server port")
    parser.add_argument("--config", type=str, default=None, help="Path to config.toml")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    if not validate_username(args.username):
        parser.error("username must be 1-32 letters, digits, '_', '.' or '-'")

    config = load_config(args.config)
    console = Console()
    setup_logging("DEBUG" if args.debug else "WARNING", Console(stderr=True))

    session = ChatSession(
        args.username,
        key_manager=KeyManager(config.get("crypto", "rsa_key_size")),
        max_message_length=config.get("chat", "max_message_length"),
    )
    client = ChatClient(
        args.host or config.get("server", "host"),
        args.port or config.get("server", "port"),
        request_timeout=config.get("server", "request_timeout"),
    )

    return await ChatApp(session, client, config, console).run()


def main() -> None:
    """Main entry point for the HybridChat client."""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
