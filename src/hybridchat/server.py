"""
HybridChat - Chat relay server using asyncio.

The server owns one MessageLog and one PresenceRegistry and exposes them to
clients over TCP as newline-delimited JSON commands. It never sees
plaintext of encrypted messages: bundles are stored and relayed opaquely,
and each reader only receives its own bundle.
"""

import asyncio
import logging
import signal
import sys
from typing import Any, Dict, Optional

from .config import Config
from .constants import (
    DEFAULT_HOST,
    DEFAULT_SERVER_PORT,
    MAX_LINE_SIZE,
    MESSAGE_LOG_CAPACITY,
    PRESENCE_TTL,
    READ_CHUNK_SIZE,
)
from .errors import ErrorCode, HybridChatError, InvalidKeyEncodingError, ProtocolError
from .keys import KeyManager
from .message_log import MessageLog
from .presence import PresenceRegistry
from .protocol import (
    Command,
    decode_line,
    encode_line,
    error_response,
    message_from_send_request,
    message_to_wire,
    parse_timestamp,
)
from .utils import validate_username

logger = logging.getLogger(__name__)


class ChatServer:
    """Relay server holding the shared message log and presence registry."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_SERVER_PORT,
        message_log: Optional[MessageLog] = None,
        presence: Optional[PresenceRegistry] = None,
    ):
        """
        Initialize server.

        Args:
            host: Interface to listen on
            port: TCP port to listen on (0 picks a free port)
            message_log: Shared message log (created if omitted)
            presence: Shared presence registry (created if omitted)
        """
        self.host = host
        self.port = port
        self.message_log = message_log or MessageLog(MESSAGE_LOG_CAPACITY)
        self.presence = presence or PresenceRegistry(PRESENCE_TTL)
        self.running = False

        self.tcp_server: Optional[asyncio.AbstractServer] = None

        # Client connections
        self.clients: Dict[int, asyncio.StreamWriter] = {}
        self.client_lock = asyncio.Lock()
        self.next_client_id = 1

        self._stopped = asyncio.Event()

        self._handlers = {
            Command.PING: self._handle_ping,
            Command.JOIN: self._handle_join,
            Command.MESSAGE: self._handle_message,
            Command.POLL: self._handle_poll,
        }

    @classmethod
    def from_config(cls, config: Config) -> "ChatServer":
        return cls(
            host=config.get("server", "host", DEFAULT_HOST),
            port=config.get("server", "port", DEFAULT_SERVER_PORT),
            message_log=MessageLog(config.get("chat", "log_capacity", MESSAGE_LOG_CAPACITY)),
            presence=PresenceRegistry(config.get("chat", "presence_ttl", PRESENCE_TTL)),
        )

    async def start(self) -> bool:
        """
        Start listening for chat clients.

        Returns:
            True if the server started, False on error
        """
        try:
            self.tcp_server = await asyncio.start_server(self._handle_client, self.host, self.port)
        except OSError as e:
            logger.error(f"Failed to start server on {self.host}:{self.port}: {e}")
            return False

        # Resolve the real port when 0 was requested
        sockets = self.tcp_server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]

        self.running = True
        self._stopped.clear()
        logger.info(f"HybridChat server listening on {self.host}:{self.port}")
        return True

    async def stop(self) -> None:
        """Disconnect all clients and close the listening socket."""
        if not self.running and self.tcp_server is None:
            return

        logger.info("Stopping server...")
        self.running = False

        async with self.client_lock:
            for writer in self.clients.values():
                try:
                    writer.close()
                    await writer.wait_closed()
                except (ConnectionError, OSError) as e:
                    logger.debug(f"Error closing client: {e}")
            self.clients.clear()

        if self.tcp_server:
            self.tcp_server.close()
            await self.tcp_server.wait_closed()
            self.tcp_server = None

        self._stopped.set()
        logger.info("Server stopped")

    async def run(self) -> None:
        """Block until the server is stopped."""
        try:
            await self._stopped.wait()
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Ask a running server to shut down; called from the signal handlers."""
        self.running = False
        self._stopped.set()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """
        Serve one client connection: read newline-delimited JSON requests and
        write one JSON response line per request.
        """
        address = writer.get_extra_info("peername")
        logger.debug(f"Client connected from {address}")

        async with self.client_lock:
            client_id = self.next_client_id
            self.next_client_id += 1
            self.clients[client_id] = writer

        buffer = b""

        try:
            while self.running:
                data = await reader.read(READ_CHUNK_SIZE)
                if not data:
                    break

                buffer += data
                if len(buffer) > MAX_LINE_SIZE and b"\n" not in buffer:
                    logger.warning(f"Client {client_id} exceeded line size, disconnecting")
                    break

                while b"\n" in buffer:
                    line, buffer = buffer.split(b"\n", 1)
                    if not line.strip():
                        continue

                    try:
                        request = decode_line(line)
                    except ProtocolError as e:
                        logger.warning(f"Invalid request from client {client_id}: {e}")
                        response = error_response("Invalid JSON", e.code)
                    else:
                        response = await self._process_command(request)

                    writer.write(encode_line(response))
                    await writer.drain()

        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug(f"Client {client_id} connection lost: {e}")
        except Exception as e:
            logger.error(f"Error handling client {client_id}: {e}", exc_info=True)
        finally:
            async with self.client_lock:
                self.clients.pop(client_id, None)

            try:
                writer.close()
                await writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug(f"Error closing writer: {e}")

    async def _process_command(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Route one request to its handler.

        Args:
            request: Dictionary with 'command' and optional 'params'

        Returns:
            Response dictionary with at least 'success'
        """
        command = request.get("command")
        params = request.get("params") or {}

        handler = self._handlers.get(command)
        if handler is None:
            return error_response(f"Unknown command: {command}", ErrorCode.E804_INVALID_COMMAND)

        if not isinstance(params, dict):
            return error_response("Params must be an object", ErrorCode.E201_INVALID_REQUEST)

        try:
            return await handler(params)
        except HybridChatError as e:
            logger.info(f"Rejected {command}: {e}")
            return error_response(e)
        except Exception as e:
            logger.error(f"Command {command} failed: {e}", exc_info=True)
            return error_response(str(e), ErrorCode.E800_SERVER_ERROR)

    async def _handle_ping(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"success": True, "message": "pong"}

    async def _handle_join(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register a participant and its public key.

        Returns the active users and every other participant's key.
        """
        username = params.get("username")
        public_key = params.get("publicKey")

        if not validate_username(username):
            raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, "Invalid username")

        try:
            KeyManager.import_public(public_key)
        except InvalidKeyEncodingError as e:
            raise ProtocolError(
                ErrorCode.E201_INVALID_REQUEST, f"Invalid public key: {e.message}"
            ) from e

        self.presence.join(username, public_key)
        snapshot = self.presence.snapshot(exclude=username)

        return {
            "success": True,
            "users": snapshot.users,
            "publicKeys": snapshot.public_keys,
        }

    async def _handle_message(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Append a sent message to the log."""
        message = message_from_send_request(params)

        self.presence.touch(message.sender)
        self.message_log.append(message)

        logger.debug(
            f"Stored message {message.message_id} from {message.sender} "
            f"(encrypted: {message.is_encrypted})"
        )
        return {"success": True, "id": message.message_id}

    async def _handle_poll(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Return messages newer than 'since', projected for 'username', plus
        the current presence snapshot.
        """
        since = parse_timestamp(params.get("since", 0))
        username = params.get("username") or None

        if username is not None:
            self.presence.touch(username)

        snapshot = self.presence.snapshot(exclude=username)
        messages = self.message_log.since(since, username)

        return {
            "success": True,
            "messages": [message_to_wire(msg) for msg in messages],
            "users": snapshot.users,
            "publicKeys": snapshot.public_keys,
        }

    def install_signal_handlers(self) -> None:
        """Stop on SIGINT/SIGTERM where the platform supports it."""
        loop = asyncio.get_running_loop()
        signals = [signal.SIGINT]
        if sys.platform != "win32":
            signals.append(signal.SIGTERM)

        for signum in signals:
            try:
                loop.add_signal_handler(signum, self.request_stop)
            except NotImplementedError:
                signal.signal(signum, lambda *_: self.request_stop())
