"""
HybridChat - Client API for the chat relay server using asyncio.

ChatClient speaks the newline-delimited JSON protocol (one request, one
response). poll_forever drives a ChatSession against it: polling, rejoining
after eviction, reconnecting after failures, and flushing messages that were
composed while the server was unreachable.
"""

import asyncio
import contextlib
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from .constants import (
    CONNECTION_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_SERVER_PORT,
    MAX_LINE_SIZE,
    OUTBOX_MAX_SIZE,
    POLL_INTERVAL,
    REQUEST_TIMEOUT,
)
from .errors import ErrorCode, ProtocolError
from .protocol import Command, decode_line, encode_line
from .session import ChatEntry, ChatSession

logger = logging.getLogger(__name__)


class ChatClient:
    """Async client for communicating with the chat server."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_SERVER_PORT,
        request_timeout: float = REQUEST_TIMEOUT,
    ):
        """
        Initialize client.

        Args:
            host: Server host
            port: Server port
            request_timeout: Seconds to wait for each response
        """
        self.host = host
        self.port = port
        self.request_timeout = request_timeout
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.connected = False

        self.lock = asyncio.Lock()

        # Send requests composed while the server was unreachable
        self.outbox: Deque[Dict[str, Any]] = deque(maxlen=OUTBOX_MAX_SIZE)

        self.on_connection_change: Optional[Callable[[bool], None]] = None

    def _set_connected(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        if self.on_connection_change:
            try:
                self.on_connection_change(connected)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}", exc_info=True)

    async def connect(self) -> bool:
        """Connect to server."""
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port, limit=MAX_LINE_SIZE),
                timeout=CONNECTION_TIMEOUT,
            )
        except asyncio.TimeoutError:
            logger.error("Connection timeout")
            self._set_connected(False)
            return False
        except OSError as e:
            logger.error(f"Connection failed: {e}")
            self._set_connected(False)
            return False

        self._set_connected(True)
        logger.info(f"Connected to server at {self.host}:{self.port}")
        return True

    async def disconnect(self) -> None:
        """Disconnect from server."""
        self._set_connected(False)

        if self.writer:
            try:
                self.writer.close()
                await self.writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug(f"Error closing writer: {e}")
            self.writer = None

        self.reader = None

    async def _send_request(
        self, command: str, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Send request to server and wait for its response line.

        Returns:
            Response from server (may have success=False)

        Raises:
            ProtocolError: If not connected, or the connection fails mid-request
        """
        if not self.connected or self.writer is None:
            raise ProtocolError(ErrorCode.E204_NOT_CONNECTED, "Not connected to server")

        request = {"command": command, "params": params or {}}

        async with self.lock:
            try:
                self.writer.write(encode_line(request))
                await self.writer.drain()
                line = await asyncio.wait_for(self.reader.readline(), timeout=self.request_timeout)
            except (asyncio.TimeoutError, ConnectionError, OSError, ValueError) as e:
                # ValueError: line exceeded the stream limit
                logger.warning(f"Request '{command}' failed: {e!r}")
                await self.disconnect()
                raise ProtocolError(
                    ErrorCode.E203_CONNECTION_FAILED, f"Request '{command}' failed: {e!r}"
                ) from e

        if not line:
            await self.disconnect()
            raise ProtocolError(ErrorCode.E203_CONNECTION_FAILED, "Server closed connection")

        return decode_line(line.rstrip(b"\n"))

    # Server control

    async def ping(self) -> bool:
        """Ping server to check connectivity."""
        try:
            response = await self._send_request(Command.PING)
        except ProtocolError:
            return False
        return response.get("success", False)

    # Chat

    async def join(self, username: str, public_key: str) -> Dict[str, Any]:
        """
        Register with the server.

        Returns:
            Response with 'users' and every other participant's 'publicKeys'
        """
        return await self._send_request(
            Command.JOIN, {"username": username, "publicKey": public_key}
        )

    async def send_message(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a composed message.

        When the server cannot be reached the message is queued in the
        outbox and sent after the next successful poll.

        Returns:
            Server response, or {'success': False, 'queued': True} if buffered
        """
        try:
            response = await self._send_request(Command.MESSAGE, params)
        except ProtocolError as e:
            self.outbox.append(params)
            logger.info(f"Queued message {params.get('id')} ({len(self.outbox)} pending): {e.message}")
            return {"success": False, "queued": True, "error": e.message}
        return response

    async def poll(self, since: int, username: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch messages newer than 'since' and the current presence.

        Args:
            since: Millisecond timestamp cursor
            username: Reader; selects which bundle is returned for encrypted messages
        """
        params: Dict[str, Any] = {"since": since}
        if username:
            params["username"] = username
        return await self._send_request(Command.POLL, params)

    async def flush_outbox(self) -> int:
        """
        Resend queued messages in order, stopping at the first failure.

        Returns:
            Number of messages delivered
        """
        sent = 0
        while self.outbox:
            params = self.outbox[0]
            try:
                response = await self._send_request(Command.MESSAGE, params)
            except ProtocolError as e:
                logger.info(f"Outbox flush interrupted: {e.message}")
                break

            self.outbox.popleft()
            if response.get("success"):
                sent += 1
            else:
                logger.warning(f"Server rejected queued message {params.get('id')}: {response.get('error')}")

        if sent:
            logger.info(f"Delivered {sent} queued messages")
        return sent


EntryCallback = Callable[[List[ChatEntry]], Awaitable[None]]


async def join_session(client: ChatClient, session: ChatSession) -> bool:
    """Join (or rejoin) the room with the session's key."""
    response = await client.join(session.username, session.encoded_public_key)
    if not response.get("success"):
        logger.error(f"Join rejected: {response.get('error')}")
        return False
    session.joined(response)
    return True


async def poll_forever(
    client: ChatClient,
    session: ChatSession,
    on_entries: EntryCallback,
    interval: float = POLL_INTERVAL,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """
    Poll the server until 'stop' is set.

    Each round reconnects and rejoins if needed, polls from the session
    cursor, hands new entries to 'on_entries', then flushes the outbox.
    """
    stop = stop or asyncio.Event()
    needs_join = not client.connected

    while not stop.is_set():
        try:
            if not client.connected:
                if not await client.connect():
                    raise ProtocolError(ErrorCode.E203_CONNECTION_FAILED, "Server unreachable")
                needs_join = True

            if needs_join:
                if not await join_session(client, session):
                    raise ProtocolError(ErrorCode.E201_INVALID_REQUEST, "Join rejected")
                needs_join = False

            response = await client.poll(session.cursor, session.username)
            if not response.get("success"):
                logger.warning(f"Poll rejected: {response.get('error')}")
            else:
                entries = await session.ingest_poll_async(response)
                if entries:
                    await on_entries(entries)

                if not session.is_present(response):
                    logger.info("No longer listed as active, rejoining")
                    needs_join = True
                elif client.outbox:
                    await client.flush_outbox()

        except ProtocolError as e:
            logger.debug(f"Poll round failed: {e}")
            if client.connected and e.code != ErrorCode.E201_INVALID_REQUEST:
                await client.disconnect()

        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=interval)

