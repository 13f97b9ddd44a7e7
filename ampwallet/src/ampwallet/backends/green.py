"""
Green backend session over WAMP v2 (JSON serialization) on a websocket.

Only the caller role is implemented: HELLO/WELCOME to join the realm,
CALL/RESULT/ERROR for procedures, GOODBYE to leave.
"""

from __future__ import annotations

import json
from enum import IntEnum
from typing import Any

import websockets
from ampcore.constants import DEFAULT_REALM
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException

from ampwallet.backends.base import (
    RemoteSession,
    SessionError,
    TransportError,
    classify_remote_error,
)

WAMP_SUBPROTOCOL = "wamp.2.json"


class WampMessage(IntEnum):
    HELLO = 1
    WELCOME = 2
    ABORT = 3
    GOODBYE = 6
    ERROR = 8
    CALL = 48
    RESULT = 50


def unpack_result(args: list[Any], kwargs: dict[str, Any]) -> Any:
    """A single positional result is returned bare, like autobahn does."""
    if not kwargs:
        if len(args) == 1:
            return args[0]
        return args or None
    return {"args": args, "kwargs": kwargs}


class GreenSession(RemoteSession):
    """
    Client for a Green backend.

    One call is in flight at a time, so replies are read inline until the
    matching RESULT or ERROR arrives.
    """

    def __init__(self, url: str, realm: str = DEFAULT_REALM, max_message_size: int = 2097152):
        self.url = url
        self.realm = realm
        self.max_message_size = max_message_size
        self.session_id: int | None = None
        self._ws: Any = None
        self._request_id = 0

    def is_connected(self) -> bool:
        return self._ws is not None and self.session_id is not None

    async def connect(self) -> None:
        """Open the websocket and join the realm."""
        if self.is_connected():
            return

        logger.debug(f"Connecting to {self.url}")
        try:
            self._ws = await websockets.connect(
                self.url,
                subprotocols=[WAMP_SUBPROTOCOL],
                max_size=self.max_message_size,
            )
        except (OSError, WebSocketException) as e:
            raise TransportError(f"Failed to connect to {self.url}: {e}") from e

        try:
            await self._send(
                [WampMessage.HELLO, self.realm, {"roles": {"caller": {"features": {}}}}]
            )
            message = await self._receive()
        except TransportError:
            await self._close_socket()
            raise

        if message[0] == WampMessage.WELCOME:
            self.session_id = message[1]
            logger.info(f"Joined realm {self.realm} (session {self.session_id})")
            return

        await self._close_socket()
        if message[0] == WampMessage.ABORT:
            reason = message[2] if len(message) > 2 else "unknown"
            raise SessionError(f"Router aborted session: {reason}")
        raise SessionError(f"Unexpected message while joining realm: {message[0]}")

    async def disconnect(self) -> None:
        """Leave the realm and close the websocket."""
        if self._ws is None:
            return

        try:
            if self.session_id is not None:
                await self._send([WampMessage.GOODBYE, {}, "wamp.close.close_realm"])
                reply = await self._receive()
                if reply[0] != WampMessage.GOODBYE:
                    logger.debug(f"Expected GOODBYE, got message type {reply[0]}")
        except (TransportError, SessionError) as e:
            logger.debug(f"Session ended without clean GOODBYE: {e}")
        finally:
            await self._close_socket()
            logger.debug("Disconnected")

    async def call(self, name: str, args: list[Any] | None = None) -> Any:
        if not self.is_connected():
            raise SessionError(f"Cannot call {name}: not connected")

        self._request_id += 1
        request_id = self._request_id
        logger.debug(f"Calling {name} (request {request_id})")

        await self._send([WampMessage.CALL, request_id, {}, name, list(args or [])])

        while True:
            message = await self._receive()
            code = message[0]

            if code == WampMessage.RESULT and message[1] == request_id:
                result_args = message[3] if len(message) > 3 else []
                result_kwargs = message[4] if len(message) > 4 else {}
                return unpack_result(result_args, result_kwargs)

            if code == WampMessage.ERROR and message[2] == request_id:
                error = message[4]
                error_args = message[5] if len(message) > 5 else []
                error_kwargs = message[6] if len(message) > 6 else {}
                logger.debug(f"{name} failed: {error} {error_args}")
                raise classify_remote_error(name, error, error_args, error_kwargs)

            if code in (WampMessage.GOODBYE, WampMessage.ABORT):
                self.session_id = None
                await self._close_socket()
                raise TransportError(f"Router closed the session during {name}")

            logger.debug(f"Ignoring WAMP message type {code} while waiting for {name}")

    async def _send(self, message: list[Any]) -> None:
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed: {e}") from e

    async def _receive(self) -> list[Any]:
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed: {e}") from e

        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SessionError(f"Invalid WAMP frame: {e}") from e

        if not isinstance(message, list) or not message or not isinstance(message[0], int):
            raise SessionError(f"Invalid WAMP message: {raw!r:.200}")
        return message

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        self.session_id = None
        if ws is not None:
            await ws.close()
