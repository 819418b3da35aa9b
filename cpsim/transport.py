import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

logger = logging.getLogger(__name__)

SUBPROTOCOLS = ["ocpp1.6", "ocpp1.5"]
# application close code meaning "clean shutdown"
CLEAN_CLOSE = 3001
ABNORMAL_CLOSE = 1006


class ReadyState:
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


# -------- connection events, consumed by the engine dispatch loop --------
@dataclass
class Opened:
    transport: Any


@dataclass
class Message:
    transport: Any
    frame: str


@dataclass
class Closed:
    transport: Any
    code: int


@dataclass
class Error:
    transport: Any
    ready_state: int
    detail: str


class Transport:
    """One WebSocket connection to the central system.

    Lifecycle changes and inbound frames are posted to ``events``;
    outbound frames and the close request go through a single writer
    so they leave in order.
    """

    def __init__(self, url: str, cpid: str, events: asyncio.Queue):
        self.url = f"{url}{cpid}"
        self.events = events
        self.ready_state = ReadyState.CONNECTING
        self._ws = None
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._close_code: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self.ready_state == ReadyState.OPEN

    def start(self) -> None:
        self._task = asyncio.create_task(self.run())

    async def run(self) -> None:
        logger.info(f"Connecting to CSMS: {self.url}")
        try:
            ws = await websockets.connect(self.url, subprotocols=SUBPROTOCOLS)
        except (OSError, InvalidURI, InvalidHandshake, asyncio.TimeoutError) as e:
            self.ready_state = ReadyState.CLOSED
            self.events.put_nowait(Error(self, self.ready_state, f"{type(e).__name__}: {e}"))
            self.events.put_nowait(Closed(self, ABNORMAL_CLOSE))
            return

        self._ws = ws
        if self._close_code is None:
            self.ready_state = ReadyState.OPEN
            self.events.put_nowait(Opened(self))
        else:
            # close() was requested while the handshake was in flight
            self._outbox.put_nowait(None)
        writer = asyncio.create_task(self._writer())
        try:
            async for frame in ws:
                self.events.put_nowait(Message(self, frame))
        except ConnectionClosed as e:
            logger.warning(f"connection lost: {e}")
            if self._close_code is None:
                self.events.put_nowait(Error(self, ReadyState.OPEN, f"{type(e).__name__}: {e}"))
        finally:
            if self._close_code is None:
                writer.cancel()
            else:
                await writer
            await ws.wait_closed()
            self.ready_state = ReadyState.CLOSED
            code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSE
            self.events.put_nowait(Closed(self, code))

    async def _writer(self) -> None:
        while True:
            frame = await self._outbox.get()
            if frame is None:
                await self._ws.close(code=self._close_code)
                return
            try:
                await self._ws.send(frame)
            except ConnectionClosed:
                return

    def send(self, frame: str) -> bool:
        if not self.is_open:
            return False
        self._outbox.put_nowait(frame)
        return True

    def close(self, code: int = CLEAN_CLOSE) -> None:
        if self.ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        self._close_code = code
        connecting = self.ready_state == ReadyState.CONNECTING
        self.ready_state = ReadyState.CLOSING
        if not connecting:
            self._outbox.put_nowait(None)
