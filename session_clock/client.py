"""
WebSocket Reflector Client
==========================

Connects to the session reflector over WebSocket, sends binary PING
probes on the estimator's cadence, and feeds PONG replies back into the
offset estimator.
"""

import asyncio
import json
import logging
from typing import Callable, Optional

import aiohttp

from .offset_estimator import EstimatorConfig, ResetRecord, SessionOffsetEstimator
from .reflector_protocol import MessageType, Probe, ProbeReply
from .session_time import SessionTime
from .stats import ProbeStats

logger = logging.getLogger(__name__)


class ReflectorClient:
    """WebSocket transport for reflector probes.

    Handles:
      - Sending PING frames for the estimator (fire-and-forget)
      - Decoding PONG frames and handing them to the registered handler
      - Re-initialising the estimator whenever a connection attaches
      - Offline mode (no socket at all, fixed offset)

    Args:
        url:               WebSocket URL of the reflector.
        offline:           Skip networking entirely.
        config:            Estimator tunables.
        on_offset_updated: Optional callback with each accepted offset (ms).
    """

    def __init__(
        self,
        url: str = "",
        offline: bool = False,
        config: Optional[EstimatorConfig] = None,
        on_offset_updated: Optional[Callable[[int], None]] = None,
    ):
        self.url = url
        self.offline = offline

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._connected = False
        self._reply_handler: Optional[Callable[[ProbeReply], None]] = None
        self.peer_id: Optional[str] = None

        self._tasks: list[asyncio.Task] = []
        self._send_tasks: set[asyncio.Task] = set()

        self.estimator = SessionOffsetEstimator(
            None if offline else self,
            offline=offline,
            config=config,
            on_offset_updated=on_offset_updated,
        )
        self.session_time = SessionTime(self.estimator)

    # ---- Properties ----------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected and self._ws is not None and not self._ws.closed

    @property
    def clock_offset(self) -> Optional[int]:
        """Current offset to reflector (ms). Positive = reflector ahead."""
        return self.estimator.get_offset_estimate()

    @property
    def stats(self) -> ProbeStats:
        return self.estimator.stats

    def fetch_and_clear_reset_trigger(self) -> Optional[ResetRecord]:
        return self.estimator.fetch_and_clear_reset_trigger()

    # ---- Transport interface -------------------------------------------------

    def register_reply_handler(self, handler: Callable[[ProbeReply], None]):
        self._reply_handler = handler

    def send_probe(self, probe: Probe):
        """Queue a PING frame without waiting for it to be written."""
        if not self.is_connected:
            return
        task = asyncio.get_running_loop().create_task(self._send_bytes(probe.encode()))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def _send_bytes(self, data: bytes):
        try:
            await self._ws.send_bytes(data)
        except Exception as e:
            logger.error(f"Probe send error: {e}")

    # ---- Connection lifecycle ------------------------------------------------

    async def connect(self) -> bool:
        """Connect to the reflector and start probing.

        Returns:
            True if connection succeeded (always True offline).
        """
        if self.offline:
            logger.info("Offline mode: no reflector, fixed offset")
            return True

        # release whatever the previous attach left behind
        if self._session is not None:
            await self._cleanup()

        try:
            self._session = aiohttp.ClientSession()
            self._ws = await self._session.ws_connect(self.url, heartbeat=25.0)

            # Wait for welcome message
            msg = await asyncio.wait_for(self._ws.receive(), timeout=5.0)
            if msg.type == aiohttp.WSMsgType.TEXT:
                data = json.loads(msg.data)
                if data.get("type") == "welcome":
                    self.peer_id = data.get("peer_id")
                    logger.info(f"Connected: {self.peer_id}")

            self._connected = True
            self._tasks.append(asyncio.create_task(self._recv_loop()))

            # a freshly attached connection starts from scratch
            self.estimator.init_reflector_offsets()
            self.estimator.start()
            return True

        except Exception as e:
            logger.error(f"Connect failed: {e}")
            await self._cleanup()
            return False

    async def close(self):
        """Gracefully shut down the client."""
        logger.info("Closing...")
        self._connected = False
        self.estimator.shut_down()
        await self._cleanup()

    # ---- Receive loop --------------------------------------------------------

    async def _recv_loop(self):
        """Main receive loop — dispatches binary messages by type."""
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.BINARY:
                    self._handle_binary(msg.data)
                elif msg.type == aiohttp.WSMsgType.TEXT:
                    pass  # Ignore JSON messages
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    break
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Recv error: {e}")
        self._connected = False

    def _handle_binary(self, data: bytes):
        """Route a binary message to the appropriate handler."""
        if len(data) < 1:
            return
        if data[0] == MessageType.PONG:
            self._handle_pong(data)

    def _handle_pong(self, data: bytes):
        try:
            reply = ProbeReply.decode(data)
        except ValueError as e:
            logger.error(f"Pong decode error: {e} (size={len(data)})")
            return
        if self._reply_handler:
            self._reply_handler(reply)

    # ---- Cleanup -------------------------------------------------------------

    async def _cleanup(self):
        """Cancel tasks and close connections."""
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        sends = list(self._send_tasks)
        for task in sends:
            task.cancel()
        await asyncio.gather(*sends, return_exceptions=True)
        self._send_tasks.clear()

        if self._ws and not self._ws.closed:
            await self._ws.close()
        if self._session:
            await self._session.close()
        self._ws = None
        self._session = None
