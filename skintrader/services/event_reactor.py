"""
Real-time market event reactor.

Holds one push-feed connection, authenticates, subscribes to the market
channels and hands every event to an ``EventHandler``. Frames are processed
strictly one at a time in arrival order. On transport failure or a rejected
login the connection is rebuilt from scratch after a bounded exponential
backoff; events sent while disconnected are not replayed.
"""

import asyncio
import json
from enum import Enum
from typing import Any, Callable, Iterable, Protocol, Tuple

from pydantic import ValidationError
from websockets import connect as ws_connect
from websockets.exceptions import WebSocketException

from skintrader.config.settings import Settings
from skintrader.models.schemas import FeedAction, FeedChannel, FeedEvent
from skintrader.utils.logging import clear_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

FEED_URL = "wss://ws.bitskins.com"

DEFAULT_CHANNELS = (
    FeedChannel.LISTED,
    FeedChannel.PRICE_CHANGED,
    FeedChannel.DELISTED_OR_SOLD,
)

AUTH_ACKS = (FeedAction.AUTH_APIKEY.value, FeedAction.AUTH.value)
CONTROL_TAGS = frozenset(action.value for action in FeedAction)


class EventHandler(Protocol):
    """Consumer of decoded feed events."""

    async def handle(self, channel: FeedChannel, event: FeedEvent) -> None:
        ...


class ConnectionState(str, Enum):
    """Lifecycle of the feed connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    SUBSCRIBED = "subscribed"
    RECEIVING = "receiving"


class MalformedFrame(ValueError):
    """A frame that is not a ``[tag, payload]`` pair."""


def decode_frame(raw: Any) -> Tuple[str, Any]:
    """Split a raw text frame into its tag and payload."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    try:
        frame = json.loads(raw)
    except ValueError as e:
        raise MalformedFrame(f"invalid JSON: {e}") from e
    if not isinstance(frame, list) or len(frame) < 2 or not isinstance(frame[0], str):
        raise MalformedFrame("expected [tag, payload]")
    return frame[0], frame[1]


class EventReactor:
    """Push-feed client driving an EventHandler."""

    def __init__(
        self,
        handler: EventHandler,
        api_key: str,
        settings: Settings,
        url: str = FEED_URL,
        channels: Iterable[FeedChannel] = DEFAULT_CHANNELS,
        connect: Callable[..., Any] = ws_connect,
    ):
        self.handler = handler
        self.api_key = api_key
        self.url = url
        self.channels = tuple(channels)
        self._connect = connect
        self.base_delay = settings.FEED_RECONNECT_DELAY
        self.max_delay = settings.FEED_MAX_RECONNECT_DELAY

        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0
        self.events_dispatched = 0
        self._ws = None
        self._running = False

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.debug("Feed state changed", previous=self.state.value, current=state.value)
            self.state = state

    def next_reconnect_delay(self) -> float:
        delay = min(self.base_delay * (2 ** self.reconnect_attempts), self.max_delay)
        self.reconnect_attempts += 1
        return delay

    async def send_action(self, action: FeedAction, data: Any) -> None:
        """Send a control action over the current connection."""
        if self._ws is None:
            raise RuntimeError("Feed is not connected")
        await self._ws.send(json.dumps([action.value, data]))

    async def run(self) -> None:
        """Connect and process events until ``stop`` is called."""
        self._running = True
        while self._running:
            try:
                await self._run_connection()
            except (WebSocketException, OSError, asyncio.TimeoutError) as e:
                logger.warning("Feed connection lost", error=str(e), state=self.state.value)
            finally:
                self._ws = None
                self._set_state(ConnectionState.DISCONNECTED)

            if not self._running:
                break

            delay = self.next_reconnect_delay()
            logger.info("Reconnecting to feed", delay=delay, attempt=self.reconnect_attempts)
            await asyncio.sleep(delay)

        logger.info("Feed reactor stopped", events_dispatched=self.events_dispatched)

    def stop(self) -> None:
        self._running = False

    async def close(self) -> None:
        """Stop and close the live connection, if any."""
        self.stop()
        if self._ws is not None:
            await self._ws.close()

    async def _run_connection(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to feed", url=self.url)
        async with self._connect(self.url) as ws:
            self._ws = ws
            self._set_state(ConnectionState.AUTHENTICATING)
            await self.send_action(FeedAction.AUTH_APIKEY, self.api_key)

            async for raw in ws:
                await self.process_frame(raw)
                if not self._running:
                    break

    async def _subscribe(self) -> None:
        for channel in self.channels:
            await self.send_action(FeedAction.SUB, channel.value)
        self._set_state(ConnectionState.SUBSCRIBED)
        logger.info("Subscribed to feed channels", channels=[c.value for c in self.channels])
        self._set_state(ConnectionState.RECEIVING)

    async def process_frame(self, raw: Any) -> None:
        """Resolve one inbound frame and act on it."""
        try:
            tag, payload = decode_frame(raw)
        except MalformedFrame as e:
            logger.warning("Dropping malformed frame", error=str(e), frame=str(raw)[:200])
            return

        if tag in CONTROL_TAGS:
            await self._handle_control(tag, payload)
            return

        try:
            channel = FeedChannel(tag)
        except ValueError:
            logger.warning("Dropping frame with unknown tag", tag=tag)
            return

        if channel not in self.channels:
            logger.debug("Ignoring unsubscribed channel", channel=tag)
            return

        try:
            event = FeedEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning("Dropping undecodable event", channel=tag, error=str(e))
            return

        await self._dispatch(channel, event)

    async def _handle_control(self, tag: str, payload: Any) -> None:
        if tag in AUTH_ACKS and self.state == ConnectionState.AUTHENTICATING:
            if payload is False:
                logger.error("Feed authentication rejected, closing connection")
                await self._ws.close()
                return
            logger.info("Feed authenticated")
            self.reconnect_attempts = 0
            await self._subscribe()
        else:
            logger.debug("Control frame", tag=tag, payload=str(payload)[:200])

    async def _dispatch(self, channel: FeedChannel, event: FeedEvent) -> None:
        set_correlation_id(f"{channel.value}:{event.id}")
        try:
            await self.handler.handle(channel, event)
            self.events_dispatched += 1
        except Exception as e:
            logger.error("Event handler failed", channel=channel.value, listing_id=event.id, error=str(e))
        finally:
            clear_correlation_id()
