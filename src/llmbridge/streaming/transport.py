# src/llmbridge/streaming/transport.py
"""
In-process publish/subscribe transport for relayed streams.

Channels are addressed by a `(scope, namespace, path)` triple. Every channel
keeps the full buffer of published messages, so a subscriber that joins late
(or reconnects) replays the stream from its start before following live
messages. A channel ends when the producer closes it. Closed channels stay
readable for a retention window and are dropped once it has passed and no
subscriber is still reading them.
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

MessagePredicate = Callable[[Dict[str, Any]], bool]

DEFAULT_RETENTION_SECONDS = 60.0


class ChannelAddress(BaseModel):
    """Address of a transport channel."""
    model_config = ConfigDict(frozen=True)

    scope: str
    namespace: str
    path: str

    def __str__(self) -> str:
        return f"{self.scope}/{self.namespace}/{self.path}"


class _Channel:
    def __init__(self) -> None:
        self.messages: List[Dict[str, Any]] = []
        self.closed_at: Optional[float] = None
        self.subscribers = 0
        self.changed = asyncio.Condition()

    @property
    def closed(self) -> bool:
        return self.closed_at is not None


class InMemoryTransport:
    """
    Ordered pub/sub channels living in the current event loop.

    A single producer publishes to a channel; any number of subscribers read
    it, each in publication order.

    Args:
        retention_seconds: How long a closed channel stays readable.
        clock: Monotonic time source, in seconds.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._channels: Dict[ChannelAddress, _Channel] = {}
        self._retention_seconds = retention_seconds
        self._clock = clock

    def __contains__(self, address: ChannelAddress) -> bool:
        return address in self._channels

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def purge_expired(self) -> int:
        """Drops closed channels past the retention window that nobody is reading. Returns how many."""
        now = self._clock()
        expired = [
            address
            for address, channel in self._channels.items()
            if channel.closed and channel.subscribers == 0 and now - channel.closed_at >= self._retention_seconds
        ]
        for address in expired:
            del self._channels[address]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired transport channels")
        return len(expired)

    def _channel(self, address: ChannelAddress) -> _Channel:
        self.purge_expired()
        channel = self._channels.get(address)
        if channel is None:
            channel = _Channel()
            self._channels[address] = channel
        return channel

    def _release(self, address: ChannelAddress, channel: _Channel) -> None:
        # Nothing was ever published: the subscriber created the channel.
        if channel.subscribers == 0 and not channel.closed and not channel.messages:
            if self._channels.get(address) is channel:
                del self._channels[address]
        self.purge_expired()

    async def publish(self, address: ChannelAddress, message: Dict[str, Any]) -> None:
        """
        Append a JSON-serializable message to the channel.

        Raises:
            RuntimeError: If the channel has been closed.
        """
        channel = self._channel(address)
        if channel.closed:
            raise RuntimeError(f"Cannot publish to closed channel {address}")
        async with channel.changed:
            channel.messages.append(message)
            channel.changed.notify_all()

    async def close_channel(self, address: ChannelAddress) -> None:
        """Mark the channel as finished; subscribers end after draining the buffer."""
        channel = self._channel(address)
        async with channel.changed:
            if channel.closed_at is None:
                channel.closed_at = self._clock()
            channel.changed.notify_all()

    def messages(self, address: ChannelAddress) -> List[Dict[str, Any]]:
        """Snapshot of everything published to the channel so far."""
        channel = self._channels.get(address)
        return list(channel.messages) if channel is not None else []

    async def subscribe(
        self,
        address: ChannelAddress,
        predicate: Optional[MessagePredicate] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield the channel's messages in order, from the start of its buffer.

        Args:
            address: The channel to follow.
            predicate: Optional filter; only messages for which it returns True are yielded.
        """
        channel = self._channel(address)
        channel.subscribers += 1
        position = 0
        try:
            while True:
                async with channel.changed:
                    await channel.changed.wait_for(
                        lambda: position < len(channel.messages) or channel.closed
                    )
                    batch = channel.messages[position:]
                    closed = channel.closed
                position += len(batch)
                for message in batch:
                    if predicate is None or predicate(message):
                        yield message
                if closed and position >= len(channel.messages):
                    logger.debug(f"Subscription to {address} ended after {position} messages")
                    return
        finally:
            channel.subscribers -= 1
            self._release(address, channel)
