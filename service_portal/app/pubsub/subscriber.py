"""
Redis pub/sub subscription loop for invalidation messages.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

import redis.asyncio as redis

from shared.logging import get_logger

Handler = Callable[[str, str], Union[Any, Awaitable[Any]]]


def _decode(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class InvalidationSubscriber:
    """Delivers ``(payload, channel)`` pairs from one Redis channel to a handler."""

    def __init__(self, redis_client: redis.Redis, channel: str, handler: Handler,
                 retry_delay: float = 1.0):
        self.redis = redis_client
        self.channel = channel
        self.handler = handler
        self.retry_delay = retry_delay
        self.logger = get_logger("cache_sync.subscriber")
        self.running = False
        self.messages_received = 0
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the background listen task."""
        if self.running:
            return
        self.running = True
        self._task = asyncio.create_task(self._listen_loop())
        self.logger.info("Invalidation subscriber started", channel=self.channel)

    async def stop(self):
        """Stop listening and close the subscription."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.logger.info("Invalidation subscriber stopped", channel=self.channel)

    async def _listen_loop(self):
        """Subscribe, deliver messages, resubscribe after transport errors."""
        while self.running:
            pubsub = self.redis.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                self.logger.info("Subscribed to channel", channel=self.channel)

                async for message in pubsub.listen():
                    if not self.running:
                        break
                    if message.get("type") != "message":
                        continue
                    await self._deliver(message)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                self.logger.error("Subscription error", channel=self.channel, error=str(e))

            finally:
                await self._close(pubsub)

            if self.running:
                await asyncio.sleep(self.retry_delay)  # Back off before resubscribing

    async def _deliver(self, message: dict):
        self.messages_received += 1
        payload = _decode(message.get("data"))
        channel = _decode(message.get("channel"))
        try:
            result = self.handler(payload, channel)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error("Invalidation handler failed", channel=channel, error=str(e))

    async def _close(self, pubsub):
        try:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
        except Exception as e:
            self.logger.debug("Failed to close subscription cleanly", error=str(e))
