"""Cross-instance invalidation over Redis pub/sub.

Each instance publishes its registry changes on one channel; peers that
receive a message from another instance invalidate their snapshot. Lost
messages are tolerated: the service's staleness window still bounds how
long a peer can serve an old view.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass

import redis.asyncio as aioredis

from featuregate.events import FlagChange
from featuregate.service import FlagService

logger = logging.getLogger(__name__)

CHANNEL = "featuregate:flags:changed"


@dataclass
class RedisSyncConfig:
    url: str = "redis://localhost:6379/0"
    channel: str = CHANNEL
    max_connections: int = 10


class RedisFlagSync:
    def __init__(self, service: FlagService, config: RedisSyncConfig, client: aioredis.Redis | None = None) -> None:
        self.config = config
        self.instance_id = str(uuid.uuid4())
        self._service = service
        self._client = client
        self._listener: asyncio.Task | None = None
        service.registry.subscribe(self.publish)

    async def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self.config.url,
                max_connections=self.config.max_connections,
                decode_responses=True,
            )
        return self._client

    def build_message(self, change: FlagChange) -> str:
        return json.dumps({"source": self.instance_id, **change.to_payload()})

    async def publish(self, change: FlagChange) -> None:
        try:
            client = await self._get_client()
            await client.publish(self.config.channel, self.build_message(change))
        except Exception:
            logger.warning("Publishing flag change %s to Redis failed", change.flag_id, exc_info=True)

    def handle_message(self, raw: str | bytes) -> bool:
        """Invalidate the local snapshot for a peer's change. Returns True if applied."""
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed flag sync message: %r", raw)
            return False
        if not isinstance(payload, dict) or payload.get("source") == self.instance_id:
            return False
        logger.debug("Peer %s changed flag %s", payload.get("source"), payload.get("flag_id"))
        self._service.invalidate()
        return True

    async def start(self) -> None:
        if self._listener is None:
            self._listener = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        client = await self._get_client()
        pubsub = client.pubsub()
        await pubsub.subscribe(self.config.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    self.handle_message(message["data"])
        finally:
            await pubsub.aclose()

    async def close(self) -> None:
        self._service.registry.unsubscribe(self.publish)
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Flag sync listener exited with an error")
            self._listener = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
