"""
Redis-backed durable session store.

Each session is a hash at ``{prefix}:business:{business_id}:session:{id}``;
every field is stored as JSON so single-field syncs never rewrite the whole
session. Keys expire after the configured TTL.
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisSessionStore:
    """Implements ``DurableSessionStore`` on ``redis.asyncio``."""

    def __init__(self, client: "redis.Redis", ttl_seconds: int = 3600, key_prefix: str = "agent2") -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 3600, key_prefix: str = "agent2") -> "RedisSessionStore":
        client = redis.from_url(url, decode_responses=True)
        logger.info("Redis session store configured (ttl=%ss, prefix=%s)", ttl_seconds, key_prefix)
        return cls(client, ttl_seconds=ttl_seconds, key_prefix=key_prefix)

    def key(self, session_id: str, business_id: str) -> str:
        return f"{self.key_prefix}:business:{business_id}:session:{session_id}"

    async def save(self, snapshot: dict[str, Any]) -> None:
        await self._write(snapshot["id"], snapshot["business_id"], snapshot)

    async def save_fields(self, session_id: str, business_id: str, fields: dict[str, Any]) -> None:
        await self._write(session_id, business_id, fields)

    async def _write(self, session_id: str, business_id: str, fields: dict[str, Any]) -> None:
        key = self.key(session_id, business_id)
        mapping = {name: json.dumps(value, default=str) for name, value in fields.items()}
        await self.client.hset(key, mapping=mapping)
        await self.client.expire(key, self.ttl_seconds)

    async def load(self, session_id: str, business_id: str) -> Optional[dict[str, Any]]:
        raw = await self.client.hgetall(self.key(session_id, business_id))
        if not raw:
            return None
        snapshot: dict[str, Any] = {}
        for name, value in raw.items():
            if isinstance(name, bytes):
                name = name.decode()
            try:
                snapshot[name] = json.loads(value)
            except (TypeError, ValueError):
                logger.warning("Skipping undecodable field %s for session %s", name, session_id)
        return snapshot

    async def delete(self, session_id: str, business_id: str) -> None:
        await self.client.delete(self.key(session_id, business_id))

    async def extend_ttl(self, session_id: str, business_id: str, seconds: int) -> None:
        await self.client.expire(self.key(session_id, business_id), seconds)

    async def close(self) -> None:
        await self.client.aclose()
