"""Redis-backed cache of finished analysis records.

Only non-upgradeable contracts are stored: an upgradeable contract can
change its logic without changing its address, so a cached verdict could
go stale silently. ``store`` enforces this as a hard veto.

Usage:
    async with AnalysisCache() as cache:
        record = await cache.get(address, chain_id)
        if record is None:
            record = await orchestrator.analyze(...)
            await cache.store(record)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis

from owdit.core.config import get_settings
from owdit.core.types import AnalysisRecord

logger = logging.getLogger(__name__)


class AnalysisCache:
    """Async Redis cache keyed by ``address:chain_id`` with a recency index."""

    def __init__(
        self,
        url: str | None = None,
        prefix: str | None = None,
        ttl_seconds: int | None = None,
        client: Any | None = None,
    ) -> None:
        settings = get_settings()
        self._url = url or settings.redis_url
        self._prefix = prefix or settings.cache_prefix
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._client: Any | None = client
        self._enabled = True

    async def _get_client(self) -> Any:
        if not self._enabled:
            return None
        if self._client is None:
            try:
                self._client = aioredis.from_url(
                    self._url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                )
                await self._client.ping()
            except Exception as exc:
                logger.warning("Redis cache unavailable: %s - running without cache", exc)
                self._enabled = False
                self._client = None
        return self._client

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ── Keys ─────────────────────────────────────────────────────────────────

    def key_for(self, address: str, chain_id: int) -> str:
        return f"{self._prefix}:analysis:{address.lower()}:{chain_id}"

    @property
    def _index_key(self) -> str:
        return f"{self._prefix}:analysis:index"

    @property
    def _skipped_key(self) -> str:
        return f"{self._prefix}:analysis:skipped_upgradeable"

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def connect(self) -> bool:
        """Open the connection eagerly. Returns False if Redis is unreachable."""
        return await self._get_client() is not None

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> "AnalysisCache":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ── Core operations ──────────────────────────────────────────────────────

    async def get(self, address: str, chain_id: int) -> AnalysisRecord | None:
        """Return the cached record, or None on miss or error."""
        client = await self._get_client()
        if not client:
            return None
        key = self.key_for(address, chain_id)
        try:
            raw = await client.get(key)
            if raw is None:
                logger.debug("Cache miss for %s", key, extra={"cache_key": key})
                return None
            return AnalysisRecord.model_validate(json.loads(raw))
        except Exception as exc:
            logger.debug("Cache GET error for %s: %s", key, exc, extra={"cache_key": key})
            return None

    async def store(self, record: AnalysisRecord) -> bool:
        """Store a record unless it is upgradeable. Returns True if written."""
        key = self.key_for(record.address, record.chain_id)
        client = await self._get_client()

        if record.is_upgradeable or not record.cache_eligible:
            logger.info(
                "Skipping cache for upgradeable contract %s", key,
                extra={"address": record.address, "chain_id": record.chain_id},
            )
            if client:
                try:
                    await client.incr(self._skipped_key)
                except Exception as exc:
                    logger.debug("Cache INCR error for %s: %s", self._skipped_key, exc)
            return False

        if not client:
            return False
        try:
            await client.set(key, record.model_dump_json(by_alias=True), ex=self._ttl)
            await client.zadd(self._index_key, {key: record.analyzed_at.timestamp()})
            logger.info("Cached analysis for %s", key, extra={"cache_key": key})
            return True
        except Exception as exc:
            logger.debug("Cache SET error for %s: %s", key, exc, extra={"cache_key": key})
            return False

    async def delete(self, address: str, chain_id: int) -> bool:
        """Drop a cached record. Returns True if something was deleted."""
        client = await self._get_client()
        if not client:
            return False
        key = self.key_for(address, chain_id)
        try:
            await client.zrem(self._index_key, key)
            return bool(await client.delete(key))
        except Exception as exc:
            logger.debug("Cache DELETE error for %s: %s", key, exc, extra={"cache_key": key})
            return False

    async def history(
        self,
        limit: int = 20,
        offset: int = 0,
        search: str | None = None,
    ) -> list[AnalysisRecord]:
        """Most recent cached records first, optionally filtered by address or name."""
        client = await self._get_client()
        if not client:
            return []
        needle = (search or "").lower()
        records: list[AnalysisRecord] = []
        skipped = 0
        try:
            keys = await client.zrevrange(self._index_key, 0, -1)
            for key in keys:
                raw = await client.get(key)
                if raw is None:
                    # Expired by TTL; prune the index entry
                    await client.zrem(self._index_key, key)
                    continue
                record = AnalysisRecord.model_validate(json.loads(raw))
                if needle and needle not in record.address.lower() and needle not in record.contract_name.lower():
                    continue
                if skipped < offset:
                    skipped += 1
                    continue
                records.append(record)
                if len(records) >= limit:
                    break
        except Exception as exc:
            logger.debug("Cache HISTORY error: %s", exc)
        return records

    # ── Stats ────────────────────────────────────────────────────────────────

    async def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        client = await self._get_client()
        if not client:
            return {"enabled": False}
        try:
            info = await client.info("stats")
            skipped = await client.get(self._skipped_key)
            return {
                "enabled": True,
                "total_cached": await client.zcard(self._index_key),
                "skipped_upgradeable": int(skipped or 0),
                "ttl_seconds": self._ttl,
                "hits": info.get("keyspace_hits", 0),
                "misses": info.get("keyspace_misses", 0),
                "checked_at": datetime.now(timezone.utc).isoformat(),
            }
        except Exception:
            return {"enabled": True, "error": "stats unavailable"}
