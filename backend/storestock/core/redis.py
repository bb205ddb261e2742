"""storestock — Redis client for the stock read cache.

The cache is a read-through layer in front of per-product stock reads and is
invalidated after every committed movement. Entries carry the per-product
generation they were read under. Transfer validation never reads it.
"""
import json
import logging
from typing import Optional
from uuid import UUID

import redis.asyncio as redis

from storestock.config import get_settings

logger = logging.getLogger(__name__)

_redis: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get Redis connection (application cache DB)."""
    global _redis
    if _redis is None:
        _redis = redis.from_url(get_settings().REDIS_URL, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def stock_cache_key(business_id: UUID, product_id: UUID) -> str:
    """Cache key for per-location quantities: stock:{business}:{product}"""
    return f"stock:{business_id}:{product_id}"


def stock_generation_key(business_id: UUID, product_id: UUID) -> str:
    """Counter bumped on every invalidation: stock:gen:{business}:{product}"""
    return f"stock:gen:{business_id}:{product_id}"


async def get_stock_generation(business_id: UUID, product_id: UUID) -> str | None:
    """Current generation for a product, read before the database read it will tag.

    None when the cache is off or unreachable; nothing is cached in that case.
    """
    if not get_settings().STOCK_CACHE_ENABLED:
        return None
    try:
        r = await get_redis()
        generation = await r.get(stock_generation_key(business_id, product_id))
    except redis.RedisError as exc:
        logger.warning("Stock cache generation read failed for product %s: %s", product_id, exc)
        return None
    return generation or "0"


async def get_cached_quantities(business_id: UUID, product_id: UUID) -> dict[UUID, int] | None:
    """Cached quantities, or None when missing or tagged with an older generation."""
    settings = get_settings()
    if not settings.STOCK_CACHE_ENABLED:
        return None
    try:
        r = await get_redis()
        cached = await r.get(stock_cache_key(business_id, product_id))
        if cached is None:
            return None
        generation = await r.get(stock_generation_key(business_id, product_id)) or "0"
    except redis.RedisError as exc:
        logger.warning("Stock cache read failed for product %s: %s", product_id, exc)
        return None
    entry = json.loads(cached)
    if entry.get("generation") != generation:
        return None
    return {UUID(k): int(v) for k, v in entry["quantities"].items()}


async def set_cached_quantities(
    business_id: UUID,
    product_id: UUID,
    quantities: dict[UUID, int],
    generation: str | None,
) -> None:
    """Store quantities read under ``generation``.

    An invalidation between that read and this write bumps the counter, so the
    entry is ignored on the next read instead of serving stale stock.
    """
    settings = get_settings()
    if not settings.STOCK_CACHE_ENABLED or generation is None:
        return
    payload = json.dumps({
        "generation": generation,
        "quantities": {str(k): v for k, v in quantities.items()},
    })
    try:
        r = await get_redis()
        await r.setex(stock_cache_key(business_id, product_id), settings.STOCK_CACHE_TTL, payload)
    except redis.RedisError as exc:
        logger.warning("Stock cache write failed for product %s: %s", product_id, exc)


async def invalidate_stock(business_id: UUID, product_ids: set[UUID]) -> None:
    """Drop cached quantities for every product touched by a committed movement."""
    if not product_ids or not get_settings().STOCK_CACHE_ENABLED:
        return
    try:
        r = await get_redis()
        for pid in product_ids:
            await r.incr(stock_generation_key(business_id, pid))
        await r.delete(*(stock_cache_key(business_id, pid) for pid in product_ids))
    except redis.RedisError as exc:
        logger.warning("Stock cache invalidation failed: %s", exc)
