"""
Cache key prefixes and the write -> invalidation mapping.

Every cached read builds its key from one of the scope prefixes below, and
every write path calls the matching invalidate_* helper after commit. A write
that forgets its helper serves stale data until the entry's TTL runs out, so
new cached reads must be added here together with the writes that affect them.

User- and restaurant-scoped prefixes end with ':' so that invalidating user 1
never touches user 10.
"""
import logging
from typing import Any, Dict, Optional

from food_order.infrastructure.cache import generate_cache_key
from food_order.interfaces.ICache import ICache

logger = logging.getLogger(__name__)

ORDERS = "orders:"
CART = "cart:"
ADDRESSES = "addresses:"
PAYMENT_METHODS = "payment_methods:"
RESTAURANTS = "restaurants:"
RESTAURANT_REVIEWS = "reviews:restaurant:"
USER_REVIEWS = "reviews:user:"


def scope(prefix: str, owner_id: Any) -> str:
    return f"{prefix}{owner_id}:"


def key_for(prefix: str, owner_id: Any, params: Optional[Dict[str, Any]] = None) -> str:
    # "_" keeps the key inside the scope even when there are no params.
    return generate_cache_key(f"{prefix}{owner_id}", {"_": 1, **(params or {})})


def invalidate(cache: ICache, *prefixes: str) -> int:
    """Drop every entry under the given prefixes. Cache errors are logged, never raised."""
    total = 0
    for prefix in prefixes:
        try:
            total += cache.delete_pattern(prefix)
        except Exception as e:
            logger.warning(f"⚠️ Cache invalidation failed for '{prefix}': {e}")
    if total:
        logger.info(f"🗑️  Invalidated {total} cache entries")
    return total


# --- write path -> prefixes ---

def invalidate_after_order_created(cache: ICache, user_id: str) -> int:
    return invalidate(cache, scope(ORDERS, user_id), scope(CART, user_id))


def invalidate_after_order_changed(cache: ICache, user_id: str) -> int:
    return invalidate(cache, scope(ORDERS, user_id))


def invalidate_after_defaultable_changed(cache: ICache, kind_prefix: str, user_id: str) -> int:
    return invalidate(cache, scope(kind_prefix, user_id))


def invalidate_after_review_changed(cache: ICache, user_id: str, restaurant_id: int) -> int:
    return invalidate(
        cache,
        scope(RESTAURANT_REVIEWS, restaurant_id),
        scope(USER_REVIEWS, user_id),
        RESTAURANTS,
    )


def cached_read(cache: ICache, key: str, loader, ttl: Optional[int] = None):
    """Serve `key` from cache, falling back to `loader` on a miss or any cache error."""
    try:
        hit = cache.get(key)
    except Exception as e:
        logger.warning(f"⚠️ Cache read failed for '{key}': {e}")
        return loader()
    if hit is not None:
        return hit
    value = loader()
    try:
        cache.set(key, value, ttl)
    except Exception as e:
        logger.warning(f"⚠️ Cache write failed for '{key}': {e}")
    return value
