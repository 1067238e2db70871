"""
Optional portal cache clear on service start.

``clear_types`` is a comma-separated list of cache groups:
``all`` / ``case`` (every portal cache), ``category``, ``hot``, ``latest``.
"""

from typing import List

from shared.logging import get_logger

from .cache.portal_cache_store import PortalCacheStore

logger = get_logger("cache_sync.startup")

FULL_CLEAR_TYPES = ("all", "case")


async def run_startup_cache_clear(store: PortalCacheStore, clear_types: str) -> List[str]:
    """Clear the requested cache groups; return the groups that were cleared."""
    requested = [t.strip().lower() for t in (clear_types or "").split(",") if t.strip()]
    if not requested:
        logger.info("No startup cache clear requested")
        return []

    cleared: List[str] = []
    try:
        if any(t in FULL_CLEAR_TYPES for t in requested):
            if await store.del_all_cache():
                cleared.append("all")
        else:
            for clear_type in requested:
                if clear_type == "category":
                    ok = await store.del_category_cache()
                elif clear_type == "hot":
                    ok = await store.del_hot_cache()
                elif clear_type == "latest":
                    ok = await store.del_latest_cache()
                else:
                    logger.warning("Unknown startup clear type", clear_type=clear_type)
                    continue
                if ok:
                    cleared.append(clear_type)
    except Exception as e:
        logger.error("Startup cache clear failed", error=str(e))

    logger.info("Startup cache clear finished", requested=requested, cleared=cleared)
    return cleared
