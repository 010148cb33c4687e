"""Response cache for tool-free answers."""

import hashlib
import logging
from datetime import datetime, timedelta

from parley.store.base import DocumentStore
from parley.store.schema import CacheEntry, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60


def cache_key(system_prompt: str, last_user_message: str) -> str:
    return hashlib.sha256(f"{system_prompt}|{last_user_message}".encode()).hexdigest()


class ResponseCache:
    """Caches responses keyed by system prompt and last user message.

    Read and write failures are logged and treated as misses.
    """

    def __init__(self, store: DocumentStore, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)

    async def get(
        self, system_prompt: str, last_user_message: str, now: datetime | None = None
    ) -> CacheEntry | None:
        try:
            entry = await self.store.get_cache(cache_key(system_prompt, last_user_message))
        except Exception as e:
            logger.warning("Response cache read failed: %s", e)
            return None
        if entry is None or entry.expires_at <= (now or utcnow()):
            return None
        return entry

    async def put(
        self,
        system_prompt: str,
        last_user_message: str,
        response: str,
        model: str,
        now: datetime | None = None,
    ) -> None:
        entry = CacheEntry(
            key=cache_key(system_prompt, last_user_message),
            response=response,
            model=model,
            expires_at=(now or utcnow()) + self.ttl,
        )
        try:
            await self.store.put_cache(entry)
        except Exception as e:
            logger.warning("Response cache write failed: %s", e)
