import asyncio
import logging
import time
from typing import Dict, Optional, Tuple

from models.template import EmailTemplate

logger = logging.getLogger("storefront_notifications")


class _CacheEntry:
    __slots__ = ("template", "stored_at")

    def __init__(self, template: Optional[EmailTemplate], stored_at: float):
        self.template = template
        self.stored_at = stored_at


class TemplateCache:
    """
    In-process memoization over a template store.

    The store only needs an async ``get_template(identifier)`` returning an
    EmailTemplate or None. Misses for the same identifier share one store
    read. Every clear bumps a generation counter; a read that started
    before the clear still answers its caller but is not written back, so
    the cache converges on what the store holds after the invalidation.
    Negative results are kept for ``negative_ttl`` seconds.
    """

    def __init__(self, store, negative_ttl: float = 30.0, clock=time.monotonic):
        self._store = store
        self._negative_ttl = negative_ttl
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._inflight: Dict[Tuple[str, int], asyncio.Future] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _fresh(self, entry: _CacheEntry) -> bool:
        if entry.template is not None:
            return True
        return self._clock() - entry.stored_at < self._negative_ttl

    async def get_template(self, identifier: str) -> Optional[EmailTemplate]:
        entry = self._entries.get(identifier)
        if entry is not None:
            if self._fresh(entry):
                return entry.template
            del self._entries[identifier]

        key = (identifier, self._generation)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(identifier, self._generation))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        # shield: a cancelled caller must not cancel the read other callers wait on
        return await asyncio.shield(task)

    async def _load(self, identifier: str, generation: int) -> Optional[EmailTemplate]:
        template = await self._store.get_template(identifier)
        if generation != self._generation:
            logger.debug(f"Template cache cleared while loading '{identifier}', result not cached")
            return template
        self._entries[identifier] = _CacheEntry(template, self._clock())
        if template is None:
            logger.info(f"Template '{identifier}' not found, caching negative result")
            self._prune_expired()
        return template

    def _prune_expired(self):
        expired = [k for k, entry in self._entries.items() if not self._fresh(entry)]
        for key in expired:
            del self._entries[key]

    def invalidate(self, identifier: str):
        self._entries.pop(identifier, None)
        self._generation += 1

    def clear_cache(self):
        """Evicts every entry. Safe to call at any time, including during lookups."""
        self._entries.clear()
        self._generation += 1
        logger.info("Template cache cleared")
