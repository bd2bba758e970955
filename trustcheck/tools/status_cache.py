"""
Status cache for known-bad group and flagged/confirmed user lookups.

Owned by the caller and passed into the pipeline, so several runs can share
one warm cache. Entries expire after `ttl_seconds`; `invalidate(ids)` drops
specific ids (e.g. after a moderator review), `clear()` drops everything,
and `refresh(...)` re-queries ids regardless of age.

Wraps any GroupLookup/UserLookup and implements both protocols itself, so
the deterministic checks use it transparently.
"""

import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class StatusCache:
    """TTL cache of per-id "is known bad" answers."""

    def __init__(
        self,
        group_lookup=None,
        user_lookup=None,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.group_lookup = group_lookup
        self.user_lookup = user_lookup
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # (namespace, id) -> (is_bad, stored_at)
        self._entries: Dict[Tuple[str, int], Tuple[bool, float]] = {}
        self.hits = 0
        self.misses = 0

    # ── Lookup protocols ─────────────────────────────────────────────

    async def match_known_bad_groups(self, group_ids: List[int]) -> List[int]:
        if self.group_lookup is None:
            raise RuntimeError("StatusCache has no group lookup configured")
        return await self._match("group", group_ids, self.group_lookup.match_known_bad_groups)

    async def match_flagged_or_confirmed(self, user_ids: List[int]) -> List[int]:
        if self.user_lookup is None:
            raise RuntimeError("StatusCache has no user lookup configured")
        return await self._match("user", user_ids, self.user_lookup.match_flagged_or_confirmed)

    # ── Explicit invalidation ────────────────────────────────────────

    def invalidate(self, ids: Iterable[int]) -> int:
        """Drop cached answers for `ids` in both namespaces. Returns entries removed."""
        removed = 0
        for i in ids:
            for ns in ("group", "user"):
                if self._entries.pop((ns, i), None) is not None:
                    removed += 1
        return removed

    def clear(self):
        self._entries.clear()

    async def refresh(self, group_ids: Iterable[int] = (), user_ids: Iterable[int] = ()):
        """Re-query the given ids now, replacing whatever is cached."""
        group_ids, user_ids = list(group_ids), list(user_ids)
        self.invalidate(group_ids)
        self.invalidate(user_ids)
        if group_ids:
            await self.match_known_bad_groups(group_ids)
        if user_ids:
            await self.match_flagged_or_confirmed(user_ids)

    def __len__(self) -> int:
        return len(self._entries)

    # ── Internals ────────────────────────────────────────────────────

    def _get(self, ns: str, i: int) -> Optional[bool]:
        entry = self._entries.get((ns, i))
        if entry is None:
            return None
        is_bad, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[(ns, i)]
            return None
        return is_bad

    async def _match(self, ns: str, ids: List[int], fetch) -> List[int]:
        cached: Dict[int, bool] = {}
        missing: List[int] = []
        for i in dict.fromkeys(ids):
            status = self._get(ns, i)
            if status is None:
                missing.append(i)
            else:
                cached[i] = status

        self.hits += len(cached)
        self.misses += len(missing)

        if missing:
            # Errors propagate; nothing is cached for a failed lookup
            matched = set(await fetch(missing))
            now = self._clock()
            for i in missing:
                self._entries[(ns, i)] = (i in matched, now)
                cached[i] = i in matched

        return [i for i in dict.fromkeys(ids) if cached.get(i)]
