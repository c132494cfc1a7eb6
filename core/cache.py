# core/cache.py
import calendar
import datetime
import os
from typing import Any, Callable, Dict, List, Optional, Set

import pytz

from .errors import DecodeFailure
from .logger import get_logger
from .models import CachedEntry
from .storage import LocalStore, decode_json, now_epoch_ms

logger = get_logger(__name__)

CACHE_PREFIX = "voucher-cache:"
CACHE_TTL_MONTHS = int(os.getenv("CACHE_TTL_MONTHS", "2"))


def add_months(epoch_ms: int, months: int) -> int:
    """Calendar-month arithmetic; the day is clamped to the target month's length."""
    moment = datetime.datetime.fromtimestamp(epoch_ms / 1000, tz=pytz.UTC)
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    shifted = moment.replace(year=year, month=month, day=day)
    return int(shifted.timestamp() * 1000)


class VoucherCache:
    """
    Per-article voucher cache with a sliding TTL.

    Expiry is lazy: an entry read after its deadline is deleted and reported
    as absent. The hidden flag belongs to the entry, not to the payload, so
    it survives every put() until the entry is physically removed.
    """

    def __init__(
        self,
        store: LocalStore,
        ttl_months: int = CACHE_TTL_MONTHS,
        clock: Callable[[], int] = now_epoch_ms,
    ):
        self.store = store
        self.ttl_months = ttl_months
        self.clock = clock

    def _key(self, article_id: str) -> str:
        return f"{CACHE_PREFIX}{article_id}"

    def _decode(self, article_id: str, data: Any) -> Optional[CachedEntry]:
        if not isinstance(data, dict):
            return None
        try:
            return CachedEntry.from_json(data)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding malformed cache entry %s: %s", article_id, e)
            return None

    def _read_raw(self, article_id: str) -> Optional[CachedEntry]:
        return self._decode(article_id, self.store.get_json(self._key(article_id)))

    def _write(self, article_id: str, entry: CachedEntry) -> None:
        self.store.set_json(self._key(article_id), entry.to_json())

    def get(self, article_id: str) -> Optional[CachedEntry]:
        entry = self._read_raw(article_id)
        if entry is None:
            return None
        if self.clock() > entry.expires_at_ms:
            logger.debug("Cache entry %s expired; purging.", article_id)
            self.store.remove(self._key(article_id))
            return None
        return entry

    def put(self, article_id: str, payload: Dict[str, Any]) -> CachedEntry:
        # Read raw: a stale entry that has not been purged yet still donates its flag
        previous = self._read_raw(article_id)
        entry = CachedEntry(
            payload=dict(payload),
            expires_at_ms=add_months(self.clock(), self.ttl_months),
            hidden=previous.hidden if previous else False,
        )
        self._write(article_id, entry)
        return entry

    def set_hidden(self, article_id: str, hidden: bool = True) -> CachedEntry:
        entry = self.get(article_id)
        if entry is None:
            entry = CachedEntry(
                payload={},
                expires_at_ms=add_months(self.clock(), self.ttl_months),
            )
        entry.hidden = hidden
        self._write(article_id, entry)
        logger.info("Voucher %s %s.", article_id, "hidden" if hidden else "unhidden")
        return entry

    def ids(self) -> List[str]:
        return [k[len(CACHE_PREFIX):] for k in self.store.keys(CACHE_PREFIX)]

    def hidden_ids(self) -> Set[str]:
        """Ids of live hidden entries, from a single scan of the namespace."""
        now = self.clock()
        hidden: Set[str] = set()
        for key, raw in self.store.items(CACHE_PREFIX):
            article_id = key[len(CACHE_PREFIX):]
            try:
                entry = self._decode(article_id, decode_json(raw))
            except DecodeFailure as e:
                logger.warning("Ignoring unreadable cache entry %s: %s", article_id, e)
                continue
            if entry is None:
                continue
            if now > entry.expires_at_ms:
                logger.debug("Cache entry %s expired; purging.", article_id)
                self.store.remove(key)
                continue
            if entry.hidden:
                hidden.add(article_id)
        return hidden

    def purge_all(self) -> int:
        keys = self.store.keys(CACHE_PREFIX)
        for key in keys:
            self.store.remove(key)
        logger.info("Purged %d cache entries.", len(keys))
        return len(keys)
