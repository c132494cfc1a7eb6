# core/board.py
from typing import Callable, Dict, List, Optional

from .aggregate import aggregate, is_actionable_code
from .cache import VoucherCache
from .logger import get_logger
from .models import CustomVoucher, DisplayVoucher, VoucherRecord
from .overlays import CategoryVisibilityStore, CustomVoucherStore
from .storage import LocalStore
from sources.extract import is_synthesized_id

logger = get_logger(__name__)

LAST_SCRAPE_KEY = "vouchers:last-scrape"

Listener = Callable[[List[DisplayVoucher]], None]


class VoucherBoard:
    """
    The four aggregation inputs plus the current display list.

    Every mutating method recomputes the display list and hands it to the
    registered listeners before returning it.
    """

    def __init__(self, store: LocalStore, cache: Optional[VoucherCache] = None):
        self.store = store
        self.cache = cache or VoucherCache(store)
        self.custom = CustomVoucherStore(store)
        self.categories = CategoryVisibilityStore(store)
        self._scraped: List[VoucherRecord] = self._load_scraped()
        self._listeners: List[Listener] = []
        self.display: List[DisplayVoucher] = []
        self.recompute(notify=False)

    def _load_scraped(self) -> List[VoucherRecord]:
        raw = self.store.get_json(LAST_SCRAPE_KEY, [])
        records: List[VoucherRecord] = []
        if not isinstance(raw, list):
            return records
        for item in raw:
            try:
                records.append(VoucherRecord.from_dict(item))
            except (KeyError, TypeError, AttributeError) as e:
                logger.debug("Skipping unreadable stored record %r: %s", item, e)
        return records

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    @property
    def scraped(self) -> List[VoucherRecord]:
        return list(self._scraped)

    def recompute(self, notify: bool = True) -> List[DisplayVoucher]:
        hidden = self.cache.hidden_ids()
        self.display = aggregate(
            self.custom.all(),
            self._scraped,
            self.categories.get(),
            hidden.__contains__,
        )
        if notify:
            for listener in self._listeners:
                listener(self.display)
        return self.display

    # Scraped input

    def set_scraped(self, records: List[VoucherRecord], persist: bool = False) -> List[DisplayVoucher]:
        self._scraped = list(records)
        if persist:
            self.store.set_json(LAST_SCRAPE_KEY, [dict(r.payload(), id=r.id) for r in self._scraped])
        return self.recompute()

    def replace_scraped(self, index: int, record: VoucherRecord) -> List[DisplayVoucher]:
        self._scraped[index] = record
        return self.recompute()

    # Custom vouchers

    def add_custom(self, code: str, description: str = "", call_to_action: str = "",
                   merchant_name: str = "") -> CustomVoucher:
        voucher = self.custom.add(code, description, call_to_action, merchant_name)
        self.recompute()
        return voucher

    def edit_custom(self, voucher_id: str, **changes: str) -> CustomVoucher:
        voucher = self.custom.edit(voucher_id, **changes)
        self.recompute()
        return voucher

    def delete_custom(self, voucher_id: str) -> None:
        self.custom.delete(voucher_id)
        self.recompute()

    # Hidden set

    def _hidden_key(self, voucher_id: str) -> str:
        """
        The key a hide is stored under. Position-based ids point at whatever
        sits there after the next refresh, so those records are hidden by
        their code instead.
        """
        for record in self._scraped:
            if record.id != voucher_id:
                continue
            if is_synthesized_id(record.id, record.source_site) and is_actionable_code(record.coupon_code):
                return record.coupon_code
            break
        return voucher_id

    def hide(self, voucher_id: str) -> List[DisplayVoucher]:
        self.cache.set_hidden(self._hidden_key(voucher_id), True)
        return self.recompute()

    def unhide(self, voucher_id: str) -> List[DisplayVoucher]:
        key = self._hidden_key(voucher_id)
        self.cache.set_hidden(voucher_id, False)
        if key != voucher_id:
            self.cache.set_hidden(key, False)
        return self.recompute()

    # Categories

    def set_category_hidden(self, category: str, hidden: bool) -> Dict[str, bool]:
        state = self.categories.set_hidden(category, hidden)
        self.recompute()
        return state

    def toggle_category(self, category: str) -> Dict[str, bool]:
        state = self.categories.toggle(category)
        self.recompute()
        return state

    def reset_for_forced_refresh(self) -> int:
        purged = self.cache.purge_all()
        self.categories.reset()
        self.recompute()
        return purged

    def find(self, voucher_id: str) -> Optional[DisplayVoucher]:
        for row in self.display:
            if row.id == voucher_id:
                return row
        return None
