# core/overlays.py
import uuid
from dataclasses import asdict, fields
from typing import Dict, List

from .aggregate import infer_category
from .logger import get_logger
from .models import CustomVoucher
from .storage import LocalStore

logger = get_logger(__name__)

CUSTOM_KEY = "vouchers:custom"
CATEGORIES_KEY = "vouchers:categories"

# Hiding one of these forces the other visible
EXCLUSIVE_CATEGORIES = ("grabfood", "foodpanda")

_EDITABLE = {f.name for f in fields(CustomVoucher)} - {"id"}


def normalize_category(category: str) -> str:
    """Map a user-typed category onto the key infer_category() produces."""
    key = category.strip().lower()
    known = infer_category(key)
    if known is not None:
        return known
    logger.warning(
        "Category '%s' matches no known merchant; toggling it hides nothing.", key
    )
    return key


class CustomVoucherStore:
    """User-authored vouchers, persisted newest first. They never expire."""

    def __init__(self, store: LocalStore):
        self.store = store

    def all(self) -> List[CustomVoucher]:
        raw = self.store.get_json(CUSTOM_KEY, [])
        if not isinstance(raw, list):
            logger.warning("Custom voucher list is not a list; ignoring it.")
            return []
        out: List[CustomVoucher] = []
        for item in raw:
            if not isinstance(item, dict) or not item.get("id") or not str(item.get("code") or "").strip():
                logger.warning("Skipping malformed custom voucher: %r", item)
                continue
            try:
                out.append(
                    CustomVoucher(**{k: str(v) for k, v in item.items() if k in _EDITABLE | {"id"}})
                )
            except TypeError as e:
                logger.warning("Skipping unreadable custom voucher %r: %s", item, e)
        return out

    def _save(self, vouchers: List[CustomVoucher]) -> None:
        self.store.set_json(CUSTOM_KEY, [asdict(v) for v in vouchers])

    def add(
        self,
        code: str,
        description: str = "",
        call_to_action: str = "",
        merchant_name: str = "",
    ) -> CustomVoucher:
        code = code.strip()
        if not code:
            raise ValueError("A custom voucher needs a code.")
        voucher = CustomVoucher(
            id=f"custom-{uuid.uuid4().hex}",
            code=code,
            description=description.strip(),
            call_to_action=call_to_action.strip(),
            merchant_name=merchant_name.strip(),
        )
        self._save([voucher] + self.all())
        logger.info("Added custom voucher %s (%s).", voucher.id, voucher.code)
        return voucher

    def edit(self, voucher_id: str, **changes: str) -> CustomVoucher:
        unknown = set(changes) - _EDITABLE
        if unknown:
            raise ValueError(f"Unknown custom voucher fields: {sorted(unknown)}")
        if "code" in changes and not changes["code"].strip():
            raise ValueError("A custom voucher needs a code.")

        vouchers = self.all()
        for voucher in vouchers:
            if voucher.id == voucher_id:
                for name, value in changes.items():
                    setattr(voucher, name, value.strip())
                self._save(vouchers)
                logger.info("Edited custom voucher %s.", voucher_id)
                return voucher
        raise KeyError(voucher_id)

    def delete(self, voucher_id: str) -> None:
        vouchers = self.all()
        remaining = [v for v in vouchers if v.id != voucher_id]
        if len(remaining) == len(vouchers):
            raise KeyError(voucher_id)
        self._save(remaining)
        logger.info("Deleted custom voucher %s.", voucher_id)


class CategoryVisibilityStore:
    """category -> hidden flag. An absent category is visible."""

    def __init__(self, store: LocalStore):
        self.store = store

    def get(self) -> Dict[str, bool]:
        raw = self.store.get_json(CATEGORIES_KEY, {})
        if not isinstance(raw, dict):
            return {}
        return {str(k): bool(v) for k, v in raw.items()}

    def set_hidden(self, category: str, hidden: bool) -> Dict[str, bool]:
        return self._apply(normalize_category(category), hidden)

    def _apply(self, category: str, hidden: bool) -> Dict[str, bool]:
        state = self.get()
        state[category] = hidden
        if hidden and category in EXCLUSIVE_CATEGORIES:
            for other in EXCLUSIVE_CATEGORIES:
                if other != category:
                    state[other] = False
        self.store.set_json(CATEGORIES_KEY, state)
        logger.info("Category %s is now %s.", category, "hidden" if hidden else "visible")
        return state

    def toggle(self, category: str) -> Dict[str, bool]:
        category = normalize_category(category)
        return self._apply(category, not self.get().get(category, False))

    def reset(self) -> None:
        self.store.set_json(CATEGORIES_KEY, {})
