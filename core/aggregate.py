# core/aggregate.py
import re
from typing import Callable, Dict, Iterable, List, Optional

from .models import CustomVoucher, DisplayVoucher, VoucherRecord

# Codes sites publish when a deal needs no code, normalised by _normalize_code
EXCLUDED_CODES = frozenset({"nocoderequired", "nocodeneeded", "nocode"})

# Checked in order; first substring hit wins
CATEGORY_KEYWORDS = (
    ("grabfood", "grabfood"),
    ("grab", "grabfood"),
    ("foodpanda", "foodpanda"),
)

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def _normalize_code(code: str) -> str:
    return _NON_ALNUM.sub("", code.lower())


def is_excluded_code(code: Optional[str]) -> bool:
    if not code or not code.strip():
        return False
    return _normalize_code(code) in EXCLUDED_CODES


def is_actionable_code(code: Optional[str]) -> bool:
    return bool(code and code.strip()) and not is_excluded_code(code)


def infer_category(merchant_name: Optional[str]) -> Optional[str]:
    name = (merchant_name or "").lower()
    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in name:
            return category
    return None


def _from_custom(voucher: CustomVoucher) -> DisplayVoucher:
    return DisplayVoucher(
        id=voucher.id,
        code=voucher.code,
        title=voucher.description,
        description=voucher.description,
        call_to_action=voucher.call_to_action,
        merchant_name=voucher.merchant_name,
        source="custom",
        category=infer_category(voucher.merchant_name),
        actionable=is_actionable_code(voucher.code),
    )


def _from_record(record: VoucherRecord) -> DisplayVoucher:
    code = record.coupon_code or ""
    return DisplayVoucher(
        id=record.id,
        code=code,
        title=record.title,
        description=record.description,
        call_to_action=record.call_to_action,
        merchant_name=record.merchant_name,
        source=record.source_site,
        category=infer_category(record.merchant_name),
        actionable=is_actionable_code(code),
    )


def aggregate(
    custom: Iterable[CustomVoucher],
    scraped: Iterable[VoucherRecord],
    visibility: Dict[str, bool],
    is_hidden: Callable[[str], bool],
) -> List[DisplayVoucher]:
    """
    Build the display list: custom vouchers first, then scraped ones, both in
    their incoming order.

    Scraped records carrying a "no code" sentinel are dropped outright. After
    that a row is dropped when is_hidden() matches its id or code, or when its
    merchant falls in a category that visibility marks hidden. Merchants
    outside the known categories are never hidden by a category toggle.
    """
    def keep(row: DisplayVoucher) -> bool:
        if is_hidden(row.id) or (row.code and is_hidden(row.code)):
            return False
        if row.category is not None and visibility.get(row.category, False):
            return False
        return True

    custom_rows = [_from_custom(v) for v in custom]
    scraped_rows = [
        _from_record(r) for r in scraped if not is_excluded_code(r.coupon_code)
    ]
    return [row for row in custom_rows if keep(row)] + [
        row for row in scraped_rows if keep(row)
    ]
