# sources/extract.py
import re
from typing import Iterable, List, Optional

import soupsieve
from bs4 import BeautifulSoup
from bs4.element import Tag

from core.logger import get_logger
from core.models import SiteProfile, SiteTarget, VoucherRecord

logger = get_logger(__name__)

NOT_FOUND = "Not found"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def synthesized_id(site: str, index: int) -> str:
    return f"{site}-{index}"


def is_synthesized_id(record_id: str, site: str) -> bool:
    """True for ids made from a page position rather than taken from markup."""
    return re.fullmatch(rf"{re.escape(site)}-\d+", record_id) is not None


def normalize_id(raw: object) -> str:
    """Strip everything but ASCII letters and digits from a markup id."""
    if raw is None:
        return ""
    if isinstance(raw, list):
        raw = " ".join(str(r) for r in raw)
    return _NON_ALNUM.sub("", str(raw))


def _attr(tag: Tag | None, name: str) -> Optional[str]:
    if tag is None or not name:
        return None
    value = tag.get(name)
    if value is None:
        return None
    if isinstance(value, list):
        value = " ".join(value)
    return str(value)


def first_text(root: Tag, probes: Iterable[str]) -> Optional[str]:
    """Run the probes in order and return the first non-empty text."""
    for sel in probes:
        try:
            found = root.select_one(sel)
        except soupsieve.SelectorSyntaxError as exc:
            logger.warning("Skipping invalid selector %r: %s", sel, exc)
            continue
        if found is None:
            continue
        text = found.get_text(" ", strip=True)
        if text:
            return text
    return None


def _container_for(el: Tag, selector: str) -> Tag:
    if not selector:
        return el
    try:
        container = el.css.closest(selector)
    except soupsieve.SelectorSyntaxError as exc:
        logger.warning("Invalid container selector %r: %s", selector, exc)
        return el
    return container if container is not None else el


def _code_for(el: Tag, container: Tag, profile: SiteProfile) -> Optional[str]:
    if profile.code_attribute:
        value = _attr(el, profile.code_attribute)
        if value is not None:
            return value.strip()
    if profile.code_probes:
        return first_text(container, profile.code_probes)
    return None


def parse_item(
    el: Tag, profile: SiteProfile, target: SiteTarget, index: int
) -> VoucherRecord:
    """Build one record from a matched element and its enclosing container."""
    container = _container_for(el, profile.container_selector)

    article_id = normalize_id(_attr(el, profile.id_attribute))
    if not article_id and container is not el:
        article_id = normalize_id(_attr(container, profile.id_attribute))
        if article_id:
            # Several items may share one container; keep their ids apart
            siblings = container.select(profile.item_selector)
            if len(siblings) > 1:
                position = next(i for i, s in enumerate(siblings) if s is el)
                article_id = f"{article_id}-{position}"
    if not article_id:
        article_id = synthesized_id(profile.name, index)

    return VoucherRecord(
        id=article_id,
        source_site=profile.name,
        title=first_text(container, profile.title_probes) or NOT_FOUND,
        description=first_text(container, profile.description_probes) or NOT_FOUND,
        call_to_action=first_text(container, profile.cta_probes) or NOT_FOUND,
        merchant_name=target.merchant_name,
        coupon_code=_code_for(el, container, profile),
    )


def extract_vouchers(
    html: str, profile: SiteProfile, target: SiteTarget, start_index: int = 0
) -> List[VoucherRecord]:
    """
    Turn one listing page into voucher candidates, in document order.

    start_index offsets the synthesized ids so several pages of the same site
    never hand out the same one. Unparseable input yields an empty list.
    """
    if not isinstance(html, str) or not html.strip():
        logger.debug("Empty page for %s (%s); nothing to extract.", profile.name, target.url)
        return []

    try:
        soup = BeautifulSoup(html, "html.parser")
        nodes = soup.select(profile.item_selector)
    except soupsieve.SelectorSyntaxError as exc:
        logger.error("Invalid item selector for %s: %s", profile.name, exc)
        return []
    except Exception as exc:
        logger.warning("Could not parse page for %s (%s): %s", profile.name, target.url, exc)
        return []

    logger.debug("Found %d %s item nodes at %s.", len(nodes), profile.name, target.url)

    records: List[VoucherRecord] = []
    for offset, el in enumerate(nodes):
        try:
            records.append(parse_item(el, profile, target, start_index + offset))
        except Exception as exc:  # pragma: no cover - markup is best effort
            logger.debug("Failed to parse a %s item: %s", profile.name, exc)
    return records
