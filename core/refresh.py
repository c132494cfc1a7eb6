# core/refresh.py
import dataclasses
import enum
import os
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .board import VoucherBoard
from .errors import RefreshInProgress, TransportFailure
from .logger import get_logger
from .models import DisplayVoucher, SiteProfile, SiteTarget, VoucherRecord
from sources.extract import extract_vouchers, is_synthesized_id
from sources.gateway import parse_detail

logger = get_logger(__name__)

# Pause between two consecutive detail fetches that missed the cache
DETAIL_DELAY_SECONDS = float(os.getenv("DETAIL_DELAY_SECONDS", "1.0"))

_RECORD_FIELDS = {f.name for f in dataclasses.fields(VoucherRecord)} - {"id"}


class RefreshState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    FAILED = "failed"


BUSY_STATES = (RefreshState.FETCHING, RefreshState.EXTRACTING, RefreshState.RESOLVING)


@dataclass
class RefreshResult:
    state: RefreshState
    vouchers: List[DisplayVoucher] = field(default_factory=list)
    forced: bool = False
    purged: int = 0
    fetched_targets: List[str] = field(default_factory=list)
    failed_targets: List[str] = field(default_factory=list)
    candidates: int = 0
    cache_hits: int = 0
    detail_fetches: int = 0
    error: Optional[str] = None


Page = Tuple[SiteProfile, SiteTarget, str]
Candidate = Tuple[SiteProfile, VoucherRecord]


def splice(record: VoucherRecord, payload: dict) -> VoucherRecord:
    """Overlay cached or fetched fields on a candidate, ignoring unknown keys."""
    changes = {k: v for k, v in payload.items() if k in _RECORD_FIELDS}
    return dataclasses.replace(record, **changes)


class RefreshOrchestrator:
    """
    fetch listing pages -> extract candidates -> resolve each candidate
    through the cache or a detail fetch, publishing the board after every
    step so results show up progressively.
    """

    def __init__(
        self,
        board: VoucherBoard,
        gateway,
        profiles: Sequence[SiteProfile],
        sleep: Callable[[float], None] = time.sleep,
        detail_delay: float = DETAIL_DELAY_SECONDS,
        on_state: Optional[Callable[[RefreshState], None]] = None,
    ):
        self.board = board
        self.gateway = gateway
        self.profiles = list(profiles)
        self.sleep = sleep
        self.detail_delay = detail_delay
        self.on_state = on_state
        self.state = RefreshState.IDLE

    @property
    def is_loading(self) -> bool:
        return self.state in BUSY_STATES

    def _enter(self, state: RefreshState) -> None:
        logger.debug("Refresh state %s -> %s", self.state.value, state.value)
        self.state = state
        if self.on_state is not None:
            self.on_state(state)

    def refresh(self, force: bool = False) -> RefreshResult:
        if self.is_loading:
            raise RefreshInProgress("A refresh is already running.")

        result = RefreshResult(state=RefreshState.IDLE, forced=force)
        try:
            if force:
                result.purged = self.board.reset_for_forced_refresh()
                logger.info("Forced refresh: purged %d cache entries and reset categories.", result.purged)

            self._enter(RefreshState.FETCHING)
            pages = self._fetch_pages(force, result)

            self._enter(RefreshState.EXTRACTING)
            candidates = self._extract(pages)
            result.candidates = len(candidates)
            self.board.set_scraped([record for _, record in candidates])

            self._enter(RefreshState.RESOLVING)
            self._resolve(candidates, result)
            self.board.set_scraped(self.board.scraped, persist=True)
        except Exception as e:
            logger.exception("Refresh failed: %s", e)
            self._enter(RefreshState.FAILED)
            result.state = RefreshState.FAILED
            result.error = str(e) or e.__class__.__name__
            result.vouchers = list(self.board.display)
            return result

        self._enter(RefreshState.IDLE)
        result.vouchers = list(self.board.display)
        logger.info(
            "Refresh done: %d candidates, %d shown, %d cache hits, %d detail fetches, %d failed targets.",
            result.candidates, len(result.vouchers), result.cache_hits,
            result.detail_fetches, len(result.failed_targets),
        )
        return result

    def _fetch_pages(self, bypass_cache: bool, result: RefreshResult) -> List[Page]:
        pages: List[Page] = []
        for profile in self.profiles:
            for target in profile.targets:
                try:
                    html = self.gateway.fetch_text(target.url, bypass_cache=bypass_cache)
                except TransportFailure as exc:
                    logger.warning("Skipping %s target %s: %s", profile.name, target.url, exc)
                    result.failed_targets.append(target.url)
                    continue
                result.fetched_targets.append(target.url)
                pages.append((profile, target, html))
        return pages

    def _extract(self, pages: List[Page]) -> List[Candidate]:
        candidates: List[Candidate] = []
        seen_per_site: dict[str, int] = {}
        for profile, target, html in pages:
            start = seen_per_site.get(profile.name, 0)
            records = extract_vouchers(html, profile, target, start_index=start)
            seen_per_site[profile.name] = start + len(records)
            logger.info("%s: %d candidates from %s", profile.name, len(records), target.url)
            candidates.extend((profile, r) for r in records)
        return candidates

    def _resolve(self, candidates: List[Candidate], result: RefreshResult) -> None:
        cache = self.board.cache
        fetched_any = False
        for index, (profile, record) in enumerate(candidates):
            if not profile.has_detail or is_synthesized_id(record.id, profile.name):
                continue

            entry = cache.get(record.id)
            if entry is not None and entry.payload:
                result.cache_hits += 1
                self.board.replace_scraped(index, splice(record, entry.payload))
                continue

            if fetched_any and self.detail_delay > 0:
                self.sleep(self.detail_delay)
            fetched_any = True
            result.detail_fetches += 1

            data = self.gateway.fetch_json(profile.detail_url(record.id))
            if data is None:
                logger.debug("No detail for %s; leaving it unresolved.", record.id)
                self.board.replace_scraped(index, record)
                continue

            resolved = splice(record, parse_detail(data))
            cache.put(record.id, resolved.payload())
            self.board.replace_scraped(index, resolved)
