"""
Pytest configuration and fixtures.
"""
import os

# Set before any project module configures logging
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_TO_STDOUT", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest

from core.board import VoucherBoard
from core.cache import VoucherCache
from core.errors import TransportFailure
from core.models import SiteProfile, SiteTarget
from core.storage import LocalStore

# 2026-01-15T00:00:00Z
START_MS = 1768435200000
DAY_MS = 24 * 60 * 60 * 1000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeGateway:
    """Stands in for FetchGateway; records every call."""

    def __init__(self, pages=None, details=None):
        self.pages = dict(pages or {})
        self.details = dict(details or {})
        self.text_calls = []
        self.json_calls = []

    def fetch_text(self, target_url, bypass_cache=False):
        self.text_calls.append((target_url, bypass_cache))
        page = self.pages.get(target_url)
        if page is None:
            raise TransportFailure(target_url, status=404)
        if isinstance(page, Exception):
            raise page
        return page

    def fetch_json(self, detail_url):
        self.json_calls.append(detail_url)
        return self.details.get(detail_url)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return LocalStore(str(tmp_path / "radar.sqlite3"))


@pytest.fixture
def cache(store, clock):
    return VoucherCache(store, clock=clock)


@pytest.fixture
def board(store, cache):
    return VoucherBoard(store, cache)


@pytest.fixture
def code_site():
    return SiteProfile(
        name="codes",
        base_url="https://codes.test",
        targets=[
            SiteTarget("https://codes.test/grabfood", "GrabFood"),
            SiteTarget("https://codes.test/foodpanda", "foodpanda"),
        ],
        item_selector="[data-code]",
        container_selector="div.coupon",
        code_attribute="data-code",
        id_attribute="data-id",
        title_probes=["h3", ".coupon-title"],
        description_probes=[".coupon-description", "p"],
        cta_probes=[".cta", "button"],
    )


@pytest.fixture
def article_site():
    return SiteProfile(
        name="articles",
        base_url="https://articles.test",
        targets=[SiteTarget("https://articles.test/grabfood", "GrabFood")],
        item_selector="article[data-article-id]",
        container_selector="article",
        id_attribute="data-article-id",
        title_probes=["h2"],
        description_probes=[".summary", "p"],
        cta_probes=[".cta"],
        detail_url_template="{base_url}/api/articles/{id}",
    )
