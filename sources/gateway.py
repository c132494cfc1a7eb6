# sources/gateway.py
import os
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlparse, urlunparse

import requests

from core.errors import TransportFailure
from core.logger import get_logger
from core.storage import now_epoch_ms

logger = get_logger(__name__)

# Every request goes through this public CORS relay. If it is down, so is every fetch.
RELAY_PREFIX = os.getenv("CORS_RELAY_PREFIX", "https://corsproxy.io/?url=")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
)

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def with_cache_buster(url: str, stamp: int | None = None) -> str:
    parsed = urlparse(url)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.append(("_", str(stamp if stamp is not None else now_epoch_ms())))
    return urlunparse(parsed._replace(query=urlencode(query)))


def _dig(data: Dict[str, Any], *path: str) -> Any:
    node: Any = data
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _first_str(*values: Any) -> Optional[str]:
    for v in values:
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None


def parse_detail(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map a per-article JSON document onto record fields. Only the fields the
    document actually carries are returned.
    """
    out: Dict[str, Any] = {}
    code = _first_str(data.get("code"), _dig(data, "cta", "value"))
    if code is not None:
        out["coupon_code"] = code
    fields = {
        "call_to_action": _first_str(_dig(data, "cta", "heading")),
        "title": _first_str(data.get("headline"), data.get("title")),
        "description": _first_str(data.get("description"), data.get("content")),
        "merchant_name": _first_str(_dig(data, "merchant", "name")),
    }
    out.update({k: v for k, v in fields.items() if v is not None})
    return out


class FetchGateway:
    """GETs through the CORS relay. One session is reused for every request."""

    def __init__(
        self,
        session: requests.Session | None = None,
        relay_prefix: str = RELAY_PREFIX,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self.relay_prefix = relay_prefix
        self.timeout = timeout

    def relay_url(self, target_url: str) -> str:
        return f"{self.relay_prefix}{quote(target_url, safe='')}"

    def _get(self, target_url: str, headers: Dict[str, str] | None = None) -> requests.Response:
        url = self.relay_url(target_url)
        logger.debug("GET %s via relay", target_url)
        try:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportFailure(target_url, reason=str(exc)) from exc

        if not 200 <= resp.status_code < 300:
            raise TransportFailure(target_url, status=resp.status_code, reason=resp.reason or "")
        return resp

    def fetch_text(self, target_url: str, bypass_cache: bool = False) -> str:
        """
        Fetch a listing page. Raises TransportFailure on a non-2xx status or a
        network error; the caller drops that target and moves on.
        """
        headers = None
        if bypass_cache:
            target_url = with_cache_buster(target_url)
            headers = dict(NO_STORE_HEADERS)
        return self._get(target_url, headers=headers).text

    def fetch_json(self, detail_url: str) -> Optional[Dict[str, Any]]:
        """Best-effort per-article fetch; any problem is logged and yields None."""
        try:
            resp = self._get(detail_url)
        except TransportFailure as exc:
            logger.warning("Detail fetch failed: %s", exc)
            return None

        try:
            data = resp.json()
        except ValueError as exc:
            logger.warning("Detail response from %s is not JSON: %s", detail_url, exc)
            return None

        if not isinstance(data, dict):
            logger.warning("Detail response from %s is not an object; ignoring.", detail_url)
            return None
        return data
