"""
Tests for the relay fetch gateway.
"""
from urllib.parse import parse_qs, unquote, urlparse

import pytest
import requests

from core.errors import TransportFailure
from sources.gateway import FetchGateway, parse_detail, with_cache_buster

RELAY = "https://relay.test/?url="


class FakeResponse:
    def __init__(self, status_code=200, text="", json_data=None, reason="OK"):
        self.status_code = status_code
        self.text = text
        self.reason = reason
        self._json = json_data

    def json(self):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response or FakeResponse()
        self.error = error
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def target_of(call):
    return unquote(call["url"][len(RELAY):])


class TestFetchText:

    def test_goes_through_relay(self):
        session = FakeSession(FakeResponse(text="<html></html>"))
        gateway = FetchGateway(session=session, relay_prefix=RELAY, timeout=5)

        assert gateway.fetch_text("https://codes.test/grab?page=1") == "<html></html>"

        (call,) = session.calls
        assert call["url"] == RELAY + "https%3A%2F%2Fcodes.test%2Fgrab%3Fpage%3D1"
        assert call["headers"] is None
        assert call["timeout"] == 5
        assert "User-Agent" in session.headers

    def test_bypass_cache(self):
        session = FakeSession(FakeResponse(text="ok"))
        FetchGateway(session=session, relay_prefix=RELAY).fetch_text(
            "https://codes.test/grab?page=1", bypass_cache=True
        )

        (call,) = session.calls
        query = parse_qs(urlparse(target_of(call)).query)
        assert query["page"] == ["1"]
        assert query["_"][0].isdigit()
        assert call["headers"]["Cache-Control"] == "no-store"

    def test_non_2xx_is_transport_failure(self):
        session = FakeSession(FakeResponse(status_code=502, reason="Bad Gateway"))
        with pytest.raises(TransportFailure) as info:
            FetchGateway(session=session, relay_prefix=RELAY).fetch_text("https://codes.test/x")
        assert info.value.status == 502
        assert info.value.url == "https://codes.test/x"

    def test_network_error_is_transport_failure(self):
        session = FakeSession(error=requests.ConnectionError("relay unreachable"))
        with pytest.raises(TransportFailure) as info:
            FetchGateway(session=session, relay_prefix=RELAY).fetch_text("https://codes.test/x")
        assert info.value.status is None
        assert "relay unreachable" in str(info.value)


class TestFetchJson:

    def test_object(self):
        session = FakeSession(FakeResponse(json_data={"code": "A"}))
        assert FetchGateway(session=session, relay_prefix=RELAY).fetch_json("https://a.test/1") == {"code": "A"}

    @pytest.mark.parametrize(
        "response",
        [
            FakeResponse(status_code=404, reason="Not Found"),
            FakeResponse(json_data=ValueError("Expecting value")),
            FakeResponse(json_data=["not", "an", "object"]),
        ],
    )
    def test_problems_yield_none(self, response):
        gateway = FetchGateway(session=FakeSession(response), relay_prefix=RELAY)
        assert gateway.fetch_json("https://a.test/1") is None

    def test_network_error_yields_none(self):
        session = FakeSession(error=requests.Timeout("slow"))
        assert FetchGateway(session=session, relay_prefix=RELAY).fetch_json("https://a.test/1") is None


class TestHelpers:

    def test_cache_buster_keeps_existing_query(self):
        assert with_cache_buster("https://a.test/p?x=1", stamp=42) == "https://a.test/p?x=1&_=42"

    def test_parse_detail_full(self):
        data = {
            "code": "RM8OFF",
            "cta": {"heading": "Order now", "value": "IGNORED"},
            "headline": "RM8 off",
            "title": "fallback",
            "description": "Min RM25",
            "merchant": {"name": "GrabFood"},
        }
        assert parse_detail(data) == {
            "coupon_code": "RM8OFF",
            "call_to_action": "Order now",
            "title": "RM8 off",
            "description": "Min RM25",
            "merchant_name": "GrabFood",
        }

    def test_parse_detail_fallbacks(self):
        data = {"cta": {"value": "FROMCTA"}, "title": "T", "content": "C", "merchant": "flat"}
        assert parse_detail(data) == {"coupon_code": "FROMCTA", "title": "T", "description": "C"}
