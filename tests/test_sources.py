"""
Tests for site profile resolution.
"""
from sources import SOURCES, resolve_profiles


class TestResolveProfiles:

    def test_defaults(self):
        assert [p.name for p in resolve_profiles()] == ["codewall", "dealfeed"]

    def test_disable_site(self):
        profiles = resolve_profiles({"sites": [{"name": "codewall", "enabled": False}]})
        assert [p.name for p in profiles] == ["dealfeed"]

    def test_retarget_does_not_touch_registry(self):
        cfg = {"sites": [{"name": "dealfeed", "targets": [{"url": "https://x.test/grab", "merchant": "Grab"}]}]}
        (codewall, dealfeed) = resolve_profiles(cfg)

        assert [(t.url, t.merchant_name) for t in dealfeed.targets] == [("https://x.test/grab", "Grab")]
        assert len(SOURCES["dealfeed"].targets) == 2

    def test_unknown_and_invalid_entries_are_ignored(self):
        profiles = resolve_profiles({"sites": ["junk", {"name": "nosuchsite"}]})
        assert len(profiles) == 2

    def test_empty_targets_keep_defaults(self):
        (_, dealfeed) = resolve_profiles({"sites": [{"name": "dealfeed", "targets": [{"merchant": "x"}]}]})
        assert len(dealfeed.targets) == 2

    def test_detail_url(self):
        assert SOURCES["dealfeed"].detail_url("abc123") == "https://www.dealfeed.my/api/articles/abc123"
