# core/models.py
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class VoucherRecord:
    """
    One scraped candidate believed to carry a voucher.
    Records are never mutated; detail resolution builds a new one.
    """
    id: str
    source_site: str
    title: str
    description: str
    call_to_action: str
    merchant_name: str
    coupon_code: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("id")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoucherRecord":
        return cls(
            id=str(data["id"]),
            source_site=str(data.get("source_site", "")),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            call_to_action=str(data.get("call_to_action", "")),
            merchant_name=str(data.get("merchant_name", "")),
            coupon_code=data.get("coupon_code"),
        )


@dataclass
class CachedEntry:
    payload: Dict[str, Any]
    expires_at_ms: int
    hidden: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {
            "payload": self.payload,
            "expires_at_ms": self.expires_at_ms,
            "hidden": self.hidden,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CachedEntry":
        payload = data.get("payload")
        return cls(
            payload=payload if isinstance(payload, dict) else {},
            expires_at_ms=int(data.get("expires_at_ms", 0)),
            hidden=bool(data.get("hidden", False)),
        )


@dataclass
class CustomVoucher:
    id: str
    code: str
    description: str = ""
    call_to_action: str = ""
    merchant_name: str = ""


@dataclass(frozen=True)
class DisplayVoucher:
    """A row of the aggregated display list."""
    id: str
    code: str
    title: str
    description: str
    call_to_action: str
    merchant_name: str
    source: str
    category: Optional[str] = None
    actionable: bool = True


@dataclass
class SiteTarget:
    url: str
    merchant_name: str


@dataclass
class SiteProfile:
    """
    How to read one coupon-listing site. Each *_probes field is an ordered
    list of CSS selectors; the first one yielding text wins.
    """
    name: str
    base_url: str
    targets: list[SiteTarget]
    item_selector: str
    container_selector: str = ""
    code_attribute: str = ""
    code_probes: list[str] = field(default_factory=list)
    id_attribute: str = ""
    title_probes: list[str] = field(default_factory=list)
    description_probes: list[str] = field(default_factory=list)
    cta_probes: list[str] = field(default_factory=list)
    detail_url_template: str = ""
    enabled: bool = True

    @property
    def has_detail(self) -> bool:
        return bool(self.detail_url_template)

    def detail_url(self, article_id: str) -> str:
        return self.detail_url_template.format(base_url=self.base_url, id=article_id)
