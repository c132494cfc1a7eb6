# sources/profiles.py
"""Built-in coupon-listing sites. config.json can disable or retarget them."""
from core.models import SiteProfile, SiteTarget

CODE_WALL = SiteProfile(
    name="codewall",
    base_url="https://www.codewall.my",
    targets=[
        SiteTarget("https://www.codewall.my/grabfood-promo-codes", "GrabFood"),
        SiteTarget("https://www.codewall.my/foodpanda-vouchers", "foodpanda"),
    ],
    # Every element that carries a code attribute is one voucher
    item_selector="[data-code]",
    container_selector="div.coupon, li.coupon, div.offer, article",
    code_attribute="data-code",
    id_attribute="data-id",
    title_probes=["h3", ".coupon-title", ".offer-title", "h2", "strong"],
    description_probes=[".coupon-description", ".offer-description", ".description", "p"],
    cta_probes=[".coupon-cta", ".cta", "button", "a.btn"],
)

DEAL_FEED = SiteProfile(
    name="dealfeed",
    base_url="https://www.dealfeed.my",
    targets=[
        SiteTarget("https://www.dealfeed.my/brands/grabfood", "GrabFood"),
        SiteTarget("https://www.dealfeed.my/brands/foodpanda", "foodpanda"),
    ],
    # Articles only link to the deal; the code comes from the per-article JSON
    item_selector="article[data-article-id]",
    container_selector="article",
    id_attribute="data-article-id",
    code_probes=["[data-coupon]", ".code"],
    title_probes=["h2", "h3", ".article-title", "a[title]"],
    description_probes=[".article-summary", ".summary", "p"],
    cta_probes=[".article-cta", ".cta", "a.button"],
    detail_url_template="{base_url}/api/articles/{id}",
)

BUILTIN_PROFILES = [CODE_WALL, DEAL_FEED]
