# core/report_html.py
import os
from pathlib import Path
from typing import Dict, List

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.models import DisplayVoucher

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

REPORT_THEME = os.getenv("REPORT_THEME", "dark").strip().lower()
if REPORT_THEME not in ("light", "dark"):
    REPORT_THEME = "dark"

THEMES = {
    "light": {
        "page_bg": "#f5f5f5",
        "card_bg": "#ffffff",
        "card_border": "#e0e0e0",
        "text_primary": "#202124",
        "text_secondary": "#555",
        "text_muted": "#999",
        "code_bg": "#e8f5e9",
        "code_text": "#1b5e20",
        "link_color": "#1a73e8",
    },
    "dark": {
        "page_bg": "#121212",
        "card_bg": "#1E1E1E",
        "card_border": "#333333",
        "text_primary": "#F1F1F1",
        "text_secondary": "#BBBBBB",
        "text_muted": "#777777",
        "code_bg": "#1B3A24",
        "code_text": "#81C784",
        "link_color": "#8AB4F8",
    },
}


def _rows(vouchers: List[DisplayVoucher]) -> List[Dict[str, object]]:
    return [
        {
            "id": v.id,
            "code": v.code if v.actionable else "",
            "title": v.title,
            "description": v.description if v.description != v.title else "",
            "call_to_action": v.call_to_action,
            "merchant_name": v.merchant_name or "Unknown merchant",
            "source": v.source,
        }
        for v in vouchers
    ]


def _summary(vouchers: List[DisplayVoucher], visibility: Dict[str, bool]) -> str:
    actionable = sum(1 for v in vouchers if v.actionable)
    muted = sorted(cat for cat, hidden in visibility.items() if hidden)
    text = f"{len(vouchers)} vouchers · {actionable} with a code"
    if muted:
        text += f" · hidden: {', '.join(muted)}"
    return text


def build_plaintext_report(
    vouchers: List[DisplayVoucher],
    visibility: Dict[str, bool],
) -> str:
    template = env.get_template("vouchers.txt")
    return template.render(
        summary_text=_summary(vouchers, visibility),
        vouchers=_rows(vouchers),
    )


def build_html_report(
    vouchers: List[DisplayVoucher],
    visibility: Dict[str, bool],
    theme: str = REPORT_THEME,
) -> str:
    colors = THEMES.get(theme, THEMES["dark"])
    template = env.get_template("vouchers.html")
    return template.render(
        title="Food delivery vouchers",
        summary_text=_summary(vouchers, visibility),
        vouchers=_rows(vouchers),
        colors=colors,
    )
