import argparse
import json
import os
import sys
from typing import Any, Dict, List, Optional

from core.board import VoucherBoard
from core.cache import VoucherCache
from core.errors import RefreshInProgress
from core.logger import get_logger
from core.refresh import RefreshOrchestrator, RefreshResult, RefreshState
from core.report_html import build_html_report, build_plaintext_report
from core.storage import DB_PATH, LocalStore
from sources import resolve_profiles
from sources.gateway import FetchGateway

logger = get_logger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH", "/data/config.json")


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    if not os.path.exists(path):
        logger.info("No config file at %s; using built-in sites.", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except Exception as e:
        logger.error("Failed to load config.json at %s: %s", path, e)
        raise SystemExit(1)

    if not isinstance(cfg, dict):
        logger.error("config.json must be a JSON object.")
        raise SystemExit(1)

    if "sites" in cfg and not isinstance(cfg["sites"], list):
        logger.error("config.json 'sites' must be a list.")
        raise SystemExit(1)

    return cfg


def confirm(prompt: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def build_board(db_path: str = DB_PATH) -> VoucherBoard:
    store = LocalStore(db_path)
    return VoucherBoard(store, VoucherCache(store))


def print_vouchers(board: VoucherBoard) -> None:
    print(build_plaintext_report(board.display, board.categories.get()))


def cmd_list(board: VoucherBoard, args: argparse.Namespace) -> int:
    if args.html:
        html = build_html_report(board.display, board.categories.get(), theme=args.theme)
        with open(args.html, "w", encoding="utf-8") as f:
            f.write(html)
        logger.info("Wrote %d vouchers to %s", len(board.display), args.html)
    else:
        print_vouchers(board)
    return 0


def cmd_refresh(board: VoucherBoard, args: argparse.Namespace) -> int:
    if args.force and not confirm(
        "Forced refresh clears every cached voucher, hidden flag and category setting. Continue?",
        args.yes,
    ):
        print("Forced refresh cancelled.")
        return 1

    profiles = resolve_profiles(load_config(args.config))
    if not profiles:
        logger.error("Every site is disabled in %s; nothing to refresh.", args.config)
        return 1

    orchestrator = RefreshOrchestrator(board, FetchGateway(), profiles)
    try:
        result = orchestrator.refresh(force=args.force)
    except RefreshInProgress as e:
        logger.error("%s", e)
        return 1
    return report_refresh(board, result)


def report_refresh(board: VoucherBoard, result: RefreshResult) -> int:
    print_vouchers(board)
    if result.failed_targets:
        logger.warning("Could not fetch: %s", ", ".join(result.failed_targets))
    if result.state is RefreshState.FAILED:
        print(f"Refresh failed: {result.error}. Run 'refresh' again to retry.", file=sys.stderr)
        return 2
    return 0


def cmd_add(board: VoucherBoard, args: argparse.Namespace) -> int:
    voucher = board.add_custom(args.code, args.description, args.cta, args.merchant)
    print(f"Added {voucher.id}")
    return 0


def cmd_edit(board: VoucherBoard, args: argparse.Namespace) -> int:
    changes = {
        name: value
        for name, value in (
            ("code", args.code),
            ("description", args.description),
            ("call_to_action", args.cta),
            ("merchant_name", args.merchant),
        )
        if value is not None
    }
    if not changes:
        print("Nothing to change.")
        return 1
    board.edit_custom(args.id, **changes)
    print(f"Updated {args.id}")
    return 0


def cmd_delete(board: VoucherBoard, args: argparse.Namespace) -> int:
    board.delete_custom(args.id)
    print(f"Deleted {args.id}")
    return 0


def cmd_hide(board: VoucherBoard, args: argparse.Namespace) -> int:
    row = board.find(args.id)
    label = f"'{row.title}'" if row else args.id
    if not confirm(f"Hide {label}?", args.yes):
        print("Nothing hidden.")
        return 1
    board.hide(args.id)
    print(f"Hidden {args.id}")
    return 0


def cmd_unhide(board: VoucherBoard, args: argparse.Namespace) -> int:
    board.unhide(args.id)
    print(f"Unhidden {args.id}")
    return 0


def cmd_toggle(board: VoucherBoard, args: argparse.Namespace) -> int:
    state = board.toggle_category(args.category)
    shown = ", ".join(f"{k}={'hidden' if v else 'visible'}" for k, v in sorted(state.items()))
    print(shown)
    return 0


def cmd_code(board: VoucherBoard, args: argparse.Namespace) -> int:
    row = board.find(args.id)
    if row is None or not row.actionable:
        print(f"No code to copy for {args.id}", file=sys.stderr)
        return 1
    print(row.code)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voucher-radar",
        description="Collect GrabFood and foodpanda promo codes from coupon sites.",
    )
    parser.add_argument("--db", default=DB_PATH, help="sqlite file holding cache and overlays")
    parser.add_argument("--config", default=CONFIG_PATH, help="optional site configuration")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="show the current voucher list")
    p.add_argument("--html", help="write an HTML page instead of printing")
    p.add_argument("--theme", choices=("light", "dark"), default="dark")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("refresh", help="scrape the coupon sites again")
    p.add_argument("--force", action="store_true", help="drop the cache and category settings first")
    p.add_argument("--yes", action="store_true", help="do not ask for confirmation")
    p.set_defaults(func=cmd_refresh)

    p = sub.add_parser("add", help="add a custom voucher")
    p.add_argument("code")
    p.add_argument("--description", default="")
    p.add_argument("--cta", default="")
    p.add_argument("--merchant", default="")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("edit", help="edit a custom voucher")
    p.add_argument("id")
    p.add_argument("--code")
    p.add_argument("--description")
    p.add_argument("--cta")
    p.add_argument("--merchant")
    p.set_defaults(func=cmd_edit)

    p = sub.add_parser("delete", help="delete a custom voucher")
    p.add_argument("id")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("hide", help="hide a voucher")
    p.add_argument("id")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_hide)

    p = sub.add_parser("unhide", help="show a hidden voucher again")
    p.add_argument("id")
    p.set_defaults(func=cmd_unhide)

    p = sub.add_parser("toggle", help="hide or show a merchant category")
    p.add_argument("category", help="grabfood or foodpanda")
    p.set_defaults(func=cmd_toggle)

    p = sub.add_parser("code", help="print a voucher's code for copying")
    p.add_argument("id")
    p.set_defaults(func=cmd_code)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    board = build_board(args.db)
    try:
        return args.func(board, args)
    except KeyError as e:
        print(f"No custom voucher with id {e.args[0]}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except SystemExit:
        raise
    except Exception as e:
        logger.exception("Fatal voucher radar error: %s", e)
        raise SystemExit(2)
