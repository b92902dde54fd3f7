# ========================================================
# ================  main.py  =============================
# ========================================================
from __future__ import annotations
import argparse
import json
import sys
from typing import Any, Dict, Optional

import requests

import config
from loggers import DEBUG_LOGGER
from models import FoundVideo
from session import BrowsingSession, SessionError
from stores import KeyValueStore, ProviderStore, RecentsStore
from submanagers import DatabaseConfig, DatabaseSubmanager, DetectorScript, StaticPageProbe


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="scrimm", description="Find the real video behind a web page.")
    p.add_argument("--quiet", action="store_true", help="Do not echo log lines to stderr")
    sub = p.add_subparsers(dest="command", required=True)

    d = sub.add_parser("detect", help="Open URL in a browser and print the first video found")
    d.add_argument("url")
    d.add_argument("--headless", action="store_true", help="Run the browser without a window")
    d.add_argument("--timeout", type=float, default=0.0, help="Give up after N seconds (0 = wait)")
    d.add_argument("--json", action="store_true", help="Print JSON")
    d.add_argument("--save", action="store_true", help="Add the video to recents")
    d.add_argument(
        "--extra", action="append", default=[],
        help="key=val (session.key=val, detector.key=val, all.key=val)",
    )

    pr = sub.add_parser("probe", help="Scan the page HTML for media without a browser")
    pr.add_argument("url")
    pr.add_argument("--json", action="store_true", help="Print JSON")

    r = sub.add_parser("recents", help="List recently played videos")
    r.add_argument("--clear", action="store_true", help="Remove all recents")
    r.add_argument("--json", action="store_true", help="Print JSON")

    sub.add_parser("providers", help="List search providers")
    sub.add_parser("gui", help="Launch the desktop app")
    return p


def _print_video(video: FoundVideo, as_json: bool) -> None:
    if as_json:
        print(json.dumps(video.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(f"{video.page_title}\n{video.video_url}")


def _open_recents() -> RecentsStore:
    config.ensure_app_dirs()
    db = DatabaseSubmanager(DatabaseConfig(), logger=DEBUG_LOGGER)
    recents = RecentsStore(KeyValueStore(db))
    recents.load()
    return recents


def _cmd_detect(args: argparse.Namespace, extras: Dict[str, Dict[str, Any]]) -> int:
    url = config.normalize_address(args.url)
    if url is None:
        print(f"Error: not a web address: {args.url}", file=sys.stderr)
        return 2

    session_cfg = BrowsingSession.Config()
    detector_cfg = DetectorScript.Config()
    for group in ("all", "session"):
        config.apply_extras(session_cfg, extras.get(group))
    for group in ("all", "detector"):
        config.apply_extras(detector_cfg, extras.get(group))
    if args.headless:
        session_cfg.headless = True

    session = BrowsingSession(url, config=session_cfg, detector=DetectorScript(detector_cfg))
    try:
        with session:
            video = session.wait_for_video(timeout_s=args.timeout or None)
    except SessionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130

    if video is None:
        print("No video found.", file=sys.stderr)
        return 1
    if args.save:
        _open_recents().add_or_update(video)
    _print_video(video, args.json)
    return 0


def _cmd_probe(args: argparse.Namespace) -> int:
    url = config.normalize_address(args.url)
    if url is None:
        print(f"Error: not a web address: {args.url}", file=sys.stderr)
        return 2
    try:
        video = StaticPageProbe().probe(url)
    except requests.RequestException as e:
        print(f"Error: could not fetch {url}: {e}", file=sys.stderr)
        return 1
    if video is None:
        print("No video declared in the page HTML.", file=sys.stderr)
        return 1
    _print_video(video, args.json)
    return 0


def _cmd_recents(args: argparse.Namespace) -> int:
    recents = _open_recents()
    if args.clear:
        recents.clear_all()
        print("Recents cleared.")
        return 0
    if args.json:
        print(json.dumps([it.to_dict() for it in recents.items], indent=2, ensure_ascii=False))
        return 0
    if not recents.items:
        print("(no recents)")
    for it in recents.items:
        print(f"{it.playback_time:8.1f}s  {it.title}\n          {it.url_string}")
    return 0


def _cmd_providers() -> int:
    providers = ProviderStore().load()
    if not providers:
        print("(no providers)")
    for p in providers:
        print(f"{p.name}: {p.search_url}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    DEBUG_LOGGER.echo = not args.quiet

    try:
        extras = config.parse_extras(getattr(args, "extra", []) or [])
    except Exception as e:
        parser.error(f"Failed to parse --extra: {e}")
        return 2

    try:
        if args.command == "detect":
            return _cmd_detect(args, extras)
        if args.command == "probe":
            return _cmd_probe(args)
        if args.command == "recents":
            return _cmd_recents(args)
        if args.command == "providers":
            return _cmd_providers()
        if args.command == "gui":
            import gui
            return gui.main()
    except (TypeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    parser.error(f"Unknown command {args.command!r}")
    return 2


if __name__ == "__main__":

    raise SystemExit(main())
