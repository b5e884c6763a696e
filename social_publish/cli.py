"""CLI entry point for social-publish.

Usage:
    social-publish publish --content TEXT [--targets rss,mastodon] [--link URL]
                           [--language en] [--cleanup-html] [--image UUID ...]
    social-publish status
    social-publish refresh {linkedin,threads}
    social-publish posts
    social-publish upload PATH [--alt TEXT]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from social_publish.config import load_config, SocialConfig
from social_publish.errors import ApiError, CompositeError
from social_publish.factory import App, build_app
from social_publish.models import PublishRequest

logger = logging.getLogger(__name__)


def cmd_publish(app: App, request: PublishRequest) -> int:
    try:
        outcome = asyncio.run(app.orchestrator.publish(request))
    except CompositeError as exc:
        print(f"{exc.message} (status {exc.status})", file=sys.stderr)
        for r in exc.responses:
            detail = r.get("result") or r.get("error")
            print(f"  [{r['type'].upper()}] {r['module']}: {detail}")
        return 1
    except ApiError as exc:
        print(f"Error: {exc.message} (status {exc.status})", file=sys.stderr)
        return 1

    for module, result in outcome.to_dict().items():
        print(f"  [PUBLISHED] {module}: {json.dumps(result)}")
    return 0


def cmd_status(app: App) -> int:
    cfg = app.config
    print(f"Base URL: {cfg.base_url}")
    print(f"Database: {cfg.db_path}")
    print(f"Mastodon: {'configured' if cfg.mastodon.configured else 'not configured'}")
    print(f"Bluesky:  {'configured' if cfg.bluesky.configured else 'not configured'}")
    for provider in ("twitter", "linkedin", "threads"):
        flow = app.flows.get(provider)
        if flow is None:
            print(f"{provider.capitalize() + ':':<10}not configured")
            continue
        status = flow.status()
        authorized = (
            f"authorized {status.created_at:%Y-%m-%d %H:%M UTC}"
            if status.has_authorization and status.created_at else "not authorized"
        )
        print(f"{provider.capitalize() + ':':<10}configured, {authorized}")
    return 0


def cmd_refresh(app: App, provider: str) -> int:
    flow = app.refreshable_flow(provider)
    if flow is None:
        print(f"{provider} is not configured.", file=sys.stderr)
        return 1
    try:
        cred = asyncio.run(flow.refresh())
    except ApiError as exc:
        print(f"Refresh failed: {exc.message} (status {exc.status})", file=sys.stderr)
        return 1
    print(f"Refreshed {provider} token ({cred.kind}).")
    return 0


def cmd_posts(app: App) -> int:
    posts = app.posts.get_all()
    print(f"Posts: {len(posts)}")
    for p in posts:
        targets = ",".join(p.targets) or "-"
        print(f"  {p.created_at:%Y-%m-%d %H:%M} {p.uuid} [{targets}] {p.content[:60]}")
    return 0


def cmd_upload(app: App, path: Path, alt: str | None = None) -> int:
    try:
        content = path.read_bytes()
    except OSError as exc:
        print(f"Cannot read {path}: {exc}", file=sys.stderr)
        return 1
    try:
        upload = app.files.save(content, path.name, alt_text=alt)
    except ApiError as exc:
        print(f"Error: {exc.message} (status {exc.status})", file=sys.stderr)
        return 1
    print(f"Uploaded {upload.uuid} ({upload.mimetype}, {upload.size} bytes)")
    print(f"  {app.files.resolve_image_url(upload.uuid)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="social-publish", description="Social publishing CLI")
    parser.add_argument("--config", type=Path, default=None, help="Config YAML file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    publish_p = sub.add_parser("publish", help="Publish a post to the feed and platforms")
    publish_p.add_argument("--content", required=True)
    publish_p.add_argument("--targets", default="rss", help="Comma-separated target list")
    publish_p.add_argument("--link", default=None)
    publish_p.add_argument("--language", default=None)
    publish_p.add_argument("--cleanup-html", action="store_true")
    publish_p.add_argument("--image", action="append", default=[], help="Uploaded image UUID")

    sub.add_parser("status", help="Show configuration and authorization status")

    refresh_p = sub.add_parser("refresh", help="Refresh a stored OAuth token")
    refresh_p.add_argument("provider", choices=["linkedin", "threads"])

    sub.add_parser("posts", help="List published posts")

    upload_p = sub.add_parser("upload", help="Upload an image for later posts")
    upload_p.add_argument("path", type=Path)
    upload_p.add_argument("--alt", default=None, help="Alt text")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.command:
        parser.print_help()
        return 0

    cfg: SocialConfig = load_config(args.config)
    app = build_app(cfg)
    try:
        if args.command == "publish":
            request = PublishRequest(
                content=args.content,
                targets=[t.strip() for t in args.targets.split(",") if t.strip()],
                link=args.link,
                language=args.language,
                cleanup_html=args.cleanup_html,
                images=args.image or None,
            )
            return cmd_publish(app, request)
        if args.command == "status":
            return cmd_status(app)
        if args.command == "refresh":
            return cmd_refresh(app, args.provider)
        if args.command == "posts":
            return cmd_posts(app)
        if args.command == "upload":
            return cmd_upload(app, args.path, args.alt)
    finally:
        app.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
