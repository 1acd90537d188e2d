from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Optional

from .builder import build_site
from .config import FEED_LIMIT, POSTS_PER_PAGE, BuildSettings, SiteConfig, load_config
from .errors import ConfigError, SiteError
from .utils import parse_bool, parse_int


def settings_from_args(args: argparse.Namespace) -> BuildSettings:
    static_dir = Path(args.static) if args.static else None
    return BuildSettings(
        content_dir=Path(args.content),
        templates_dir=Path(args.templates),
        output_dir=Path(args.output),
        static_dir=static_dir,
        site=SiteConfig(
            site_name=args.site_name,
            site_description=args.site_description,
            site_url=(args.site_url or "").strip(),
            posts_per_page=max(1, args.posts_per_page),
            feed_limit=max(0, args.feed_limit),
            enable_rss=args.enable_rss,
            enable_atom=args.enable_atom,
            enable_sitemap=args.enable_sitemap,
        ),
        toc_depth=args.toc_depth,
        build_workers=args.build_workers,
        clean=args.clean,
        strict=args.strict,
    )


def build_parser(config: dict, config_path: str) -> argparse.ArgumentParser:
    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    def cfg_str(key: str, default: str) -> str:
        return str(cfg_value(key, default))

    def cfg_bool(key: str, default: bool) -> bool:
        return parse_bool(cfg_value(key, default))

    def cfg_int(key: str, default: int) -> int:
        return parse_int(cfg_value(key, default), default)

    parser = argparse.ArgumentParser(prog="mdsite", description="Build a static site from Markdown content.")
    parser.add_argument("--config", default=config_path, help="Path to site config file (TOML/YAML/JSON).")
    parser.add_argument("--content", default=cfg_str("content", "content"), help="Directory containing content files.")
    parser.add_argument("--templates", default=cfg_str("templates", "templates"), help="Directory containing layout templates.")
    parser.add_argument("--static", default=cfg_str("static", "static"), help="Directory containing static assets.")
    parser.add_argument("--output", default=cfg_str("output", "dist"), help="Output directory for the site.")
    parser.add_argument("--site-name", default=cfg_str("site_name", "mdsite"), help="Site title.")
    parser.add_argument("--site-description", default=cfg_str("site_description", ""), help="Site description.")
    parser.add_argument(
        "--site-url",
        default=cfg_str("site_url", ""),
        help="Public site URL used for RSS, Atom and sitemap.",
    )
    parser.add_argument(
        "--posts-per-page",
        default=cfg_int("posts_per_page", POSTS_PER_PAGE),
        type=int,
        help="Number of posts on the home page before pagination.",
    )
    parser.add_argument(
        "--feed-limit",
        default=cfg_int("feed_limit", FEED_LIMIT),
        type=int,
        help="Maximum number of posts in RSS/Atom feeds.",
    )
    parser.add_argument(
        "--toc-depth",
        default=cfg_str("toc_depth", "2-4"),
        help="Heading depth range for TOC (e.g. 2-4).",
    )
    parser.add_argument(
        "--build-workers",
        default=cfg_int("build_workers", 0),
        type=int,
        help="Number of worker threads for rendering (0 = auto).",
    )
    parser.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("clean", False),
        help="Remove the output directory before writing.",
    )
    parser.add_argument(
        "--strict",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("strict", False),
        help="Abort on the first malformed document instead of skipping it.",
    )
    parser.add_argument(
        "--enable-rss",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("enable_rss", True),
        help="Generate rss.xml.",
    )
    parser.add_argument(
        "--enable-atom",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("enable_atom", True),
        help="Generate atom.xml.",
    )
    parser.add_argument(
        "--enable-sitemap",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("enable_sitemap", True),
        help="Generate sitemap.xml.",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", default="site.toml")
    pre_args, _ = pre_parser.parse_known_args(argv)
    try:
        config = load_config(Path(pre_args.config))
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        return 1

    args = build_parser(config, pre_args.config).parse_args(argv)
    start = time.perf_counter()
    try:
        result = build_site(settings_from_args(args))
    except SiteError as exc:
        print(f"Build failed: {exc}", file=sys.stderr)
        return 1
    elapsed = time.perf_counter() - start

    if result.report:
        print(result.report.format(), file=sys.stderr)
    write = result.write
    print(
        f"Build completed in {elapsed:.2f}s: {len(write.written)} written, "
        f"{len(write.unchanged)} unchanged, {len(write.removed)} removed."
    )
    print(f"Site generated in: {args.output}")
    return 0
