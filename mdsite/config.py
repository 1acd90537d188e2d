from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigError

FEED_LIMIT = 20
POSTS_PER_PAGE = 8


@dataclass(frozen=True)
class SiteConfig:
    site_name: str = "mdsite"
    site_description: str = ""
    site_url: str = ""
    posts_per_page: int = POSTS_PER_PAGE
    feed_limit: int = FEED_LIMIT
    enable_rss: bool = True
    enable_atom: bool = True
    enable_sitemap: bool = True


@dataclass(frozen=True)
class BuildSettings:
    """Everything one build run needs: where to read, where to write, how."""

    content_dir: Path
    templates_dir: Path
    output_dir: Path
    static_dir: Optional[Path] = None
    site: SiteConfig = field(default_factory=SiteConfig)
    toc_depth: str = "2-4"
    build_workers: int = 1
    clean: bool = False
    strict: bool = False


def load_config(path: Path) -> dict:
    """Read a TOML, YAML or JSON config file, chosen by suffix.

    A missing file gives an empty config. Anything unparseable, or a
    top level that is not a mapping, raises ConfigError.
    """
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in config file {path}: {exc}") from exc
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
        if data is None:
            return {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping: {path}")
    return data
