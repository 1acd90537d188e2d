"""Shared fixtures: a template directory and a helper for writing content files."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from mdsite.config import BuildSettings, SiteConfig

BASE_TEMPLATE = (
    "<html><head><title>{{title}}</title></head>"
    "<body><nav>{{menu}}</nav><main>{{content}}</main>"
    "<footer>{{year}} {{site_name}}</footer></body></html>"
)
POST_TEMPLATE = '<article class="post"><h1>{{title}}</h1><time>{{date}}</time>{{tags}}{{content}}</article>'
PAGE_TEMPLATE = '<section class="page"><h1>{{title}}</h1>{{toc}}{{content}}</section>'


def write_templates(directory: Path, **overrides: str) -> Path:
    templates = {"base": BASE_TEMPLATE, "post": POST_TEMPLATE, "page": PAGE_TEMPLATE}
    templates.update(overrides)
    directory.mkdir(parents=True, exist_ok=True)
    for name, text in templates.items():
        if text is not None:
            (directory / f"{name}.html").write_text(text, encoding="utf-8")
    return directory


def make_front_matter(**meta: str) -> str:
    lines = ["---"]
    lines.extend(f"{key}: {value}" for key, value in meta.items())
    lines.append("---")
    return "\n".join(lines) + "\n"


@pytest.fixture
def templates_dir(tmp_path: Path) -> Path:
    return write_templates(tmp_path / "templates")


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    path = tmp_path / "content"
    path.mkdir()
    return path


@pytest.fixture
def write_doc(content_dir: Path) -> Callable[..., Path]:
    """Write ``content/<name>`` with a front matter header built from keyword args."""

    def _write(name: str, body: str = "Body text.", **meta: str) -> Path:
        path = content_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(make_front_matter(**meta) + body, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def settings(tmp_path: Path, content_dir: Path, templates_dir: Path) -> BuildSettings:
    return BuildSettings(
        content_dir=content_dir,
        templates_dir=templates_dir,
        output_dir=tmp_path / "dist",
        site=SiteConfig(site_name="Test Site", site_url="https://example.com"),
    )
