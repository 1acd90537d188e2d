from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .cache import hash_output
from .config import BuildSettings
from .content import list_content_files, load_documents
from .errors import BuildReport, TemplateNotFoundError
from .output import WriteResult, read_assets, read_static, write_output
from .pages import RenderedOutput, assemble_site, build_site_index
from .render import RenderOptions, TemplateSet, render_all

MAX_WORKERS = 32


@dataclass
class BuildResult:
    output: RenderedOutput
    report: BuildReport = field(default_factory=BuildReport)
    write: Optional[WriteResult] = None

    @property
    def digest(self) -> str:
        return hash_output(self.output)


def resolve_workers(value: int) -> int:
    workers = int(value or 0)
    if workers <= 0:
        workers = os.cpu_count() or 1
    return max(1, min(workers, MAX_WORKERS))


def generate_site(settings: BuildSettings) -> BuildResult:
    """Load, render and assemble the site without touching the output directory.

    Per-document metadata and template errors end up in the report; they
    are raised instead when ``settings.strict`` is set. Filesystem errors
    and a missing ``base`` template are always raised.
    """
    content_dir = Path(settings.content_dir)
    templates = TemplateSet.load(Path(settings.templates_dir))
    if "base" not in templates:
        raise TemplateNotFoundError("base")

    report = BuildReport()
    loaded = load_documents(content_dir, strict=settings.strict)
    report.extend(loaded.issues)

    options = RenderOptions(toc_depth=settings.toc_depth, content_root=content_dir)
    rendered, issues = render_all(
        loaded.documents,
        templates,
        options,
        workers=resolve_workers(settings.build_workers),
        strict=settings.strict,
    )
    report.extend(issues)

    index = build_site_index([info.document for info in rendered])
    _, asset_paths = list_content_files(content_dir)
    assets = read_static(settings.static_dir)
    assets.update(read_assets(asset_paths, content_dir))
    output = assemble_site(rendered, index, templates, settings.site, assets)
    return BuildResult(output=output, report=report)


def build_site(settings: BuildSettings, project_root: Optional[Path] = None) -> BuildResult:
    """Generate the site and write it to ``settings.output_dir``."""
    result = generate_site(settings)
    result.write = write_output(
        result.output,
        Path(settings.output_dir),
        clean=settings.clean,
        project_root=project_root,
    )
    return result
