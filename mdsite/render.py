from __future__ import annotations

import html
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import markdown

from .code_linker import CodeLinkerExtension
from .content import Document, count_words, slugify
from .errors import BuildIssue, FilesystemError, TemplateNotFoundError

IMG_SRC_RE = re.compile(r'<img([^>]*?)src="([^"]+)"', re.IGNORECASE)
TAG_RE = re.compile(r"<[^>]+>")
SUMMARY_LENGTH = 200
PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True)
class TemplateSet:
    """Named HTML templates, one per ``<name>.html`` file in a directory."""

    templates: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, directory: Path) -> "TemplateSet":
        directory = Path(directory)
        if not directory.is_dir():
            raise FilesystemError(f"Templates directory not found: {directory}")
        templates = {}
        try:
            for path in sorted(directory.glob("*.html")):
                templates[path.stem] = read_template(path)
        except OSError as exc:
            raise FilesystemError(f"Cannot read templates in {directory}: {exc}") from exc
        return cls(templates)

    def get(self, name: str) -> str:
        try:
            return self.templates[name]
        except KeyError:
            raise TemplateNotFoundError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self.templates


@dataclass(frozen=True)
class RenderOptions:
    toc_depth: str = "2-4"
    content_root: Optional[Path] = None


@dataclass(frozen=True)
class RenderedDocument:
    document: Document
    html: str
    content: str
    toc: str
    summary: str
    words: int

    @property
    def path(self) -> str:
        return output_path(self.document)

    @property
    def root(self) -> str:
        return relative_root(self.path)


def output_path(document: Document) -> str:
    if document.layout == "page":
        return f"{document.slug}.html"
    if document.layout == "post":
        return f"posts/{document.slug}.html"
    return f"{document.layout}/{document.slug}.html"


def relative_root(path: str) -> str:
    depth = path.count("/")
    if depth == 0:
        return "."
    return "/".join([".."] * depth)


def fix_relative_img_src(html_text: str, prefix: str) -> str:
    """Point relative ``<img>`` sources at ``prefix``, the source file's output directory."""

    def repl(match: re.Match) -> str:
        attrs = match.group(1)
        src = match.group(2)
        if src.startswith(("http://", "https://", "data:", "#", "/")):
            return match.group(0)
        joined = os.path.normpath(f"{prefix}/{src}").replace(os.sep, "/")
        return f'<img{attrs}src="{joined}"'

    return IMG_SRC_RE.sub(repl, html_text)


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)


def render_template(template: str, **context: str) -> str:
    """Fill ``{{key}}`` placeholders in one pass; inserted values are never rescanned."""
    return PLACEHOLDER_RE.sub(lambda m: context.get(m.group(1), m.group(0)), template)


def read_template(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def make_summary(document: Document, content_html: str) -> str:
    if document.summary:
        return document.summary
    summary = " ".join(strip_tags(html.unescape(content_html)).split())
    if len(summary) > SUMMARY_LENGTH:
        return summary[:SUMMARY_LENGTH] + "..."
    return summary


def convert_markdown(document: Document, options: RenderOptions) -> tuple[str, str]:
    extensions = [
        "fenced_code",
        "tables",
        "toc",
        "codehilite",
    ]
    if options.content_root is not None:
        extensions.append(
            CodeLinkerExtension(base_path=document.source.parent, project_root=options.content_root)
        )
    md = markdown.Markdown(
        extensions=extensions,
        extension_configs={
            "toc": {"toc_depth": options.toc_depth},
            "codehilite": {"guess_lang": False, "css_class": "codehilite"},
        },
    )
    content_html = md.convert(document.body)
    toc_html = md.toc if document.toc else ""
    return content_html, toc_html


def render_tag_links(document: Document, root: str) -> str:
    return " ".join(
        f'<a class="chip" href="{root}/tags/{slugify(tag)}.html">{html.escape(tag)}</a>'
        for tag in document.sorted_tags
    )


def render_document(
    document: Document, templates: TemplateSet, options: Optional[RenderOptions] = None
) -> RenderedDocument:
    """Convert ``document``'s body and wrap it in the template named by its layout.

    Raises TemplateNotFoundError when the layout has no template. Nothing is
    written; the result depends only on the document, the templates and the
    options.
    """
    options = options or RenderOptions()
    template = templates.get(document.layout)
    path = output_path(document)
    root = relative_root(path)
    content_html, toc_html = convert_markdown(document, options)
    if options.content_root is not None:
        source_dir = document.source.parent.relative_to(options.content_root).as_posix()
        prefix = root if source_dir == "." else f"{root}/{source_dir}"
        content_html = fix_relative_img_src(content_html, prefix)
    summary = make_summary(document, content_html)
    words = count_words(strip_tags(content_html))
    fragment = render_template(
        template,
        title=html.escape(document.title),
        date=document.date_str,
        tags=render_tag_links(document, root),
        slug=document.slug,
        root=root,
        words=str(words),
        summary=html.escape(summary),
        toc=toc_html,
        content=content_html,
    )
    return RenderedDocument(
        document=document,
        html=fragment,
        content=content_html,
        toc=toc_html,
        summary=summary,
        words=words,
    )


def render_all(
    documents: list[Document],
    templates: TemplateSet,
    options: Optional[RenderOptions] = None,
    *,
    workers: int = 1,
    strict: bool = False,
) -> tuple[list[RenderedDocument], list[BuildIssue]]:
    """Render every document, in input order regardless of ``workers``.

    Documents whose layout has no template are reported and left out.
    """

    def render_one(document: Document) -> RenderedDocument | TemplateNotFoundError:
        try:
            return render_document(document, templates, options)
        except TemplateNotFoundError as exc:
            if strict:
                raise
            return exc

    workers = max(1, int(workers or 1))
    if workers <= 1 or len(documents) <= 1:
        results = [render_one(document) for document in documents]
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(documents))) as executor:
            results = list(executor.map(render_one, documents))

    rendered: list[RenderedDocument] = []
    issues: list[BuildIssue] = []
    for document, result in zip(documents, results):
        if isinstance(result, TemplateNotFoundError):
            issues.append(BuildIssue.from_error(document.id, result))
        else:
            rendered.append(result)
    return rendered, issues
