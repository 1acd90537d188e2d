from __future__ import annotations

import html
import json
import math
from dataclasses import dataclass, field
from typing import Optional

from .config import SiteConfig
from .content import Document, slugify
from .errors import OutputCollisionError
from .render import RenderedDocument, TemplateSet, relative_root, render_template
from .utils import iso_date, join_url, rfc822_date

RenderedOutput = dict[str, bytes]


@dataclass(frozen=True)
class SiteIndex:
    posts: list[Document] = field(default_factory=list)
    pages: list[Document] = field(default_factory=list)
    tags: dict[str, list[Document]] = field(default_factory=dict)


def build_site_index(documents: list[Document]) -> SiteIndex:
    """Order posts newest first and pages by ordinal.

    Both sorts are stable, so ties keep the loader's order.
    """
    in_order = sorted(documents, key=lambda d: d.position)
    posts = sorted(
        (d for d in in_order if d.layout == "post"),
        key=lambda d: d.date,
        reverse=True,
    )
    pages = sorted((d for d in in_order if d.layout == "page"), key=lambda d: d.order)
    # Tags sharing a slug share a page, listed under the first spelling seen.
    names: dict[str, str] = {}
    tag_map: dict[str, list[Document]] = {}
    for post in posts:
        for tag in post.sorted_tags:
            name = names.setdefault(slugify(tag), tag)
            if post not in tag_map.get(name, []):
                tag_map.setdefault(name, []).append(post)
    tags = {name: tag_map[name] for name in sorted(tag_map, key=lambda t: (t.lower(), t))}
    return SiteIndex(posts=posts, pages=pages, tags=tags)


def post_url(post: Document, root: str) -> str:
    return f"{root}/posts/{post.slug}.html"


def tag_url(tag: str, root: str) -> str:
    return f"{root}/tags/{slugify(tag)}.html"


def build_menu(index: SiteIndex, root: str) -> str:
    items = [f'<li><a href="{root}/index.html">Home</a></li>']
    for page in index.pages:
        items.append(f'<li><a href="{root}/{page.slug}.html">{html.escape(page.title)}</a></li>')
    items.append(f'<li><a href="{root}/archive.html">Archive</a></li>')
    items.append(f'<li><a href="{root}/tags/index.html">Tags</a></li>')
    return f'<ul class="menu">{"".join(items)}</ul>'


def build_post_cards(posts: list[Document], rendered: dict[str, RenderedDocument], root: str) -> str:
    cards = []
    for post in posts:
        info = rendered[post.id]
        url = post_url(post, root)
        tag_links = " ".join(
            f'<a class="chip" href="{tag_url(tag, root)}">{html.escape(tag)}</a>' for tag in post.sorted_tags
        )
        cards.append(
            '<article class="post-card">'
            '<div class="post-meta">'
            f'<span class="post-date">{post.date_str}</span>'
            f'<span class="post-words">{info.words} words</span>'
            f'<div class="post-tags">{tag_links}</div></div>'
            f'<h2 class="post-title"><a href="{url}">{html.escape(post.title)}</a></h2>'
            f'<p class="post-summary">{html.escape(info.summary)}</p>'
            f'<a class="post-more" href="{url}">Read more</a>'
            "</article>"
        )
    return "\n".join(cards) if cards else '<p class="empty">No posts yet.</p>'


def page_url(page: int) -> str:
    if page == 1:
        return "index.html"
    return f"page-{page}.html"


def build_pagination(page: int, total_pages: int) -> str:
    if total_pages <= 1:
        return ""
    items = []
    if page > 1:
        items.append(f'<a class="page-link" href="./{page_url(page - 1)}">Previous</a>')
    else:
        items.append('<span class="page-link is-disabled">Previous</span>')
    numbers = []
    for num in range(1, total_pages + 1):
        if num == page:
            numbers.append(f'<span class="page-number is-active">{num}</span>')
        else:
            numbers.append(f'<a class="page-number" href="./{page_url(num)}">{num}</a>')
    items.append(f'<div class="page-numbers">{"".join(numbers)}</div>')
    if page < total_pages:
        items.append(f'<a class="page-link" href="./{page_url(page + 1)}">Next</a>')
    else:
        items.append('<span class="page-link is-disabled">Next</span>')
    return f'<nav class="pagination">{"".join(items)}</nav>'


class Assembler:
    """Wraps fragments and synthesized listings in the ``base`` template."""

    def __init__(self, index: SiteIndex, templates: TemplateSet, site: SiteConfig):
        self.index = index
        self.site = site
        self.base_template = templates.get("base")
        newest = index.posts[0].date if index.posts else None
        self.year = str(newest.year) if newest else ""

    def wrap(self, path: str, title: str, content: str, extra_head: str = "") -> bytes:
        root = relative_root(path)
        html_doc = render_template(
            self.base_template,
            title=html.escape(title),
            root=root,
            site_name=html.escape(self.site.site_name),
            site_description=html.escape(self.site.site_description),
            year=self.year,
            extra_head=extra_head,
            menu=build_menu(self.index, root),
            content=content,
        )
        return html_doc.encode("utf-8")

    def document_page(self, info: RenderedDocument) -> bytes:
        return self.wrap(info.path, f"{info.document.title} | {self.site.site_name}", info.html)

    def listing_pages(self, rendered: dict[str, RenderedDocument]) -> tuple[RenderedOutput, int]:
        output: RenderedOutput = {}
        posts = self.index.posts
        per_page = max(1, self.site.posts_per_page)
        total_pages = max(1, math.ceil(len(posts) / per_page))
        for page in range(1, total_pages + 1):
            start = (page - 1) * per_page
            content = (
                '<div class="section-head">'
                "<h2>Latest posts</h2>"
                "</div>"
                f'<div class="post-grid">{build_post_cards(posts[start : start + per_page], rendered, ".")}</div>'
                f"{build_pagination(page, total_pages)}"
            )
            title = f"{self.site.site_name} | Home" if page == 1 else f"{self.site.site_name} | Page {page}"
            path = page_url(page)
            output[path] = self.wrap(path, title, content)
        return output, total_pages

    def tag_pages(self, rendered: dict[str, RenderedDocument]) -> RenderedOutput:
        output: RenderedOutput = {}
        rows = []
        for tag, posts in self.index.tags.items():
            path = f"tags/{slugify(tag)}.html"
            rows.append(
                f'<li><a href="{tag_url(tag, "..")}">{html.escape(tag)}</a>'
                f'<span class="count">{len(posts)}</span></li>'
            )
            content = (
                '<div class="section-head">'
                f"<h2>Posts tagged {html.escape(tag)}</h2>"
                "</div>"
                f'<div class="post-grid">{build_post_cards(posts, rendered, "..")}</div>'
            )
            output[path] = self.wrap(path, f"{tag} | {self.site.site_name}", content)
        tag_list = "\n".join(rows) if rows else "<li>No tags yet.</li>"
        content = (
            '<div class="section-head"><h2>Tags</h2></div>'
            f'<ul class="tag-list">{tag_list}</ul>'
        )
        output["tags/index.html"] = self.wrap("tags/index.html", f"Tags | {self.site.site_name}", content)
        return output

    def archive_page(self) -> RenderedOutput:
        year_groups: dict[int, list[Document]] = {}
        for post in self.index.posts:
            year_groups.setdefault(post.date.year, []).append(post)
        sections = []
        for year, items in year_groups.items():
            rows = "".join(
                f'<li><span class="archive-date">{item.date_str}</span>'
                f'<a href="{post_url(item, ".")}">{html.escape(item.title)}</a></li>'
                for item in items
            )
            sections.append(
                f'<section class="archive-group"><h3>{year}</h3>'
                f'<ul class="archive-list">{rows}</ul>'
                f'<span class="archive-count">{len(items)}</span></section>'
            )
        if not sections:
            sections.append('<p class="archive-empty">No posts yet.</p>')
        content = (
            '<div class="section-head">'
            "<h2>Archive</h2>"
            f"<p>{len(self.index.posts)} posts</p>"
            "</div>"
            f'{"".join(sections)}'
        )
        return {"archive.html": self.wrap("archive.html", f"Archive | {self.site.site_name}", content)}


def build_search_index(posts: list[Document], rendered: dict[str, RenderedDocument]) -> bytes:
    index = []
    for post in posts:
        index.append(
            {
                "title": post.title,
                "url": f"posts/{post.slug}.html",
                "summary": rendered[post.id].summary,
                "date": post.date_str,
                "tags": [{"name": tag, "slug": slugify(tag)} for tag in post.sorted_tags],
            }
        )
    return json.dumps(index, indent=2, ensure_ascii=True).encode("utf-8")


def build_rss(posts: list[Document], rendered: dict[str, RenderedDocument], site: SiteConfig) -> Optional[bytes]:
    if not site.site_url or not posts:
        return None
    site_url = site.site_url.rstrip("/")
    items = []
    for post in posts[: site.feed_limit]:
        link = join_url(site_url, f"posts/{post.slug}.html")
        items.append(
            "\n".join(
                [
                    "<item>",
                    f"<title>{html.escape(post.title)}</title>",
                    f"<link>{link}</link>",
                    f"<guid>{link}</guid>",
                    f"<pubDate>{rfc822_date(post.date)}</pubDate>",
                    f"<description>{html.escape(rendered[post.id].summary)}</description>",
                    "</item>",
                ]
            )
        )
    rss = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0">',
            "<channel>",
            f"<title>{html.escape(site.site_name)}</title>",
            f"<link>{site_url}/</link>",
            f"<description>{html.escape(site.site_description)}</description>",
            f"<lastBuildDate>{rfc822_date(posts[0].date)}</lastBuildDate>",
            "\n".join(items),
            "</channel>",
            "</rss>",
        ]
    )
    return rss.encode("utf-8")


def build_atom(posts: list[Document], rendered: dict[str, RenderedDocument], site: SiteConfig) -> Optional[bytes]:
    if not site.site_url or not posts:
        return None
    site_url = site.site_url.rstrip("/")
    entries = []
    for post in posts[: site.feed_limit]:
        link = join_url(site_url, f"posts/{post.slug}.html")
        entries.append(
            "\n".join(
                [
                    "<entry>",
                    f"<title>{html.escape(post.title)}</title>",
                    f'<link href="{link}" />',
                    f"<id>{link}</id>",
                    f"<updated>{iso_date(post.date)}</updated>",
                    f"<summary>{html.escape(rendered[post.id].summary)}</summary>",
                    "</entry>",
                ]
            )
        )
    atom = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom">',
            f"<title>{html.escape(site.site_name)}</title>",
            f"<id>{site_url}/</id>",
            f"<updated>{iso_date(posts[0].date)}</updated>",
            f'<link href="{site_url}/atom.xml" rel="self" />',
            f'<link href="{site_url}/" />',
            "\n".join(entries),
            "</feed>",
        ]
    )
    return atom.encode("utf-8")


def build_sitemap(html_paths: list[str], index: SiteIndex, site: SiteConfig) -> Optional[bytes]:
    if not site.site_url:
        return None
    site_url = site.site_url.rstrip("/")
    lastmod = {f"posts/{post.slug}.html": post.date for post in index.posts}
    items = []
    for path in sorted(html_paths):
        url = site_url + "/" if path == "index.html" else join_url(site_url, path)
        if path in lastmod:
            items.append(f"<url>\n<loc>{url}</loc>\n<lastmod>{lastmod[path].date().isoformat()}</lastmod>\n</url>")
        else:
            items.append(f"<url>\n<loc>{url}</loc>\n</url>")
    sitemap = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
        ]
    )
    return sitemap.encode("utf-8")


def assemble_site(
    rendered: list[RenderedDocument],
    index: SiteIndex,
    templates: TemplateSet,
    site: SiteConfig,
    assets: Optional[dict[str, bytes]] = None,
) -> RenderedOutput:
    """Build the full output mapping: one page per rendered document plus listings.

    Assets are copied through at their relative paths; generated files win
    over assets on a path clash. A generated listing that lands on a
    document's path raises OutputCollisionError. Raises
    TemplateNotFoundError when there is no ``base`` template.
    """
    by_id = {info.document.id: info for info in rendered}
    assembler = Assembler(index, templates, site)
    output: RenderedOutput = dict(sorted((assets or {}).items()))

    document_paths = {}
    for info in sorted(rendered, key=lambda r: r.document.position):
        output[info.path] = assembler.document_page(info)
        document_paths[info.path] = info.document.id

    def add_generated(pages: RenderedOutput) -> None:
        for path, data in pages.items():
            if path in document_paths:
                raise OutputCollisionError(path, document_paths[path])
            output[path] = data

    listings, _ = assembler.listing_pages(by_id)
    add_generated(listings)
    add_generated(assembler.tag_pages(by_id))
    add_generated(assembler.archive_page())
    output["search-index.json"] = build_search_index(index.posts, by_id)

    if site.enable_rss:
        rss = build_rss(index.posts, by_id, site)
        if rss is not None:
            output["rss.xml"] = rss
    if site.enable_atom:
        atom = build_atom(index.posts, by_id, site)
        if atom is not None:
            output["atom.xml"] = atom
    if site.enable_sitemap:
        html_paths = [path for path in output if path.endswith(".html")]
        sitemap = build_sitemap(html_paths, index, site)
        if sitemap is not None:
            output["sitemap.xml"] = sitemap
    return output
