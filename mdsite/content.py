from __future__ import annotations

import datetime as dt
import html as html_lib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .cache import hash_text
from .errors import BuildIssue, FilesystemError, MetadataParseError
from .utils import parse_bool

CONTENT_SUFFIXES = {".md", ".markdown"}
RESERVED_SLUGS = {"page": {"index", "archive", "search-index"}, "tags": {"index"}}
RESERVED_SLUG_RES = {"page": re.compile(r"^page-\d+$")}
DATE_FMT = "%Y-%m-%d"
DATETIME_FMT = "%Y-%m-%d %H:%M"
FILENAME_DATE_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})(?:-(?P<rest>.+))?$")
LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
FENCE_RE = re.compile(r"^(?P<indent>[ \t]*)(`{3,}|~{3,})")
DOUBLE_QUOTE_RE = re.compile(r"^(?P<indent>[ \t]*)>>(?!>)(?P<rest>.*)$")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")

LIST_KEYS = {"tags", "categories"}
TOC_KEYS = ("toc", "show_toc", "table_of_contents")
ORDER_KEYS = ("order", "nav_order", "position")


@dataclass(frozen=True)
class Document:
    """One content file with its parsed header.

    ``id`` is the source path relative to the content root and is unique
    across a build. ``slug`` names the output file and is unique per layout.
    """

    id: str
    slug: str
    title: str
    layout: str
    body: str
    source: Path
    tags: frozenset[str] = frozenset()
    date: Optional[dt.datetime] = None
    has_time: bool = False
    toc: bool = False
    order: int = 0
    summary: str = ""
    position: int = 0

    @property
    def date_str(self) -> str:
        if self.date is None:
            return ""
        return self.date.strftime(DATETIME_FMT if self.has_time else DATE_FMT)

    @property
    def sorted_tags(self) -> list[str]:
        return sorted(self.tags, key=lambda t: (t.lower(), t))


@dataclass
class LoadResult:
    documents: list[Document] = field(default_factory=list)
    issues: list[BuildIssue] = field(default_factory=list)


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_list(value: str) -> list[str]:
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1]
        items = [item.strip().strip("'\"") for item in inner.split(",")]
    else:
        items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


def parse_front_matter(text: str, source: str = "<string>") -> tuple[dict, str]:
    """Split ``text`` into its ``---`` fenced header and the body.

    Header lines are ``key: value`` pairs; keys are lowercased. Blank lines
    and ``#`` comments are ignored. Raises MetadataParseError when the header
    is absent, unterminated, or holds a line that is not a pair.
    """
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() != "---":
        raise MetadataParseError(source, "missing front matter header")

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            end = i
            break
    if end is None:
        raise MetadataParseError(source, "unterminated front matter header")

    meta = {}
    for lineno, line in enumerate(lines[1:end], start=2):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if ":" not in line:
            raise MetadataParseError(source, f"malformed header line {lineno}: {line!r}")
        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        if key in LIST_KEYS:
            meta[key] = parse_list(value)
        else:
            meta[key] = value
    body = "\n".join(lines[end + 1 :])
    return meta, body


def split_filename_date(stem: str) -> tuple[Optional[str], str]:
    match = FILENAME_DATE_RE.match(stem)
    if not match:
        return None, stem
    return match.group("date"), match.group("rest") or stem


def parse_date(meta: dict, stem: str, source: str) -> tuple[Optional[dt.datetime], bool]:
    """Publish date from the ``date`` key, falling back to the filename prefix.

    Returns ``(datetime, has_time)``; ``(None, False)`` when neither is present.
    """
    date_value = (meta.get("date") or "").strip()
    time_value = (meta.get("time") or "").strip()
    if date_value:
        if "T" in date_value or " " in date_value:
            try:
                return dt.datetime.fromisoformat(date_value).replace(tzinfo=None), True
            except ValueError:
                raise MetadataParseError(source, f"unparseable date {date_value!r}") from None
        try:
            date_part = dt.date.fromisoformat(date_value)
        except ValueError:
            raise MetadataParseError(source, f"unparseable date {date_value!r}") from None
    else:
        prefix, _ = split_filename_date(stem)
        if prefix is None:
            return None, False
        try:
            date_part = dt.date.fromisoformat(prefix)
        except ValueError:
            raise MetadataParseError(source, f"invalid date in filename {prefix!r}") from None
    if time_value:
        try:
            time_part = dt.time.fromisoformat(time_value)
        except ValueError:
            raise MetadataParseError(source, f"unparseable time {time_value!r}") from None
        return dt.datetime.combine(date_part, time_part), True
    return dt.datetime.combine(date_part, dt.time()), False


def get_tags(meta: dict) -> frozenset[str]:
    values = list(meta.get("tags") or []) + list(meta.get("categories") or [])
    if meta.get("category"):
        values.append(meta["category"])
    return frozenset(value.strip() for value in values if value.strip())


def get_order(meta: dict, source: str) -> int:
    for key in ORDER_KEYS:
        value = meta.get(key)
        if value is None or value == "":
            continue
        try:
            return int(str(value).strip())
        except ValueError:
            raise MetadataParseError(source, f"{key} must be an integer, got {value!r}") from None
    return 0


def normalize_list_spacing(text: str) -> str:
    lines = text.splitlines()
    out: list[str] = []
    in_fence = False
    fence_marker = ""
    for line in lines:
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(2)
            if not in_fence:
                in_fence = True
                fence_marker = marker
            elif marker == fence_marker:
                in_fence = False
                fence_marker = ""
            out.append(line)
            continue
        if in_fence:
            out.append(line)
            continue
        quote_match = DOUBLE_QUOTE_RE.match(line)
        if quote_match:
            rest = quote_match.group("rest").lstrip()
            if rest:
                line = f'{quote_match.group("indent")}> {rest}'
            else:
                line = f'{quote_match.group("indent")}>'
        list_match = LIST_MARKER_RE.match(line)
        if list_match:
            if not list_match.group("indent"):
                if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                    out.append("")
        out.append(line)
    return "\n".join(out)


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count


def is_hidden(path: Path, root: Path) -> bool:
    return any(part.startswith((".", "_")) for part in path.relative_to(root).parts)


def list_content_files(root: Path) -> tuple[list[Path], list[Path]]:
    """Split the files under ``root`` into content files and asset files."""
    if not root.exists():
        raise FilesystemError(f"Content directory not found: {root}")
    if not root.is_dir():
        raise FilesystemError(f"Content path is not a directory: {root}")
    content, assets = [], []
    try:
        paths = sorted((p for p in root.rglob("*") if p.is_file()), key=lambda p: p.as_posix())
    except OSError as exc:
        raise FilesystemError(f"Cannot read content directory {root}: {exc}") from exc
    for path in paths:
        if is_hidden(path, root):
            continue
        if path.suffix.lower() in CONTENT_SUFFIXES:
            content.append(path)
        else:
            assets.append(path)
    return content, assets


def parse_document_data(path: Path, root: Path) -> dict:
    rel = path.relative_to(root).as_posix()
    try:
        raw_text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise MetadataParseError(rel, f"not valid UTF-8 ({exc.reason})") from None
    except OSError as exc:
        raise FilesystemError(f"Cannot read {path}: {exc}") from exc
    meta, body = parse_front_matter(raw_text, rel)
    title = (meta.get("title") or "").strip()
    if not title:
        raise MetadataParseError(rel, "missing required field 'title'")
    date, has_time = parse_date(meta, path.stem, rel)
    layout = (meta.get("layout") or "").strip().lower()
    if not layout:
        layout = "post" if date is not None else "page"
    if layout == "post" and date is None:
        raise MetadataParseError(rel, "post has no date in its header or filename")
    toc = any(parse_bool(meta.get(key)) for key in TOC_KEYS)
    explicit_slug = (meta.get("slug") or "").strip()
    _, stem = split_filename_date(path.stem)
    return {
        "id": rel,
        "title": title,
        "layout": layout,
        "body": normalize_list_spacing(body),
        "source": path,
        "tags": get_tags(meta),
        "date": date,
        "has_time": has_time,
        "toc": toc,
        "order": get_order(meta, rel),
        "summary": (meta.get("summary") or meta.get("description") or "").strip(),
        "draft": parse_bool(meta.get("draft")),
        "candidate_slug": slugify(explicit_slug or stem),
    }


def assign_slugs(parsed: list[dict]) -> None:
    """Give every document a slug unique within its layout.

    Slugs that would land on a generated listing path (``index``,
    ``page-2`` and so on) are treated as taken.
    """
    used: dict[str, set[str]] = {}
    for info in parsed:
        layout = info["layout"]
        taken = used.setdefault(layout, set(RESERVED_SLUGS.get(layout, ())))
        pattern = RESERVED_SLUG_RES.get(layout)

        def unavailable(slug: str) -> bool:
            return slug in taken or (pattern is not None and pattern.match(slug) is not None)

        candidate = info["candidate_slug"]
        slug = candidate
        if unavailable(slug):
            for length in (8, 10, 12, 16):
                slug = f"{candidate}-{hash_text(info['id'])[:length]}"
                if not unavailable(slug):
                    break
        if unavailable(slug):
            counter = 2
            while unavailable(f"{candidate}-{counter}"):
                counter += 1
            slug = f"{candidate}-{counter}"
        taken.add(slug)
        info["slug"] = slug


def load_documents(root: Path, *, strict: bool = False) -> LoadResult:
    """Load every content file under ``root`` in path order.

    Malformed files are reported in ``LoadResult.issues`` and excluded,
    unless ``strict`` is set, in which case the first error is raised.
    Drafts are dropped without a report.
    """
    root = Path(root)
    content_files, _ = list_content_files(root)
    result = LoadResult()
    parsed = []
    for path in content_files:
        try:
            info = parse_document_data(path, root)
        except (MetadataParseError, FilesystemError) as exc:
            if strict:
                raise
            result.issues.append(BuildIssue.from_error(path.relative_to(root).as_posix(), exc))
            continue
        if info["draft"]:
            continue
        parsed.append(info)
    assign_slugs(parsed)
    for position, info in enumerate(parsed):
        result.documents.append(
            Document(
                id=info["id"],
                slug=info["slug"],
                title=info["title"],
                layout=info["layout"],
                body=info["body"],
                source=info["source"],
                tags=info["tags"],
                date=info["date"],
                has_time=info["has_time"],
                toc=info["toc"],
                order=info["order"],
                summary=info["summary"],
                position=position,
            )
        )
    return result
