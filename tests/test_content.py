"""Tests for front matter parsing and the content loader."""

import datetime as dt
from pathlib import Path

import pytest

from mdsite.content import (
    count_words,
    load_documents,
    normalize_list_spacing,
    parse_date,
    parse_front_matter,
    parse_list,
    slugify,
    split_filename_date,
)
from mdsite.errors import FilesystemError, MetadataParseError

# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


class TestParseFrontMatter:
    def test_splits_header_and_body(self) -> None:
        meta, body = parse_front_matter("---\ntitle: Hello\nlayout: post\n---\nBody line")
        assert meta == {"title": "Hello", "layout": "post"}
        assert body == "Body line"

    def test_keys_are_lowercased_and_quotes_stripped(self) -> None:
        meta, _ = parse_front_matter('---\nTitle: "Quoted: yes"\n---\n')
        assert meta["title"] == "Quoted: yes"

    def test_tags_are_parsed_as_lists(self) -> None:
        meta, _ = parse_front_matter("---\ntitle: t\ntags: [python, 'web']\ncategories: a, b\n---\n")
        assert meta["tags"] == ["python", "web"]
        assert meta["categories"] == ["a", "b"]

    def test_comments_and_blank_lines_are_ignored(self) -> None:
        meta, _ = parse_front_matter("---\n# note\n\ntitle: t\n---\n")
        assert meta == {"title": "t"}

    def test_leading_bom_is_ignored(self) -> None:
        meta, _ = parse_front_matter("\ufeff---\ntitle: t\n---\n")
        assert meta["title"] == "t"

    def test_missing_header_raises(self) -> None:
        with pytest.raises(MetadataParseError, match="missing front matter"):
            parse_front_matter("# Just markdown", "doc.md")

    def test_unterminated_header_raises(self) -> None:
        with pytest.raises(MetadataParseError, match="unterminated"):
            parse_front_matter("---\ntitle: t\nbody", "doc.md")

    def test_line_without_colon_raises(self) -> None:
        with pytest.raises(MetadataParseError, match="line 3"):
            parse_front_matter("---\ntitle: t\nnonsense\n---\n", "doc.md")


class TestParseDate:
    def test_date_key_wins_over_filename(self) -> None:
        date, has_time = parse_date({"date": "2020-01-02"}, "2016-02-29-x", "x.md")
        assert date == dt.datetime(2020, 1, 2)
        assert has_time is False

    def test_filename_prefix(self) -> None:
        date, _ = parse_date({}, "2016-02-29-leap", "x.md")
        assert date == dt.datetime(2016, 2, 29)

    def test_date_with_time(self) -> None:
        date, has_time = parse_date({"date": "2016-03-03 10:30"}, "x", "x.md")
        assert date == dt.datetime(2016, 3, 3, 10, 30)
        assert has_time is True

    def test_separate_time_key(self) -> None:
        date, has_time = parse_date({"date": "2016-03-03", "time": "08:15"}, "x", "x.md")
        assert date == dt.datetime(2016, 3, 3, 8, 15)
        assert has_time is True

    def test_bare_date_filename(self) -> None:
        date, has_time = parse_date({}, "2016-02-29", "2016-02-29.md")
        assert date == dt.datetime(2016, 2, 29)
        assert has_time is False

    def test_no_date_anywhere(self) -> None:
        assert parse_date({}, "about", "about.md") == (None, False)

    def test_unparseable_date_raises(self) -> None:
        with pytest.raises(MetadataParseError, match="unparseable date"):
            parse_date({"date": "yesterday"}, "x", "x.md")

    def test_invalid_filename_date_raises(self) -> None:
        with pytest.raises(MetadataParseError, match="invalid date in filename"):
            parse_date({}, "2016-02-30-nope", "x.md")


class TestHelpers:
    def test_slugify(self) -> None:
        assert slugify("Hello, World!") == "hello-world"
        assert slugify("snake_case name") == "snake-case-name"
        assert slugify("!!!") == "post"

    def test_parse_list(self) -> None:
        assert parse_list("[a, 'b', ]") == ["a", "b"]
        assert parse_list("") == []

    def test_split_filename_date(self) -> None:
        assert split_filename_date("2016-03-03-mandelbrot") == ("2016-03-03", "mandelbrot")
        assert split_filename_date("about") == (None, "about")

    def test_split_filename_date_bare_date_keeps_date_as_slug(self) -> None:
        assert split_filename_date("2016-02-29") == ("2016-02-29", "2016-02-29")

    def test_normalize_list_spacing_inserts_blank_line(self) -> None:
        assert normalize_list_spacing("Intro\n- one\n- two") == "Intro\n\n- one\n- two"

    def test_normalize_list_spacing_leaves_fences_alone(self) -> None:
        text = "```\nIntro\n- not a list\n```"
        assert normalize_list_spacing(text) == text

    def test_count_words(self) -> None:
        assert count_words("It's a trie-based autocomplete") == 5


# ---------------------------------------------------------------------------
# load_documents
# ---------------------------------------------------------------------------


class TestLoadDocuments:
    def test_loads_post_from_dated_filename(self, content_dir: Path, write_doc) -> None:
        write_doc("2016-02-29-snake.md", "Snake body", title="Snake", tags="[games, elm]", toc="true")
        result = load_documents(content_dir)
        assert result.issues == []
        [doc] = result.documents
        assert doc.id == "2016-02-29-snake.md"
        assert doc.slug == "snake"
        assert doc.layout == "post"
        assert doc.title == "Snake"
        assert doc.tags == frozenset({"games", "elm"})
        assert doc.date == dt.datetime(2016, 2, 29)
        assert doc.date_str == "2016-02-29"
        assert doc.toc is True
        assert doc.body == "Snake body"

    def test_undated_file_defaults_to_page(self, content_dir: Path, write_doc) -> None:
        write_doc("about.md", title="About", order="2")
        [doc] = load_documents(content_dir).documents
        assert doc.layout == "page"
        assert doc.order == 2
        assert doc.date is None

    def test_missing_title_is_reported_not_raised(self, content_dir: Path, write_doc) -> None:
        write_doc("2016-03-03-untitled.md", layout="post")
        write_doc("2016-03-04-titled.md", title="Titled")
        result = load_documents(content_dir)
        assert [doc.id for doc in result.documents] == ["2016-03-04-titled.md"]
        [issue] = result.issues
        assert issue.source == "2016-03-03-untitled.md"
        assert issue.kind == "MetadataParseError"
        assert "title" in issue.reason

    def test_strict_raises_first_error(self, content_dir: Path, write_doc) -> None:
        write_doc("2016-03-03-untitled.md", layout="post")
        with pytest.raises(MetadataParseError):
            load_documents(content_dir, strict=True)

    def test_post_without_date_is_an_error(self, content_dir: Path, write_doc) -> None:
        write_doc("dateless.md", title="No date", layout="post")
        result = load_documents(content_dir)
        assert result.documents == []
        assert "no date" in result.issues[0].reason

    def test_non_integer_order_is_an_error(self, content_dir: Path, write_doc) -> None:
        write_doc("about.md", title="About", order="first")
        result = load_documents(content_dir)
        assert result.documents == []
        assert "order" in result.issues[0].reason

    def test_unrecognized_and_hidden_files_are_skipped(self, content_dir: Path, write_doc) -> None:
        write_doc("about.md", title="About")
        write_doc(".hidden.md", title="Hidden")
        write_doc("_drafts/wip.md", title="WIP")
        (content_dir / "image.png").write_bytes(b"\x89PNG")
        (content_dir / "notes.txt").write_text("ignored", encoding="utf-8")
        result = load_documents(content_dir)
        assert [doc.id for doc in result.documents] == ["about.md"]
        assert result.issues == []

    def test_drafts_are_dropped_silently(self, content_dir: Path, write_doc) -> None:
        write_doc("2016-03-03-draft.md", title="Draft", draft="yes")
        result = load_documents(content_dir)
        assert result.documents == []
        assert result.issues == []

    def test_explicit_slug(self, content_dir: Path, write_doc) -> None:
        write_doc("2016-03-03-x.md", title="X", slug="Custom Slug")
        [doc] = load_documents(content_dir).documents
        assert doc.slug == "custom-slug"

    def test_colliding_slugs_are_disambiguated(self, content_dir: Path, write_doc) -> None:
        write_doc("2016-03-03-hello.md", title="One")
        write_doc("2016-03-04-hello.md", title="Two")
        docs = load_documents(content_dir).documents
        slugs = [doc.slug for doc in docs]
        assert slugs[0] == "hello"
        assert slugs[1].startswith("hello-")
        assert len(set(slugs)) == 2

    def test_reserved_page_slug_is_renamed(self, content_dir: Path, write_doc) -> None:
        write_doc("index.md", title="Home page")
        [doc] = load_documents(content_dir).documents
        assert doc.slug != "index"

    def test_listing_page_slug_is_renamed(self, content_dir: Path, write_doc) -> None:
        write_doc("page-2.md", title="Second")
        [doc] = load_documents(content_dir).documents
        assert doc.layout == "page"
        assert doc.slug.startswith("page-2-")

    def test_bare_date_filename_is_a_post(self, content_dir: Path, write_doc) -> None:
        write_doc("2016-02-29.md", title="Leap day")
        result = load_documents(content_dir)
        assert result.issues == []
        [doc] = result.documents
        assert doc.layout == "post"
        assert doc.date == dt.datetime(2016, 2, 29)
        assert doc.slug == "2016-02-29"

    def test_unreadable_file_is_reported(self, content_dir: Path, write_doc, monkeypatch) -> None:
        write_doc("a.md", title="A")
        locked = write_doc("locked.md", title="Locked")
        read_text = Path.read_text

        def fake_read_text(self, *args, **kwargs):
            if self == locked:
                raise PermissionError(13, "Permission denied", str(self))
            return read_text(self, *args, **kwargs)

        monkeypatch.setattr(Path, "read_text", fake_read_text)
        result = load_documents(content_dir)
        assert [doc.id for doc in result.documents] == ["a.md"]
        [issue] = result.issues
        assert issue.source == "locked.md"
        assert issue.kind == "FilesystemError"

        with pytest.raises(FilesystemError):
            load_documents(content_dir, strict=True)

    def test_positions_follow_path_order(self, content_dir: Path, write_doc) -> None:
        write_doc("b.md", title="B")
        write_doc("a.md", title="A")
        write_doc("sub/c.md", title="C")
        docs = load_documents(content_dir).documents
        assert [(doc.id, doc.position) for doc in docs] == [("a.md", 0), ("b.md", 1), ("sub/c.md", 2)]

    def test_missing_root_is_fatal(self, tmp_path: Path) -> None:
        with pytest.raises(FilesystemError):
            load_documents(tmp_path / "missing")

    def test_root_that_is_a_file_is_fatal(self, tmp_path: Path) -> None:
        path = tmp_path / "file.md"
        path.write_text("---\ntitle: t\n---\n", encoding="utf-8")
        with pytest.raises(FilesystemError):
            load_documents(path)
