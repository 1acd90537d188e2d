from __future__ import annotations

import xml.etree.ElementTree as etree
from pathlib import Path

from markdown.extensions import Extension
from markdown.inlinepatterns import InlineProcessor
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name, get_lexer_for_filename
from pygments.util import ClassNotFound

RE_CODE_LINK = r"\[(?P<text>[^\]]+)\]\(code:(?P<path>[^#)]+)#L(?P<line>\d+)\)"


class CodeLinkerProcessor(InlineProcessor):
    """Turn ``[text](code:path#L12)`` into a link carrying the highlighted file.

    Paths starting with ``/`` resolve against the content root, others against
    the directory of the document. Files outside the content root are refused.
    """

    def __init__(self, pattern, md, base_path: Path, project_root: Path):
        super().__init__(pattern, md)
        self.base_path = base_path
        self.project_root = project_root.resolve()

    def handleMatch(self, m, data):
        file_path_str = m.group("path").strip()
        line_num = int(m.group("line"))
        link_text = m.group("text")

        if file_path_str.startswith("/"):
            file_path = (self.project_root / file_path_str.lstrip("/")).resolve()
        else:
            file_path = (self.base_path / file_path_str).resolve()

        if not file_path.is_relative_to(self.project_root) or not file_path.is_file():
            return self.error_link(f"File not found: {file_path_str}"), m.start(0), m.end(0)

        try:
            code_selection = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return self.error_link(f"Error reading file: {exc}"), m.start(0), m.end(0)

        lexer = self.get_lexer(file_path)
        formatter = HtmlFormatter(linenos=True, cssclass="codehilite", hl_lines=[line_num])
        highlighted_code = highlight(code_selection, lexer, formatter)

        el = etree.Element("a")
        el.set("href", "#")
        el.set("class", "code-link")
        el.set("data-code", highlighted_code)
        el.set("data-lang", lexer.aliases[0] if lexer.aliases else "text")
        el.set("data-line", str(line_num))
        el.text = link_text
        return el, m.start(0), m.end(0)

    def error_link(self, message: str) -> etree.Element:
        el = etree.Element("a")
        el.set("href", "#")
        el.set("class", "code-link-error")
        el.text = message
        return el

    def get_lexer(self, file_path: Path):
        try:
            return get_lexer_for_filename(file_path.name, stripall=True)
        except ClassNotFound:
            return get_lexer_by_name("text", stripall=True)


class CodeLinkerExtension(Extension):
    def __init__(self, base_path: Path, project_root: Path, **kwargs):
        super().__init__(**kwargs)
        self.base_path = base_path
        self.project_root = project_root

    def extendMarkdown(self, md):
        md.inlinePatterns.register(
            CodeLinkerProcessor(RE_CODE_LINK, md, self.base_path, self.project_root),
            "code_linker",
            175,
        )
