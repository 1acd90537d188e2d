"""Exceptions raised by the build pipeline and the report of skipped documents."""

from __future__ import annotations

from dataclasses import dataclass, field


class SiteError(Exception):
    """Base exception for all site build errors."""


class MetadataParseError(SiteError):
    """Raised when a content file's front matter is malformed."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class TemplateNotFoundError(SiteError):
    """Raised when a layout name has no matching template."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No template named {name!r}")
        self.name = name


class FilesystemError(SiteError):
    """Raised when input cannot be read or output cannot be written."""


class ConfigError(SiteError):
    """Raised for an unreadable or invalid config file."""


class OutputCollisionError(SiteError):
    """Raised when a generated page would replace a document's output file."""

    def __init__(self, path: str, source: str) -> None:
        super().__init__(f"Generated page {path} would overwrite the output of {source}")
        self.path = path
        self.source = source


@dataclass(frozen=True)
class BuildIssue:
    source: str
    kind: str
    reason: str

    @classmethod
    def from_error(cls, source: str, error: SiteError) -> "BuildIssue":
        reason = getattr(error, "reason", None) or str(error)
        return cls(source=source, kind=type(error).__name__, reason=reason)


@dataclass
class BuildReport:
    issues: list[BuildIssue] = field(default_factory=list)

    def extend(self, issues: list[BuildIssue]) -> None:
        self.issues.extend(issues)

    @property
    def skipped(self) -> list[str]:
        return [issue.source for issue in self.issues]

    def __bool__(self) -> bool:
        return bool(self.issues)

    def format(self) -> str:
        if not self.issues:
            return "No documents skipped."
        lines = [f"Skipped {len(self.issues)} document(s):"]
        for issue in sorted(self.issues, key=lambda i: i.source):
            lines.append(f"  {issue.source}: {issue.kind}: {issue.reason}")
        return "\n".join(lines)
