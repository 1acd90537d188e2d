from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .cache import hash_bytes, load_manifest, write_manifest
from .errors import FilesystemError

MANIFEST_NAME = ".mdsite-manifest.json"


@dataclass
class WriteResult:
    written: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


def read_assets(paths: list[Path], base: Path) -> dict[str, bytes]:
    assets = {}
    for path in paths:
        try:
            assets[path.relative_to(base).as_posix()] = path.read_bytes()
        except OSError as exc:
            raise FilesystemError(f"Cannot read asset {path}: {exc}") from exc
    return assets


def read_static(static_dir: Optional[Path]) -> dict[str, bytes]:
    if static_dir is None or not static_dir.exists():
        return {}
    if not static_dir.is_dir():
        raise FilesystemError(f"Static path is not a directory: {static_dir}")
    paths = sorted((p for p in static_dir.rglob("*") if p.is_file()), key=lambda p: p.as_posix())
    return read_assets(paths, static_dir)


def clean_output_dir(output_dir: Path, project_root: Path) -> None:
    if not output_dir.exists():
        return
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise FilesystemError("Refusing to clean project root.")
    if not output_resolved.is_relative_to(root_resolved):
        raise FilesystemError("Refusing to clean output directory outside project root.")
    try:
        shutil.rmtree(output_dir)
    except OSError as exc:
        raise FilesystemError(f"Cannot clean {output_dir}: {exc}") from exc


def write_bytes(path: Path, data: bytes) -> bool:
    """Write ``data`` unless the file already holds exactly those bytes."""
    if path.is_file() and path.read_bytes() == data:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return True


def remove_stale(output_dir: Path, previous: dict, current: dict[str, bytes]) -> list[str]:
    removed = []
    root = output_dir.resolve()
    for rel in sorted(previous):
        if rel in current:
            continue
        path = output_dir / rel
        if not path.resolve().is_relative_to(root):
            continue
        if path.is_file():
            path.unlink()
            removed.append(rel)
        parent = path.parent
        while parent != output_dir and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
    return removed


def write_output(
    output: dict[str, bytes],
    output_dir: Path,
    *,
    clean: bool = False,
    project_root: Optional[Path] = None,
) -> WriteResult:
    """Persist ``output`` under ``output_dir``.

    Files recorded in the previous build's manifest that are no longer
    produced are deleted; files whose bytes did not change are left alone.
    """
    output_dir = Path(output_dir)
    result = WriteResult()
    try:
        if clean:
            clean_output_dir(output_dir, project_root or Path.cwd())
        manifest_path = output_dir / MANIFEST_NAME
        previous = load_manifest(manifest_path).get("files", {})
        output_dir.mkdir(parents=True, exist_ok=True)
        for rel in sorted(output):
            if write_bytes(output_dir / rel, output[rel]):
                result.written.append(rel)
            else:
                result.unchanged.append(rel)
        result.removed = remove_stale(output_dir, previous, output)
        write_manifest(manifest_path, {rel: hash_bytes(data) for rel, data in output.items()})
    except OSError as exc:
        raise FilesystemError(f"Cannot write output to {output_dir}: {exc}") from exc
    return result
