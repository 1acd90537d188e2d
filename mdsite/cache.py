from __future__ import annotations

import hashlib
import json
from pathlib import Path

MANIFEST_VERSION = 1


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_output(output: dict[str, bytes]) -> str:
    digest = hashlib.sha256()
    for rel in sorted(output):
        digest.update(rel.encode("utf-8"))
        digest.update(b"\0")
        digest.update(output[rel])
        digest.update(b"\0")
    return digest.hexdigest()


def load_manifest(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    if not isinstance(data, dict) or data.get("version") != MANIFEST_VERSION:
        return {}
    return data


def write_manifest(path: Path, files: dict[str, str]) -> None:
    data = {"version": MANIFEST_VERSION, "files": dict(sorted(files.items()))}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=True), encoding="utf-8")
