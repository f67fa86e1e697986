"""Artifact storage abstraction.

Responsibilities:
- Provide filesystem writes for text, JSON, and binary workspace artifacts.
- Map every `OSError` to `IoError` carrying the offending path.
"""

from __future__ import annotations

import json
from pathlib import Path

from ..errors import IoError


class ArtifactStore:
    """Filesystem-backed artifact store rooted at a workspace directory."""

    def __init__(self, root: Path) -> None:
        """Initialize the store with a root directory."""

        self.root = root

    def create_dir(self, relative_path: Path) -> Path:
        """Create one new directory; an existing directory is an error."""

        path = self.root / relative_path
        try:
            path.mkdir()
        except FileExistsError as exc:
            raise IoError("workspace directory already exists", path=path) from exc
        except OSError as exc:
            raise IoError(f"creating directory failed ({exc.strerror})", path=path) from exc
        return path

    def save_text(self, relative_path: Path, content: str) -> Path:
        """Save UTF-8 text content and return the final path."""

        return self.save_bytes(relative_path, content.encode("utf-8"))

    def save_json(self, relative_path: Path, payload: dict[str, object]) -> Path:
        """Save JSON-serializable payload and return the final path."""

        return self.save_text(
            relative_path,
            json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True),
        )

    def save_bytes(self, relative_path: Path, data: bytes) -> Path:
        """Save raw bytes and return the final path."""

        path = self.root / relative_path
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise IoError(f"writing file failed ({exc.strerror})", path=path) from exc
        return path
