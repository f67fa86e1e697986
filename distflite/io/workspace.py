"""Scoped workspace directories for one distributed run.

A workspace is either a user-specified directory, which is left intact for
inspection, or an owned temporary directory removed when the scope exits.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from types import TracebackType

from loguru import logger

from ..errors import IoError


class Workspace:
    """Directory holding the `input/` and `output/` areas of one job."""

    def __init__(
        self,
        path: Path,
        *,
        temp_dir: tempfile.TemporaryDirectory[str] | None = None,
    ) -> None:
        """Bind the workspace to a path and, for ephemeral use, its owner."""

        self._path = path
        self._temp_dir = temp_dir
        self._ephemeral = temp_dir is not None

    @classmethod
    def user_specified(cls, path: Path) -> Workspace:
        """Use an existing directory that the caller owns and keeps."""

        if not path.is_dir():
            raise IoError("workspace directory does not exist", path=path)
        return cls(path.resolve())

    @classmethod
    def temporary(cls, prefix: str = "distflite") -> Workspace:
        """Create an owned temporary directory deleted on cleanup."""

        try:
            temp_dir = tempfile.TemporaryDirectory(prefix=prefix)
        except OSError as exc:
            raise IoError(
                "creating workspace dir in your tmp files failed",
                path=Path(tempfile.gettempdir()),
            ) from exc
        return cls(Path(temp_dir.name), temp_dir=temp_dir)

    @property
    def path(self) -> Path:
        """Return the workspace root directory."""

        return self._path

    @property
    def is_ephemeral(self) -> bool:
        """Return whether the workspace is deleted on cleanup."""

        return self._ephemeral

    def cleanup(self) -> None:
        """Delete an ephemeral workspace; user-specified ones are kept."""

        if self._temp_dir is None:
            logger.info("Keeping workspace '{}'", self._path)
            return
        logger.info("Removing workspace '{}'", self._path)
        self._temp_dir.cleanup()
        self._temp_dir = None

    def __enter__(self) -> Workspace:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.cleanup()

    def __str__(self) -> str:
        return str(self._path)
