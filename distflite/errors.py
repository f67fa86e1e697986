"""Domain exceptions for job lifecycle and CLI diagnostics."""

from __future__ import annotations

from pathlib import Path


class DistfliteError(RuntimeError):
    """Base class for all errors raised by the distflite core."""


class ValidationError(DistfliteError):
    """Raised when inputs cannot be partitioned or combined."""


class IoError(DistfliteError):
    """Raised when a workspace or artifact filesystem operation fails."""

    def __init__(self, message: str, *, path: Path) -> None:
        """Initialize a filesystem error bound to the offending path."""

        super().__init__(f"{message}: '{path}'")
        self.path = path


class BackendError(DistfliteError):
    """Raised when the compute backend is unreachable or rejects a request."""

    def __init__(self, message: str, *, handle: str | None = None) -> None:
        """Initialize a backend error with optional job handle context."""

        super().__init__(message)
        self.handle = handle


class JobAbortedError(BackendError):
    """Raised when the backend reports the job as aborted."""


class JobTimedOutError(BackendError):
    """Raised when the backend reports the job as timed out."""


class ProtocolError(DistfliteError):
    """Raised when a backend response is malformed or incomplete."""


class FormatMismatchError(DistfliteError):
    """Raised when a result artifact's audio spec differs from the first one."""

    def __init__(self, message: str, *, chunk_index: int, path: Path) -> None:
        """Initialize a format error naming the offending chunk."""

        super().__init__(message)
        self.chunk_index = chunk_index
        self.path = path


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint
