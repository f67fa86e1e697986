"""Core datatypes shared across distflite modules.

Responsibilities:
- Represent immutable records exchanged between the partition, build, compute,
  and combine stages.
- Provide explicit typing for descriptor serialization and lifecycle outcomes.

Key types:
- `Chunk`, `Timeout`, `WorkloadPayload`, `SubtaskSpec`, `JobDescriptor`,
  `JobStatus`, `JobState`, `StatusReport`, `LifecycleOutcome`, `AudioSpec`,
  `ResultArtifact`, `MergedAudio`, and `RunResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class Chunk:
    """A contiguous run of whole words taken from the input text.

    Attributes:
        index: 0-based chunk index in input order.
        text: Words joined by a single ASCII space.
    """

    index: int
    text: str

    @property
    def word_count(self) -> int:
        """Return the number of words held by this chunk."""

        return len(self.text.split())


@dataclass(frozen=True, slots=True)
class Timeout:
    """Backend-enforced timeout expressed as a time of day `HH:MM:SS`."""

    hours: int
    minutes: int
    seconds: int

    @classmethod
    def parse(cls, value: str) -> Timeout:
        """Parse `HH:MM:SS` text into a non-zero timeout.

        Raises:
            ValueError: If the text is malformed, out of range, or all zeros.
        """

        try:
            parsed = datetime.strptime(value.strip(), "%H:%M:%S")
        except ValueError as exc:
            raise ValueError(f"Failed parsing timeout from '{value}': {exc}") from exc
        timeout = cls(hours=parsed.hour, minutes=parsed.minute, seconds=parsed.second)
        if timeout.total_seconds == 0:
            raise ValueError("Timeout of '00:00:00' is not allowed")
        return timeout

    @property
    def total_seconds(self) -> int:
        """Return the timeout length in seconds."""

        return self.hours * 3600 + self.minutes * 60 + self.seconds

    def __str__(self) -> str:
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}"


@dataclass(frozen=True, slots=True)
class WorkloadPayload:
    """Opaque workload binary plus its companion execution stub.

    Attributes:
        js_name: File name of the JavaScript execution stub.
        js: Stub file bytes.
        wasm_name: File name of the WebAssembly binary.
        wasm: Binary file bytes.
    """

    js_name: str
    js: bytes
    wasm_name: str
    wasm: bytes

    @property
    def files(self) -> tuple[tuple[str, bytes], ...]:
        """Return payload files as ordered `(name, bytes)` pairs."""

        return ((self.js_name, self.js), (self.wasm_name, self.wasm))


@dataclass(frozen=True, slots=True)
class SubtaskSpec:
    """Per-chunk execution record inside a job descriptor."""

    name: str
    chunk_index: int
    input_path: Path
    output_path: Path
    exec_args: tuple[str, ...]

    @property
    def output_file_names(self) -> tuple[str, ...]:
        """Return expected output artifact names relative to the subtask output dir."""

        return (self.output_path.name,)


@dataclass(frozen=True, slots=True)
class JobDescriptor:
    """Immutable job document submitted to the compute backend.

    Attributes:
        name: Task name reported to the backend.
        bid: Price offered per subtask.
        budget: Optional total budget cap.
        task_timeout: Task-level timeout enforced by the backend.
        subtask_timeout: Subtask-level timeout enforced by the backend.
        workload: Shared workload payload referenced by every subtask.
        input_dir: Workspace input directory.
        output_dir: Workspace output directory.
        subtasks: Subtask records in chunk order.
    """

    name: str
    bid: float
    budget: float | None
    task_timeout: Timeout
    subtask_timeout: Timeout
    workload: WorkloadPayload
    input_dir: Path
    output_dir: Path
    subtasks: tuple[SubtaskSpec, ...]

    @property
    def expected_output_paths(self) -> tuple[Path, ...]:
        """Return expected result artifact paths in chunk order."""

        return tuple(subtask.output_path for subtask in self.subtasks)

    def to_payload(self) -> dict[str, Any]:
        """Serialize the descriptor into the backend's JSON document shape."""

        subtasks: dict[str, Any] = {}
        for subtask in self.subtasks:
            subtasks[subtask.name] = {
                "exec_args": list(subtask.exec_args),
                "output_file_paths": list(subtask.output_file_names),
            }
        payload: dict[str, Any] = {
            "type": "wasm",
            "name": self.name,
            "bid": self.bid,
            "timeout": str(self.task_timeout),
            "subtask_timeout": str(self.subtask_timeout),
            "options": {
                "js_name": self.workload.js_name,
                "wasm_name": self.workload.wasm_name,
                "input_dir": str(self.input_dir),
                "output_dir": str(self.output_dir),
                "subtasks": subtasks,
            },
        }
        if self.budget is not None:
            payload["budget"] = self.budget
        return payload


class JobStatus(str, Enum):
    """Status values the compute backend reports for a job."""

    RUNNING = "running"
    RESTARTED = "restarted"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"
    FINISHED = "finished"


class JobState(str, Enum):
    """Lifecycle controller states."""

    BUILT = "built"
    SUBMITTED = "submitted"
    POLLING = "polling"
    RESTARTED = "restarted"
    FINISHED = "finished"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Return whether no further transitions are possible."""

        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {JobState.FINISHED, JobState.ABORTED, JobState.TIMED_OUT, JobState.CANCELLED}
)


@dataclass(frozen=True, slots=True)
class StatusReport:
    """One poll response from the compute backend."""

    status: JobStatus
    progress: float
    message: str | None = None


@dataclass(frozen=True, slots=True)
class LifecycleOutcome:
    """Final result of driving one job through the lifecycle controller.

    Attributes:
        state: Terminal state, either `FINISHED` or `CANCELLED`.
        handle: Backend job handle.
        progress: Highest progress observed since the last reset.
        result_paths: Result artifact paths in chunk order; empty when cancelled.
    """

    state: JobState
    handle: str
    progress: float
    result_paths: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def cancelled(self) -> bool:
        """Return whether the run stopped on a user cancellation request."""

        return self.state is JobState.CANCELLED


@dataclass(frozen=True, slots=True)
class AudioSpec:
    """Audio stream format shared by every merged result artifact."""

    sample_rate: int
    bits_per_sample: int
    channels: int

    def describe(self) -> str:
        """Return a compact human-readable format label."""

        return f"{self.sample_rate} Hz/{self.bits_per_sample}-bit/{self.channels}ch"


@dataclass(frozen=True, slots=True)
class ResultArtifact:
    """One per-chunk result artifact produced by the backend."""

    chunk_index: int
    path: Path


@dataclass(frozen=True, slots=True)
class MergedAudio:
    """Summary of a combined output artifact."""

    path: Path
    spec: AudioSpec
    frame_count: int
    part_count: int


@dataclass(frozen=True, slots=True)
class RunResult:
    """Record of one end-to-end pipeline run.

    Attributes:
        state: Terminal lifecycle state.
        handle: Backend job handle, if the job was submitted.
        chunk_count: Number of chunks submitted as subtasks.
        workspace: Workspace path used for the run.
        merged: Merged audio summary; `None` when cancelled.
        extra: Additional run metadata.
    """

    state: JobState
    handle: str | None
    chunk_count: int
    workspace: Path
    merged: MergedAudio | None = None
    extra: Mapping[str, str] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        """Return whether the run ended on user cancellation."""

        return self.state is JobState.CANCELLED
