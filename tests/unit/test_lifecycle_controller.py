"""Unit tests for the submit-poll-cancel job lifecycle."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from distflite.errors import BackendError, JobAbortedError, JobTimedOutError, ProtocolError
from distflite.io.workspace import Workspace
from distflite.job.builder import ManifestBuilder
from distflite.job.lifecycle import CancellationToken, LifecycleController
from distflite.models.datatypes import (
    Chunk,
    JobDescriptor,
    JobState,
    JobStatus,
    StatusReport,
    Timeout,
    WorkloadPayload,
)
from tests.fixture_audio import ScriptedBackend, finished_after


class _RecordingSink:
    """Progress sink test double that records every event."""

    def __init__(self) -> None:
        self.events: list[tuple[object, ...]] = []

    def start(self) -> None:
        self.events.append(("start",))

    def update(self, delta: float, progress: float) -> None:
        self.events.append(("update", delta, progress))

    def reset(self) -> None:
        self.events.append(("reset",))

    def stop(self) -> None:
        self.events.append(("stop",))


class _RecordingSleeper:
    """Sleeper test double that records intervals and can trigger a callback."""

    def __init__(self, on_sleep: Callable[[], None] | None = None) -> None:
        self.intervals: list[float] = []
        self._on_sleep = on_sleep

    def __call__(self, seconds: float) -> None:
        self.intervals.append(seconds)
        if self._on_sleep is not None:
            self._on_sleep()


@pytest.fixture
def descriptor(tmp_path: Path) -> JobDescriptor:
    """Build a two-subtask descriptor inside a temporary workspace."""

    return ManifestBuilder().build(
        Workspace.user_specified(tmp_path),
        [Chunk(0, "a b"), Chunk(1, "c d")],
        WorkloadPayload("flite.js", b"js", "flite.wasm", b"wasm"),
        bid=1.0,
        task_timeout=Timeout(0, 10, 0),
        subtask_timeout=Timeout(0, 1, 0),
    )


def _delta_events(sink: _RecordingSink) -> list[object]:
    """Return deltas and reset markers in emission order."""

    rendered: list[object] = []
    for event in sink.events:
        if event[0] == "update":
            rendered.append(pytest.approx(event[1]))
        elif event[0] == "reset":
            rendered.append("reset")
    return rendered


def test_poll_sequence_emits_deltas_and_reset(descriptor: JobDescriptor) -> None:
    """Progress 0.2, 0.5, restart, 0.1, finish should emit +0.2 +0.3 reset +0.1 +0.9."""

    backend = ScriptedBackend(
        [
            StatusReport(JobStatus.RUNNING, 0.2),
            StatusReport(JobStatus.RUNNING, 0.5),
            StatusReport(JobStatus.RESTARTED, 0.0),
            StatusReport(JobStatus.RUNNING, 0.1),
            StatusReport(JobStatus.FINISHED, 1.0),
        ]
    )
    sink = _RecordingSink()
    sleeper = _RecordingSleeper()
    controller = LifecycleController(
        backend, progress_sink=sink, poll_interval_seconds=0.5, sleeper=sleeper
    )

    outcome = controller.run(descriptor)

    assert _delta_events(sink) == [0.2, 0.3, "reset", 0.1, 0.9]
    assert sink.events[0] == ("start",)
    assert sink.events[-1] == ("stop",)
    assert outcome.state is JobState.FINISHED
    assert outcome.handle == "task-1"
    assert outcome.progress == pytest.approx(1.0)
    assert outcome.result_paths == descriptor.expected_output_paths
    assert sleeper.intervals == [0.5, 0.5, 0.5, 0.5]
    assert backend.polled == ["task-1"] * 5


def test_progress_never_decreases_without_reset(descriptor: JobDescriptor) -> None:
    """Lower progress values are ignored and out-of-range values are clamped."""

    backend = ScriptedBackend(
        [
            StatusReport(JobStatus.RUNNING, 0.5),
            StatusReport(JobStatus.RUNNING, 0.3),
            StatusReport(JobStatus.RUNNING, 1.7),
            StatusReport(JobStatus.FINISHED, 1.0),
        ]
    )
    sink = _RecordingSink()
    controller = LifecycleController(backend, progress_sink=sink, sleeper=_RecordingSleeper())

    controller.run(descriptor)

    assert _delta_events(sink) == [0.5, 0.5]
    assert controller.progress == pytest.approx(1.0)


def test_cancellation_before_first_poll_cancels_backend_job(
    descriptor: JobDescriptor,
) -> None:
    """A pending cancellation request is honored before polling."""

    backend = ScriptedBackend(finished_after(0.5))
    token = CancellationToken()
    controller = LifecycleController(backend, cancellation=token, sleeper=_RecordingSleeper())
    controller.submit(descriptor)
    token.request()

    outcome = controller.wait()

    assert outcome.cancelled
    assert outcome.result_paths == ()
    assert backend.polled == []
    assert backend.cancelled == ["task-1"]
    assert controller.state is JobState.CANCELLED


def test_cancellation_during_polling_stops_at_next_boundary(
    descriptor: JobDescriptor,
) -> None:
    """A request raised while sleeping is observed before the next poll."""

    backend = ScriptedBackend([StatusReport(JobStatus.RUNNING, 0.25)])
    token = CancellationToken()
    controller = LifecycleController(
        backend,
        cancellation=token,
        sleeper=_RecordingSleeper(on_sleep=token.request),
    )

    outcome = controller.run(descriptor)

    assert outcome.state is JobState.CANCELLED
    assert outcome.progress == pytest.approx(0.25)
    assert backend.polled == ["task-1"]
    assert backend.cancelled == ["task-1"]


def test_aborted_job_raises_backend_error_subtype(descriptor: JobDescriptor) -> None:
    """An aborted status raises `JobAbortedError` carrying handle and message."""

    backend = ScriptedBackend(
        [
            StatusReport(JobStatus.RUNNING, 0.4),
            StatusReport(JobStatus.ABORTED, 0.4, message="provider lost"),
        ]
    )
    sink = _RecordingSink()
    controller = LifecycleController(backend, progress_sink=sink, sleeper=_RecordingSleeper())

    with pytest.raises(
        JobAbortedError, match="was aborted at 40% progress: provider lost"
    ) as exc_info:
        controller.run(descriptor)

    assert isinstance(exc_info.value, BackendError)
    assert exc_info.value.handle == "task-1"
    assert controller.state is JobState.ABORTED
    assert sink.events[-1] == ("stop",)


def test_timed_out_job_raises_timeout_error(descriptor: JobDescriptor) -> None:
    """A timed-out status raises `JobTimedOutError`."""

    backend = ScriptedBackend([StatusReport(JobStatus.TIMED_OUT, 0.0)])
    controller = LifecycleController(backend, sleeper=_RecordingSleeper())

    with pytest.raises(JobTimedOutError, match="timed out"):
        controller.run(descriptor)

    assert controller.state is JobState.TIMED_OUT


@pytest.mark.parametrize("handle", [None, "", "   "])
def test_submit_without_job_identifier_is_protocol_error(
    descriptor: JobDescriptor, handle: str | None
) -> None:
    """Accepting a job without an identifier is a protocol violation."""

    controller = LifecycleController(ScriptedBackend(finished_after(), handle=handle))

    with pytest.raises(ProtocolError, match="no job identifier"):
        controller.submit(descriptor)

    assert controller.state is JobState.BUILT
    assert controller.handle is None


def test_controller_manages_exactly_one_job(descriptor: JobDescriptor) -> None:
    """Submitting twice through one controller is rejected."""

    controller = LifecycleController(ScriptedBackend(finished_after()))
    controller.submit(descriptor)

    with pytest.raises(RuntimeError, match="cannot submit"):
        controller.submit(descriptor)


def test_poll_errors_propagate_without_retry(descriptor: JobDescriptor) -> None:
    """Backend failures during polling are raised as-is."""

    class _FailingBackend(ScriptedBackend):
        def poll(self, handle: str) -> StatusReport:
            self.polled.append(handle)
            raise BackendError("cannot connect to backend")

    backend = _FailingBackend(finished_after())
    controller = LifecycleController(backend, sleeper=_RecordingSleeper())

    with pytest.raises(BackendError, match="cannot connect"):
        controller.run(descriptor)

    assert backend.polled == ["task-1"]
