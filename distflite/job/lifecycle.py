"""Submit-poll-cancel lifecycle for one distributed job.

Responsibilities:
- Submit a job descriptor and hold the backend job handle.
- Poll on a fixed interval, turning progress reports into monotonic deltas.
- Honor cooperative cancellation at poll boundaries.
- Map terminal backend states to outcomes or `BackendError` subtypes.

Key types:
- `LifecycleController`: one-job state machine.
- `CancellationToken`: flag set from signal handlers, read by the poll loop.
- `ProgressSink`: receiver for progress deltas and reset events.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from loguru import logger

from ..backend.base import ComputeBackend
from ..errors import JobAbortedError, JobTimedOutError, ProtocolError
from ..models.datatypes import (
    JobDescriptor,
    JobState,
    JobStatus,
    LifecycleOutcome,
    StatusReport,
)

_ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.BUILT: frozenset({JobState.SUBMITTED}),
    JobState.SUBMITTED: frozenset({JobState.POLLING, JobState.CANCELLED}),
    JobState.POLLING: frozenset(
        {
            JobState.POLLING,
            JobState.RESTARTED,
            JobState.FINISHED,
            JobState.ABORTED,
            JobState.TIMED_OUT,
            JobState.CANCELLED,
        }
    ),
    JobState.RESTARTED: frozenset({JobState.POLLING}),
}


class ProgressSink(Protocol):
    """Receiver of aggregate job progress events."""

    def start(self) -> None:
        """Called once before the first poll."""

    def update(self, delta: float, progress: float) -> None:
        """Called when progress grows by `delta` to `progress`."""

    def reset(self) -> None:
        """Called when the backend restarts the job and progress returns to 0."""

    def stop(self) -> None:
        """Called once when the poll loop exits for any reason."""


class CancellationToken:
    """Thread-safe cancellation flag.

    Signal handlers only call `request()`; backend calls stay on the poll loop.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def request(self) -> None:
        """Mark cancellation as requested."""

        self._event.set()

    @property
    def requested(self) -> bool:
        """Return whether cancellation has been requested."""

        return self._event.is_set()


class LifecycleController:
    """Drive exactly one job from submission to a terminal state."""

    def __init__(
        self,
        backend: ComputeBackend,
        *,
        progress_sink: ProgressSink | None = None,
        cancellation: CancellationToken | None = None,
        poll_interval_seconds: float = 1.0,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        """Bind the controller to a backend and its optional observers."""

        if poll_interval_seconds < 0:
            raise ValueError("`poll_interval_seconds` must not be negative.")
        self._backend = backend
        self._progress_sink = progress_sink
        self._cancellation = cancellation or CancellationToken()
        self._poll_interval_seconds = poll_interval_seconds
        self._sleeper = sleeper
        self._state = JobState.BUILT
        self._handle: str | None = None
        self._descriptor: JobDescriptor | None = None
        self._progress = 0.0

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def handle(self) -> str | None:
        return self._handle

    @property
    def progress(self) -> float:
        """Return the highest progress observed since the last reset."""

        return self._progress

    def submit(self, descriptor: JobDescriptor) -> str:
        """Submit the descriptor and return the backend job handle.

        Raises:
            BackendError: If the backend cannot be reached or rejects the job.
            ProtocolError: If the backend accepts the job without an identifier.
        """

        self._require_state(JobState.BUILT, "submit")
        handle = self._backend.submit(descriptor)
        if not isinstance(handle, str) or not handle.strip():
            raise ProtocolError("backend accepted the task but returned no job identifier")

        self._descriptor = descriptor
        self._handle = handle.strip()
        self._transition(JobState.SUBMITTED)
        logger.info("Task submitted with id '{}'", self._handle)
        return self._handle

    def poll(self) -> StatusReport:
        """Issue one poll call and apply the reported status."""

        handle = self._require_handle()
        report = self._backend.poll(handle)
        self._apply(report)
        return report

    def cancel(self) -> None:
        """Cancel the submitted job on the backend."""

        handle = self._require_handle()
        logger.info("Cancelling task '{}'", handle)
        self._backend.cancel(handle)
        self._transition(JobState.CANCELLED)

    def wait(self) -> LifecycleOutcome:
        """Poll until the job finishes, fails, or cancellation is requested.

        Raises:
            JobAbortedError: If the backend aborts the job.
            JobTimedOutError: If the backend times the job out.
            BackendError: If a poll or cancel call fails.
            ProtocolError: If a poll response is malformed.
        """

        handle = self._require_handle()
        if self._progress_sink is not None:
            self._progress_sink.start()
        try:
            while True:
                if self._cancellation.requested:
                    self.cancel()
                    return LifecycleOutcome(
                        state=self._state,
                        handle=handle,
                        progress=self._progress,
                    )
                self.poll()
                if self._state is JobState.FINISHED:
                    return LifecycleOutcome(
                        state=self._state,
                        handle=handle,
                        progress=self._progress,
                        result_paths=self._result_paths(),
                    )
                self._sleeper(self._poll_interval_seconds)
        finally:
            if self._progress_sink is not None:
                self._progress_sink.stop()

    def run(self, descriptor: JobDescriptor) -> LifecycleOutcome:
        """Submit the descriptor and wait for a terminal outcome."""

        self.submit(descriptor)
        return self.wait()

    def _apply(self, report: StatusReport) -> None:
        """Update progress and state from one poll report."""

        if self._state is JobState.SUBMITTED:
            self._transition(JobState.POLLING)

        if report.status is JobStatus.RESTARTED:
            self._transition(JobState.RESTARTED)
            logger.info("Task '{}' restarted; progress reset", self._handle)
            self._progress = 0.0
            if self._progress_sink is not None:
                self._progress_sink.reset()
            self._transition(JobState.POLLING)
            return

        progress = min(1.0, max(0.0, float(report.progress)))
        if progress > self._progress:
            delta = progress - self._progress
            self._progress = progress
            if self._progress_sink is not None:
                self._progress_sink.update(delta, progress)

        if report.status is JobStatus.RUNNING:
            self._transition(JobState.POLLING)
        elif report.status is JobStatus.FINISHED:
            self._transition(JobState.FINISHED)
            logger.info("Task '{}' finished", self._handle)
        elif report.status is JobStatus.ABORTED:
            self._transition(JobState.ABORTED)
            raise JobAbortedError(
                self._terminal_message("was aborted", report),
                handle=self._handle,
            )
        elif report.status is JobStatus.TIMED_OUT:
            self._transition(JobState.TIMED_OUT)
            raise JobTimedOutError(
                self._terminal_message("timed out", report),
                handle=self._handle,
            )

    def _terminal_message(self, what: str, report: StatusReport) -> str:
        message = f"task '{self._handle}' {what} at {self._progress:.0%} progress"
        if report.message:
            message = f"{message}: {report.message}"
        return message

    def _result_paths(self) -> tuple[Path, ...]:
        if self._descriptor is None:
            return ()
        return self._descriptor.expected_output_paths

    def _transition(self, new_state: JobState) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self._state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(
                f"invalid job state transition {self._state.value} -> {new_state.value}"
            )
        self._state = new_state

    def _require_state(self, expected: JobState, action: str) -> None:
        if self._state is not expected:
            raise RuntimeError(f"cannot {action} a job in state {self._state.value}")

    def _require_handle(self) -> str:
        if self._handle is None:
            raise RuntimeError("job has not been submitted")
        return self._handle
