"""Compute backend capability interface.

The lifecycle controller only depends on this protocol, so any transport that
can submit a job descriptor, report status, and cancel a job can drive it.
"""

from __future__ import annotations

from typing import Protocol

from ..models.datatypes import JobDescriptor, StatusReport


class ComputeBackend(Protocol):
    """Remote compute service executing one subtask per chunk."""

    def submit(self, descriptor: JobDescriptor) -> str | None:
        """Send a job descriptor and return the backend job identifier.

        Raises:
            BackendError: If the backend is unreachable or rejects the job.
        """

    def poll(self, handle: str) -> StatusReport:
        """Return the current status and progress of a submitted job."""

    def cancel(self, handle: str) -> None:
        """Ask the backend to stop a submitted job."""
