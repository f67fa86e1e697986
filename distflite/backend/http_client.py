"""HTTP JSON client for the remote compute backend.

Responsibilities:
- Submit job descriptors, poll job status, and request cancellation over HTTP.
- Map transport and HTTP failures to `BackendError`.
- Map malformed or incomplete response bodies to `ProtocolError`.
"""

from __future__ import annotations

import json
import socket
from typing import Any

import requests

from ..errors import BackendError, ProtocolError
from ..models.datatypes import JobDescriptor, JobStatus, StatusReport

_STATUS_TOKENS: dict[str, JobStatus] = {
    "notstarted": JobStatus.RUNNING,
    "creatingthedeposit": JobStatus.RUNNING,
    "sending": JobStatus.RUNNING,
    "waiting": JobStatus.RUNNING,
    "starting": JobStatus.RUNNING,
    "computing": JobStatus.RUNNING,
    "running": JobStatus.RUNNING,
    "restarted": JobStatus.RESTARTED,
    "aborted": JobStatus.ABORTED,
    "timeout": JobStatus.TIMED_OUT,
    "timedout": JobStatus.TIMED_OUT,
    "finished": JobStatus.FINISHED,
}


def parse_status_token(value: object) -> JobStatus:
    """Map a backend status string onto a `JobStatus`.

    Raises:
        ProtocolError: If the value is not a known status string.
    """

    if not isinstance(value, str):
        raise ProtocolError(f"backend status must be a string, got {value!r}")
    token = "".join(character for character in value.lower() if character.isalnum())
    try:
        return _STATUS_TOKENS[token]
    except KeyError as exc:
        raise ProtocolError(f"backend reported unknown task status '{value}'") from exc


class HttpComputeBackend:
    """Minimal requests-based client for the compute backend's task API."""

    _MAX_BACKEND_MESSAGE_CHARS = 180

    def __init__(
        self,
        *,
        address: str = "127.0.0.1",
        port: int = 61000,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize HTTP client settings."""

        self.base_url = f"http://{address}:{port}"
        self.timeout_seconds = timeout_seconds

    def submit(self, descriptor: JobDescriptor) -> str:
        """POST the descriptor to `/tasks` and return the created task id."""

        payload = self._request_json("POST", "/tasks", payload=descriptor.to_payload())
        task_id = payload.get("task_id")
        error = payload.get("error")
        if isinstance(task_id, str) and task_id.strip():
            return task_id.strip()
        if isinstance(error, str) and error.strip():
            raise BackendError(
                f"backend rejected the task: {self._short_message(error)}"
            )
        raise ProtocolError("backend accepted the task but returned no `task_id`")

    def poll(self, handle: str) -> StatusReport:
        """GET `/tasks/<handle>` and return the reported status and progress."""

        payload = self._request_json("GET", f"/tasks/{handle}")
        if "status" not in payload:
            raise ProtocolError(f"status response for task '{handle}' is missing `status`")
        status = parse_status_token(payload["status"])

        raw_progress = payload.get("progress", 0.0)
        if isinstance(raw_progress, bool) or not isinstance(raw_progress, int | float):
            raise ProtocolError(
                f"status response for task '{handle}' has non-numeric `progress`"
            )
        progress = min(1.0, max(0.0, float(raw_progress)))

        message = payload.get("message")
        return StatusReport(
            status=status,
            progress=progress,
            message=self._short_message(message) if isinstance(message, str) else None,
        )

    def cancel(self, handle: str) -> None:
        """POST `/tasks/<handle>/cancel`."""

        self._request("POST", f"/tasks/{handle}/cancel")

    def _request_json(
        self,
        method: str,
        endpoint_path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute a request and decode a JSON object response body."""

        body = self._request(method, endpoint_path, payload=payload)
        try:
            decoded = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProtocolError(
                f"backend returned invalid JSON for {method} {endpoint_path}"
            ) from exc
        if not isinstance(decoded, dict):
            raise ProtocolError(
                f"backend response for {method} {endpoint_path} must be a JSON object"
            )
        return decoded

    def _request(
        self,
        method: str,
        endpoint_path: str,
        payload: dict[str, Any] | None = None,
    ) -> bytes:
        """Execute one HTTP request and map failures consistently."""

        endpoint = f"{self.base_url}{endpoint_path}"
        try:
            response = requests.request(
                method,
                endpoint,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            return bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_backend_error(exc, method, endpoint_path) from exc
        except requests.RequestException as exc:
            if self._is_timeout(exc):
                detail = f"backend request {method} {endpoint_path} timed out"
            else:
                detail = (
                    f"cannot connect to backend at {self.base_url}: "
                    f"{self._short_message(str(exc))}"
                )
            raise BackendError(detail) from exc

    @staticmethod
    def _is_timeout(reason: object) -> bool:
        return isinstance(reason, TimeoutError | socket.timeout | requests.Timeout)

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing backend message length."""

        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_BACKEND_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_BACKEND_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_backend_message(cls, exc: requests.HTTPError) -> str:
        """Extract a concise message from an HTTP error body."""

        response = exc.response
        if response is None:
            return ""
        body = bytes(response.content).decode("utf-8", errors="replace").strip()
        if not body:
            return ""
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(body)
        if isinstance(payload, dict):
            for key in ("error", "message"):
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    return cls._short_message(value)
        return cls._short_message(body)

    @classmethod
    def _http_error_to_backend_error(
        cls,
        exc: requests.HTTPError,
        method: str,
        endpoint_path: str,
    ) -> BackendError:
        """Convert HTTP errors into backend errors with status context."""

        status_code = exc.response.status_code if exc.response is not None else 0
        backend_message = cls._extract_backend_message(exc)
        headline = (
            "backend rejected the request"
            if 400 <= status_code < 500
            else "backend request failed"
        )
        detail = f"{headline} {method} {endpoint_path} (HTTP {status_code})"
        if backend_message:
            detail = f"{detail}: {backend_message}"
        return BackendError(detail)
