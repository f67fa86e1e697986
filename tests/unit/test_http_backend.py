"""Unit tests for the requests-based compute backend client."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import requests

from distflite.backend.http_client import HttpComputeBackend, parse_status_token
from distflite.errors import BackendError, ProtocolError
from distflite.models.datatypes import (
    JobDescriptor,
    JobStatus,
    SubtaskSpec,
    Timeout,
    WorkloadPayload,
)


class _MockRequestsResponse:
    """Minimal requests response mock used by backend client tests."""

    def __init__(self, *, payload: bytes, status_code: int = 200) -> None:
        """Initialize response with payload bytes and status code."""

        self.content = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        """Raise HTTP error when status code indicates failure."""

        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class _RecordingTransport:
    """Replacement for `requests.request` that records calls and replays responses."""

    def __init__(self, *responses: _MockRequestsResponse | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def __call__(self, method: str, url: str, **kwargs: Any) -> _MockRequestsResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _json_response(payload: object, status_code: int = 200) -> _MockRequestsResponse:
    return _MockRequestsResponse(
        payload=json.dumps(payload).encode("utf-8"), status_code=status_code
    )


def _install(monkeypatch: pytest.MonkeyPatch, transport: _RecordingTransport) -> None:
    monkeypatch.setattr("distflite.backend.http_client.requests.request", transport)


@pytest.fixture
def descriptor() -> JobDescriptor:
    return JobDescriptor(
        name="distflite",
        bid=1.0,
        budget=None,
        task_timeout=Timeout(0, 10, 0),
        subtask_timeout=Timeout(0, 1, 0),
        workload=WorkloadPayload("flite.js", b"js", "flite.wasm", b"wasm"),
        input_dir=Path("/ws/input"),
        output_dir=Path("/ws/output"),
        subtasks=(
            SubtaskSpec(
                "subtask0",
                0,
                Path("/ws/input/subtask0/in.txt"),
                Path("/ws/output/subtask0/in.wav"),
                ("in.txt", "in.wav"),
            ),
        ),
    )


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("Computing", JobStatus.RUNNING),
        ("Not started", JobStatus.RUNNING),
        ("Creating the deposit", JobStatus.RUNNING),
        ("waiting", JobStatus.RUNNING),
        ("Restarted", JobStatus.RESTARTED),
        ("Aborted", JobStatus.ABORTED),
        ("Timeout", JobStatus.TIMED_OUT),
        ("timed_out", JobStatus.TIMED_OUT),
        ("FINISHED", JobStatus.FINISHED),
    ],
)
def test_parse_status_token_maps_backend_labels(token: str, expected: JobStatus) -> None:
    assert parse_status_token(token) is expected


@pytest.mark.parametrize("token", ["exploded", 3, None])
def test_parse_status_token_rejects_unknown_values(token: object) -> None:
    with pytest.raises(ProtocolError):
        parse_status_token(token)


def test_submit_posts_descriptor_and_returns_task_id(
    monkeypatch: pytest.MonkeyPatch, descriptor: JobDescriptor
) -> None:
    """Submit should POST the descriptor JSON and return the created task id."""

    transport = _RecordingTransport(_json_response({"task_id": " abc-123 "}))
    _install(monkeypatch, transport)
    backend = HttpComputeBackend(address="10.0.0.2", port=61001, timeout_seconds=5.0)

    handle = backend.submit(descriptor)

    assert handle == "abc-123"
    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "http://10.0.0.2:61001/tasks"
    assert call["json"] == descriptor.to_payload()
    assert call["timeout"] == 5.0


def test_submit_reports_backend_rejection(
    monkeypatch: pytest.MonkeyPatch, descriptor: JobDescriptor
) -> None:
    _install(monkeypatch, _RecordingTransport(_json_response({"error": "insufficient funds"})))

    with pytest.raises(BackendError, match="backend rejected the task: insufficient funds"):
        HttpComputeBackend().submit(descriptor)


def test_submit_without_task_id_is_protocol_error(
    monkeypatch: pytest.MonkeyPatch, descriptor: JobDescriptor
) -> None:
    _install(monkeypatch, _RecordingTransport(_json_response({"status": "ok"})))

    with pytest.raises(ProtocolError, match="task_id"):
        HttpComputeBackend().submit(descriptor)


def test_poll_returns_status_progress_and_message(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = _RecordingTransport(
        _json_response({"status": "Computing", "progress": 0.42, "message": "  half   way "})
    )
    _install(monkeypatch, transport)

    report = HttpComputeBackend().poll("abc")

    assert report.status is JobStatus.RUNNING
    assert report.progress == pytest.approx(0.42)
    assert report.message == "half way"
    assert transport.calls[0]["method"] == "GET"
    assert transport.calls[0]["url"] == "http://127.0.0.1:61000/tasks/abc"


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"progress": 0.5}, "missing `status`"),
        ({"status": "Computing", "progress": "half"}, "non-numeric `progress`"),
        ({"status": "Computing", "progress": True}, "non-numeric `progress`"),
        ({"status": "Melting", "progress": 0.5}, "unknown task status"),
        ([1, 2], "must be a JSON object"),
    ],
)
def test_poll_rejects_malformed_responses(
    monkeypatch: pytest.MonkeyPatch, payload: object, message: str
) -> None:
    _install(monkeypatch, _RecordingTransport(_json_response(payload)))

    with pytest.raises(ProtocolError, match=message):
        HttpComputeBackend().poll("abc")


def test_poll_rejects_non_json_body(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(
        monkeypatch,
        _RecordingTransport(_MockRequestsResponse(payload=b"<html>gateway</html>")),
    )

    with pytest.raises(ProtocolError, match="invalid JSON"):
        HttpComputeBackend().poll("abc")


def test_cancel_posts_cancel_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = _RecordingTransport(_MockRequestsResponse(payload=b""))
    _install(monkeypatch, transport)

    HttpComputeBackend().cancel("abc")

    assert transport.calls[0]["method"] == "POST"
    assert transport.calls[0]["url"] == "http://127.0.0.1:61000/tasks/abc/cancel"


def test_http_client_errors_map_to_backend_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """4xx responses should surface as rejected requests with the backend message."""

    _install(
        monkeypatch,
        _RecordingTransport(_json_response({"error": "unknown task"}, status_code=404)),
    )

    with pytest.raises(BackendError) as exc_info:
        HttpComputeBackend().poll("missing")

    message = str(exc_info.value)
    assert "backend rejected the request GET /tasks/missing (HTTP 404)" in message
    assert "unknown task" in message


def test_http_server_errors_map_to_backend_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(
        monkeypatch,
        _RecordingTransport(_MockRequestsResponse(payload=b"boom", status_code=503)),
    )

    with pytest.raises(
        BackendError, match=r"backend request failed POST /tasks/x/cancel \(HTTP 503\): boom"
    ):
        HttpComputeBackend().cancel("x")


def test_connection_failures_map_to_backend_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(
        monkeypatch,
        _RecordingTransport(requests.ConnectionError("connection refused")),
    )

    with pytest.raises(BackendError, match="cannot connect to backend at http://127.0.0.1"):
        HttpComputeBackend().poll("abc")


def test_timeouts_map_to_backend_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, _RecordingTransport(requests.Timeout("read timed out")))

    with pytest.raises(BackendError, match="timed out"):
        HttpComputeBackend().poll("abc")
