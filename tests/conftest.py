"""Shared pytest fixtures for the full distflite test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.fixture_audio import write_workload


@pytest.fixture(autouse=True)
def _isolate_backend_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer `DISTFLITE_*` variables from leaking into runtime resolution."""

    for key in ("DISTFLITE_ADDRESS", "DISTFLITE_PORT", "DISTFLITE_WORKLOAD_DIR"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def workload_dir(tmp_path: Path) -> Path:
    """Provide a directory with placeholder `flite.js` and `flite.wasm` files."""

    return write_workload(tmp_path / "workload")
