"""CLI runtime helpers.

This module isolates backend runtime source assembly and interrupt handling
from the command wiring layer.
"""

from __future__ import annotations

import signal
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import FrameType

from .job.lifecycle import CancellationToken
from .parsing import normalize_optional_string


def _set_runtime_cli_value(
    runtime_cli_values: dict[str, str],
    key: str,
    value: object,
) -> None:
    """Set a normalized runtime CLI value when user input is present."""

    normalized = normalize_optional_string(value)
    if normalized is not None:
        runtime_cli_values[key] = normalized


def resolve_backend_runtime_sources(
    *,
    address: str | None,
    port: int | None,
    workload_dir: Path | None,
) -> dict[str, str]:
    """Collect explicitly passed backend options as runtime CLI source values."""

    runtime_cli_values: dict[str, str] = {}
    _set_runtime_cli_value(runtime_cli_values, "address", address)
    _set_runtime_cli_value(runtime_cli_values, "port", port)
    _set_runtime_cli_value(runtime_cli_values, "workload_dir", workload_dir)
    return runtime_cli_values


@contextmanager
def cancel_on_interrupt(token: CancellationToken) -> Iterator[CancellationToken]:
    """Turn SIGINT into a cancellation request for the duration of the block.

    The handler only sets the token; the poll loop performs the backend cancel.
    The previous handler is restored on exit.
    """

    def _handle_interrupt(signum: int, frame: FrameType | None) -> None:
        _ = (signum, frame)
        token.request()

    previous = signal.signal(signal.SIGINT, _handle_interrupt)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
