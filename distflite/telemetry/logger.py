"""Structured run logging utilities.

Responsibilities:
- Configure the `loguru` sink and level for one CLI invocation.
- Emit concise, deterministic phase-level and job-level runtime logs.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic phase logs for CLI-observable pipeline activity."""

    def __init__(self, sink: TextIO | None = None, verbose: bool = False) -> None:
        """Route all loguru output to one sink at a verbosity-dependent level."""

        self._sink = sink or sys.stderr
        self.verbose = verbose
        self.level = "INFO" if verbose else "WARNING"
        logger.remove()
        logger.add(self._sink, format="{message}", level=self.level, colorize=False)

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        logger.log(level, line)

    def log_stage_start(self, stage: str) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", stage)

    def log_stage_complete(self, stage: str) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", stage)

    def log_stage_failure(self, stage: str, error_type: str) -> None:
        """Emit a stage-failure runtime event without sensitive payload details.

        Quiet runs skip it; the CLI prints the failure message itself.
        """

        if not self.verbose:
            return
        self._emit("ERROR", "failure", stage, error_type=error_type)

    def log_job_event(self, event: str, **context: object) -> None:
        """Emit a job lifecycle event such as `submitted` or `cancelled`."""

        self._emit("INFO", event, "job", **context)
