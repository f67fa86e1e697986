"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
job progress lines, partition previews, and run summaries.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import DistfliteError, PipelineStageError
from .models.datatypes import Chunk, RunResult


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    elif isinstance(exc, DistfliteError):
        typer.secho(
            f"{command_name} failed ({type(exc).__name__}): {exc}",
            fg=typer.colors.RED,
            err=True,
        )
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


class LineProgressSink:
    """Print one deterministic line per job progress event."""

    def start(self) -> None:
        typer.echo("[compute] waiting for task progress")

    def update(self, delta: float, progress: float) -> None:
        """Print aggregate progress and its increment."""

        typer.echo(f"[compute] progress={progress:.0%} (+{delta:.0%})")

    def reset(self) -> None:
        typer.echo("[compute] task restarted, progress reset to 0%")

    def stop(self) -> None:
        pass


def echo_partition_summary(chunks: list[Chunk]) -> None:
    """Print chunk index and word count rows in chunk order."""

    for chunk in chunks:
        typer.echo(f"{chunk.index}. words={chunk.word_count}")
    typer.echo(f"Chunks: {len(chunks)}")
    typer.echo(f"Words: {sum(chunk.word_count for chunk in chunks)}")


def echo_run_summary(result: RunResult) -> None:
    """Print the short result summary of a finished run."""

    typer.echo(f"Task id: {result.handle}")
    typer.echo(f"Subtasks: {result.chunk_count}")
    if result.merged is not None:
        typer.echo(f"Merged audio: {result.merged.path}")
        typer.echo(f"Audio format: {result.merged.spec.describe()}")
        typer.echo(f"Frames: {result.merged.frame_count}")
    if result.extra.get("workspace_kept") == "true":
        typer.echo(f"Workspace: {result.workspace}")
