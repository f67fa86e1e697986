"""Command-line interface for distflite.

Responsibilities:
- Expose user-facing commands for distributed runs and partition previews.
- Convert CLI arguments and optional YAML defaults into `DistfliteConfig`.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, TypeVar

import typer

from .backend_factory import BackendFactory
from .cli_rendering import (
    LineProgressSink,
    echo_partition_summary,
    echo_run_summary,
    exit_with_command_error,
)
from .cli_runtime import cancel_on_interrupt, resolve_backend_runtime_sources
from .config import (
    DEFAULT_BID,
    DEFAULT_SUBTASKS,
    DEFAULT_SUBTASK_TIMEOUT,
    DEFAULT_TASK_TIMEOUT,
    ConfigLoader,
    DistfliteConfig,
    RuntimeConfigSources,
)
from .errors import PipelineStageError
from .job.lifecycle import CancellationToken
from .models.datatypes import Timeout
from .pipeline import DistflitePipeline
from .telemetry.logger import RunLogger

_Value = TypeVar("_Value")

app = typer.Typer(
    name="distflite",
    no_args_is_help=True,
    help="Distributed text-to-speech over a remote compute backend.",
)


class BuildProgressIndicator:
    """Render deterministic per-stage progress lines for long-running commands."""

    _SPINNER_FRAMES = "|/-\\"

    def __init__(self, command_name: str) -> None:
        """Initialize progress indicator metadata for a command invocation."""

        self._command_name = command_name

    def on_stage_start(self, stage_name: str, stage_index: int, stage_total: int) -> None:
        """Print one progress line for a stage start transition."""

        spinner = self._SPINNER_FRAMES[(stage_index - 1) % len(self._SPINNER_FRAMES)]
        typer.echo(
            f"[progress] command={self._command_name} "
            f"{spinner} {stage_index}/{stage_total} stage={stage_name}"
        )


def _load_yaml_config(config_path: Path | None) -> DistfliteConfig | None:
    """Load a YAML config file when requested and map failures to stage errors."""

    if config_path is None:
        return None

    try:
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid config file `{config_path}`: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc
    except Exception as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Failed to load config file `{config_path}`: {exc}",
            hint="Verify YAML syntax and file permissions.",
        ) from exc


def _parse_timeout_option(value: str | None, option_name: str) -> Timeout | None:
    """Parse an optional `HH:MM:SS` option value."""

    if value is None:
        return None
    try:
        return Timeout.parse(value)
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid `{option_name}`: {exc}",
            hint="Use the `HH:MM:SS` format, for example `00:10:00`.",
        ) from exc


def _override(cli_value: _Value | None, fallback: _Value) -> _Value:
    """Return the explicit CLI value when given, else the fallback."""

    return cli_value if cli_value is not None else fallback


def _resolve_run_config(
    *,
    config_file: Path | None,
    input_path: Path | None,
    output_path: Path | None,
    subtasks: int | None,
    bid: float | None,
    budget: float | None,
    task_timeout: str | None,
    subtask_timeout: str | None,
    address: str | None,
    port: int | None,
    workspace: Path | None,
    workload_dir: Path | None,
    poll_interval: float | None,
    verbose: bool,
) -> DistfliteConfig:
    """Resolve effective run config from YAML defaults and explicit CLI overrides."""

    loaded = _load_yaml_config(config_file)
    parsed_task_timeout = _parse_timeout_option(task_timeout, "--task-timeout")
    parsed_subtask_timeout = _parse_timeout_option(subtask_timeout, "--subtask-timeout")

    resolved_input = _override(input_path, loaded.input_path if loaded else None)
    resolved_output = _override(output_path, loaded.output_path if loaded else None)
    if resolved_input is None or resolved_output is None:
        raise PipelineStageError(
            stage="config",
            detail="Input and output paths are required when `--config` is not provided.",
            hint="Pass `<input.txt> <output.wav>` or use `--config <path.yaml>`.",
        )

    runtime_cli_values = resolve_backend_runtime_sources(
        address=address,
        port=port,
        workload_dir=workload_dir,
    )
    base = loaded if loaded is not None else DistfliteConfig(
        input_path=resolved_input, output_path=resolved_output
    )
    return DistfliteConfig(
        input_path=resolved_input,
        output_path=resolved_output,
        subtasks=_override(subtasks, base.subtasks),
        bid=_override(bid, base.bid),
        budget=_override(budget, base.budget),
        task_timeout=_override(parsed_task_timeout, base.task_timeout),
        subtask_timeout=_override(parsed_subtask_timeout, base.subtask_timeout),
        address=base.address,
        port=base.port,
        workspace=_override(workspace, base.workspace),
        workload_dir=base.workload_dir,
        poll_interval_seconds=_override(poll_interval, base.poll_interval_seconds),
        request_timeout_seconds=base.request_timeout_seconds,
        verbose=verbose or base.verbose,
        runtime_sources=RuntimeConfigSources(cli=runtime_cli_values, env=os.environ),
    )


@app.command("run")
def run_command(
    input_path: Annotated[
        Path | None,
        typer.Argument(
            help="Input text file. Required unless provided by `--config`.",
        ),
    ] = None,
    output_path: Annotated[
        Path | None,
        typer.Argument(
            help="Output WAV file. Required unless provided by `--config`.",
        ),
    ] = None,
    subtasks: Annotated[
        int | None,
        typer.Option("--subtasks", help=f"Number of subtasks (default {DEFAULT_SUBTASKS})."),
    ] = None,
    bid: Annotated[
        float | None,
        typer.Option("--bid", help=f"Bid value per subtask (default {DEFAULT_BID})."),
    ] = None,
    budget: Annotated[
        float | None,
        typer.Option("--budget", help="Optional total budget for the task."),
    ] = None,
    task_timeout: Annotated[
        str | None,
        typer.Option(
            "--task-timeout",
            help=f"Task timeout as `HH:MM:SS` (default {DEFAULT_TASK_TIMEOUT}).",
        ),
    ] = None,
    subtask_timeout: Annotated[
        str | None,
        typer.Option(
            "--subtask-timeout",
            help=f"Subtask timeout as `HH:MM:SS` (default {DEFAULT_SUBTASK_TIMEOUT}).",
        ),
    ] = None,
    address: Annotated[
        str | None,
        typer.Option("--address", help="Backend address (default 127.0.0.1)."),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", help="Backend port (default 61000)."),
    ] = None,
    workspace: Annotated[
        Path | None,
        typer.Option(
            "--workspace",
            help="Existing directory used as workspace and kept after the run.",
        ),
    ] = None,
    workload_dir: Annotated[
        Path | None,
        typer.Option(
            "--workload-dir",
            help="Directory holding `flite.js` and `flite.wasm`.",
        ),
    ] = None,
    poll_interval: Annotated[
        float | None,
        typer.Option("--poll-interval", help="Seconds between status polls."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="Path to YAML config file with command defaults.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Turn verbose logging on."),
    ] = False,
) -> None:
    """Split input text, run it on the backend, and merge the audio results."""

    token = CancellationToken()
    try:
        config = _resolve_run_config(
            config_file=config_file,
            input_path=input_path,
            output_path=output_path,
            subtasks=subtasks,
            bid=bid,
            budget=budget,
            task_timeout=task_timeout,
            subtask_timeout=subtask_timeout,
            address=address,
            port=port,
            workspace=workspace,
            workload_dir=workload_dir,
            poll_interval=poll_interval,
            verbose=verbose,
        )
        progress = BuildProgressIndicator(command_name="run")
        pipeline = DistflitePipeline(
            run_logger=RunLogger(verbose=config.verbose),
            stage_progress_callback=progress.on_stage_start,
            progress_sink=LineProgressSink(),
            cancellation=token,
            backend_factory=BackendFactory.create,
        )
        with cancel_on_interrupt(token):
            result = pipeline.run(config)
    except Exception as exc:
        exit_with_command_error("run", exc)

    if result.cancelled:
        typer.secho("Task aborted by user", fg=typer.colors.YELLOW)
        return
    echo_run_summary(result)


@app.command("split")
def split_command(
    input_path: Annotated[Path, typer.Argument(help="Input text file.")],
    subtasks: Annotated[
        int,
        typer.Option("--subtasks", help="Number of subtasks to split into."),
    ] = DEFAULT_SUBTASKS,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Turn verbose logging on."),
    ] = False,
) -> None:
    """Preview how the input splits into subtasks without contacting a backend."""

    try:
        config = DistfliteConfig(
            input_path=input_path,
            output_path=Path("out.wav"),
            subtasks=subtasks,
            verbose=verbose,
        )
        pipeline = DistflitePipeline(run_logger=RunLogger(verbose=verbose))
        chunks = pipeline.split(config)
    except Exception as exc:
        exit_with_command_error("split", exc)

    echo_partition_summary(chunks)


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
