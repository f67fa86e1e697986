"""Pipeline orchestration for distflite.

Responsibilities:
- Define the stage order for a distributed text-to-audio run.
- Own the workspace scope and the lifecycle controller of one job.
- Map unexpected failures to stage-aware errors while domain errors keep
  their own context.

Key types:
- `DistflitePipeline`: orchestration facade.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path

from loguru import logger

from ..audio.merger import WaveAggregator
from ..backend.base import ComputeBackend
from ..backend_factory import BackendFactory
from ..config import BackendRuntimeConfig, DistfliteConfig, RuntimeConfigSources
from ..errors import IoError, PipelineStageError
from ..io.storage import ArtifactStore
from ..io.workspace import Workspace
from ..job.builder import ManifestBuilder, load_workload_payload
from ..job.lifecycle import CancellationToken, LifecycleController, ProgressSink
from ..models.datatypes import (
    Chunk,
    JobDescriptor,
    JobState,
    LifecycleOutcome,
    MergedAudio,
    ResultArtifact,
    RunResult,
    WorkloadPayload,
)
from ..telemetry.logger import RunLogger
from ..text.partitioner import WordPartitioner
from .telemetry import PipelineTelemetryMixin

BackendFactoryCallable = Callable[[BackendRuntimeConfig, float], ComputeBackend]


class DistflitePipeline(PipelineTelemetryMixin):
    """Coordinate all stages for a single distributed run."""

    def __init__(
        self,
        run_logger: RunLogger | None = None,
        stage_progress_callback: Callable[[str, int, int], None] | None = None,
        progress_sink: ProgressSink | None = None,
        cancellation: CancellationToken | None = None,
        backend_factory: BackendFactoryCallable = BackendFactory.create,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize optional logging, progress, and cancellation hooks."""

        self._run_logger = run_logger
        self._stage_progress_callback = stage_progress_callback
        self._progress_sink = progress_sink
        self._cancellation = cancellation or CancellationToken()
        self._backend_factory = backend_factory
        self._sleeper = sleeper

    def split(self, config: DistfliteConfig) -> list[Chunk]:
        """Partition the configured input without contacting the backend."""

        self._validate_config(config)
        text = self._read_input(config.input_path)
        return self._partition(text, config.subtasks)

    def run(self, config: DistfliteConfig) -> RunResult:
        """Run split, prepare, submit, compute, and combine for one job."""

        self._validate_config(config)
        runtime = self._resolve_backend_runtime(config)
        output_path = self._resolve_output_path(config.output_path)
        text = self._read_input(config.input_path)

        chunks = self._run_stage("split", lambda: self._partition(text, config.subtasks))
        workload = self._load_workload(runtime)

        with self._open_workspace(config.workspace) as workspace:
            descriptor = self._run_stage(
                "prepare",
                lambda: self._prepare(workspace, chunks, workload, config),
            )
            backend = self._backend_factory(runtime, config.request_timeout_seconds)
            controller = LifecycleController(
                backend,
                progress_sink=self._progress_sink,
                cancellation=self._cancellation,
                poll_interval_seconds=config.poll_interval_seconds,
                sleeper=self._sleeper,
            )

            if self._cancellation.requested:
                self._on_job_event("cancelled", handle="none")
                return self._cancelled_result(None, chunks, workspace, runtime)

            handle = self._run_stage("submit", lambda: controller.submit(descriptor))
            self._on_job_event("submitted", handle=handle, subtasks=len(chunks))

            outcome = self._run_stage("compute", controller.wait)
            if outcome.cancelled:
                self._on_job_event("cancelled", handle=handle)
                return self._cancelled_result(handle, chunks, workspace, runtime)
            self._on_job_event("finished", handle=handle)

            merged = None
            if not self._cancellation.requested:
                merged = self._run_stage(
                    "combine",
                    lambda: self._combine(outcome, descriptor, output_path),
                )
            if merged is None:
                self._on_job_event("cancelled", handle=handle)
                return self._cancelled_result(handle, chunks, workspace, runtime)
            return RunResult(
                state=outcome.state,
                handle=handle,
                chunk_count=len(chunks),
                workspace=workspace.path,
                merged=merged,
                extra={
                    "base_url": runtime.base_url,
                    "workspace_kept": "false" if workspace.is_ephemeral else "true",
                },
            )

    @staticmethod
    def _cancelled_result(
        handle: str | None,
        chunks: list[Chunk],
        workspace: Workspace,
        runtime: BackendRuntimeConfig,
    ) -> RunResult:
        return RunResult(
            state=JobState.CANCELLED,
            handle=handle,
            chunk_count=len(chunks),
            workspace=workspace.path,
            extra={"base_url": runtime.base_url},
        )

    def _partition(self, text: str, subtasks: int) -> list[Chunk]:
        """Split input text into word-balanced chunks."""

        return WordPartitioner().partition(text, subtasks)

    def _prepare(
        self,
        workspace: Workspace,
        chunks: list[Chunk],
        workload: WorkloadPayload,
        config: DistfliteConfig,
    ) -> JobDescriptor:
        """Build workspace artifacts and persist the descriptor for inspection."""

        descriptor = ManifestBuilder().build(
            workspace,
            chunks,
            workload,
            bid=config.bid,
            task_timeout=config.task_timeout,
            subtask_timeout=config.subtask_timeout,
            budget=config.budget,
        )
        ArtifactStore(workspace.path).save_json(
            Path("job_descriptor.json"), descriptor.to_payload()
        )
        return descriptor

    def _combine(
        self,
        outcome: LifecycleOutcome,
        descriptor: JobDescriptor,
        output_path: Path,
    ) -> MergedAudio | None:
        """Merge per-chunk results in original chunk order; `None` when cancelled."""

        results = [
            ResultArtifact(chunk_index=subtask.chunk_index, path=path)
            for subtask, path in zip(descriptor.subtasks, outcome.result_paths)
        ]
        return WaveAggregator().combine(
            results,
            output_path,
            cancel_check=lambda: self._cancellation.requested,
        )

    def _read_input(self, input_path: Path) -> str:
        """Read the input text file as UTF-8."""

        try:
            return input_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise PipelineStageError(
                stage="split",
                detail=f"Input file `{input_path}` is not valid UTF-8 text.",
                hint="Convert the input to UTF-8 and rerun.",
            ) from exc
        except OSError as exc:
            raise IoError(f"reading input failed ({exc.strerror})", path=input_path) from exc

    def _load_workload(self, runtime: BackendRuntimeConfig) -> WorkloadPayload:
        """Load the workload payload from the resolved workload directory."""

        if runtime.workload_dir is None:
            raise PipelineStageError(
                stage="config",
                detail="No workload directory configured.",
                hint=(
                    "Pass `--workload-dir <dir>` or set `DISTFLITE_WORKLOAD_DIR` to a "
                    "directory containing `flite.js` and `flite.wasm`."
                ),
            )
        return load_workload_payload(runtime.workload_dir)

    def _open_workspace(self, workspace_path: Path | None) -> Workspace:
        """Use the configured workspace or create an ephemeral one."""

        if workspace_path is not None:
            workspace = Workspace.user_specified(workspace_path)
        else:
            workspace = Workspace.temporary()
        logger.info("Using workspace '{}'", workspace)
        return workspace

    def _resolve_output_path(self, output_path: Path) -> Path:
        """Resolve the output path to an absolute path inside an existing directory."""

        parent = output_path.parent if output_path.parent != Path("") else Path(".")
        if not output_path.name:
            raise PipelineStageError(
                stage="config",
                detail=f"Cannot work out the output file name from `{output_path}`.",
                hint="Pass an output file path such as `out.wav`.",
            )
        if not parent.is_dir():
            raise IoError("output directory does not exist", path=parent)
        return parent.resolve() / output_path.name

    def _validate_config(self, config: DistfliteConfig) -> None:
        """Validate configuration and map failures to a stage-aware error."""

        try:
            config.validate()
        except ValueError as exc:
            raise PipelineStageError(
                stage="config",
                detail=str(exc),
                hint="Update command options or config file values and rerun.",
            ) from exc
        if not config.input_path.is_file():
            raise PipelineStageError(
                stage="config",
                detail=(
                    f"Input file `{config.input_path}` doesn't exist. "
                    "Did you make a typo anywhere?"
                ),
                hint="Pass an existing text file as the input argument.",
            )

    def _resolve_backend_runtime(self, config: DistfliteConfig) -> BackendRuntimeConfig:
        """Resolve backend connection settings with deterministic source precedence."""

        try:
            env_source = config.runtime_sources.env or os.environ
            return config.resolved_backend_runtime(
                RuntimeConfigSources(cli=config.runtime_sources.cli, env=env_source)
            )
        except ValueError as exc:
            raise PipelineStageError(
                stage="config",
                detail=str(exc),
                hint="Set a valid backend address/port in CLI, environment, or config.",
            ) from exc

