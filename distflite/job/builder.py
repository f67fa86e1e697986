"""Job manifest construction.

Responsibilities:
- Lay out the workspace `input/` and `output/` areas for one job.
- Write the shared workload payload and one input artifact per chunk.
- Produce the immutable `JobDescriptor` submitted to the backend.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from ..errors import IoError
from ..io.storage import ArtifactStore
from ..io.workspace import Workspace
from ..models.datatypes import (
    Chunk,
    JobDescriptor,
    SubtaskSpec,
    Timeout,
    WorkloadPayload,
)

INPUT_ARTIFACT_NAME = "in.txt"
OUTPUT_ARTIFACT_NAME = "in.wav"
DEFAULT_JS_NAME = "flite.js"
DEFAULT_WASM_NAME = "flite.wasm"


def subtask_name(index: int) -> str:
    """Return the backend subtask name for a chunk index."""

    return f"subtask{index}"


def load_workload_payload(
    workload_dir: Path,
    *,
    js_name: str = DEFAULT_JS_NAME,
    wasm_name: str = DEFAULT_WASM_NAME,
) -> WorkloadPayload:
    """Read the workload stub and binary from a directory without interpreting them."""

    contents: dict[str, bytes] = {}
    for name in (js_name, wasm_name):
        path = workload_dir / name
        try:
            contents[name] = path.read_bytes()
        except OSError as exc:
            raise IoError(f"reading workload file failed ({exc.strerror})", path=path) from exc
    return WorkloadPayload(
        js_name=js_name,
        js=contents[js_name],
        wasm_name=wasm_name,
        wasm=contents[wasm_name],
    )


class ManifestBuilder:
    """Build a job descriptor and its on-disk artifacts inside a workspace."""

    def __init__(self, task_name: str = "distflite") -> None:
        """Initialize builder with the task name reported to the backend."""

        self.task_name = task_name

    def build(
        self,
        workspace: Workspace,
        chunks: Sequence[Chunk],
        workload: WorkloadPayload,
        *,
        bid: float,
        task_timeout: Timeout,
        subtask_timeout: Timeout,
        budget: float | None = None,
    ) -> JobDescriptor:
        """Write per-chunk inputs and return the descriptor referencing them.

        Raises:
            IoError: If any directory or file cannot be created. Partially
                created state is left in place for the workspace owner.
        """

        logger.info("Will prepare task in '{}'", workspace)
        store = ArtifactStore(workspace.path)
        input_dir = store.create_dir(Path("input"))
        output_dir = store.create_dir(Path("output"))

        for name, data in workload.files:
            store.save_bytes(Path("input") / name, data)

        subtasks: list[SubtaskSpec] = []
        for chunk in chunks:
            name = subtask_name(chunk.index)
            store.create_dir(Path("input") / name)
            store.create_dir(Path("output") / name)
            input_path = store.save_text(Path("input") / name / INPUT_ARTIFACT_NAME, chunk.text)
            subtasks.append(
                SubtaskSpec(
                    name=name,
                    chunk_index=chunk.index,
                    input_path=input_path,
                    output_path=output_dir / name / OUTPUT_ARTIFACT_NAME,
                    exec_args=(INPUT_ARTIFACT_NAME, OUTPUT_ARTIFACT_NAME),
                )
            )

        descriptor = JobDescriptor(
            name=self.task_name,
            bid=bid,
            budget=budget,
            task_timeout=task_timeout,
            subtask_timeout=subtask_timeout,
            workload=workload,
            input_dir=input_dir,
            output_dir=output_dir,
            subtasks=tuple(subtasks),
        )
        logger.debug("Job descriptor = {}", descriptor.to_payload())
        return descriptor
