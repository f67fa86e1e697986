"""Typed records shared across distflite stages."""

from .datatypes import (
    AudioSpec,
    Chunk,
    JobDescriptor,
    JobState,
    JobStatus,
    LifecycleOutcome,
    MergedAudio,
    ResultArtifact,
    RunResult,
    StatusReport,
    SubtaskSpec,
    Timeout,
    WorkloadPayload,
)

__all__ = [
    "AudioSpec",
    "Chunk",
    "JobDescriptor",
    "JobState",
    "JobStatus",
    "LifecycleOutcome",
    "MergedAudio",
    "ResultArtifact",
    "RunResult",
    "StatusReport",
    "SubtaskSpec",
    "Timeout",
    "WorkloadPayload",
]
