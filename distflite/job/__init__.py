"""Job manifest building and lifecycle control."""

from .builder import ManifestBuilder, load_workload_payload
from .lifecycle import CancellationToken, LifecycleController, ProgressSink

__all__ = [
    "CancellationToken",
    "LifecycleController",
    "ManifestBuilder",
    "ProgressSink",
    "load_workload_payload",
]
