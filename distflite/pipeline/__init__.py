"""distflite pipeline package.

This package contains orchestration and stage telemetry for one distributed run.
"""

from .orchestrator import DistflitePipeline

__all__ = ["DistflitePipeline"]
