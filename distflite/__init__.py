"""Top-level package for distflite.

This package splits a text document into word-balanced chunks, runs them as
subtasks of one job on a remote compute backend, and merges the per-chunk WAV
results into a single audio file. The main orchestration entry point is
`DistflitePipeline`.
"""

from .pipeline import DistflitePipeline

__all__ = ["DistflitePipeline", "__version__"]

__version__ = "0.1.0"
