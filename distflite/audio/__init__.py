"""Result audio merging."""

from .merger import WaveAggregator, read_audio_spec

__all__ = ["WaveAggregator", "read_audio_spec"]
