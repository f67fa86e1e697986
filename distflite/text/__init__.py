"""Input text partitioning."""

from .partitioner import WordPartitioner, partition

__all__ = ["WordPartitioner", "partition"]
