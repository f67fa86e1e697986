"""Telemetry and observability helpers."""

from .logger import RunLogger

__all__ = ["RunLogger"]
