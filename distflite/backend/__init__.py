"""Compute backend interface and transports."""

from .base import ComputeBackend
from .http_client import HttpComputeBackend, parse_status_token

__all__ = ["ComputeBackend", "HttpComputeBackend", "parse_status_token"]
