"""Backend factory helpers.

Keeps orchestration independent from concrete backend transport construction.
"""

from __future__ import annotations

from .backend.base import ComputeBackend
from .backend.http_client import HttpComputeBackend
from .config import BackendRuntimeConfig


class BackendFactory:
    """Factory for compute backend clients used by the pipeline."""

    @staticmethod
    def create(
        runtime: BackendRuntimeConfig,
        request_timeout_seconds: float,
    ) -> ComputeBackend:
        """Create a backend client for the resolved connection settings."""

        return HttpComputeBackend(
            address=runtime.address,
            port=runtime.port,
            timeout_seconds=request_timeout_seconds,
        )
