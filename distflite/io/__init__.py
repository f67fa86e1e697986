"""Workspace and artifact filesystem helpers."""

from .storage import ArtifactStore
from .workspace import Workspace

__all__ = ["ArtifactStore", "Workspace"]
