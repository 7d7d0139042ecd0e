"""Per-session artifact storage."""
from .store import Artifact, ArtifactStore, DEFAULT_MAX_PER_SESSION, InMemoryArtifactStore

__all__ = [
    'Artifact',
    'ArtifactStore',
    'DEFAULT_MAX_PER_SESSION',
    'InMemoryArtifactStore',
]
