"""
Versioned, language-scoped storage for pipeline stage outputs.

- SQLite is the source of truth (one DB for accounts, projects, artifacts)
- Every generation appends a new version; rows are never updated in place
"""

from .models import StageKind
from .resolver import DependencyResolver
from .store import ArtifactStore

__all__ = ["ArtifactStore", "DependencyResolver", "StageKind"]
