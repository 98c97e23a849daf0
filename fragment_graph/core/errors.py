"""Exceptions raised by the build pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class BuildError(Exception):
    """Base class for every fatal build condition."""


class AnalysisWarningsError(BuildError):
    """Raised when document analysis reported error-severity warnings."""

    def __init__(self, error_count: int) -> None:
        super().__init__(f"{error_count} error(s) occurred during build.")
        self.error_count = error_count


class UnresolvedReferencesError(BuildError):
    """Raised when requested files never arrived before completion."""

    def __init__(self, urls: Sequence[str]) -> None:
        super().__init__(f"{len(urls)} deferred files were never loaded")
        self.urls = list(urls)


class DeferredLoadError(BuildError):
    """Raised when a deferred load is resolved without a pending request."""

    def __init__(self, path: str) -> None:
        super().__init__(f"No deferred load is pending for {path}")
        self.path = path


class FragmentStateError(BuildError):
    """Raised when fragment bookkeeping is driven out of order."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{reason}: {path}")
        self.path = path
        self.reason = reason


class DependencyLoadError(BuildError):
    """Raised when a pushed dependency cannot be read."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Could not load dependency {path}")
        self.path = path


class SplitError(BuildError):
    """Raised when split files cannot be joined back into their carrier."""


__all__ = [
    "BuildError",
    "AnalysisWarningsError",
    "UnresolvedReferencesError",
    "DeferredLoadError",
    "FragmentStateError",
    "DependencyLoadError",
    "SplitError",
]
