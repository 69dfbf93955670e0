"""Version-control helpers for gumloop."""

from __future__ import annotations

from gumloop.vcs.git import ChangeCounts, CommitInfo, GitRepository, classify_status
from gumloop.vcs.safety import is_dangerous_path, is_home_subdirectory

__all__ = [
    "ChangeCounts",
    "CommitInfo",
    "GitRepository",
    "classify_status",
    "is_dangerous_path",
    "is_home_subdirectory",
]
