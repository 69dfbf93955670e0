"""Guards that refuse to let an autonomous agent loose in the wrong place."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

_POSIX_SYSTEM_PATHS = ("/", "/etc", "/usr", "/var", "/tmp", "/bin", "/sbin", "/lib")
_DARWIN_SYSTEM_PATHS = ("/System", "/Library")
_WINDOWS_SYSTEM_PATHS = ("C:\\Windows", "C:\\Program Files", "C:\\Program Files (x86)")


def _home() -> Optional[Path]:
    try:
        return _absolute(Path.home())
    except (RuntimeError, KeyError):
        return None


def _absolute(path: Path | str) -> Path:
    return Path(os.path.normpath(os.path.abspath(path)))


def dangerous_paths(platform: str = sys.platform) -> list[Path]:
    candidates = list(_POSIX_SYSTEM_PATHS)
    if platform == "darwin":
        candidates.extend(_DARWIN_SYSTEM_PATHS)
    if platform.startswith("win"):
        candidates.extend(_WINDOWS_SYSTEM_PATHS)
    paths = [_absolute(candidate) for candidate in candidates]
    home = _home()
    if home is not None:
        paths.append(home)
    return paths


def is_dangerous_path(path: Path | str, platform: str = sys.platform) -> bool:
    """Return ``True`` when ``path`` is a system directory or the home directory itself.

    Subdirectories of those locations are allowed; only exact matches are
    refused.
    """

    target = _absolute(path)
    return any(target == candidate for candidate in dangerous_paths(platform))


def is_home_subdirectory(path: Path | str) -> bool:
    home = _home()
    if home is None:
        return False
    target = _absolute(path)
    return target != home and home in target.parents


__all__ = ["dangerous_paths", "is_dangerous_path", "is_home_subdirectory"]
