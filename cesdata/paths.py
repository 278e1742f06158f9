"""
Filesystem helpers for download targets.

Resolves where downloads go, creates directories, and checks that a target
file may be written.
"""

import os
import platform
import tempfile
from pathlib import Path
from typing import Optional, Union

from .config import CESError


PathLike = Union[str, os.PathLike]


class DirectoryCreateError(CESError, OSError):
    """Raised when a directory cannot be created."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        super().__init__(f"Failed to create directory: {path} ({reason})")


class FileExists(CESError, FileExistsError):
    """Raised when a target exists and overwriting was not requested."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(
            f"File already exists: {path}. Use overwrite=True to overwrite the existing file."
        )


class NotWritable(CESError, PermissionError):
    """Raised when an existing target cannot be overwritten."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"File exists but is not writable: {path}")


def normalize_path(path: PathLike) -> Path:
    """Absolute path with ``~`` expanded; the path need not exist."""
    return Path(path).expanduser().resolve(strict=False)


def get_download_dir() -> Path:
    """The user's Downloads directory, or the temp directory if it is missing."""
    if platform.system() == "Windows":
        home = os.environ.get("USERPROFILE") or str(Path.home())
    else:
        home = os.environ.get("HOME") or str(Path.home())

    downloads = Path(home) / "Downloads"
    if not downloads.is_dir():
        return Path(tempfile.gettempdir())
    return downloads


def resolve_directory(path: Optional[PathLike] = None) -> Path:
    if path is None:
        return normalize_path(get_download_dir())
    return normalize_path(path)


def ensure_directory(path: PathLike) -> Path:
    """Create ``path`` and its parents if needed. Idempotent."""
    if path is None or str(path) == "":
        raise ValueError("Directory path cannot be None or empty")
    directory = normalize_path(path)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectoryCreateError(directory, str(exc)) from exc
    return directory


def check_writable_target(path: PathLike, overwrite: bool = False) -> Path:
    target = Path(path)
    if target.exists():
        if not overwrite:
            raise FileExists(target)
        if not os.access(target, os.W_OK):
            raise NotWritable(target)
    return target
