"""Filesystem helper functions shared by the commands"""
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

from models.project_models import DirectoryStats


DEPENDENCY_CACHE_DIR = "node_modules"


def analyze_directory(dir_path: Path) -> DirectoryStats:
    """Count files, directories and bytes below a directory

    The size of any node_modules subtree is tracked separately so it can be
    called out in the delete confirmation. Unreadable entries are skipped.

    Args:
        dir_path: Directory to analyze

    Returns:
        DirectoryStats for the tree
    """
    stats = {
        "file_count": 0,
        "dir_count": 0,
        "total_size": 0,
        "has_dependency_cache": False,
        "dependency_cache_size": 0,
    }

    def walk(current: Path, inside_cache: bool) -> None:
        try:
            entries = list(os.scandir(current))
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {current}: {e}")
            return

        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    stats["dir_count"] += 1
                    is_cache = entry.name == DEPENDENCY_CACHE_DIR
                    if is_cache:
                        stats["has_dependency_cache"] = True
                    walk(Path(entry.path), inside_cache or is_cache)
                elif entry.is_file(follow_symlinks=False):
                    size = entry.stat(follow_symlinks=False).st_size
                    stats["file_count"] += 1
                    stats["total_size"] += size
                    if inside_cache:
                        stats["dependency_cache_size"] += size
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {entry.path}: {e}")

    walk(dir_path, False)
    return DirectoryStats(**stats)


def directory_size(path: Path) -> int:
    """Total size in bytes of all files below path (a file returns its own size)"""
    if path.is_file():
        return path.stat().st_size
    return analyze_directory(path).total_size


def format_size(size: int) -> str:
    """Format file size in human-readable format"""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.2f} GB"


def format_time_ago(moment: datetime, now: Optional[datetime] = None) -> str:
    """Format a timestamp as a short relative time ("3h ago")"""
    now = now or datetime.now()
    diff_seconds = (now - moment).total_seconds()
    minutes = int(diff_seconds // 60)
    hours = int(diff_seconds // 3600)
    days = int(diff_seconds // 86400)
    weeks = days // 7
    months = days // 30

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days}d ago"
    if weeks < 4:
        return f"{weeks}w ago"
    if months < 12:
        return f"{months}mo ago"
    return f"{months // 12}y ago"


def shorten_path(full_path: str, home_dir: Optional[Path] = None) -> str:
    """Replace the home directory prefix with ~ and normalise separators"""
    home = str(home_dir or Path.home())
    if home and full_path.startswith(home):
        return "~" + full_path[len(home):].replace("\\", "/")
    return full_path.replace("\\", "/")


def is_same_or_ancestor(candidate: Path, path: Path) -> bool:
    """True when candidate equals path or is one of its parents"""
    candidate = normalize_path(candidate)
    path = normalize_path(path)
    return candidate == path or candidate in path.parents


def normalize_path(path: Path) -> Path:
    """Absolute, symlink-resolved path, case-folded on Windows"""
    resolved = Path(os.path.realpath(os.path.abspath(path)))
    if os.name == "nt":
        return Path(os.path.normcase(str(resolved)))
    return resolved


def remove_path(path: Path) -> None:
    """Remove a file, a directory tree, or a symlink

    A symlink is unlinked; its target is left alone.
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
