"""
Project cleaner - finds and removes regenerable artifacts (dependencies,
caches, build output, log files) inside a project.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from core.config_loader import DESCRIPTOR_FILENAME, MANIFEST_FILENAME
from models.project_models import CleanableItem, CleanableKind
from utils.fs_utils import directory_size, remove_path


# (relative path, kind, description)
CLEANABLE_TARGETS = [
    ("node_modules", CleanableKind.DEPS, "Dependencies (reinstall with your package manager)"),
    (".next/cache", CleanableKind.CACHE, "Next.js build cache"),
    (".turbo", CleanableKind.CACHE, "Turborepo cache"),
    ("node_modules/.cache", CleanableKind.CACHE, "Tooling cache"),
    ("dist", CleanableKind.BUILD, "Build output"),
    (".next", CleanableKind.BUILD, "Next.js build output"),
    (".expo", CleanableKind.BUILD, "Expo build output"),
    ("build", CleanableKind.BUILD, "Build output"),
]


@dataclass
class CleanResult:
    freed: int = 0
    removed: List[CleanableItem] = field(default_factory=list)
    failed: List[Tuple[CleanableItem, str]] = field(default_factory=list)


def find_project_root(start: Path) -> Optional[Path]:
    """
    Nearest directory at or above start holding project.yaml, else start
    itself if it holds package.json
    """
    for directory in [start, *start.parents]:
        if (directory / DESCRIPTOR_FILENAME).is_file():
            return directory
    if (start / MANIFEST_FILENAME).is_file():
        return start
    return None


def find_cleanable_items(project_dir: Path) -> List[CleanableItem]:
    """
    Collect cleanable artifacts of a project with their sizes

    Nested targets (e.g. node_modules/.cache) are listed separately so the
    kind filters can select them; clean_items skips them when their parent
    is removed in the same run.
    """
    items = []

    for rel_path, kind, description in CLEANABLE_TARGETS:
        target = project_dir / rel_path
        if not target.is_dir():
            continue
        # A linked directory only frees the link itself
        size = 0 if target.is_symlink() else directory_size(target)
        items.append(CleanableItem(
            name=rel_path,
            path=str(target),
            size=size,
            kind=kind,
            description=description,
        ))

    try:
        log_files = sorted(p for p in project_dir.glob("*.log") if p.is_file())
    except OSError as e:
        logger.debug(f"Cannot list log files in {project_dir}: {e}")
        log_files = []

    for log_file in log_files:
        try:
            size = log_file.stat().st_size
        except OSError:
            continue
        items.append(CleanableItem(
            name=log_file.name,
            path=str(log_file),
            size=size,
            kind=CleanableKind.LOGS,
            description="Log file",
        ))

    return items


def filter_items(
    items: Iterable[CleanableItem],
    kinds: Optional[Iterable[CleanableKind]] = None
) -> List[CleanableItem]:
    """Keep items of the given kinds (all when kinds is empty)"""
    wanted = set(kinds or [])
    if not wanted:
        return list(items)
    return [item for item in items if item.kind in wanted]


def _covered_by(item: CleanableItem, others: List[CleanableItem]) -> bool:
    path = Path(item.path)
    return any(Path(other.path) in path.parents for other in others)


async def clean_items(items: List[CleanableItem]) -> CleanResult:
    """
    Remove the given items

    Failures are collected per item; cleaning continues with the rest.
    """
    result = CleanResult()

    for item in items:
        if _covered_by(item, items):
            # Removed together with its parent
            continue

        path = Path(item.path)
        try:
            await asyncio.to_thread(remove_path, path)
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")
            result.failed.append((item, str(e)))
            continue

        result.freed += item.size
        result.removed.append(item)

    return result
