"""
Project Scanner

Finds project directories below a set of search roots and builds a
ProjectRecord for each of them.
"""

import asyncio
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Iterable

from loguru import logger

from config.settings import Settings, settings as default_settings
from core.config_loader import DESCRIPTOR_FILENAME, MANIFEST_FILENAME, classify_project
from models.project_models import ProjectRecord
from utils.fs_utils import normalize_path


# Directories that are never descended into
EXCLUDED_DIRS = frozenset({
    "node_modules",
    "dist",
    "build",
    ".next",
    ".turbo",
    ".git",
    ".expo",
    ".convex",
})


class ProjectScanner:
    """Walks search roots to a bounded depth looking for projects"""

    def __init__(self, config: Settings = None):
        """
        Initialize scanner

        Args:
            config: Settings used for the default search roots
        """
        self.config = config or default_settings

    def default_search_roots(self, include_cwd: bool = False) -> List[Path]:
        """
        Existing directories among the configured search paths below home

        Args:
            include_cwd: Prepend the current working directory
        """
        roots = [self.config.home_dir / p for p in self.config.search_paths]
        roots = [r for r in roots if r.is_dir()]
        if include_cwd:
            roots.insert(0, Path.cwd())
        return roots

    async def scan(
        self,
        roots: Iterable[Path],
        max_depth: int,
        include_non_marked: bool = False
    ) -> List[ProjectRecord]:
        """
        Find projects below the given roots

        Args:
            roots: Directories to search
            max_depth: How many directory levels below each root to visit
            include_non_marked: Also accept directories with only a package.json

        Returns:
            Deduplicated project records, in no particular order
        """
        return await asyncio.to_thread(self.scan_sync, list(roots), max_depth, include_non_marked)

    def scan_sync(
        self,
        roots: List[Path],
        max_depth: int,
        include_non_marked: bool = False
    ) -> List[ProjectRecord]:
        """Blocking implementation of scan()"""
        found: dict = {}

        for root in roots:
            self._walk(Path(root), max_depth, include_non_marked, found)

        logger.debug(f"Scan of {len(roots)} root(s) found {len(found)} project(s)")
        return list(found.values())

    def _walk(self, directory: Path, depth: int, include_non_marked: bool, found: dict) -> None:
        if depth < 0:
            return

        try:
            has_descriptor = (directory / DESCRIPTOR_FILENAME).is_file()
            has_manifest = (directory / MANIFEST_FILENAME).is_file()

            if has_descriptor or (include_non_marked and has_manifest):
                record = self.build_record(directory, has_descriptor)
                if record is not None and record.path not in found:
                    found[record.path] = record
                # Projects are not nested
                return

            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            logger.debug(f"Skipping {directory}: {e}")
            return

        for entry in entries:
            if entry.name.startswith(".") or entry.name in EXCLUDED_DIRS:
                continue
            try:
                is_dir = entry.is_dir()
            except OSError:
                continue
            if is_dir:
                self._walk(Path(entry.path), depth - 1, include_non_marked, found)

    def build_record(self, directory: Path, has_descriptor: bool) -> Optional[ProjectRecord]:
        """
        Build a ProjectRecord for a project directory

        Returns:
            The record, or None if the directory vanished or cannot be stat'ed
        """
        try:
            path = normalize_path(directory)
            mtime = path.stat().st_mtime
        except OSError as e:
            logger.debug(f"Cannot stat {directory}: {e}")
            return None

        classification = classify_project(path, has_descriptor)

        return ProjectRecord(
            name=path.name,
            path=str(path),
            marker=has_descriptor,
            template=classification.template,
            backend=classification.backend,
            last_modified=datetime.fromtimestamp(mtime),
            has_dependencies_installed=(path / "node_modules").is_dir(),
            is_version_controlled=(path / ".git").exists(),
        )

    async def find_all_projects(
        self,
        max_depth: Optional[int] = None,
        include_non_marked: bool = False
    ) -> List[ProjectRecord]:
        """Scan the default search roots"""
        depth = self.config.delete_scan_depth if max_depth is None else max_depth
        return await self.scan(self.default_search_roots(), depth, include_non_marked)


def find_project_by_name(projects: List[ProjectRecord], name: str) -> Optional[ProjectRecord]:
    """
    Fuzzy-match a project by name

    Tries a case-insensitive exact match, then prefix, then substring.
    The first match of the first successful strategy wins.
    """
    lowered = name.lower()

    strategies = (
        lambda p: p.name.lower() == lowered,
        lambda p: p.name.lower().startswith(lowered),
        lambda p: lowered in p.name.lower(),
    )

    for matches in strategies:
        for project in projects:
            if matches(project):
                return project

    return None


def sort_by_recency(projects: List[ProjectRecord]) -> List[ProjectRecord]:
    """Most recently modified first"""
    return sorted(projects, key=lambda p: p.last_modified, reverse=True)
