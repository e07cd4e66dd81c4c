"""
Project data models for discovery, deletion and restore.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ProjectTemplate(str, Enum):
    """Project classification inferred from project.yaml or package.json."""
    MONOREPO = "monorepo"
    NEXT = "next"
    VITE = "vite"
    GENERIC = "generic"
    # package.json only
    NEXT_JS = "next.js"
    EXPO = "expo"
    NODE = "node"
    UNKNOWN = "unknown"


class ProjectRecord(BaseModel):
    """A project directory found by the scanner. Never persisted."""
    name: str = Field(..., description="Final path segment of the project directory")
    path: str = Field(..., description="Absolute path, unique key for deduplication")
    marker: bool = Field(False, description="True when project.yaml is present")
    template: ProjectTemplate = Field(ProjectTemplate.UNKNOWN, description="Inferred project template")
    backend: str = Field("none", description="Primary backend from project.yaml")
    last_modified: datetime = Field(..., alias="lastModified", description="Directory mtime")
    has_dependencies_installed: bool = Field(False, alias="hasDependenciesInstalled")
    is_version_controlled: bool = Field(False, alias="isVersionControlled")

    class Config:
        frozen = True
        populate_by_name = True


class UndoRecord(BaseModel):
    """The single 'last deleted project' entry of the undo ledger."""
    name: str
    original_path: str = Field(..., alias="originalPath")
    backup_path: str = Field(..., alias="backupPath")
    deleted_at: str = Field(..., alias="deletedAt", description="ISO 8601 timestamp")

    class Config:
        populate_by_name = True


class DirectoryStats(BaseModel):
    """Recursive content summary of a directory."""
    file_count: int = 0
    dir_count: int = 0
    total_size: int = 0
    has_dependency_cache: bool = False
    dependency_cache_size: int = 0


class CleanableKind(str, Enum):
    DEPS = "deps"
    CACHE = "cache"
    BUILD = "build"
    LOGS = "logs"


class CleanableItem(BaseModel):
    """A removable artifact inside a project."""
    name: str
    path: str
    size: int = 0
    kind: CleanableKind
    description: Optional[str] = None
