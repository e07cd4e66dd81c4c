"""
Safe Delete Workflow

Deletes a project directory after safety checks, analysis and type-to-confirm,
optionally backing it up first so that `dx undo` can restore it.

    RESOLVE_TARGET -> VALIDATE_SAFETY -> ANALYZE -> CONFIRM -> [BACKUP]
        -> REMOVE -> [RECORD_UNDO] -> DONE

ABORTED is reachable from VALIDATE_SAFETY and CONFIRM. Removal is not
transactional: parts removed before a failure stay removed.
"""

import asyncio
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

from loguru import logger

from config.settings import Settings, settings as default_settings
from core.backup import BackupService, backup_path_for
from core.config_loader import DESCRIPTOR_FILENAME, MANIFEST_FILENAME
from core.errors import (
    BackupError,
    InsideProjectError,
    InvalidProjectError,
    NotFoundError,
    ProtectedPathError,
    RemovalError,
    RestoreError,
)
from core.prompts import Prompter, get_prompter, is_cancel
from core.scanner import ProjectScanner, find_project_by_name
from core.undo_ledger import UndoLedger
from models.project_models import DirectoryStats, ProjectRecord, UndoRecord
from utils.fs_utils import (
    DEPENDENCY_CACHE_DIR,
    analyze_directory,
    format_size,
    is_same_or_ancestor,
    normalize_path,
    remove_path,
)


BUILD_ARTIFACT_DIRS = [".next", ".turbo", "dist", ".expo", ".convex"]

# (level, message); level is one of info/success/warning
Reporter = Callable[[str, str], None]


class DeleteState(Enum):
    """Delete workflow states"""
    RESOLVE_TARGET = "resolve_target"
    VALIDATE_SAFETY = "validate_safety"
    ANALYZE = "analyze"
    CONFIRM = "confirm"
    BACKUP = "backup"
    REMOVE = "remove"
    RECORD_UNDO = "record_undo"
    DONE = "done"
    ABORTED = "aborted"


class DeleteStateMachine:
    """Tracks and enforces delete workflow transitions"""

    VALID_TRANSITIONS = {
        DeleteState.RESOLVE_TARGET: [DeleteState.VALIDATE_SAFETY],
        DeleteState.VALIDATE_SAFETY: [DeleteState.ANALYZE, DeleteState.ABORTED],
        DeleteState.ANALYZE: [DeleteState.CONFIRM],
        DeleteState.CONFIRM: [
            DeleteState.BACKUP,
            DeleteState.REMOVE,
            DeleteState.ABORTED,
            DeleteState.DONE,  # dry run
        ],
        DeleteState.BACKUP: [DeleteState.REMOVE],
        DeleteState.REMOVE: [DeleteState.RECORD_UNDO, DeleteState.DONE],
        DeleteState.RECORD_UNDO: [DeleteState.DONE],
        DeleteState.DONE: [],
        DeleteState.ABORTED: [],
    }

    def __init__(self):
        self.current_state = DeleteState.RESOLVE_TARGET
        self.state_history = [(DeleteState.RESOLVE_TARGET, datetime.now())]

    def transition_to(self, new_state: DeleteState) -> None:
        """
        Move to new_state

        Raises:
            ValueError: If the transition is not allowed
        """
        if new_state not in self.VALID_TRANSITIONS[self.current_state]:
            raise ValueError(
                f"Invalid state transition: {self.current_state} -> {new_state}"
            )
        self.current_state = new_state
        self.state_history.append((new_state, datetime.now()))

    @property
    def visited(self) -> List[DeleteState]:
        return [state for state, _ in self.state_history]


@dataclass
class DeleteOptions:
    """Options of a delete run

    backup: True forces a backup, False skips it, None asks the user.
    force_no_prompt: skip type-to-confirm and the backup prompt.
    skip_backup_prompt: do not ask about backups (--yes); no backup unless forced.
    """
    dry_run: bool = False
    backup: Optional[bool] = None
    force_no_prompt: bool = False
    skip_backup_prompt: bool = False


class DeleteStatus(Enum):
    DELETED = "deleted"
    DRY_RUN = "dry_run"
    CANCELLED = "cancelled"


@dataclass
class DeleteOutcome:
    """Result of a delete run"""
    status: DeleteStatus
    project_name: str
    project_path: Path
    stats: Optional[DirectoryStats] = None
    backup_path: Optional[Path] = None
    undo_recorded: bool = False
    warnings: List[str] = field(default_factory=list)
    states: List[DeleteState] = field(default_factory=list)


def _silent_reporter(level: str, message: str) -> None:
    logger.debug(f"[{level}] {message}")


class DeleteWorkflow:
    """Safe delete of projects with backup and single-slot undo"""

    def __init__(
        self,
        config: Settings = None,
        scanner: ProjectScanner = None,
        backup_service: BackupService = None,
        ledger: UndoLedger = None,
        prompter: Prompter = None,
        reporter: Reporter = None,
        cwd_provider: Callable[[], Path] = Path.cwd,
    ):
        """
        Initialize delete workflow

        Args:
            config: Settings (directories, search roots)
            scanner: Scanner used to resolve bare project names
            backup_service: Archive backup service
            ledger: Undo ledger
            prompter: Interactive prompts
            reporter: Receives progress messages for display
            cwd_provider: Returns the current working directory
        """
        self.config = config or default_settings
        self.scanner = scanner or ProjectScanner(self.config)
        self.backup_service = backup_service or BackupService()
        self.ledger = ledger or UndoLedger(self.config.undo_file)
        self.prompter = prompter or get_prompter()
        self.report = reporter or _silent_reporter
        self.cwd_provider = cwd_provider

    # ==================== Delete ====================

    async def delete_project(
        self,
        target: Union[ProjectRecord, Path, str],
        options: DeleteOptions = None
    ) -> DeleteOutcome:
        """
        Delete a project

        Args:
            target: Project record, directory path, or bare project name
            options: Delete options

        Returns:
            DeleteOutcome describing what happened

        Raises:
            NotFoundError: If the target cannot be resolved
            ValidationError: If the target is unsafe to delete
            RemovalError: If removal fails partway
        """
        options = options or DeleteOptions()
        machine = DeleteStateMachine()

        # RESOLVE_TARGET
        project_path = await self.resolve_target(target)
        project_name = project_path.name
        machine.transition_to(DeleteState.VALIDATE_SAFETY)

        # VALIDATE_SAFETY
        try:
            self.validate_safety(project_path)
        except Exception:
            machine.transition_to(DeleteState.ABORTED)
            raise
        machine.transition_to(DeleteState.ANALYZE)

        # ANALYZE
        self.report("info", "Analyzing project contents...")
        stats = await asyncio.to_thread(analyze_directory, project_path)
        self.report("success", "Analysis complete")
        self._report_analysis(project_name, project_path, stats)
        machine.transition_to(DeleteState.CONFIRM)

        outcome = DeleteOutcome(
            status=DeleteStatus.DELETED,
            project_name=project_name,
            project_path=project_path,
            stats=stats,
        )

        # CONFIRM
        if options.dry_run:
            self.report("info", "[DRY RUN] No files were deleted.")
            machine.transition_to(DeleteState.DONE)
            outcome.status = DeleteStatus.DRY_RUN
            outcome.states = machine.visited
            return outcome

        confirmed = await self.confirm_deletion(project_name, options)
        should_backup = await self._decide_backup(options) if confirmed else None
        if not confirmed or should_backup is None:
            self.report("warning", "Deletion cancelled")
            machine.transition_to(DeleteState.ABORTED)
            outcome.status = DeleteStatus.CANCELLED
            outcome.states = machine.visited
            return outcome

        # BACKUP
        if should_backup:
            machine.transition_to(DeleteState.BACKUP)
            try:
                outcome.backup_path = await self.create_backup(project_path, project_name)
            except BackupError as e:
                warning = f"Could not create backup, continuing anyway: {e.message}"
                self.report("warning", warning)
                outcome.warnings.append(warning)

        # REMOVE
        machine.transition_to(DeleteState.REMOVE)
        await self.remove_project(project_path, stats)

        # RECORD_UNDO
        if outcome.backup_path is not None:
            machine.transition_to(DeleteState.RECORD_UNDO)
            try:
                self.ledger.record_deletion(UndoRecord(
                    name=project_name,
                    original_path=str(project_path),
                    backup_path=str(outcome.backup_path),
                    deleted_at=datetime.now().isoformat(),
                ))
                outcome.undo_recorded = True
            except OSError as e:
                logger.error(f"Could not write undo record {self.ledger.ledger_file}: {e}")
                warning = (
                    f"Project deleted but undo is unavailable ({e}). "
                    f"Backup kept at: {outcome.backup_path}"
                )
                self.report("warning", warning)
                outcome.warnings.append(warning)

        machine.transition_to(DeleteState.DONE)
        outcome.states = machine.visited
        logger.info(f"Deleted project {project_name} at {project_path}")
        return outcome

    async def resolve_target(self, target: Union[ProjectRecord, Path, str]) -> Path:
        """
        Resolve a record, path or name to a project directory

        Raises:
            NotFoundError: If nothing matches
            InvalidProjectError: If the directory is not a project
        """
        if isinstance(target, ProjectRecord):
            project_path = Path(target.path)
        else:
            candidate = Path(target)
            if not candidate.is_absolute():
                candidate = self.cwd_provider() / candidate

            if candidate.exists():
                project_path = candidate
            elif isinstance(target, Path):
                raise NotFoundError(str(target))
            else:
                self.report("info", f'Searching for project "{target}"...')
                projects = await self.scanner.find_all_projects()
                found = find_project_by_name(projects, target)
                if found is None:
                    raise NotFoundError(target)
                self.report("success", f"Found: {found.name}")
                project_path = Path(found.path)

        project_path = normalize_path(project_path)
        if not project_path.is_dir():
            raise NotFoundError(str(project_path))

        if (project_path / DESCRIPTOR_FILENAME).exists():
            self.report("success", "Valid DevKitX project")
        elif (project_path / MANIFEST_FILENAME).exists():
            self.report("warning", "Not a DevKitX project, but found package.json")
        else:
            raise InvalidProjectError(str(project_path))

        return project_path

    def protected_paths(self) -> List[Path]:
        """Paths that may never be deleted"""
        paths = [self.config.home_dir, Path.home(), Path("/"), Path("/home"),
                 Path("/usr"), Path("/etc"), Path("/var"), Path("/bin")]
        if os.name == "nt":
            paths += [Path("C:\\"), Path("C:\\Windows"), Path("C:\\Program Files")]
            profile = os.environ.get("USERPROFILE")
            if profile:
                paths.append(Path(profile))
        return paths

    def validate_safety(self, project_path: Path) -> None:
        """
        Refuse to delete the cwd, an ancestor of it, or a protected path

        Raises:
            InsideProjectError: If the cwd is the target or below it
            ProtectedPathError: If the target is protected
        """
        if is_same_or_ancestor(project_path, self.cwd_provider()):
            raise InsideProjectError(project_path.name)

        normalized = normalize_path(project_path)
        for protected in self.protected_paths():
            if normalized == normalize_path(protected):
                raise ProtectedPathError(str(project_path))

    async def confirm_deletion(self, project_name: str, options: DeleteOptions) -> bool:
        """
        Type-to-confirm: the user must type the exact project name

        Returns:
            True when confirmed, False when cancelled
        """
        if options.force_no_prompt:
            self.report("warning", "--force mode: Skipping all confirmations")
            return True

        self.report("warning", "This action cannot be undone!")
        while True:
            answer = await self.prompter.text(f'Type "{project_name}" to confirm deletion:')
            if is_cancel(answer):
                return False
            if answer == project_name:
                return True
            self.report("warning", f"Please type exactly: {project_name}")

    async def _decide_backup(self, options: DeleteOptions) -> Optional[bool]:
        """True/False for the backup decision, None when the user cancelled"""
        if options.backup is not None:
            return options.backup
        if options.force_no_prompt or options.skip_backup_prompt:
            return False

        answer = await self.prompter.confirm(
            "Create a backup before deleting? (recommended)", default=True
        )
        if is_cancel(answer):
            return None
        return bool(answer)

    async def create_backup(self, project_path: Path, project_name: str) -> Path:
        """
        Archive the project into the backups directory

        Raises:
            BackupError: If the archive could not be created
        """
        self.report("info", "Creating zip archive...")
        dest = backup_path_for(project_name, self.config.backups_dir)
        await self.backup_service.backup(project_path, dest)
        self.report("success", f"Backup created: {format_size(dest.stat().st_size)}")
        self.report("info", str(dest))
        return dest

    async def remove_project(self, project_path: Path, stats: DirectoryStats) -> None:
        """
        Remove dependency cache, build artifacts, then the rest of the tree

        Raises:
            RemovalError: If any step fails
        """
        cache_path = project_path / DEPENDENCY_CACHE_DIR
        if cache_path.is_symlink() or (stats.has_dependency_cache and cache_path.exists()):
            self.report("info", f"[1/3] Removing {DEPENDENCY_CACHE_DIR}...")
            await self._rmtree("dependency cache", cache_path)
            self.report("success", f"[1/3] {DEPENDENCY_CACHE_DIR} removed")
        else:
            self.report("info", f"[1/3] No {DEPENDENCY_CACHE_DIR} to remove")

        self.report("info", "[2/3] Removing build artifacts...")
        for dirname in BUILD_ARTIFACT_DIRS:
            artifact = project_path / dirname
            if artifact.exists() or artifact.is_symlink():
                await self._rmtree("build artifacts", artifact)
        self.report("success", "[2/3] Build artifacts removed")

        self.report("info", "[3/3] Removing project files...")
        if project_path.exists():
            await self._rmtree("project files", project_path)
        self.report("success", "[3/3] Project files removed")

    async def _rmtree(self, step: str, path: Path) -> None:
        try:
            await asyncio.to_thread(remove_path, path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Removal failed at {step} ({path}): {e}")
            raise RemovalError(step, str(path), str(e)) from e

    def _report_analysis(self, name: str, path: Path, stats: DirectoryStats) -> None:
        self.report("info", f"Project:    {name}")
        self.report("info", f"Location:   {path}")
        self.report("info", f"{stats.file_count} files")
        self.report("info", f"{stats.dir_count} directories")
        self.report("info", f"{format_size(stats.total_size)} total")
        if stats.has_dependency_cache:
            self.report(
                "warning",
                f"(includes {DEPENDENCY_CACHE_DIR}: {format_size(stats.dependency_cache_size)})",
            )

    # ==================== Undo ====================

    async def undo(self, confirm: bool = True) -> Optional[UndoRecord]:
        """
        Restore the last deleted project from its backup

        Args:
            confirm: Ask before restoring

        Returns:
            The restored record, or None if the user declined

        Raises:
            RestoreError: no record, backup missing, destination exists, or extraction failed
        """
        record = self.ledger.read_last_deletion()
        if record is None:
            raise RestoreError.no_record()

        backup_path = Path(record.backup_path)
        original_path = Path(record.original_path)

        if not backup_path.exists():
            raise RestoreError.backup_missing(record.backup_path)

        if original_path.exists():
            raise RestoreError.destination_exists(record.original_path, record.backup_path)

        self.report("info", f"Project:    {record.name}")
        self.report("info", f"Deleted:    {record.deleted_at}")
        self.report("info", f"Original:   {record.original_path}")

        if confirm:
            answer = await self.prompter.confirm(
                f'Restore "{record.name}" to original location?', default=True
            )
            if is_cancel(answer) or not answer:
                self.report("warning", "Restore cancelled")
                return None

        self.report("info", "Extracting backup...")
        try:
            original_path.parent.mkdir(parents=True, exist_ok=True)
            await self.backup_service.restore(backup_path, original_path)
        except (RestoreError, OSError) as e:
            if original_path.exists():
                shutil.rmtree(original_path, ignore_errors=True)
            if isinstance(e, RestoreError):
                raise
            raise RestoreError.extract_failed(record.backup_path, str(e)) from e

        self.ledger.clear_last_deletion()
        self.report("success", "Project restored")
        logger.info(f"Restored project {record.name} to {record.original_path}")
        return record
