"""
Custom Error Classes

Defines the DevKitX error taxonomy. Every error carries a short cause and,
where one exists, a remediation hint printed by the CLI.
"""

from typing import Optional


class DevKitError(Exception):
    """Base exception for all DevKitX errors"""

    def __init__(self, message: str, hint: str = None):
        """
        Initialize DevKitX error

        Args:
            message: Error message
            hint: Optional hint for resolving the error
        """
        self.message = message
        self.hint = hint
        super().__init__(self.message)

    def __str__(self):
        """Format error message with hint"""
        if self.hint:
            return f"{self.message}\n[HINT] {self.hint}"
        return self.message


class NotFoundError(DevKitError):
    """Raised when no project (or no valid project directory) matches"""

    def __init__(self, target: str, hint: str = None):
        message = f"Project not found: {target}"
        if hint is None:
            hint = "Run 'dx list' to see available projects"
        super().__init__(message, hint)


class InvalidProjectError(NotFoundError):
    """Raised when a path exists but holds neither project.yaml nor package.json"""

    def __init__(self, project_path: str):
        super().__init__(project_path, "No project.yaml or package.json found in that directory")
        self.message = f"Not a valid project: {project_path}"


class ValidationError(DevKitError):
    """Raised when a delete target is unsafe (cwd, an ancestor of cwd, or a protected path)"""


class InsideProjectError(ValidationError):
    """Raised when the current directory is the target or inside it"""

    def __init__(self, project_name: str):
        message = "Cannot delete: You are inside this project directory!"
        hint = (
            "Navigate out of the project first:\n"
            "  cd ..\n"
            f"  dx delete {project_name}"
        )
        super().__init__(message, hint)


class ProtectedPathError(ValidationError):
    """Raised when the target is the home directory, a filesystem root or a system directory"""

    def __init__(self, path: str):
        message = f"Cannot delete system or home directory: {path}"
        super().__init__(message)


class BackupError(DevKitError):
    """Raised when creating a backup archive fails"""

    def __init__(self, source: str, error: str):
        message = f"Backup of {source} failed: {error}"
        hint = "Check free disk space and permissions on the backups directory"
        super().__init__(message, hint)


class RemovalError(DevKitError):
    """Raised when deleting a project fails partway"""

    def __init__(self, step: str, path: str, error: str):
        message = f"Failed to delete project at step '{step}' ({path}): {error}"
        hint = (
            "Close any programs using the project (editors, dev servers, terminals) "
            "and run the delete again. Already removed parts are not restored."
        )
        self.step = step
        self.path = path
        super().__init__(message, hint)


class RestoreError(DevKitError):
    """Raised when restoring the last deleted project fails"""

    NO_RECORD = "no_record"
    BACKUP_MISSING = "backup_missing"
    DESTINATION_EXISTS = "destination_exists"
    EXTRACT_FAILED = "extract_failed"

    def __init__(self, reason: str, message: str, hint: str = None):
        self.reason = reason
        super().__init__(message, hint)

    @classmethod
    def no_record(cls) -> "RestoreError":
        return cls(
            cls.NO_RECORD,
            "No recently deleted project to restore",
            "Only deletions made with a backup can be undone",
        )

    @classmethod
    def backup_missing(cls, backup_path: str) -> "RestoreError":
        return cls(
            cls.BACKUP_MISSING,
            "Backup file no longer exists",
            f"Expected: {backup_path}",
        )

    @classmethod
    def destination_exists(cls, original_path: str, backup_path: str) -> "RestoreError":
        return cls(
            cls.DESTINATION_EXISTS,
            f"Original location already exists: {original_path}",
            f"Manually extract the backup to a different location:\n  {backup_path}",
        )

    @classmethod
    def extract_failed(cls, backup_path: str, error: str) -> "RestoreError":
        return cls(
            cls.EXTRACT_FAILED,
            f"Failed to restore from {backup_path}: {error}",
            "The undo record was kept, run 'dx undo' again after fixing the problem",
        )


class InstallError(DevKitError):
    """Raised when downloading or installing ralphy.sh fails"""

    def __init__(self, message: str, hint: Optional[str] = None):
        if hint is None:
            hint = "Run 'dx ralph install' again once the problem is fixed"
        super().__init__(message, hint)


class PatchError(InstallError):
    """Raised when a required patch anchor is missing from the downloaded script"""

    def __init__(self, patch_name: str, detail: str):
        message = f"[CRITICAL] PATCH FAILED: {patch_name}: {detail}"
        hint = (
            "The upstream ralphy.sh changed and no longer matches the expected structure.\n"
            "Nothing was written. Update devkitx or report the upstream change."
        )
        self.patch_name = patch_name
        super().__init__(message, hint)


class ProcessError(DevKitError):
    """Raised when the child script fails or the interpreter is missing"""

    def __init__(self, message: str, exit_code: int = 1, hint: str = None):
        self.exit_code = exit_code
        super().__init__(message, hint)


def format_error_for_cli(error: Exception) -> str:
    """
    Format error for CLI display

    Args:
        error: Exception to format

    Returns:
        Formatted error string
    """
    if isinstance(error, DevKitError):
        return str(error)
    else:
        return f"[ERROR] {str(error)}"
