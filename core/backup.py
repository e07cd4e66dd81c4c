"""
Archive Backup Service

Compresses a project directory into a single zip archive before destructive
operations and extracts it again on restore.
"""

import asyncio
import os
import stat
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

from core.errors import BackupError, RestoreError


def backup_path_for(project_name: str, backups_dir: Path, now: Optional[datetime] = None) -> Path:
    """
    Build a timestamped archive path: <backups_dir>/<name>-YYYY-MM-DDTHH-MM-SS.zip

    Timestamps have second granularity; callers running two backups of the
    same project within one second get the same path (the second overwrites).
    """
    now = now or datetime.now()
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    return backups_dir / f"{project_name}-{timestamp}.zip"


class BackupService:
    """Zip-based backup and restore of project directories"""

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED):
        self.compression = compression

    async def backup(self, source_dir: Path, dest_file: Path) -> Path:
        """
        Compress source_dir (with all descendants) into dest_file

        Args:
            source_dir: Directory to archive
            dest_file: Archive to create; overwritten if it exists

        Returns:
            dest_file

        Raises:
            BackupError: If archiving fails or the archive is missing/empty
        """
        try:
            await asyncio.to_thread(self._write_archive, source_dir, dest_file)
        except Exception as e:
            self._discard(dest_file)
            logger.error(f"Backup of {source_dir} failed: {e}")
            raise BackupError(str(source_dir), str(e)) from e

        if not dest_file.exists() or dest_file.stat().st_size == 0:
            self._discard(dest_file)
            raise BackupError(str(source_dir), "archive was not created")

        logger.info(f"Backup created: {dest_file} ({dest_file.stat().st_size} bytes)")
        return dest_file

    async def restore(self, archive_file: Path, dest_dir: Path) -> None:
        """
        Extract archive_file into dest_dir

        Raises:
            RestoreError: If the archive is unreadable or holds unsafe member paths
        """
        try:
            await asyncio.to_thread(self._extract_archive, archive_file, dest_dir)
        except RestoreError:
            raise
        except (OSError, zipfile.BadZipFile) as e:
            raise RestoreError.extract_failed(str(archive_file), str(e)) from e

        logger.info(f"Restored {archive_file} into {dest_dir}")

    def _write_archive(self, source_dir: Path, dest_file: Path) -> None:
        if not source_dir.is_dir():
            raise FileNotFoundError(f"Source directory not found: {source_dir}")

        dest_file.parent.mkdir(parents=True, exist_ok=True)

        with zipfile.ZipFile(dest_file, "w", self.compression) as zf:
            for current, dirnames, filenames in os.walk(source_dir):
                current_path = Path(current)
                rel_dir = current_path.relative_to(source_dir)

                # Keep empty directories
                if not dirnames and not filenames and rel_dir != Path("."):
                    zf.write(current_path, rel_dir.as_posix() + "/")

                # os.walk does not descend into linked directories
                for dirname in dirnames:
                    dir_path = current_path / dirname
                    if dir_path.is_symlink():
                        self._write_link(zf, dir_path, (rel_dir / dirname).as_posix())

                for filename in filenames:
                    file_path = current_path / filename
                    arcname = (rel_dir / filename).as_posix()
                    if file_path.is_symlink():
                        self._write_link(zf, file_path, arcname)
                    else:
                        zf.write(file_path, arcname)

    @staticmethod
    def _write_link(zf: zipfile.ZipFile, link_path: Path, arcname: str) -> None:
        info = zipfile.ZipInfo(arcname)
        info.create_system = 3  # unix, so external_attr carries the mode
        info.external_attr = (stat.S_IFLNK | 0o777) << 16
        zf.writestr(info, os.readlink(link_path))

    @staticmethod
    def _is_link(info: zipfile.ZipInfo) -> bool:
        return stat.S_ISLNK(info.external_attr >> 16)

    def _extract_archive(self, archive_file: Path, dest_dir: Path) -> None:
        dest_root = dest_dir.resolve()

        with zipfile.ZipFile(archive_file, "r") as zf:
            members = zf.infolist()
            for info in members:
                name = info.filename.rstrip("/")
                if not self._is_link(info):
                    target = (dest_root / name).resolve()
                elif Path(name).name in ("", ".", ".."):
                    target = dest_root.parent
                else:
                    # Check the link's own location, not what it points to
                    target = (dest_root / name).parent.resolve() / Path(name).name
                if target != dest_root and dest_root not in target.parents:
                    raise RestoreError.extract_failed(
                        str(archive_file), f"unsafe path in archive: {info.filename}"
                    )

            dest_root.mkdir(parents=True, exist_ok=True)

            # Links are created last so no member is written through one
            links = []
            for info in members:
                if self._is_link(info):
                    links.append(info)
                    continue
                extracted = Path(zf.extract(info, dest_root))
                mode = (info.external_attr >> 16) & 0o7777
                if mode and not info.is_dir():
                    os.chmod(extracted, mode)

            for info in links:
                link_path = dest_root / info.filename.rstrip("/")
                link_target = zf.read(info).decode("utf-8")
                link_path.parent.mkdir(parents=True, exist_ok=True)
                target_is_dir = (link_path.parent / link_target).is_dir()
                os.symlink(link_target, link_path, target_is_directory=target_is_dir)

    @staticmethod
    def _discard(dest_file: Path) -> None:
        try:
            if dest_file.exists():
                dest_file.unlink()
        except OSError as e:
            logger.warning(f"Could not remove incomplete archive {dest_file}: {e}")
