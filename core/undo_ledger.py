"""
Undo Ledger - single-slot record of the last deleted project
"""

import json
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from models.project_models import UndoRecord


class UndoLedger:
    """Persists exactly one UndoRecord as JSON.

    Only the most recent deletion is undoable: recording a new deletion
    replaces the previous record. There is no locking, so two concurrent
    invocations race and the last writer wins.
    """

    def __init__(self, ledger_file: Path):
        """
        Args:
            ledger_file: JSON file holding the record (e.g. ~/.devkitx/last-deleted.json)
        """
        self.ledger_file = ledger_file

    def record_deletion(self, record: UndoRecord) -> Path:
        """
        Store record, overwriting any previous one

        Returns:
            Path of the ledger file
        """
        self.ledger_file.parent.mkdir(parents=True, exist_ok=True)

        with open(self.ledger_file, 'w', encoding='utf-8') as f:
            json.dump(record.model_dump(by_alias=True), f, indent=2, ensure_ascii=False)

        logger.info(f"Undo record saved: {record.name} -> {record.backup_path}")
        return self.ledger_file

    def read_last_deletion(self) -> Optional[UndoRecord]:
        """
        Load the stored record

        Returns:
            The record, or None if the ledger is missing or corrupt
        """
        if not self.ledger_file.exists():
            return None

        try:
            with open(self.ledger_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return UndoRecord(**data)
        except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable undo ledger {self.ledger_file}: {e}")
            return None

    def clear_last_deletion(self) -> None:
        """Remove the stored record (after a successful restore)"""
        try:
            self.ledger_file.unlink()
            logger.info("Undo record cleared")
        except FileNotFoundError:
            pass
