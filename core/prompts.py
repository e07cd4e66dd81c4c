"""
Interactive prompts

Every prompt returns either the answer or the CANCELLED sentinel; call sites
must check for CANCELLED before using the result.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

import questionary


class _Cancelled:
    """Sentinel returned when the user aborts a prompt (Ctrl+C / Esc)"""

    def __repr__(self):
        return "CANCELLED"

    def __bool__(self):
        return False


CANCELLED = _Cancelled()


def is_cancel(value: Any) -> bool:
    return value is CANCELLED


class Prompter(ABC):
    """select/text/confirm primitives"""

    @abstractmethod
    async def select(self, message: str, choices: List[Tuple[str, Any]]) -> Any:
        """
        Ask the user to pick one of choices

        Args:
            message: Question to display
            choices: (label, value) pairs

        Returns:
            The chosen value or CANCELLED
        """

    @abstractmethod
    async def text(self, message: str, default: str = "") -> Any:
        """Free text answer or CANCELLED"""

    @abstractmethod
    async def confirm(self, message: str, default: bool = True) -> Any:
        """True/False or CANCELLED"""


class QuestionaryPrompter(Prompter):
    """Terminal prompts backed by questionary"""

    async def select(self, message: str, choices: List[Tuple[str, Any]]) -> Any:
        options = [questionary.Choice(title=label, value=value) for label, value in choices]
        answer = await questionary.select(message, choices=options).ask_async()
        return CANCELLED if answer is None else answer

    async def text(self, message: str, default: str = "") -> Any:
        answer = await questionary.text(message, default=default).ask_async()
        return CANCELLED if answer is None else answer

    async def confirm(self, message: str, default: bool = True) -> Any:
        answer = await questionary.confirm(message, default=default).ask_async()
        return CANCELLED if answer is None else answer


_prompter: Optional[Prompter] = None


def get_prompter() -> Prompter:
    """
    Get shared prompter instance

    Returns:
        QuestionaryPrompter instance
    """
    global _prompter
    if _prompter is None:
        _prompter = QuestionaryPrompter()
    return _prompter
