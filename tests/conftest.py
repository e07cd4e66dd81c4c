"""Shared fixtures"""
import json
from pathlib import Path
from typing import Any, List

import pytest

from config.settings import Settings
from core.prompts import CANCELLED, Prompter


class ScriptedPrompter(Prompter):
    """Prompter that replays queued answers and records the questions"""

    def __init__(self, answers: List[Any] = None):
        self.answers = list(answers or [])
        self.questions = []

    def _next(self, kind: str, message: str):
        self.questions.append((kind, message))
        if not self.answers:
            raise AssertionError(f"Unexpected {kind} prompt: {message}")
        return self.answers.pop(0)

    async def select(self, message, choices):
        answer = self._next("select", message)
        if answer is CANCELLED:
            return answer
        # Integers pick by index
        if isinstance(answer, int) and not isinstance(answer, bool):
            return choices[answer][1]
        return answer

    async def text(self, message, default=""):
        return self._next("text", message)

    async def confirm(self, message, default=True):
        return self._next("confirm", message)


@pytest.fixture
def home(tmp_path) -> Path:
    home_dir = tmp_path / "home"
    (home_dir / "Projects").mkdir(parents=True)
    return home_dir


@pytest.fixture
def config(home) -> Settings:
    """Settings isolated under a temporary home directory"""
    return Settings(
        _env_file=None,
        home_dir=home,
        search_paths=["Projects"],
    )


@pytest.fixture
def scripted_prompter():
    """Factory: scripted_prompter(answer, ...)"""
    def factory(*answers):
        return ScriptedPrompter(list(answers))
    return factory


def make_project(parent: Path, name: str, descriptor: str = None, manifest: dict = None) -> Path:
    """Create a project directory with optional project.yaml / package.json"""
    project_dir = parent / name
    project_dir.mkdir(parents=True, exist_ok=True)
    if descriptor is not None:
        (project_dir / "project.yaml").write_text(descriptor, encoding="utf-8")
    if manifest is not None:
        (project_dir / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
    return project_dir


@pytest.fixture
def project_factory():
    return make_project
