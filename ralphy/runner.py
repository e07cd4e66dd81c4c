"""
Ralphy runner

Locates bash, turns RunOptions into ralphy.sh flags and runs the script
as a child process with the terminal attached.
"""

import asyncio
import json
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from core.errors import ProcessError
from core.prompts import Prompter, is_cancel


DEFAULT_PRD = "PRD.md"
DEFAULT_MAX_PARALLEL = 3

GIT_BASH_HINT = "Install Git for Windows (https://git-scm.com/download/win) or make bash available on PATH"


def bash_candidates() -> List[str]:
    """Fixed install locations probed before PATH lookup"""
    if os.name != "nt":
        return [
            "/bin/bash",
            "/usr/bin/bash",
            "/usr/local/bin/bash",
            "/opt/homebrew/bin/bash",
        ]

    # Git for Windows
    candidates = [
        "C:\\Program Files\\Git\\bin\\bash.exe",
        "C:\\Program Files (x86)\\Git\\bin\\bash.exe",
    ]
    local_app_data = os.environ.get("LOCALAPPDATA")
    if local_app_data:
        candidates.append(os.path.join(local_app_data, "Programs", "Git", "bin", "bash.exe"))
    candidates.append("C:\\Git\\bin\\bash.exe")
    return candidates


def find_bash(candidates: Optional[Sequence[str]] = None) -> Optional[str]:
    """
    Locate a bash interpreter

    Args:
        candidates: Paths to probe (defaults to bash_candidates())

    Returns:
        Path to bash, or None if none was found
    """
    for candidate in bash_candidates() if candidates is None else candidates:
        if os.path.isfile(candidate):
            return candidate
    return shutil.which("bash")


@dataclass
class RunOptions:
    """Options forwarded to ralphy.sh"""
    prd: Optional[str] = None
    yaml: Optional[str] = None
    model: Optional[str] = None
    parallel: bool = False
    max_parallel: Optional[int] = None
    fast: bool = False
    branch_per_task: bool = False
    create_pr: bool = False
    draft_pr: bool = False
    max_iterations: Optional[int] = None
    dry_run: bool = False
    verbose: bool = False


def build_args(options: RunOptions) -> List[str]:
    """
    Serialize options into ralphy.sh command line flags

    The engine is always OpenCode. A YAML task file takes precedence over
    a PRD file; without either, PRD.md is used.
    """
    args = ["--opencode"]

    if options.model:
        args += ["--model", options.model]

    if options.yaml:
        args += ["--yaml", options.yaml]
    else:
        args += ["--prd", options.prd or DEFAULT_PRD]

    if options.parallel:
        args += ["--parallel", "--max-parallel", str(options.max_parallel or DEFAULT_MAX_PARALLEL)]

    if options.fast:
        args.append("--fast")
    if options.branch_per_task:
        args.append("--branch-per-task")
    if options.create_pr:
        args.append("--create-pr")
    if options.draft_pr:
        args.append("--draft-pr")

    if options.max_iterations and options.max_iterations > 0:
        args += ["--max-iterations", str(options.max_iterations)]

    if options.dry_run:
        args.append("--dry-run")
    if options.verbose:
        args.append("--verbose")

    return args


class RalphyRunner:
    """Runs ralphy.sh under bash"""

    def __init__(self, bash_path: Optional[str] = None, cwd: Optional[Path] = None):
        """
        Args:
            bash_path: Interpreter to use; discovered with find_bash() when omitted
            cwd: Working directory of the child (defaults to the current directory)
        """
        self.bash_path = bash_path
        self.cwd = cwd

    def resolve_bash(self) -> str:
        """
        Raises:
            ProcessError: If no bash interpreter can be found
        """
        bash = self.bash_path or find_bash()
        if not bash:
            raise ProcessError("bash not found", hint=GIT_BASH_HINT)
        return bash

    async def run(self, script_path: Path, options: RunOptions) -> int:
        """
        Run the script and wait for it to finish

        Stdio is inherited so the child owns the terminal.

        Returns:
            The child's exit code (always 0)

        Raises:
            ProcessError: If bash is missing, the spawn fails or the child exits non-zero
        """
        bash = self.resolve_bash()
        args = build_args(options)
        script = Path(script_path).as_posix()

        logger.info(f"Running {bash} {script} {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                bash, script, *args,
                cwd=str(self.cwd) if self.cwd else None,
            )
        except OSError as e:
            raise ProcessError(f"Failed to start {bash}: {e}", hint=GIT_BASH_HINT) from e

        exit_code = await process.wait()
        if exit_code != 0:
            logger.error(f"Ralphy exited with code {exit_code}")
            raise ProcessError(f"Ralphy exited with code {exit_code}", exit_code=exit_code)

        return exit_code


# ==================== Model selection ====================

DEFAULT_MODELS = [
    ("minimax/MiniMax-M2.1", "MiniMax M2.1", "Fast reasoning model (MiniMax)"),
    ("opencode/zen", "OpenCode Zen", "OpenCode's native model"),
    ("google/gemini-3-flash", "Gemini 3 Flash (Antigravity)", "Fast Google model"),
    ("google/gemini-3-pro", "Gemini 3 Pro High (Antigravity)", "High-performance Google model"),
    ("anthropic/claude-opus-4.5-thinking", "Claude Opus 4.5 Thinking (Antigravity)", "Advanced reasoning with thinking"),
    ("anthropic/claude-sonnet-4", "Claude Sonnet 4", "Latest Claude model (Anthropic)"),
    ("anthropic/claude-opus-4", "Claude Opus 4", "High-performance Claude (Anthropic)"),
    ("openai/gpt-4o", "GPT-4o", "Omni model (OpenAI)"),
    ("xai/grok-2", "Grok-2", "xAI's Grok model"),
    ("deepseek/deepseek-chat", "DeepSeek V3", "DeepSeek V3"),
]

CUSTOM_MODEL = "__custom__"


class SavedModel(BaseModel):
    """Last used OpenCode model"""
    name: str
    model: str
    last_used: str = Field(..., alias="lastUsed")

    class Config:
        populate_by_name = True


class ModelStore:
    """Persists the last used model as JSON"""

    def __init__(self, model_file: Path):
        self.model_file = model_file

    def load(self) -> Optional[SavedModel]:
        if not self.model_file.exists():
            return None
        try:
            with open(self.model_file, 'r', encoding='utf-8') as f:
                return SavedModel(**json.load(f))
        except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable model file {self.model_file}: {e}")
            return None

    def save(self, name: str, model: str) -> None:
        saved = SavedModel(name=name, model=model, last_used=datetime.now().isoformat())
        try:
            self.model_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.model_file, 'w', encoding='utf-8') as f:
                json.dump(saved.model_dump(by_alias=True), f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save model choice: {e}")


async def select_model(prompter: Prompter, store: ModelStore) -> Optional[str]:
    """
    Let the user pick an OpenCode model

    Offers the last used model first, then DEFAULT_MODELS, then a custom entry.

    Returns:
        The model id, or None if the user cancelled
    """
    saved = store.load()

    choices = []
    if saved:
        choices.append((f"{saved.name} (last used)", saved.model))
    for value, _, description in DEFAULT_MODELS:
        choices.append((f"{value}  {description}", value))
    choices.append(("Enter custom model", CUSTOM_MODEL))

    result = await prompter.select("Select a model:", choices)
    if is_cancel(result) or not result:
        return None

    if result != CUSTOM_MODEL:
        labels = {value: label for value, label, _ in DEFAULT_MODELS}
        if result in labels:
            store.save(labels[result], result)
        return result

    while True:
        custom = await prompter.text("Enter model name (format: provider/model):")
        if is_cancel(custom) or not custom:
            return None
        if "/" in custom:
            break

    name = await prompter.text("Name this model so it can be saved:")
    if not is_cancel(name) and name:
        store.save(name, custom)
    return custom
