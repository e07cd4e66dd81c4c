"""
Text patches for the upstream ralphy.sh

Each patch is idempotent: if its marker is already present it is skipped,
if its anchor is present it is applied once, otherwise PatchError is raised
and nothing may be written.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from loguru import logger

from core.errors import PatchError


@dataclass(frozen=True)
class Patch:
    """A single anchored text replacement

    Attributes:
        name: Human readable name used in logs and errors
        anchor: Exact text that must be present in an unpatched script
        replacement: Text that replaces the first occurrence of anchor
        applied_marker: Text whose presence means the patch was already applied
    """
    name: str
    anchor: str
    replacement: str
    applied_marker: str

    def is_applied(self, text: str) -> bool:
        return self.applied_marker in text

    def apply(self, text: str) -> str:
        """
        Apply this patch to text

        Returns:
            Patched text (unchanged if already applied)

        Raises:
            PatchError: If the anchor is missing or the replacement did not grow the text
        """
        if self.is_applied(text):
            return text

        if self.anchor not in text:
            raise PatchError(self.name, "anchor not found in script")

        patched = text.replace(self.anchor, self.replacement, 1)
        if len(patched) <= len(text):
            raise PatchError(self.name, "replacement did not change the script")
        return patched


_MODEL_LINE = 'OPENCODE_MODEL=""   # Model for OpenCode (e.g., minimax/MiniMax-M2.1)'
_MODEL_HELP_LINE = "  --model MODEL       Model for OpenCode (e.g., minimax/MiniMax-M2.1)"

_ENGINE_LINE = 'AI_ENGINE="claude"  # claude, opencode, cursor, codex, or qwen'
_QWEN_HELP_LINE = "  --qwen              Use Qwen-Code"

_QWEN_CASE = (
    "      --qwen)\n"
    '        AI_ENGINE="qwen"\n'
    "        shift\n"
    "        ;;\n"
)
_DRY_RUN_CASE = "      --dry-run)"
_MODEL_CASE = (
    "      --model)\n"
    '        OPENCODE_MODEL="${2:-}"\n'
    "        shift 2\n"
    "        ;;\n"
)

_OPENCODE_CMD = (
    "OPENCODE_PERMISSION='{\"*\":\"allow\"}' opencode run \\\n"
    "        --format json \\\n"
    '        "$prompt"'
)
_OPENCODE_CMD_WITH_MODEL = (
    'local opencode_args="--format json"\n'
    '      if [[ -n "$OPENCODE_MODEL" ]]; then\n'
    '        opencode_args="$opencode_args --model $OPENCODE_MODEL"\n'
    "      fi\n"
    "      OPENCODE_PERMISSION='{\"*\":\"allow\"}' opencode run \\\n"
    "        $opencode_args \\\n"
    '        "$prompt"'
)

_PARALLEL_BLOCK = (
    "        (\n"
    '          cd "$worktree_dir"\n'
    "          OPENCODE_PERMISSION='{\"*\":\"allow\"}' opencode run \\\n"
    "            --format json \\\n"
    '            "$prompt"\n'
    '        ) > "$tmpfile" 2>>"$log_file"'
)
_PARALLEL_MARKER = "# OpenCode parallel execution with model"
_PARALLEL_BLOCK_WITH_MODEL = (
    "        (\n"
    '          cd "$worktree_dir"\n'
    f"          {_PARALLEL_MARKER}\n"
    '          local opencode_args="--format json"\n'
    '          if [[ -n "$OPENCODE_MODEL" ]]; then\n'
    '            opencode_args="$opencode_args --model $OPENCODE_MODEL"\n'
    "          fi\n"
    "          OPENCODE_PERMISSION='{\"*\":\"allow\"}' opencode run \\\n"
    "            $opencode_args \\\n"
    '            "$prompt"\n'
    '        ) > "$tmpfile" 2>>"$log_file"'
)

_STRICT_MODE = "set -euo pipefail"
_STRICT_MODE_DISABLED = "# set -euo pipefail  # Disabled for MSYS2/Git Bash Windows compatibility"

_DEFAULTS_BLOCK = "DRY_RUN=false\nMAX_ITERATIONS=0  # 0 = unlimited"
_YQ_PATH_BLOCK = (
    "\n\n"
    "# Windows: Add .ralphy to PATH for yq.ps1\n"
    'if [[ -f "$HOME/.ralphy/yq.ps1" ]]; then\n'
    '  export PATH="$HOME/.ralphy:$PATH"\n'
    "fi"
)


PATCHES: List[Patch] = [
    Patch(
        name="OPENCODE_MODEL variable",
        anchor=_ENGINE_LINE,
        replacement=_ENGINE_LINE + "\n" + _MODEL_LINE,
        applied_marker=_MODEL_LINE,
    ),
    Patch(
        name="--model help text",
        anchor=_QWEN_HELP_LINE,
        replacement=_QWEN_HELP_LINE + "\n" + _MODEL_HELP_LINE,
        applied_marker=_MODEL_HELP_LINE,
    ),
    Patch(
        name="--model argument parsing",
        anchor=_QWEN_CASE + _DRY_RUN_CASE,
        replacement=_QWEN_CASE + _MODEL_CASE + _DRY_RUN_CASE,
        applied_marker='OPENCODE_MODEL="${2:-}"',
    ),
    Patch(
        name="run_ai_command() with model",
        anchor=_OPENCODE_CMD,
        replacement=_OPENCODE_CMD_WITH_MODEL,
        applied_marker=_OPENCODE_CMD_WITH_MODEL,
    ),
    Patch(
        name="parallel execution with model",
        anchor=_PARALLEL_BLOCK,
        replacement=_PARALLEL_BLOCK_WITH_MODEL,
        applied_marker=_PARALLEL_MARKER,
    ),
    Patch(
        name="MSYS2 compatibility",
        anchor=_STRICT_MODE,
        replacement=_STRICT_MODE_DISABLED,
        applied_marker="# set -euo pipefail",
    ),
    Patch(
        name="PATH for yq.ps1",
        anchor=_DEFAULTS_BLOCK,
        replacement=_DEFAULTS_BLOCK + _YQ_PATH_BLOCK,
        applied_marker=".ralphy/yq.ps1",
    ),
]


def apply_patches(
    text: str,
    patches: Optional[List[Patch]] = None,
    on_progress: Optional[Callable[[str, bool], None]] = None
) -> Tuple[str, List[str], List[str]]:
    """
    Apply patches in order, stopping at the first failure

    Args:
        text: Original script text
        patches: Patches to apply (defaults to PATCHES)
        on_progress: Called with (patch name, applied) after each patch

    Returns:
        (patched text, names of applied patches, names of skipped patches)

    Raises:
        PatchError: On the first patch whose anchor is missing
    """
    patches = PATCHES if patches is None else patches
    applied, skipped = [], []

    for patch in patches:
        if patch.is_applied(text):
            logger.info(f"Skipped: {patch.name} (already applied)")
            skipped.append(patch.name)
            if on_progress:
                on_progress(patch.name, False)
            continue

        text = patch.apply(text)
        logger.info(f"Patched: {patch.name}")
        applied.append(patch.name)
        if on_progress:
            on_progress(patch.name, True)

    return text, applied, skipped
