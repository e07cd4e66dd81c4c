"""
Tests for ralphy.sh patches
"""
from pathlib import Path

import pytest

from core.errors import InstallError, PatchError
from ralphy.patches import PATCHES, Patch, apply_patches


UPSTREAM = (Path(__file__).parent / "data" / "ralphy_upstream.sh").read_text(encoding="utf-8")


def test_patch_list_order():
    assert [p.name for p in PATCHES] == [
        "OPENCODE_MODEL variable",
        "--model help text",
        "--model argument parsing",
        "run_ai_command() with model",
        "parallel execution with model",
        "MSYS2 compatibility",
        "PATH for yq.ps1",
    ]


def test_all_patches_apply_to_upstream():
    patched, applied, skipped = apply_patches(UPSTREAM)

    assert applied == [p.name for p in PATCHES]
    assert skipped == []
    assert 'OPENCODE_MODEL=""   # Model for OpenCode (e.g., minimax/MiniMax-M2.1)' in patched
    assert "  --model MODEL       Model for OpenCode" in patched
    assert 'OPENCODE_MODEL="${2:-}"' in patched
    assert patched.count('opencode_args="$opencode_args --model $OPENCODE_MODEL"') == 2
    assert "# OpenCode parallel execution with model" in patched
    assert "# set -euo pipefail  # Disabled for MSYS2/Git Bash Windows compatibility" in patched
    assert 'export PATH="$HOME/.ralphy:$PATH"' in patched


def test_model_case_is_inserted_before_dry_run():
    patched, _, _ = apply_patches(UPSTREAM)

    model_case = patched.index("      --model)\n")
    assert patched.index('AI_ENGINE="qwen"') < model_case < patched.index("      --dry-run)")


def test_patching_is_idempotent():
    """Applying the patch list to its own output changes nothing"""
    once, _, _ = apply_patches(UPSTREAM)
    twice, applied, skipped = apply_patches(once)

    assert twice == once
    assert applied == []
    assert skipped == [p.name for p in PATCHES]


def test_partially_patched_script_only_applies_missing():
    first_two, _, _ = apply_patches(UPSTREAM, PATCHES[:2])

    result, applied, skipped = apply_patches(first_two)

    assert skipped == [p.name for p in PATCHES[:2]]
    assert applied == [p.name for p in PATCHES[2:]]
    assert result == apply_patches(UPSTREAM)[0]


def test_missing_anchor_fails_closed():
    """A script without the --qwen case block fails at that patch"""
    broken = UPSTREAM.replace('AI_ENGINE="qwen"', 'AI_ENGINE="qwen-code"')
    progress = []

    with pytest.raises(PatchError) as exc_info:
        apply_patches(broken, on_progress=lambda name, applied: progress.append(name))

    assert exc_info.value.patch_name == "--model argument parsing"
    assert "[CRITICAL] PATCH FAILED" in str(exc_info.value)
    assert isinstance(exc_info.value, InstallError)
    # Earlier patches ran, later ones never did
    assert progress == ["OPENCODE_MODEL variable", "--model help text"]


def test_defaults_block_must_be_adjacent():
    broken = UPSTREAM.replace(
        "DRY_RUN=false\nMAX_ITERATIONS=0",
        "DRY_RUN=false\nVERBOSE=false\nMAX_ITERATIONS=0",
    )

    with pytest.raises(PatchError) as exc_info:
        apply_patches(broken)

    assert exc_info.value.patch_name == "PATH for yq.ps1"


def test_single_patch_replaces_first_occurrence_only():
    patch = Patch(name="demo", anchor="a", replacement="ab", applied_marker="MARK")

    assert patch.apply("a a") == "ab a"


def test_patch_that_does_not_grow_text_fails():
    patch = Patch(name="shrink", anchor="long text", replacement="short", applied_marker="MARK")

    with pytest.raises(PatchError):
        patch.apply("some long text")
