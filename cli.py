#!/usr/bin/env python
"""
DevKitX CLI

Developer workflow commands: find, switch to, clean and safely delete
projects, and drive the Ralphy autonomous coding loop.
"""

import sys
import json
import asyncio
import argparse
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

# Load .env file to environment variables
# This must be done before settings are read
load_dotenv()

from config.settings import settings
from core import __version__
from core.cleaner import clean_items, filter_items, find_cleanable_items, find_project_root
from core.delete_workflow import DeleteOptions, DeleteStatus, DeleteWorkflow
from core.errors import DevKitError, ProcessError, format_error_for_cli
from core.prompts import get_prompter, is_cancel
from core.scanner import ProjectScanner, find_project_by_name, sort_by_recency
from models.project_models import CleanableKind
from ralphy.installer import RalphyInstaller
from ralphy.runner import ModelStore, RalphyRunner, RunOptions, find_bash, select_model
from utils.fs_utils import format_size, format_time_ago, shorten_path
from utils.logger import setup_logging


RALPH_PROJECT_FILES = [
    ("AGENTS.md", "AGENTS.md"),
    (".ralph/signs.md", ".ralph/signs.md"),
    ("PRD.md", "PRD.md"),
    ("progress.txt", "progress.txt"),
    ("docs/prd", "docs/prd/"),
]


def print_success(message: str):
    """Print success message"""
    print(f"✓ {message}")


def print_error(message: str):
    """Print error message"""
    print(f"✗ {message}", file=sys.stderr)


def print_info(message: str):
    """Print info message"""
    print(f"ℹ {message}")


def print_warning(message: str):
    """Print warning message"""
    print(f"! {message}")


def report(level: str, message: str):
    """Reporter callback for workflows"""
    {
        "success": print_success,
        "warning": print_warning,
        "error": print_error,
    }.get(level, print_info)(message)


# ==================== Commands ====================

def cmd_list(args):
    """List projects"""
    scanner = ProjectScanner(settings)

    if args.path:
        roots = [Path(args.path).expanduser()]
    else:
        roots = scanner.default_search_roots(include_cwd=True)

    if not args.json:
        print_info(f"Searching {len(roots)} location(s)...")

    projects = asyncio.run(scanner.scan(roots, args.depth, include_non_marked=args.all))
    projects = sort_by_recency(projects)

    if args.json:
        print(json.dumps(
            [p.model_dump(by_alias=True, mode="json") for p in projects],
            indent=2
        ))
        return 0

    if not projects:
        print_info("No projects found.")
        if not args.all:
            print_info("Use --all to include folders with only a package.json")
        return 0

    print_success(f"Found {len(projects)} project(s)")
    print()

    name_width = min(25, max(len(p.name) for p in projects))
    template_width = max(len(p.template.value) for p in projects)

    for project in projects:
        git_icon = "●" if project.is_version_controlled else "○"
        deps_icon = "●" if project.has_dependencies_installed else "○"
        print(
            f"  {project.name.ljust(name_width)}  "
            f"{project.template.value.ljust(template_width)}  "
            f"{format_time_ago(project.last_modified).ljust(12)}  "
            f"{git_icon} {deps_icon}"
        )
        print(f"    {shorten_path(project.path, settings.home_dir)}")

    print()
    print_info("● git repo  ● dependencies installed")
    return 0


def cmd_go(args):
    """Switch to a project"""
    try:
        scanner = ProjectScanner(settings)
        projects = sort_by_recency(asyncio.run(scanner.find_all_projects()))

        if not projects:
            if not args.path_only:
                print_error("No DevKitX projects found")
            return 1

        if args.list:
            print_info("Recent projects:")
            for i, project in enumerate(projects[:10], start=1):
                print(f"  {i}. {project.name.ljust(25)} {format_time_ago(project.last_modified)}")
            print()
            print_info("Usage: dx go <name>")
            return 0

        if args.name:
            selected = find_project_by_name(projects, args.name)
            if selected is None:
                if not args.path_only:
                    print_error(f"Project not found: {args.name}")
                    similar = [p for p in projects if args.name.lower()[:3] in p.name.lower()]
                    if similar:
                        print_info("Did you mean:")
                        for project in similar[:5]:
                            print(f"    {project.name}")
                return 1
        else:
            if args.path_only:
                return 1
            choices = [
                (f"{p.name}  ({p.template.value} - {format_time_ago(p.last_modified)})", p)
                for p in projects[:20]
            ]
            selected = asyncio.run(get_prompter().select("Select a project:", choices))
            if is_cancel(selected):
                print_info("Cancelled")
                return 0

        if args.path_only:
            print(selected.path)
            return 0

        try:
            settings.go_path_file.parent.mkdir(parents=True, exist_ok=True)
            settings.go_path_file.write_text(selected.path, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not write {settings.go_path_file}: {e}")

        print_success(f"-> {selected.name}")
        print(f"     {selected.path}")
        return 0

    except DevKitError as e:
        print_error(format_error_for_cli(e))
        return 1


def cmd_clean(args):
    """Remove regenerable artifacts from the current project"""
    project_path = find_project_root(Path.cwd())
    if project_path is None:
        print_error("Not in a project directory")
        return 1

    print_success(f"Found project: {project_path}")

    items = find_cleanable_items(project_path)
    kinds = []
    if args.deps:
        kinds.append(CleanableKind.DEPS)
    if args.cache:
        kinds.append(CleanableKind.CACHE)
    if args.build:
        kinds.append(CleanableKind.BUILD)
    items = filter_items(items, kinds)

    if not items:
        print_success("Project is already clean!")
        return 0

    total = sum(item.size for item in items)
    for item in items:
        print(f"  {item.name.ljust(22)} {format_size(item.size).rjust(10)}  {item.description or ''}")
    print()
    print_info(f"Total: {format_size(total)}")

    if args.dry_run:
        print_info("[DRY RUN] No files were deleted.")
        return 0

    if not args.all and not args.yes:
        answer = asyncio.run(get_prompter().confirm(f"Delete {len(items)} item(s)?", default=True))
        if is_cancel(answer) or not answer:
            print_info("Cancelled")
            return 0

    result = asyncio.run(clean_items(items))
    for item, error in result.failed:
        print_error(f"Failed to remove {item.name}: {error}")

    print_success(f"Freed {format_size(result.freed)}")
    return 1 if result.failed else 0


def cmd_delete(args):
    """Safely delete a project"""
    if args.force and not args.yes:
        print_warning("--force only skips confirmation together with --yes")

    options = DeleteOptions(
        dry_run=args.dry_run,
        backup=args.backup,
        force_no_prompt=args.force and args.yes,
        skip_backup_prompt=args.yes,
    )
    workflow = DeleteWorkflow(settings, reporter=report)

    async def run():
        target = args.target
        if target is None:
            projects = await workflow.scanner.find_all_projects()
            if not projects:
                print_error("No DevKitX projects found")
                return None
            choices = [
                (f"{p.name}  ({p.template.value} - {shorten_path(p.path, settings.home_dir)})", p)
                for p in sort_by_recency(projects)
            ]
            target = await workflow.prompter.select("Select a project to delete:", choices)
            if is_cancel(target):
                print_info("Cancelled")
                return None
        return await workflow.delete_project(target, options)

    try:
        outcome = asyncio.run(run())
    except DevKitError as e:
        print_error(format_error_for_cli(e))
        return 1
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Full traceback:")
        return 1

    if outcome is None:
        return 0

    if outcome.status == DeleteStatus.DELETED:
        print_success(f"Project deleted: {outcome.project_name}")
        if outcome.undo_recorded:
            print_info("Restore with: dx undo")
    return 0


def cmd_undo(args):
    """Restore the last deleted project"""
    workflow = DeleteWorkflow(settings, reporter=report)

    try:
        record = asyncio.run(workflow.undo(confirm=not args.yes))
    except DevKitError as e:
        print_error(format_error_for_cli(e))
        return 1
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Full traceback:")
        return 1

    if record is not None:
        print_success(f"Restored {record.name} to {record.original_path}")
    return 0


def cmd_ralph_install(args):
    """Install or update ralphy.sh"""
    installer = RalphyInstaller(settings, reporter=report)

    try:
        result = asyncio.run(installer.install())
    except DevKitError as e:
        print_error(f"Installation failed: {format_error_for_cli(e)}")
        return 1

    print_success("Ralphy installed successfully!")
    print_info(f"Patches applied: {len(result.applied)}, already present: {len(result.skipped)}")
    print()
    print_info("To use from any terminal, add to PATH:")
    print(f"  {result.ralphy_dir}")
    print_info("Or use through dx:")
    print("  dx ralph run")
    return 0


def cmd_ralph_run(args):
    """Run Ralphy with OpenCode"""
    installer = RalphyInstaller(settings, reporter=report)
    runner = RalphyRunner()

    async def run():
        if not installer.is_installed():
            print_warning("Ralphy not installed. Installing now...")
            await installer.install()

        runner.resolve_bash()

        model = args.model
        if args.select_model and not model:
            model = await select_model(get_prompter(), ModelStore(settings.model_file))
            if model is None:
                print_info("Cancelled")
                return None

        options = RunOptions(
            prd=args.prd,
            yaml=args.yaml,
            model=model,
            parallel=args.parallel,
            max_parallel=args.max_parallel or settings.ralphy_default_max_parallel,
            fast=args.fast,
            branch_per_task=args.branch_per_task,
            create_pr=args.create_pr,
            draft_pr=args.draft_pr,
            max_iterations=args.max_iterations,
            dry_run=args.dry_run,
            verbose=args.verbose,
        )

        print_info("RALPHY - Autonomous AI Coding Loop")
        print_info("Engine: OpenCode")
        if model:
            print_info(f"Model: {model}")
        print_info(f"PRD: {args.yaml or args.prd or 'PRD.md'}")
        if args.parallel:
            print_info(f"Mode: Parallel ({options.max_parallel} agents)")
        print()

        return await runner.run(installer.script_path, options)

    try:
        exit_code = asyncio.run(run())
    except ProcessError as e:
        print_error(f"Ralphy failed: {format_error_for_cli(e)}")
        return e.exit_code or 1
    except DevKitError as e:
        print_error(f"Ralphy failed: {format_error_for_cli(e)}")
        return 1

    if exit_code is None:
        return 0

    print_success("Ralphy completed!")
    return exit_code


def cmd_ralph_status(args):
    """Check Ralphy setup status"""
    project_path = Path(args.path).expanduser() if args.path else Path.cwd()
    installer = RalphyInstaller(settings)

    print_info(f"Project: {project_path.name}")
    print()
    print("  Ralphy Installation:")
    if installer.is_installed():
        print_success(f"ralphy.sh installed ({installer.script_path})")
    else:
        print_error("ralphy.sh not installed")
        print("      Run: dx ralph install")

    bash = find_bash()
    if bash:
        print_success(f"bash found ({bash})")
    else:
        print_error("bash not found")

    print()
    print("  Project files:")
    all_present = True
    for rel_path, label in RALPH_PROJECT_FILES:
        if (project_path / rel_path).exists():
            print_success(label)
        else:
            print_error(label)
            all_present = False

    prd_dir = project_path / "docs" / "prd"
    if prd_dir.is_dir():
        prd_files = sorted(
            f.name for f in prd_dir.iterdir()
            if f.name.endswith(".prd.md") or f.name.endswith(".yaml")
        )
        if prd_files:
            print()
            print(f"  PRD files: {len(prd_files)}")
            for name in prd_files[:5]:
                print(f"    - {name}")

    saved = ModelStore(settings.model_file).load()
    if saved:
        print()
        print_info(f"Last used model: {saved.name} ({saved.model})")

    print()
    if all_present and installer.is_installed() and bash:
        print_success("Ready to run: dx ralph run")
    return 0


# ==================== Main ====================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dx",
        description="DevKitX - developer workflow CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List projects (including folders with only a package.json)
  dx list --all

  # Jump to a project
  dx go my-app

  # Preview, then delete with a backup
  dx delete my-app --dry-run
  dx delete my-app --backup

  # Restore the last deleted project
  dx undo

  # Install and run Ralphy
  dx ralph install
  dx ralph run --parallel --max-parallel 4
"""
    )

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Console logging level (default: WARNING)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # List command
    list_parser = subparsers.add_parser('list', help='List projects')
    list_parser.add_argument('-p', '--path', help='Search in specific directory')
    list_parser.add_argument('-a', '--all', action='store_true',
                             help='Include folders with only a package.json')
    list_parser.add_argument('-d', '--depth', type=int, default=settings.scan_depth,
                             help=f'Search depth (default: {settings.scan_depth})')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list)

    # Go command
    go_parser = subparsers.add_parser('go', help='Switch to a project')
    go_parser.add_argument('name', nargs='?', help='Project name to switch to')
    go_parser.add_argument('--path-only', action='store_true',
                           help='Output only the path (for shell integration)')
    go_parser.add_argument('-l', '--list', action='store_true', help='List recent projects')
    go_parser.set_defaults(func=cmd_go)

    # Clean command
    clean_parser = subparsers.add_parser('clean', help='Remove dependencies, caches and build output')
    clean_parser.add_argument('-a', '--all', action='store_true', help='Clean everything without prompting')
    clean_parser.add_argument('--deps', action='store_true', help='Only remove node_modules')
    clean_parser.add_argument('--cache', action='store_true', help='Only remove caches (.next/cache, .turbo)')
    clean_parser.add_argument('--build', action='store_true', help='Only remove build outputs (dist, .next, .expo)')
    clean_parser.add_argument('--dry-run', action='store_true', help='Show what would be deleted')
    clean_parser.add_argument('-y', '--yes', action='store_true', help='Skip confirmation')
    clean_parser.set_defaults(func=cmd_clean)

    # Delete command
    delete_parser = subparsers.add_parser('delete', help='Safely delete a project')
    delete_parser.add_argument('target', nargs='?', help='Path or name of project to delete')
    delete_parser.add_argument('--dry-run', action='store_true',
                               help='Preview what will be deleted without deleting')
    backup_group = delete_parser.add_mutually_exclusive_group()
    backup_group.add_argument('--backup', dest='backup', action='store_const', const=True, default=None,
                              help='Create a backup before deleting (default: prompted)')
    backup_group.add_argument('--no-backup', dest='backup', action='store_const', const=False,
                              help='Skip backup creation')
    delete_parser.add_argument('-y', '--yes', action='store_true',
                               help='Skip backup prompt (still requires type-to-confirm)')
    delete_parser.add_argument('--force', action='store_true',
                               help='Skip all confirmations (dangerous, requires --yes)')
    delete_parser.set_defaults(func=cmd_delete)

    # Undo command
    undo_parser = subparsers.add_parser('undo', help='Restore the last deleted project')
    undo_parser.add_argument('-y', '--yes', action='store_true', help='Restore without asking')
    undo_parser.set_defaults(func=cmd_undo)

    # Ralph command group
    ralph_parser = subparsers.add_parser('ralph', help='Ralphy autonomous coding loop')
    ralph_sub = ralph_parser.add_subparsers(dest='ralph_command', help='Ralph command')

    ralph_install = ralph_sub.add_parser('install', help='Install or update ralphy.sh')
    ralph_install.set_defaults(func=cmd_ralph_install)

    ralph_run = ralph_sub.add_parser('run', help='Run Ralphy with OpenCode')
    ralph_run.add_argument('--prd', help='PRD file path (default: PRD.md)')
    ralph_run.add_argument('--yaml', help='Use YAML task file instead')
    ralph_run.add_argument('--model', help='OpenCode model to use (provider/model)')
    ralph_run.add_argument('--select-model', action='store_true', help='Interactive model selector')
    ralph_run.add_argument('--parallel', action='store_true', help='Run tasks in parallel using git worktrees')
    ralph_run.add_argument('--max-parallel', type=int, help='Max concurrent agents (default: 3)')
    ralph_run.add_argument('--fast', action='store_true', help='Skip tests and linting')
    ralph_run.add_argument('--branch-per-task', action='store_true', help='Create a git branch for each task')
    ralph_run.add_argument('--create-pr', action='store_true', help='Create pull requests automatically')
    ralph_run.add_argument('--draft-pr', action='store_true', help='Create PRs as drafts')
    ralph_run.add_argument('--max-iterations', type=int, help='Max iterations (0 = unlimited)')
    ralph_run.add_argument('--dry-run', action='store_true', help='Preview without executing')
    ralph_run.add_argument('-v', '--verbose', action='store_true', help='Show debug output')
    ralph_run.set_defaults(func=cmd_ralph_run)

    ralph_status = ralph_sub.add_parser('status', help='Check Ralphy setup status')
    ralph_status.add_argument('-p', '--path', help='Project path (default: current directory)')
    ralph_status.set_defaults(func=cmd_ralph_status)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, 'func', None):
        parser.print_help()
        return 1

    setup_logging(args.log_level)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print()
        print_info("Cancelled by user")
        return 0
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Full traceback:")
        return 1


if __name__ == '__main__':
    sys.exit(main())
