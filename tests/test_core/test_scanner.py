"""
Unit tests for the project scanner
"""
import os

import pytest

from core.scanner import ProjectScanner, find_project_by_name, sort_by_recency
from models.project_models import ProjectTemplate


@pytest.fixture
def scanner(config):
    return ProjectScanner(config)


@pytest.mark.asyncio
async def test_scan_finds_marked_and_manifest_projects(scanner, home, project_factory):
    """Descriptor projects and package.json projects are both classified"""
    root = home / "Projects"
    project_factory(root, "app-a", descriptor="stack:\n  monorepo: true\n")
    project_factory(root, "app-b", manifest={"dependencies": {"next": "14.0.0"}})

    projects = await scanner.scan([root], max_depth=2, include_non_marked=True)
    by_name = {p.name: p for p in projects}

    assert set(by_name) == {"app-a", "app-b"}
    assert by_name["app-a"].marker is True
    assert by_name["app-a"].template == ProjectTemplate.MONOREPO
    assert by_name["app-b"].marker is False
    assert by_name["app-b"].template == ProjectTemplate.NEXT_JS


@pytest.mark.asyncio
async def test_scan_without_non_marked_skips_manifest_only(scanner, home, project_factory):
    root = home / "Projects"
    project_factory(root, "app-a", descriptor="stack:\n  monorepo: turbo\n")
    project_factory(root, "app-b", manifest={"dependencies": {"vite": "5"}})

    projects = await scanner.scan([root], max_depth=2)

    assert [p.name for p in projects] == ["app-a"]


@pytest.mark.asyncio
async def test_scan_does_not_recurse_into_projects(scanner, home, project_factory):
    """A nested project inside a qualifying directory is not reported"""
    root = home / "Projects"
    outer = project_factory(root, "outer", descriptor="project:\n  name: outer\n")
    project_factory(outer / "packages", "inner", descriptor="project:\n  name: inner\n")

    projects = await scanner.scan([root], max_depth=3)

    assert [p.name for p in projects] == ["outer"]


@pytest.mark.asyncio
async def test_scan_skips_excluded_and_hidden_directories(scanner, home, project_factory):
    root = home / "Projects"
    project_factory(root / "node_modules", "pkg", descriptor="")
    project_factory(root / ".hidden", "secret", descriptor="")
    project_factory(root / "dist", "built", descriptor="")
    project_factory(root, "visible", descriptor="")

    projects = await scanner.scan([root], max_depth=3)

    assert [p.name for p in projects] == ["visible"]


@pytest.mark.asyncio
async def test_scan_respects_depth(scanner, home, project_factory):
    root = home / "Projects"
    project_factory(root / "a" / "b", "deep", descriptor="")

    assert await scanner.scan([root], max_depth=2) == []
    found = await scanner.scan([root], max_depth=3)
    assert [p.name for p in found] == ["deep"]


@pytest.mark.asyncio
async def test_scan_deduplicates_overlapping_roots(scanner, home, project_factory):
    """The same directory reached from two roots is reported once"""
    root = home / "Projects"
    project_factory(root, "app-a", descriptor="")

    projects = await scanner.scan([root, home, root], max_depth=3)

    assert len(projects) == 1
    assert projects[0].path == os.path.realpath(root / "app-a")


@pytest.mark.asyncio
async def test_scan_ignores_missing_root(scanner, home):
    projects = await scanner.scan([home / "does-not-exist"], max_depth=2)
    assert projects == []


@pytest.mark.asyncio
async def test_scan_skips_unreadable_directory(monkeypatch, scanner, home, project_factory):
    """A permission error in one directory does not stop the rest of the walk"""
    root = home / "Projects"
    project_factory(root / "locked", "hidden-app", descriptor="")
    project_factory(root / "work", "app-a", descriptor="")
    project_factory(root, "app-b", manifest={"name": "app-b"})
    real_scandir = os.scandir

    def scandir(path="."):
        if os.path.basename(os.fspath(path)) == "locked":
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_scandir(path)

    monkeypatch.setattr("core.scanner.os.scandir", scandir)

    projects = await scanner.scan([root], max_depth=3, include_non_marked=True)

    assert {p.name for p in projects} == {"app-a", "app-b"}


@pytest.mark.asyncio
async def test_record_flags(scanner, home, project_factory):
    root = home / "Projects"
    project = project_factory(root, "app", manifest={"name": "app"})
    (project / "node_modules").mkdir()
    (project / ".git").mkdir()

    [record] = await scanner.scan([root], max_depth=1, include_non_marked=True)

    assert record.has_dependencies_installed is True
    assert record.is_version_controlled is True
    assert record.template == ProjectTemplate.NODE


@pytest.mark.asyncio
async def test_unparsable_descriptor_is_generic(scanner, home, project_factory):
    root = home / "Projects"
    project_factory(root, "broken", descriptor="stack: [unclosed\n")

    [record] = await scanner.scan([root], max_depth=1)

    assert record.marker is True
    assert record.template == ProjectTemplate.GENERIC


@pytest.mark.asyncio
async def test_unreadable_manifest_is_unknown(scanner, home):
    project = home / "Projects" / "weird"
    project.mkdir()
    (project / "package.json").write_text("{not json", encoding="utf-8")

    [record] = await scanner.scan([home / "Projects"], max_depth=1, include_non_marked=True)

    assert record.template == ProjectTemplate.UNKNOWN


@pytest.mark.asyncio
async def test_descriptor_framework_and_backend(scanner, home, project_factory):
    root = home / "Projects"
    project_factory(root, "web", descriptor=(
        "project:\n"
        "  name: web\n"
        "  created: 2025-01-02\n"
        "stack:\n"
        "  apps:\n"
        "    web:\n"
        "      framework: next.js@15\n"
        "  backend:\n"
        "    primary: convex\n"
    ))

    [record] = await scanner.scan([root], max_depth=1)

    assert record.template == ProjectTemplate.NEXT
    assert record.backend == "convex"


@pytest.mark.asyncio
async def test_find_all_projects_uses_search_roots(scanner, home, project_factory):
    project_factory(home / "Projects" / "group", "nested-app", descriptor="")

    projects = await scanner.find_all_projects()

    assert [p.name for p in projects] == ["nested-app"]


def test_find_project_by_name_order(scanner, home, project_factory):
    """Exact match beats prefix, prefix beats substring"""
    root = home / "Projects"
    records = [
        scanner.build_record(project_factory(root, name, descriptor=""), True)
        for name in ["my-app-old", "app", "app-two"]
    ]

    assert find_project_by_name(records, "APP").name == "app"
    assert find_project_by_name(records, "app-t").name == "app-two"
    assert find_project_by_name(records, "old").name == "my-app-old"
    assert find_project_by_name(records, "zzz") is None


def test_sort_by_recency(scanner, home, project_factory):
    root = home / "Projects"
    older = project_factory(root, "older", descriptor="")
    newer = project_factory(root, "newer", descriptor="")
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))

    records = [scanner.build_record(older, True), scanner.build_record(newer, True)]

    assert [p.name for p in sort_by_recency(records)] == ["newer", "older"]
