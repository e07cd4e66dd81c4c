"""
End-to-end tests of the dx command handlers
"""
import json
from pathlib import Path

import httpx
import pytest

import cli
from ralphy.installer import RalphyInstaller


UPSTREAM = (Path(__file__).parent.parent / "test_ralphy" / "data" / "ralphy_upstream.sh").read_text(encoding="utf-8")


@pytest.fixture(autouse=True)
def isolated_cli(monkeypatch, config):
    """Point the CLI at temporary settings and keep logging off disk"""
    monkeypatch.setattr(cli, "settings", config)
    monkeypatch.setattr(cli, "setup_logging", lambda level=None: None)
    return config


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage: dx" in capsys.readouterr().out


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--version"])

    assert exc_info.value.code == 0
    assert "dx" in capsys.readouterr().out


def test_list_json(capsys, home, project_factory):
    root = home / "Projects"
    project_factory(root, "app-a", descriptor="stack:\n  monorepo: true\n")
    project_factory(root, "app-b", manifest={"dependencies": {"next": "14"}})

    assert cli.main(["list", "--path", str(root), "--all", "--json"]) == 0

    data = json.loads(capsys.readouterr().out)
    by_name = {item["name"]: item for item in data}
    assert by_name["app-a"]["template"] == "monorepo"
    assert by_name["app-b"]["template"] == "next.js"
    assert {"lastModified", "hasDependenciesInstalled", "isVersionControlled"} <= set(by_name["app-a"])


def test_list_empty_is_success(capsys, home):
    assert cli.main(["list", "--path", str(home / "Projects")]) == 0
    assert "No projects found" in capsys.readouterr().out


def test_go_path_only(capsys, home, project_factory):
    project = project_factory(home / "Projects", "my-site", descriptor="")

    assert cli.main(["go", "site", "--path-only"]) == 0

    assert capsys.readouterr().out.strip() == str(project.resolve())


def test_go_writes_path_file(config, home, project_factory):
    project = project_factory(home / "Projects", "my-site", descriptor="")

    assert cli.main(["go", "my-site"]) == 0

    assert config.go_path_file.read_text(encoding="utf-8") == str(project.resolve())


def test_go_unknown_project(home, project_factory):
    project_factory(home / "Projects", "my-site", descriptor="")

    assert cli.main(["go", "zzz"]) == 1


def test_delete_and_undo(capsys, config, home, project_factory):
    project = project_factory(home / "Projects", "app-a", descriptor="")
    (project / "index.ts").write_text("export {}\n", encoding="utf-8")

    assert cli.main(["delete", str(project), "--backup", "--yes", "--force"]) == 0
    assert not project.exists()
    assert "dx undo" in capsys.readouterr().out

    assert cli.main(["undo", "--yes"]) == 0
    assert (project / "index.ts").read_text(encoding="utf-8") == "export {}\n"


def test_delete_dry_run(home, project_factory):
    project = project_factory(home / "Projects", "app-a", descriptor="")

    assert cli.main(["delete", str(project), "--dry-run"]) == 0
    assert project.exists()


def test_delete_missing_project_fails(capsys):
    assert cli.main(["delete", "no-such-project", "--yes", "--force"]) == 1
    assert "Project not found" in capsys.readouterr().err


def test_delete_refuses_protected_path(capsys, home):
    (home / "package.json").write_text("{}", encoding="utf-8")

    assert cli.main(["delete", str(home), "--yes", "--force", "--no-backup"]) == 1
    assert home.exists()


def test_undo_without_record_fails(capsys):
    assert cli.main(["undo", "--yes"]) == 1
    assert "No recently deleted project" in capsys.readouterr().err


def test_clean_dry_run(monkeypatch, capsys, tmp_path):
    project = tmp_path / "web"
    (project / "dist").mkdir(parents=True)
    (project / "dist" / "out.js").write_text("x" * 10, encoding="utf-8")
    (project / "package.json").write_text("{}", encoding="utf-8")
    monkeypatch.chdir(project)

    assert cli.main(["clean", "--dry-run"]) == 0
    assert (project / "dist").exists()

    assert cli.main(["clean", "--build", "--yes"]) == 0
    assert not (project / "dist").exists()


def test_ralph_install(monkeypatch, config):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=UPSTREAM))
    monkeypatch.setattr(
        cli, "RalphyInstaller",
        lambda settings, reporter=None: RalphyInstaller(settings, transport=transport, reporter=reporter),
    )

    assert cli.main(["ralph", "install"]) == 0
    assert (config.ralphy_dir / "ralphy.sh").exists()


def test_ralph_install_fails_closed(monkeypatch, capsys, config):
    changed = UPSTREAM.replace("DRY_RUN=false", "DRY_RUN=0")
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=changed))
    monkeypatch.setattr(
        cli, "RalphyInstaller",
        lambda settings, reporter=None: RalphyInstaller(settings, transport=transport, reporter=reporter),
    )

    assert cli.main(["ralph", "install"]) == 1
    assert "PATCH FAILED" in capsys.readouterr().err
    assert not (config.ralphy_dir / "ralphy.sh").exists()


def test_ralph_run_relays_exit_code(monkeypatch, config):
    config.ralphy_dir.mkdir(parents=True)
    (config.ralphy_dir / "ralphy.sh").write_text("exit 4\n", encoding="utf-8")

    class FailingRunner:
        def resolve_bash(self):
            return "/bin/bash"

        async def run(self, script_path, options):
            from core.errors import ProcessError
            raise ProcessError("Ralphy exited with code 4", exit_code=4)

    monkeypatch.setattr(cli, "RalphyRunner", FailingRunner)

    assert cli.main(["ralph", "run"]) == 4


def test_ralph_status(capsys, tmp_path):
    (tmp_path / "PRD.md").write_text("# PRD", encoding="utf-8")

    assert cli.main(["ralph", "status", "--path", str(tmp_path)]) == 0

    out = capsys.readouterr()
    assert "PRD.md" in out.out
    assert "ralphy.sh not installed" in out.err


def test_ctrl_c_is_a_cancel(monkeypatch, capsys):
    def interrupted(args):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "cmd_list", interrupted)

    assert cli.main(["list"]) == 0
    assert "Cancelled by user" in capsys.readouterr().out


def test_unexpected_error_exits_one(monkeypatch, capsys):
    def broken(args):
        raise RuntimeError("boom")

    monkeypatch.setattr(cli, "cmd_list", broken)

    assert cli.main(["list"]) == 1
    assert "boom" in capsys.readouterr().err
