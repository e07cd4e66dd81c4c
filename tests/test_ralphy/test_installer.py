"""
Tests for the ralphy installer
"""
from pathlib import Path

import httpx
import pytest

from core.errors import InstallError, PatchError
from ralphy.installer import RalphyInstaller, WRAPPERS, YQ_WRAPPERS
from ralphy.patches import PATCHES


UPSTREAM = (Path(__file__).parent / "data" / "ralphy_upstream.sh").read_text(encoding="utf-8")


def transport_returning(status_code: int, text: str, requests: list = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, text=text)
    return httpx.MockTransport(handler)


@pytest.fixture
def make_installer(config, tmp_path):
    def factory(transport, bundled_yq=None):
        return RalphyInstaller(
            config,
            transport=transport,
            bundled_yq=bundled_yq or tmp_path / "no-such-yq.ps1",
        )
    return factory


@pytest.mark.asyncio
async def test_install_writes_patched_script_and_wrappers(make_installer, config):
    requests = []
    installer = make_installer(transport_returning(200, UPSTREAM, requests))

    result = await installer.install()

    assert str(requests[0].url) == config.ralphy_script_url
    assert result.script_path == config.ralphy_dir / "ralphy.sh"
    assert result.applied == [p.name for p in PATCHES]

    script = result.script_path.read_text(encoding="utf-8")
    assert 'OPENCODE_MODEL="${2:-}"' in script
    assert "\r\n" not in script

    for filename in WRAPPERS:
        assert (config.ralphy_dir / filename).exists() == (filename not in YQ_WRAPPERS)

    cmd = (config.ralphy_dir / "ralphy.cmd").read_text(encoding="utf-8")
    assert cmd == '@powershell -ExecutionPolicy Bypass -File "%USERPROFILE%\\.ralphy\\ralphy.ps1" %*'


@pytest.mark.asyncio
async def test_install_is_repeatable(make_installer, config):
    """A second install over an already patched upstream skips every patch"""
    first = await make_installer(transport_returning(200, UPSTREAM)).install()
    patched = first.script_path.read_text(encoding="utf-8")

    second = await make_installer(transport_returning(200, patched)).install()

    assert second.applied == []
    assert second.skipped == [p.name for p in PATCHES]
    assert second.script_path.read_text(encoding="utf-8") == patched


@pytest.mark.asyncio
async def test_changed_upstream_writes_nothing(make_installer, config):
    """Fail closed: a missing anchor leaves the install directory untouched"""
    changed = UPSTREAM.replace("set -euo pipefail", "set -eu")
    installer = make_installer(transport_returning(200, changed))

    with pytest.raises(PatchError) as exc_info:
        await installer.install()

    assert exc_info.value.patch_name == "MSYS2 compatibility"
    assert not config.ralphy_dir.exists()


@pytest.mark.asyncio
async def test_changed_upstream_keeps_previous_install(make_installer, config):
    await make_installer(transport_returning(200, UPSTREAM)).install()
    before = (config.ralphy_dir / "ralphy.sh").read_text(encoding="utf-8")

    changed = UPSTREAM.replace("  --qwen              Use Qwen-Code", "  --qwen  Qwen")
    with pytest.raises(PatchError):
        await make_installer(transport_returning(200, changed)).install()

    assert (config.ralphy_dir / "ralphy.sh").read_text(encoding="utf-8") == before


@pytest.mark.asyncio
async def test_http_error_raises_install_error(make_installer, config):
    installer = make_installer(transport_returning(404, "Not Found"))

    with pytest.raises(InstallError) as exc_info:
        await installer.install()

    assert "404" in str(exc_info.value)
    assert not isinstance(exc_info.value, PatchError)
    assert not config.ralphy_dir.exists()


@pytest.mark.asyncio
async def test_transport_error_raises_install_error(make_installer, config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    installer = make_installer(httpx.MockTransport(handler))

    with pytest.raises(InstallError):
        await installer.install()

    assert not config.ralphy_dir.exists()


@pytest.mark.asyncio
async def test_missing_bundled_yq_is_a_warning(make_installer, config):
    """Without yq.ps1 the yq wrappers are not written"""
    result = await make_installer(transport_returning(200, UPSTREAM)).install()

    assert any("yq.ps1" in warning for warning in result.warnings)
    assert not (config.ralphy_dir / "yq.ps1").exists()
    for filename in YQ_WRAPPERS:
        assert not (config.ralphy_dir / filename).exists()
        assert config.ralphy_dir / filename not in result.wrappers


@pytest.mark.asyncio
async def test_bundled_yq_is_copied(make_installer, config, tmp_path):
    bundled = tmp_path / "yq.ps1"
    bundled.write_text("# yq", encoding="utf-8")

    result = await make_installer(transport_returning(200, UPSTREAM), bundled_yq=bundled).install()

    assert (config.ralphy_dir / "yq.ps1").read_text(encoding="utf-8") == "# yq"
    assert result.warnings == []
    for filename in YQ_WRAPPERS:
        assert (config.ralphy_dir / filename).exists()


def test_is_installed(make_installer, config):
    installer = make_installer(transport_returning(200, UPSTREAM))
    assert installer.is_installed() is False

    config.ralphy_dir.mkdir(parents=True)
    (config.ralphy_dir / "ralphy.sh").write_text("#!/bin/bash\n", encoding="utf-8")
    assert installer.is_installed() is True
