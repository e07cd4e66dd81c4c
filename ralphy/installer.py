"""
Ralphy installer

Downloads ralphy.sh, applies the fixed patch list and installs the result
together with launcher wrappers into the ralphy directory (~/.ralphy).
Nothing is written unless every patch succeeds.
"""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
from loguru import logger

from config.settings import Settings, settings as default_settings
from core.errors import InstallError
from ralphy.patches import PATCHES, Patch, apply_patches


# PowerShell YAML helper, copied into the ralphy directory when present here
BUNDLED_YQ_PS1 = Path(__file__).parent / "assets" / "yq.ps1"

RALPHY_PS1 = """\
# Ralphy PowerShell wrapper: runs ralphy.sh through Git Bash
$bash = "C:\\Program Files\\Git\\bin\\bash.exe"
if (-not (Test-Path $bash)) { $bash = "bash" }
& $bash "$env:USERPROFILE/.ralphy/ralphy.sh" @args
exit $LASTEXITCODE
"""

RALPHY_CMD = '@powershell -ExecutionPolicy Bypass -File "%USERPROFILE%\\.ralphy\\ralphy.ps1" %*'

YQ_CMD = '@powershell -ExecutionPolicy Bypass -File "%USERPROFILE%\\.ralphy\\yq.ps1" %*\n'

YQ_BAT = """\
@echo off
REM yq-compatible wrapper using PowerShell (avoids curl dependency)
powershell.exe -ExecutionPolicy Bypass -File "%~dp0yq.ps1" %*
"""

LAUNCHER_BAT = """\
@echo off
REM Ralphy Launcher - Bypasses Windows SmartScreen
setlocal
set "RALPHY_DIR=%USERPROFILE%\\.ralphy"
powershell.exe -NoProfile -ExecutionPolicy Bypass -WindowStyle Normal -File "%RALPHY_DIR%\\ralphy.ps1" %*
endlocal
exit /b %errorlevel%
"""

LAUNCHER_VBS = "\n".join([
    'Set objShell = CreateObject("Shell.Application")',
    'strScriptDir = Replace(WScript.ScriptFullName, WScript.ScriptName, "")',
    'strCmd = "powershell.exe -NoProfile -ExecutionPolicy Bypass -File """ & strScriptDir & "ralphy.ps1"""',
    'For i = 0 to WScript.Arguments.Count - 1',
    '    strArg = WScript.Arguments(i)',
    '    strArg = Replace(strArg, """", "\\""")',
    '    strCmd = strCmd & " """ & strArg & """"',
    'Next',
    'objShell.ShellExecute "cmd.exe", "/c " & strCmd, "", "open", 1',
    '',
])

POSIX_SHIM = """\
#!/usr/bin/env bash
exec bash "$(dirname "$0")/ralphy.sh" "$@"
"""

WRAPPERS: Dict[str, str] = {
    "ralphy.ps1": RALPHY_PS1,
    "ralphy.cmd": RALPHY_CMD,
    "yq.cmd": YQ_CMD,
    "yq.bat": YQ_BAT,
    "ralphy-launcher.bat": LAUNCHER_BAT,
    "ralphy-launcher.vbs": LAUNCHER_VBS,
    "ralphy": POSIX_SHIM,
}

# Written only when yq.ps1 is available
YQ_WRAPPERS = {"yq.cmd", "yq.bat"}


@dataclass
class InstallResult:
    """Outcome of an install run"""
    script_path: Path
    ralphy_dir: Path
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    wrappers: List[Path] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class RalphyInstaller:
    """Download, patch and install ralphy.sh"""

    def __init__(
        self,
        config: Settings = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        patches: Optional[List[Patch]] = None,
        reporter: Optional[Callable[[str, str], None]] = None,
        bundled_yq: Path = BUNDLED_YQ_PS1,
    ):
        """
        Initialize installer

        Args:
            config: Settings (script URL, timeout, ralphy directory)
            transport: httpx transport override, used by tests
            patches: Patch list override (defaults to PATCHES)
            reporter: Receives (level, message) progress messages
            bundled_yq: Location of the bundled yq.ps1 helper
        """
        self.config = config or default_settings
        self.transport = transport
        self.patches = PATCHES if patches is None else patches
        self.report = reporter or (lambda level, message: None)
        self.bundled_yq = bundled_yq

    @property
    def ralphy_dir(self) -> Path:
        return self.config.ralphy_dir

    @property
    def script_path(self) -> Path:
        return self.config.ralphy_script

    def is_installed(self) -> bool:
        return self.script_path.is_file()

    async def download(self) -> str:
        """
        Fetch the upstream script text

        Raises:
            InstallError: On transport errors or non-2xx responses
        """
        url = self.config.ralphy_script_url
        logger.info(f"Downloading {url}")

        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=self.config.download_timeout,
                follow_redirects=True
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Download failed: {e.response.status_code}")
            raise InstallError(
                f"Failed to download ralphy.sh: HTTP {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Download failed: {e}")
            raise InstallError(
                f"Failed to download ralphy.sh: {e}",
                "Check your network connection and run 'dx ralph install' again",
            ) from e

        return response.text

    async def install(self) -> InstallResult:
        """
        Download, patch and install ralphy.sh plus its wrappers

        Returns:
            InstallResult listing applied and skipped patches

        Raises:
            InstallError: If the download fails
            PatchError: If a patch anchor is missing (nothing is written)
        """
        self.report("info", "Downloading ralphy.sh...")
        script = await self.download()

        self.report("info", "Applying patches...")

        def on_progress(name: str, applied: bool):
            if applied:
                self.report("success", f"Patched: {name}")
            else:
                self.report("info", f"Skipped: {name} (already applied)")

        script, applied, skipped = apply_patches(script, self.patches, on_progress)

        result = InstallResult(
            script_path=self.script_path,
            ralphy_dir=self.ralphy_dir,
            applied=applied,
            skipped=skipped,
        )

        try:
            self.ralphy_dir.mkdir(parents=True, exist_ok=True)
            # newline="\n" keeps LF endings for bash on Windows
            with open(self.script_path, 'w', encoding='utf-8', newline='\n') as f:
                f.write(script)
            self._make_executable(self.script_path)
            self.report("success", f"Installed {self.script_path}")

            has_yq = self._install_yq(result)
            result.wrappers = self.write_wrappers(include_yq=has_yq)
        except OSError as e:
            raise InstallError(f"Failed to write into {self.ralphy_dir}: {e}") from e

        logger.info(f"Ralphy installed: {len(applied)} patch(es) applied, {len(skipped)} skipped")
        return result

    def _install_yq(self, result: InstallResult) -> bool:
        """Copy the bundled yq.ps1; returns whether one is available in the ralphy directory"""
        yq_target = self.ralphy_dir / "yq.ps1"
        if self.bundled_yq.is_file():
            shutil.copyfile(self.bundled_yq, yq_target)
            self.report("success", "Installed yq.ps1 (PowerShell-based YAML parser)")
            return True
        if yq_target.is_file():
            return True

        warning = (
            f"yq.ps1 not bundled ({self.bundled_yq}); skipping yq wrappers. "
            "Install yq separately for YAML task files"
        )
        logger.warning(warning)
        self.report("warning", warning)
        result.warnings.append(warning)
        return False

    def write_wrappers(self, include_yq: bool = True) -> List[Path]:
        """Write launcher wrappers; returns the written paths"""
        written = []
        for filename, content in WRAPPERS.items():
            if filename in YQ_WRAPPERS and not include_yq:
                continue
            target = self.ralphy_dir / filename
            with open(target, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
            if filename == "ralphy":
                self._make_executable(target)
            self.report("success", f"Created {filename}")
            written.append(target)
        return written

    @staticmethod
    def _make_executable(path: Path) -> None:
        if os.name != "nt":
            path.chmod(path.stat().st_mode | 0o111)
