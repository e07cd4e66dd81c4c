"""Configuration management module"""
from pathlib import Path
from typing import Optional, List

from pydantic import model_validator
from pydantic_settings import BaseSettings


DEFAULT_SEARCH_PATHS = [
    "Documents",
    "Documents/Projects",
    "Documents/Local Projects",
    "Projects",
    "projects",
    "dev",
    "Development",
    "Code",
    "code",
    "repos",
    "GitHub",
    "Desktop",
]


class Settings(BaseSettings):
    """DevKitX configuration (environment variables prefixed with DEVKITX_)"""

    # Filesystem locations
    home_dir: Path = Path.home()
    config_dir: Optional[Path] = None  # default: <home>/.devkitx
    backups_dir: Optional[Path] = None  # default: <config_dir>/backups
    log_dir: Optional[Path] = None  # default: <config_dir>/logs
    ralphy_dir: Optional[Path] = None  # default: <home>/.ralphy

    # Project discovery
    search_paths: List[str] = list(DEFAULT_SEARCH_PATHS)
    scan_depth: int = 2
    delete_scan_depth: int = 3

    # Ralphy installer
    ralphy_script_url: str = "https://raw.githubusercontent.com/michaelshimeles/ralphy/main/ralphy.sh"
    download_timeout: float = 30.0
    ralphy_default_max_parallel: int = 3

    # Logging
    log_level: str = "WARNING"
    log_rotation: str = "5 MB"
    log_retention: int = 5

    class Config:
        env_prefix = "DEVKITX_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @model_validator(mode='after')
    def fill_derived_paths(self):
        """Derive unset directories from home_dir/config_dir"""
        if self.config_dir is None:
            self.config_dir = self.home_dir / ".devkitx"
        if self.backups_dir is None:
            self.backups_dir = self.config_dir / "backups"
        if self.log_dir is None:
            self.log_dir = self.config_dir / "logs"
        if self.ralphy_dir is None:
            self.ralphy_dir = self.home_dir / ".ralphy"
        return self

    @property
    def undo_file(self) -> Path:
        return self.config_dir / "last-deleted.json"

    @property
    def model_file(self) -> Path:
        return self.config_dir / "ralphy-model.json"

    @property
    def go_path_file(self) -> Path:
        return self.config_dir / "go-path.txt"

    @property
    def ralphy_script(self) -> Path:
        return self.ralphy_dir / "ralphy.sh"


# Global settings instance
settings = Settings()
