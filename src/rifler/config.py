"""Configuration management for Rifler."""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

RG_PATH_ENV_VAR = "RIFLER_RG_PATH"

DEFAULT_EXCLUDE_DIRS = [
    "node_modules",
    ".git",
    "dist",
    "out",
    "__pycache__",
    ".venv",
    "venv",
    ".idea",
    ".vscode",
    "coverage",
    ".nyc_output",
    "build",
    ".next",
    ".nuxt",
    ".cache",
    "tmp",
    "temp",
    ".pytest_cache",
    ".tox",
]

DEFAULT_BINARY_EXTENSIONS = [
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".ico",
    ".pdf",
    ".zip",
    ".tar",
    ".gz",
    ".exe",
    ".dll",
    ".so",
    ".dylib",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".mp3",
    ".mp4",
    ".avi",
    ".mov",
    ".wmv",
    ".flv",
    ".webm",
    ".svg",
    ".lock",
    ".bin",
    ".dat",
    ".db",
    ".sqlite",
    ".sqlite3",
]


class Config(BaseModel):
    """Main configuration for Rifler."""

    max_results: int = Field(
        default=10000, description="Maximum number of matches a search returns"
    )
    smart_excludes_enabled: bool = Field(
        default=True,
        description="Skip conventionally ignored directories (dependency caches, build output, VCS metadata)",
    )
    exclude_dirs: List[str] = Field(
        default=DEFAULT_EXCLUDE_DIRS.copy(),
        description="Directory names skipped when smart excludes are enabled",
    )
    binary_extensions: List[str] = Field(
        default=DEFAULT_BINARY_EXTENSIONS.copy(),
        description="File extensions never read by the fallback walker",
    )
    max_file_size: int = Field(
        default=1048576,
        description="Files larger than this are skipped by the fallback walker",
    )
    fallback_concurrency: int = Field(
        default=100,
        description="Maximum concurrent file/directory operations in the fallback walker",
    )
    per_file_time_budget_ms: int = Field(
        default=2500,
        description="Time budget for reading a single file in the fallback walker",
    )
    use_ripgrep: bool = Field(
        default=True,
        description="Try the external ripgrep binary before the in-process walker",
    )
    rg_path: Optional[str] = Field(
        default=None,
        description=f"Explicit ripgrep binary, tried after the {RG_PATH_ENV_VAR} override",
    )
    app_root: Optional[str] = Field(
        default=None,
        description="Host application install root used to locate a bundled ripgrep",
    )

    @field_validator("max_results", "fallback_concurrency")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("binary_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        """Lower-case extensions and ensure a leading dot."""
        return ["." + ext.lower().lstrip(".") for ext in v if ext.strip(".")]

    @field_validator("rg_path", "app_root", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None


class ConfigManager:
    """Manages configuration loading and saving."""

    DEFAULT_CONFIG_PATH = Path(".rifler/config.json")

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._config: Optional[Config] = None

    @property
    def config(self) -> Config:
        if self._config is None:
            return self.load()
        return self._config

    def load(self) -> Config:
        """Load configuration from file or fall back to defaults."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "r") as f:
                    data = json.load(f)
                self._config = Config(**data)
            except Exception as e:
                raise ValueError(f"Failed to load config from {self.config_path}: {e}")
        else:
            logger.debug(f"No config at {self.config_path}, using defaults")
            self._config = Config()

        return self._config

    def save(self, config: Optional[Config] = None) -> None:
        """Save configuration to file."""
        if config is None:
            config = self._config

        if config is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, "w") as f:
            json.dump(config.model_dump(), f, indent=2)

        self._config = config
