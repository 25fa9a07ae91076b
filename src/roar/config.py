"""Configuration management for roar.

Settings come from command-line flags, with an optional ``.roar.yaml`` file
supplying defaults for everything except the chart path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILE_NAME = ".roar.yaml"

DEFAULT_OUTPUT_DIR = "rendered"
DEFAULT_LOG_LEVEL = "warn"
DEFAULT_MAX_WORKERS = 10
DEFAULT_RELEASE_NAME = "app-of-apps"


@dataclass
class RoarConfig:
    """Settings for a single roar run."""

    chart_path: str = ""
    """Path to the app-of-apps Helm chart."""

    values_files: list[str] = field(default_factory=list)
    """Values files for the app-of-apps chart, applied in order."""

    output_dir: str = DEFAULT_OUTPUT_DIR
    """Directory that receives the rendered manifests."""

    log_level: str = DEFAULT_LOG_LEVEL
    """One of debug, info, warn, error."""

    max_workers: int = DEFAULT_MAX_WORKERS
    """Maximum number of applications rendered at the same time."""

    release_name: str = DEFAULT_RELEASE_NAME
    """Helm release name used when rendering the app-of-apps chart."""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoarConfig:
        """Create config from a dictionary."""
        return cls(
            chart_path=data.get("chart_path", ""),
            values_files=list(data.get("values_files", [])),
            output_dir=data.get("output_dir", DEFAULT_OUTPUT_DIR),
            log_level=data.get("log_level", DEFAULT_LOG_LEVEL),
            max_workers=int(data.get("max_workers", DEFAULT_MAX_WORKERS)),
            release_name=data.get("release_name", DEFAULT_RELEASE_NAME),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "chart_path": self.chart_path,
            "values_files": self.values_files,
            "output_dir": self.output_dir,
            "log_level": self.log_level,
            "max_workers": self.max_workers,
            "release_name": self.release_name,
        }

    def merge(self, **overrides: Any) -> RoarConfig:
        """Return a copy with every override that is not None applied."""
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return RoarConfig.from_dict(data)


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the config file by walking up the directory tree.

    Starts from start_path (or cwd) and walks up looking for .roar.yaml.
    """
    if start_path is None:
        start_path = Path.cwd()

    current: Path = start_path
    while current != current.parent:
        config_path: Path = current / CONFIG_FILE_NAME
        if config_path.exists():
            return config_path
        current = current.parent

    return None


def load_config(config_path: Path | None = None) -> RoarConfig:
    """Load configuration from file or return defaults.

    If config_path is None, searches for .roar.yaml in the directory tree.
    If no config file is found, returns default configuration.
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        return RoarConfig()

    with config_path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return RoarConfig.from_dict(data)
