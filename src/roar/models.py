"""Domain models for roar."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path


@dataclass(frozen=True)
class EnvVar:
    """A name/value pair from ``spec.source.plugin.env``."""

    name: str
    value: str


@dataclass(frozen=True)
class ApplicationDescriptor:
    """Resolved Argo CD Application, ready to be cloned and rendered."""

    name: str
    repo_url: str
    target_revision: str
    path: str = "."
    instance: str = ""
    env: str = ""
    plugin_env: tuple[EnvVar, ...] = ()
    """Plugin variables not consumed as instance, env or values files."""
    values_files: tuple[str, ...] = ()
    """Values files relative to ``path``, in ascending index order."""
    setters: Mapping[str, str] = field(default_factory=dict, hash=False)
    """``--set`` overrides taken from ``WERF_SET_*`` variables, read-only."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "setters", MappingProxyType(dict(self.setters)))

    def __repr__(self) -> str:
        return (
            f"ApplicationDescriptor(name={self.name}, "
            f"repo={self.repo_url}@{self.target_revision}, path={self.path})"
        )


@dataclass
class RenderJob:
    """Everything a worker needs to render one application."""

    descriptor: ApplicationDescriptor
    clone_path: Path
    chart_path: Path
    values_files: list[Path]
    set_values: dict[str, str]
    output_file: Path
