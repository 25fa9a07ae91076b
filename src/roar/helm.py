"""Helm chart rendering."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from subprocess import CompletedProcess

from roar.exceptions import TemplateError

logger = logging.getLogger(__name__)


@dataclass
class TemplateOptions:
    """Arguments for a single ``helm template`` invocation."""

    release_name: str
    chart_path: Path
    values_files: list[Path] = field(default_factory=list)
    set_values: dict[str, str] = field(default_factory=dict)


def build_template_command(options: TemplateOptions) -> list[str]:
    cmd: list[str] = [
        "helm",
        "template",
        options.release_name,
        str(options.chart_path),
    ]

    for vf in options.values_files:
        cmd.extend(["--values", str(vf)])

    for key in sorted(options.set_values):
        cmd.extend(["--set", f"{key}={options.set_values[key]}"])

    return cmd


def helm_template(options: TemplateOptions) -> bytes:
    """Render a chart with ``helm template`` and return the raw manifests."""
    cmd = build_template_command(options)
    logger.debug("Running: %s", " ".join(cmd))

    try:
        result: CompletedProcess[bytes] = subprocess.run(
            cmd, capture_output=True, check=True
        )
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
        raise TemplateError(
            f"helm template failed for release '{options.release_name}': {stderr}"
        ) from e
    except FileNotFoundError as e:
        raise TemplateError("helm command not found. Please install Helm.") from e

    return result.stdout
