"""Rendering of an app-of-apps chart and all of its child applications."""

from __future__ import annotations

import logging
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from roar.config import RoarConfig
    from roar.models import ApplicationDescriptor

from roar.argocd import parse_applications
from roar.cache import CloneCache
from roar.config import DEFAULT_MAX_WORKERS
from roar.console import ApplicationLogger
from roar.exceptions import (
    ApplicationRenderError,
    CloneError,
    OutputWriteError,
    RenderFailedError,
    TemplateError,
    WorkspaceError,
)
from roar.helm import TemplateOptions, helm_template
from roar.models import RenderJob
from roar.repository import clone_repository

CHART_DIR_NAME = ".helm"
WORKSPACE_PREFIX = "argo-charts-"

logger = logging.getLogger(__name__)


class RenderOrchestrator:
    """Clones and renders applications on a bounded pool of worker threads.

    Every application is processed to completion; failures are logged where
    they happen and raised together as a single :class:`RenderFailedError`.
    """

    def __init__(
        self,
        workspace: Path,
        output_dir: Path,
        clone_fn: Callable[[str, str, Path], None] = clone_repository,
        template_fn: Callable[[TemplateOptions], bytes] = helm_template,
        max_workers: int = DEFAULT_MAX_WORKERS,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.output_dir = Path(output_dir)
        self.cache = CloneCache(workspace)
        self.clone_fn = clone_fn
        self.template_fn = template_fn
        self.max_workers = max_workers
        self.log = log or logger

    def render_all(self, descriptors: Sequence[ApplicationDescriptor]) -> list[Path]:
        """Render every descriptor and return the written manifest paths."""
        written: list[Path] = []
        failures: list[ApplicationRenderError] = []

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="roar-worker"
        ) as executor:
            futures = [executor.submit(self._run_worker, d) for d in descriptors]

        for future in futures:
            error = future.exception()
            if error is None:
                written.append(future.result())
            else:
                failures.append(error)

        if failures:
            self.log.error("Completed with %d errors.", len(failures))
            raise RenderFailedError(failures, written) from failures[0]

        self.log.info("Rendered %d applications.", len(written))
        return written

    def _run_worker(self, descriptor: ApplicationDescriptor) -> Path:
        log = ApplicationLogger(self.log, descriptor.name)
        try:
            return self.render_application(descriptor, log)
        except ApplicationRenderError as e:
            log.error("%s stage failed: %s", e.stage, e)
            raise
        except Exception as e:
            log.exception("unexpected error")
            raise ApplicationRenderError(
                f"application '{descriptor.name}': {e}", descriptor.name
            ) from e

    def render_application(
        self,
        descriptor: ApplicationDescriptor,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> Path:
        """Clone, render and write a single application."""
        log = log or ApplicationLogger(self.log, descriptor.name)
        log.info("Processing application...")

        set_values = build_set_values(descriptor)
        log.info(
            "Found %d --set values and %d --values files.",
            len(set_values),
            len(descriptor.values_files),
        )

        try:
            clone_path, _ = self.cache.get_or_clone(
                descriptor.repo_url, descriptor.target_revision, self.clone_fn, log
            )
        except CloneError as e:
            raise CloneError(
                f"application '{descriptor.name}': failed to clone repo: {e}",
                descriptor.name,
            ) from e

        job = self.prepare_job(descriptor, clone_path, set_values)

        try:
            rendered = self.template_fn(
                TemplateOptions(
                    release_name=descriptor.name,
                    chart_path=job.chart_path,
                    values_files=job.values_files,
                    set_values=job.set_values,
                )
            )
        except Exception as e:
            raise TemplateError(
                f"application '{descriptor.name}': failed to render chart: {e}",
                descriptor.name,
            ) from e

        try:
            job.output_file.parent.mkdir(parents=True, exist_ok=True)
            job.output_file.write_bytes(rendered)
        except OSError as e:
            raise OutputWriteError(
                f"application '{descriptor.name}': "
                f"failed to write manifest to {job.output_file}: {e}",
                descriptor.name,
            ) from e

        log.info("Successfully rendered and saved manifest to %s", job.output_file)
        return job.output_file

    def prepare_job(
        self,
        descriptor: ApplicationDescriptor,
        clone_path: Path,
        set_values: dict[str, str],
    ) -> RenderJob:
        service_path = clone_path / _under_root(descriptor.path)
        return RenderJob(
            descriptor=descriptor,
            clone_path=clone_path,
            chart_path=service_path / CHART_DIR_NAME,
            values_files=[service_path / _under_root(vf) for vf in descriptor.values_files],
            set_values=set_values,
            output_file=output_dir_for(self.output_dir, descriptor)
            / f"{descriptor.name}.yaml",
        )


def build_set_values(descriptor: ApplicationDescriptor) -> dict[str, str]:
    """Merge setters with the resolved instance and env.

    ``global.instance`` and ``global.env`` overwrite setters of the same name.
    """
    set_values = dict(descriptor.setters)
    if descriptor.instance:
        set_values["global.instance"] = descriptor.instance
    if descriptor.env:
        set_values["global.env"] = descriptor.env
    return set_values


def _under_root(part: str) -> str:
    """Drop leading separators so joining never replaces the root."""
    return part.lstrip("/")


def output_dir_for(root: Path, descriptor: ApplicationDescriptor) -> Path:
    """``root``, then ``env``, then ``instance``, skipping empty levels."""
    output_dir = Path(root)
    if descriptor.env:
        output_dir = output_dir / _under_root(descriptor.env)
    if descriptor.instance:
        output_dir = output_dir / _under_root(descriptor.instance)
    return output_dir


def render_app_of_apps(
    config: RoarConfig,
    template_fn: Callable[[TemplateOptions], bytes] = helm_template,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> list[ApplicationDescriptor]:
    """Render the root chart and resolve the Applications it produces."""
    log = log or logger

    log.info("Rendering the main '%s' chart...", config.release_name)
    try:
        manifests = template_fn(
            TemplateOptions(
                release_name=config.release_name,
                chart_path=Path(config.chart_path),
                values_files=[Path(vf) for vf in config.values_files],
            )
        )
    except TemplateError as e:
        raise TemplateError(f"failed to render app-of-apps chart: {e}") from e

    log.info("Parsing for Argo CD applications...")
    applications = parse_applications(manifests, log)
    log.info("Found %d applications to process.", len(applications))
    return applications


def run(
    config: RoarConfig,
    clone_fn: Callable[[str, str, Path], None] = clone_repository,
    template_fn: Callable[[TemplateOptions], bytes] = helm_template,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> list[Path]:
    """Render the app-of-apps chart and every child application.

    Clones live in a temporary workspace that is removed when the run ends,
    whether it succeeded or not.
    """
    log = log or logger

    try:
        workspace = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX))
    except OSError as e:
        raise WorkspaceError(f"failed to create temp directory: {e}") from e

    try:
        log.info("Using temporary directory for clones: %s", workspace)

        output_dir = Path(config.output_dir)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(
                f"failed to create output directory {output_dir}: {e}"
            ) from e

        applications = render_app_of_apps(config, template_fn, log)

        orchestrator = RenderOrchestrator(
            workspace=workspace,
            output_dir=output_dir,
            clone_fn=clone_fn,
            template_fn=template_fn,
            max_workers=config.max_workers,
            log=log,
        )
        return orchestrator.render_all(applications)
    finally:
        shutil.rmtree(workspace, ignore_errors=True)
