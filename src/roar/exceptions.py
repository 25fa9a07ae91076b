"""Exceptions raised by roar."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class RoarError(Exception):
    """Base class for all roar errors."""


class InputError(RoarError):
    """The input is wrong and has to be fixed by the caller."""


class ApplicationParseError(InputError):
    """A rendered manifest stream could not be resolved into applications."""

    def __init__(self, message: str, application: str | None = None):
        self.application = application
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.application is not None:
            return f"application '{self.application}' is invalid: {message}"
        return message


class ConflictingValuesError(ApplicationParseError):
    """A label and a plugin variable disagree on the same setting."""

    def __init__(
        self,
        field: str,
        label_value: str,
        plugin_value: str,
        application: str | None = None,
    ):
        self.field = field
        self.label_value = label_value
        self.plugin_value = plugin_value
        super().__init__(
            f"conflicting values for '{field}': label is '{label_value}', "
            f"plugin.env is '{plugin_value}'",
            application,
        )


class MissingRepositoryError(ApplicationParseError):
    """Neither the rawRepository annotation nor spec.source.repoURL is set."""

    def __init__(self, application: str | None = None):
        super().__init__(
            "both 'rawRepository' annotation and 'spec.source.repoURL' are empty",
            application,
        )


class WorkspaceError(RoarError):
    """The temporary workspace or output directory could not be created."""


class ApplicationRenderError(RoarError):
    """Rendering a single application failed at some stage."""

    stage = "render"

    def __init__(self, message: str, application: str | None = None):
        self.application = application
        super().__init__(message)


class CloneError(ApplicationRenderError):
    stage = "clone"


class TemplateError(ApplicationRenderError):
    stage = "template"


class OutputWriteError(ApplicationRenderError):
    stage = "write"


class RenderFailedError(RoarError):
    """One or more applications failed to render.

    Every failure is kept in ``failures``; the first one is exposed as the
    representative error and chained as ``__cause__``.
    """

    def __init__(
        self,
        failures: list[ApplicationRenderError],
        written: list[Path] | None = None,
    ):
        self.failures = failures
        self.written = written or []
        self.first = failures[0]
        super().__init__(
            f"failed to process {len(failures)} application(s), "
            f"first error: {self.first}"
        )

    @property
    def count(self) -> int:
        return len(self.failures)
