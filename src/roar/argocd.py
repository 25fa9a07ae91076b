"""Argo CD Application parsing.

Turns the rendered output of an app-of-apps chart into validated
:class:`~roar.models.ApplicationDescriptor` objects. Identity metadata can come
from several places (labels, annotations, ``spec.source`` and werf plugin
environment variables); this module decides which one wins.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from roar.console import ApplicationLogger
from roar.exceptions import (
    ApplicationParseError,
    ConflictingValuesError,
    MissingRepositoryError,
)
from roar.models import ApplicationDescriptor, EnvVar

APPLICATION_API_VERSION = "argoproj.io/v1alpha1"
APPLICATION_KIND = "Application"

INSTANCE_VAR = "WERF_SET_INSTANCE"
ENV_VAR = "WERF_SET_ENV"
SET_PREFIX = "WERF_SET_"
VALUES_PREFIX = "WERF_VALUES_"

REPOSITORY_ANNOTATION = "rawRepository"
PATH_ANNOTATION = "rawPath"

logger = logging.getLogger(__name__)


NULL_TAG = "tag:yaml.org,2002:null"
MERGE_TAG = "tag:yaml.org,2002:merge"


def _create_plain_scalar_loader() -> type[yaml.SafeLoader]:
    """SafeLoader that keeps plain scalars as written.

    Only ``null`` and ``<<`` merge keys are still resolved implicitly, so
    ``1.10``, ``0123``, ``yes`` and ``2024-01-01`` all load as strings.
    """

    class PlainScalarLoader(yaml.SafeLoader):
        pass

    PlainScalarLoader.yaml_implicit_resolvers = {
        first: [(tag, regexp) for tag, regexp in resolvers if tag in (NULL_TAG, MERGE_TAG)]
        for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }
    return PlainScalarLoader


PlainScalarLoader = _create_plain_scalar_loader()


def _null_as_empty_str(v: Any) -> Any:
    return "" if v is None else v


def _null_as_empty_mapping(v: Any) -> Any:
    return {} if v is None else v


def _null_as_empty_list(v: Any) -> Any:
    return [] if v is None else v


# Nulls decode to empty values, like an omitted key.
ScalarStr = Annotated[str, BeforeValidator(_null_as_empty_str)]
StrMap = Annotated[dict[str, ScalarStr], BeforeValidator(_null_as_empty_mapping)]


class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RawEnvVar(_RawModel):
    name: ScalarStr = ""
    value: ScalarStr = ""


class RawPlugin(_RawModel):
    env: Annotated[list[RawEnvVar], BeforeValidator(_null_as_empty_list)] = Field(
        default_factory=list
    )


class RawSource(_RawModel):
    repo_url: ScalarStr = Field(default="", alias="repoURL")
    target_revision: ScalarStr = Field(default="", alias="targetRevision")
    path: ScalarStr = ""
    plugin: RawPlugin | None = None


class RawSpec(_RawModel):
    source: Annotated[RawSource, BeforeValidator(_null_as_empty_mapping)] = Field(
        default_factory=RawSource
    )


class RawMetadata(_RawModel):
    name: ScalarStr = ""
    labels: StrMap = Field(default_factory=dict)
    annotations: StrMap = Field(default_factory=dict)


class RawApplication(_RawModel):
    """The subset of an Argo CD Application that roar reads."""

    api_version: ScalarStr = Field(default="", alias="apiVersion")
    kind: ScalarStr = ""
    metadata: Annotated[RawMetadata, BeforeValidator(_null_as_empty_mapping)] = Field(
        default_factory=RawMetadata
    )
    spec: Annotated[RawSpec, BeforeValidator(_null_as_empty_mapping)] = Field(
        default_factory=RawSpec
    )


def is_application_document(doc: Any) -> bool:
    """Return True if a parsed YAML document declares an Argo CD Application."""
    return (
        isinstance(doc, dict)
        and doc.get("apiVersion") == APPLICATION_API_VERSION
        and doc.get("kind") == APPLICATION_KIND
    )


def parse_applications(
    data: bytes | str, log: logging.Logger | logging.LoggerAdapter | None = None
) -> list[ApplicationDescriptor]:
    """Resolve every Application document in a multi-document YAML stream.

    Documents of any other kind are skipped. Any malformed document fails the
    whole call, so the result is either complete or an exception is raised.
    """
    log = log or logger

    try:
        docs: list[Any] = list(yaml.load_all(data, Loader=PlainScalarLoader))
    except yaml.YAMLError as e:
        raise ApplicationParseError(f"failed to decode yaml document: {e}") from e

    applications: list[ApplicationDescriptor] = []
    for index, doc in enumerate(docs):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ApplicationParseError(
                f"failed to decode yaml document #{index}: "
                f"expected a mapping, got {type(doc).__name__}"
            )
        if not is_application_document(doc):
            continue
        applications.append(resolve_application(doc, log))

    return applications


def resolve_application(
    doc: dict[str, Any], log: logging.Logger | logging.LoggerAdapter | None = None
) -> ApplicationDescriptor:
    """Resolve a single Application document into a descriptor."""
    log = log or logger

    try:
        raw = RawApplication.model_validate(doc)
    except ValidationError as e:
        raise ApplicationParseError(str(e), _document_name(doc)) from e

    return _descriptor_from_raw(raw, ApplicationLogger(log, raw.metadata.name))


def _document_name(doc: dict[str, Any]) -> str:
    metadata = doc.get("metadata")
    if isinstance(metadata, dict):
        return str(metadata.get("name") or "")
    return ""


def _descriptor_from_raw(
    raw: RawApplication, log: logging.LoggerAdapter
) -> ApplicationDescriptor:
    metadata = raw.metadata
    source = raw.spec.source

    if not metadata.name:
        raise ApplicationParseError("'metadata.name' is empty", metadata.name)

    plugin_vars = source.plugin.env if source.plugin else []

    instance_from_plugin = ""
    env_from_plugin = ""
    remaining: list[EnvVar] = []
    indexed_values: list[tuple[int, str]] = []

    for var in plugin_vars:
        if var.name == INSTANCE_VAR:
            instance_from_plugin = extract_set_value(var.value)
        elif var.name == ENV_VAR:
            env_from_plugin = extract_set_value(var.value)
        elif var.name.startswith(VALUES_PREFIX):
            index = _parse_index(var.name[len(VALUES_PREFIX) :])
            if index is None:
                log.warning("Could not parse index from '%s'. Skipping.", var.name)
                continue
            indexed_values.append((index, var.value))
        else:
            remaining.append(EnvVar(name=var.name, value=var.value))

    # sorted() is stable, equal indexes keep their input order
    values_files = tuple(
        path for _, path in sorted(indexed_values, key=lambda iv: iv[0])
    )

    instance = _resolve_identity(
        metadata.name,
        "instance",
        metadata.labels.get("instance", ""),
        instance_from_plugin,
    )
    env = _resolve_identity(
        metadata.name, "env", metadata.labels.get("env", ""), env_from_plugin
    )

    repo_url = metadata.annotations.get(REPOSITORY_ANNOTATION, "")
    if not repo_url:
        log.warning(
            "missing '%s' annotation. Falling back to spec.source.repoURL='%s'",
            REPOSITORY_ANNOTATION,
            source.repo_url,
        )
        repo_url = source.repo_url
        if not repo_url:
            raise MissingRepositoryError(metadata.name)

    if PATH_ANNOTATION in metadata.annotations:
        path = metadata.annotations[PATH_ANNOTATION]
    else:
        log.warning(
            "missing '%s' annotation. Falling back to spec.source.path='%s'",
            PATH_ANNOTATION,
            source.path,
        )
        path = source.path
        if not path:
            log.warning(
                "both '%s' annotation and 'spec.source.path' are empty. "
                "Falling back to '.'",
                PATH_ANNOTATION,
            )
            path = "."

    return ApplicationDescriptor(
        name=metadata.name,
        instance=instance,
        env=env,
        repo_url=repo_url,
        path=path,
        target_revision=source.target_revision,
        plugin_env=tuple(remaining),
        values_files=values_files,
        setters=extract_setters(plugin_vars, log),
    )


def _resolve_identity(
    application: str, setting: str, from_label: str, from_plugin: str
) -> str:
    if from_label and from_plugin and from_label != from_plugin:
        raise ConflictingValuesError(setting, from_label, from_plugin, application)
    return from_label or from_plugin


def _parse_index(suffix: str) -> int | None:
    if not suffix.isdigit() or not suffix.isascii():
        return None
    return int(suffix)


def extract_set_value(value: str) -> str:
    """Return the part of a ``key=value`` string after the first ``=``.

    A value with no ``=`` yields an empty string.
    """
    _, sep, rest = value.partition("=")
    return rest if sep else ""


def extract_setters(
    plugin_vars: list[RawEnvVar] | list[EnvVar],
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> dict[str, str]:
    """Collect ``--set`` overrides from ``WERF_SET_*`` plugin variables."""
    log = log or logger
    setters: dict[str, str] = {}
    for var in plugin_vars:
        if not var.name.startswith(SET_PREFIX):
            continue
        key, sep, value = var.value.partition("=")
        if not sep:
            log.debug("Ignoring '%s': value '%s' has no '='", var.name, var.value)
            continue
        setters[key] = value
    return setters
