"""Git repository utilities."""

from __future__ import annotations

import logging
import re
import subprocess
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from pathlib import Path

from roar.exceptions import CloneError

logger = logging.getLogger(__name__)

SCP_LIKE_URL = re.compile(r"^[^/@:\s]+@[^/:\s]+:")


def normalize_repo_url(repo_url: str) -> str:
    """Convert an HTTP(S) repository URL into its SSH clone address.

    ``https://host/org/repo`` becomes ``git@host:org/repo``. SSH-style
    ``user@host:path`` addresses, other schemes, local paths and anything that
    cannot be parsed are returned unchanged.
    """
    if SCP_LIKE_URL.match(repo_url):
        return repo_url

    try:
        parsed = urlsplit(repo_url)
    except ValueError:
        return repo_url

    if parsed.scheme not in ("http", "https"):
        return repo_url

    host = parsed.netloc.rpartition("@")[2]
    if not host:
        return repo_url

    return f"git@{host}:{parsed.path.lstrip('/')}"


def cache_key(repo_url: str, revision: str) -> str:
    """Key identifying one clone of ``repo_url`` at ``revision``."""
    return f"{normalize_repo_url(repo_url)}@{revision}"


def clone_repository(repo_address: str, revision: str, destination: Path) -> None:
    """Shallow-clone a single branch of a repository into ``destination``."""
    cmd: list[str] = [
        "git",
        "clone",
        "--depth",
        "1",
        "--single-branch",
        "--branch",
        revision,
        repo_address,
        str(destination),
    ]

    logger.info("Cloning %s (revision %s) into %s", repo_address, revision, destination)
    try:
        subprocess.run(cmd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        raise CloneError(
            f"git clone failed for {repo_address} (revision {revision}): "
            f"{(e.stderr or '').strip()}"
        ) from e
    except FileNotFoundError as e:
        raise CloneError("git command not found. Please install Git.") from e

    logger.info("Successfully cloned %s@%s", repo_address, revision)
