"""Shared cache of repository clones.

Several applications usually live in the same repository and branch. The
cache makes sure each ``repository@revision`` pair is cloned once per run, even
when many workers ask for it at the same time: the first caller registers a
future and performs the clone, everybody else waits on that future.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

from roar.exceptions import CloneError
from roar.repository import cache_key, normalize_repo_url

logger = logging.getLogger(__name__)


class CloneCache:
    """Thread-safe map of ``normalized-repo@revision`` to a local clone path.

    Entries are never evicted. A failed clone stays failed for the lifetime of
    the cache, so callers sharing the key all see the same ``CloneError``.
    """

    def __init__(self, workspace: Path):
        self.workspace = Path(workspace)
        self._lock = threading.Lock()
        self._entries: dict[str, Future[Path]] = {}
        self._clone_count = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    @property
    def clone_count(self) -> int:
        """Number of distinct clones started so far."""
        with self._lock:
            return self._clone_count

    def get_or_clone(
        self,
        repo_url: str,
        revision: str,
        clone_fn: Callable[[str, str, Path], None],
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> tuple[Path, bool]:
        """Return ``(path, cached)`` for a clone of ``repo_url`` at ``revision``.

        ``cached`` is False only for the caller that actually ran ``clone_fn``.
        """
        log = log or logger
        key = cache_key(repo_url, revision)

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = Future()
                self._entries[key] = entry
                self._clone_count += 1
                path = self.workspace / f"clone-{self._clone_count}"
                owner = True
            else:
                owner = False

        if not owner:
            if not entry.done():
                log.info("Waiting for in-flight clone of %s", key)
            path = entry.result()
            log.info("Using cached repository from path: %s", path)
            return path, True

        log.info("Cloning %s to %s", key, path)
        try:
            clone_fn(normalize_repo_url(repo_url), revision, path)
        except CloneError as e:
            entry.set_exception(e)
            raise
        except Exception as e:
            error = CloneError(f"failed to clone {key}: {e}")
            error.__cause__ = e
            entry.set_exception(error)
            raise error from e
        except BaseException as e:
            # waiters must not block on an entry that will never resolve
            entry.set_exception(e)
            raise

        entry.set_result(path)
        return path, False
