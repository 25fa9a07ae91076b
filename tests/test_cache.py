from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from roar.cache import CloneCache
from roar.exceptions import CloneError


class RecordingCloner:
    """Fake clone function that records calls and creates the directory."""

    def __init__(self, delay: float = 0.0, fail_for: set[str] | None = None):
        self.delay = delay
        self.fail_for = fail_for or set()
        self.calls: list[tuple[str, str, Path]] = []
        self._lock = threading.Lock()

    def __call__(self, repo_address: str, revision: str, destination: Path) -> None:
        with self._lock:
            self.calls.append((repo_address, revision, destination))
        time.sleep(self.delay)
        if revision in self.fail_for:
            raise CloneError(f"cannot clone {revision}")
        destination.mkdir(parents=True)


class TestCloneCache:
    def test_first_lookup_clones(self, tmp_path: Path):
        cache = CloneCache(tmp_path)
        cloner = RecordingCloner()

        path, cached = cache.get_or_clone("https://github.com/org/repo", "main", cloner)

        assert path == tmp_path / "clone-1"
        assert cached is False
        assert cloner.calls == [("git@github.com:org/repo", "main", tmp_path / "clone-1")]
        assert "git@github.com:org/repo@main" in cache
        assert cache.clone_count == 1

    def test_second_lookup_hits_cache(self, tmp_path: Path):
        cache = CloneCache(tmp_path)
        cloner = RecordingCloner()

        first, _ = cache.get_or_clone("https://github.com/org/repo", "main", cloner)
        second, cached = cache.get_or_clone("git@github.com:org/repo", "main", cloner)

        assert second == first
        assert cached is True
        assert len(cloner.calls) == 1
        assert len(cache) == 1

    def test_different_revision_clones_again(self, tmp_path: Path):
        cache = CloneCache(tmp_path)
        cloner = RecordingCloner()

        first, _ = cache.get_or_clone("https://github.com/org/repo", "main", cloner)
        second, cached = cache.get_or_clone("https://github.com/org/repo", "dev", cloner)

        assert cached is False
        assert first == tmp_path / "clone-1"
        assert second == tmp_path / "clone-2"
        assert cache.clone_count == 2

    def test_concurrent_lookups_clone_once(self, tmp_path: Path):
        cache = CloneCache(tmp_path)
        cloner = RecordingCloner(delay=0.2)
        workers = 8
        barrier = threading.Barrier(workers)

        def lookup() -> tuple[Path, bool]:
            barrier.wait()
            return cache.get_or_clone("https://github.com/org/repo", "main", cloner)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(lambda _: lookup(), range(workers)))

        assert len(cloner.calls) == 1
        assert {path for path, _ in results} == {tmp_path / "clone-1"}
        assert sum(1 for _, cached in results if not cached) == 1

    def test_failed_clone_is_not_retried(self, tmp_path: Path):
        cache = CloneCache(tmp_path)
        cloner = RecordingCloner(fail_for={"broken"})

        with pytest.raises(CloneError, match="cannot clone broken"):
            cache.get_or_clone("git@github.com:org/repo", "broken", cloner)
        with pytest.raises(CloneError, match="cannot clone broken"):
            cache.get_or_clone("git@github.com:org/repo", "broken", cloner)

        assert len(cloner.calls) == 1

    def test_unexpected_errors_become_clone_errors(self, tmp_path: Path):
        cache = CloneCache(tmp_path)

        def exploding_clone(repo_address: str, revision: str, destination: Path) -> None:
            raise RuntimeError("disk on fire")

        with pytest.raises(CloneError, match="disk on fire"):
            cache.get_or_clone("git@github.com:org/repo", "main", exploding_clone)

    def test_interrupted_clone_releases_waiters(self, tmp_path: Path):
        class Interrupted(BaseException):
            pass

        cache = CloneCache(tmp_path)

        def interrupted_clone(repo_address: str, revision: str, destination: Path) -> None:
            raise Interrupted()

        with pytest.raises(Interrupted):
            cache.get_or_clone("git@github.com:org/repo", "main", interrupted_clone)

        outcome: list[BaseException] = []

        def second_lookup() -> None:
            try:
                cache.get_or_clone("git@github.com:org/repo", "main", RecordingCloner())
            except BaseException as e:
                outcome.append(e)

        waiter = threading.Thread(target=second_lookup, daemon=True)
        waiter.start()
        waiter.join(timeout=5)

        assert not waiter.is_alive()
        assert len(outcome) == 1
        assert isinstance(outcome[0], Interrupted)
