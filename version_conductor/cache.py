"""Two-tier module cache: in-process map plus an optional directory of files.

Durable entries are stored as ``<hash>.json`` (the raw bytes) beside
``<hash>.meta`` (``{"expiresAt": "<iso-8601>"}``). Keys are hashed so
arbitrary strings map to fixed-length file names.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

from version_conductor.ecosystems import Ecosystem
from version_conductor.errors import CacheWriteFailure
from version_conductor.models import Portfolio

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 3600.0
DATA_SUFFIX = ".json"
META_SUFFIX = ".meta"


class ReadWriteLock:
    """Many concurrent readers or one exclusive writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class _Entry:
    data: bytes
    expires_at: float


@dataclass
class CacheStats:
    memory_entries: int = 0
    file_entries: int = 0
    total_size_kb: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "memoryEntries": self.memory_entries,
            "fileEntries": self.file_entries,
            "totalSizeKB": self.total_size_kb,
        }


def hash_key(key: str) -> str:
    """First 16 bytes of SHA-256, hex encoded (32 characters)."""
    return hashlib.sha256(key.encode("utf-8")).digest()[:16].hex()


class ModuleCache:
    """Key/value cache with per-entry expiry.

    Args:
        directory: Durable tier location. ``None`` keeps the cache in memory.
        ttl: Seconds an entry stays valid after it is written.
        memory_only: Ignore ``directory`` and skip the durable tier.
        clock: Source of the current time in epoch seconds.
    """

    def __init__(
        self,
        directory: str | Path | None = None,
        ttl: float = DEFAULT_TTL_SECONDS,
        memory_only: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl if ttl > 0 else DEFAULT_TTL_SECONDS
        self._clock = clock
        self._memory: dict[str, _Entry] = {}
        self._lock = ReadWriteLock()
        self.directory: Path | None = None
        if directory is not None and not memory_only:
            self.directory = Path(directory).expanduser()
            self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)

    @property
    def durable(self) -> bool:
        return self.directory is not None

    # ── Public API ───────────────────────────────────────────

    def get(self, key: str) -> bytes | None:
        """Return cached bytes, or None on miss or expiry."""
        digest = hash_key(key)
        now = self._clock()

        with self._lock.read():
            entry = self._memory.get(digest)
        if entry is not None and now < entry.expires_at:
            return entry.data

        if self.directory is None:
            return None

        with self._lock.write():
            loaded = self._read_file(digest, now)
            if loaded is None:
                self._memory.pop(digest, None)
                return None
            self._memory[digest] = loaded
        return loaded.data

    def set(self, key: str, data: bytes, strict: bool = False) -> None:
        """Store ``data`` under ``key``.

        A durable-tier write error is logged and ignored unless ``strict``,
        in which case ``CacheWriteFailure`` is raised. The in-process entry is
        kept either way.
        """
        digest = hash_key(key)
        entry = _Entry(data=bytes(data), expires_at=self._clock() + self.ttl)

        with self._lock.write():
            self._memory[digest] = entry
            if self.directory is None:
                return
            try:
                self._write_file(digest, entry)
            except OSError as e:
                if strict:
                    raise CacheWriteFailure(f"failed to persist cache entry {digest}: {e}") from e
                logger.warning("cache write failed for %s: %s", digest, e)

    def delete(self, key: str) -> None:
        digest = hash_key(key)
        with self._lock.write():
            self._memory.pop(digest, None)
            if self.directory is not None:
                self._remove_files(digest)

    def clear(self) -> None:
        with self._lock.write():
            self._memory.clear()
            if self.directory is None:
                return
            for path in self.directory.iterdir():
                if path.suffix in (DATA_SUFFIX, META_SUFFIX):
                    path.unlink(missing_ok=True)

    def prune(self) -> int:
        """Remove every expired entry from both tiers; return how many went.

        An entry present in both tiers counts once.
        """
        now = self._clock()
        removed: set[str] = set()

        with self._lock.write():
            for digest, entry in list(self._memory.items()):
                if now >= entry.expires_at:
                    del self._memory[digest]
                    removed.add(digest)

            if self.directory is not None:
                for meta_path in sorted(self.directory.glob(f"*{META_SUFFIX}")):
                    digest = meta_path.stem
                    expires_at = self._read_expiry(meta_path)
                    if expires_at is None or now >= expires_at:
                        self._remove_files(digest)
                        removed.add(digest)

        if removed:
            logger.info("pruned %d expired cache entries", len(removed))
        return len(removed)

    def stats(self) -> CacheStats:
        with self._lock.read():
            result = CacheStats(memory_entries=len(self._memory))
            if self.directory is None:
                return result
            total = 0
            for path in self.directory.glob(f"*{DATA_SUFFIX}"):
                result.file_entries += 1
                try:
                    total += path.stat().st_size
                except OSError:
                    continue
        result.total_size_kb = total // 1024
        return result

    # ── Durable tier ─────────────────────────────────────────

    def _paths(self, digest: str) -> tuple[Path, Path]:
        assert self.directory is not None
        return (
            self.directory / f"{digest}{DATA_SUFFIX}",
            self.directory / f"{digest}{META_SUFFIX}",
        )

    def _read_file(self, digest: str, now: float) -> _Entry | None:
        data_path, meta_path = self._paths(digest)
        if not meta_path.exists():
            return None
        expires_at = self._read_expiry(meta_path)
        if expires_at is None or now >= expires_at:
            self._remove_files(digest)
            return None
        try:
            return _Entry(data=data_path.read_bytes(), expires_at=expires_at)
        except FileNotFoundError:
            self._remove_files(digest)
            return None
        except OSError:
            return None

    def _write_file(self, digest: str, entry: _Entry) -> None:
        # Data first: a .meta file always has its data file beside it.
        data_path, meta_path = self._paths(digest)
        expires = datetime.fromtimestamp(entry.expires_at, tz=timezone.utc).isoformat()
        try:
            data_path.write_bytes(entry.data)
            meta_path.write_text(json.dumps({"expiresAt": expires}), encoding="utf-8")
        except OSError:
            self._remove_files(digest)
            raise

    @staticmethod
    def _read_expiry(meta_path: Path) -> float | None:
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            return datetime.fromisoformat(meta["expiresAt"]).timestamp()
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def _remove_files(self, digest: str) -> None:
        for path in self._paths(digest):
            path.unlink(missing_ok=True)


# ── Helpers ──────────────────────────────────────────────────


def fetch_with_cache(
    cache: ModuleCache | None,
    key: str,
    compute: Callable[[], T],
    *,
    dumps: Callable[[T], str] = json.dumps,
    loads: Callable[[str], T] = json.loads,
) -> T:
    """Return the cached value for ``key`` or compute, store and return it.

    A cached value that fails to deserialize is treated as a miss.
    """
    if cache is not None:
        raw = cache.get(key)
        if raw is not None:
            try:
                return loads(raw.decode("utf-8"))
            except (ValueError, UnicodeDecodeError):
                logger.debug("discarding undecodable cache entry for %s", key)

    result = compute()

    if cache is not None:
        try:
            encoded = dumps(result)
        except (TypeError, ValueError) as e:
            logger.debug("result for %s is not serializable: %s", key, e)
        else:
            cache.set(key, encoded.encode("utf-8"))
    return result


def manifest_cache_key(ecosystem: Ecosystem, account: str, repository: str, branch: str) -> str:
    return f"manifest:{ecosystem.value}:{account}/{repository}:{branch}"


def graph_cache_key(portfolio: Portfolio) -> str:
    ecosystems = ",".join(sorted(e.value for e in portfolio.ecosystems))
    return f"graph:{portfolio.name}:{','.join(portfolio.accounts)}:{ecosystems}"


class RepoListCache:
    """Cached repository listings, one entry per account."""

    def __init__(self, cache: ModuleCache):
        self.cache = cache

    @staticmethod
    def _key(account: str) -> str:
        return f"repos:{account}"

    def get(self, account: str) -> list[dict[str, Any]] | None:
        raw = self.cache.get(self._key(account))
        if raw is None:
            return None
        try:
            repos = json.loads(raw.decode("utf-8"))
        except (ValueError, UnicodeDecodeError):
            return None
        return repos if isinstance(repos, list) else None

    def set(self, account: str, repos: list[dict[str, Any]]) -> None:
        self.cache.set(self._key(account), json.dumps(repos).encode("utf-8"))
