"""Persistent key → fingerprint cache.

Fingerprinting a large scan dominates the runtime of a match, so every
fingerprint is kept across runs. An entry is keyed by the resolved source
path plus the fingerprint variant (hash size, resolution, cleanup) and
carries the file signature it was computed from; a signature mismatch means
the file changed and the entry is recomputed and overwritten.

Stores:
  JsonFingerprintStore    one JSON document per key under a cache directory
  MemoryFingerprintStore  dict-backed, for tests

Both must be opened before use (or used as context managers). Store failures
raise FingerprintCacheError, which callers treat as fatal.
"""
import hashlib
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Protocol

from PIL import Image
from pydantic import ValidationError

from models.fingerprint import CacheEntry, FileSignature, Fingerprint
from settings import Settings
from utils.fingerprint import fingerprint, remove_borders
from utils.image_io import open_image

logger = logging.getLogger(__name__)

Fingerprinter = Callable[[Image.Image, Settings], Fingerprint]


class FingerprintCacheError(RuntimeError):
    """The cache store cannot be read or written."""


class FingerprintStore(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...

    def get(self, key: str) -> CacheEntry | None: ...

    def put(self, entry: CacheEntry) -> None: ...


class _StoreLifecycle:
    _is_open = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> None:
        self._is_open = True

    def close(self) -> None:
        self._is_open = False

    def _require_open(self) -> None:
        if not self._is_open:
            raise FingerprintCacheError(f"{type(self).__name__} is not open")


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class MemoryFingerprintStore(_StoreLifecycle):
    """Entries survive close()/open() on the same instance, like a file would."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        self._require_open()
        with self._lock:
            return self._entries.get(key)

    def put(self, entry: CacheEntry) -> None:
        self._require_open()
        with self._lock:
            self._entries[entry.key] = entry

    def __len__(self) -> int:
        return len(self._entries)


class JsonFingerprintStore(_StoreLifecycle):
    """Directory of `<key[:2]>/<key>.json` documents.

    Writes go to a temporary file in the target directory and are moved into
    place with os.replace, so readers never observe a partial entry and
    writers for distinct keys never touch the same file.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def open(self) -> None:
        if self.directory.exists() and not self.directory.is_dir():
            raise FingerprintCacheError(f"Cache path is not a directory: {self.directory}")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FingerprintCacheError(f"Cannot create cache directory {self.directory}: {exc}") from exc
        if not os.access(self.directory, os.R_OK | os.W_OK | os.X_OK):
            raise FingerprintCacheError(f"Cache directory is not readable and writable: {self.directory}")
        super().open()
        logger.debug("Opened fingerprint cache at %s", self.directory)

    def get(self, key: str) -> CacheEntry | None:
        self._require_open()
        path = self._entry_path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise FingerprintCacheError(f"Cannot read cache entry {path}: {exc}") from exc
        try:
            return CacheEntry.model_validate_json(text)
        except ValidationError as exc:
            raise FingerprintCacheError(f"Corrupt cache entry {path}: {exc}") from exc

    def put(self, entry: CacheEntry) -> None:
        self._require_open()
        path = self._entry_path(entry.key)
        try:
            path.parent.mkdir(exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(entry.model_dump_json(indent=2))
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise FingerprintCacheError(f"Cannot write cache entry {path}: {exc}") from exc

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*/*.json"))

    def _entry_path(self, key: str) -> Path:
        return self.directory / key[:2] / f"{key}.json"


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class FingerprintCache:
    """Look up or compute fingerprints through a store.

    Safe to share between worker threads. Each key has its own lock, so two
    requests for the same missing entry compute it once while distinct keys
    proceed in parallel. `computations` counts actual fingerprint runs.
    """

    def __init__(
        self,
        store: FingerprintStore,
        settings: Settings,
        fingerprinter: Fingerprinter = fingerprint,
    ) -> None:
        self._store = store
        self._settings = settings
        self._fingerprinter = fingerprinter
        self._key_locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self.computations = 0

    def get_or_compute(self, path: Path, cleanup: bool = False) -> Fingerprint:
        """Fingerprint for the image at `path`.

        `cleanup` strips white scan borders first (see remove_borders) and is
        cached under a separate key. Raises OSError for unreadable images and
        FingerprintCacheError for store failures.
        """
        resolved = Path(path).resolve()
        variant = self._settings.query_variant if cleanup else self._settings.fingerprint_variant
        key = cache_key(resolved, variant)

        with self._lock_for(key):
            signature = FileSignature.of(resolved)
            entry = self._store.get(key)
            if entry is not None and entry.signature == signature:
                logger.debug("Cache hit for %s (%s)", resolved.name, key[:12])
                return entry.fingerprint
            if entry is not None:
                logger.debug("Stale cache entry for %s, recomputing", resolved.name)

            logger.info("Hashing: %s", resolved.name)
            value = self._compute(resolved, cleanup)
            self._store.put(CacheEntry(
                key=key,
                path=resolved,
                variant=variant,
                signature=signature,
                fingerprint=value,
            ))
            return value

    def _compute(self, path: Path, cleanup: bool) -> Fingerprint:
        image = open_image(path)
        if cleanup:
            image = remove_borders(image, self._settings.white_threshold)
        value = self._fingerprinter(image, self._settings)
        with self._guard:
            self.computations += 1
        return value

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._key_locks.setdefault(key, threading.Lock())


def cache_key(path: Path, variant: str) -> str:
    return hashlib.sha256(f"{variant}\0{path}".encode("utf-8")).hexdigest()
