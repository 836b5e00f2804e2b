from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from settings import Settings
from utils.fingerprint_cache import FingerprintCache, MemoryFingerprintStore


@pytest.fixture
def settings() -> Settings:
    """Default settings with a small pool so tests exercise the threaded path."""
    return Settings(workers=2)


@pytest.fixture
def memory_store():
    with MemoryFingerprintStore() as store:
        yield store


@pytest.fixture
def cache(memory_store, settings) -> FingerprintCache:
    return FingerprintCache(memory_store, settings)


@pytest.fixture
def make_photo():
    """Factory for photo-like RGB images with seeded, smooth random structure.

    Channel values stay in 20..200 so the whole image counts as foreground
    against white paper and never as white margin.
    """
    def _make(seed: int, size: tuple[int, int] = (400, 300)) -> Image.Image:
        rng = np.random.default_rng(seed)
        coarse = rng.integers(20, 200, size=(6, 8, 3), dtype=np.uint8)
        return Image.fromarray(coarse).resize(size, Image.Resampling.BILINEAR)

    return _make


@pytest.fixture
def image_dirs(tmp_path: Path) -> tuple[Path, Path]:
    """Empty (query_dir, candidate_dir) pair."""
    queries = tmp_path / "thumbnails"
    candidates = tmp_path / "fullsize"
    queries.mkdir()
    candidates.mkdir()
    return queries, candidates
