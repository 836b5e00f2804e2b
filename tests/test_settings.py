from pathlib import Path

import pytest
from pydantic import ValidationError

from settings import ConfigurationError, Settings, require_directory


def test_settings_defaults():
    s = Settings()
    assert s.blur_method == "median"
    assert s.blur_kernel_size == 5
    assert s.threshold_mode == "fixed"
    assert s.threshold_value == 210
    assert s.polarity == "dark"
    assert s.min_patch_area == 5000.0
    assert s.border_policy == "clip"
    assert s.fingerprint_resolution == 255
    assert s.hash_size == 8
    assert s.max_match_distance is None
    assert s.review_distance == 10
    assert s.workers == 4


@pytest.mark.parametrize("field, value", [
    ("blur_kernel_size", 4),
    ("blur_kernel_size", -3),
    ("adaptive_block_size", 0),
    ("adaptive_block_size", 1),
    ("adaptive_block_size", 50),
    ("hash_size", 1),
    ("hash_size", 0),
    ("open_kernel_size", 0),
    ("close_iterations", -1),
    ("threshold_value", 256),
    ("white_threshold", -1),
    ("min_patch_area", -10.0),
    ("min_rectangularity", 1.5),
    ("fingerprint_resolution", 4),
    ("max_match_distance", -1),
    ("workers", 0),
    ("log_level", "LOUD"),
])
def test_nonsensical_values_are_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_smallest_library_sizes_are_accepted():
    s = Settings(hash_size=2, threshold_mode="adaptive", adaptive_block_size=3)
    assert s.hash_size == 2
    assert s.adaptive_block_size == 3


def test_aspect_bounds_must_be_ordered():
    with pytest.raises(ValidationError):
        Settings(min_aspect_ratio=5.0, max_aspect_ratio=2.0)
    with pytest.raises(ValidationError):
        Settings(min_aspect_ratio=0.0)


def test_log_level_is_normalised():
    assert Settings(log_level="debug").log_level == "DEBUG"


def test_settings_env_prefix(monkeypatch):
    monkeypatch.setenv("DECOLLAGE_MIN_PATCH_AREA", "1234")
    monkeypatch.setenv("DECOLLAGE_BORDER_POLICY", "reject")
    s = Settings()
    assert s.min_patch_area == 1234.0
    assert s.border_policy == "reject"


def test_fingerprint_variants():
    s = Settings(hash_size=16, fingerprint_resolution=128, white_threshold=240)
    assert s.fingerprint_variant == "phash16-r128"
    assert s.query_variant == "phash16-r128-clean240"
    assert Settings(cleanup_queries=False).query_variant == Settings().fingerprint_variant


def test_require_directory(tmp_path):
    assert require_directory(tmp_path, "Pages") == tmp_path
    with pytest.raises(ConfigurationError, match="Pages directory not found"):
        require_directory(tmp_path / "missing", "Pages")
    file_path = tmp_path / "file.txt"
    file_path.write_text("x")
    with pytest.raises(ConfigurationError):
        require_directory(file_path, "Pages")
