from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """Raised before any processing starts when the run cannot be configured."""


class Settings(BaseSettings):
    # Segmentation
    blur_method: Literal["median", "gaussian"] = "median"
    blur_kernel_size: int = 5
    threshold_mode: Literal["fixed", "otsu", "adaptive"] = "fixed"
    threshold_value: int = 210
    adaptive_block_size: int = 51
    adaptive_c: int = 10
    polarity: Literal["dark", "light"] = "dark"
    open_kernel_size: int = 3
    open_iterations: int = 2
    close_kernel_size: int = 3
    close_iterations: int = 2
    min_patch_area: float = 5000.0
    min_aspect_ratio: float = 0.1
    max_aspect_ratio: float = 10.0
    min_rectangularity: float = 0.0
    border_policy: Literal["clip", "reject"] = "clip"

    # Fingerprinting and matching
    fingerprint_resolution: int = 255
    hash_size: int = 8
    cleanup_queries: bool = True
    white_threshold: int = 230
    max_match_distance: int | None = None
    review_distance: int = 10
    copy_matches: bool = True

    workers: int = 4
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DECOLLAGE_",
        env_file_encoding="utf-8",
    )

    @field_validator("blur_kernel_size")
    @classmethod
    def kernel_must_be_odd(cls, v: int) -> int:
        if v < 1 or v % 2 == 0:
            raise ValueError("kernel sizes must be positive odd integers")
        return v

    @field_validator("adaptive_block_size")
    @classmethod
    def block_size_must_be_odd(cls, v: int) -> int:
        # cv2.adaptiveThreshold needs an odd neighbourhood larger than one pixel
        if v < 3 or v % 2 == 0:
            raise ValueError("adaptive_block_size must be an odd integer of at least 3")
        return v

    @field_validator("open_kernel_size", "close_kernel_size")
    @classmethod
    def size_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("hash_size")
    @classmethod
    def hash_size_must_fit_phash(cls, v: int) -> int:
        if v < 2:
            raise ValueError("hash_size must be at least 2")
        return v

    @field_validator("open_iterations", "close_iterations", "review_distance")
    @classmethod
    def must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("threshold_value", "white_threshold")
    @classmethod
    def must_be_intensity(cls, v: int) -> int:
        if not 0 <= v <= 255:
            raise ValueError("intensity thresholds must be between 0 and 255")
        return v

    @field_validator("min_patch_area")
    @classmethod
    def area_must_not_be_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("min_patch_area must not be negative")
        return v

    @field_validator("min_rectangularity")
    @classmethod
    def rectangularity_must_be_fraction(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("min_rectangularity must be between 0.0 and 1.0")
        return v

    @field_validator("fingerprint_resolution")
    @classmethod
    def resolution_must_fit_hash(cls, v: int) -> int:
        if v < 8:
            raise ValueError("fingerprint_resolution must be at least 8 pixels")
        return v

    @field_validator("max_match_distance")
    @classmethod
    def cutoff_must_not_be_negative(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("max_match_distance must not be negative")
        return v

    @field_validator("workers")
    @classmethod
    def workers_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def aspect_bounds_must_be_ordered(self) -> "Settings":
        if self.min_aspect_ratio <= 0:
            raise ValueError("min_aspect_ratio must be positive")
        if self.min_aspect_ratio > self.max_aspect_ratio:
            raise ValueError("min_aspect_ratio must not exceed max_aspect_ratio")
        return self

    @property
    def fingerprint_variant(self) -> str:
        """Settings that change fingerprint output for fullsize candidates."""
        return f"phash{self.hash_size}-r{self.fingerprint_resolution}"

    @property
    def query_variant(self) -> str:
        """Like fingerprint_variant, plus the border cleanup applied to queries."""
        if not self.cleanup_queries:
            return self.fingerprint_variant
        return f"{self.fingerprint_variant}-clean{self.white_threshold}"


def require_directory(path: Path, label: str) -> Path:
    if not path.is_dir():
        raise ConfigurationError(f"{label} directory not found: {path}")
    return path
