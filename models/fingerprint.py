from pathlib import Path

import imagehash
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Fingerprint(BaseModel):
    """Perceptual hash of one image, stored as the hex string imagehash prints.

    `hash_size` is the side of the DCT bit matrix, so the vector has
    `hash_size ** 2` bits.
    """

    model_config = ConfigDict(frozen=True)

    hash_hex: str
    hash_size: int = Field(gt=0)

    @field_validator("hash_hex")
    @classmethod
    def must_be_hex(cls, v: str) -> str:
        try:
            int(v, 16)
        except ValueError:
            raise ValueError(f"not a hex string: {v!r}") from None
        return v.lower()

    @classmethod
    def from_hash(cls, value: imagehash.ImageHash) -> "Fingerprint":
        return cls(hash_hex=str(value), hash_size=int(value.hash.shape[0]))

    def to_hash(self) -> imagehash.ImageHash:
        return imagehash.hex_to_hash(self.hash_hex)

    def distance(self, other: "Fingerprint") -> int:
        """Hamming distance: number of differing bits."""
        if self.hash_size != other.hash_size:
            raise ValueError(
                f"cannot compare hash sizes {self.hash_size} and {other.hash_size}"
            )
        return int(self.to_hash() - other.to_hash())


class FileSignature(BaseModel):
    """Change-detection signature of a source file."""

    model_config = ConfigDict(frozen=True)

    mtime_ns: int
    size: int = Field(ge=0)

    @classmethod
    def of(cls, path: Path) -> "FileSignature":
        stat = path.stat()
        return cls(mtime_ns=stat.st_mtime_ns, size=stat.st_size)


class CacheEntry(BaseModel):
    """One persisted fingerprint. Stored as `<cache_dir>/<key[:2]>/<key>.json`."""

    key: str
    path: Path  # resolved source path at computation time
    variant: str  # fingerprint-affecting settings, see Settings.fingerprint_variant
    signature: FileSignature
    fingerprint: Fingerprint
