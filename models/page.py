from pathlib import Path

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PageImage(BaseModel):
    """A decoded scan page.

    `pixels` is an RGB `uint8` array of shape (height, width, 3), copied and
    made read-only on construction. Segmentation works on derived buffers;
    crops are slices of it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str  # file stem, used to name patches
    pixels: np.ndarray

    @field_validator("pixels")
    @classmethod
    def must_be_rgb_buffer(cls, v: np.ndarray) -> np.ndarray:
        if v.ndim != 3 or v.shape[2] != 3:
            raise ValueError("pixels must have shape (height, width, 3)")
        if v.shape[0] == 0 or v.shape[1] == 0:
            raise ValueError("page must not be empty")
        v = np.array(v, dtype=np.uint8)  # own copy; the caller's array stays writable
        v.flags.writeable = False
        return v

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


class Rectangle(BaseModel):
    """Axis-aligned box in page pixel coordinates."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def contained_in(self, width: int, height: int) -> bool:
        return self.right <= width and self.bottom <= height

    def touches_border(self, width: int, height: int) -> bool:
        return self.x == 0 or self.y == 0 or self.right >= width or self.bottom >= height

    def clip(self, width: int, height: int) -> "Rectangle | None":
        """Intersect with the page bounds; None when nothing is left."""
        right = min(self.right, width)
        bottom = min(self.bottom, height)
        if right <= self.x or bottom <= self.y:
            return None
        return Rectangle(x=self.x, y=self.y, width=right - self.x, height=bottom - self.y)


class Patch(BaseModel):
    """One crop written by the extractor."""

    page: str
    index: int = Field(ge=0)  # reading-order index on its page
    rectangle: Rectangle
    path: Path


class PageExtraction(BaseModel):
    page: str
    filename: str
    patches: list[Patch] = Field(default_factory=list)
    error: str | None = None  # set when the page could not be processed


class ExtractionReport(BaseModel):
    pages: list[PageExtraction] = Field(default_factory=list)

    @property
    def patch_count(self) -> int:
        return sum(len(p.patches) for p in self.pages)

    @property
    def failed_pages(self) -> list[PageExtraction]:
        return [p for p in self.pages if p.error is not None]
