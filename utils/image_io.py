"""Image file discovery and decoding shared by both pipelines."""
import logging
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps

from models.page import PageImage

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff",
})


def list_images(directory: Path) -> list[Path]:
    """Image files directly inside `directory`, sorted by filename."""
    files = sorted(
        (f for f in directory.iterdir() if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS),
        key=lambda f: f.name,
    )
    skipped = sum(1 for f in directory.iterdir() if f.is_file()) - len(files)
    if skipped:
        logger.debug("Ignoring %d non-image file(s) in %s", skipped, directory)
    return files


def open_image(path: Path) -> Image.Image:
    """Decode an image fully, with EXIF orientation applied, as RGB.

    The returned Image is detached from the file handle. Raises OSError
    (PIL.UnidentifiedImageError included) for unreadable files.
    """
    with Image.open(path) as img:
        corrected = ImageOps.exif_transpose(img)
        corrected.load()
        return corrected.convert("RGB")


def load_page(path: Path) -> PageImage:
    img = open_image(path)
    return PageImage(name=path.stem, pixels=np.asarray(img))


def save_image(pixels: np.ndarray, path: Path) -> None:
    # np.array copies, so read-only page slices encode too
    Image.fromarray(np.array(pixels)).save(path, format="PNG")
