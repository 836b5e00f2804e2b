"""Perceptual fingerprints.

An image is downsized to a canonical resolution first: pHash only looks at
the low frequencies anyway, and shrinking a 40-megapixel scan up front keeps
the DCT cheap. The downsize uses a fixed filter so the same pixels always
produce the same bits.
"""
import logging

import imagehash
import numpy as np
from PIL import Image

from models.fingerprint import Fingerprint
from settings import Settings

logger = logging.getLogger(__name__)

_RESAMPLE = Image.Resampling.LANCZOS


def fingerprint(image: Image.Image, settings: Settings) -> Fingerprint:
    canonical = canonicalize(image, settings.fingerprint_resolution)
    return Fingerprint.from_hash(imagehash.phash(canonical, hash_size=settings.hash_size))


def canonicalize(image: Image.Image, resolution: int) -> Image.Image:
    """RGB copy whose longer side is at most `resolution`. Never upscales."""
    rgb = image.convert("RGB")
    width, height = rgb.size
    scale = resolution / max(width, height)
    if scale >= 1.0:
        return rgb
    size = (max(1, round(width * scale)), max(1, round(height * scale)))
    return rgb.resize(size, _RESAMPLE)


# ---------------------------------------------------------------------------
# Border cleanup for scanned thumbnails
# ---------------------------------------------------------------------------

def remove_borders(image: Image.Image, white_threshold: int) -> Image.Image:
    """Crop the white scan margin around a thumbnail.

    Three scan lines at 1/4, 1/2 and 3/4 of each axis are walked inwards from
    every edge (through the outer quarter only) until the first non-white
    pixel. The outermost hit per edge bounds the inner image. Blank images and
    images with no detectable margin come back unchanged.
    """
    rgb = np.asarray(image.convert("RGB"))
    height, width = rgb.shape[:2]
    if width < 4 or height < 4:
        return image

    # A pixel is white when every channel exceeds the threshold.
    dark = ~np.all(rgb > white_threshold, axis=2)
    if not dark.any():
        return image
    x_lines = [width // 4 * i for i in (1, 2, 3)]
    y_lines = [height // 4 * i for i in (1, 2, 3)]

    min_x = max_x = width // 2
    for y in y_lines:
        row = dark[y]
        left = np.flatnonzero(row[:x_lines[0]])
        if left.size:
            min_x = min(min_x, int(left[0]))
        right = np.flatnonzero(row[x_lines[2]:])
        if right.size:
            max_x = max(max_x, x_lines[2] + int(right[-1]))

    min_y = max_y = height // 2
    for x in x_lines:
        column = dark[:, x]
        top = np.flatnonzero(column[:y_lines[0]])
        if top.size:
            min_y = min(min_y, int(top[0]))
        bottom = np.flatnonzero(column[y_lines[2]:])
        if bottom.size:
            max_y = max(max_y, y_lines[2] + int(bottom[-1]))

    box = (min_x, min_y, max_x + 1, max_y + 1)
    if box == (0, 0, width, height):
        return image
    logger.debug("Removing borders: %dx%d -> box %s", width, height, box)
    return image.crop(box)
