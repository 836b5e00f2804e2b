"""Locate embedded photos on a scanned page.

Pipeline, each step a function of a numpy buffer:

  grayscale → blur → threshold → open → close → external contours → filter

Opening removes foreground thinner than the structuring element (caption
text, rule lines, scanner dust). Closing fills bright gaps inside a photo
that the threshold punched out. The surviving connected regions are reduced
to their bounding boxes and filtered by area, aspect ratio and
rectangularity.
"""
import logging

import cv2
import numpy as np

from models.page import PageImage, Rectangle
from settings import Settings

logger = logging.getLogger(__name__)

_FOREGROUND = 255


def segment(page: PageImage, settings: Settings) -> list[Rectangle]:
    """Return the photo rectangles on `page` in reading order."""
    rectangles, _ = segment_with_mask(page, settings)
    return rectangles


def segment_with_mask(page: PageImage, settings: Settings) -> tuple[list[Rectangle], np.ndarray]:
    """Like segment(), also returning the processed binary mask."""
    mask = build_mask(page.pixels, settings)
    rectangles = find_rectangles(mask, settings)
    logger.debug("%s: %d rectangle(s)", page.name, len(rectangles))
    return rectangles, mask


# ---------------------------------------------------------------------------
# Mask construction
# ---------------------------------------------------------------------------

def build_mask(pixels: np.ndarray, settings: Settings) -> np.ndarray:
    gray = to_grayscale(pixels)
    blurred = blur(gray, settings.blur_method, settings.blur_kernel_size)
    binary = threshold(blurred, settings)
    opened = morph(binary, cv2.MORPH_OPEN, settings.open_kernel_size, settings.open_iterations)
    return morph(opened, cv2.MORPH_CLOSE, settings.close_kernel_size, settings.close_iterations)


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """ITU-R 601 luma (0.299 R + 0.587 G + 0.114 B)."""
    if pixels.ndim == 2:
        return np.array(pixels, dtype=np.uint8)
    # OpenCV refuses read-only inputs; page buffers are frozen.
    return cv2.cvtColor(np.array(pixels, dtype=np.uint8), cv2.COLOR_RGB2GRAY)


def blur(gray: np.ndarray, method: str, kernel_size: int) -> np.ndarray:
    if kernel_size <= 1:
        return gray
    if method == "median":
        return cv2.medianBlur(gray, kernel_size)
    if method == "gaussian":
        return cv2.GaussianBlur(gray, (kernel_size, kernel_size), 0)
    raise ValueError(f"unknown blur method: {method}")


def threshold(gray: np.ndarray, settings: Settings) -> np.ndarray:
    """Binary mask with photo pixels set to 255."""
    # "dark": photos are darker than the paper, so invert.
    mode = cv2.THRESH_BINARY_INV if settings.polarity == "dark" else cv2.THRESH_BINARY

    if settings.threshold_mode == "fixed":
        _, mask = cv2.threshold(gray, settings.threshold_value, _FOREGROUND, mode)
        return mask
    if settings.threshold_mode == "otsu":
        _, mask = cv2.threshold(gray, 0, _FOREGROUND, mode | cv2.THRESH_OTSU)
        return mask
    if settings.threshold_mode == "adaptive":
        return cv2.adaptiveThreshold(
            gray,
            _FOREGROUND,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            mode,
            settings.adaptive_block_size,
            settings.adaptive_c,
        )
    raise ValueError(f"unknown threshold mode: {settings.threshold_mode}")


def morph(mask: np.ndarray, operation: int, kernel_size: int, iterations: int) -> np.ndarray:
    if iterations == 0 or kernel_size <= 1:
        return mask
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (kernel_size, kernel_size))
    # Default border value leaves regions touching the page edge intact.
    return cv2.morphologyEx(mask, operation, kernel, iterations=iterations)


# ---------------------------------------------------------------------------
# Contours → rectangles
# ---------------------------------------------------------------------------

def find_rectangles(mask: np.ndarray, settings: Settings) -> list[Rectangle]:
    height, width = mask.shape[:2]
    contours = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)[-2]

    accepted: list[Rectangle] = []
    for contour in contours:
        area = cv2.contourArea(contour)
        x, y, w, h = cv2.boundingRect(contour)
        rect = Rectangle(x=x, y=y, width=w, height=h)

        reason = _rejection_reason(rect, area, width, height, settings)
        if reason is not None:
            logger.debug("Discarding region %s: %s", _describe(rect), reason)
            continue

        clipped = rect.clip(width, height)
        if clipped is not None:
            accepted.append(clipped)

    return reading_order(accepted)


def _rejection_reason(
    rect: Rectangle,
    contour_area: float,
    page_width: int,
    page_height: int,
    settings: Settings,
) -> str | None:
    if contour_area <= settings.min_patch_area:
        return f"area {contour_area:.0f} <= {settings.min_patch_area:.0f}"
    if not settings.min_aspect_ratio <= rect.aspect_ratio <= settings.max_aspect_ratio:
        return f"aspect ratio {rect.aspect_ratio:.2f}"
    rectangularity = contour_area / rect.area
    if rectangularity < settings.min_rectangularity:
        return f"rectangularity {rectangularity:.2f}"
    if settings.border_policy == "reject" and rect.touches_border(page_width, page_height):
        return "touches page border"
    return None


def reading_order(rectangles: list[Rectangle]) -> list[Rectangle]:
    """Rows top-to-bottom, left-to-right within a row.

    A rectangle joins the current row when its top edge lies above the
    vertical midpoint of the row's first rectangle, so slightly skewed
    side-by-side photos stay in the same row.
    """
    rows: list[list[Rectangle]] = []
    for rect in sorted(rectangles, key=lambda r: (r.y, r.x)):
        if rows and rect.y < rows[-1][0].y + rows[-1][0].height / 2:
            rows[-1].append(rect)
        else:
            rows.append([rect])
    return [rect for row in rows for rect in sorted(row, key=lambda r: (r.x, r.y))]


def _describe(rect: Rectangle) -> str:
    return f"{rect.width}x{rect.height}+{rect.x}+{rect.y}"
