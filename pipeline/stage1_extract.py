"""Stage 1: Extract — cut embedded photos out of scanned collage pages.

Each page is segmented (see utils.segmenter) and every accepted rectangle is
cropped from the original colour pixels and saved as its own PNG:

  <output_dir>/<page stem>-<index:02d>.png     index in reading order

With a debug directory, two more images per page are written for visual
checking:

  <debug_dir>/<page stem>-patches.png     page with accepted boxes outlined
  <debug_dir>/<page stem>-processed.png   binary mask after open/close

Reads:  <pages_dir>/*.{png,jpg,...}
Writes: <output_dir>/*.png, <output_dir>/extraction.json (ExtractionReport)
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw

from models.page import ExtractionReport, PageExtraction, PageImage, Patch, Rectangle
from settings import ConfigurationError, Settings, require_directory
from utils.image_io import list_images, load_page, save_image
from utils.segmenter import segment_with_mask

logger = logging.getLogger(__name__)

_OVERLAY_COLOUR = (0, 255, 0)
_OVERLAY_WIDTH = 10


def run(
    settings: Settings,
    pages_dir: Path,
    output_dir: Path,
    debug_dir: Path | None = None,
) -> ExtractionReport:
    """Extract patches from every page in `pages_dir`.

    Returns the ExtractionReport; `report.patch_count` is the number of patch
    files written. Unreadable pages are logged, recorded with their error, and
    skipped.
    """
    require_directory(pages_dir, "Pages")
    _prepare_directory(output_dir, "Output")
    if debug_dir is not None:
        _prepare_directory(debug_dir, "Debug")

    page_files, duplicates = _unique_pages(list_images(pages_dir))
    logger.info("Extracting patches from %d page(s) in %s", len(page_files), pages_dir)

    with ThreadPoolExecutor(max_workers=settings.workers) as pool:
        processed = list(pool.map(
            lambda path: _process_page(path, output_dir, debug_dir, settings),
            page_files,
        ))

    pages = sorted(processed + duplicates, key=lambda p: p.filename)
    report = ExtractionReport(pages=pages)
    artifact_path = output_dir / "extraction.json"
    artifact_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")

    logger.info("Stage 1 complete → %s", output_dir)
    logger.info("  Pages:   %d", len(pages))
    logger.info("  Patches: %d", report.patch_count)
    if report.failed_pages:
        logger.warning("  Skipped: %d", len(report.failed_pages))

    return report


def _prepare_directory(path: Path, label: str) -> None:
    if path.exists() and not path.is_dir():
        raise ConfigurationError(f"{label} path is not a directory: {path}")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(f"Cannot create {label.lower()} directory {path}: {exc}") from exc


def _unique_pages(paths: list[Path]) -> tuple[list[Path], list[PageExtraction]]:
    """Split pages into those to process and those whose stem is already taken.

    Patch files are named after the page stem, so `scan.png` and `scan.jpg`
    would write the same files. The first page in filename order wins.
    """
    seen: dict[str, Path] = {}
    unique: list[Path] = []
    skipped: list[PageExtraction] = []
    for path in paths:
        first = seen.setdefault(path.stem, path)
        if first is path:
            unique.append(path)
            continue
        error = f"page name {path.stem!r} already used by {first.name}"
        logger.warning("  %s — SKIPPED: %s", path.name, error)
        skipped.append(PageExtraction(page=path.stem, filename=path.name, error=error))
    return unique, skipped


# ---------------------------------------------------------------------------
# Per-page processing
# ---------------------------------------------------------------------------

def _process_page(
    path: Path,
    output_dir: Path,
    debug_dir: Path | None,
    settings: Settings,
) -> PageExtraction:
    logger.info("Processing collage page: %s", path.name)
    try:
        page = load_page(path)
        rectangles, mask = segment_with_mask(page, settings)

        patches: list[Patch] = []
        for index, rect in enumerate(rectangles):
            out_path = output_dir / patch_filename(page.name, index)
            logger.info("  Writing subimage: %s", out_path.name)
            save_image(crop(page, rect), out_path)
            patches.append(Patch(page=page.name, index=index, rectangle=rect, path=out_path))

        if debug_dir is not None:
            _write_debug_images(page, rectangles, mask, debug_dir)
    except Exception as exc:
        logger.warning("  %s — SKIPPED: %s", path.name, exc)
        return PageExtraction(page=path.stem, filename=path.name, error=str(exc))

    return PageExtraction(page=page.name, filename=path.name, patches=patches)


def patch_filename(page_name: str, index: int) -> str:
    return f"{page_name}-{index:02d}.png"


def crop(page: PageImage, rect: Rectangle) -> np.ndarray:
    return page.pixels[rect.y:rect.bottom, rect.x:rect.right]


# ---------------------------------------------------------------------------
# Debug output
# ---------------------------------------------------------------------------

def _write_debug_images(
    page: PageImage,
    rectangles: list[Rectangle],
    mask: np.ndarray,
    debug_dir: Path,
) -> None:
    overlay = Image.fromarray(np.array(page.pixels))
    draw = ImageDraw.Draw(overlay)
    for rect in rectangles:
        draw.rectangle(
            (rect.x, rect.y, rect.right - 1, rect.bottom - 1),
            outline=_OVERLAY_COLOUR,
            width=_OVERLAY_WIDTH,
        )
    overlay.save(debug_dir / f"{page.name}-patches.png", format="PNG")
    Image.fromarray(mask).save(debug_dir / f"{page.name}-processed.png", format="PNG")
