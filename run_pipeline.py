#!/usr/bin/env python3
"""Pull photos out of scanned collage pages and find their originals.

Usage:
    python run_pipeline.py extract PAGES_DIR OUTPUT_DIR [--debug DEBUG_DIR]
    python run_pipeline.py match --cache CACHE_DIR --fullsize DIR --thumbnail DIR
                                 [--output DIR] [--workers N] [--show-distance]

Options not exposed as flags are read from DECOLLAGE_* environment variables
or a .env file (see settings.py).
"""
import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from pydantic import ValidationError

from pipeline import stage1_extract, stage2_match
from settings import ConfigurationError, Settings, require_directory
from utils.fingerprint_cache import FingerprintCache, FingerprintCacheError, JsonFingerprintStore

logger = logging.getLogger("run_pipeline")

EXIT_CACHE_ERROR = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--workers", type=int, default=None,
                        help="Worker threads (default: settings.workers)")

    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    commands = parser.add_subparsers(dest="command", required=True)

    extract = commands.add_parser(
        "extract", parents=[common], help="Pull sub images out of input images with a white background.")
    extract.add_argument("pages_dir", type=Path, help="Directory of scanned pages")
    extract.add_argument("output_dir", type=Path, help="Directory for extracted patches")
    extract.add_argument("--debug", type=Path, default=None, dest="debug_dir",
                         help="Directory for overlay and mask images")

    match = commands.add_parser("match", parents=[common], help="Find matching images from a large set.")
    match.add_argument("--cache", type=Path, required=True, dest="cache_dir",
                       help="Fingerprint cache directory (created if missing)")
    match.add_argument("--fullsize", type=Path, required=True, dest="fullsize_dir",
                       help="Fullsize image files (to search through for a match)")
    match.add_argument("--thumbnail", type=Path, required=True, dest="thumbnail_dir",
                       help="Thumbnail image files (to find a match for)")
    match.add_argument("--output", type=Path, default=None, dest="output_dir",
                       help="Directory for the report and copies of matched files")
    match.add_argument("--max-distance", type=int, default=None, dest="max_distance",
                       help="Report no match when the best distance exceeds this")
    match.add_argument("--show-distance", action="store_true", dest="show_distance",
                       help="Append the distance to each report line")
    return parser


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.workers is not None:
        overrides["workers"] = args.workers
    if getattr(args, "max_distance", None) is not None:
        overrides["max_match_distance"] = args.max_distance
    return Settings(**overrides)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = _load_settings(args)
    except ValidationError as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        if args.command == "extract":
            logger.info("=== Stage 1: Extract ===")
            report = stage1_extract.run(settings, args.pages_dir, args.output_dir, args.debug_dir)
            logger.info("=== Done → %d patch(es) in %s ===", report.patch_count, args.output_dir)
            return 0

        logger.info("=== Stage 2: Match ===")
        require_directory(args.thumbnail_dir, "Query")
        require_directory(args.fullsize_dir, "Candidate")
        with JsonFingerprintStore(args.cache_dir) as store:
            cache = FingerprintCache(store, settings)
            report = stage2_match.run(
                settings, cache, args.thumbnail_dir, args.fullsize_dir, args.output_dir
            )
        for line in report.format_lines(show_distance=args.show_distance):
            print(line)
        return 0
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIG_ERROR
    except FingerprintCacheError as exc:
        logger.error("Fingerprint cache failure: %s", exc)
        return EXIT_CACHE_ERROR


if __name__ == "__main__":
    sys.exit(main())
