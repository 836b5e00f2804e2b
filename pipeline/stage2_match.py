"""Stage 2: Match — find the fullsize original of every thumbnail or patch.

Every candidate (fullsize) image is fingerprinted once, then every query
(thumbnail or extracted patch) is fingerprinted and compared against the
whole candidate set. Fingerprints go through the FingerprintCache, so a
second run over the same library only hashes new or changed files.

Queries may be border-cleaned before hashing (settings.cleanup_queries):
scanned thumbnails usually carry a white margin the original lacks.

Reads:  <candidate_dir>/*, <query_dir>/*
Writes: <output_dir>/matches.json  (MatchReport)
        <output_dir>/matches.txt   one "<query> -> <candidate>" line per query
        <output_dir>/<candidate>   copy of each matched fullsize file
                                   (settings.copy_matches)
"""
import logging
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from models.fingerprint import Fingerprint
from models.match_report import MatchFailure, MatchReport, MatchResult
from settings import Settings, require_directory
from utils.fingerprint_cache import FingerprintCache, FingerprintCacheError
from utils.image_io import list_images
from utils.matcher import find_best_match

logger = logging.getLogger(__name__)


def run(
    settings: Settings,
    cache: FingerprintCache,
    query_dir: Path,
    candidate_dir: Path,
    output_dir: Path | None = None,
) -> MatchReport:
    """Match every query image against every candidate image.

    Returns one MatchResult per readable query, in filename order. Files that
    cannot be decoded are recorded in `report.failures` and skipped.
    FingerprintCacheError propagates.
    """
    require_directory(query_dir, "Query")
    require_directory(candidate_dir, "Candidate")

    candidate_files = list_images(candidate_dir)
    query_files = list_images(query_dir)
    failures: list[MatchFailure] = []

    loading_start = time.monotonic()
    logger.info("Loading candidates: %s (%d files)", candidate_dir, len(candidate_files))
    candidates = _load_fingerprints(candidate_files, "candidate", cache, settings, failures)
    logger.info("Loading queries: %s (%d files)", query_dir, len(query_files))
    queries = _load_fingerprints(query_files, "query", cache, settings, failures)
    logger.info("Loading fingerprints took: %.1fs", time.monotonic() - loading_start)

    results: list[MatchResult] = []
    for query_name, query_fp in queries:
        result = find_best_match(
            query_name,
            query_fp,
            candidates,
            max_distance=settings.max_match_distance,
            review_distance=settings.review_distance,
        )
        _log_result(result)
        results.append(result)

    report = MatchReport(results=results, failures=failures)

    if output_dir is not None:
        _write_outputs(report, candidate_dir, output_dir, settings)

    matched = sum(1 for r in results if r.matched)
    logger.info("Stage 2 complete")
    logger.info("  Queries:  %d", len(results))
    logger.info("  Matched:  %d", matched)
    logger.info("  Review:   %d", sum(1 for r in results if r.needs_review))
    if failures:
        logger.warning("  Skipped:  %d", len(failures))

    return report


# ---------------------------------------------------------------------------
# Fingerprint loading
# ---------------------------------------------------------------------------

def _load_fingerprints(
    files: list[Path],
    role: str,
    cache: FingerprintCache,
    settings: Settings,
    failures: list[MatchFailure],
) -> list[tuple[str, Fingerprint]]:
    """Fingerprint `files` on the worker pool, preserving their order."""
    cleanup = role == "query" and settings.cleanup_queries

    def load(path: Path) -> tuple[Path, Fingerprint | None, str | None]:
        try:
            return path, cache.get_or_compute(path, cleanup=cleanup), None
        except FingerprintCacheError:
            raise
        except Exception as exc:
            return path, None, str(exc)

    loaded: list[tuple[str, Fingerprint]] = []
    with ThreadPoolExecutor(max_workers=settings.workers) as pool:
        for path, value, error in pool.map(load, files):
            if value is None:
                logger.warning("  %s (%s) — SKIPPED: %s", path.name, role, error)
                failures.append(MatchFailure(filename=path.name, role=role, error=error or ""))
                continue
            loaded.append((path.name, value))
    return loaded


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def _log_result(result: MatchResult) -> None:
    if not result.matched:
        logger.info("No match for: %s", result.query)
        return
    logger.info("Matched: %s to %s", result.query, result.candidate)
    if result.needs_review:
        logger.warning(
            "Distance from %s to %s was %d, needs manual review",
            result.query, result.candidate, result.distance,
        )


def _write_outputs(
    report: MatchReport,
    candidate_dir: Path,
    output_dir: Path,
    settings: Settings,
) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / "matches.json").write_text(report.model_dump_json(indent=2), encoding="utf-8")
    lines = report.format_lines(show_distance=True)
    (output_dir / "matches.txt").write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")

    if not settings.copy_matches:
        return
    copied: set[str] = set()
    for result in report.results:
        if result.candidate is None or result.candidate in copied:
            continue
        shutil.copy2(candidate_dir / result.candidate, output_dir / result.candidate)
        copied.add(result.candidate)
    logger.info("Copied %d matched file(s) to %s", len(copied), output_dir)
