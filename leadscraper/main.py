"""
Google Maps lead scraper -- main orchestrator.

Usage
-----
    python -m leadscraper.main -t "restaurants" -l "Tel Aviv"
    python -m leadscraper.main -t "dentists" -l "Haifa" -l "Jerusalem" --limit 40
    python -m leadscraper.main -t "cafes" -l "Eilat" --workers 1 --no-headless
"""

import argparse
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

import leadscraper.config as cfg
from leadscraper.config import ScraperSettings
from leadscraper.core.browser import BrowserSession
from leadscraper.core.error_handler import ErrorHandler
from leadscraper.core.errors import ErrorCategory, RetryDecision, RetryPolicy, ScraperError
from leadscraper.core.search import SearchOrchestrator
from leadscraper.models.business import ScrapeBatch
from leadscraper.selectors import load_selector_table
from leadscraper.services.anti_detection import ProxyRotator
from leadscraper.utils.dedupe import deduplicate
from leadscraper.utils.exporter import CsvBuffer, export_all


# -- Helpers ---------------------------------------------------------------

def _run_label(business_type: str) -> str:
    """Derive a short filesystem-safe label from the business type."""
    stamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    return f"{business_type.strip().replace(' ', '_').lower()[:40]}_{stamp}"


# -- Single-session runner -------------------------------------------------

def run_session(
    business_type: str,
    location: str,
    limit: int,
    settings: ScraperSettings,
    error_handler: ErrorHandler,
    proxies: Optional[ProxyRotator] = None,
    selectors_path: Optional[Path] = None,
) -> ScrapeBatch:
    """
    Run one search session in its own browser, retrying the whole session
    as the error policy allows.
    """
    batch = ScrapeBatch(business_type=business_type, location=location)

    with BrowserSession(settings, proxies) as session:

        def _attempt(attempt: int, delay_multiplier: float):
            # Re-read the selector table on retries to pick up hot patches.
            selectors = load_selector_table(selectors_path)
            orchestrator = SearchOrchestrator(
                session.page,
                settings,
                selectors,
                policy=error_handler.policy,
                delay_multiplier=delay_multiplier,
            )
            try:
                return orchestrator.search(business_type, location, limit)
            except Exception:
                error_handler.take_screenshot(
                    session.page, f"session_{location.replace(' ', '_')}_{attempt}"
                )
                raise

        def _rotate(decision: RetryDecision) -> None:
            if decision.category is ErrorCategory.RATE_LIMIT:
                logger.warning(
                    "Rate limited on '{}' -- pausing {}ms",
                    location,
                    settings.rate_limit.rate_limit_pause,
                )
                session.page.wait_for_timeout(settings.rate_limit.rate_limit_pause)
            logger.info(
                "Rotating identity for '{}' after {}",
                location,
                decision.category.value,
            )
            session.rotate_identity()

        batch.results = error_handler.run_with_retry(
            _attempt,
            on_rotate=_rotate,
            label=f"Search '{business_type} in {location}'",
        )

    batch.end_time = datetime.utcnow()
    return batch


# -- Multi-session runner --------------------------------------------------

def run(
    business_type: str,
    locations: List[str],
    limit: int,
    workers: int,
    output_dir: Path,
    selectors_path: Optional[Path] = None,
    settings: Optional[ScraperSettings] = None,
) -> Dict[str, object]:
    """
    Scrape every location with up to *workers* concurrent browsers.

    Returns a summary dict with per-session counts and file paths.
    """
    settings = settings or ScraperSettings.from_config()
    error_handler = ErrorHandler(RetryPolicy(settings.max_retries))
    proxies = ProxyRotator()
    name = _run_label(business_type)

    output_dir.mkdir(parents=True, exist_ok=True)
    stream_path = output_dir / f"{name}_stream.csv"

    batches: List[ScrapeBatch] = []
    failures: Dict[str, str] = {}

    with CsvBuffer(stream_path, cfg.BUFFER_SIZE) as stream:
        with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
            futures = {
                pool.submit(
                    run_session,
                    business_type,
                    location,
                    limit,
                    settings,
                    error_handler,
                    proxies,
                    selectors_path,
                ): location
                for location in locations
            }
            for future in as_completed(futures):
                location = futures[future]
                try:
                    batch = future.result()
                except ScraperError as exc:
                    logger.error("Session '{}' failed: {}", location, exc)
                    failures[location] = str(exc)
                    continue
                except Exception as exc:
                    logger.exception("Session '{}' crashed: {}", location, exc)
                    failures[location] = str(exc)
                    continue
                batches.append(batch)
                stream.extend(batch.businesses())

    businesses = deduplicate([b for batch in batches for b in batch.businesses()])
    paths = export_all(businesses, output_dir, name) if businesses else {}

    return {
        "batches": batches,
        "failures": failures,
        "unique_exported": len(businesses),
        "files": {"stream_csv": stream_path, **paths},
    }


# -- CLI -------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(
        description="Google Maps lead scraper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m leadscraper.main -t restaurants -l 'Tel Aviv'\n"
            "  python -m leadscraper.main -t dentists -l Haifa -l Jerusalem --limit 40\n"
            "  python -m leadscraper.main -t cafes -l Eilat --workers 1 --no-headless\n"
        ),
    )
    parser.add_argument(
        "-t", "--type",
        dest="business_type",
        type=str,
        required=True,
        help="Business type to search for (e.g. 'restaurants')",
    )
    parser.add_argument(
        "-l", "--location",
        dest="locations",
        action="append",
        required=True,
        help="Location to search in; repeat for several",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=cfg.DEFAULT_LIMIT,
        help=f"Maximum cards per location (default: {cfg.DEFAULT_LIMIT})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=cfg.DEFAULT_WORKERS,
        help=f"Concurrent browser sessions (default: {cfg.DEFAULT_WORKERS})",
    )
    parser.add_argument(
        "--no-headless",
        action="store_true",
        default=False,
        help="Run the browser in visible (headed) mode",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help=f"Output directory for CSV/JSON (default: {cfg.OUTPUT_DIR})",
    )
    parser.add_argument(
        "--selectors",
        type=str,
        default=None,
        help="JSON file with selector overrides",
    )
    args = parser.parse_args()

    ErrorHandler.setup_logging()

    overrides = {"headless": False} if args.no_headless else {}
    settings = ScraperSettings.from_config(**overrides)
    output_dir = Path(args.output_dir) if args.output_dir else cfg.OUTPUT_DIR
    selectors_path = Path(args.selectors) if args.selectors else None

    # -- Run ---------------------------------------------------------------
    start = time.time()
    summary = run(
        args.business_type,
        args.locations,
        args.limit,
        args.workers,
        output_dir,
        selectors_path=selectors_path,
        settings=settings,
    )
    elapsed = time.time() - start

    # -- Report ------------------------------------------------------------
    logger.info("")
    logger.info("=" * 60)
    logger.info("SCRAPING COMPLETE  ({:.1f}s elapsed)", elapsed)
    logger.info("=" * 60)
    for batch in summary["batches"]:
        logger.info(
            "  [OK]    '{}'  ->  {}/{} succeeded ({:.0f}%)",
            batch.location,
            batch.success_count,
            batch.total,
            batch.success_rate,
        )
    for location, reason in summary["failures"].items():
        logger.info("  [FAIL]  '{}'  ->  {}", location, reason)
    logger.info("  Unique businesses exported: {}", summary["unique_exported"])
    for fmt, path in summary["files"].items():
        logger.info("  {} -> {}", fmt.upper(), path)
    logger.info("=" * 60)

    if summary["failures"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
