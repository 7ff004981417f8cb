"""
Results-feed scroller.

Scrolls the sidebar feed to its current bottom, waits for lazy-loaded
cards, and stops on whichever comes first: the feed's scroll height
stops growing, the end-of-list marker shows, the target card count is
reached, or the attempt bound runs out.  Maps can keep appending filler
forever, so only the bound guarantees exit.  A scroll that fails (detached
feed, destroyed context) ends scrolling with whatever cards are loaded.
"""

from typing import Any, Optional

from loguru import logger

from leadscraper.config import ScraperSettings
from leadscraper.core.extractor import element_exists
from leadscraper.selectors import SelectorTable

_SCROLL_HEIGHT_JS = "el => el.scrollHeight"
_SCROLL_TO_BOTTOM_JS = "el => el.scrollTo(0, el.scrollHeight)"


def _card_count(page: Any, selectors: SelectorTable) -> int:
    try:
        return len(page.query_selector_all(selectors["result_card"].primary))
    except Exception:
        return 0


def scroll_results(
    page: Any,
    selectors: SelectorTable,
    settings: ScraperSettings,
    target: Optional[int] = None,
) -> int:
    """
    Scroll the results feed until its extent stops changing.

    Parameters
    ----------
    page : Page
        Playwright page with search results already visible.
    selectors : SelectorTable
        Source of the feed and card selectors.
    settings : ScraperSettings
        Settle interval and attempt bound.
    target : int or None
        Stop early once this many cards are loaded.

    Returns
    -------
    int
        Number of result cards present after scrolling.
    """
    try:
        feed = page.query_selector(selectors["results_feed"].primary)
    except Exception as exc:
        logger.warning("Results feed lookup failed: {}", exc)
        feed = None
    if feed is None:
        logger.warning("Results feed not found -- skipping scroll")
        return _card_count(page, selectors)

    previous_height = -1
    try:
        current_height = feed.evaluate(_SCROLL_HEIGHT_JS)
    except Exception as exc:
        logger.warning("Scroll action failed: {}", exc)
        return _card_count(page, selectors)
    attempts = 0

    while (
        previous_height != current_height
        and attempts < settings.max_scroll_attempts
    ):
        if target is not None and _card_count(page, selectors) >= target:
            logger.info("Target reached ({} cards)", target)
            break
        if element_exists(page, selectors["end_of_list"]):
            logger.info("End of results list reached")
            break

        previous_height = current_height
        try:
            feed.evaluate(_SCROLL_TO_BOTTOM_JS)
            page.wait_for_timeout(settings.scroll_settle)
            current_height = feed.evaluate(_SCROLL_HEIGHT_JS)
        except Exception as exc:
            logger.warning("Scroll action failed: {}", exc)
            break
        attempts += 1

        logger.debug(
            "Scrolling results (height {} -> {}, attempt {}/{})",
            previous_height,
            current_height,
            attempts,
            settings.max_scroll_attempts,
        )

    final_count = _card_count(page, selectors)
    logger.info("Scrolling complete -- {} cards loaded", final_count)
    return final_count
