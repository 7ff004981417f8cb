"""
Search session -- one query, one page, one ordered list of ScrapeResults.

    Idle -> Searching -> ResultsLoading -> ResultsReady
         -> ProcessingCard(0..n-1) -> Done
    Searching / ResultsLoading -> NoResults

Navigation and query submission failures propagate to the caller.  Once
cards are on screen, every card is isolated: a failure becomes a
``ScrapeFailure`` entry and the loop moves on.  A captcha is the one
exception and always propagates.
"""

import time
from enum import Enum
from typing import Any, Callable, List, Optional

from loguru import logger
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from leadscraper.config import ScraperSettings
from leadscraper.core.assembler import BusinessAssembler
from leadscraper.core.browser import detect_captcha, dismiss_cookie_banner, search_url
from leadscraper.core.errors import (
    CaptchaDetectedError,
    ErrorCategory,
    ResultsTimeoutError,
    RetryPolicy,
    classify_error,
    describe,
)
from leadscraper.core.extractor import element_exists
from leadscraper.core.scroller import scroll_results
from leadscraper.models.business import ScrapeFailure, ScrapeResult, ScrapeSuccess
from leadscraper.selectors import SelectorTable
from leadscraper.services.anti_detection import random_delay_ms, simulate_human_behavior


class SessionState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    RESULTS_LOADING = "results_loading"
    RESULTS_READY = "results_ready"
    PROCESSING_CARD = "processing_card"
    NO_RESULTS = "no_results"
    DONE = "done"


def compose_query(business_type: str, location: str) -> str:
    return f"{business_type} in {location}"


class SearchOrchestrator:
    """
    Drive one search session on a page the caller owns.

    The page is never closed here.  ``delay_multiplier`` widens the
    inter-card delay window; callers raise it after rate-limit decisions.
    """

    def __init__(
        self,
        page: Any,
        settings: ScraperSettings,
        selectors: SelectorTable,
        assembler: Optional[BusinessAssembler] = None,
        policy: Optional[RetryPolicy] = None,
        delay_multiplier: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.page = page
        self.settings = settings
        self.selectors = selectors
        self.assembler = assembler or BusinessAssembler(selectors, settings)
        self.policy = policy or RetryPolicy(settings.max_retries)
        self.delay_multiplier = delay_multiplier
        self.rate_limit = settings.rate_limit.escalated(delay_multiplier)
        self.clock = clock
        self.state = SessionState.IDLE
        self.card_index: Optional[int] = None
        self.selector_misses = 0

    # -- Public ------------------------------------------------------------

    def search(self, business_type: str, location: str, limit: int) -> List[ScrapeResult]:
        query = compose_query(business_type, location)
        logger.info("Starting business search '{}' (limit {})", query, limit)
        started = self.clock()
        self.selector_misses = 0

        self._submit(query)
        if not self._await_results():
            self.state = SessionState.NO_RESULTS
            logger.info("No results for '{}'", query)
            return []

        scroll_results(self.page, self.selectors, self.settings, target=limit)
        cards = self._enumerate_cards(limit)
        self.state = SessionState.RESULTS_READY

        results: List[ScrapeResult] = []
        for index, card in enumerate(cards):
            self.state = SessionState.PROCESSING_CARD
            self.card_index = index
            if index > 0:
                self.page.wait_for_timeout(random_delay_ms(self.rate_limit))
            logger.debug("Processing business {}/{}", index + 1, len(cards))
            results.append(self._process_card(card, index))

            if (index + 1) % 5 == 0:
                logger.info("Processed {}/{} businesses", index + 1, len(cards))

        self.state = SessionState.DONE
        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "Business search completed '{}': {}/{} succeeded ({:.1f}%) in {:.1f}s",
            query,
            succeeded,
            len(results),
            succeeded / len(results) * 100 if results else 0.0,
            self.clock() - started,
        )
        return results

    # -- Phases ------------------------------------------------------------

    def _submit(self, query: str) -> None:
        self.state = SessionState.SEARCHING
        # Loading the search URL directly skips the home page, its
        # overlays, and typing into a half-initialised search box.
        self.page.goto(
            search_url(query),
            wait_until="domcontentloaded",
            timeout=self.settings.page_load_timeout,
        )
        dismiss_cookie_banner(self.page, self.selectors)
        simulate_human_behavior(self.page)
        if detect_captcha(self.page, self.selectors):
            raise CaptchaDetectedError(f"Captcha served for search '{query}'")
        logger.debug("Search submitted '{}'", query)

    def _await_results(self) -> bool:
        """True once cards are showing; False on an explicit empty result."""
        self.state = SessionState.RESULTS_LOADING
        try:
            self.page.wait_for_selector(
                self.selectors["result_card"].primary,
                timeout=self.settings.results_timeout,
            )
        except PlaywrightTimeoutError as exc:
            if element_exists(self.page, self.selectors["no_results"]):
                return False
            if detect_captcha(self.page, self.selectors):
                raise CaptchaDetectedError("Captcha served while loading results") from exc
            raise ResultsTimeoutError(
                f"No result cards within {self.settings.results_timeout}ms"
            ) from exc
        self.page.wait_for_timeout(self.settings.results_settle)
        return True

    def _enumerate_cards(self, limit: int) -> list:
        cards = self.page.query_selector_all(self.selectors["result_card"].primary)
        selected = cards[:max(limit, 0)]
        logger.debug("Business cards found: {} (processing {})", len(cards), len(selected))
        return selected

    def _process_card(self, card: Any, index: int) -> ScrapeResult:
        started = self.clock()
        try:
            card.click()
            self.page.wait_for_selector(
                self.selectors["detail_panel"].primary,
                timeout=self.settings.panel_timeout,
            )
            self.page.wait_for_timeout(self.settings.panel_settle)
            business = self.assembler.assemble(self.page)
        except Exception as exc:
            if isinstance(exc, CaptchaDetectedError) or detect_captcha(self.page, self.selectors):
                raise CaptchaDetectedError(f"Captcha served on card {index}") from exc
            # Selector misses count per session; a repeat is not retryable.
            category = classify_error(exc)
            attempt = 1
            if category is ErrorCategory.SELECTOR_NOT_FOUND:
                self.selector_misses += 1
                attempt = self.selector_misses
            decision = self.policy.decide(category, attempt)
            logger.warning(
                "Card {} failed ({}): {}",
                index,
                decision.category.value,
                describe(exc),
            )
            return ScrapeFailure(
                category=decision.category.value,
                retryable=decision.retryable,
                recommended_action=decision.recommended_action.value,
                error=describe(exc),
                card_index=index,
                duration=self.clock() - started,
            )

        return ScrapeSuccess(
            business=business,
            card_index=index,
            duration=self.clock() - started,
        )
