"""
Browser session -- launches Playwright Chromium with stealth injection
and a rotatable identity (user agent, viewport, proxy).
"""

import urllib.parse
from typing import Any, Optional

from loguru import logger
from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright
from playwright_stealth import Stealth

import leadscraper.config as cfg
from leadscraper.config import ScraperSettings
from leadscraper.core.extractor import element_exists
from leadscraper.selectors import SelectorTable
from leadscraper.services.anti_detection import (
    BROWSER_ARGS,
    EXTRA_HEADERS,
    STEALTH_INIT_SCRIPT,
    Identity,
    ProxyRotator,
    random_identity,
)


GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/{query}/"


def _block_heavy_resources(route) -> None:
    request = route.request
    if request.resource_type in cfg.BLOCKED_RESOURCE_TYPES:
        route.abort()
        return
    if any(domain in request.url for domain in cfg.BLOCKED_DOMAINS):
        route.abort()
        return
    route.continue_()


class BrowserSession:
    """
    One worker's exclusive browser.

    Use as a context manager; ``rotate_identity()`` throws away the
    current context and page and opens fresh ones with a new fingerprint.
    """

    def __init__(
        self,
        settings: ScraperSettings,
        proxies: Optional[ProxyRotator] = None,
    ) -> None:
        self.settings = settings
        self.proxies = proxies or ProxyRotator()
        self.identity: Optional[Identity] = None
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def __enter__(self) -> "BrowserSession":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- Lifecycle ---------------------------------------------------------

    def start(self) -> Page:
        self._pw = sync_playwright().start()
        self._browser = self._pw.chromium.launch(
            headless=self.settings.headless,
            args=BROWSER_ARGS,
        )
        logger.info("Browser launched (headless={})", self.settings.headless)
        return self._open_context()

    def _open_context(self) -> Page:
        self.identity = random_identity(self.proxies.next() if self.proxies else None)
        self._context = self._browser.new_context(
            viewport=self.identity.viewport,
            user_agent=self.identity.user_agent,
            locale=cfg.LOCALE,
            timezone_id=cfg.TIMEZONE_ID,
            permissions=["geolocation"],
            geolocation=cfg.GEOLOCATION,
            extra_http_headers=EXTRA_HEADERS,
            proxy=ProxyRotator.playwright_proxy(self.identity.proxy),
        )
        self._context.set_default_timeout(self.settings.page_load_timeout)
        self._context.set_default_navigation_timeout(self.settings.page_load_timeout)

        page = self._context.new_page()
        if cfg.STEALTH_MODE:
            Stealth().apply_stealth_sync(page)
            page.add_init_script(STEALTH_INIT_SCRIPT)
        page.route("**/*", _block_heavy_resources)

        self.page = page
        logger.info(
            "Browser context created (viewport={}x{}, proxy={})",
            self.identity.viewport["width"],
            self.identity.viewport["height"],
            self.identity.proxy or "none",
        )
        return page

    def rotate_identity(self) -> Page:
        """Close the current context and reopen with a new identity."""
        self._close_context()
        logger.info("Rotating browser identity")
        return self._open_context()

    def _close_context(self) -> None:
        try:
            if self._context is not None:
                self._context.close()
        except Exception as exc:
            logger.debug("Context close failed: {}", exc)
        self._context = None
        self.page = None

    def close(self) -> None:
        """Gracefully shut down the browser and Playwright."""
        self._close_context()
        try:
            if self._browser is not None:
                self._browser.close()
        except Exception as exc:
            logger.debug("Browser close failed: {}", exc)
        try:
            if self._pw is not None:
                self._pw.stop()
        except Exception as exc:
            logger.debug("Playwright stop failed: {}", exc)
        self._browser = self._pw = None
        logger.info("Browser closed")


# ── Page helpers ──────────────────────────────────────────────────────────

def search_url(query: str) -> str:
    return GOOGLE_MAPS_SEARCH_URL.format(query=urllib.parse.quote(query))


def dismiss_cookie_banner(page: Any, selectors: SelectorTable) -> None:
    """Click "Accept all" if the consent banner is showing."""
    try:
        button = page.query_selector(selectors["accept_cookies"].primary)
        if button is None:
            return
        button.click()
        page.wait_for_timeout(1000)
        logger.info("Cookie consent dismissed")
    except Exception as exc:
        logger.debug("Cookie banner not dismissed: {}", exc)


def detect_captcha(page: Any, selectors: SelectorTable) -> bool:
    """True when a captcha frame or Google's "unusual traffic" page is shown."""
    if element_exists(page, selectors["captcha"]):
        return True
    url = getattr(page, "url", "") or ""
    return "/sorry/" in url
