"""
Pytest configuration and shared fixtures.

Provides hand-written stand-ins for Playwright pages and element handles
so the pipeline can be exercised without a browser.
"""

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from leadscraper.config import RateLimitConfig, ScraperSettings
from leadscraper.selectors import SelectorTable


class FakeElement:
    """Minimal ElementHandle: text, attributes, children, click hook."""

    def __init__(self, text=None, attrs=None, children=None, on_click=None,
                 evaluate=None, broken=False):
        self.text = text
        self.attrs = attrs or {}
        self.children = children or {}
        self.on_click = on_click
        self._evaluate = evaluate
        self.broken = broken
        self.clicks = 0

    def text_content(self):
        if self.broken:
            raise RuntimeError("Element is not attached to the DOM")
        return self.text

    def get_attribute(self, name):
        if self.broken:
            raise RuntimeError("Element is not attached to the DOM")
        return self.attrs.get(name)

    def query_selector(self, selector):
        matches = self.children.get(selector, [])
        return matches[0] if matches else None

    def query_selector_all(self, selector):
        return list(self.children.get(selector, []))

    def click(self):
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()

    def evaluate(self, script):
        return self._evaluate(script) if self._evaluate else None


class FakeMouse:
    def __init__(self):
        self.moves = []

    def move(self, x, y, steps=1):
        self.moves.append((x, y))


class FakePage:
    """
    Minimal sync Page.

    ``dom`` maps selector strings to lists of elements.  ``overlay`` is a
    second mapping consulted first (used to swap detail panels in and out
    as cards are clicked).  Selectors listed in ``malformed`` raise like a
    CSS parse error would.
    """

    def __init__(self, dom=None, url="https://www.google.com/maps", malformed=()):
        self.dom = dom or {}
        self.overlay = {}
        self.url = url
        self.malformed = set(malformed)
        self.visited = []
        self.waits = []
        self.screenshots = []
        self.mouse = FakeMouse()

    def _lookup(self, selector):
        if selector in self.malformed:
            raise ValueError(f"Unexpected token in selector '{selector}'")
        if selector in self.overlay:
            return list(self.overlay[selector])
        return list(self.dom.get(selector, []))

    def query_selector(self, selector):
        matches = self._lookup(selector)
        return matches[0] if matches else None

    def query_selector_all(self, selector):
        return self._lookup(selector)

    def wait_for_selector(self, selector, timeout=None):
        element = self.query_selector(selector)
        if element is None:
            raise PlaywrightTimeoutError(
                f"Timeout {timeout}ms exceeded.\nwaiting for locator('{selector}')"
            )
        return element

    def wait_for_timeout(self, ms):
        self.waits.append(ms)

    def goto(self, url, **kwargs):
        self.visited.append(url)

    def screenshot(self, path=None, full_page=False):
        self.screenshots.append(path)


@pytest.fixture
def selectors():
    return SelectorTable.default()


@pytest.fixture
def settings():
    return ScraperSettings(
        rate_limit=RateLimitConfig(min_delay=7, max_delay=7, rate_limit_pause=0),
        page_load_timeout=100,
        results_timeout=100,
        panel_timeout=100,
        results_settle=1,
        panel_settle=2,
        scroll_settle=3,
        max_scroll_attempts=5,
        max_retries=3,
        default_country="Israel",
    )


@pytest.fixture
def make_panel(selectors):
    """Build the selector -> elements mapping of a fully populated panel."""

    def _make(name="Cafe Dizengoff", website="https://cafe-dizengoff.co.il",
              phone="03-555-1234", address="Dizengoff 123, Tel Aviv, Israel"):
        s = selectors
        panel = {
            s["detail_panel"].primary: [FakeElement(attrs={"aria-label": name})],
            s["business_name"].primary: [FakeElement(text=f"  {name} ")],
            s["business_type"].primary: [FakeElement(text="Coffee shop")],
            s["description"].primary: [FakeElement(text="Neighbourhood espresso bar")],
            s["rating"].primary: [FakeElement(attrs={"aria-label": "4.5 stars "})],
            s["review_count"].primary: [FakeElement(attrs={"aria-label": "1,234 reviews"})],
            s["price_level"].primary: [FakeElement(text="₪₪", attrs={"aria-label": "Price: Moderate"})],
            s["phone"].primary: [FakeElement(text=phone)],
            s["address"].primary: [FakeElement(text=address)],
            s["email_link"].primary: [FakeElement(attrs={"href": "mailto:hello@cafe.co.il?subject=hi"})],
            s["social_instagram"].primary: [FakeElement(attrs={"href": "https://instagram.com/cafe"})],
            s["attr_wifi"].primary: [FakeElement()],
            s["hours_row"].primary: [
                FakeElement(children={"td": [FakeElement(text="Monday"), FakeElement(text="8 AM–6 PM")]}),
                FakeElement(children={"td": [FakeElement(text="Saturday"), FakeElement(text="Closed")]}),
            ],
            s["photo"].primary: [
                FakeElement(attrs={"src": "https://lh5.googleusercontent.com/p/1"}),
                FakeElement(attrs={"src": "https://lh5.googleusercontent.com/p/2"}),
                FakeElement(attrs={"src": "https://lh5.googleusercontent.com/p/1"}),
            ],
            s["logo"].primary: [FakeElement(attrs={"src": "https://lh5.googleusercontent.com/logo"})],
        }
        if website:
            panel[s["website"].primary] = [FakeElement(attrs={"href": website})]
        return panel

    return _make
