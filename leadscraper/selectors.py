"""
Google Maps locator table.

Maps each semantic field to a primary CSS selector and, for the
high-value fields (name, phone, website), an ordered list of fallbacks
tried in sequence.  When Google changes the UI, update the table here or
drop a JSON override file next to the deployment and point
``SELECTORS_FILE`` at it -- nothing else hard-codes a selector.

Override file format::

    {
      "business_name": {"primary": "h1.DUwDvf", "fallbacks": ["h1"]},
      "phone": "button[data-item-id^='phone'] div"
    }

A bare string replaces the primary and clears the fallbacks.
"""

import json
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict

import leadscraper.config as cfg


class Locator(BaseModel):
    """One primary selector plus an ordered, immutable fallback chain."""

    model_config = ConfigDict(frozen=True)

    primary: str
    fallbacks: Tuple[str, ...] = ()

    def candidates(self) -> Iterator[str]:
        yield self.primary
        yield from self.fallbacks

    def __str__(self) -> str:
        return self.primary


LocatorLike = Union[Locator, str]


def as_locator(value: LocatorLike) -> Locator:
    if isinstance(value, Locator):
        return value
    return Locator(primary=value)


# ── Default table ─────────────────────────────────────────────────────────────

DEFAULT_SELECTORS: Dict[str, Locator] = {
    # -- Search / results ----------------------------------------------------
    "results_feed": Locator(primary='div[role="feed"]'),
    "result_card": Locator(primary='div[role="feed"] div[role="article"]'),
    "no_results": Locator(
        primary="div.section-no-result",
        fallbacks=('div[role="main"] div:has-text("Google Maps can\'t find")',),
    ),
    "end_of_list": Locator(
        primary="span.HlvSq",
        fallbacks=('p.fontBodyMedium span:has-text("end of the list")',),
    ),
    "accept_cookies": Locator(primary='button[aria-label="Accept all"]'),

    # -- Detail panel --------------------------------------------------------
    "detail_panel": Locator(primary='div[role="main"][aria-label]'),
    "business_name": Locator(
        primary='h1[class*="fontHeadlineLarge"]',
        fallbacks=(
            "h1.section-hero-header-title-title",
            'div[role="heading"][aria-level="1"]',
            "h1",
        ),
    ),
    "business_type": Locator(primary='button[jsaction*="category"]'),
    "description": Locator(primary='div[aria-label^="About"] div[class*="fontBodyMedium"]'),
    "rating": Locator(primary='div[role="main"] span[role="img"][aria-label*="star"]'),
    "review_count": Locator(primary='div[role="main"] button[aria-label*="review"]'),
    "price_level": Locator(primary='span[aria-label*="Price"]'),

    # -- Contact -------------------------------------------------------------
    "phone": Locator(
        primary='button[data-item-id*="phone"] div[class*="fontBodyMedium"]',
        fallbacks=(
            'button[aria-label*="Phone"] span',
            'a[href^="tel:"]',
        ),
    ),
    "website": Locator(
        primary='a[data-item-id="authority"]',
        fallbacks=(
            'a[aria-label*="Website"]',
            'a[href^="http"]:not([href*="google."])',
        ),
    ),
    "address": Locator(
        primary='button[data-item-id="address"] div[class*="fontBodyMedium"]',
    ),
    "phone_link": Locator(primary='a[href^="tel:"]'),
    "email_link": Locator(primary='a[href^="mailto:"]'),
    "whatsapp_link": Locator(primary='a[href*="wa.me"], a[href*="api.whatsapp.com"]'),

    # -- Social --------------------------------------------------------------
    "social_facebook": Locator(primary='a[href*="facebook.com"]'),
    "social_instagram": Locator(primary='a[href*="instagram.com"]'),
    "social_twitter": Locator(primary='a[href*="twitter.com"], a[href*="x.com/"]'),
    "social_linkedin": Locator(primary='a[href*="linkedin.com"]'),
    "social_youtube": Locator(primary='a[href*="youtube.com"]'),
    "social_tiktok": Locator(primary='a[href*="tiktok.com"]'),

    # -- Hours ---------------------------------------------------------------
    "hours_row": Locator(primary='div[aria-label*="Hours"] table tr'),
    "open_24_hours": Locator(primary='div[aria-label*="Open 24 hours"]'),
    "temporarily_closed": Locator(primary='span[aria-label*="Temporarily closed"]'),
    "permanently_closed": Locator(primary='span[aria-label*="Permanently closed"]'),

    # -- Images --------------------------------------------------------------
    "photo": Locator(primary='button[aria-label*="Photo"] img'),
    "logo": Locator(primary='button[aria-label*="profile"] img'),
    "cover_photo": Locator(primary='button[aria-label*="cover photo"] img'),

    # -- Attribute flags (presence => True) ----------------------------------
    "attr_delivery": Locator(primary='[aria-label*="Delivery"]'),
    "attr_takeout": Locator(primary='[aria-label*="Takeout"]'),
    "attr_dine_in": Locator(primary='[aria-label*="Dine-in"]'),
    "attr_online_ordering": Locator(primary='[aria-label*="Order online"]'),
    "attr_wheelchair_accessible": Locator(primary='[aria-label*="Wheelchair accessible"]'),
    "attr_wifi": Locator(primary='[aria-label*="Wi-Fi"]'),
    "attr_parking": Locator(primary='[aria-label*="parking"]'),
    "attr_credit_cards": Locator(primary='[aria-label*="Credit cards"]'),
    "attr_cash": Locator(primary='[aria-label*="Cash"]'),
    "attr_reservations": Locator(primary='[aria-label*="reservations"]'),
    "attr_good_for_groups": Locator(primary='[aria-label*="Good for groups"]'),
    "attr_good_for_kids": Locator(primary='[aria-label*="Good for kids"]'),
    "attr_outdoor_seating": Locator(primary='[aria-label*="Outdoor seating"]'),
    "attr_vegetarian": Locator(primary='[aria-label*="Vegetarian"]'),
    "attr_vegan": Locator(primary='[aria-label*="Vegan"]'),
    "attr_kosher": Locator(primary='[aria-label*="Kosher"]'),

    # -- Blocking states -----------------------------------------------------
    "captcha": Locator(
        primary='iframe[src*="recaptcha"]',
        fallbacks=('iframe[src*="captcha"]', "#captcha", ".g-recaptcha", "form#captcha-form"),
    ),
}


class SelectorTable(BaseModel):
    """Immutable field-name -> Locator mapping, safe to share across workers."""

    model_config = ConfigDict(frozen=True)

    locators: Dict[str, Locator]

    def get(self, name: str) -> Locator:
        try:
            return self.locators[name]
        except KeyError:
            raise KeyError(f"No selector registered for field '{name}'") from None

    def __getitem__(self, name: str) -> Locator:
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.locators

    def with_overrides(self, overrides: Dict[str, Union[str, dict]]) -> "SelectorTable":
        merged = dict(self.locators)
        for name, raw in overrides.items():
            if isinstance(raw, str):
                merged[name] = Locator(primary=raw)
            else:
                merged[name] = Locator(
                    primary=raw["primary"],
                    fallbacks=tuple(raw.get("fallbacks", ())),
                )
        return SelectorTable(locators=merged)

    @classmethod
    def default(cls) -> "SelectorTable":
        return cls(locators=dict(DEFAULT_SELECTORS))

    @classmethod
    def from_file(cls, path: Path) -> "SelectorTable":
        """Load overrides from a JSON file on top of the default table."""
        with open(path, "r", encoding="utf-8") as fh:
            overrides = json.load(fh)
        table = cls.default().with_overrides(overrides)
        logger.info("Selector overrides loaded ({} entries)  <-  {}", len(overrides), path)
        return table


def load_selector_table(path: Optional[Path] = None) -> SelectorTable:
    """
    Build the active table.  Call again to pick up edits to the override
    file; the previous table is never mutated.
    """
    path = path or cfg.SELECTORS_FILE
    if path is None:
        return SelectorTable.default()
    return SelectorTable.from_file(Path(path))
