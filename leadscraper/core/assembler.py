"""
Business assembly -- turns one loaded detail panel into one ``Business``.

Each field group is read independently through the never-raising
extractors, so a missing phone number or an absent hours table leaves
that field at its empty default and the rest of the record still fills
in.  The only error raised here is ``PanelNotReadyError``: the caller
promised a loaded panel and did not deliver one.
"""

import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse

from loguru import logger

from leadscraper.config import ScraperSettings
from leadscraper.core.errors import PanelNotReadyError
from leadscraper.core.extractor import (
    element_exists,
    extract_all_attributes,
    extract_aria_label,
    extract_attribute,
    extract_href,
    extract_row_cells,
    extract_text,
)
from leadscraper.models.business import (
    WEEKDAYS,
    Business,
    BusinessAttributes,
    BusinessContact,
    BusinessHours,
    BusinessImages,
    BusinessLocation,
    BusinessMetrics,
    BusinessSocialMedia,
    create_empty_business,
)
from leadscraper.selectors import SelectorTable

# ── Regex patterns ────────────────────────────────────────────────────────────

# "4.5 stars", "4,5 Stars", "5 star"
_RATING_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*stars?\b", re.IGNORECASE)

# "1,234 reviews", "1 review"
_REVIEWS_RE = re.compile(r"(\d[\d,.]*)\s*reviews?\b", re.IGNORECASE)

# "$$", "₪₪₪"
_PRICE_RE = re.compile(r"[$₪€£]{1,4}")

# Coordinates embedded in the place URL
_DATA_COORDS_RE = re.compile(r"!3d(-?\d+(?:\.\d+)?)!4d(-?\d+(?:\.\d+)?)")
_AT_COORDS_RE = re.compile(r"@(-?\d+(?:\.\d+)?),(-?\d+(?:\.\d+)?)")

# Place id: "!19sChIJ..." (preferred), "!1s0x...:0x..." (feature id)
_PLACE_ID_RES = (
    re.compile(r"!19s(ChIJ[^!?/&]+)"),
    re.compile(r"!1s([^!?/&]+)"),
    re.compile(r"/(ChIJ[\w-]{10,})"),
)

# Icon glyphs Google prefixes to address/phone rows (private-use area)
_ICON_RE = re.compile("[\ue000-\uf8ff]")

_HEBREW_RE = re.compile("[\u0590-\u05ff]")

_OPEN_24_RE = re.compile(r"open 24 hours", re.IGNORECASE)

ATTRIBUTE_SELECTORS = {
    "has_online_ordering": "attr_online_ordering",
    "has_delivery": "attr_delivery",
    "has_takeout": "attr_takeout",
    "has_dine_in": "attr_dine_in",
    "wheelchair_accessible": "attr_wheelchair_accessible",
    "has_wifi": "attr_wifi",
    "has_parking": "attr_parking",
    "accepts_credit_cards": "attr_credit_cards",
    "accepts_cash": "attr_cash",
    "has_reservations": "attr_reservations",
    "good_for_groups": "attr_good_for_groups",
    "good_for_kids": "attr_good_for_kids",
    "has_outdoor_seating": "attr_outdoor_seating",
    "serves_vegetarian": "attr_vegetarian",
    "serves_vegan": "attr_vegan",
    "serves_kosher": "attr_kosher",
}

SOCIAL_PLATFORMS = ("facebook", "instagram", "twitter", "linkedin", "youtube", "tiktok")


# ── Text-parsing helpers ─────────────────────────────────────────────────────

def parse_rating(label: Optional[str]) -> Optional[float]:
    """First "<decimal> star(s)" in *label*, if it is a valid 0-5 rating."""
    if not label:
        return None
    match = _RATING_RE.search(label)
    if not match:
        return None
    rating = float(match.group(1).replace(",", "."))
    if not 0.0 <= rating <= 5.0:
        return None
    return rating


def parse_review_count(text: Optional[str]) -> Optional[int]:
    """First "<N> review(s)" in *text*; thousands separators allowed."""
    if not text:
        return None
    match = _REVIEWS_RE.search(text)
    if not match:
        return None
    digits = re.sub(r"\D", "", match.group(1))
    return int(digits) if digits else None


def parse_price_level(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = _PRICE_RE.search(text)
    return match.group(0) if match else None


def derive_city(address: str) -> str:
    """
    Second-to-last comma segment of *address*, trimmed.

    "Dizengoff 123, Tel Aviv, Israel" -> "Tel Aviv".  A heuristic, not a
    geocoder: irregular addresses will produce odd cities.
    """
    parts = address.split(",")
    if len(parts) < 2:
        return ""
    return parts[-2].strip()


def parse_coordinates(url: str) -> Tuple[Optional[float], Optional[float]]:
    """Latitude/longitude from a Maps place URL, if present and in range."""
    if not url:
        return None, None
    match = _DATA_COORDS_RE.search(url) or _AT_COORDS_RE.search(url)
    if not match:
        return None, None
    lat, lng = float(match.group(1)), float(match.group(2))
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None, None
    return lat, lng


def extract_place_id(url: str) -> Optional[str]:
    if not url:
        return None
    for pattern in _PLACE_ID_RES:
        match = pattern.search(url)
        if match:
            return unquote(match.group(1))
    return None


def clean_website(href: Optional[str]) -> Optional[str]:
    """Unwrap Google redirect links; reject non-http and Google-owned URLs."""
    if not href:
        return None
    try:
        parsed = urlparse(href)
    except ValueError:
        logger.debug("Unparseable website href: {}", href)
        return None
    if parsed.netloc.startswith("www.google.") and parsed.path == "/url":
        target = parse_qs(parsed.query).get("q", [""])[0]
        return clean_website(target)
    if parsed.scheme not in ("http", "https"):
        return None
    if "google." in parsed.netloc or "gstatic.com" in parsed.netloc:
        return None
    return href


def clean_phone(text: str) -> str:
    text = _ICON_RE.sub("", text or "")
    text = re.sub(r"^(tel:|call|phone:?)", "", text.strip(), flags=re.IGNORECASE)
    return re.sub(r"[^\d\s\-()+]", "", text).strip()


def clean_text(text: str) -> str:
    return " ".join(_ICON_RE.sub("", text or "").split())


def _weekday_key(label: str) -> Optional[str]:
    label = label.strip().lower()[:3]
    for day in WEEKDAYS:
        if label and day.startswith(label):
            return day
    return None


# ── Assembler ────────────────────────────────────────────────────────────────

class BusinessAssembler:
    """Read every field group of a loaded detail panel into a ``Business``."""

    def __init__(
        self,
        selectors: SelectorTable,
        settings: Optional[ScraperSettings] = None,
    ) -> None:
        self.selectors = selectors
        self.settings = settings or ScraperSettings()

    def assemble(self, page: Any) -> Business:
        self._require_panel(page)

        business = create_empty_business(
            location=BusinessLocation(country=self.settings.default_country),
        )
        self._populate_identity(page, business)
        self._populate_contact(page, business)
        self._populate_metrics(page, business)
        self._populate_social(page, business)
        self._populate_attributes(page, business)
        self._populate_hours(page, business)
        self._populate_images(page, business)
        business.finalize()

        logger.debug(
            "Assembled '{}' (completeness {}%, website={})",
            business.name,
            business.completeness,
            business.has_website,
        )
        return business

    # -- Precondition -------------------------------------------------------

    def _require_panel(self, page: Any) -> None:
        panel = self.selectors.get("detail_panel")
        try:
            found = page.query_selector(panel.primary)
        except Exception as exc:
            raise PanelNotReadyError(f"Detail panel not queryable: {exc}") from exc
        if found is None:
            raise PanelNotReadyError(f"Detail panel not found ({panel.primary})")

    # -- Field groups -------------------------------------------------------

    def _populate_identity(self, page: Any, business: Business) -> None:
        sel = self.selectors
        name = clean_text(extract_text(page, sel["business_name"]))
        business.name = name
        if name:
            if _HEBREW_RE.search(name):
                business.name_hebrew = name
            else:
                business.name_english = name

        url = getattr(page, "url", "") or ""
        business.google_maps_url = url
        business.place_id = extract_place_id(url)

        business_type = clean_text(extract_text(page, sel["business_type"]))
        business.business_type = business_type or "Unknown"
        business.categories = [business_type] if business_type else []

        description = clean_text(extract_text(page, sel["description"]))
        business.description = description or None

    def _populate_contact(self, page: Any, business: Business) -> None:
        sel = self.selectors
        phone = clean_phone(extract_text(page, sel["phone"]))
        tel_href = clean_phone(extract_href(page, sel["phone_link"]) or "")
        alternative = None
        if not phone:
            phone = tel_href
        elif tel_href and re.sub(r"\D", "", tel_href) != re.sub(r"\D", "", phone):
            alternative = tel_href

        email = extract_href(page, sel["email_link"]) or ""
        email = email[len("mailto:"):].split("?")[0] if email.lower().startswith("mailto:") else ""

        business.contact = BusinessContact(
            phone=phone,
            alternative_phone=alternative,
            website=clean_website(extract_href(page, sel["website"])),
            email=email,
            whatsapp=extract_href(page, sel["whatsapp_link"]),
        )

        address = clean_text(extract_text(page, sel["address"]))
        lat, lng = parse_coordinates(business.google_maps_url)
        business.location = BusinessLocation(
            full_address=address,
            city=derive_city(address),
            country=business.location.country,
            latitude=lat,
            longitude=lng,
        )

    def _populate_metrics(self, page: Any, business: Business) -> None:
        sel = self.selectors
        rating = parse_rating(extract_aria_label(page, sel["rating"]))

        reviews_label = extract_aria_label(page, sel["review_count"])
        review_count = parse_review_count(reviews_label)
        if review_count is None:
            review_count = parse_review_count(extract_text(page, sel["review_count"]))

        price = parse_price_level(extract_text(page, sel["price_level"]))

        business.metrics = BusinessMetrics(
            rating=rating,
            review_count=review_count,
            price_level=price,
        )

    def _populate_social(self, page: Any, business: Business) -> None:
        links: Dict[str, Optional[str]] = {
            platform: extract_href(page, self.selectors[f"social_{platform}"])
            for platform in SOCIAL_PLATFORMS
        }
        business.social_media = BusinessSocialMedia(**links)

    def _populate_attributes(self, page: Any, business: Business) -> None:
        flags = {
            field: (True if element_exists(page, self.selectors[key]) else None)
            for field, key in ATTRIBUTE_SELECTORS.items()
        }
        business.attributes = BusinessAttributes(**flags)

    def _populate_hours(self, page: Any, business: Business) -> None:
        sel = self.selectors
        schedule: Dict[str, str] = {}
        for cells in extract_row_cells(page, sel["hours_row"]):
            if len(cells) < 2:
                continue
            day = _weekday_key(cells[0])
            if day and cells[1]:
                schedule[day] = cells[1]

        hours = BusinessHours(**schedule)
        business.hours = None if hours.is_empty() else hours

        always_open = element_exists(page, sel["open_24_hours"]) or any(
            _OPEN_24_RE.search(text) for text in schedule.values()
        )
        if always_open:
            business.is_open_24_hours = True
        if element_exists(page, sel["temporarily_closed"]):
            business.temporarily_closed = True
        if element_exists(page, sel["permanently_closed"]):
            business.permanently_closed = True

    def _populate_images(self, page: Any, business: Business) -> None:
        sel = self.selectors
        photos: List[str] = extract_all_attributes(page, sel["photo"], "src")
        business.images = BusinessImages(
            photo_urls=photos,
            logo_url=extract_attribute(page, sel["logo"], "src"),
            cover_photo_url=extract_attribute(page, sel["cover_photo"], "src"),
        )
