"""
Pydantic data model for scraped business records and scrape outcomes.
"""

import uuid
from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)

import leadscraper.config as cfg

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

# Column order of one exported CSV row.
CSV_COLUMNS = [
    "name",
    "address",
    "city",
    "phone",
    "website",
    "hasWebsite",
    "businessType",
    "rating",
    "reviewCount",
    "hours",
    "latitude",
    "longitude",
    "imageUrls",
    "googleMapsUrl",
    "lastUpdated",
]


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class BusinessHours(BaseModel):
    """Free-text schedule per weekday, exactly as the panel shows it."""

    monday: Optional[str] = None
    tuesday: Optional[str] = None
    wednesday: Optional[str] = None
    thursday: Optional[str] = None
    friday: Optional[str] = None
    saturday: Optional[str] = None
    sunday: Optional[str] = None

    @field_validator(*WEEKDAYS)
    @classmethod
    def strip_blank(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    def is_empty(self) -> bool:
        return not any(getattr(self, day) for day in WEEKDAYS)

    def as_text(self) -> str:
        return "; ".join(
            f"{day.capitalize()}: {getattr(self, day)}"
            for day in WEEKDAYS
            if getattr(self, day)
        )


class BusinessLocation(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    full_address: str = ""
    city: str = ""
    country: str = Field(default_factory=lambda: cfg.DEFAULT_COUNTRY)
    latitude: Optional[float] = Field(None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(None, ge=-180.0, le=180.0)


class BusinessContact(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    phone: Optional[str] = None
    alternative_phone: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None

    @field_validator("phone", "alternative_phone", "website", "email", "whatsapp")
    @classmethod
    def strip_blank(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class BusinessSocialMedia(BaseModel):
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    youtube: Optional[str] = None
    tiktok: Optional[str] = None


class BusinessMetrics(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    rating: Optional[float] = Field(None, ge=0.0, le=5.0)
    review_count: Optional[int] = Field(None, ge=0)
    price_level: Optional[str] = Field(None, pattern=r"^[$₪€£]{1,4}$")


class BusinessAttributes(BaseModel):
    """Tri-state capability flags: True, False, or None (unknown)."""

    has_online_ordering: Optional[bool] = None
    has_delivery: Optional[bool] = None
    has_takeout: Optional[bool] = None
    has_dine_in: Optional[bool] = None
    wheelchair_accessible: Optional[bool] = None
    has_wifi: Optional[bool] = None
    has_parking: Optional[bool] = None
    accepts_credit_cards: Optional[bool] = None
    accepts_cash: Optional[bool] = None
    has_reservations: Optional[bool] = None
    good_for_groups: Optional[bool] = None
    good_for_kids: Optional[bool] = None
    has_outdoor_seating: Optional[bool] = None
    serves_vegetarian: Optional[bool] = None
    serves_vegan: Optional[bool] = None
    serves_kosher: Optional[bool] = None


class BusinessImages(BaseModel):
    photo_urls: List[str] = Field(default_factory=list)
    logo_url: Optional[str] = None
    cover_photo_url: Optional[str] = None


class Business(BaseModel):
    """One business as read from a Google Maps detail panel."""

    model_config = ConfigDict(validate_assignment=True)

    # -- Identity ----------------------------------------------------------
    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        frozen=True,
        description="Assigned once at creation",
    )
    place_id: Optional[str] = Field(None, description="Google place id")

    # -- Names / classification -------------------------------------------
    name: str = ""
    name_english: Optional[str] = None
    name_hebrew: Optional[str] = None
    description: Optional[str] = None
    business_type: str = ""
    categories: List[str] = Field(default_factory=list)

    # -- Groups ------------------------------------------------------------
    location: BusinessLocation = Field(default_factory=BusinessLocation)
    contact: BusinessContact = Field(default_factory=BusinessContact)
    social_media: BusinessSocialMedia = Field(default_factory=BusinessSocialMedia)
    metrics: BusinessMetrics = Field(default_factory=BusinessMetrics)
    attributes: BusinessAttributes = Field(default_factory=BusinessAttributes)

    # -- Operating information ---------------------------------------------
    hours: Optional[BusinessHours] = None
    is_open_24_hours: Optional[bool] = None
    temporarily_closed: Optional[bool] = None
    permanently_closed: Optional[bool] = None

    images: BusinessImages = Field(default_factory=BusinessImages)

    # -- Metadata ----------------------------------------------------------
    google_maps_url: str = ""
    scraped_at: datetime = Field(default_factory=datetime.utcnow)
    last_updated: datetime = Field(default_factory=datetime.utcnow)
    completeness: int = Field(0, ge=0, le=100)

    @computed_field  # type: ignore[misc]
    @property
    def has_website(self) -> bool:
        """Derived from the website field, never set directly."""
        return bool(self.contact.website)

    def finalize(self) -> "Business":
        """Stamp completeness and ``last_updated``; returns self."""
        self.completeness = calculate_completeness(self)
        self.last_updated = datetime.utcnow()
        return self

    def to_csv_row(self) -> Dict[str, object]:
        """Flatten into the exported column layout (see ``CSV_COLUMNS``)."""
        return {
            "name": self.name,
            "address": self.location.full_address,
            "city": self.location.city,
            "phone": self.contact.phone or "",
            "website": self.contact.website or "",
            "hasWebsite": self.has_website,
            "businessType": self.business_type,
            "rating": self.metrics.rating,
            "reviewCount": self.metrics.review_count,
            "hours": self.hours.as_text() if self.hours else "",
            "latitude": self.location.latitude,
            "longitude": self.location.longitude,
            "imageUrls": cfg.IMAGE_URL_SEPARATOR.join(self.images.photo_urls),
            "googleMapsUrl": self.google_maps_url,
            "lastUpdated": self.last_updated.isoformat(),
        }


def create_empty_business(**overrides) -> Business:
    """A fresh record: optional fields unset, lists empty, no website."""
    return Business(**overrides)


def _is_filled(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, BusinessHours):
        return not value.is_empty()
    return True


def calculate_completeness(business: Business) -> int:
    """
    Percentage of the tracked field subset that is populated.

    Pure function of name, address, phone, website, rating, review count,
    hours, logo and description.
    """
    fields = [
        business.name,
        business.location.full_address,
        business.contact.phone,
        business.contact.website,
        business.metrics.rating,
        business.metrics.review_count,
        business.hours,
        business.images.logo_url,
        business.description,
    ]
    filled = sum(1 for value in fields if _is_filled(value))
    return int(filled * 100 / len(fields) + 0.5)


# ── Scrape outcomes ───────────────────────────────────────────────────────────

class ScrapeSuccess(BaseModel):
    status: Literal["success"] = "success"
    business: Business
    card_index: int = 0
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return True


class ScrapeFailure(BaseModel):
    status: Literal["failure"] = "failure"
    category: str
    retryable: bool
    recommended_action: str
    error: str = ""
    card_index: int = 0
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return False


ScrapeResult = Annotated[
    Union[ScrapeSuccess, ScrapeFailure], Field(discriminator="status")
]


class ScrapeBatch(BaseModel):
    """All results of one search session plus timing."""

    business_type: str
    location: str
    results: List[ScrapeResult] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return self.total - self.success_count

    @property
    def success_rate(self) -> float:
        return self.success_count / self.total * 100 if self.total else 0.0

    def businesses(self) -> List[Business]:
        return [r.business for r in self.results if isinstance(r, ScrapeSuccess)]
