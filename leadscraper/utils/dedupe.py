"""
Cross-session de-duplication of scraped businesses.
"""

import re
from typing import Dict, List, Optional

from loguru import logger

from leadscraper.models.business import Business


_COUNTRY_DIAL_CODE = "972"


def _phone_key(phone: Optional[str]) -> Optional[str]:
    """National number without country code or trunk 0, e.g. "35551234"."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith(_COUNTRY_DIAL_CODE):
        digits = digits[len(_COUNTRY_DIAL_CODE):]
    digits = digits.lstrip("0")
    return digits if len(digits) >= 7 else None


def deduplicate(businesses: List[Business]) -> List[Business]:
    """
    Merge records that share a Maps URL or a phone number.

    The record with the higher completeness wins; ties keep the one seen
    first.  Output order follows first appearance of each business.
    """
    kept: List[Business] = []
    by_key: Dict[str, int] = {}

    for business in businesses:
        keys = []
        if business.google_maps_url:
            keys.append("url:" + business.google_maps_url)
        phone = _phone_key(business.contact.phone)
        if phone:
            keys.append("tel:" + phone)

        slot = next((by_key[k] for k in keys if k in by_key), None)
        if slot is None:
            slot = len(kept)
            kept.append(business)
        elif business.completeness > kept[slot].completeness:
            kept[slot] = business

        for key in keys:
            by_key.setdefault(key, slot)

    unique = kept
    if len(unique) != len(businesses):
        logger.info(
            "De-duplicated {} records -> {} unique", len(businesses), len(unique)
        )
    return unique
