"""
Field extraction -- read-only DOM queries that never raise.

Every reader walks a ``Locator``'s candidates in order (primary first,
then fallbacks) and returns the first hit.  A miss, a malformed
selector, or a detached element all come back as the empty value:
``""`` for text, ``None`` for attributes, ``[]`` for lists.

No reader waits.  Callers settle the page once before reading fields.
"""

from typing import Any, List, Optional

from loguru import logger

from leadscraper.selectors import LocatorLike, as_locator


def _candidates(locator: LocatorLike) -> List[str]:
    try:
        return list(as_locator(locator).candidates())
    except Exception as exc:
        logger.debug("Unusable locator {!r}: {}", locator, exc)
        return []


def _query(handle: Any, selector: str) -> Any:
    try:
        return handle.query_selector(selector)
    except Exception as exc:
        logger.debug("Selector query failed ({}): {}", selector, exc)
        return None


def _query_all(handle: Any, selector: str) -> list:
    try:
        return handle.query_selector_all(selector) or []
    except Exception as exc:
        logger.debug("Selector query failed ({}): {}", selector, exc)
        return []


def _text_of(element: Any) -> str:
    try:
        text = element.text_content()
    except Exception as exc:
        logger.debug("text_content() failed: {}", exc)
        return ""
    return " ".join((text or "").split())


def _attribute_of(element: Any, name: str) -> Optional[str]:
    try:
        value = element.get_attribute(name)
    except Exception as exc:
        logger.debug("get_attribute({}) failed: {}", name, exc)
        return None
    if value is None:
        return None
    value = value.strip()
    return value or None


def extract_text(handle: Any, locator: LocatorLike) -> str:
    """Whitespace-normalised text of the first matching element, or ``""``."""
    for selector in _candidates(locator):
        element = _query(handle, selector)
        if element is None:
            continue
        text = _text_of(element)
        if text:
            return text
    return ""


def extract_attribute(handle: Any, locator: LocatorLike, name: str) -> Optional[str]:
    """Attribute *name* of the first matching element that carries it."""
    for selector in _candidates(locator):
        element = _query(handle, selector)
        if element is None:
            continue
        value = _attribute_of(element, name)
        if value is not None:
            return value
    return None


def extract_href(handle: Any, locator: LocatorLike) -> Optional[str]:
    return extract_attribute(handle, locator, "href")


def extract_aria_label(handle: Any, locator: LocatorLike) -> Optional[str]:
    return extract_attribute(handle, locator, "aria-label")


def element_exists(handle: Any, locator: LocatorLike) -> bool:
    for selector in _candidates(locator):
        if _query(handle, selector) is not None:
            return True
    return False


def extract_all_attributes(
    handle: Any,
    locator: LocatorLike,
    name: str,
) -> List[str]:
    """
    Attribute *name* of every element matching the first candidate that
    matches anything, in DOM order, duplicates dropped.
    """
    for selector in _candidates(locator):
        elements = _query_all(handle, selector)
        if not elements:
            continue
        values: List[str] = []
        for element in elements:
            value = _attribute_of(element, name)
            if value and value not in values:
                values.append(value)
        return values
    return []


def extract_row_cells(handle: Any, locator: LocatorLike, cell: str = "td") -> List[List[str]]:
    """Text of each *cell* inside every row matching *locator*."""
    rows: List[List[str]] = []
    for selector in _candidates(locator):
        elements = _query_all(handle, selector)
        if not elements:
            continue
        for row in elements:
            cells = [_text_of(c) for c in _query_all(row, cell)]
            if any(cells):
                rows.append(cells)
        return rows
    return rows
