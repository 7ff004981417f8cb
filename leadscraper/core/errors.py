"""
Failure taxonomy, best-effort error classification, and retry policy.

Google Maps has no structured error channel, so classification goes by
exception type first and falls back to a substring match over the
message for generic exceptions.  It will misfile some errors;
the categories only need to be good enough to pick a recovery action.
The classifier never retries anything itself -- it hands back a
``RetryDecision`` for the caller to act on.
"""

from enum import Enum
from typing import Optional, Union

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel, ConfigDict


# ── Exceptions ────────────────────────────────────────────────────────────────

class ScraperError(Exception):
    """Base class for errors raised by the scraping pipeline."""


class PanelNotReadyError(ScraperError):
    """The detail panel never became queryable."""


class ResultsTimeoutError(ScraperError):
    """No result cards appeared and no "no results" indicator was shown."""


class CaptchaDetectedError(ScraperError):
    """A blocking challenge was served; needs a human or a new identity."""


class RetriesExhaustedError(ScraperError):
    """The caller-level retry loop gave up."""

    def __init__(self, message: str, decision: "RetryDecision") -> None:
        super().__init__(message)
        self.decision = decision


# ── Categories ────────────────────────────────────────────────────────────────

class ErrorCategory(str, Enum):
    RATE_LIMIT = "rate_limit"
    BOT_DETECTION = "bot_detection"
    SELECTOR_NOT_FOUND = "selector_not_found"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    CAPTCHA = "captcha"
    UNKNOWN = "unknown"


class ErrorKind(str, Enum):
    TRANSIENT_NETWORK = "transient_network"
    TRANSIENT_DETECTION = "transient_detection"
    TRANSIENT_TIMEOUT = "transient_timeout"
    STALE_SELECTOR = "stale_selector"
    BLOCKING_CHALLENGE = "blocking_challenge"
    PERMANENT_DATA_ABSENCE = "permanent_data_absence"
    UNCLASSIFIED = "unclassified"


class RecommendedAction(str, Enum):
    RETRY = "retry"
    ESCALATE_DELAY_AND_ROTATE_IDENTITY = "escalate_delay_and_rotate_identity"
    REFRESH_SELECTORS = "refresh_selectors"
    ROTATE_PROXY = "rotate_proxy"
    ABORT = "abort"


CATEGORY_KIND = {
    ErrorCategory.RATE_LIMIT: ErrorKind.TRANSIENT_DETECTION,
    ErrorCategory.BOT_DETECTION: ErrorKind.TRANSIENT_DETECTION,
    ErrorCategory.SELECTOR_NOT_FOUND: ErrorKind.STALE_SELECTOR,
    ErrorCategory.NETWORK_ERROR: ErrorKind.TRANSIENT_NETWORK,
    ErrorCategory.TIMEOUT: ErrorKind.TRANSIENT_TIMEOUT,
    ErrorCategory.CAPTCHA: ErrorKind.BLOCKING_CHALLENGE,
    ErrorCategory.UNKNOWN: ErrorKind.UNCLASSIFIED,
}

# Checked in order; the first category with a matching marker wins.
_MESSAGE_MARKERS = (
    (ErrorCategory.CAPTCHA, ("captcha", "unusual traffic", "/sorry/")),
    (ErrorCategory.RATE_LIMIT, ("429", "too many requests", "rate limit", "quota")),
    (
        ErrorCategory.BOT_DETECTION,
        ("403", "forbidden", "access denied", "blocked", "automated", "robot", "bot detect"),
    ),
    (
        ErrorCategory.NETWORK_ERROR,
        (
            "net::err_",
            "econnreset",
            "econnrefused",
            "connection",
            "proxy",
            "dns",
            "socket",
            "network",
        ),
    ),
    (ErrorCategory.TIMEOUT, ("timeout", "timed out")),
    (
        ErrorCategory.SELECTOR_NOT_FOUND,
        ("selector", "not found", "no element", "unable to find"),
    ),
)


def classify_error(exc: BaseException) -> ErrorCategory:
    """Best-effort mapping of a caught failure onto an ``ErrorCategory``."""
    if isinstance(exc, CaptchaDetectedError):
        return ErrorCategory.CAPTCHA
    if isinstance(exc, PanelNotReadyError):
        return ErrorCategory.SELECTOR_NOT_FOUND

    # Timeout messages embed the navigated URL (and the query words).
    if isinstance(exc, (PlaywrightTimeoutError, ResultsTimeoutError, TimeoutError)):
        return ErrorCategory.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorCategory.NETWORK_ERROR

    message = str(exc).lower()
    for category, markers in _MESSAGE_MARKERS:
        if any(marker in message for marker in markers):
            return category

    if isinstance(exc, PlaywrightError) and "waiting for" in message:
        return ErrorCategory.TIMEOUT
    return ErrorCategory.UNKNOWN


# ── Policy ────────────────────────────────────────────────────────────────────

class RetryDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: ErrorCategory
    kind: ErrorKind
    retryable: bool
    recommended_action: RecommendedAction
    delay_multiplier: float = 1.0

    @property
    def rotate_identity(self) -> bool:
        return self.recommended_action in (
            RecommendedAction.ESCALATE_DELAY_AND_ROTATE_IDENTITY,
            RecommendedAction.ROTATE_PROXY,
        )


class RetryPolicy:
    """
    Decide what to do about a failure on a given attempt (1-based).

    ``max_retries`` is the caller's ceiling on attempts.  Selector misses
    get a single retry; captcha never retries.
    """

    ESCALATION_FACTOR = 2.0

    def __init__(self, max_retries: int = 3) -> None:
        self.max_retries = max_retries

    def decide(
        self,
        failure: Union[BaseException, ErrorCategory],
        attempt: int = 1,
    ) -> RetryDecision:
        if isinstance(failure, ErrorCategory):
            category = failure
        else:
            category = classify_error(failure)

        under_ceiling = attempt < self.max_retries
        multiplier = 1.0

        if category is ErrorCategory.CAPTCHA:
            action = RecommendedAction.ABORT
            retryable = False
        elif category in (ErrorCategory.RATE_LIMIT, ErrorCategory.BOT_DETECTION):
            action = RecommendedAction.ESCALATE_DELAY_AND_ROTATE_IDENTITY
            retryable = under_ceiling
            multiplier = self.ESCALATION_FACTOR ** attempt
        elif category is ErrorCategory.SELECTOR_NOT_FOUND:
            action = RecommendedAction.REFRESH_SELECTORS
            retryable = attempt <= 1 and under_ceiling
        elif category is ErrorCategory.NETWORK_ERROR:
            action = RecommendedAction.ROTATE_PROXY
            retryable = under_ceiling
        elif category is ErrorCategory.TIMEOUT:
            action = RecommendedAction.RETRY
            retryable = under_ceiling
        else:
            action = RecommendedAction.RETRY
            retryable = under_ceiling

        if not retryable and action is not RecommendedAction.ABORT:
            action = RecommendedAction.ABORT

        return RetryDecision(
            category=category,
            kind=CATEGORY_KIND[category],
            retryable=retryable,
            recommended_action=action,
            delay_multiplier=multiplier,
        )


def describe(exc: Optional[BaseException]) -> str:
    """One-line error text for logs and failure records."""
    if exc is None:
        return ""
    text = str(exc).strip().splitlines()
    first = text[0] if text else ""
    return f"{type(exc).__name__}: {first}" if first else type(exc).__name__
