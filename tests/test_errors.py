import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from leadscraper.core.errors import (
    CATEGORY_KIND,
    CaptchaDetectedError,
    ErrorCategory,
    ErrorKind,
    PanelNotReadyError,
    RecommendedAction,
    ResultsTimeoutError,
    RetryPolicy,
    classify_error,
    describe,
)


@pytest.mark.parametrize(
    "exc, category",
    [
        (CaptchaDetectedError("challenge"), ErrorCategory.CAPTCHA),
        (RuntimeError("Our systems have detected unusual traffic"), ErrorCategory.CAPTCHA),
        (RuntimeError("HTTP 429 Too Many Requests"), ErrorCategory.RATE_LIMIT),
        (RuntimeError("403 Forbidden"), ErrorCategory.BOT_DETECTION),
        (PlaywrightError("net::ERR_CONNECTION_RESET at https://maps"), ErrorCategory.NETWORK_ERROR),
        (ConnectionError("peer went away"), ErrorCategory.NETWORK_ERROR),
        (PlaywrightTimeoutError("Timeout 10000ms exceeded."), ErrorCategory.TIMEOUT),
        (ResultsTimeoutError("no cards"), ErrorCategory.TIMEOUT),
        (PanelNotReadyError("panel missing"), ErrorCategory.SELECTOR_NOT_FOUND),
        (ValueError("Unable to find element"), ErrorCategory.SELECTOR_NOT_FOUND),
        (ValueError("something odd"), ErrorCategory.UNKNOWN),
        (
            PlaywrightTimeoutError(
                "Timeout 30000ms exceeded.\n=== logs ===\nnavigating to "
                "\"https://www.google.com/maps/search/blocked%20drains%20in%20Haifa/\""
            ),
            ErrorCategory.TIMEOUT,
        ),
        (TimeoutError("timed out behind proxy 10.0.0.1"), ErrorCategory.TIMEOUT),
        (ConnectionError("403 from upstream"), ErrorCategory.NETWORK_ERROR),
    ],
)
def test_classify_error(exc, category):
    assert classify_error(exc) is category


def test_every_category_has_a_kind():
    assert set(CATEGORY_KIND) == set(ErrorCategory)
    assert CATEGORY_KIND[ErrorCategory.CAPTCHA] is ErrorKind.BLOCKING_CHALLENGE


def test_captcha_never_retries():
    decision = RetryPolicy(max_retries=5).decide(ErrorCategory.CAPTCHA, attempt=1)
    assert decision.retryable is False
    assert decision.recommended_action is RecommendedAction.ABORT


def test_rate_limit_escalates_delay_and_rotates():
    policy = RetryPolicy(max_retries=3)
    first = policy.decide(ErrorCategory.RATE_LIMIT, attempt=1)
    second = policy.decide(ErrorCategory.RATE_LIMIT, attempt=2)

    assert first.retryable and second.retryable
    assert first.recommended_action is RecommendedAction.ESCALATE_DELAY_AND_ROTATE_IDENTITY
    assert first.rotate_identity is True
    assert second.delay_multiplier > first.delay_multiplier > 1.0


def test_selector_miss_retried_once():
    policy = RetryPolicy(max_retries=3)
    first = policy.decide(ErrorCategory.SELECTOR_NOT_FOUND, attempt=1)
    second = policy.decide(ErrorCategory.SELECTOR_NOT_FOUND, attempt=2)

    assert first.retryable is True
    assert first.recommended_action is RecommendedAction.REFRESH_SELECTORS
    assert second.retryable is False
    assert second.recommended_action is RecommendedAction.ABORT


def test_network_error_rotates_proxy():
    decision = RetryPolicy().decide(ConnectionError("reset"))
    assert decision.recommended_action is RecommendedAction.ROTATE_PROXY
    assert decision.rotate_identity is True


def test_ceiling_stops_retries():
    policy = RetryPolicy(max_retries=3)
    assert policy.decide(ErrorCategory.TIMEOUT, attempt=2).retryable is True
    last = policy.decide(ErrorCategory.TIMEOUT, attempt=3)
    assert last.retryable is False
    assert last.recommended_action is RecommendedAction.ABORT


def test_describe_keeps_first_line():
    exc = PlaywrightTimeoutError("Timeout 100ms exceeded.\n=== logs ===\nwaiting for ...")
    assert describe(exc) == "TimeoutError: Timeout 100ms exceeded."
    assert describe(None) == ""
    assert describe(KeyError()) == "KeyError"
