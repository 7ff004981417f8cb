"""
Robust error handling: logging setup, screenshot capture, and the
caller-level retry loop driven by ``RetryPolicy`` decisions.
"""

import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

import leadscraper.config as cfg
from leadscraper.core.errors import (
    CaptchaDetectedError,
    RetriesExhaustedError,
    RetryDecision,
    RetryPolicy,
    describe,
)

_logging_lock = threading.Lock()
_logging_ready = False


class ErrorHandler:
    """Centralised error handling and recovery utilities."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy(cfg.MAX_RETRIES)
        self._sleep = sleep

    # -- Logging -----------------------------------------------------------

    @staticmethod
    def setup_logging(level: Optional[str] = None) -> None:
        """Configure loguru sinks (console + rotating file), once per process."""
        global _logging_ready
        with _logging_lock:
            if _logging_ready:
                return
            level = level or cfg.LOG_LEVEL
            logger.remove()
            logger.add(sys.stderr, level=level)
            cfg.LOGS_DIR.mkdir(parents=True, exist_ok=True)
            log_path = cfg.LOGS_DIR / "scraper_{time:YYYY-MM-DD}.log"
            logger.add(
                str(log_path),
                rotation="10 MB",
                retention="7 days",
                level="DEBUG",
                encoding="utf-8",
                enqueue=True,
                format="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {thread.name} | {message}",
            )
            _logging_ready = True
        logger.info("Logging initialised  ->  {}", cfg.LOGS_DIR)

    # -- Screenshots -------------------------------------------------------

    @staticmethod
    def take_screenshot(page: Any, error_name: str) -> Optional[Path]:
        """Save a screenshot when something goes wrong."""
        if not cfg.ENABLE_SCREENSHOTS or page is None:
            return None

        cfg.LOGS_DIR.mkdir(parents=True, exist_ok=True)
        ts = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        filename = cfg.LOGS_DIR / f"{ts}_{error_name}.png"
        try:
            page.screenshot(path=str(filename), full_page=True)
            logger.warning("Screenshot saved  ->  {}", filename)
            return filename
        except Exception as exc:
            logger.error("Failed to save screenshot: {}", exc)
            return None

    # -- Retry driven by error classification --------------------------------

    def backoff_seconds(self, attempt: int, decision: RetryDecision) -> float:
        return min(
            cfg.RETRY_BACKOFF_BASE ** attempt * decision.delay_multiplier,
            cfg.RETRY_BACKOFF_MAX,
        )

    def run_with_retry(
        self,
        func: Callable[[int, float], Any],
        on_rotate: Optional[Callable[[RetryDecision], None]] = None,
        label: str = "operation",
    ) -> Any:
        """
        Call ``func(attempt, delay_multiplier)`` until it succeeds or the
        policy says stop.

        Captcha re-raises immediately.  Any other non-retryable decision
        raises ``RetriesExhaustedError`` chained to the last failure.
        ``on_rotate`` is invoked before the next attempt whenever the
        decision recommends a new identity or proxy.
        """
        attempt = 1
        multiplier = 1.0
        while True:
            try:
                return func(attempt, multiplier)
            except CaptchaDetectedError:
                logger.error("{}: captcha served -- giving up", label)
                raise
            except Exception as exc:
                decision = self.policy.decide(exc, attempt)
                if not decision.retryable:
                    logger.error(
                        "{} failed after {} attempt(s) ({}): {}",
                        label,
                        attempt,
                        decision.category.value,
                        describe(exc),
                    )
                    raise RetriesExhaustedError(
                        f"{label} failed: {describe(exc)}", decision
                    ) from exc

                wait = self.backoff_seconds(attempt, decision)
                logger.warning(
                    "{}: attempt {}/{} failed ({} -> {}). Retrying in {:.1f}s ...",
                    label,
                    attempt,
                    self.policy.max_retries,
                    decision.category.value,
                    decision.recommended_action.value,
                    wait,
                )
                if decision.rotate_identity and on_rotate is not None:
                    on_rotate(decision)
                multiplier = max(multiplier, decision.delay_multiplier)
                self._sleep(wait)
                attempt += 1
