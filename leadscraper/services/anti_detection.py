"""
Anti-detection helpers: randomised browser identities, human-like delays,
fingerprint overrides, and proxy rotation.
"""

import itertools
import random
import threading
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict

import leadscraper.config as cfg
from leadscraper.config import RateLimitConfig

# ── Rotating identity pools ───────────────────────────────────────────────

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
]

VIEWPORTS = [
    {"width": 1920, "height": 1080},
    {"width": 1366, "height": 768},
    {"width": 1440, "height": 900},
    {"width": 1536, "height": 864},
    {"width": 1280, "height": 720},
    {"width": 1600, "height": 900},
]

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--disable-extensions",
    "--disable-notifications",
]

EXTRA_HEADERS = {
    "accept-language": "en-US,en;q=0.9,he;q=0.8",
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
}

# Property overrides run before any page script.
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', {
  get: () => [
    { name: 'Chrome PDF Plugin', description: 'Portable Document Format' },
    { name: 'Chrome PDF Viewer', description: 'Portable Document Format' },
    { name: 'Native Client', description: 'Native Client' },
  ],
});
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en', 'he'] });
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) =>
  parameters.name === 'notifications'
    ? Promise.resolve({ state: Notification.permission })
    : originalQuery(parameters);
window.chrome = window.chrome || { runtime: {} };
"""


class Identity(BaseModel):
    """Outward-facing fingerprint of one browser context."""

    model_config = ConfigDict(frozen=True)

    user_agent: str
    viewport: dict
    proxy: Optional[str] = None


def random_identity(proxy: Optional[str] = None) -> Identity:
    user_agent = random.choice(USER_AGENTS) if cfg.RANDOMIZE_USER_AGENT else USER_AGENTS[0]
    viewport = random.choice(VIEWPORTS) if cfg.RANDOMIZE_VIEWPORT else VIEWPORTS[0]
    return Identity(user_agent=user_agent, viewport=dict(viewport), proxy=proxy)


# ── Delays ────────────────────────────────────────────────────────────────

def random_delay_ms(rate_limit: RateLimitConfig, multiplier: float = 1.0) -> int:
    """Uniform integer delay within the (optionally scaled) window."""
    low = int(rate_limit.min_delay * multiplier)
    high = int(rate_limit.max_delay * multiplier)
    return random.randint(low, max(low, high))


def human_delay(page, min_ms: int = 1000, max_ms: int = 3000) -> int:
    """Pause the page for a random interval; returns the delay used."""
    delay = random.randint(min_ms, max(min_ms, max_ms))
    page.wait_for_timeout(delay)
    return delay


def simulate_human_behavior(page) -> None:
    """Wander the mouse and pause briefly, as a reader would."""
    try:
        page.mouse.move(
            random.uniform(100, 900),
            random.uniform(100, 700),
            steps=10,
        )
        human_delay(page, 500, 1500)
    except Exception as exc:
        logger.warning("Failed to simulate human behaviour: {}", exc)


# ── Proxies ───────────────────────────────────────────────────────────────

def _proxy_pool() -> List[str]:
    pool = [p.strip() for p in cfg.PROXY_URL.split(",") if p.strip()]
    # Without rotation every session goes through the first proxy.
    return pool if cfg.ROTATE_PROXIES else pool[:1]


class ProxyRotator:
    """Thread-safe round-robin over the configured proxy servers."""

    def __init__(self, proxies: Optional[List[str]] = None) -> None:
        self.proxies = list(proxies if proxies is not None else _proxy_pool())
        self._cycle = itertools.cycle(self.proxies) if self.proxies else None
        self._lock = threading.Lock()

    def __bool__(self) -> bool:
        return bool(self.proxies)

    def next(self) -> Optional[str]:
        if self._cycle is None:
            return None
        with self._lock:
            proxy = next(self._cycle)
        logger.debug("Proxy selected  ->  {}", proxy)
        return proxy

    @staticmethod
    def playwright_proxy(server: Optional[str]) -> Optional[dict]:
        """Playwright ``proxy=`` dict, with credentials when configured."""
        if not server:
            return None
        proxy = {"server": server}
        if cfg.PROXY_USERNAME:
            proxy["username"] = cfg.PROXY_USERNAME
            proxy["password"] = cfg.PROXY_PASSWORD
        return proxy
