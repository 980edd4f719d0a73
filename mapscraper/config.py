"""
Configuration module for the Maps scraper.
All settings can be overridden via CLI arguments, environment variables or a YAML file.
"""
import os
import random
import logging
from typing import List, Optional
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote

logger = logging.getLogger(__name__)


MAPS_BASE_URL = "https://www.google.com/maps"

# Hard ceiling on concurrent browser workers
MAX_WORKERS_CEILING = 10

WAIT_STRATEGIES = ("domcontentloaded", "networkidle", "load")

USER_AGENTS = [
    # Windows - Chrome
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    # Windows - Edge
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36 Edg/119.0.0.0",
    # macOS - Chrome / Safari
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    # Linux - Chrome
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]


@dataclass
class ScraperConfig:
    """Main configuration class for the scraper"""

    # Work distribution
    max_workers: int = 5
    items_per_worker: int = 5
    parallel_enabled: bool = True

    # Proxy Configuration
    proxy_enabled: bool = False
    proxy_source_path: str = "proxies.txt"

    # Browser Configuration
    headless: bool = True
    executable_path: Optional[str] = None
    viewport_width: int = 1920
    viewport_height: int = 1080
    locale: str = "en-US"
    user_agents: List[str] = field(default_factory=lambda: list(USER_AGENTS))

    # Navigation
    base_url: str = MAPS_BASE_URL
    wait_until: str = "domcontentloaded"
    detail_wait_until: str = "networkidle"
    navigation_timeout: float = 60.0  # seconds
    warmup_timeout: float = 30.0
    detect_timeout: float = 8.0
    feed_timeout: float = 15.0
    star_timeout: float = 15.0
    settle_delay: float = 2.0
    recheck_delay: float = 2.0

    # Pagination
    max_scroll_attempts: int = 10
    scroll_delay_min: float = 1.2
    scroll_delay_max: float = 2.0

    # Extraction
    strict: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    debug_mode: bool = False

    def __post_init__(self):
        self.max_workers = clamp_workers(self.max_workers)
        if not isinstance(self.items_per_worker, int) or self.items_per_worker < 1:
            self.items_per_worker = 5
        if self.wait_until not in WAIT_STRATEGIES:
            logger.warning(f"Unknown wait strategy {self.wait_until!r}, using domcontentloaded")
            self.wait_until = "domcontentloaded"
        if self.detail_wait_until not in WAIT_STRATEGIES:
            self.detail_wait_until = "networkidle"

    def get_user_agent(self, rng=random) -> str:
        """Get a random user agent"""
        return rng.choice(self.user_agents)

    def get_scroll_delay(self, rng=random) -> float:
        """Get a randomized pause between scroll steps"""
        return rng.uniform(self.scroll_delay_min, self.scroll_delay_max)

    def search_url(self, query: str) -> str:
        return f"{self.base_url}/search/{quote(query, safe='')}?hl=en"

    @property
    def home_url(self) -> str:
        return f"{self.base_url}?hl=en"


def clamp_workers(value) -> int:
    """Clamp a worker count into 1..MAX_WORKERS_CEILING, defaulting to 5"""
    try:
        workers = int(value)
    except (TypeError, ValueError):
        return 5
    return min(MAX_WORKERS_CEILING, max(1, workers))


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}")
        return default


def load_config_from_env() -> ScraperConfig:
    """Load configuration from environment variables"""
    config = ScraperConfig()

    config.parallel_enabled = os.getenv("PARALLEL_ENABLED", "").lower() != "false"
    config.max_workers = clamp_workers(_env_int("MAX_WORKERS", 5))

    items = _env_int("ITEMS_PER_WORKER", 5)
    config.items_per_worker = items if items > 0 else 5

    config.proxy_enabled = os.getenv("PROXY_ENABLED", "").lower() == "true"
    if os.getenv("PROXY_FILE"):
        config.proxy_source_path = os.getenv("PROXY_FILE")

    if os.getenv("SCRAPER_HEADLESS"):
        config.headless = os.getenv("SCRAPER_HEADLESS").lower() == "true"

    if os.getenv("BROWSER_EXECUTABLE"):
        config.executable_path = os.getenv("BROWSER_EXECUTABLE")

    wait_until = os.getenv("SCRAPER_WAIT_UNTIL")
    if wait_until in WAIT_STRATEGIES:
        config.wait_until = wait_until

    if os.getenv("SCRAPER_LOG_LEVEL"):
        config.log_level = os.getenv("SCRAPER_LOG_LEVEL")

    return config


def load_config_from_file(config_path: str) -> ScraperConfig:
    """Load configuration from YAML file"""
    import yaml

    config = ScraperConfig()

    if not Path(config_path).exists():
        logger.warning(f"Config file not found: {config_path}")
        return config

    with open(config_path, 'r') as f:
        yaml_config = yaml.safe_load(f)

    if yaml_config:
        for key, value in yaml_config.items():
            if hasattr(config, key):
                setattr(config, key, value)
            else:
                logger.debug(f"Ignoring unknown config key: {key}")

    # Re-apply bounds after raw assignment
    config.__post_init__()
    return config
