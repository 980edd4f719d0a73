"""
Browser layer for the Maps scraper.
Launches Playwright browser sessions with anti-detection and proxy settings,
and hands them out to the navigation and extraction steps.
"""
import asyncio
import logging
import os
import random
import re
import sys
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import async_playwright, Browser, BrowserContext, Page
from playwright.async_api import Error as PlaywrightError

from .config import ScraperConfig
from .proxies import ProxyEntry, choose_proxy, load_proxies

logger = logging.getLogger(__name__)


class ScrapeError(Exception):
    """Base exception for failures surfaced to callers"""
    pass


class StartupError(ScrapeError):
    """Raised when no usable browser executable can be found"""
    pass


class SessionDisconnect(ScrapeError):
    """Raised when the browser went away underneath an operation"""
    pass


class NavigationTimeout(ScrapeError):
    """Raised when a navigation or wait exceeded its timeout"""
    pass


BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-blink-features=AutomationControlled',
    '--disable-infobars',
    '--disable-dev-shm-usage',
]

STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
    Object.defineProperty(navigator, 'languages', {get: () => ['en-US', 'en']});
"""

_DISCONNECT_MARKERS = (
    'target page, context or browser has been closed',
    'target closed',
    'browser has been closed',
    'browser has disconnected',
    'connection closed',
)

_STARTUP_MARKERS = (
    "executable doesn't exist",
    "host system is missing dependencies",
    "missing libraries",
)


def is_disconnect_error(exc: BaseException) -> bool:
    """Does this exception mean the browser session is gone?"""
    if isinstance(exc, SessionDisconnect):
        return True
    if not isinstance(exc, PlaywrightError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in _DISCONNECT_MARKERS)


def is_startup_error(exc: BaseException) -> bool:
    """Does this launch failure mean the browser cannot run on this host at all?"""
    message = str(exc).lower()
    return any(marker in message for marker in _STARTUP_MARKERS)


def windows_browser_candidates() -> List[str]:
    username = os.getenv("USERNAME", "")
    return [
        r"C:\Program Files\Google\Chrome\Application\chrome.exe",
        r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
        rf"C:\Users\{username}\AppData\Local\Google\Chrome\Application\chrome.exe",
        r"C:\Program Files\Microsoft\Edge\Application\msedge.exe",
        r"C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe",
        r"C:\Program Files\BraveSoftware\Brave-Browser\Application\brave.exe",
        r"C:\Program Files (x86)\BraveSoftware\Brave-Browser\Application\brave.exe",
    ]


def find_browser_executable(config: ScraperConfig, platform: str = sys.platform) -> Optional[str]:
    """
    Resolve the browser binary to launch.

    Returns None when Playwright's bundled Chromium should be used.
    Raises StartupError when an executable is required but missing.
    """
    if config.executable_path:
        if Path(config.executable_path).exists():
            return config.executable_path
        raise StartupError(f"Browser executable not found: {config.executable_path}")

    if platform == "win32":
        for candidate in windows_browser_candidates():
            if Path(candidate).exists():
                return candidate
        raise StartupError(
            "Browser not found. Install Chrome/Edge/Brave, or set BROWSER_EXECUTABLE."
        )

    return None


@dataclass
class BrowserSession:
    """One browser process plus its context, owned by a single worker"""

    browser: Browser
    context: BrowserContext
    user_agent: str
    proxy: Optional[ProxyEntry] = None
    shared: bool = False
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    closed: bool = False

    def is_connected(self) -> bool:
        return not self.closed and self.browser.is_connected()

    @property
    def short_user_agent(self) -> str:
        match = re.search(r'Edg/[\d.]+|Firefox/[\d.]+|Chrome/[\d.]+|Safari/[\d.]+', self.user_agent or "")
        return match.group(0) if match else "Unknown"

    @property
    def proxy_info(self) -> str:
        if self.proxy is None:
            return "No Proxy"
        return f"{self.proxy} (authenticated)" if self.proxy.has_auth else str(self.proxy)

    async def new_page(self) -> Page:
        if not self.is_connected():
            raise SessionDisconnect(f"Session {self.session_id} is disconnected")
        try:
            return await self.context.new_page()
        except PlaywrightError as e:
            if is_disconnect_error(e):
                raise SessionDisconnect(str(e)) from e
            raise ScrapeError(f"Session {self.session_id} could not open a page: {e}") from e

    @asynccontextmanager
    async def page(self):
        """Open a page that is closed on every exit path"""
        page = await self.new_page()
        try:
            yield page
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"[Session {self.session_id}] Page close failed: {e}")

    async def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            await self.context.close()
        except PlaywrightError as e:
            logger.debug(f"[Session {self.session_id}] Context close failed: {e}")
        try:
            await self.browser.close()
        except PlaywrightError as e:
            logger.debug(f"[Session {self.session_id}] Browser close failed: {e}")


class SessionProvider:
    """
    Creates browser sessions.

    launch() / session() hand out exclusive sessions for workers.
    acquire() returns the lazily created shared session; concurrent callers
    await the same launch, and a driver disconnect clears the cache so the
    next acquire() relaunches.
    """

    def __init__(
        self,
        config: ScraperConfig,
        proxies: Optional[Sequence[ProxyEntry]] = None,
        rng: Optional[random.Random] = None,
        playwright_factory=async_playwright,
    ):
        self.config = config
        if proxies is None:
            proxies = load_proxies(config.proxy_source_path) if config.proxy_enabled else ()
            if config.proxy_enabled:
                logger.info(f"[Proxy] Loaded {len(proxies)} proxies (rotation enabled)")
        self.proxies = tuple(proxies)
        self._rng = rng or random.Random()
        self._playwright_factory = playwright_factory
        self._playwright = None
        self._driver_lock = asyncio.Lock()
        self._shared_task: Optional[asyncio.Task] = None
        self._sessions: List[BrowserSession] = []

    async def _driver(self):
        async with self._driver_lock:
            if self._playwright is None:
                self._playwright = await self._playwright_factory().start()
        return self._playwright

    def _launch_options(self, executable: Optional[str], proxy: Optional[ProxyEntry]) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            'headless': self.config.headless,
            'args': list(BROWSER_ARGS),
        }
        if executable:
            options['executable_path'] = executable
        if proxy:
            # Credentials ride along; Playwright answers the proxy auth challenge
            options['proxy'] = proxy.to_playwright()
        return options

    async def launch(self, shared: bool = False) -> BrowserSession:
        """Launch a fresh browser session with its own UA and proxy"""
        executable = find_browser_executable(self.config)
        proxy = choose_proxy(self.proxies, self._rng)
        user_agent = self.config.get_user_agent(self._rng)

        try:
            driver = await self._driver()
            browser = await driver.chromium.launch(**self._launch_options(executable, proxy))
        except PlaywrightError as e:
            if is_startup_error(e):
                raise StartupError(f"Browser cannot start: {e}") from e
            raise ScrapeError(f"Browser launch failed: {e}") from e

        try:
            context = await browser.new_context(
                user_agent=user_agent,
                viewport={
                    'width': self.config.viewport_width,
                    'height': self.config.viewport_height,
                },
                locale=self.config.locale,
                extra_http_headers={'Accept-Language': 'en-US,en;q=0.9'},
                ignore_https_errors=True,
            )
            await context.add_init_script(STEALTH_SCRIPT)
        except BaseException as e:
            try:
                await browser.close()
            except PlaywrightError as close_error:
                logger.debug(f"Browser close after failed setup failed: {close_error}")
            if isinstance(e, PlaywrightError):
                if is_disconnect_error(e):
                    raise SessionDisconnect(str(e)) from e
                raise ScrapeError(f"Browser context setup failed: {e}") from e
            raise

        session = BrowserSession(
            browser=browser,
            context=context,
            user_agent=user_agent,
            proxy=proxy,
            shared=shared,
        )
        browser.on("disconnected", lambda _browser: self._on_disconnected(session))
        self._sessions.append(session)

        if proxy:
            logger.info(f"[Proxy] Session {session.session_id} using proxy: {proxy}")
        logger.debug(f"Launched session {session.session_id} (UA: {session.short_user_agent})")
        return session

    def _on_disconnected(self, session: BrowserSession):
        if session.closed:
            # Fired by our own close()
            return
        logger.warning(f"Browser for session {session.session_id} disconnected")
        session.closed = True
        if session in self._sessions:
            self._sessions.remove(session)
        if session.shared:
            self._shared_task = None

    def invalidate(self, session: BrowserSession):
        """Forget a session so the next acquire() launches a new one"""
        if session.shared:
            self._shared_task = None

    async def acquire(self) -> BrowserSession:
        """Return the shared session, launching it at most once at a time"""
        for _ in range(2):
            if self._shared_task is None:
                self._shared_task = asyncio.ensure_future(self.launch(shared=True))
            task = self._shared_task
            try:
                session = await asyncio.shield(task)
            except BaseException:
                if self._shared_task is task:
                    self._shared_task = None
                raise
            if session.is_connected():
                return session
            if self._shared_task is task:
                self._shared_task = None
        raise SessionDisconnect("Shared browser session could not be established")

    async def release(self, session: BrowserSession):
        """Give a session back; exclusive sessions are closed, the shared one is kept"""
        if session.shared and session.is_connected():
            return
        await session.close()
        if session in self._sessions:
            self._sessions.remove(session)

    @asynccontextmanager
    async def session(self):
        """Exclusive session released on every exit path"""
        session = await self.launch()
        try:
            yield session
        finally:
            await self.release(session)

    async def close_all(self):
        if self._shared_task is not None and not self._shared_task.done():
            self._shared_task.cancel()
        self._shared_task = None

        sessions, self._sessions = self._sessions, []
        for session in sessions:
            await session.close()

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            finally:
                self._playwright = None
