import asyncio
import logging
import random

import pytest
from playwright.async_api import Error as PlaywrightError

from mapscraper.browser import (
    BROWSER_ARGS,
    ScrapeError,
    SessionDisconnect,
    SessionProvider,
    StartupError,
    find_browser_executable,
    is_disconnect_error,
)
from mapscraper.config import ScraperConfig
from mapscraper.proxies import ProxyEntry
from conftest import disconnect_error
from mapscraper.scrape import GoogleMapsScraper


class FakeContext:
    def __init__(self):
        self.init_scripts = []
        self.closed = False
        self.page_error = None

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def new_page(self):
        if self.page_error is not None:
            raise self.page_error
        return object()

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.handlers = {}
        self.connected = True
        self.closed = False
        self.context = FakeContext()
        self.context_options = None

    def on(self, event, handler):
        self.handlers[event] = handler

    def is_connected(self):
        return self.connected

    async def new_context(self, **options):
        self.context_options = options
        return self.context

    async def close(self):
        self.closed = True
        self.connected = False
        if "disconnected" in self.handlers:
            self.handlers["disconnected"](self)

    def drop(self):
        self.connected = False
        self.handlers["disconnected"](self)


class FakeChromium:
    def __init__(self):
        self.launches = []
        self.browsers = []
        self.launch_error = None

    async def launch(self, **options):
        if self.launch_error is not None:
            raise self.launch_error
        # Yield so concurrent acquire() callers overlap
        await asyncio.sleep(0)
        self.launches.append(options)
        browser = FakeBrowser()
        self.browsers.append(browser)
        return browser


class FakeDriver:
    def __init__(self):
        self.chromium = FakeChromium()
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakePlaywright:
    def __init__(self):
        self.driver = FakeDriver()
        self.starts = 0

    def __call__(self):
        return self

    async def start(self):
        self.starts += 1
        return self.driver


@pytest.fixture
def playwright():
    return FakePlaywright()


def _provider(playwright, config=None, proxies=()):
    return SessionProvider(
        config or ScraperConfig(),
        proxies=proxies,
        rng=random.Random(7),
        playwright_factory=playwright,
    )


def test_launch_applies_stealth_settings(playwright):
    provider = _provider(playwright)
    session = asyncio.run(provider.launch())

    options = playwright.driver.chromium.launches[0]
    assert options["headless"] is True
    assert options["args"] == BROWSER_ARGS
    assert "proxy" not in options

    browser = playwright.driver.chromium.browsers[0]
    assert browser.context_options["user_agent"] == session.user_agent
    assert browser.context_options["viewport"] == {"width": 1920, "height": 1080}
    assert "webdriver" in browser.context.init_scripts[0]
    assert session.proxy_info == "No Proxy"


def test_launch_uses_proxy_credentials(playwright):
    proxy = ProxyEntry("10.0.0.1", 3128, "user", "secret")
    provider = _provider(playwright, proxies=[proxy])
    session = asyncio.run(provider.launch())

    assert playwright.driver.chromium.launches[0]["proxy"] == {
        "server": "http://10.0.0.1:3128",
        "username": "user",
        "password": "secret",
    }
    assert "secret" not in session.proxy_info


def test_missing_executable_fails_startup(playwright):
    provider = _provider(playwright, ScraperConfig(executable_path="/nonexistent/chrome"))
    with pytest.raises(StartupError):
        asyncio.run(provider.launch())
    assert playwright.driver.chromium.launches == []


def test_windows_without_browser_fails_startup():
    with pytest.raises(StartupError):
        find_browser_executable(ScraperConfig(), platform="win32")
    assert find_browser_executable(ScraperConfig(), platform="linux") is None


def test_concurrent_acquire_launches_once(playwright):
    provider = _provider(playwright)

    async def run():
        return await asyncio.gather(provider.acquire(), provider.acquire(), provider.acquire())

    first, second, third = asyncio.run(run())
    assert first is second is third
    assert first.shared
    assert len(playwright.driver.chromium.launches) == 1
    assert playwright.starts == 1


def test_disconnect_forces_relaunch(playwright):
    provider = _provider(playwright)

    async def run():
        first = await provider.acquire()
        playwright.driver.chromium.browsers[0].drop()
        second = await provider.acquire()
        return first, second

    first, second = asyncio.run(run())
    assert first is not second
    assert not first.is_connected()
    assert len(playwright.driver.chromium.launches) == 2


def test_exclusive_session_closed_on_exit(playwright):
    provider = _provider(playwright)

    async def run():
        async with provider.session() as session:
            assert not session.shared
        return session

    session = asyncio.run(run())
    assert session.closed
    assert playwright.driver.chromium.browsers[0].closed
    assert playwright.driver.chromium.browsers[0].context.closed


def test_close_all_stops_driver(playwright):
    provider = _provider(playwright)

    async def run():
        await provider.acquire()
        await provider.close_all()

    asyncio.run(run())
    assert playwright.driver.stopped
    assert playwright.driver.chromium.browsers[0].closed


def test_is_disconnect_error():
    assert is_disconnect_error(disconnect_error())
    assert not is_disconnect_error(RuntimeError("Target closed"))


def test_missing_host_dependencies_fail_startup(playwright):
    playwright.driver.chromium.launch_error = PlaywrightError(
        "Host system is missing dependencies to run browsers"
    )
    with pytest.raises(StartupError, match="cannot start"):
        asyncio.run(_provider(playwright).launch())


def test_launch_failure_surfaces_as_scrape_error(playwright):
    playwright.driver.chromium.launch_error = PlaywrightError(
        "Host system is missing dependencies to run browsers"
    )
    scraper = GoogleMapsScraper(ScraperConfig(), provider=_provider(playwright))
    with pytest.raises(StartupError):
        asyncio.run(scraper.scrape("coffee"))

    playwright.driver.chromium.launch_error = PlaywrightError("Protocol error (Browser.getVersion)")
    with pytest.raises(ScrapeError, match="launch failed"):
        asyncio.run(scraper.scrape("coffee"))


def test_failed_context_setup_closes_browser(playwright):
    class BrokenBrowser(FakeBrowser):
        async def new_context(self, **options):
            raise PlaywrightError("Protocol error (Target.createBrowserContext)")

    class BrokenChromium(FakeChromium):
        async def launch(self, **options):
            browser = BrokenBrowser()
            self.browsers.append(browser)
            return browser

    playwright.driver.chromium = BrokenChromium()
    with pytest.raises(ScrapeError, match="context setup failed"):
        asyncio.run(_provider(playwright).launch())
    assert playwright.driver.chromium.browsers[0].closed


def test_new_page_on_dead_context_is_a_disconnect(playwright):
    provider = _provider(playwright)
    session = asyncio.run(provider.launch())

    session.context.page_error = disconnect_error()
    with pytest.raises(SessionDisconnect):
        asyncio.run(session.new_page())

    session.context.page_error = PlaywrightError("net::ERR_INSUFFICIENT_RESOURCES")
    with pytest.raises(ScrapeError) as excinfo:
        asyncio.run(session.new_page())
    assert not isinstance(excinfo.value, SessionDisconnect)


def test_normal_close_does_not_warn(playwright, caplog):
    provider = _provider(playwright)

    async def run():
        async with provider.session():
            pass

    with caplog.at_level(logging.WARNING, logger="mapscraper.browser"):
        asyncio.run(run())
    assert "disconnected" not in caplog.text
    assert playwright.driver.chromium.browsers[0].closed


def test_unexpected_disconnect_warns(playwright, caplog):
    provider = _provider(playwright)

    async def run():
        session = await provider.acquire()
        playwright.driver.chromium.browsers[0].drop()
        return session

    with caplog.at_level(logging.WARNING, logger="mapscraper.browser"):
        session = asyncio.run(run())
    assert session.closed
    assert "disconnected" in caplog.text
