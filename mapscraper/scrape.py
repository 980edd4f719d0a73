"""
Scrape orchestration.

search -> detect page mode -> (single place | paginate feed) ->
fast: parse list cards / detailed: fan detail pages out to workers ->
assemble.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, TypeVar, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .assemble import assemble, dedupe, select_window
from .browser import BrowserSession, ScrapeError, SessionDisconnect, SessionProvider, is_disconnect_error
from .config import ScraperConfig
from .distribute import WorkDistributor
from .extract import collect_place_urls, extract_detail, extract_list, scrape_place
from .models import PageMode, PlaceRecord, ScrapeMode, ScrapeResult, SearchTarget
from .navigate import detect, goto, zoom_out
from .paginate import expand

logger = logging.getLogger(__name__)

T = TypeVar("T")

ARTICLE_SELECTOR = 'div[role="feed"] div[role="article"]'


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class SearchOutcome:
    mode: PageMode
    single: Optional[PlaceRecord] = None
    place_urls: List[str] = field(default_factory=list)
    fast_results: List[PlaceRecord] = field(default_factory=list)


class GoogleMapsScraper:
    """Entry point for place lookups; owns the browser sessions it creates"""

    def __init__(self, config: Optional[ScraperConfig] = None, provider: Optional[SessionProvider] = None):
        self.config = config or ScraperConfig()
        self.provider = provider or SessionProvider(self.config)
        self.distributor = WorkDistributor(self.config)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.provider.close_all()

    async def _with_reconnect(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        """Run an operation; on a lost browser rebuild and retry exactly once"""
        try:
            return await operation()
        except SessionDisconnect as e:
            logger.warning(f"{label} Browser disconnected ({e}), rebuilding session and retrying")
        try:
            return await operation()
        except SessionDisconnect as e:
            raise ScrapeError(f"Browser disconnected twice: {e}") from e

    async def _wait_for_articles(self, page, request_id: str):
        try:
            await page.wait_for_selector(ARTICLE_SELECTOR, timeout=self.config.feed_timeout * 1000)
        except PlaywrightTimeoutError:
            logger.debug(f"[{request_id}] Feed articles did not render in time")
        except PlaywrightError as e:
            if is_disconnect_error(e):
                raise SessionDisconnect(str(e)) from e

    async def _search(self, target: SearchTarget, request_id: str) -> SearchOutcome:
        async with self.provider.session() as session:
            async with session.page() as page:
                nav = await detect(page, target.query, self.config, request_id)

                if nav.mode is PageMode.EMPTY:
                    return SearchOutcome(PageMode.EMPTY)

                if nav.mode is PageMode.SINGLE:
                    record = await extract_detail(page, self.config, request_id)
                    if nav.recovered and not target.detailed:
                        return SearchOutcome(PageMode.LIST, fast_results=[record])
                    return SearchOutcome(PageMode.SINGLE, single=record)

                await self._wait_for_articles(page, request_id)
                await expand(page, target.to_index, self.config, request_id)

                if target.detailed:
                    urls = await collect_place_urls(page, self.config, limit=target.to_index, request_id=request_id)
                    logger.info(f"[{request_id}] Collected {len(urls)} place URLs")
                    return SearchOutcome(PageMode.LIST, place_urls=urls)

                logger.info(f"[{request_id}] Extracting data from list view (Fast Mode)...")
                records = await extract_list(page, self.config, limit=target.to_index, request_id=request_id)
                logger.info(f"[{request_id}] Extracted {len(records)} items directly from list")
                return SearchOutcome(PageMode.LIST, fast_results=records)

    async def _warm_up(self, session: BrowserSession, label: str):
        """Visit the Maps home page once to seed cookies; failures are ignored"""
        logger.info(f"{label} Warming up browser with Google Maps homepage...")
        try:
            async with session.page() as page:
                await goto(page, self.config.home_url, self.config, timeout=self.config.warmup_timeout)
                await asyncio.sleep(self.config.settle_delay)
        except (ScrapeError, PlaywrightError) as e:
            logger.debug(f"{label} Warm-up failed: {e}")

    async def scrape_chunk(self, urls: List[str], index: int, request_id: str = "-") -> List[PlaceRecord]:
        """
        Worker body: one exclusive session scrapes a chunk of place URLs
        serially. A lost browser is rebuilt once per URL; losing it again
        on the same URL fails the chunk.
        """
        label = f"[{request_id}] [Worker {index + 1}]"
        logger.info(f"{label} Starting, {len(urls)} URLs to process")

        results: List[PlaceRecord] = []
        remaining = list(urls)
        last_failed: Optional[str] = None
        done = 0

        while remaining:
            async with self.provider.session() as session:
                logger.info(f"{label} UA: {session.short_user_agent}, Proxy: {session.proxy_info}")
                await self._warm_up(session, label)
                try:
                    while remaining:
                        url = remaining[0]
                        logger.info(f"{label} Processing {done + 1}/{len(urls)}")
                        record = await scrape_place(session, url, self.config, request_id)
                        remaining.pop(0)
                        done += 1
                        if record is not None and record.name:
                            results.append(record)
                            logger.info(f"{label} Extracted: {record.name}")
                except SessionDisconnect as e:
                    if last_failed == remaining[0]:
                        raise ScrapeError(f"{label} Browser disconnected twice on {remaining[0]}") from e
                    last_failed = remaining[0]
                    logger.warning(f"{label} Browser disconnected, rebuilding session")

        logger.info(f"{label} Done, extracted {len(results)} results")
        return results

    async def scrape(
        self,
        query: str,
        from_index: int = 1,
        to_index: int = 20,
        mode: Union[ScrapeMode, str] = ScrapeMode.FAST,
        request_id: Optional[str] = None,
    ) -> ScrapeResult:
        """
        Search Maps for `query` and return the records in the 1-based,
        inclusive window [from_index, to_index].
        """
        target = SearchTarget((query or "").strip(), from_index, to_index, ScrapeMode(mode))
        request_id = request_id or new_request_id()
        started = time.monotonic()
        logger.info(
            f"[{request_id}] Starting scrape for: \"{target.query}\" "
            f"(from: {from_index}, to: {to_index}, mode: {target.mode.value})"
        )

        outcome = await self._with_reconnect(lambda: self._search(target, request_id), f"[{request_id}]")

        if outcome.mode is PageMode.SINGLE:
            logger.info(f"[{request_id}] Single result found, returning immediately")
            record = outcome.single
            found = record is not None and record.is_emittable
            return ScrapeResult(
                results=[record] if found else [],
                total_available=1 if found else 0,
                actual_from=1,
                actual_to=1,
            )

        if not target.detailed:
            result = assemble(outcome.fast_results, from_index, to_index)
            logger.info(
                f"[{request_id}] [Fast Mode] Done! Extracted {len(result.results)} results "
                f"in {(time.monotonic() - started) * 1000:.0f}ms"
            )
            return result

        urls = outcome.place_urls
        if not urls:
            logger.info(f"[{request_id}] No results found")
            return ScrapeResult(results=[], total_available=0, actual_from=from_index, actual_to=from_index)

        window, actual_from, actual_to = select_window(urls, from_index, to_index)
        logger.info(
            f"[{request_id}] Total available: {len(urls)}, scraping from {actual_from} to {actual_to} "
            f"({len(window)} items)"
        )

        async def worker(chunk: List[str], index: int) -> List[PlaceRecord]:
            return await self.scrape_chunk(chunk, index, request_id)

        records = await self.distributor.distribute(window, worker, request_id)
        results = dedupe(records)

        logger.info(
            f"[{request_id}] Done! Extracted {len(results)} results "
            f"in {(time.monotonic() - started) * 1000:.0f}ms"
        )
        return ScrapeResult(
            results=results,
            total_available=len(urls),
            actual_from=actual_from,
            actual_to=actual_to,
        )

    async def scrape_top(self, query: str, limit: int = 5, request_id: Optional[str] = None) -> List[PlaceRecord]:
        """Single-shot variant: top `limit` records from the shared browser session"""
        query = (query or "").strip()
        if not query:
            raise ValueError("query must not be empty")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        request_id = request_id or new_request_id()

        async def run() -> List[PlaceRecord]:
            session = await self.provider.acquire()
            logger.info(f"[{request_id}] Using UA: {session.user_agent}")
            try:
                async with session.page() as page:
                    nav = await detect(page, query, self.config, request_id)
                    if nav.mode is PageMode.SINGLE:
                        return [await extract_detail(page, self.config, request_id)]
                    if nav.mode is PageMode.EMPTY:
                        return []
                    await zoom_out(page)
                    await self._wait_for_articles(page, request_id)
                    await expand(page, limit, self.config, request_id)
                    return await extract_list(page, self.config, request_id=request_id)
            except SessionDisconnect:
                self.provider.invalidate(session)
                raise

        records = await self._with_reconnect(run, f"[{request_id}]")
        return dedupe(records)[:limit]


async def scrape(query: str, from_index: int = 1, to_index: int = 20,
                 mode: Union[ScrapeMode, str] = ScrapeMode.FAST,
                 config: Optional[ScraperConfig] = None) -> ScrapeResult:
    """One-off ranged scrape with its own browser lifecycle"""
    async with GoogleMapsScraper(config) as scraper:
        return await scraper.scrape(query, from_index, to_index, mode)


async def scrape_top(query: str, limit: int = 5, config: Optional[ScraperConfig] = None) -> List[PlaceRecord]:
    """One-off top-N scrape with its own browser lifecycle"""
    async with GoogleMapsScraper(config) as scraper:
        return await scraper.scrape_top(query, limit)
