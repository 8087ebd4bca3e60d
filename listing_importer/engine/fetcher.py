"""Page fetching through a headless browser with anti-automation awareness."""

from __future__ import annotations

import random
import time
from contextlib import contextmanager
from typing import Callable, Iterator

import structlog
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..config import BrowserSettings, ImporterConfig
from ..errors import BlockedFailure, FetchFailure
from ..infra import UserAgentPool
from ..models import RawListing
from .parser import RESULT_SELECTORS, ListingParser, build_search_url, detect_challenge


class BrowserSession:
    """One Playwright browser per job, one fresh context per page fetch.

    The browser is launched lazily on the first page request. Each call to
    :meth:`page` yields an isolated context/page pair that is closed when the
    block exits, whatever happened inside it.
    """

    def __init__(
        self,
        settings: BrowserSettings,
        ua_pool: UserAgentPool | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.settings = settings
        self.ua_pool = ua_pool if ua_pool is not None else UserAgentPool(settings.user_agent_list)
        self.logger = logger or structlog.get_logger("listing_importer.browser")
        self._playwright = None
        self._browser = None

    def _ensure_started(self) -> None:
        if self._browser is not None:
            return
        if self._playwright is None:
            self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(
                headless=self.settings.headless,
                args=list(self.settings.launch_args),
            )
        except Exception:
            # 启动失败时立即停止驱动，下次重试重新创建
            playwright, self._playwright = self._playwright, None
            playwright.stop()
            raise
        self.logger.debug("browser_started", headless=self.settings.headless)

    @contextmanager
    def page(self) -> Iterator[Page]:
        self._ensure_started()
        width, height = self.settings.viewport_size
        context = self._browser.new_context(
            user_agent=self.ua_pool.get(),
            locale=self.settings.locale,
            viewport={"width": width, "height": height},
            extra_http_headers=dict(self.settings.extra_headers),
        )
        try:
            page = context.new_page()
            try:
                yield page
            finally:
                page.close()
        finally:
            context.close()

    def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        try:
            if browser is not None:
                browser.close()
        except PlaywrightError as exc:
            self.logger.warning("browser_close_failed", error=str(exc))
        finally:
            if playwright is not None:
                playwright.stop()


class ListingFetcher:
    """Retrieve and parse one page of search results at a time."""

    def __init__(
        self,
        config: ImporterConfig,
        session: BrowserSession | None = None,
        *,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or structlog.get_logger("listing_importer.fetcher")
        self.session = session or BrowserSession(config.browser, logger=self.logger)
        self.parser = ListingParser(config.retrieval.base_url)
        self._sleep = sleep
        self._rng = rng or random.Random()

    def __enter__(self) -> "ListingFetcher":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def fetch_page(self, search_term: str, location: str, page_number: int) -> list[RawListing]:
        url = build_search_url(self.config.retrieval.base_url, search_term, location, page_number)
        self.logger.info("page_requested", url=url, page=page_number)
        try:
            with self.session.page() as page:
                return self._scrape(page, url, page_number)
        except PlaywrightError as exc:
            raise FetchFailure(
                f"Browser error on page {page_number}: {exc}", url=url, page_number=page_number
            ) from exc

    # ------------------------------------------------------------------
    def _scrape(self, page: Page, url: str, page_number: int) -> list[RawListing]:
        page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self.config.browser.navigation_timeout_ms,
        )
        marker = detect_challenge(page.content())
        if marker:
            self.logger.warning("challenge_detected", url=url, page=page_number, marker=marker)
            raise BlockedFailure(
                f"Blocked by anti-automation challenge ({marker})",
                url=url,
                page_number=page_number,
            )

        # 随机停顿，降低被识别为自动化流量的概率
        self._sleep(self._rng.uniform(*self.config.retrieval.settle_delay_range))

        selector = self._await_results(page)
        html = page.content()
        if selector is None:
            # 等待超时后容器可能已经渲染完成，按最终 HTML 再确认一次
            selector = self.parser.first_matching_selector(html)
        if selector is None:
            self.logger.warning(
                "no_result_containers",
                url=page.url,
                page=page_number,
                title=page.title(),
                containers=self.parser.count_containers(html),
            )
            return []
        listings = self.parser.extract(html, selector, page.url)
        self.logger.info(
            "page_parsed", page=page_number, selector=selector, listings=len(listings)
        )
        return listings

    def _await_results(self, page: Page) -> str | None:
        timeout = self.config.browser.selector_timeout_ms
        for selector in RESULT_SELECTORS:
            try:
                page.wait_for_selector(selector, timeout=timeout, state="attached")
            except PlaywrightTimeoutError:
                continue
            if page.query_selector_all(selector):
                return selector
        return None


__all__ = ["BrowserSession", "ListingFetcher"]
