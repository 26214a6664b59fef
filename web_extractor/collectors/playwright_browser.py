from __future__ import annotations

try:
    from playwright.sync_api import Error as PWError, TimeoutError as PWTimeoutError, sync_playwright
except ImportError:
    sync_playwright = None

import base64
import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List
from urllib.parse import urlsplit

from ..core import safety
from ..core.errors import FetchError, FetchErrorKind, SafetyRejection
from ..core.interfaces import Collector, Renderer
from ..core.models import Document, FetchOptions
from .http_requests import DEFAULT_USER_AGENT, build_headers, parse_cookies

logger = logging.getLogger(__name__)


class PlaywrightRenderer(Renderer):
    """
    Chromium via Playwright (sync API).
    - every request the page issues goes through the safety gate (route guard)
    - navigations are fetched with max_redirects=0 so each redirect hop is routed and checked again
    - waits for `wait_for_selector` or network idle, returns page.content()

    The sync API is bound to the thread that starts it, so each render owns its
    own playwright/browser for the duration of the call.
    """

    def __init__(self, headless: bool = True, user_agent: str = DEFAULT_USER_AGENT):
        self.headless = headless
        self.user_agent = user_agent

    def _guard(self, blocked: List[str]):
        def handler(route, request):
            url = request.url
            if urlsplit(url).scheme.lower() in ("http", "https"):
                verdict = safety.classify(url)
                if not verdict.allowed:
                    logger.warning("Blocked in-page request %s: %s", url, verdict.reason)
                    if request.is_navigation_request():
                        blocked.append(verdict.reason)
                    route.abort("blockedbyclient")
                    return
            if request.is_navigation_request():
                route.fulfill(response=route.fetch(max_redirects=0))
            else:
                route.continue_()
        return handler

    def render(self, url: str, options: FetchOptions) -> Document:
        try:
            cookies = parse_cookies(options.cookies)
        except (ValueError, TypeError, KeyError) as e:
            raise FetchError(FetchErrorKind.NON_RETRYABLE, f"invalid cookies: {e}") from e
        if sync_playwright is None:
            raise FetchError(
                FetchErrorKind.NON_RETRYABLE,
                "Playwright is not installed. Run: pip install playwright && playwright install chromium",
            )

        headers = build_headers(options.headers, self.user_agent)
        user_agent = headers.pop("User-Agent")
        blocked: List[str] = []
        started = time.monotonic()

        with sync_playwright() as p:
            launch_kwargs = {"headless": self.headless}
            if options.proxy:
                launch_kwargs["proxy"] = {"server": options.proxy}
            browser = p.chromium.launch(**launch_kwargs)
            try:
                context = browser.new_context(user_agent=user_agent, extra_http_headers=headers)
                if cookies:
                    context.add_cookies([{"name": k, "value": v, "url": url} for k, v in cookies.items()])
                page = context.new_page()
                page.set_default_timeout(options.timeout_ms)
                page.route("**/*", self._guard(blocked))

                try:
                    resp = page.goto(url, wait_until="domcontentloaded", timeout=options.timeout_ms)
                except PWTimeoutError as e:
                    raise FetchError(FetchErrorKind.TIMEOUT, f"timeout after {options.timeout_ms} ms: {url}") from e
                except PWError as e:
                    if blocked:
                        raise SafetyRejection(url, blocked[0]) from e
                    raise FetchError(FetchErrorKind.NETWORK_FAILURE, f"navigation failed: {e}") from e

                if options.wait_for_selector:
                    try:
                        page.wait_for_selector(options.wait_for_selector, timeout=options.wait_timeout_ms)
                    except PWTimeoutError as e:
                        raise FetchError(
                            FetchErrorKind.TIMEOUT,
                            f"selector {options.wait_for_selector!r} not found within {options.wait_timeout_ms} ms",
                        ) from e
                elif options.wait_for_network_idle:
                    try:
                        page.wait_for_load_state("networkidle", timeout=options.wait_timeout_ms)
                    except PWTimeoutError:
                        logger.info("Network not idle after %s ms, using current DOM: %s", options.wait_timeout_ms, url)

                if blocked:
                    raise SafetyRejection(url, blocked[0])

                screenshot = None
                if options.capture_screenshot:
                    screenshot = base64.b64encode(page.screenshot(full_page=True)).decode("ascii")

                return Document(
                    url=url,
                    final_url=page.url,
                    html=page.content(),
                    status_code=resp.status if resp is not None else None,
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                    screenshot=screenshot,
                )
            finally:
                browser.close()


class RendererPool:
    """Fixed number of renderers, each leased to at most one caller at a time."""

    def __init__(self, factory: Callable[[], Renderer], size: int = 2):
        if size < 1:
            raise ValueError("renderer pool size must be >= 1")
        self._factory = factory
        self._size = size
        self._free: List[Renderer] = []
        self._sem = threading.BoundedSemaphore(size)
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return self._size

    @contextmanager
    def lease(self) -> Iterator[Renderer]:
        self._sem.acquire()
        try:
            with self._lock:
                if self._free:
                    renderer = self._free.pop()
                else:
                    renderer = self._factory()
            try:
                yield renderer
            finally:
                with self._lock:
                    self._free.append(renderer)
        finally:
            self._sem.release()


class RenderCollector(Collector):
    def __init__(self, pool: RendererPool):
        self.pool = pool

    def collect(self, url: str, options: FetchOptions) -> Document:
        safety.check(url)
        with self.pool.lease() as renderer:
            return renderer.render(url, options)
