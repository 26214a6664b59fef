import threading
from typing import Dict, List, Union

import pytest

from web_extractor.core.errors import FetchError, FetchErrorKind
from web_extractor.core.fetcher import FetchAdapter
from web_extractor.core.interfaces import Collector, Renderer
from web_extractor.core.models import Document, FetchOptions
from web_extractor.core.orchestrator import JobOrchestrator
from web_extractor.core.rate_limit import SlidingWindowLimiter
from web_extractor.core.runner import TargetRunner
from web_extractor.core.service import ExtractionService

LIST_PAGE = '<html><head><title>Items</title></head><body><h1>Hello</h1><ul class="items"><li>A</li><li>B</li></ul></body></html>'


class FakeCollector(Collector):
    """Serves canned pages by URL; an exception value is raised instead. Counts calls."""

    def __init__(self, pages: Dict[str, Union[str, Exception]] = None, status_code: int = 200):
        self.pages = dict(pages or {})
        self.status_code = status_code
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def collect(self, url: str, options: FetchOptions) -> Document:
        with self._lock:
            self.calls.append(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            raise FetchError(FetchErrorKind.NETWORK_FAILURE, f"no canned page for {url}")
        return Document(url=url, final_url=url, html=page, status_code=self.status_code, elapsed_ms=12)


class StaticRenderer(Renderer):
    """Renderer stand-in: returns fixed HTML, no browser."""

    def __init__(self, html: str = LIST_PAGE):
        self.html = html
        self.rendered: List[str] = []

    def render(self, url: str, options: FetchOptions) -> Document:
        self.rendered.append(url)
        return Document(url=url, final_url=url, html=self.html, status_code=200, elapsed_ms=5)


@pytest.fixture
def make_service():
    def build(pages, concurrency=2, limiter=None, **kwargs):
        collector = pages if isinstance(pages, Collector) else FakeCollector(pages)
        fetcher = FetchAdapter(collector, sleep=lambda s: None)
        orchestrator = JobOrchestrator(TargetRunner(fetcher), concurrency=concurrency)
        service = ExtractionService(orchestrator, fetcher, limiter or SlidingWindowLimiter(), **kwargs)
        return service, collector
    return build
