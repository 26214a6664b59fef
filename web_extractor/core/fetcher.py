import logging
import time
from typing import Callable, Optional

from .errors import FetchError, FetchErrorKind
from .interfaces import Collector
from .models import Document, FetchOptions

logger = logging.getLogger(__name__)


def backoff_delay_ms(options: FetchOptions, attempt: int) -> int:
    """Delay before retry number `attempt` (1-based)."""
    if options.retry_backoff == "fixed":
        return options.retry_delay_ms
    return options.retry_delay_ms * (2 ** (attempt - 1))


class FetchAdapter:
    """
    Picks the strategy (static HTTP vs headless render) per request, applies the
    per-target throttle and the retry policy. Retries only timeouts and network
    failures; safety rejections and non-retryable errors surface immediately.
    """

    def __init__(self, http: Collector, render: Optional[Collector] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.http = http
        self.render = render
        self._sleep = sleep

    def _strategy(self, options: FetchOptions) -> Collector:
        if options.enable_javascript:
            if self.render is None:
                raise FetchError(FetchErrorKind.NON_RETRYABLE, "JavaScript rendering is not configured")
            return self.render
        return self.http

    def fetch(self, url: str, options: FetchOptions) -> Document:
        collector = self._strategy(options)
        attempt = 0
        while True:
            if options.throttle_ms:
                self._sleep(options.throttle_ms / 1000.0)
            try:
                doc = collector.collect(url, options)
            except FetchError as e:
                if not e.retryable or attempt >= options.max_retries:
                    raise
                attempt += 1
                delay = backoff_delay_ms(options, attempt)
                logger.info("Retry %d/%d for %s in %d ms (%s)", attempt, options.max_retries, url, delay, e.message)
                self._sleep(delay / 1000.0)
                continue

            if options.fail_on_http_error and doc.status_code is not None and doc.status_code >= 400:
                raise FetchError(FetchErrorKind.NON_RETRYABLE, f"HTTP {doc.status_code}", status_code=doc.status_code)
            return doc
