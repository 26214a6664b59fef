import logging
from typing import Any, Callable, Dict, Optional

from . import safety
from .errors import EvalError, FetchError, SafetyRejection
from .evaluator import evaluate_all, next_page_url, page_title, parse_document
from .fetcher import FetchAdapter
from .models import Result, SelectorKind, Target, Value, utc_now

logger = logging.getLogger(__name__)

FORBIDDEN_ERROR = "local network forbidden"


def _merge_page(data: Dict[str, Value], page: Dict[str, Value], target: Target) -> None:
    # list fields concatenate in page order, the rest keep the first non-null value
    for rule in target.selectors:
        new = page.get(rule.id)
        if rule.kind is SelectorKind.LIST:
            if new is None:
                continue
            current = data.get(rule.id)
            data[rule.id] = (current or []) + list(new)
        elif data.get(rule.id) is None and new is not None:
            data[rule.id] = new


class TargetRunner:
    def __init__(self, fetcher: FetchAdapter):
        self.fetcher = fetcher

    def _failure(self, target: Target, index: int, error: str, kind: str,
                 metadata: Optional[Dict[str, Any]] = None) -> Result:
        meta = {"errorKind": kind, **(metadata or {})}
        return Result(url=target.url, index=index, timestamp=utc_now(), success=False,
                      data={}, error=error, metadata=meta)

    def run(self, target: Target, index: int = 0,
            cancelled: Optional[Callable[[], bool]] = None) -> Result:
        cancelled = cancelled or (lambda: False)
        options = target.options

        verdict = safety.classify(target.url)
        if not verdict.allowed:
            logger.warning("Target %s rejected: %s", target.url, verdict.reason)
            return self._failure(target, index, f"{FORBIDDEN_ERROR}: {verdict.reason}", "safety")

        try:
            doc = self.fetcher.fetch(target.url, options)
        except SafetyRejection as e:
            return self._failure(target, index, f"{FORBIDDEN_ERROR}: {e.reason}", "safety")
        except FetchError as e:
            meta = {"statusCode": e.status_code} if e.status_code is not None else None
            return self._failure(target, index, e.message, e.kind.value, meta)

        soup = parse_document(doc.html)
        data, selector_errors = evaluate_all(soup, target.selectors)
        metadata: Dict[str, Any] = {
            "statusCode": doc.status_code,
            "responseTimeMs": doc.elapsed_ms,
            "pageTitle": page_title(soup),
            "finalUrl": doc.final_url,
        }
        if doc.screenshot:
            metadata["screenshot"] = doc.screenshot

        pages = 1
        pagination = options.pagination
        if pagination.enabled:
            current_url = doc.final_url or target.url
            while pages < pagination.max_pages:
                if cancelled():
                    logger.info("Pagination of %s stopped: job cancelled", target.url)
                    break
                try:
                    nxt = next_page_url(soup, pagination.next_page_selector, current_url)
                except EvalError as e:
                    logger.warning("Pagination of %s stopped at page %d: %s", target.url, pages, e)
                    metadata["paginationError"] = e.message
                    break
                if not nxt or nxt == current_url:
                    break
                try:
                    safety.check(nxt)
                    page_doc = self.fetcher.fetch(nxt, options)
                except (SafetyRejection, FetchError) as e:
                    logger.warning("Pagination of %s stopped at page %d: %s", target.url, pages + 1, e)
                    metadata["paginationError"] = str(e)
                    break
                soup = parse_document(page_doc.html)
                page_data, page_errors = evaluate_all(soup, target.selectors)
                _merge_page(data, page_data, target)
                for k, v in page_errors.items():
                    selector_errors.setdefault(k, v)
                current_url = page_doc.final_url or nxt
                pages += 1
            metadata["pagesFetched"] = pages

        if selector_errors:
            metadata["selectorErrors"] = selector_errors

        return Result(
            url=target.url,
            index=index,
            timestamp=utc_now(),
            success=True,
            data=data,
            error=None,
            metadata={k: v for k, v in metadata.items() if v is not None},
        )
