from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import ValidationError

Value = Union[str, List[str], None]

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(d: Dict[str, Any], *keys, default=None):
    # wire payloads use both the current names and the legacy ones (selector/type/...)
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


class SelectorKind(str, Enum):
    TEXT = "text"
    HTML = "html"
    ATTRIBUTE = "attribute"
    LIST = "list"


@dataclass(frozen=True)
class SelectorRule:
    id: str
    name: str
    path: str                               # css selector
    kind: SelectorKind
    attribute_name: Optional[str] = None    # kind=attribute
    list_item_path: Optional[str] = None    # kind=list

    def __post_init__(self):
        if not self.id:
            raise ValidationError("selector without id/name")
        for label, value in (("path", self.path), ("attributeName", self.attribute_name),
                             ("listItemPath", self.list_item_path)):
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"selector '{self.id}': {label} must be a string, got {type(value).__name__}")
        if not self.path or not self.path.strip():
            raise ValidationError(f"selector '{self.id}': empty path")
        if self.kind is SelectorKind.ATTRIBUTE and not self.attribute_name:
            raise ValidationError(f"selector '{self.id}': kind=attribute requires attributeName")
        if self.kind is SelectorKind.LIST and not self.list_item_path:
            raise ValidationError(f"selector '{self.id}': kind=list requires listItemPath")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SelectorRule":
        if not isinstance(d, dict):
            raise ValidationError("selector must be an object")
        raw_kind = str(_first(d, "kind", "type", default="text")).lower()
        try:
            kind = SelectorKind(raw_kind)
        except ValueError:
            raise ValidationError(f"unknown selector kind: {raw_kind}") from None
        name = _first(d, "name", default="")
        return cls(
            id=str(_first(d, "id", default=name)),
            name=str(name or _first(d, "id", default="")),
            path=_first(d, "path", "selector", default=""),
            kind=kind,
            attribute_name=_first(d, "attributeName", "attribute_name", "attribute"),
            list_item_path=_first(d, "listItemPath", "list_item_path", "listItemSelector"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {"id": self.id, "name": self.name, "path": self.path, "kind": self.kind.value}
        if self.attribute_name:
            out["attributeName"] = self.attribute_name
        if self.list_item_path:
            out["listItemPath"] = self.list_item_path
        return out


@dataclass(frozen=True)
class PaginationSpec:
    enabled: bool = False
    next_page_selector: Optional[str] = None
    max_pages: int = 5          # counts the first page

    def __post_init__(self):
        if self.enabled and not self.next_page_selector:
            raise ValidationError("pagination.enabled requires nextPageSelector")
        if self.max_pages < 1:
            raise ValidationError("pagination.maxPages must be >= 1")

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "PaginationSpec":
        d = d or {}
        return cls(
            enabled=bool(d.get("enabled", False)),
            next_page_selector=_first(d, "nextPageSelector", "nextButtonSelector", "next_page_selector"),
            max_pages=int(_first(d, "maxPages", "max_pages", default=5)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "nextPageSelector": self.next_page_selector, "maxPages": self.max_pages}


@dataclass(frozen=True)
class FetchOptions:
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    body: Any = None
    wait_for_selector: Optional[str] = None
    wait_timeout_ms: int = 5000
    wait_for_network_idle: bool = True
    enable_javascript: bool = False
    timeout_ms: int = 30000
    proxy: Optional[str] = None
    cookies: Any = None         # dict | "a=b; c=d" | [{"name":..,"value":..}]
    pagination: PaginationSpec = field(default_factory=PaginationSpec)
    max_retries: int = 0
    retry_backoff: str = "exponential"     # exponential | fixed
    retry_delay_ms: int = 1000
    throttle_ms: int = 0
    follow_redirects: bool = True
    max_redirects: int = 10
    fail_on_http_error: bool = False
    capture_screenshot: bool = False

    def __post_init__(self):
        if self.method.upper() not in HTTP_METHODS:
            raise ValidationError(f"unsupported HTTP method: {self.method}")
        if self.retry_backoff not in ("exponential", "fixed"):
            raise ValidationError(f"retryBackoff must be 'exponential' or 'fixed', got {self.retry_backoff!r}")
        for name in ("wait_timeout_ms", "timeout_ms", "max_retries", "retry_delay_ms", "throttle_ms", "max_redirects"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must be >= 0")

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "FetchOptions":
        d = d or {}
        if not isinstance(d, dict):
            raise ValidationError("options must be an object")
        headers = d.get("headers") or {}
        if not isinstance(headers, dict):
            raise ValidationError("options.headers must be an object")
        try:
            return cls(
                headers={str(k): str(v) for k, v in headers.items() if v is not None},
                method=str(d.get("method", "GET")).upper(),
                body=d.get("body"),
                wait_for_selector=_first(d, "waitForSelector", "wait_for_selector"),
                wait_timeout_ms=int(_first(d, "waitTimeout", "wait_timeout_ms", default=5000)),
                wait_for_network_idle=bool(_first(d, "waitForNetworkIdle", "wait_for_network_idle", default=True)),
                enable_javascript=bool(_first(d, "enableJavaScript", "enable_javascript", default=False)),
                timeout_ms=int(_first(d, "timeout", "timeout_ms", default=30000)),
                proxy=d.get("proxy"),
                cookies=d.get("cookies"),
                pagination=PaginationSpec.from_dict(d.get("pagination")),
                max_retries=int(_first(d, "maxRetries", "max_retries", default=0)),
                retry_backoff=str(_first(d, "retryBackoff", "retry_backoff", default="exponential")),
                retry_delay_ms=int(_first(d, "retryDelay", "retry_delay_ms", default=1000)),
                throttle_ms=int(_first(d, "throttle", "throttle_ms", default=0)),
                follow_redirects=bool(_first(d, "followRedirects", "follow_redirects", default=True)),
                max_redirects=int(_first(d, "maxRedirects", "max_redirects", default=10)),
                fail_on_http_error=bool(_first(d, "failOnHttpError", "fail_on_http_error", default=False)),
                capture_screenshot=bool(_first(d, "captureScreenshot", "capture_screenshot", default=False)),
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(f"invalid options: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": dict(self.headers),
            "method": self.method,
            "body": self.body,
            "waitForSelector": self.wait_for_selector,
            "waitTimeout": self.wait_timeout_ms,
            "waitForNetworkIdle": self.wait_for_network_idle,
            "enableJavaScript": self.enable_javascript,
            "timeout": self.timeout_ms,
            "proxy": self.proxy,
            "cookies": self.cookies,
            "pagination": self.pagination.to_dict(),
            "maxRetries": self.max_retries,
            "retryBackoff": self.retry_backoff,
            "retryDelay": self.retry_delay_ms,
            "throttle": self.throttle_ms,
            "followRedirects": self.follow_redirects,
            "maxRedirects": self.max_redirects,
            "failOnHttpError": self.fail_on_http_error,
            "captureScreenshot": self.capture_screenshot,
        }


@dataclass(frozen=True)
class Target:
    url: str
    selectors: List[SelectorRule]
    options: FetchOptions = field(default_factory=FetchOptions)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Target":
        if not isinstance(d, dict):
            raise ValidationError("target must be an object")
        url = d.get("url")
        if not url or not isinstance(url, str):
            raise ValidationError("target without 'url'")
        selectors = d.get("selectors") or []
        if not isinstance(selectors, list):
            raise ValidationError(f"target '{url}': 'selectors' must be a list")
        rules = [SelectorRule.from_dict(s) for s in selectors]
        ids = [r.id for r in rules]
        if len(ids) != len(set(ids)):
            raise ValidationError(f"target '{url}': duplicate selector ids")
        return cls(url=url, selectors=rules, options=FetchOptions.from_dict(d.get("options")))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "selectors": [s.to_dict() for s in self.selectors],
            "options": self.options.to_dict(),
        }


@dataclass(frozen=True)
class Document:
    url: str                    # requested url
    final_url: str              # after redirects
    html: str
    status_code: Optional[int] = None
    elapsed_ms: int = 0
    screenshot: Optional[str] = None    # base64 png


@dataclass(frozen=True)
class Result:
    url: str
    index: int
    timestamp: str
    success: bool
    data: Dict[str, Value]
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "index": self.index,
            "timestamp": self.timestamp,
            "success": self.success,
            "data": {k: (list(v) if isinstance(v, list) else v) for k, v in self.data.items()},
            "error": self.error,
            "metadata": dict(self.metadata),
        }


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


@dataclass
class Job:
    id: str
    targets: List[Target]
    status: JobStatus = JobStatus.PENDING
    results: List[Result] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    error: Optional[str] = None

    def snapshot(self) -> "Job":
        # results are immutable, a shallow list copy is enough
        return replace(self, targets=list(self.targets), results=list(self.results))

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "targets": len(self.targets),
            "results": len(self.results),
            "failed": sum(1 for r in self.results if not r.success),
            "createdAt": self.created_at,
            "finishedAt": self.finished_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "targets": [t.to_dict() for t in self.targets],
            "results": [r.to_dict() for r in self.results],
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "error": self.error,
        }
