import json
import logging
import time
from typing import Dict, Optional
from urllib.parse import urljoin

import requests

from ..core import safety
from ..core.errors import FetchError, FetchErrorKind
from ..core.interfaces import Collector
from ..core.models import Document, FetchOptions

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "WebExtractor/1.0 (+crawler)"
DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
_REDIRECT_CODES = (301, 302, 303, 307, 308)


def build_headers(custom: Optional[Dict[str, str]], user_agent: str = DEFAULT_USER_AGENT) -> Dict[str, str]:
    """Defaults + custom headers. A custom User-Agent may replace the default, never remove it."""
    headers = {**DEFAULT_HEADERS, "User-Agent": user_agent}
    for k, v in (custom or {}).items():
        if k.lower() == "user-agent":
            if v and str(v).strip():
                headers["User-Agent"] = str(v)
            continue
        headers[k] = v
    return headers


def parse_cookies(raw) -> Dict[str, str]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            return parse_cookies(json.loads(text))
        out = {}
        for part in text.split(";"):
            if "=" in part:
                k, v = part.split("=", 1)
                out[k.strip()] = v.strip()
        return out
    if isinstance(raw, list):
        return {str(c["name"]): str(c.get("value", "")) for c in raw if isinstance(c, dict) and "name" in c}
    raise ValueError(f"unsupported cookies format: {type(raw).__name__}")


class HttpCollector(Collector):
    def __init__(self, user_agent: str = DEFAULT_USER_AGENT):
        self.user_agent = user_agent

    def _request(self, method: str, url: str, options: FetchOptions, headers, cookies, body):
        kwargs = {
            "headers": headers,
            "cookies": cookies,
            "timeout": options.timeout_ms / 1000.0,
            "allow_redirects": False,
        }
        if options.proxy:
            kwargs["proxies"] = {"http": options.proxy, "https": options.proxy}
        if body is not None:
            if isinstance(body, (dict, list)):
                kwargs["json"] = body
            else:
                kwargs["data"] = body
        try:
            return requests.request(method, url, **kwargs)
        except requests.Timeout as e:
            raise FetchError(FetchErrorKind.TIMEOUT, f"timeout after {options.timeout_ms} ms: {url}") from e
        except requests.ConnectionError as e:
            raise FetchError(FetchErrorKind.NETWORK_FAILURE, f"connection failed: {e}") from e
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            raise FetchError(FetchErrorKind.NON_RETRYABLE, f"invalid url: {e}") from e
        except requests.RequestException as e:
            raise FetchError(FetchErrorKind.NETWORK_FAILURE, str(e)) from e

    def collect(self, url: str, options: FetchOptions) -> Document:
        headers = build_headers(options.headers, self.user_agent)
        try:
            cookies = parse_cookies(options.cookies)
        except (ValueError, TypeError, KeyError) as e:
            raise FetchError(FetchErrorKind.NON_RETRYABLE, f"invalid cookies: {e}") from e

        method, body = options.method.upper(), options.body
        current = url
        started = time.monotonic()
        hops = 0
        while True:
            safety.check(current)
            resp = self._request(method, current, options, headers, cookies, body)
            location = resp.headers.get("Location")
            if not (options.follow_redirects and resp.status_code in _REDIRECT_CODES and location):
                break
            hops += 1
            if hops > options.max_redirects:
                raise FetchError(FetchErrorKind.NON_RETRYABLE, f"too many redirects (> {options.max_redirects})")
            nxt = urljoin(current, location)
            logger.debug("Redirect %s -> %s (%s)", current, nxt, resp.status_code)
            if resp.status_code == 303 or (resp.status_code in (301, 302) and method == "POST"):
                method, body = "GET", None
            current = nxt

        elapsed_ms = int((time.monotonic() - started) * 1000)
        return Document(
            url=url,
            final_url=current,
            html=resp.text,
            status_code=resp.status_code,
            elapsed_ms=elapsed_ms,
        )
