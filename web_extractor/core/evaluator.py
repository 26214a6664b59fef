"""
Selector evaluation over a parsed document (BeautifulSoup + soupsieve CSS).

Kinds:
  text       first match, trimmed text; None when nothing matches
  html       first match, inner markup verbatim; None when nothing matches
  attribute  first match, attribute value; None when missing
  list       first outer match, trimmed text of every item inside it;
             [] when the outer element has no items, None when there is no outer element
"""
import logging
from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from .errors import EvalError
from .models import SelectorKind, SelectorRule, Value

logger = logging.getLogger(__name__)


def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _select_one(root, path: str, selector_id: str):
    try:
        return root.select_one(path)
    except (SelectorSyntaxError, ValueError, NotImplementedError) as e:
        raise EvalError(selector_id, f"invalid selector {path!r}: {e}") from e


def _select(root, path: str, selector_id: str):
    try:
        return root.select(path)
    except (SelectorSyntaxError, ValueError, NotImplementedError) as e:
        raise EvalError(selector_id, f"invalid selector {path!r}: {e}") from e


def evaluate(soup: BeautifulSoup, rule: SelectorRule) -> Value:
    el = _select_one(soup, rule.path, rule.id)

    match rule.kind:
        case SelectorKind.TEXT:
            return el.get_text().strip() if el is not None else None
        case SelectorKind.HTML:
            return el.decode_contents() if el is not None else None
        case SelectorKind.ATTRIBUTE:
            if el is None:
                return None
            value = el.get(rule.attribute_name)
            # class/rel come back as lists from bs4
            if isinstance(value, list):
                return " ".join(value)
            return value
        case SelectorKind.LIST:
            if el is None:
                return None
            return [item.get_text().strip() for item in _select(el, rule.list_item_path, rule.id)]
        case _:
            raise EvalError(rule.id, f"unsupported selector kind: {rule.kind!r}")


def evaluate_all(soup: BeautifulSoup, rules: Iterable[SelectorRule]) -> Tuple[Dict[str, Value], Dict[str, str]]:
    """Evaluate each rule independently. Failures become None plus an entry in `errors`."""
    data: Dict[str, Value] = {}
    errors: Dict[str, str] = {}
    for rule in rules:
        try:
            data[rule.id] = evaluate(soup, rule)
        except EvalError as e:
            logger.warning("Selector failed: %s", e)
            data[rule.id] = None
            errors[rule.id] = e.message
    return data, errors


def page_title(soup: BeautifulSoup) -> Optional[str]:
    if soup.title is None:
        return None
    title = soup.title.get_text().strip()
    return title or None


def next_page_url(soup: BeautifulSoup, selector: str, base_url: str) -> Optional[str]:
    """
    Resolve the "next page" link: href of the match, of its <a> ancestor, or of an <a> inside it.
    None when nothing matches (last page). Raises EvalError when the selector is invalid or the
    match carries no followable link (e.g. a script-driven button).
    """
    el = _select_one(soup, selector, "nextPageSelector")
    if el is None:
        return None

    href = el.get("href")
    if not href:
        anchor = el.find_parent("a", href=True) or el.find("a", href=True)
        href = anchor.get("href") if anchor is not None else None
    if not href or href.strip().lower().startswith(("javascript:", "#")):
        raise EvalError("nextPageSelector", f"<{el.name}> matched by {selector!r} has no followable href")
    return urljoin(base_url, href.strip())
