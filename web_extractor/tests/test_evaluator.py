import pytest

from web_extractor.core.errors import EvalError, ValidationError
from web_extractor.core.evaluator import evaluate, evaluate_all, next_page_url, page_title, parse_document
from web_extractor.core.models import SelectorKind, SelectorRule

HTML = """
<html><head><title> Shop </title></head><body>
  <h1>  Hello <b>World</b>  </h1>
  <div id="box"><p>para</p>  </div>
  <a class="btn primary" href="/next?page=2" data-id="42">Next</a>
  <ul class="items"><li> A </li><li>B</li></ul>
  <ul class="empty"></ul>
</body></html>
"""


@pytest.fixture
def soup():
    return parse_document(HTML)


def rule(kind, path, **kw):
    return SelectorRule(id=kw.pop("id", "s"), name="s", path=path, kind=kind, **kw)


def test_text_is_trimmed(soup):
    assert evaluate(soup, rule(SelectorKind.TEXT, "h1")) == "Hello World"


def test_html_is_inner_markup_untrimmed(soup):
    assert evaluate(soup, rule(SelectorKind.HTML, "#box")) == "<p>para</p>  "


def test_attribute(soup):
    assert evaluate(soup, rule(SelectorKind.ATTRIBUTE, "a", attribute_name="data-id")) == "42"
    assert evaluate(soup, rule(SelectorKind.ATTRIBUTE, "a", attribute_name="class")) == "btn primary"
    assert evaluate(soup, rule(SelectorKind.ATTRIBUTE, "a", attribute_name="title")) is None
    assert evaluate(soup, rule(SelectorKind.ATTRIBUTE, "img", attribute_name="src")) is None


def test_list_semantics(soup):
    assert evaluate(soup, rule(SelectorKind.LIST, "ul.items", list_item_path="li")) == ["A", "B"]
    assert evaluate(soup, rule(SelectorKind.LIST, "ul.empty", list_item_path="li")) == []
    assert evaluate(soup, rule(SelectorKind.LIST, "ol.missing", list_item_path="li")) is None


def test_no_match_is_none(soup):
    assert evaluate(soup, rule(SelectorKind.TEXT, "h2")) is None
    assert evaluate(soup, rule(SelectorKind.HTML, "section")) is None


def test_malformed_selector_is_eval_error(soup):
    with pytest.raises(EvalError):
        evaluate(soup, rule(SelectorKind.TEXT, "div[[["))


def test_evaluate_all_isolates_bad_selector(soup):
    rules = [
        rule(SelectorKind.TEXT, "h1", id="title"),
        rule(SelectorKind.TEXT, "p[", id="broken"),
        rule(SelectorKind.LIST, "ul.items", id="items", list_item_path="li"),
    ]
    data, errors = evaluate_all(soup, rules)
    assert data == {"title": "Hello World", "broken": None, "items": ["A", "B"]}
    assert set(errors) == {"broken"}


def test_page_title_and_next_link(soup):
    assert page_title(soup) == "Shop"
    assert next_page_url(soup, "a.btn", "https://shop.example.com/list") == "https://shop.example.com/next?page=2"
    assert next_page_url(soup, "a.missing", "https://shop.example.com/") is None


def test_next_link_from_wrapped_anchor():
    soup = parse_document('<li class="next"><a href="page/3/">Next</a></li>')
    assert next_page_url(soup, "li.next", "https://q.example.com/page/2/") == "https://q.example.com/page/2/page/3/"


@pytest.mark.parametrize("payload", [
    {"id": "a", "path": "a", "kind": "attribute"},
    {"id": "l", "path": "ul", "kind": "list"},
    {"id": "x", "path": "", "kind": "text"},
    {"id": "x", "path": "p", "kind": "image"},
])
def test_rule_validation(payload):
    with pytest.raises(ValidationError):
        SelectorRule.from_dict(payload)


def test_rule_accepts_legacy_field_names():
    r = SelectorRule.from_dict({"id": "n", "name": "Names", "selector": "ul", "type": "list",
                                "listItemSelector": "li"})
    assert r.kind is SelectorKind.LIST
    assert r.path == "ul" and r.list_item_path == "li"


@pytest.mark.parametrize("raw", [
    {"id": "bad", "path": 123, "kind": "text"},
    {"id": "bad", "path": "a", "kind": "attribute", "attributeName": 7},
    {"id": "bad", "path": "ul", "kind": "list", "listItemPath": ["li"]},
])
def test_non_string_selector_fields_are_rejected(raw):
    with pytest.raises(ValidationError):
        SelectorRule.from_dict(raw)


def test_next_match_without_link_is_eval_error():
    soup = parse_document('<button class="next">Next</button><a class="js" href="javascript:go()">x</a>')
    with pytest.raises(EvalError):
        next_page_url(soup, "button.next", "https://q.example.com/")
    with pytest.raises(EvalError):
        next_page_url(soup, "a.js", "https://q.example.com/")
    with pytest.raises(EvalError):
        next_page_url(soup, "a[", "https://q.example.com/")
