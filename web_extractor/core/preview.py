"""Rewrite a fetched page so it can be embedded in the selector authoring iframe."""
from bs4 import BeautifulSoup

HIGHLIGHT_CLASS = "selector-highlight"
HIGHLIGHT_CSS = f"""
.{HIGHLIGHT_CLASS} {{
  outline: 2px solid #3b82f6 !important;
  background-color: rgba(59, 130, 246, 0.1) !important;
}}
"""
PREVIEW_HEADERS = {
    "Content-Type": "text/html; charset=utf-8",
    "X-Frame-Options": "SAMEORIGIN",
}
_ACTIVE_TAGS = ("script", "noscript", "iframe", "object", "embed")


def prepare_preview(html: str, base_url: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")

    for tag in soup.find_all(_ACTIVE_TAGS):
        tag.decompose()
    for tag in soup.find_all(True):
        for attr in [a for a in tag.attrs if a.lower().startswith("on")]:
            del tag[attr]
        href = tag.get("href")
        if isinstance(href, str) and href.strip().lower().startswith("javascript:"):
            del tag["href"]

    if soup.html is None:
        wrapper = BeautifulSoup("<html><head></head><body></body></html>", "html.parser")
        wrapper.body.extend(list(soup.contents))
        soup = wrapper
    head = soup.head
    if head is None:
        head = soup.new_tag("head")
        soup.html.insert(0, head)

    for old in head.find_all("base"):
        old.decompose()
    head.insert(0, soup.new_tag("base", href=base_url))

    style = soup.new_tag("style")
    style["data-web-extractor"] = "highlight"
    style.string = HIGHLIGHT_CSS
    head.append(style)
    return str(soup)
