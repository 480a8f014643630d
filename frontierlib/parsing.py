import json
import re
from collections.abc import Iterable as IterableABC
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from .types import HTML, JSON, XML, Candidates, RequestContext


# attributes holding a URL, by tag
URL_ATTRS = {
    "a": ("href",),
    "area": ("href",),
    "link": ("href",),
    "img": ("src",),
    "script": ("src",),
    "iframe": ("src",),
    "frame": ("src",),
    "embed": ("src",),
    "source": ("src",),
    "track": ("src",),
    "input": ("src",),
    "audio": ("src",),
    "video": ("src", "poster"),
    "form": ("action",),
    "object": ("data",),
}

_SKIP_PREFIXES = ("mailto:", "javascript:", "tel:", "data:", "#")
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")


class UrlTools:
    @staticmethod
    def normalize_link(base_url: str, href: str) -> Optional[str]:
        if not href:
            return None
        href = href.strip()
        if href.startswith(_SKIP_PREFIXES):
            return None
        return urljoin(base_url, href)

    @staticmethod
    def is_valid_candidate(url: Any) -> bool:
        if not isinstance(url, str) or not url:
            return False
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return bool(parsed.scheme) and _SCHEME_RE.match(parsed.scheme) is not None


def absolutize(soup: BeautifulSoup, base_url: str) -> BeautifulSoup:
    """Rewrite relative link attributes in ``soup`` to absolute URLs in place."""
    base_el = soup.find("base", href=True)
    if base_el is not None:
        base_url = urljoin(base_url, base_el["href"].strip())
    for tag, attrs in URL_ATTRS.items():
        for el in soup.find_all(tag):
            for attr in attrs:
                value = el.get(attr)
                if not isinstance(value, str):
                    continue
                absolute = UrlTools.normalize_link(base_url, value)
                if absolute:
                    el[attr] = absolute
    return soup


def load(ctx: RequestContext) -> Any:
    body = ctx.body
    kind = ctx.kind
    if kind in (HTML, XML):
        if body is None:
            body = ""
        soup = BeautifulSoup(body, "xml" if kind == XML else "html.parser")
        return absolutize(soup, ctx.url)
    if kind == JSON and isinstance(body, (str, bytes, bytearray)):
        return json.loads(body) if body else None
    return body


def _split_selector(selector: str) -> Tuple[str, Optional[str]]:
    if "@" in selector:
        css, attr = selector.rsplit("@", 1)
        return css.strip(), attr.strip() or None
    return selector.strip(), None


def select_document(soup: BeautifulSoup, selector: Union[str, List[str]]) -> Candidates:
    many = isinstance(selector, list)
    css, attr = _split_selector(selector[0] if many else selector)
    if many:
        elements = soup.select(css) if css else [soup]
    else:
        first = soup.select_one(css) if css else soup
        elements = [first] if first is not None else []
    values = []
    for el in elements:
        value = el.get(attr) if attr else el.get_text(strip=True)
        if isinstance(value, list):
            value = " ".join(value)
        if value:
            values.append(value)
    if many:
        return values
    return values[0] if values else None


def select_path(obj: Any, path: str) -> Any:
    """Resolve a dotted path such as ``links.next`` or ``items.0.url``."""
    current = obj
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
    return current


def select_json(data: Any, selector: Union[str, List[str]]) -> Candidates:
    path = selector[0] if isinstance(selector, list) else selector
    if isinstance(data, list):
        return [value for value in (select_path(item, path) for item in data) if value is not None]
    # a single object is selected from directly
    return select_path(data, path)


def compile_selector(selector: Union[str, List[str]]) -> Callable[[Any, RequestContext], Candidates]:
    """Turn a declarative selector into a paginate function.

    ``"a.next@href"`` picks the attribute of the first match, ``"h1"`` its
    text, and ``["a@href"]`` every match. JSON responses treat the selector
    as a dotted path.
    """
    if isinstance(selector, list) and len(selector) != 1:
        raise ValueError(f"list selectors take exactly one expression, got {selector!r}")

    def paginate(parsed: Any, ctx: RequestContext) -> Candidates:
        kind = ctx.kind
        if kind in (HTML, XML):
            return select_document(parsed, selector)
        if kind == JSON:
            return select_json(parsed, selector)
        return []

    paginate.selector = selector  # type: ignore[attr-defined]
    return paginate


def as_candidates(result: Candidates) -> Iterable[Any]:
    if result is None:
        return []
    if isinstance(result, (str, bytes)):
        return [result]
    if isinstance(result, dict) or not isinstance(result, IterableABC):
        return [result]
    return list(result)
