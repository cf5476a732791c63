"""
Product page reader.

Pulls what the storefront filter needs out of a rendered product page:
the bootstrap payload script, and the currently selected variant as the
page itself reports it (URL, cart form, analytics globals).
"""

import json
import logging
import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

BOOTSTRAP_ELEMENT_ID = "variant-image-data"

# Cart form inputs carrying the selected variant id, most specific first
_VARIANT_INPUT_SELECTORS = (
    'form[action*="/cart/add"] input[name="id"]',
    'form.product-form input[name="id"]',
    'input[name="id"][form]',
)

_ANALYTICS_META = re.compile(r"ShopifyAnalytics\.meta\s*=\s*")
_SELECTED_VARIANT = re.compile(r'"selectedVariantId"\s*:\s*"?(\d+)')


@dataclass
class ProductPage:
    """A parsed product page plus the filter inputs found in it."""

    soup: BeautifulSoup
    bootstrap_raw: str | None = None  # text of script#variant-image-data
    current_variant_id: str | None = None
    url: str | None = None


def parse_page(html: str, url: str | None = None) -> ProductPage:
    """Parse a product page. ``url`` is the page address, used for ``?variant=``."""
    soup = BeautifulSoup(html, "lxml")
    return ProductPage(
        soup=soup,
        bootstrap_raw=_extract_bootstrap(soup),
        current_variant_id=current_variant_id(soup, url),
        url=url,
    )


# ---------------------------------------------------------------------------
# Bootstrap payload
# ---------------------------------------------------------------------------


def _extract_bootstrap(soup: BeautifulSoup) -> str | None:
    tag = soup.find("script", id=BOOTSTRAP_ELEMENT_ID)
    if tag is None:
        return None
    text = tag.string
    if not text or not text.strip():
        logger.debug(f"Empty script#{BOOTSTRAP_ELEMENT_ID}")
        return None
    return text


# ---------------------------------------------------------------------------
# Selected variant
# ---------------------------------------------------------------------------


def variant_from_url(url: str | None) -> str | None:
    if not url:
        return None
    values = parse_qs(urlsplit(url).query).get("variant")
    return values[0] if values and values[0] else None


def current_variant_id(soup: BeautifulSoup, url: str | None = None) -> str | None:
    """Selected variant id: ``?variant=`` first, then the cart form, then analytics."""
    from_url = variant_from_url(url)
    if from_url:
        return from_url

    for selector in _VARIANT_INPUT_SELECTORS:
        tag = soup.select_one(selector)
        if tag is not None and tag.get("value"):
            return str(tag["value"])

    return _selected_variant_from_analytics(soup)


def _selected_variant_from_analytics(soup: BeautifulSoup) -> str | None:
    """Older themes only expose the variant through ``window.ShopifyAnalytics.meta``."""
    for tag in soup.find_all("script"):
        if tag.get("src") or tag.get("type") in ("application/json", "application/ld+json"):
            continue
        text = tag.string
        if not text:
            continue

        match = _ANALYTICS_META.search(text)
        if match:
            json_str = _brace_match(text, match.end())
            if json_str:
                try:
                    meta = json.loads(json_str)
                    if isinstance(meta, dict) and meta.get("selectedVariantId"):
                        return str(meta["selectedVariantId"])
                except (json.JSONDecodeError, TypeError):
                    logger.debug("Skipping malformed ShopifyAnalytics.meta JSON")

        # Meta assembled piecemeal (var meta = {...}; ShopifyAnalytics.meta = meta)
        loose = _SELECTED_VARIANT.search(text)
        if loose and "ShopifyAnalytics" in text:
            return loose.group(1)

    return None


def _brace_match(text: str, start: int) -> str | None:
    """The balanced `{...}` or `[...]` literal opening at `start`, or None if unterminated.

    Brackets inside quoted strings (escapes included) do not count.
    """
    if start >= len(text) or text[start] not in ("{", "["):
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        c = text[i]
        if escape_next:
            escape_next = False
        elif c == "\\" and in_string:
            escape_next = True
        elif c == '"':
            in_string = not in_string
        elif not in_string:
            if c in ("{", "["):
                depth += 1
            elif c in ("}", "]"):
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]

    return None
