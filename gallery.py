"""
Gallery adapter over product page markup (BeautifulSoup).

Knows the gallery and thumbnail markup of the common themes and how the
storefront hides an element: inline ``display: none``, ``aria-hidden`` and
the ``vi--hidden`` marker class, all three reverted when shown again.
"""

import logging

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

HIDDEN_CLASS = "vi--hidden"

# Ordered most -> least specific; the first selector with matches wins.
GALLERY_SELECTORS = [
    # Dawn / Craft / Sense / Refresh / Taste (OS 2.0)
    ".product__media-list .product__media-item",
    ".product__media-list > li",
    # Debut
    ".product-single__photos .product-single__photo-wrapper",
    # Narrative
    ".slideshow__slide",
    # Supply / Simple / Pop
    ".product-photos .product-photo-container",
    # Generic OS 2.0
    "[data-media-id]",
    # Fallbacks
    ".product-gallery li",
    ".product-images li",
]

# Every matching selector contributes; themes may render more than one strip.
THUMBNAIL_SELECTORS = [
    # Dawn
    ".thumbnail-list .thumbnail-list__item",
    ".product__media-list--thumbnail-preview li",
    # Generic
    ".product-thumbnails li",
    ".product-single__thumbnails li",
]

ACTIVE_ITEM_SELECTOR = ".product__media-item[aria-current='true']"


def _style_without_display(style: str) -> list[str]:
    declarations = [d.strip() for d in style.split(";") if d.strip()]
    return [d for d in declarations if d.split(":", 1)[0].strip().lower() != "display"]


def _first_srcset_url(srcset: str) -> str:
    first = srcset.split(",", 1)[0].strip()
    return first.split(" ", 1)[0] if first else ""


class SoupGallery:
    """``GalleryAdapter`` implementation that edits a parsed page in place."""

    def __init__(self, soup: BeautifulSoup):
        self.soup = soup
        self.gallery_selector: str | None = None  # selector that produced the last item list

    @classmethod
    def from_html(cls, html: str) -> "SoupGallery":
        return cls(BeautifulSoup(html, "lxml"))

    def find_items(self) -> list[Tag]:
        for selector in GALLERY_SELECTORS:
            items = self.soup.select(selector)
            if items:
                self.gallery_selector = selector
                return items
        self.gallery_selector = None
        return []

    def find_thumbnails(self) -> list[Tag]:
        thumbnails: list[Tag] = []
        seen: set[int] = set()
        for selector in THUMBNAIL_SELECTORS:
            for tag in self.soup.select(selector):
                if id(tag) not in seen:
                    seen.add(id(tag))
                    thumbnails.append(tag)
        return thumbnails

    def get_image_src(self, element: Tag) -> str:
        img = element if element.name == "img" else element.find("img")
        if img is None:
            return ""
        src = img.get("src") or img.get("data-src") or ""
        if not src and img.get("srcset"):
            src = _first_srcset_url(img["srcset"])
        return src

    def set_visible(self, element: Tag, visible: bool) -> None:
        declarations = _style_without_display(element.get("style", ""))
        classes = [c for c in element.get("class", []) if c != HIDDEN_CLASS]

        if visible:
            if "aria-hidden" in element.attrs:
                del element["aria-hidden"]
        else:
            declarations.append("display: none")
            element["aria-hidden"] = "true"
            classes.append(HIDDEN_CLASS)

        if declarations:
            element["style"] = "; ".join(declarations) + ";"
        elif "style" in element.attrs:
            del element["style"]

        if classes:
            element["class"] = classes
        elif "class" in element.attrs:
            del element["class"]

    def is_visible(self, element: Tag) -> bool:
        return HIDDEN_CLASS not in element.get("class", [])

    def active_item(self) -> Tag | None:
        return self.soup.select_one(ACTIVE_ITEM_SELECTOR)

    def activate(self, element: Tag) -> None:
        """Make ``element`` the current slide, as a click on it would in the theme."""
        for current in self.soup.select("[aria-current='true']"):
            if current is not element:
                del current["aria-current"]
        element["aria-current"] = "true"
        logger.debug(f"Activated slide {element.get('data-media-id') or element.name}")

    def html(self) -> str:
        return str(self.soup)
