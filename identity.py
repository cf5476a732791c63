"""
Image identity across storefront markup.

Themes render catalog images through the CDN with size transforms applied
(``shirt_800x.jpg?v=2``), and the markup never carries the image id. The
filename survives every transform, so identity is recovered by stripping
the query and the size suffix and matching the remaining base filename
against the catalog's own URLs.
"""

import logging
import re
from collections.abc import Iterable, Mapping

from models import ProductImage
from normalizer import to_numeric_id

logger = logging.getLogger(__name__)

# CDN size suffix before the extension: _800x.jpg, _800x600.jpg, _x600.jpg
_SIZE_SUFFIX = re.compile(r"_\d*x\d*\.([^.]+)$")


def base_filename(url: str | None) -> str:
    """Filename of ``url`` without query string or CDN size suffix.

    ``https://cdn.example.com/files/a_800x.jpg?v=2`` -> ``a.jpg``
    """
    if not url:
        return ""
    path = url.split("?", 1)[0]
    name = path.rsplit("/", 1)[-1]
    return _SIZE_SUFFIX.sub(r".\1", name)


def build_identity_table(images: Iterable[ProductImage]) -> dict[str, str]:
    """ImageIdentityTable for the storefront payload: numeric image id -> URL."""
    table: dict[str, str] = {}
    for image in images:
        image_id = to_numeric_id(image.id)
        if image_id and image.url:
            table[image_id] = image.url
    return table


class FilenameIndex:
    """Reverse lookup from base filename to image id, built once per page."""

    def __init__(self, image_urls: Mapping[str, str]):
        self._by_filename: dict[str, str] = {}
        for image_id, url in image_urls.items():
            name = base_filename(url)
            if not name:
                continue
            if name in self._by_filename:
                # Two catalog images share a base filename; the first one keeps it
                logger.debug(f"Duplicate base filename {name!r} for images {self._by_filename[name]} and {image_id}")
                continue
            self._by_filename[name] = str(image_id)

    def __len__(self) -> int:
        return len(self._by_filename)

    def resolve(self, src: str | None) -> str | None:
        """Image id for a rendered ``src``, or None when nothing matches."""
        name = base_filename(src)
        if not name:
            return None
        return self._by_filename.get(name)
