"""Shared fixtures: one two-axis product, its mapping, and Dawn-style page markup."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from bootstrap import build_bootstrap, render_bootstrap_script
from models import BootstrapPayload, CanonicalMapping, CatalogProduct, Settings

CDN = "https://cdn.shopify.com/s/files/1/0001/files"

# filename stem -> numeric image id
IMAGES = {
    "black-front": "2222",
    "black-back": "3333",
    "red-front": "4444",
    "lifestyle": "5555",
}


def image_url(stem: str, size: str = "") -> str:
    return f"{CDN}/{stem}{size}.jpg?v=1700000000"


@pytest.fixture
def product() -> CatalogProduct:
    """Color x Size product; Blue has no images assigned."""
    return CatalogProduct.model_validate(
        {
            "id": "gid://shopify/Product/9001",
            "title": "Tee",
            "handle": "tee",
            "options": [
                {"name": "Color", "values": ["Black", "Red", "Blue"]},
                {"name": "Size", "values": ["S", "M"]},
            ],
            "images": [
                {"id": f"gid://shopify/ProductImage/{image_id}", "url": image_url(stem)}
                for stem, image_id in IMAGES.items()
            ],
            "variants": [
                {
                    "id": f"gid://shopify/ProductVariant/{variant_id}",
                    "title": f"{color} / {size}",
                    "selectedOptions": [
                        {"name": "Color", "value": color},
                        {"name": "Size", "value": size},
                    ],
                }
                for variant_id, color, size in (
                    ("1111", "Black", "S"),
                    ("1112", "Black", "M"),
                    ("2221", "Red", "S"),
                    ("3331", "Blue", "S"),
                )
            ],
        }
    )


@pytest.fixture
def canonical() -> CanonicalMapping:
    return CanonicalMapping(option_name="Color", mapping={"Black": ["2222", "3333"], "Red": ["4444"]})


@pytest.fixture
def payload(product: CatalogProduct, canonical: CanonicalMapping) -> BootstrapPayload:
    return build_bootstrap(product, canonical, Settings(), initial_variant_id="1111")


def gallery_markup(stems: list[str], active: int = 0) -> str:
    rows = []
    for i, stem in enumerate(stems):
        current = ' aria-current="true"' if i == active else ""
        rows.append(
            f'<li class="product__media-item" data-media-id="m{i}"{current}>'
            f'<img src="{image_url(stem, "_800x")}"></li>'
        )
    items = "\n".join(rows)
    thumbs = "\n".join(
        f'<li class="thumbnail-list__item"><img src="{image_url(stem, "_100x100")}"></li>'
        for stem in stems
    )
    return (
        f'<ul class="product__media-list">\n{items}\n</ul>\n'
        f'<ul class="thumbnail-list">\n{thumbs}\n</ul>'
    )


@pytest.fixture
def dawn_page() -> Callable[..., str]:
    """Build a Dawn-like product page around an optional bootstrap payload."""

    def build(
        payload: BootstrapPayload | None,
        stems: list[str] | None = None,
        variant_input: str | None = "1111",
    ) -> str:
        script = render_bootstrap_script(payload) if payload is not None else ""
        form = (
            f'<form action="/cart/add"><input type="hidden" name="id" value="{variant_input}"></form>'
            if variant_input
            else ""
        )
        body = gallery_markup(stems or list(IMAGES))
        return f"<html><head></head><body>{script}{form}{body}</body></html>"

    return build
