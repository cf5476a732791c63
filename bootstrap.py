"""
Storefront bootstrap payload.

The payload is the only contract between server-side normalization and the
storefront runtime. It is rendered once per page as a JSON script tag:

    {"mapping": CanonicalMapping, "imageUrls": {imageId: url},
     "initialVariantId": str, "settings": Settings,
     "optionNames": [str], "variantOptions": {variantId: [value per option]}}

Reading never raises: a payload the runtime cannot use yields None and the
page is left untouched.
"""

import logging
from typing import Any

import orjson
from pydantic import ValidationError

from identity import build_identity_table
from models import BootstrapPayload, CanonicalMapping, CatalogProduct, Settings
from normalizer import normalize_settings, parse_json_or, to_numeric_id
from page import BOOTSTRAP_ELEMENT_ID

logger = logging.getLogger(__name__)


def build_bootstrap(
    product: CatalogProduct,
    mapping: CanonicalMapping,
    settings: Settings,
    initial_variant_id: Any = None,
) -> BootstrapPayload:
    """Assemble the payload for one product page.

    Without an explicit initial variant the product's first variant is used,
    matching what the storefront selects on a bare product URL.
    """
    option_names = product.option_names
    variant_options: dict[str, list[str]] = {}
    for variant in product.variants:
        variant_id = to_numeric_id(variant.id)
        if variant_id:
            variant_options[variant_id] = [variant.option_value(name) or "" for name in option_names]

    initial = to_numeric_id(initial_variant_id)
    if not initial and product.variants:
        initial = to_numeric_id(product.variants[0].id)

    return BootstrapPayload(
        mapping=mapping.to_json(),
        image_urls=build_identity_table(product.images),
        initial_variant_id=initial or None,
        settings=settings,
        option_names=option_names,
        variant_options=variant_options,
    )


def render_bootstrap_script(payload: BootstrapPayload) -> str:
    """The ``<script type="application/json">`` tag embedding ``payload``."""
    body = orjson.dumps(payload.to_json()).decode()
    # A literal "</" would end the script element early
    body = body.replace("</", "<\\/")
    return f'<script type="application/json" id="{BOOTSTRAP_ELEMENT_ID}">{body}</script>'


def read_bootstrap(raw: Any) -> BootstrapPayload | None:
    """Parse payload text as the storefront runtime does; None when unusable."""
    config = parse_json_or(raw, None)
    if not isinstance(config, dict):
        return None

    mapping = config.get("mapping")
    image_urls = config.get("imageUrls")
    if mapping is None or image_urls is None or mapping == "" or image_urls == "":
        return None

    # Some theme snippets embed the metafield value as a string
    mapping = parse_json_or(mapping, None)
    if not isinstance(mapping, dict) or not isinstance(image_urls, dict):
        logger.debug("Bootstrap payload has unusable mapping or imageUrls")
        return None

    option_names = config.get("optionNames")
    variant_options = config.get("variantOptions")
    initial = config.get("initialVariantId")

    try:
        return BootstrapPayload(
            mapping=mapping,
            image_urls={str(k): str(v) for k, v in image_urls.items() if v},
            initial_variant_id=str(initial) if initial not in (None, "") else None,
            settings=normalize_settings(config.get("settings")),
            option_names=[str(n) for n in option_names] if isinstance(option_names, list) else [],
            variant_options={
                str(k): ["" if v is None else str(v) for v in values]
                for k, values in (variant_options.items() if isinstance(variant_options, dict) else [])
                if isinstance(values, list)
            },
        )
    except ValidationError:
        logger.debug("Bootstrap payload failed validation", exc_info=True)
        return None
