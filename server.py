"""
FastAPI server for variant image assignment.

Admin-facing JSON endpoints over the catalog service plus the storefront
bootstrap payload:
- GET  /api/overview                         → setup progress and product lists
- GET  /api/products                         → configured / unconfigured products
- GET  /api/products/{id}                    → product with its normalized mapping
- PUT  /api/products/{id}/mapping            → save (or reset) the mapping
- PUT  /api/products/{id}/mapping/{value}    → replace one value's images
- POST /api/products/{id}/mapping/{value}/images/{image} → toggle one image
- GET  /api/settings, PUT /api/settings      → shop settings
- GET  /api/storefront/{id}/bootstrap        → payload for the storefront script
"""

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ConfigDict, Field

from assignments import assign_images, enforce_exclusive, is_exclusive, toggle_image
from bootstrap import build_bootstrap
from catalog import CatalogClient, CatalogError
from config import get_config
from models import (
    BootstrapPayload,
    CanonicalMapping,
    CatalogProduct,
    EmbedStatus,
    ProductImage,
    ProductOption,
    ProductSummary,
    ProductVariant,
    Settings,
)
from normalizer import filter_mapping, normalize_settings, to_numeric_id

logger = logging.getLogger("server")

# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class MappingUpdate(BaseModel):
    """Body of a mapping save. ``mapping`` is filtered, never trusted."""

    model_config = ConfigDict(populate_by_name=True)

    option_name: str | None = Field(default=None, alias="optionName")
    mapping: Any = None
    intent: str = "save"  # "save" or "reset"


class ValueAssignment(BaseModel):
    """Body of a single option value's image replacement."""

    model_config = ConfigDict(populate_by_name=True)

    image_ids: list[str] = Field(default=[], alias="imageIds")


class MappingSaved(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    intent: str
    option_name: str = Field(alias="optionName")
    mapping: dict[str, list[str]]


class AssignmentView(BaseModel):
    """Everything the assignment screen needs for one product."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    numeric_id: str = Field(alias="numericId")
    title: str
    handle: str
    online_store_url: str | None = Field(alias="onlineStoreUrl")
    options: list[ProductOption]
    images: list[ProductImage]
    variants: list[ProductVariant]
    mapping_mode: str = Field(alias="mappingMode")
    option_name: str = Field(alias="optionName")
    mapping: dict[str, list[str]]
    settings: Settings


class ProductLists(BaseModel):
    query: str = ""
    configured: list[ProductSummary]
    unconfigured: list[ProductSummary]


class SetupStep(BaseModel):
    key: str
    label: str
    complete: bool


class Overview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    settings: Settings
    embed_status: EmbedStatus = Field(alias="embedStatus")
    setup_steps: list[SetupStep] = Field(alias="setupSteps")
    completed_steps: int = Field(alias="completedSteps")
    configured_products: list[ProductSummary] = Field(alias="configuredProducts")
    unconfigured_products: list[ProductSummary] = Field(alias="unconfiguredProducts")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_WHITESPACE_RE = re.compile(r"\s+")


def _title_search(q: str) -> str:
    """Catalog search syntax for a free-text title filter."""
    q = q.strip()
    return f"title:*{_WHITESPACE_RE.sub('*', q)}*" if q else ""


def _split_configured(products: list[ProductSummary]) -> tuple[list[ProductSummary], list[ProductSummary]]:
    """Only multi-variant products can be filtered; split those by configuration state."""
    candidates = [p for p in products if p.variants_count > 1]
    return [p for p in candidates if p.is_configured], [p for p in candidates if not p.is_configured]


async def _editable_mapping(
    catalog: CatalogClient, product_id: str, option_value: str
) -> tuple[CatalogProduct, CanonicalMapping, Settings]:
    """Current normalized mapping and settings for editing one option value."""
    loaded, (_, settings) = await asyncio.gather(
        catalog.load_product_mapping(product_id),
        catalog.get_shop_settings(),
    )
    if loaded is None:
        raise HTTPException(status_code=404, detail="Product not found")

    product, mapping = loaded
    if not product.options:
        raise HTTPException(status_code=400, detail="Product has no options")
    option = product.option(mapping.option_name)
    if option is None or option_value not in option.values:
        raise HTTPException(status_code=404, detail=f"Unknown {mapping.option_name} value")
    return product, mapping, settings


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Variant Image Filter API",
    default_response_class=ORJSONResponse,
)

app.add_middleware(GZipMiddleware, minimum_size=500)


async def get_catalog() -> AsyncIterator[CatalogClient]:
    """One catalog client per request, closed afterwards."""
    client = CatalogClient.from_config(get_config())
    try:
        yield client
    finally:
        await client.aclose()


@app.on_event("startup")
async def startup() -> None:
    config = get_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not config.shop_domain:
        logger.warning("SHOP_DOMAIN is not set; catalog requests will fail")


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError) -> ORJSONResponse:
    logger.error(f"Catalog error on {request.url.path}: {exc}")
    return ORJSONResponse(status_code=502, content={"ok": False, "error": str(exc)})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/api/overview", response_model=Overview)
async def overview(catalog: CatalogClient = Depends(get_catalog)):
    """Setup checklist plus a few configured and unconfigured products."""
    await catalog.ensure_metafield_definitions()
    settings, embed_status, products = await catalog.load_overview()
    configured, unconfigured = _split_configured(products)

    steps = [
        SetupStep(
            key="theme",
            label="Activate the variant images embed in the theme editor",
            complete=embed_status.enabled,
        ),
        SetupStep(key="mapping", label="Assign images to product option values", complete=bool(configured)),
        SetupStep(key="settings", label="Review storefront visibility settings", complete=True),
    ]
    return Overview(
        settings=settings,
        embed_status=embed_status,
        setup_steps=steps,
        completed_steps=sum(1 for step in steps if step.complete),
        configured_products=configured[:8],
        unconfigured_products=unconfigured[:12],
    )


@app.get("/api/products", response_model=ProductLists)
async def list_products(q: str = "", catalog: CatalogClient = Depends(get_catalog)):
    """Multi-variant products, split by whether a mapping is configured."""
    products = await catalog.list_products(first=80, query=_title_search(q))
    configured, unconfigured = _split_configured(products)
    return ProductLists(query=q.strip(), configured=configured, unconfigured=unconfigured)


@app.get("/api/products/{product_id}", response_model=AssignmentView)
async def get_product(product_id: str, catalog: CatalogClient = Depends(get_catalog)):
    """Product snapshot with its mapping normalized against current options and images."""
    loaded, (_, settings) = await asyncio.gather(
        catalog.load_product_mapping(product_id),
        catalog.get_shop_settings(),
    )
    if loaded is None:
        raise HTTPException(status_code=404, detail="Product not found")

    product, mapping = loaded
    return AssignmentView(
        id=product.id,
        numeric_id=to_numeric_id(product.id),
        title=product.title,
        handle=product.handle,
        online_store_url=product.online_store_url,
        options=product.options,
        images=product.images,
        variants=product.variants,
        mapping_mode=mapping.mode,
        option_name=mapping.option_name,
        mapping=mapping.mapping,
        settings=settings,
    )


@app.put("/api/products/{product_id}/mapping", response_model=MappingSaved)
async def save_mapping(product_id: str, update: MappingUpdate, catalog: CatalogClient = Depends(get_catalog)):
    """Validate and store a mapping for one option axis.

    Unknown option values and images are dropped. When the shop does not
    allow shared images, an image claimed by several values stays with the
    first one.
    """
    product = await catalog.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    names = product.option_names
    if not names:
        raise HTTPException(status_code=400, detail="Product has no options")
    option_name = update.option_name if update.option_name in names else names[0]

    if update.intent == "reset":
        mapping: dict[str, list[str]] = {}
    else:
        option = product.option(option_name)
        mapping = filter_mapping(update.mapping, option.values, product.image_ids)
        _, settings = await catalog.get_shop_settings()
        if not settings.allow_shared_images and not is_exclusive(mapping):
            logger.info(f"Product {to_numeric_id(product.id)}: shared images removed, sharing is off")
            mapping = enforce_exclusive(mapping)

    canonical = CanonicalMapping(option_name=option_name, mapping=mapping)
    await catalog.save_product_mapping(product.id, canonical)
    return MappingSaved(intent=update.intent, option_name=option_name, mapping=mapping)


@app.put("/api/products/{product_id}/mapping/{option_value}", response_model=MappingSaved)
async def assign_value_images(
    product_id: str,
    option_value: str,
    body: ValueAssignment,
    catalog: CatalogClient = Depends(get_catalog),
):
    """Replace the images of one option value ("select all" / "clear" on the value).

    Unknown images are dropped. Without shared images the assigned ones are
    taken away from every other value.
    """
    product, current, settings = await _editable_mapping(catalog, product_id, option_value)

    valid = {to_numeric_id(i) for i in product.image_ids}
    image_ids = [i for i in map(to_numeric_id, body.image_ids) if i in valid]
    mapping = assign_images(current.mapping, option_value, image_ids, allow_shared=settings.allow_shared_images)

    await catalog.save_product_mapping(product.id, CanonicalMapping(option_name=current.option_name, mapping=mapping))
    return MappingSaved(intent="assign", option_name=current.option_name, mapping=mapping)


@app.post("/api/products/{product_id}/mapping/{option_value}/images/{image_id}", response_model=MappingSaved)
async def toggle_value_image(
    product_id: str,
    option_value: str,
    image_id: str,
    catalog: CatalogClient = Depends(get_catalog),
):
    """Add the image to the value, or remove it when it is already assigned."""
    product, current, settings = await _editable_mapping(catalog, product_id, option_value)

    image_id = to_numeric_id(image_id)
    if image_id not in {to_numeric_id(i) for i in product.image_ids}:
        raise HTTPException(status_code=404, detail="Image not found")
    mapping = toggle_image(current.mapping, option_value, image_id, allow_shared=settings.allow_shared_images)

    await catalog.save_product_mapping(product.id, CanonicalMapping(option_name=current.option_name, mapping=mapping))
    return MappingSaved(intent="toggle", option_name=current.option_name, mapping=mapping)


@app.get("/api/settings", response_model=Settings)
async def get_settings(catalog: CatalogClient = Depends(get_catalog)):
    _, settings = await catalog.get_shop_settings()
    return settings


@app.put("/api/settings", response_model=Settings)
async def save_settings(body: Any = Body(default=None), catalog: CatalogClient = Depends(get_catalog)):
    """Store shop settings. Only real booleans are taken; anything else keeps its default."""
    shop_id, _ = await catalog.get_shop_settings()
    return await catalog.save_shop_settings(shop_id, normalize_settings(body))


@app.get("/api/storefront/{product_id}/bootstrap", response_model=BootstrapPayload)
async def storefront_bootstrap(
    product_id: str,
    variant: str | None = None,
    catalog: CatalogClient = Depends(get_catalog),
):
    """Payload the storefront script reads from ``script#variant-image-data``."""
    loaded, (_, settings) = await asyncio.gather(
        catalog.load_product_mapping(product_id),
        catalog.get_shop_settings(),
    )
    if loaded is None:
        raise HTTPException(status_code=404, detail="Product not found")

    product, mapping = loaded
    return build_bootstrap(product, mapping, settings, initial_variant_id=variant)
