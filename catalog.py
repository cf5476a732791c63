"""
Catalog service client (Shopify Admin GraphQL).

Thin pass-through: fetches product snapshots and settings, writes back the
values the normalizers produce. Remote failures raise ``CatalogError``;
the only best-effort calls are metafield definition setup and the theme
embed check, which log and degrade instead.
"""

import asyncio
import logging
from typing import Any

import httpx
import orjson

from config import AppConfig
from models import (
    CanonicalMapping,
    CatalogProduct,
    EmbedStatus,
    ProductImage,
    ProductSummary,
    Settings,
)
from normalizer import (
    candidate_image_ids,
    normalize_product_mapping,
    normalize_settings,
    parse_json_or,
    strip_json_comment,
    to_numeric_id,
)

logger = logging.getLogger(__name__)

EMBED_BLOCK_MARKER = "/variant-images-embed/"


class CatalogError(Exception):
    """The catalog service failed or rejected a request."""


# ---------------------------------------------------------------------------
# GraphQL documents
# ---------------------------------------------------------------------------

_DEFINITION_MUTATION = """
mutation EnsureMetafieldDefinitions($product: MetafieldDefinitionInput!, $shop: MetafieldDefinitionInput!) {
  productDefinition: metafieldDefinitionCreate(definition: $product) { userErrors { message } }
  shopDefinition: metafieldDefinitionCreate(definition: $shop) { userErrors { message } }
}
"""

_SHOP_ID_QUERY = "query GetShopBasic { shop { id } }"

_SHOP_SETTINGS_QUERY = """
query GetShopSettingsMetafield($namespace: String!, $key: String!) {
  shop { metafield(namespace: $namespace, key: $key) { value } }
}
"""

_METAFIELDS_SET_MUTATION = """
mutation SetMetafields($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) { userErrors { field message } }
}
"""

_MAIN_THEME_QUERY = """
query MainThemeSettingsData {
  themes(first: 1, roles: [MAIN]) {
    nodes {
      id
      name
      files(first: 1, filenames: ["config/settings_data.json"]) {
        nodes { body { ... on OnlineStoreThemeFileBodyText { content } } }
      }
    }
  }
}
"""

_PRODUCTS_QUERY = """
query ListProductsForVariantImages($first: Int!, $query: String, $namespace: String!, $key: String!) {
  products(first: $first, query: $query, sortKey: UPDATED_AT, reverse: true) {
    edges {
      node {
        id
        title
        handle
        updatedAt
        onlineStoreUrl
        images(first: 8) { edges { node { id url altText } } }
        variants(first: 100) { edges { node { id title } } }
        metafield(namespace: $namespace, key: $key) { value }
      }
    }
  }
}
"""

_PRODUCT_QUERY = """
query GetProductForAssignment($id: ID!, $namespace: String!, $key: String!) {
  product(id: $id) {
    id
    title
    handle
    onlineStoreUrl
    options { id name values }
    images(first: 250) { edges { node { id url altText } } }
    variants(first: 100) { edges { node { id title selectedOptions { name value } } } }
    metafield(namespace: $namespace, key: $key) { value }
  }
}
"""


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def product_gid(product_id: Any) -> str:
    """Accept a numeric id or a gid; return the gid the Admin API expects."""
    text = str(product_id)
    if text.startswith("gid://"):
        return text
    return f"gid://shopify/Product/{to_numeric_id(text)}"


def _edges(connection: Any) -> list[dict]:
    if not isinstance(connection, dict):
        return []
    return [edge["node"] for edge in connection.get("edges", []) if isinstance(edge, dict) and edge.get("node")]


def _metafield_value(node: dict) -> Any:
    metafield = node.get("metafield")
    return metafield.get("value") if isinstance(metafield, dict) else None


def summarize_product(node: dict) -> ProductSummary:
    """Listing row from a product node, counting configured values and images.

    Counts are taken from the stored table as-is (either shape); they are a
    listing hint, not a validated mapping.
    """
    parsed = parse_json_or(_metafield_value(node), {})
    if isinstance(parsed, dict) and parsed.get("mode") == "option":
        table = parse_json_or(parsed.get("mapping"), {})
    else:
        table = parsed
    if not isinstance(table, dict):
        table = {}

    assigned = {to_numeric_id(i) for value in table.values() for i in candidate_image_ids(value)}
    assigned.discard("")
    images = _edges(node.get("images"))

    return ProductSummary(
        id=node["id"],
        numeric_id=to_numeric_id(node["id"]),
        title=node.get("title", ""),
        handle=node.get("handle", ""),
        updated_at=node.get("updatedAt"),
        online_store_url=node.get("onlineStoreUrl"),
        image=ProductImage.model_validate(images[0]) if images else None,
        media_count=len(images),
        variants_count=len(_edges(node.get("variants"))),
        configured_values=len(table),
        assigned_images_count=len(assigned),
    )


def is_embed_enabled(settings_data: Any) -> bool:
    """True when the theme's settings_data.json has the app embed block switched on."""
    parsed = parse_json_or(strip_json_comment(settings_data), None)
    current = parsed.get("current") if isinstance(parsed, dict) else None
    blocks = current.get("blocks") if isinstance(current, dict) else None
    if not isinstance(blocks, dict):
        return False

    for block in blocks.values():
        if not isinstance(block, dict) or block.get("disabled") is True:
            continue
        if EMBED_BLOCK_MARKER in str(block.get("type") or ""):
            return True
    return False


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class CatalogClient:
    """Async Admin API client scoped to one shop."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-10",
        namespace: str = "variant_images",
        map_key: str = "image_map",
        settings_key: str = "settings",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.namespace = namespace
        self.map_key = map_key
        self.settings_key = settings_key
        self._client = httpx.AsyncClient(
            base_url=f"https://{shop_domain}/admin/api/{api_version}",
            headers={"X-Shopify-Access-Token": access_token, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: AppConfig, transport: httpx.AsyncBaseTransport | None = None) -> "CatalogClient":
        return cls(
            shop_domain=config.shop_domain,
            access_token=config.admin_token,
            api_version=config.api_version,
            namespace=config.metafield_namespace,
            map_key=config.map_metafield_key,
            settings_key=config.settings_metafield_key,
            timeout=config.request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _graphql(self, query: str, variables: dict | None = None) -> dict:
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            resp = await self._client.post("/graphql.json", content=orjson.dumps(payload))
        except httpx.HTTPError as e:
            raise CatalogError(f"Catalog request failed: {e}") from e

        if resp.status_code != 200:
            raise CatalogError(f"Catalog returned HTTP {resp.status_code}")

        try:
            body = orjson.loads(resp.content)
        except orjson.JSONDecodeError as e:
            raise CatalogError("Catalog returned a non-JSON response") from e

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            if isinstance(errors, list) and isinstance(errors[0], dict):
                raise CatalogError(errors[0].get("message", "Unknown GraphQL error"))
            raise CatalogError(str(errors))

        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, dict) else {}

    async def _set_metafield(self, owner_id: str, key: str, value: dict) -> None:
        data = await self._graphql(
            _METAFIELDS_SET_MUTATION,
            {
                "metafields": [
                    {
                        "ownerId": owner_id,
                        "namespace": self.namespace,
                        "key": key,
                        "type": "json",
                        "value": orjson.dumps(value).decode(),
                    }
                ]
            },
        )
        user_errors = (data.get("metafieldsSet") or {}).get("userErrors") or []
        if user_errors:
            raise CatalogError(user_errors[0].get("message", "Metafield write rejected"))

    # --- setup ----------------------------------------------------------------

    async def ensure_metafield_definitions(self) -> None:
        """Create the product and shop metafield definitions; already-existing is fine."""

        def definition(name: str, key: str, owner: str) -> dict:
            return {
                "name": name,
                "namespace": self.namespace,
                "key": key,
                "type": "json",
                "ownerType": owner,
                "access": {"storefront": "PUBLIC_READ"},
            }

        try:
            await self._graphql(
                _DEFINITION_MUTATION,
                {
                    "product": definition("Variant Image Map", self.map_key, "PRODUCT"),
                    "shop": definition("Variant Image Settings", self.settings_key, "SHOP"),
                },
            )
        except CatalogError as e:
            logger.warning(f"Metafield definition setup failed (continuing): {e}")

    async def get_theme_embed_status(self) -> EmbedStatus:
        try:
            data = await self._graphql(_MAIN_THEME_QUERY)
        except CatalogError as e:
            logger.warning(f"Theme embed check failed: {e}")
            return EmbedStatus()

        themes = (data.get("themes") or {}).get("nodes") or []
        theme = themes[0] if themes else {}
        files = (theme.get("files") or {}).get("nodes") or []
        content = ((files[0] if files else {}).get("body") or {}).get("content")

        return EmbedStatus(
            known=isinstance(content, str),
            enabled=is_embed_enabled(content),
            theme_name=theme.get("name"),
        )

    # --- settings -------------------------------------------------------------

    async def get_shop_settings(self) -> tuple[str, Settings]:
        """Shop id and its normalized settings; unreadable settings mean defaults."""
        data = await self._graphql(_SHOP_ID_QUERY)
        shop_id = (data.get("shop") or {}).get("id")
        if not shop_id:
            raise CatalogError("Catalog returned no shop id")

        try:
            data = await self._graphql(
                _SHOP_SETTINGS_QUERY, {"namespace": self.namespace, "key": self.settings_key}
            )
        except CatalogError as e:
            logger.warning(f"Could not read shop settings, using defaults: {e}")
            return shop_id, normalize_settings(None)

        return shop_id, normalize_settings(_metafield_value(data.get("shop") or {}))

    async def save_shop_settings(self, shop_id: str, settings: Any) -> Settings:
        sanitized = normalize_settings(settings)
        await self._set_metafield(shop_id, self.settings_key, sanitized.to_json())
        logger.info(f"Saved shop settings: {sanitized.to_json()}")
        return sanitized

    # --- products -------------------------------------------------------------

    async def list_products(self, first: int = 50, query: str = "") -> list[ProductSummary]:
        data = await self._graphql(
            _PRODUCTS_QUERY,
            {"first": first, "query": query or None, "namespace": self.namespace, "key": self.map_key},
        )
        return [summarize_product(node) for node in _edges(data.get("products"))]

    async def get_product(self, product_id: Any) -> CatalogProduct | None:
        data = await self._graphql(
            _PRODUCT_QUERY,
            {"id": product_gid(product_id), "namespace": self.namespace, "key": self.map_key},
        )
        node = data.get("product")
        if not node:
            return None

        return CatalogProduct(
            id=node["id"],
            title=node.get("title", ""),
            handle=node.get("handle", ""),
            online_store_url=node.get("onlineStoreUrl"),
            options=node.get("options") or [],
            images=_edges(node.get("images")),
            variants=_edges(node.get("variants")),
            raw_mapping=_metafield_value(node),
        )

    async def load_product_mapping(self, product_id: Any) -> tuple[CatalogProduct, CanonicalMapping] | None:
        """Product snapshot and its stored mapping, normalized against the snapshot."""
        product = await self.get_product(product_id)
        if product is None:
            return None
        mapping = normalize_product_mapping(
            product.raw_mapping, product.options, product.variants, product.image_ids
        )
        return product, mapping

    async def save_product_mapping(self, product_id: Any, mapping: CanonicalMapping) -> None:
        await self._set_metafield(product_gid(product_id), self.map_key, mapping.to_json())
        logger.info(
            f"Saved mapping for product {to_numeric_id(product_id)}: "
            f"{len(mapping.mapping)} {mapping.option_name} values"
        )

    async def load_overview(self) -> tuple[Settings, EmbedStatus, list[ProductSummary]]:
        """Settings, embed status and recent products, fetched concurrently."""
        (_, settings), embed_status, products = await asyncio.gather(
            self.get_shop_settings(),
            self.get_theme_embed_status(),
            self.list_products(first=80),
        )
        return settings, embed_status, products
