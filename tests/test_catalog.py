"""Tests for the catalog client against a mocked Admin GraphQL endpoint."""

from __future__ import annotations

import json

import httpx
import pytest

from catalog import (
    CatalogClient,
    CatalogError,
    is_embed_enabled,
    product_gid,
    summarize_product,
)
from models import CanonicalMapping, Settings

PRODUCT_NODE = {
    "id": "gid://shopify/Product/9001",
    "title": "Tee",
    "handle": "tee",
    "onlineStoreUrl": "https://shop.example/products/tee",
    "options": [{"id": "gid://shopify/ProductOption/1", "name": "Color", "values": ["Black", "Red"]}],
    "images": {
        "edges": [
            {"node": {"id": "gid://shopify/ProductImage/2222", "url": "https://cdn.example/black.jpg", "altText": None}},
            {"node": {"id": "gid://shopify/ProductImage/4444", "url": "https://cdn.example/red.jpg", "altText": "Red"}},
        ]
    },
    "variants": {
        "edges": [
            {"node": {"id": "gid://shopify/ProductVariant/1111", "title": "Black",
                      "selectedOptions": [{"name": "Color", "value": "Black"}]}},
            {"node": {"id": "gid://shopify/ProductVariant/2221", "title": "Red",
                      "selectedOptions": [{"name": "Color", "value": "Red"}]}},
        ]
    },
    "metafield": {"value": '{"1111": ["2222"], "2221": ["4444", "404"]}'},
}


class FakeAdminApi:
    """Routes GraphQL documents by operation name and records every request."""

    def __init__(self, responses: dict[str, object]):
        self.responses = responses
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        for operation, response in self.responses.items():
            if operation in body["query"]:
                if isinstance(response, httpx.Response):
                    return response
                return httpx.Response(200, json=response)
        return httpx.Response(200, json={"data": {}})

    def variables(self, operation: str) -> dict:
        return next(r.get("variables", {}) for r in self.requests if operation in r["query"])


def make_client(api: FakeAdminApi) -> CatalogClient:
    return CatalogClient("shop.example", "token", transport=httpx.MockTransport(api))


class TestHelpers:
    def test_product_gid(self) -> None:
        assert product_gid("9001") == "gid://shopify/Product/9001"
        assert product_gid(9001) == "gid://shopify/Product/9001"
        assert product_gid("gid://shopify/Product/9001") == "gid://shopify/Product/9001"

    def test_summarize_counts_either_shape(self) -> None:
        node = dict(PRODUCT_NODE, metafield={"value": '{"mode": "option", "optionName": "Color", '
                                                      '"mapping": {"Black": ["2222"], "Red": ["2222", "4444"]}}'})
        summary = summarize_product(node)
        assert summary.numeric_id == "9001"
        assert summary.configured_values == 2
        assert summary.assigned_images_count == 2
        assert summary.media_count == 2
        assert summary.variants_count == 2
        assert summary.is_configured

    def test_summarize_unconfigured(self) -> None:
        summary = summarize_product(dict(PRODUCT_NODE, metafield=None))
        assert not summary.is_configured
        assert summary.model_dump(by_alias=True)["isConfigured"] is False

    def test_embed_detection(self) -> None:
        settings_data = """/*
 * IMPORTANT: The contents of this file are auto-generated.
 */
{"current": {"blocks": {"123": {"type": "shopify://apps/variant-images/blocks/variant-images-embed/abc", "disabled": false}}}}"""
        assert is_embed_enabled(settings_data)
        assert not is_embed_enabled(settings_data.replace('"disabled": false', '"disabled": true'))
        assert not is_embed_enabled('{"current": "Default"}')
        assert not is_embed_enabled(None)


class TestCatalogClient:
    """Tests for request shaping and error mapping."""

    @pytest.mark.asyncio
    async def test_load_product_mapping_migrates_legacy(self) -> None:
        api = FakeAdminApi({"GetProductForAssignment": {"data": {"product": PRODUCT_NODE}}})
        async with make_client(api) as client:
            product, mapping = await client.load_product_mapping("9001")

        assert product.image_ids == ["gid://shopify/ProductImage/2222", "gid://shopify/ProductImage/4444"]
        assert mapping == CanonicalMapping(option_name="Color", mapping={"Black": ["2222"], "Red": ["4444"]})
        variables = api.variables("GetProductForAssignment")
        assert variables == {"id": "gid://shopify/Product/9001", "namespace": "variant_images", "key": "image_map"}

    @pytest.mark.asyncio
    async def test_missing_product(self) -> None:
        api = FakeAdminApi({"GetProductForAssignment": {"data": {"product": None}}})
        async with make_client(api) as client:
            assert await client.load_product_mapping("1") is None

    @pytest.mark.asyncio
    async def test_shop_settings(self) -> None:
        api = FakeAdminApi(
            {
                "GetShopBasic": {"data": {"shop": {"id": "gid://shopify/Shop/1"}}},
                "GetShopSettingsMetafield": {
                    "data": {"shop": {"metafield": {"value": '{"enabled": false, "allowSharedImages": "no"}'}}}
                },
            }
        )
        async with make_client(api) as client:
            shop_id, settings = await client.get_shop_settings()
        assert shop_id == "gid://shopify/Shop/1"
        assert settings == Settings(enabled=False)

    @pytest.mark.asyncio
    async def test_save_mapping_writes_canonical_json(self) -> None:
        api = FakeAdminApi({"SetMetafields": {"data": {"metafieldsSet": {"userErrors": []}}}})
        async with make_client(api) as client:
            await client.save_product_mapping("9001", CanonicalMapping(option_name="Color", mapping={"Red": ["4444"]}))

        metafield = api.variables("SetMetafields")["metafields"][0]
        assert metafield["ownerId"] == "gid://shopify/Product/9001"
        assert metafield["key"] == "image_map"
        assert json.loads(metafield["value"]) == {"mode": "option", "optionName": "Color", "mapping": {"Red": ["4444"]}}

    @pytest.mark.asyncio
    async def test_user_errors_raise(self) -> None:
        api = FakeAdminApi(
            {"SetMetafields": {"data": {"metafieldsSet": {"userErrors": [{"field": ["value"], "message": "Too big"}]}}}}
        )
        async with make_client(api) as client:
            with pytest.raises(CatalogError, match="Too big"):
                await client.save_shop_settings("gid://shopify/Shop/1", Settings())

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="boom"),
            httpx.Response(200, text="<html>maintenance</html>"),
            httpx.Response(200, json={"errors": [{"message": "Throttled"}]}),
            httpx.Response(200, json={"errors": "Invalid API key or access token"}),
        ],
    )
    async def test_remote_failures_raise(self, response: httpx.Response) -> None:
        api = FakeAdminApi({"GetProductForAssignment": response})
        async with make_client(api) as client:
            with pytest.raises(CatalogError):
                await client.get_product("9001")

    @pytest.mark.asyncio
    async def test_embed_check_degrades(self) -> None:
        api = FakeAdminApi({"MainThemeSettingsData": httpx.Response(403, text="forbidden")})
        async with make_client(api) as client:
            status = await client.get_theme_embed_status()
        assert not status.known
        assert not status.enabled

    @pytest.mark.asyncio
    async def test_list_products(self) -> None:
        api = FakeAdminApi({"ListProductsForVariantImages": {"data": {"products": {"edges": [{"node": PRODUCT_NODE}]}}}})
        async with make_client(api) as client:
            products = await client.list_products(first=5, query="title:*tee*")
        assert [p.handle for p in products] == ["tee"]
        assert api.variables("ListProductsForVariantImages")["query"] == "title:*tee*"
