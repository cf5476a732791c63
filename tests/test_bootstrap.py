"""Tests for building, embedding and reading the storefront payload."""

from __future__ import annotations

import orjson
import pytest

from bootstrap import build_bootstrap, read_bootstrap, render_bootstrap_script
from models import BootstrapPayload, CanonicalMapping, CatalogProduct, Settings
from page import parse_page


class TestBuildBootstrap:
    def test_payload_contents(self, payload: BootstrapPayload) -> None:
        data = payload.to_json()
        assert data["mapping"] == {
            "mode": "option",
            "optionName": "Color",
            "mapping": {"Black": ["2222", "3333"], "Red": ["4444"]},
        }
        assert set(data["imageUrls"]) == {"2222", "3333", "4444", "5555"}
        assert data["initialVariantId"] == "1111"
        assert data["optionNames"] == ["Color", "Size"]
        assert data["variantOptions"]["2221"] == ["Red", "S"]
        assert data["settings"] == {"enabled": True, "allowSharedImages": True, "hideUnassignedImages": False}

    def test_defaults_to_first_variant(self, product: CatalogProduct, canonical: CanonicalMapping) -> None:
        payload = build_bootstrap(product, canonical, Settings())
        assert payload.initial_variant_id == "1111"

    def test_gid_initial_variant(self, product: CatalogProduct, canonical: CanonicalMapping) -> None:
        payload = build_bootstrap(product, canonical, Settings(), "gid://shopify/ProductVariant/2221")
        assert payload.initial_variant_id == "2221"

    def test_missing_option_value_is_blank(self, canonical: CanonicalMapping) -> None:
        product = CatalogProduct(
            id="1",
            options=[{"name": "Color", "values": ["Black"]}, {"name": "Size", "values": ["S"]}],
            variants=[{"id": "7", "selectedOptions": [{"name": "Color", "value": "Black"}]}],
        )
        assert build_bootstrap(product, canonical, Settings()).variant_options == {"7": ["Black", ""]}


class TestRenderBootstrapScript:
    def test_script_is_not_terminated_early(self, payload: BootstrapPayload) -> None:
        payload.image_urls["9"] = "https://cdn.example/</script><b>x.jpg"
        tag = render_bootstrap_script(payload)
        assert tag.count("</script>") == 1

        page = parse_page(f"<html><body>{tag}</body></html>")
        assert read_bootstrap(page.bootstrap_raw).image_urls["9"] == "https://cdn.example/</script><b>x.jpg"


class TestReadBootstrap:
    """Tests for reading payloads the runtime may receive."""

    def test_reads_rendered_payload(self, payload: BootstrapPayload) -> None:
        raw = orjson.dumps(payload.to_json())
        assert read_bootstrap(raw) == payload

    def test_string_mapping(self) -> None:
        raw = {"mapping": '{"mode": "option", "optionName": "Color", "mapping": {}}', "imageUrls": {"1": "u"}}
        result = read_bootstrap(raw)
        assert result.mapping["optionName"] == "Color"

    def test_settings_normalized(self) -> None:
        result = read_bootstrap({"mapping": {}, "imageUrls": {}, "settings": {"enabled": "no", "hideUnassignedImages": True}})
        assert result.settings == Settings(enabled=True, hide_unassigned_images=True)

    def test_numeric_values_coerced(self) -> None:
        result = read_bootstrap(
            {"mapping": {}, "imageUrls": {"1": "u", "2": None}, "initialVariantId": 11, "variantOptions": {"11": ["A", None]}}
        )
        assert result.initial_variant_id == "11"
        assert result.image_urls == {"1": "u"}
        assert result.variant_options == {"11": ["A", ""]}

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "not json",
            "[]",
            {"imageUrls": {}},
            {"mapping": {}},
            {"mapping": "", "imageUrls": {}},
            {"mapping": "garbage", "imageUrls": {}},
            {"mapping": {}, "imageUrls": ["u"]},
        ],
    )
    def test_unusable(self, raw) -> None:
        assert read_bootstrap(raw) is None
