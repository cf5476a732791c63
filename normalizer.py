"""
Normalization of persisted variant-image data.

Turns whatever is stored in the product and shop metafields (current shape,
legacy variant-keyed shape, hand-edited or truncated JSON) into typed,
validated values. Every function here is total: malformed input degrades to
an empty or default structure and stale references are filtered out, so a
corrupted metafield never keeps the storefront from filtering.
"""

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

import orjson
from pydantic import BaseModel, ValidationError

from models import CanonicalMapping, ProductOption, ProductVariant, Settings

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = Settings()

# Used when a product has no options at all; such a product never gets entries.
FALLBACK_OPTION_NAME = "Option"

# The theme's settings_data.json starts with a generated /* ... */ banner
_LEADING_BLOCK_COMMENT = re.compile(r"^\ufeff?\s*/\*.*?\*/\s*", re.DOTALL)
_TRAILING_DIGITS = re.compile(r"(\d+)$")

_T = TypeVar("_T")
_M = TypeVar("_M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Parse-or-fallback
# ---------------------------------------------------------------------------


def strip_json_comment(text: Any) -> Any:
    """Drop a leading block comment from a JSON document. Non-strings pass through."""
    if not isinstance(text, str):
        return text
    return _LEADING_BLOCK_COMMENT.sub("", text, count=1)


def parse_json_or(value: Any, fallback: _T) -> Any | _T:
    """Decode ``value`` as JSON, returning ``fallback`` when that is not possible.

    Already-decoded containers are returned as they are, so callers can hand
    over either the raw metafield string or a parsed object.
    """
    if value is None or value == "" or value == b"":
        return fallback
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, (str, bytes, bytearray)):
        try:
            return orjson.loads(value)
        except orjson.JSONDecodeError:
            logger.debug("Unparsable JSON value, using fallback")
            return fallback
    return fallback


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def to_numeric_id(value: Any) -> str:
    """Reduce a gid or bare id to its numeric string form.

    ``gid://shopify/ProductImage/123``, ``"123"`` and ``123`` all become
    ``"123"``. Anything without a numeric tail becomes ``""``.
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value) if value >= 0 else ""
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() and value >= 0 else ""
    tail = str(value).strip().rsplit("/", 1)[-1]
    match = _TRAILING_DIGITS.search(tail)
    return match.group(1) if match else ""


def candidate_image_ids(value: Any) -> list:
    """Image list of one mapping entry: ``[...]`` or ``{"imageIds": [...]}``."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict) and isinstance(value.get("imageIds"), list):
        return value["imageIds"]
    return []


def _clean_image_ids(candidates: Iterable[Any], valid: set[str] | None) -> list[str]:
    ids: list[str] = []
    for candidate in candidates:
        image_id = to_numeric_id(candidate)
        if not image_id or image_id in ids:
            continue
        if valid is not None and image_id not in valid:
            continue
        ids.append(image_id)
    return ids


def _coerce_models(items: Iterable[Any] | None, model: type[_M]) -> list[_M]:
    """Accept model instances or raw catalog dicts; drop anything unusable."""
    coerced: list[_M] = []
    for item in items or []:
        if isinstance(item, model):
            coerced.append(item)
            continue
        try:
            coerced.append(model.model_validate(item))
        except ValidationError:
            logger.debug(f"Skipping malformed {model.__name__}: {item!r}")
    return coerced


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def normalize_settings(raw: Any) -> Settings:
    """Coerce any stored settings value into a complete ``Settings`` record.

    Each field is taken only when it is a real boolean; anything else falls
    back to the default for that field.
    """
    if isinstance(raw, Settings):
        return raw.model_copy()

    data = parse_json_or(raw, {})
    if not isinstance(data, dict):
        data = {}

    def pick(key: str, default: bool) -> bool:
        value = data.get(key)
        return value if isinstance(value, bool) else default

    return Settings(
        enabled=pick("enabled", DEFAULT_SETTINGS.enabled),
        allow_shared_images=pick("allowSharedImages", DEFAULT_SETTINGS.allow_shared_images),
        hide_unassigned_images=pick("hideUnassignedImages", DEFAULT_SETTINGS.hide_unassigned_images),
    )


# ---------------------------------------------------------------------------
# Mapping filter
# ---------------------------------------------------------------------------


def filter_mapping(
    raw: Any,
    valid_keys: Iterable[Any] | None,
    valid_image_ids: Iterable[Any] | None,
    key_normalizer: Callable[[Any], str] | None = None,
    unwrap: bool = True,
) -> dict[str, list[str]]:
    """Filter a ``{key: imageIds}`` table against the product's real data.

    ``valid_keys`` is the key domain (option values, or variant ids when a
    ``key_normalizer`` such as ``to_numeric_id`` is given) and
    ``valid_image_ids`` the image domain; ``None`` leaves a domain
    unrestricted. Unknown keys are dropped, image ids are normalized and
    de-duplicated in first-seen order, and entries left without images are
    omitted. Keys that normalize to the same value are merged.

    With ``unwrap`` a ``{"mapping": {...}}`` wrapper is accepted too.
    """
    parsed = parse_json_or(raw, {})
    source = parsed
    if unwrap and isinstance(parsed, dict) and parsed.get("mapping"):
        source = parse_json_or(parsed["mapping"], {})
    if not isinstance(source, dict):
        return {}

    normalize_key = key_normalizer or (lambda k: k if isinstance(k, str) else str(k))
    key_domain = {normalize_key(k) for k in valid_keys} if valid_keys is not None else None
    image_domain = {to_numeric_id(i) for i in valid_image_ids} if valid_image_ids is not None else None

    normalized: dict[str, list[str]] = {}
    for raw_key, value in source.items():
        key = normalize_key(raw_key)
        if not key:
            continue
        if key_domain is not None and key not in key_domain:
            logger.debug(f"Dropping stale mapping key {raw_key!r}")
            continue

        image_ids = _clean_image_ids(candidate_image_ids(value), image_domain)
        if not image_ids:
            continue

        existing = normalized.setdefault(key, [])
        existing.extend(i for i in image_ids if i not in existing)

    return normalized


# ---------------------------------------------------------------------------
# Stored shapes
# ---------------------------------------------------------------------------


@dataclass
class OptionShape:
    """``{"mode": "option", "optionName": ..., "mapping": {...}}``"""

    option_name: Any
    mapping: Any


@dataclass
class LegacyShape:
    """``{variantId: imageIds}``, written by the first release; read-only now."""

    entries: Any


def read_shape(raw: Any) -> OptionShape | LegacyShape:
    """Classify a stored mapping once, so downstream code branches on the tag only."""
    parsed = parse_json_or(raw, {})
    if isinstance(parsed, dict) and parsed.get("mode") == "option":
        return OptionShape(option_name=parsed.get("optionName"), mapping=parsed.get("mapping") or {})
    return LegacyShape(entries=parsed)


# ---------------------------------------------------------------------------
# Product mapping
# ---------------------------------------------------------------------------


def normalize_product_mapping(
    raw: Any,
    options: Iterable[ProductOption | dict] | None,
    variants: Iterable[ProductVariant | dict] | None,
    image_ids: Iterable[Any] | None,
) -> CanonicalMapping:
    """Turn a stored product mapping of any vintage into a ``CanonicalMapping``.

    The option name falls back to the product's first option when the stored
    one no longer exists. Legacy variant-keyed data is migrated on the fly;
    the canonical shape is what the save path writes back.
    """
    option_list = _coerce_models(options, ProductOption)
    variant_list = _coerce_models(variants, ProductVariant)
    valid_images = list(image_ids or [])

    if not option_list:
        return CanonicalMapping(option_name=FALLBACK_OPTION_NAME, mapping={})

    shape = read_shape(raw)
    if isinstance(shape, LegacyShape):
        return migrate_legacy_mapping(shape.entries, option_list, variant_list, valid_images)

    names = [option.name for option in option_list]
    option_name = shape.option_name if shape.option_name in names else names[0]
    if option_name != shape.option_name:
        logger.debug(f"Stored option {shape.option_name!r} not on product, using {option_name!r}")

    values = next(option.values for option in option_list if option.name == option_name)
    mapping = filter_mapping(shape.mapping, values, valid_images, unwrap=False)
    return CanonicalMapping(option_name=option_name, mapping=mapping)


def migrate_legacy_mapping(
    raw: Any,
    options: Iterable[ProductOption | dict] | None,
    variants: Iterable[ProductVariant | dict] | None,
    image_ids: Iterable[Any] | None,
) -> CanonicalMapping:
    """Derive an option-value mapping from a legacy ``{variantId: imageIds}`` table.

    The product's first option is the target axis. Each variant contributes
    its images to the value it has on that axis, so variants sharing a value
    (Black/S, Black/M) end up with the union of their image sets.
    """
    option_list = _coerce_models(options, ProductOption)
    variant_list = _coerce_models(variants, ProductVariant)
    if not option_list:
        return CanonicalMapping(option_name=FALLBACK_OPTION_NAME, mapping={})

    target = option_list[0]
    legacy = filter_mapping(
        raw,
        [variant.id for variant in variant_list],
        list(image_ids or []),
        key_normalizer=to_numeric_id,
    )

    value_by_variant: dict[str, str] = {}
    for variant in variant_list:
        value = variant.option_value(target.name)
        if value:
            value_by_variant[to_numeric_id(variant.id)] = value

    declared = set(target.values)
    mapping: dict[str, list[str]] = {}
    for variant_id, variant_images in legacy.items():
        value = value_by_variant.get(variant_id)
        if not value or value not in declared:
            logger.debug(f"Legacy entry for variant {variant_id} has no {target.name!r} value, skipped")
            continue
        merged = mapping.setdefault(value, [])
        merged.extend(i for i in variant_images if i not in merged)

    if mapping:
        logger.info(f"Migrated legacy mapping: {len(legacy)} variants -> {len(mapping)} {target.name} values")
    return CanonicalMapping(option_name=target.name, mapping=mapping)
