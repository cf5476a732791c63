"""
Storefront resolution engine.

Given the bootstrap payload and a gallery adapter, decides which gallery
and thumbnail elements are visible for the selected variant. The decision
is recomputed from scratch on every variant change: elements are queried
fresh through the adapter (themes re-render between events) and the only
state carried across calls is the last handled variant id.

Rules, per element:
  - no mapping entry for the variant's option value  -> everything hidden
  - image assigned to the selected value              -> visible
  - image assigned to no value at all                 -> visible unless
                                                         hideUnassignedImages
  - anything else, including unresolvable elements    -> hidden
"""

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import parse_qs, urlsplit

from assignments import assigned_image_ids
from identity import FilenameIndex
from models import BootstrapPayload
from normalizer import parse_json_or

logger = logging.getLogger(__name__)

# Mapping key for a variant whose option value cannot be determined; never a real value
UNKNOWN_KEY = "__unknown__"


class GalleryAdapter(Protocol):
    """The markup operations the engine needs; one implementation per environment."""

    def find_items(self) -> list[Any]: ...

    def find_thumbnails(self) -> list[Any]: ...

    def get_image_src(self, element: Any) -> str: ...

    def set_visible(self, element: Any, visible: bool) -> None: ...

    def is_visible(self, element: Any) -> bool: ...

    def active_item(self) -> Any | None: ...

    def activate(self, element: Any) -> None: ...


# ---------------------------------------------------------------------------
# Mapping table as the storefront sees it
# ---------------------------------------------------------------------------


@dataclass
class MappingTable:
    mode: str  # "option", or "variant" for payloads rendered before option mode existed
    option_name: str | None
    entries: dict[str, list[str]]

    @classmethod
    def from_payload(cls, mapping: Any) -> "MappingTable | None":
        """None when the mapping is unusable; the filter then stays off."""
        mapping = parse_json_or(mapping, None)
        if not isinstance(mapping, dict):
            return None

        if mapping.get("mode") == "option":
            mode = "option"
            option_name = mapping.get("optionName") or None
            table = parse_json_or(mapping.get("mapping"), None)
        else:
            mode, option_name, table = "variant", None, mapping

        if not isinstance(table, dict):
            return None

        entries: dict[str, list[str]] = {}
        for key, image_ids in table.items():
            if isinstance(image_ids, list):
                entries[str(key)] = [str(i) for i in image_ids]
        return cls(mode=mode, option_name=option_name, entries=entries)


def resolve_mapping_key(
    variant_id: str,
    table: MappingTable,
    option_names: list[str],
    variant_options: Mapping[str, list[str]],
) -> str:
    """The mapping key a variant selects: its value on the mapped option axis."""
    if table.mode != "option":
        return variant_id
    if not table.option_name or table.option_name not in option_names:
        return UNKNOWN_KEY

    index = option_names.index(table.option_name)
    selected = variant_options.get(variant_id) or []
    if index >= len(selected) or not selected[index]:
        return UNKNOWN_KEY
    return selected[index]


def decide_visibility(
    image_id: str | None,
    allowed: set[str],
    assigned: set[str],
    hide_unassigned: bool,
) -> bool:
    if image_id is None:
        return False
    if image_id in allowed:
        return True
    return image_id not in assigned and not hide_unassigned


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class FilterState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass
class ElementDecision:
    element: Any
    image_id: str | None
    visible: bool
    thumbnail: bool = False


@dataclass
class FilterResult:
    """Outcome of one recomputation pass."""

    variant_id: str
    mapping_key: str
    fail_closed: bool = False
    decisions: list[ElementDecision] = field(default_factory=list)
    activated: Any | None = None

    @property
    def visible_count(self) -> int:
        return sum(1 for d in self.decisions if d.visible)

    @property
    def hidden_count(self) -> int:
        return sum(1 for d in self.decisions if not d.visible)


class GalleryFilter:
    """Applies the variant-image mapping to one product page."""

    def __init__(self, adapter: GalleryAdapter, payload: BootstrapPayload):
        self.adapter = adapter
        self.payload = payload
        self.settings = payload.settings
        self.table = MappingTable.from_payload(payload.mapping)
        self.index = FilenameIndex(payload.image_urls)
        self.state = FilterState.UNINITIALIZED
        self.last_variant_id: str | None = None

    @property
    def enabled(self) -> bool:
        return self.settings.enabled and self.table is not None

    def start(self, current_variant_id: Any = None) -> FilterResult | None:
        """Move to READY and filter for the initial variant.

        The payload's initial variant wins over whatever the page reports.
        Does nothing when the shop disabled filtering or the payload is unusable.
        """
        if not self.enabled:
            logger.debug("Variant image filter disabled for this page")
            return None
        self.state = FilterState.READY
        initial = self.payload.initial_variant_id or current_variant_id
        if not initial:
            return None
        return self.handle_variant_change(initial)

    def handle_variant_change(self, variant_id: Any) -> FilterResult | None:
        """Filter for ``variant_id`` unless it is the variant handled last."""
        if self.state is not FilterState.READY:
            return None
        if variant_id is None or variant_id == "":
            return None
        variant_id = str(variant_id)
        if variant_id == self.last_variant_id:
            return None
        self.last_variant_id = variant_id
        return self.filter_gallery(variant_id)

    # --- triggers -----------------------------------------------------------

    def on_variant_changed(self, detail: Any) -> FilterResult | None:
        """Theme ``variant:changed`` event; ``detail`` is ``{"variant": {"id": ...}}``."""
        variant = detail.get("variant") if isinstance(detail, dict) else None
        variant_id = variant.get("id") if isinstance(variant, dict) else None
        return self.handle_variant_change(variant_id)

    def on_id_input_changed(self, value: Any) -> FilterResult | None:
        """The cart form's hidden ``input[name=id]`` changed."""
        return self.handle_variant_change(value)

    def on_url_changed(self, url: str) -> FilterResult | None:
        """Navigation changed the URL; only a ``?variant=`` parameter matters."""
        values = parse_qs(urlsplit(url or "").query).get("variant")
        return self.handle_variant_change(values[0] if values else None)

    def on_section_load(self, current_variant_id: Any) -> FilterResult | None:
        """Theme editor reloaded the section; its markup is new, so always re-filter."""
        if self.state is not FilterState.READY or not current_variant_id:
            return None
        return self.filter_gallery(str(current_variant_id))

    # --- core pass ----------------------------------------------------------

    def filter_gallery(self, variant_id: str) -> FilterResult | None:
        if not self.enabled or not variant_id:
            return None

        key = resolve_mapping_key(
            variant_id, self.table, self.payload.option_names, self.payload.variant_options
        )
        result = FilterResult(variant_id=variant_id, mapping_key=key)

        allowed_ids = self.table.entries.get(key)
        if allowed_ids is None:
            # Unmapped selection: show nothing rather than another colour's images
            result.fail_closed = True
            for thumbnail, elements in ((False, self.adapter.find_items()), (True, self.adapter.find_thumbnails())):
                for element in elements:
                    self.adapter.set_visible(element, False)
                    result.decisions.append(ElementDecision(element, None, False, thumbnail))
            logger.debug(f"No mapping entry for {key!r} (variant {variant_id}), gallery hidden")
            return result

        allowed = set(allowed_ids)
        assigned = assigned_image_ids(self.table.entries)
        hide_unassigned = self.settings.hide_unassigned_images

        first_visible = None
        for element in self.adapter.find_items():
            image_id = self.index.resolve(self.adapter.get_image_src(element))
            visible = decide_visibility(image_id, allowed, assigned, hide_unassigned)
            self.adapter.set_visible(element, visible)
            result.decisions.append(ElementDecision(element, image_id, visible))
            if visible and first_visible is None:
                first_visible = element

        # Thumbnails are separate nodes; resolve them on their own
        for element in self.adapter.find_thumbnails():
            image_id = self.index.resolve(self.adapter.get_image_src(element))
            visible = decide_visibility(image_id, allowed, assigned, hide_unassigned)
            self.adapter.set_visible(element, visible)
            result.decisions.append(ElementDecision(element, image_id, visible, thumbnail=True))

        if first_visible is not None:
            active = self.adapter.active_item()
            if active is not None and not self.adapter.is_visible(active):
                self.adapter.activate(first_visible)
                result.activated = first_visible

        logger.debug(
            f"Variant {variant_id} ({key!r}): {result.visible_count} visible, {result.hidden_count} hidden"
        )
        return result
