from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

# Wire names are camelCase (metafield JSON and the storefront payload);
# attribute names stay snake_case.
_WIRE = ConfigDict(populate_by_name=True)


class Settings(BaseModel):
    """Shop-wide storefront behaviour, stored as one JSON metafield on the shop."""

    model_config = _WIRE

    enabled: bool = True
    allow_shared_images: bool = Field(default=True, alias="allowSharedImages")
    hide_unassigned_images: bool = Field(default=False, alias="hideUnassignedImages")

    def to_json(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


class ProductOption(BaseModel):
    """A named option axis and its declared values, e.g. Color: [Black, Red]."""

    name: str
    values: list[str] = []


class SelectedOption(BaseModel):
    name: str
    value: str


class ProductVariant(BaseModel):
    model_config = _WIRE

    id: str
    title: str = ""
    selected_options: list[SelectedOption] = Field(default=[], alias="selectedOptions")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        # Storefront JSON carries numeric ids, the admin API carries gids
        return str(v) if isinstance(v, int) else v

    def option_value(self, option_name: str) -> str | None:
        for selected in self.selected_options:
            if selected.name == option_name:
                return selected.value
        return None


class ProductImage(BaseModel):
    model_config = _WIRE

    id: str
    url: str
    alt_text: str | None = Field(default=None, alias="altText")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class CatalogProduct(BaseModel):
    """Read-only snapshot of a product as the catalog service returns it."""

    model_config = _WIRE

    id: str
    title: str = ""
    handle: str = ""
    online_store_url: str | None = Field(default=None, alias="onlineStoreUrl")
    options: list[ProductOption] = []
    images: list[ProductImage] = []
    variants: list[ProductVariant] = []
    raw_mapping: Any = Field(default=None, alias="rawMapping")  # metafield value, untouched

    @property
    def option_names(self) -> list[str]:
        return [option.name for option in self.options]

    @property
    def image_ids(self) -> list[str]:
        return [image.id for image in self.images]

    def option(self, name: str) -> ProductOption | None:
        return next((option for option in self.options if option.name == name), None)


class CanonicalMapping(BaseModel):
    """The one mapping shape written back to the catalog.

    ``mapping`` keeps insertion order: option values in the order they were
    first configured, image ids in the order they were assigned.
    """

    model_config = _WIRE

    mode: Literal["option"] = "option"
    option_name: str = Field(alias="optionName")
    mapping: dict[str, list[str]] = {}

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ProductSummary(BaseModel):
    """Slim listing row for the configured/unconfigured product tables."""

    model_config = _WIRE

    id: str
    numeric_id: str = Field(alias="numericId")
    title: str
    handle: str = ""
    updated_at: str | None = Field(default=None, alias="updatedAt")
    online_store_url: str | None = Field(default=None, alias="onlineStoreUrl")
    image: ProductImage | None = None
    media_count: int = Field(default=0, alias="mediaCount")
    variants_count: int = Field(default=0, alias="variantsCount")
    configured_values: int = Field(default=0, alias="configuredValues")
    assigned_images_count: int = Field(default=0, alias="assignedImagesCount")

    @computed_field(alias="isConfigured")
    @property
    def is_configured(self) -> bool:
        return self.configured_values > 0


class EmbedStatus(BaseModel):
    """Whether the storefront app embed is switched on in the live theme."""

    model_config = _WIRE

    known: bool = False  # False when the theme file could not be read
    enabled: bool = False
    theme_name: str | None = Field(default=None, alias="themeName")


class BootstrapPayload(BaseModel):
    """Static data handed from server-side normalization to the storefront runtime.

    Serialized once per page render; the key names are the contract.
    """

    model_config = _WIRE

    mapping: dict[str, Any]  # CanonicalMapping JSON, or a bare legacy table from old pages
    image_urls: dict[str, str] = Field(alias="imageUrls")  # ImageIdentityTable
    initial_variant_id: str | None = Field(default=None, alias="initialVariantId")
    settings: Settings = Settings()
    option_names: list[str] = Field(default=[], alias="optionNames")
    variant_options: dict[str, list[str]] = Field(default={}, alias="variantOptions")

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
