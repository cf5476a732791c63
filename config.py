"""Environment configuration for the catalog client and the API server."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Settings read from the environment (or a local ``.env``)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    shop_domain: str = Field(default="", alias="SHOP_DOMAIN")  # example.myshopify.com
    admin_token: str = Field(default="", alias="SHOPIFY_ADMIN_TOKEN")
    api_version: str = Field(default="2024-10", alias="SHOPIFY_API_VERSION")
    request_timeout: float = Field(default=10.0, alias="REQUEST_TIMEOUT")

    metafield_namespace: str = Field(default="variant_images", alias="METAFIELD_NAMESPACE")
    map_metafield_key: str = Field(default="image_map", alias="MAP_METAFIELD_KEY")
    settings_metafield_key: str = Field(default="settings", alias="SETTINGS_METAFIELD_KEY")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()
