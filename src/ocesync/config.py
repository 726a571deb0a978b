from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

RenditionPolicy = Literal["all", "custom", "none"]


class AppConfig(BaseModel):
    """Application-specific configuration values."""

    name: str = "ocesync"
    log_level: str = "INFO"
    # Dumps the raw listing and per-item JSON into debug_dir
    debug: bool = False
    debug_dir: str = ".data"
    # Where the node manifest and downloaded files are written
    output_dir: str = ".ocesync"


class ServerConfig(BaseModel):
    """Content server connection values."""

    content_server: Optional[str] = None
    channel_token: Optional[str] = None
    proxy_url: Optional[str] = None
    preview: bool = False
    auth_str: Optional[str] = None  # Fixed Authorization header value
    timeout: float = 60.0

    @field_validator("preview", mode="before")
    @classmethod
    def _coerce_preview(cls, value: object) -> object:
        # Accept "true"/"false" strings as well as booleans
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return value


class ItemsConfig(BaseModel):
    """Item listing configuration values."""

    limit: Optional[int] = 100
    query: Optional[str] = None
    protocol: Literal["scroll", "offset"] = "scroll"
    # Raise on a failed listing page instead of returning partial results
    strict: bool = False


class OAuthConfig(BaseModel):
    """OAuth client-credentials settings. Overrides `auth_str` when complete."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    client_scope_url: Optional[str] = None
    idp_url: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return all([self.client_id, self.client_secret, self.client_scope_url, self.idp_url])


class MediaConfig(BaseModel):
    """Digital asset download configuration values."""

    renditions: RenditionPolicy = "custom"
    static_asset_download: bool = False
    static_asset_root_dir: str = "assets"
    static_url_prefix: str = ""
    public_dir: str = "public"
    # Raise when a flattened field would overwrite a record attribute
    strict_fields: bool = False


class CacheConfig(BaseModel):
    """Durable media cache configuration values."""

    url: str = "sqlite:///.ocesync/cache.db"


class Settings(BaseSettings):
    """Top-level settings loaded from environment variables and .env only."""

    model_config = SettingsConfigDict(
        env_prefix="OCESYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app: AppConfig = AppConfig()
    server: ServerConfig = ServerConfig()
    items: ItemsConfig = ItemsConfig()
    oauth: OAuthConfig = OAuthConfig()
    media: MediaConfig = MediaConfig()
    cache: CacheConfig = CacheConfig()


def load_settings() -> Settings:
    """Load settings from environment variables and .env only."""
    return Settings()  # type: ignore[call-arg]
