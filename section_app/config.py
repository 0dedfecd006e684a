from __future__ import annotations

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    SHOPIFY_APP_API_KEY: str
    SHOPIFY_APP_API_SECRET: str
    SHOPIFY_APP_SCOPES: str = "read_themes,write_themes,write_content"
    SHOPIFY_APP_BASE_URL: AnyHttpUrl
    SHOPIFY_INTERNAL_API_TOKEN: str
    SECTION_APP_DB_URL: str = "sqlite:///./shopify_section_app.db"
    SHOPIFY_ADMIN_API_VERSION: str = "2025-10"
    SHOPIFY_REQUEST_TIMEOUT_SECONDS: float = 20.0

    # Sections are pushed one at a time by default; Shopify throttles theme writes per shop.
    SECTION_BATCH_CONCURRENCY: int = 1
    THEME_FILE_JOB_POLL_SECONDS: float = 1.0
    THEME_FILE_JOB_MAX_ATTEMPTS: int = 30

    LANDING_PAGE_APP_BLOCK_PREFIX: str = "shopify://apps/refine-lp-builder/blocks"
    LANDING_PAGE_TEMPLATE_PREFIX: str = "refine"

    LOG_LEVEL: str = "INFO"

    @field_validator("SHOPIFY_APP_SCOPES")
    @classmethod
    def validate_scopes(cls, value: str) -> str:
        scopes = [scope.strip() for scope in value.split(",") if scope.strip()]
        if not scopes:
            raise ValueError("SHOPIFY_APP_SCOPES must include at least one scope")
        return ",".join(scopes)

    @field_validator("SECTION_BATCH_CONCURRENCY", "THEME_FILE_JOB_MAX_ATTEMPTS")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("LANDING_PAGE_APP_BLOCK_PREFIX")
    @classmethod
    def strip_block_prefix(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if not cleaned:
            raise ValueError("LANDING_PAGE_APP_BLOCK_PREFIX cannot be empty")
        return cleaned

    @property
    def app_base_url(self) -> str:
        return str(self.SHOPIFY_APP_BASE_URL).rstrip("/")

    @property
    def admin_scopes_csv(self) -> str:
        return self.SHOPIFY_APP_SCOPES

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
