"""
Configuration system with environment-based settings.
Uses pydantic-settings for validation and type safety.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # HTTP
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    MAX_CONNECTIONS: int = 20
    VERIFY_TLS: bool = True
    AUDIT_USER_AGENT: str = "Mozilla/5.0 (compatible; TechnicalSEOAudit/1.0; +https://example.com/bot)"
    MOBILE_USER_AGENT: str = (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 14_7_1 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/14.1.2 Mobile/15E148 Safari/604.1"
    )
    DESKTOP_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    )
    ACCEPT_HEADER: str = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"

    # Crawler
    CRAWL_MAX_PAGES: int = Field(default=50, ge=1)
    CRAWL_MAX_DEPTH: int = Field(default=3, ge=0)
    CRAWL_DELAY_SECONDS: float = Field(default=0.1, ge=0.0)
    CRAWL_SITEMAP_SEEDS: int = Field(default=20, ge=0)   # sitemap URLs visited after link traversal

    # Redirects / variant probing
    REDIRECT_MAX_HOPS: int = Field(default=5, ge=1)
    PROBE_CONCURRENCY: int = Field(default=8, ge=1)
    HREFLANG_MAX_RETURN_CHECKS: int = Field(default=10, ge=0)

    # External APIs
    PAGESPEED_API_URL: str = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
    PAGESPEED_API_KEY: str = ""
    PAGESPEED_TIMEOUT_SECONDS: float = 60.0
    CRUX_API_URL: str = "https://chromeuxreport.googleapis.com/v1/records:queryRecord"
    CRUX_API_KEY: str = ""
    MOBILE_USABILITY_URL: str = ""

    # Security
    INSPECT_TLS_CERTIFICATE: bool = True
    TLS_EXPIRY_WARNING_DAYS: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors(cls, v: str | list) -> list:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - created once per process."""
    return Settings()
