"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

KNOWN_CREDENTIAL_PROVIDERS = frozenset({"local", "ldap"})


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60
    oauth_state_ttl_seconds: int = 10 * 60
    password_hash_iterations: int = 210_000

    vision_provider: str = "openai"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    bedrock_model_id: str = "anthropic.claude-3-5-sonnet-20241022-v2:0"
    vision_temperature: float = 0.1
    analysis_max_tokens: int = 1000
    summary_max_tokens: int = 500
    text_max_tokens: int = 2000

    aws_region: str = "us-east-1"
    s3_bucket: str = "processmaster-assets"
    s3_endpoint_url: str | None = None
    cloudfront_domain: str | None = None
    upload_url_ttl_seconds: int = 900
    download_url_ttl_seconds: int = 3600

    auth_providers: str = "local"
    default_auth_provider: str = "local"
    ldap_url: str | None = None
    ldap_bind_dn: str | None = None
    ldap_bind_password: str | None = None
    ldap_search_base: str | None = None
    ldap_search_filter: str = "(uid={{username}})"
    oauth2_issuer: str | None = None
    oauth2_client_id: str | None = None
    oauth2_client_secret: str | None = None
    oauth2_redirect_uri: str | None = None

    job_workers: int = 2
    job_queue_size: int = 100
    job_timeout_seconds: float = 600.0
    stale_job_seconds: float = 900.0
    job_sweep_interval_seconds: float = 60.0

    max_upload_bytes: int = 10 * 1024 * 1024
    screenshot_max_width: int = 1920
    screenshot_max_height: int = 1080
    analyze_max_files: int = 20
    batch_max_images: int = 50

    web_base_url: str = "http://localhost:3000"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def parse_enabled_providers(raw: str | None) -> list[str]:
    """Parse the enabled credential providers from env."""
    if raw is None:
        return ["local"]
    providers: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip().lower()
        if not value or value in providers:
            continue
        if value in KNOWN_CREDENTIAL_PROVIDERS:
            providers.append(value)
    return providers or ["local"]
