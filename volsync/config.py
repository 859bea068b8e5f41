import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

WebhookAuthMode = Literal["shared_secret_header", "hmac_signature"]
SignatureEncoding = Literal["hex", "base64"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="volsync/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Volumetrica Sync API"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./volsync.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_ECHO: bool = False

    # Operator auth (admin bearer tokens)
    SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"

    # Webhook ingestion
    WEBHOOK_AUTH_MODE: WebhookAuthMode = "shared_secret_header"
    WEBHOOK_SHARED_SECRET_HEADER_NAME: str = "x-webhook-secret"
    WEBHOOK_SHARED_SECRET_VALUE: str = ""
    WEBHOOK_SIGNATURE_HEADER_NAME: str = "x-webhook-signature"
    WEBHOOK_SIGNATURE_ALGORITHM: str = "sha256"
    WEBHOOK_SIGNATURE_ENCODING: SignatureEncoding = "hex"
    WEBHOOK_SIGNING_SECRET: str = ""
    WEBHOOK_EVENT_ID_PATH: str = "id"
    WEBHOOK_MAX_BODY_BYTES: int = 1_000_000

    # Upstream trading platform API
    VOLUMETRICA_API_BASE_URL: str = "https://dxfeed.volumetricaprop.com"
    VOLUMETRICA_API_KEY: str = ""
    VOLUMETRICA_API_TIMEOUT_SEC: float = 10.0
    VOLUMETRICA_API_RETRIES: int = 2
    VOLUMETRICA_API_BACKOFF_SEC: float = 0.25

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def webhook_auth(self) -> "WebhookAuthConfig":
        return WebhookAuthConfig(
            mode=self.WEBHOOK_AUTH_MODE,
            shared_secret_header_name=self.WEBHOOK_SHARED_SECRET_HEADER_NAME,
            shared_secret_value=self.WEBHOOK_SHARED_SECRET_VALUE,
            signature_header_name=self.WEBHOOK_SIGNATURE_HEADER_NAME,
            signature_algorithm=self.WEBHOOK_SIGNATURE_ALGORITHM,
            signature_encoding=self.WEBHOOK_SIGNATURE_ENCODING,
            signing_secret=self.WEBHOOK_SIGNING_SECRET,
            event_id_path=self.WEBHOOK_EVENT_ID_PATH,
            max_body_bytes=self.WEBHOOK_MAX_BODY_BYTES,
        )

    @property
    def volumetrica_api(self) -> "VolumetricaApiConfig":
        return VolumetricaApiConfig(
            base_url=self.VOLUMETRICA_API_BASE_URL.strip(),
            api_key=self.VOLUMETRICA_API_KEY.strip(),
            timeout_sec=self.VOLUMETRICA_API_TIMEOUT_SEC,
            max_retries=self.VOLUMETRICA_API_RETRIES,
            backoff_sec=self.VOLUMETRICA_API_BACKOFF_SEC,
        )


class DevelopmentSettings(Settings):
    DEBUG: bool = True


class StagingSettings(Settings):
    DEBUG: bool = False


class ProductionSettings(Settings):
    DEBUG: bool = False


ENVIRONMENTS: dict[str, type[Settings]] = {
    "development": DevelopmentSettings,
    "staging": StagingSettings,
    "production": ProductionSettings,
}


@dataclass(frozen=True)
class WebhookAuthConfig:
    """Inbound webhook authentication and identity settings."""

    mode: WebhookAuthMode = "shared_secret_header"
    shared_secret_header_name: str = "x-webhook-secret"
    shared_secret_value: str = ""
    signature_header_name: str = "x-webhook-signature"
    signature_algorithm: str = "sha256"
    signature_encoding: SignatureEncoding = "hex"
    signing_secret: str = ""
    event_id_path: str = "id"
    max_body_bytes: int = 1_000_000

    @property
    def expected_header_name(self) -> str:
        if self.mode == "shared_secret_header":
            return self.shared_secret_header_name
        return self.signature_header_name


@dataclass(frozen=True)
class VolumetricaApiConfig:
    """Upstream REST API connection settings."""

    base_url: str
    api_key: str
    timeout_sec: float = 10.0
    max_retries: int = 2
    backoff_sec: float = 0.25


@lru_cache
def get_settings() -> Settings:
    """Return settings instance based on ENVIRONMENT variable."""

    env = os.getenv("ENVIRONMENT", "development").lower()
    settings_cls = ENVIRONMENTS.get(env, DevelopmentSettings)
    return settings_cls(ENVIRONMENT=env)


settings = get_settings()
