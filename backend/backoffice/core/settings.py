from __future__ import annotations

import json
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, DotEnvSettingsSource, EnvSettingsSource, SettingsConfigDict


LOCAL_ORIGINS = ["http://localhost:8080", "http://127.0.0.1:8080"]


class _CommaSeparatedOriginsMixin:
    """Accept ALLOW_ORIGINS as ``a,b,c`` as well as a JSON list."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name == "allow_origins":
                return value
            raise


class _EnvSource(_CommaSeparatedOriginsMixin, EnvSettingsSource):
    pass


class _DotEnvSource(_CommaSeparatedOriginsMixin, DotEnvSettingsSource):
    pass


class Settings(BaseSettings):
    """Back office configuration, read from the environment and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "Nomedia Back Office API"
    project_version: str = "1.0.0"
    environment: str = Field(default="development", validation_alias=AliasChoices("ENV", "ENVIRONMENT"))
    log_level: str = "INFO"

    # Database; pool settings are ignored for SQLite URLs.
    database_url: str = "postgresql+psycopg2://postgres@localhost:5432/nomedia"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    allow_origins: List[str] = Field(default_factory=lambda: list(LOCAL_ORIGINS))

    # Invoicing
    company_name: str = "Nomedia Production"
    invoice_number_prefix: str = Field(default="NOM", description="Prefix of PREFIX-YEAR-NNN invoice numbers")
    invoice_number_padding: int = Field(default=3, ge=1, description="Minimum digits of the yearly sequence")
    invoice_number_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Create attempts when the invoice number collides with a concurrent insert",
    )
    invoice_tax_rate: Decimal = Field(default=Decimal("0.20"), ge=Decimal("0"), description="TVA rate")
    invoice_default_cost_ratio: Decimal = Field(
        default=Decimal("0.70"),
        description="Share of the subtotal used as estimated costs when no profit margin is given",
    )
    invoice_currency: str = "MAD"

    # Outbound mail: resend, postmark, smtp or disabled
    email_provider: str = "disabled"
    email_api_key: Optional[str] = None
    email_from: Optional[str] = Field(default=None, validation_alias=AliasChoices("EMAIL_FROM", "SMTP_FROM"))
    email_from_name: str = "Nomedia Production"
    email_timeout_seconds: float = 15.0
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = Field(default=None, validation_alias=AliasChoices("SMTP_USERNAME", "SMTP_USER"))
    smtp_password: Optional[str] = Field(default=None, validation_alias=AliasChoices("SMTP_PASSWORD", "SMTP_PASS"))
    smtp_use_tls: bool = True

    @field_validator("allow_origins", mode="before")
    @classmethod
    def parse_allow_origins(cls, value):
        if isinstance(value, list):
            return value
        if isinstance(value, str) and value.strip():
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return list(LOCAL_ORIGINS)

    @field_validator("invoice_number_prefix")
    @classmethod
    def normalize_invoice_prefix(cls, value: str) -> str:
        prefix = (value or "").strip().upper()
        if not prefix or "-" in prefix:
            raise ValueError("invoice_number_prefix must be non-empty and must not contain '-'")
        return prefix

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            _EnvSource(settings_cls),
            _DotEnvSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
