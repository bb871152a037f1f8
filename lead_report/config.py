"""Configuration management using Pydantic Settings."""

import json
from typing import Annotated, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_LEAD_SOURCES = [
    "Zoho Leads",
    "Zoho Partner",
    "Zoho CRM",
    "Zoho Partners 2024",
    "Zoho - Sutha",
    "Zoho - Hemanth",
    "Zoho - Sen",
    "Zoho - Audrey",
    "Zoho - Jacklyn",
    "Zoho - Adrian",
    "Zoho Partner Website",
    "Zoho - Chaitanya",
]

DEFAULT_ZOHO_SERVICES = ["CRM", "CRMPlus", "One", "Bigin"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # FastAPI
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    debug: bool = Field(default=False)
    environment: str = Field(default="production")

    # Zoho CRM
    zoho_api_domain: str = Field(default="https://www.zohoapis.com")
    zoho_api_version: str = Field(default="v2")
    zoho_access_token: Optional[str] = Field(default=None)

    # Lead schema (API field names)
    lead_module: str = Field(default="Leads")
    created_time_field: str = Field(default="Created_Time")
    source_field: str = Field(default="Lead_Source")
    service_field: str = Field(default="Zoho_Service")

    # Report filters
    target_year: Optional[int] = Field(default=None)
    source_allow_list: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_LEAD_SOURCES)
    )
    service_allow_list: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ZOHO_SERVICES)
    )
    week_policy: str = Field(default="calendar")

    # Paging (COQL caps LIMIT at 2000, the records API caps per_page at 200)
    page_size: int = Field(default=200, ge=1, le=2000)
    max_pages: int = Field(default=50, ge=1)
    fallback_page_size: int = Field(default=200, ge=1, le=200)
    fallback_max_pages: int = Field(default=10, ge=1)
    request_timeout: float = Field(default=30.0, gt=0)

    # Monitoring
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v_upper

    @field_validator("week_policy")
    @classmethod
    def validate_week_policy(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"calendar", "fixed_four"}:
            raise ValueError(f"Invalid week policy: {v}")
        return v_lower

    @field_validator("source_allow_list", "service_allow_list", mode="before")
    @classmethod
    def split_allow_list(cls, v):
        """Accept a JSON array or a comma-separated string from the environment."""
        if isinstance(v, str):
            stripped = v.strip()
            if stripped.startswith("["):
                return json.loads(stripped)
            return [item.strip() for item in stripped.split(",") if item.strip()]
        return v

    @field_validator("target_year")
    @classmethod
    def validate_target_year(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= 9999:
            raise ValueError(f"Invalid target year: {v}")
        return v

    @property
    def zoho_base_url(self) -> str:
        """Base URL for Zoho CRM REST calls."""
        return f"{self.zoho_api_domain.rstrip('/')}/crm/{self.zoho_api_version}"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


# Global settings instance
settings = Settings()
