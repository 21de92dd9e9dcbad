"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel
from pydantic_settings import BaseSettings

log = logging.getLogger("telehealth.config")

SQUARE_PRODUCTION_URL = "https://connect.squareup.com/v2"
SQUARE_SANDBOX_URL = "https://connect.squareupsandbox.com/v2"


class ProviderProfile(BaseModel):
    """One bookable provider (a Square team member) and its login secret."""

    model_config = {"frozen": True}

    id: str
    name: str = "Provider"
    password: str = ""
    keyword: str = ""  # service-name keyword routed to this provider


class Settings(BaseSettings):
    environment: str = "development"

    # Square
    square_access_token: str = ""
    square_environment: Literal["sandbox", "production"] = "sandbox"
    square_location_id: str = ""
    square_api_version: str = "2024-12-18"
    square_timeout_seconds: float = 30.0

    # Providers
    team_member_id: str = ""
    provider_name: str = "Provider"
    provider_password: str = ""
    provider_keyword: str = ""
    additional_providers: list[ProviderProfile] = []
    provider_routing: Literal["single", "keyword"] = "single"
    provider_auth: Literal["static", "none"] = "static"

    # Catalog
    service_keywords: list[str] = ["telehealth"]
    service_variation_ids: dict[str, str] = {}  # display name -> variation id

    # Booking workflow
    payment_mode: Literal["required", "optional", "none"] = "optional"
    currency: str = "USD"
    availability_fallback: Literal["none", "grid"] = "none"
    fallback_start_hour: int = 9
    fallback_end_hour: int = 17
    fallback_slot_minutes: int = 60
    display_timezone: str = "America/New_York"
    customer_note_policy: Literal["append", "overwrite"] = "append"
    customer_note_max_chars: int = 4096
    access_codes_enabled: bool = True
    video_call_url: str = ""
    support_phone: str = ""

    # Email confirmations (Resend)
    resend_api_key: str = ""
    email_from: str = "Telehealth Appointments <noreply@example.com>"

    # Lookup windows
    provider_window_days: int = 30
    patient_lookup_past_days: int = 30
    patient_lookup_future_days: int = 90

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
    }

    @property
    def square_api_url(self) -> str:
        if self.square_environment == "production":
            return SQUARE_PRODUCTION_URL
        return SQUARE_SANDBOX_URL

    @property
    def providers(self) -> list[ProviderProfile]:
        """Configured providers, primary first."""
        primary = ProviderProfile(
            id=self.team_member_id,
            name=self.provider_name,
            password=self.provider_password,
            keyword=self.provider_keyword,
        )
        return [primary, *self.additional_providers]

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        ids = [p.id for p in self.providers if p.id]
        if len(ids) != len(set(ids)):
            raise ValueError("Provider ids must be unique across TEAM_MEMBER_ID and ADDITIONAL_PROVIDERS.")

        # The fallback grid fabricates slots without checking real bookings
        if self.availability_fallback == "grid" and self.square_environment == "production":
            raise ValueError(
                "AVAILABILITY_FALLBACK=grid is demo-only and cannot be used "
                "with SQUARE_ENVIRONMENT=production."
            )

        if not 0 <= self.fallback_start_hour < self.fallback_end_hour <= 23:
            raise ValueError(
                "FALLBACK_START_HOUR must be before FALLBACK_END_HOUR, both within 0-23."
            )
        if self.fallback_slot_minutes <= 0:
            raise ValueError("FALLBACK_SLOT_MINUTES must be greater than zero.")

        if not self.square_access_token:
            warnings.append("SQUARE_ACCESS_TOKEN not set. Square calls will fail.")
        if not self.square_location_id:
            warnings.append("SQUARE_LOCATION_ID not set. Bookings cannot be created.")
        if not self.team_member_id:
            warnings.append("TEAM_MEMBER_ID not set. Availability searches will fail.")

        if self.provider_auth == "static":
            missing = [p.name for p in self.providers if not p.password]
            if missing:
                warnings.append(
                    "No password configured for provider(s) %s. They cannot log in."
                    % ", ".join(missing)
                )
        elif not self.debug:
            warnings.append("PROVIDER_AUTH=none. Provider routes are open to anyone.")

        if self.availability_fallback == "grid":
            warnings.append(
                "AVAILABILITY_FALLBACK=grid. Fallback slots are not checked against real bookings."
            )

        return warnings
