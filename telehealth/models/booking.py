"""Pydantic models for gateway request bodies."""

from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from .intake import Consents, HealthInfo, PatientIntake, PersonalInfo


def _aliases(*names: str, default: Any = "") -> Any:
    return Field(default=default, validation_alias=AliasChoices(*names))


class ServiceSelection(BaseModel):
    """Reference to a catalog service by item id, variation id or name.

    A bare string is accepted and matched against all three.
    """

    id: str = ""
    variation_id: str = _aliases("variationId", "serviceVariationId", "variation_id")
    name: str = ""

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"id": value, "variation_id": value, "name": value}
        return value

    @model_validator(mode="after")
    def _not_empty(self) -> "ServiceSelection":
        if not (self.id or self.variation_id or self.name):
            raise ValueError("a service id, variation id or name is required")
        return self


class BookingRequest(BaseModel):
    """Body of ``POST /api/booking``."""

    personal: PersonalInfo = Field(
        validation_alias=AliasChoices("personal", "personalInfo", "customerInfo")
    )
    health: HealthInfo = Field(
        default_factory=HealthInfo,
        validation_alias=AliasChoices("health", "healthInfo"),
    )
    consents: Consents = Field(
        default_factory=Consents,
        validation_alias=AliasChoices("consents", "consent"),
    )
    service: ServiceSelection = Field(
        validation_alias=AliasChoices("service", "selectedService")
    )
    selected_time: datetime = Field(
        validation_alias=AliasChoices("selectedTime", "selectedSlot", "startAt", "selected_time")
    )
    provider_id: str = _aliases("providerId", "teamMemberId", "provider_id")
    payment_token: str = _aliases("paymentToken", "sourceId", "payment_token")

    @field_validator("selected_time", mode="before")
    @classmethod
    def _slot_start(cls, value: Any) -> Any:
        # Accept a slot object straight from the availability response
        if isinstance(value, dict):
            return value.get("startAt") or value.get("start_at")
        return value

    @field_validator("selected_time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def intake(self) -> PatientIntake:
        return PatientIntake(personal=self.personal, health=self.health, consents=self.consents)


class AvailabilityRequest(BaseModel):
    """Body of ``POST /api/availability``."""

    service_variation_id: str = Field(
        validation_alias=AliasChoices(
            "serviceVariationId", "serviceId", "variationId", "service_variation_id"
        ),
        min_length=1,
    )
    date: date
    provider_id: str = _aliases("providerId", "teamMemberId", "provider_id")


class PaymentCustomer(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class PaymentRequest(BaseModel):
    """Body of ``POST /api/process-payment``. ``amount`` is in cents."""

    source_id: str = Field(
        validation_alias=AliasChoices("sourceId", "paymentToken", "source_id"), min_length=1
    )
    amount: Optional[int] = Field(default=None, ge=1)
    service: Optional[ServiceSelection] = None
    customer: PaymentCustomer = Field(
        default_factory=PaymentCustomer,
        validation_alias=AliasChoices("customer", "customerFields", "customerInfo"),
    )

    @model_validator(mode="after")
    def _amount_or_service(self) -> "PaymentRequest":
        if self.amount is None and self.service is None:
            raise ValueError("either amount or service is required")
        return self


class LoginRequest(BaseModel):
    password: str


class PatientLoginRequest(BaseModel):
    access_code: str = Field(
        validation_alias=AliasChoices("accessCode", "access_code"), min_length=1
    )
    email: str = Field(min_length=1)
