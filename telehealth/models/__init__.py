"""Data models for the booking gateway."""

from .booking import (
    AvailabilityRequest,
    BookingRequest,
    LoginRequest,
    PatientLoginRequest,
    PaymentCustomer,
    PaymentRequest,
    ServiceSelection,
)
from .intake import Consents, HealthInfo, PatientIntake, PersonalInfo

__all__ = [
    "AvailabilityRequest",
    "BookingRequest",
    "Consents",
    "HealthInfo",
    "LoginRequest",
    "PatientIntake",
    "PatientLoginRequest",
    "PaymentCustomer",
    "PaymentRequest",
    "PersonalInfo",
    "ServiceSelection",
]
