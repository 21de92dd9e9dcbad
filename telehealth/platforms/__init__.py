"""Scheduling platform abstractions and implementations."""

from .base import (
    Booking,
    BookingDraft,
    CatalogItem,
    Customer,
    CustomerDraft,
    Payment,
    PaymentDraft,
    RemoteSlot,
    SchedulingPlatform,
)

__all__ = [
    "Booking",
    "BookingDraft",
    "CatalogItem",
    "Customer",
    "CustomerDraft",
    "Payment",
    "PaymentDraft",
    "RemoteSlot",
    "SchedulingPlatform",
]
