"""Shared fixtures: an in-memory scheduling platform and gateway wiring."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import pytest

from telehealth.config import Settings
from telehealth.errors import RemoteAPIError
from telehealth.gateway import BookingGateway
from telehealth.models import PatientIntake
from telehealth.platforms.base import (
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


class FakePlatform(SchedulingPlatform):
    """In-memory platform that records every call in ``calls``."""

    def __init__(self, catalog: list[CatalogItem] | None = None) -> None:
        self.catalog = catalog or []
        self.slots: list[RemoteSlot] = []
        self.customers: dict[str, Customer] = {}
        self.bookings: list[Booking] = []
        self.calls: list[tuple[str, tuple]] = []
        self.payment_error: Exception | None = None
        self.booking_error: Exception | None = None
        self.failing_customer_ids: set[str] = set()
        self.closed = False

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    @property
    def call_names(self) -> list[str]:
        return [call for call, _ in self.calls]

    async def list_catalog_items(self) -> list[CatalogItem]:
        self.calls.append(("list_catalog_items", ()))
        return list(self.catalog)

    async def search_availability(self, service_variation_id, team_member_ids, start, end):
        self.calls.append(("search_availability", (service_variation_id, tuple(team_member_ids), start, end)))
        return list(self.slots)

    async def search_customers_by_email(self, email: str) -> list[Customer]:
        self.calls.append(("search_customers_by_email", (email,)))
        return [c for c in self.customers.values() if c.email == email]

    async def create_customer(self, draft: CustomerDraft, idempotency_key: str) -> Customer:
        self.calls.append(("create_customer", (draft, idempotency_key)))
        customer = Customer(
            id=f"CUST{len(self.customers) + 1}",
            given_name=draft.given_name,
            family_name=draft.family_name,
            email=draft.email,
            phone=draft.phone,
            note=draft.note,
        )
        self.customers[customer.id] = customer
        return customer

    async def update_customer_note(self, customer_id: str, note: str) -> Customer:
        self.calls.append(("update_customer_note", (customer_id, note)))
        customer = replace(self.customers[customer_id], note=note)
        self.customers[customer_id] = customer
        return customer

    async def retrieve_customer(self, customer_id: str) -> Customer:
        self.calls.append(("retrieve_customer", (customer_id,)))
        if customer_id in self.failing_customer_ids or customer_id not in self.customers:
            raise RemoteAPIError(f"Customer {customer_id} not found", http_status=404)
        return self.customers[customer_id]

    async def create_payment(self, draft: PaymentDraft, idempotency_key: str) -> Payment:
        self.calls.append(("create_payment", (draft, idempotency_key)))
        if self.payment_error is not None:
            raise self.payment_error
        return Payment(
            id="PAY1",
            status="COMPLETED",
            amount_cents=draft.amount_cents,
            receipt_url="https://squareup.example/receipt/PAY1",
        )

    async def create_booking(self, draft: BookingDraft, idempotency_key: str) -> Booking:
        self.calls.append(("create_booking", (draft, idempotency_key)))
        if self.booking_error is not None:
            raise self.booking_error
        booking = Booking(
            id=f"BOOK{len(self.bookings) + 1}",
            customer_id=draft.customer_id,
            start_at=draft.start_at,
            service_variation_id=draft.service_variation_id,
            team_member_id=draft.team_member_id,
            duration_minutes=draft.duration_minutes,
            status="ACCEPTED",
            customer_note=draft.customer_note,
            seller_note=draft.seller_note,
        )
        self.bookings.append(booking)
        return booking

    async def list_bookings(self, team_member_id: str, start: datetime, end: datetime) -> list[Booking]:
        self.calls.append(("list_bookings", (team_member_id, start, end)))
        return [
            b for b in self.bookings
            if b.team_member_id == team_member_id and start <= b.start_at <= end
        ]

    async def aclose(self) -> None:
        self.closed = True


# ── Fixtures ───────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        square_access_token="test-token",
        square_location_id="LOC1",
        team_member_id="TM1",
        provider_name="Dr. Smith",
        provider_password="s3cret",
        video_call_url="https://video.example/room",
        display_timezone="America/New_York",
        service_keywords=["telehealth"],
    )


@pytest.fixture
def catalog() -> list[CatalogItem]:
    return [
        CatalogItem(
            id="ITEM-FU",
            name="Telehealth Follow-up Consultation",
            description="30 minute video follow-up",
            product_type="APPOINTMENTS_SERVICE",
            variation_id="VAR-FU",
            variation_version=3,
            price_cents=4500,
            duration_ms=30 * 60_000,
        ),
        CatalogItem(
            id="ITEM-WV",
            name="Telehealth Wellness Visit",
            description="Comprehensive visit",
            product_type="APPOINTMENTS_SERVICE",
            variation_id="VAR-WV",
            variation_version=1,
            price_cents=12000,
            duration_ms=45 * 60_000,
        ),
        CatalogItem(
            id="ITEM-SHIRT",
            name="Telehealth T-shirt",
            description="",
            product_type="REGULAR",
            variation_id="VAR-SHIRT",
            variation_version=1,
            price_cents=2000,
            duration_ms=0,
        ),
        CatalogItem(
            id="ITEM-OFFICE",
            name="Office Visit",
            description="In person",
            product_type="APPOINTMENTS_SERVICE",
            variation_id="VAR-OFFICE",
            variation_version=1,
            price_cents=9000,
            duration_ms=60 * 60_000,
        ),
    ]


@pytest.fixture
def platform(catalog) -> FakePlatform:
    return FakePlatform(catalog)


@pytest.fixture
def gateway(settings, platform) -> BookingGateway:
    return BookingGateway.from_settings(settings, platform)


@pytest.fixture
def intake() -> PatientIntake:
    return PatientIntake.model_validate({
        "personal": {
            "name": "Jane Doe",
            "email": "jane@example.com",
            "phone": "+15551234567",
            "dob": "1990-04-01",
            "emergencyContact": {"name": "John Doe", "phone": "+15557654321"},
        },
        "health": {
            "chiefComplaint": "Persistent cough",
            "symptoms": ["cough", "fatigue"],
            "duration": "2 weeks",
            "medications": "None",
            "allergies": "Penicillin",
        },
        "consents": {
            "hipaa": True,
            "telehealth": True,
            "recording": False,
            "signature": "Jane Doe",
        },
    })
