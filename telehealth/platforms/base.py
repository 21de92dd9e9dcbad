"""Abstract base class for scheduling platforms.

Defines the interface the booking gateway uses for catalog lookups,
availability search, customer records, payments and bookings.  Any
backend (Square, a test double, etc.) implements this ABC.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass
class CatalogItem:
    """A catalog item with its first (bookable) variation flattened in."""

    id: str
    name: str
    description: str
    product_type: str
    variation_id: str
    variation_version: int
    price_cents: int
    duration_ms: int


@dataclass
class RemoteSlot:
    """An open appointment start time computed by the platform."""

    start_at: datetime
    team_member_id: str = ""
    duration_minutes: int = 0


@dataclass
class Customer:
    id: str
    given_name: str = ""
    family_name: str = ""
    email: str = ""
    phone: str = ""
    note: str = ""

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.given_name, self.family_name) if p)


@dataclass
class CustomerDraft:
    """Fields for a new customer record."""

    given_name: str
    family_name: str
    email: str
    phone: str = ""
    note: str = ""


@dataclass
class PaymentDraft:
    source_id: str
    amount_cents: int
    currency: str
    customer_id: str = ""
    note: str = ""


@dataclass
class Payment:
    id: str
    status: str
    amount_cents: int
    receipt_url: str = ""


@dataclass
class BookingDraft:
    """Fields for a new appointment."""

    customer_id: str
    start_at: datetime
    service_variation_id: str
    service_variation_version: int
    team_member_id: str
    duration_minutes: int
    customer_note: str = ""
    seller_note: str = ""


@dataclass
class Booking:
    id: str
    customer_id: str
    start_at: datetime
    service_variation_id: str = ""
    team_member_id: str = ""
    duration_minutes: int = 0
    status: str = ""
    customer_note: str = ""
    seller_note: str = ""


class SchedulingPlatform(ABC):
    """Abstract scheduling / payments / customer backend.

    Every method raises ``RemoteAPIError`` when the backend call fails.
    """

    @abstractmethod
    async def list_catalog_items(self) -> list[CatalogItem]:
        """Return every catalog item (not only appointment services)."""

    @abstractmethod
    async def search_availability(
        self,
        service_variation_id: str,
        team_member_ids: list[str],
        start: datetime,
        end: datetime,
    ) -> list[RemoteSlot]:
        """Return open slots for a service within ``[start, end]``.

        Args:
            service_variation_id: The priced, timed variant to book.
            team_member_ids: Providers whose calendars are searched.
            start: Beginning of the search window (UTC).
            end: End of the search window (UTC).
        """

    @abstractmethod
    async def search_customers_by_email(self, email: str) -> list[Customer]:
        """Exact-match customer search on email address."""

    @abstractmethod
    async def create_customer(self, draft: CustomerDraft, idempotency_key: str) -> Customer:
        """Create a customer record."""

    @abstractmethod
    async def update_customer_note(self, customer_id: str, note: str) -> Customer:
        """Replace the free-text note on a customer record."""

    @abstractmethod
    async def retrieve_customer(self, customer_id: str) -> Customer:
        """Fetch one customer record."""

    @abstractmethod
    async def create_payment(self, draft: PaymentDraft, idempotency_key: str) -> Payment:
        """Charge a payment source. Raises ``PaymentFailedError`` on decline."""

    @abstractmethod
    async def create_booking(self, draft: BookingDraft, idempotency_key: str) -> Booking:
        """Create an appointment."""

    @abstractmethod
    async def list_bookings(
        self, team_member_id: str, start: datetime, end: datetime
    ) -> list[Booking]:
        """Return a provider's bookings starting within ``[start, end]``."""

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
