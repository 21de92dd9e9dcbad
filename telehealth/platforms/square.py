"""Square platform implementation.

Talks to the Square REST API v2 (catalog, bookings, customers, payments)
with an ``httpx.AsyncClient``.  Credentials, location and environment
come from ``Settings``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from telehealth.config import Settings
from telehealth.errors import PaymentFailedError, RemoteAPIError

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

logger = logging.getLogger(__name__)

# ListBookings rejects ranges longer than 31 days
MAX_BOOKING_RANGE = timedelta(days=31)


class SquarePlatform(SchedulingPlatform):
    """SchedulingPlatform backed by the Square REST API."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._location_id = settings.square_location_id
        self._client = httpx.AsyncClient(
            base_url=settings.square_api_url,
            timeout=settings.square_timeout_seconds,
            transport=transport,
            headers={
                "Square-Version": settings.square_api_version,
                "Authorization": f"Bearer {settings.square_access_token}",
                "Content-Type": "application/json",
            },
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        error_cls: type[RemoteAPIError] = RemoteAPIError,
    ) -> dict[str, Any]:
        """Send one request; raise ``error_cls`` on transport or API errors."""
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.error("Square %s %s failed: %s", method, path, exc)
            raise error_cls(f"Square request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        errors = data.get("errors") or []
        if response.status_code >= 400 or errors:
            detail = "; ".join(
                e.get("detail") or e.get("code", "") for e in errors
            ) or response.text or f"HTTP {response.status_code}"
            logger.error(
                "Square %s %s returned %d: %s", method, path, response.status_code, detail
            )
            raise error_cls(detail, errors=errors, http_status=response.status_code)

        return data

    @staticmethod
    def _to_rfc3339(dt: datetime) -> str:
        """Convert a datetime to an RFC 3339 UTC string."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    @staticmethod
    def _parse_time(value: str) -> datetime:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))

    @staticmethod
    def _customer_from(data: dict[str, Any]) -> Customer:
        return Customer(
            id=data["id"],
            given_name=data.get("given_name", ""),
            family_name=data.get("family_name", ""),
            email=data.get("email_address", ""),
            phone=data.get("phone_number", ""),
            note=data.get("note", ""),
        )

    @classmethod
    def _booking_from(cls, data: dict[str, Any]) -> Booking:
        segments = data.get("appointment_segments") or [{}]
        segment = segments[0]
        return Booking(
            id=data["id"],
            customer_id=data.get("customer_id", ""),
            start_at=cls._parse_time(data["start_at"]),
            service_variation_id=segment.get("service_variation_id", ""),
            team_member_id=segment.get("team_member_id", ""),
            duration_minutes=segment.get("duration_minutes", 0),
            status=data.get("status", ""),
            customer_note=data.get("customer_note", ""),
            seller_note=data.get("seller_note", ""),
        )

    # ------------------------------------------------------------------
    # SchedulingPlatform interface
    # ------------------------------------------------------------------

    async def list_catalog_items(self) -> list[CatalogItem]:
        items: list[CatalogItem] = []
        cursor: str | None = None

        while True:
            body: dict[str, Any] = {"object_types": ["ITEM"]}
            if cursor:
                body["cursor"] = cursor
            data = await self._request("POST", "/catalog/search", json=body)

            for obj in data.get("objects", []):
                item_data = obj.get("item_data", {})
                variations = item_data.get("variations") or []
                if not variations:
                    continue
                variation = variations[0]
                variation_data = variation.get("item_variation_data", {})
                items.append(
                    CatalogItem(
                        id=obj["id"],
                        name=item_data.get("name", ""),
                        description=item_data.get("description", ""),
                        product_type=item_data.get("product_type", ""),
                        variation_id=variation["id"],
                        variation_version=variation.get("version", 1),
                        price_cents=variation_data.get("price_money", {}).get("amount", 0),
                        duration_ms=variation_data.get("service_duration", 0),
                    )
                )

            cursor = data.get("cursor")
            if not cursor:
                break

        logger.info("Fetched %d catalog items", len(items))
        return items

    async def search_availability(
        self,
        service_variation_id: str,
        team_member_ids: list[str],
        start: datetime,
        end: datetime,
    ) -> list[RemoteSlot]:
        body = {
            "query": {
                "filter": {
                    "start_at_range": {
                        "start_at": self._to_rfc3339(start),
                        "end_at": self._to_rfc3339(end),
                    },
                    "location_id": self._location_id,
                    "segment_filters": [
                        {
                            "service_variation_id": service_variation_id,
                            "team_member_id_filter": {"any": team_member_ids},
                        }
                    ],
                }
            }
        }
        data = await self._request("POST", "/bookings/availability/search", json=body)

        slots: list[RemoteSlot] = []
        for availability in data.get("availabilities", []):
            segment = (availability.get("appointment_segments") or [{}])[0]
            slots.append(
                RemoteSlot(
                    start_at=self._parse_time(availability["start_at"]),
                    team_member_id=segment.get("team_member_id", ""),
                    duration_minutes=segment.get("duration_minutes", 0),
                )
            )
        return slots

    async def search_customers_by_email(self, email: str) -> list[Customer]:
        body = {"query": {"filter": {"email_address": {"exact": email}}}}
        data = await self._request("POST", "/customers/search", json=body)
        return [self._customer_from(c) for c in data.get("customers", [])]

    async def create_customer(self, draft: CustomerDraft, idempotency_key: str) -> Customer:
        body = {
            "idempotency_key": idempotency_key,
            "given_name": draft.given_name,
            "family_name": draft.family_name,
            "email_address": draft.email,
            "phone_number": draft.phone or None,
            "note": draft.note or None,
        }
        # Remove None values
        body = {k: v for k, v in body.items() if v is not None}
        data = await self._request("POST", "/customers", json=body)
        return self._customer_from(data["customer"])

    async def update_customer_note(self, customer_id: str, note: str) -> Customer:
        data = await self._request("PUT", f"/customers/{customer_id}", json={"note": note})
        return self._customer_from(data["customer"])

    async def retrieve_customer(self, customer_id: str) -> Customer:
        data = await self._request("GET", f"/customers/{customer_id}")
        return self._customer_from(data["customer"])

    async def create_payment(self, draft: PaymentDraft, idempotency_key: str) -> Payment:
        body: dict[str, Any] = {
            "source_id": draft.source_id,
            "idempotency_key": idempotency_key,
            "amount_money": {"amount": draft.amount_cents, "currency": draft.currency},
            "location_id": self._location_id,
            "autocomplete": True,
        }
        if draft.customer_id:
            body["customer_id"] = draft.customer_id
        if draft.note:
            body["note"] = draft.note

        data = await self._request("POST", "/payments", json=body, error_cls=PaymentFailedError)
        payment = data["payment"]
        status = payment.get("status", "")
        if status in ("FAILED", "CANCELED"):
            raise PaymentFailedError(f"Payment {payment['id']} {status.lower()}")

        return Payment(
            id=payment["id"],
            status=status,
            amount_cents=payment.get("amount_money", {}).get("amount", draft.amount_cents),
            receipt_url=payment.get("receipt_url", ""),
        )

    async def create_booking(self, draft: BookingDraft, idempotency_key: str) -> Booking:
        body = {
            "idempotency_key": idempotency_key,
            "booking": {
                "location_id": self._location_id,
                "customer_id": draft.customer_id,
                "start_at": self._to_rfc3339(draft.start_at),
                "appointment_segments": [
                    {
                        "duration_minutes": draft.duration_minutes,
                        "service_variation_id": draft.service_variation_id,
                        "service_variation_version": draft.service_variation_version,
                        "team_member_id": draft.team_member_id,
                    }
                ],
                "customer_note": draft.customer_note,
                "seller_note": draft.seller_note,
            },
        }
        data = await self._request("POST", "/bookings", json=body)
        booking = self._booking_from(data["booking"])
        logger.info("Created booking %s for customer %s", booking.id, booking.customer_id)
        return booking

    async def list_bookings(
        self, team_member_id: str, start: datetime, end: datetime
    ) -> list[Booking]:
        bookings: dict[str, Booking] = {}  # chunk boundaries overlap
        chunk_start = start

        while chunk_start < end:
            chunk_end = min(chunk_start + MAX_BOOKING_RANGE, end)
            cursor: str | None = None
            while True:
                params = {
                    "location_id": self._location_id,
                    "team_member_id": team_member_id,
                    "start_at_min": self._to_rfc3339(chunk_start),
                    "start_at_max": self._to_rfc3339(chunk_end),
                    "limit": 100,
                }
                if cursor:
                    params["cursor"] = cursor
                data = await self._request("GET", "/bookings", params=params)
                for raw in data.get("bookings", []):
                    booking = self._booking_from(raw)
                    bookings.setdefault(booking.id, booking)
                cursor = data.get("cursor")
                if not cursor:
                    break
            chunk_start = chunk_end

        return list(bookings.values())

    async def aclose(self) -> None:
        await self._client.aclose()
