"""Booking gateway: translates patient and provider requests into platform calls.

Every operation is a short linear sequence of awaited platform calls:

  list_services            catalog search → filter → display units
  get_availability         catalog lookup → availability search → policy
  create_booking           catalog lookup → customer find/update/create
                           → optional payment → booking → email
  process_payment          customer find/create → payment
  provider_login           password check → token
  list_provider_bookings   list bookings → customer lookups (concurrent)
  patient_login            list bookings → access code + email match

No step is retried and nothing is rolled back.  When a later step fails
the earlier writes stay in place and the inconsistency is logged.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from telehealth.auth import Authenticator, build_authenticator
from telehealth.availability import (
    AvailabilityPolicy,
    AvailabilityResult,
    FallbackGridAvailability,
    TrustRemoteAvailability,
    day_range,
    format_clock_time,
    format_display_date,
    isoformat_utc,
)
from telehealth.config import ProviderProfile, Settings
from telehealth.errors import (
    AppointmentNotFoundError,
    AuthenticationError,
    BookingValidationError,
    RemoteAPIError,
)
from telehealth.models.booking import PaymentCustomer, ServiceSelection
from telehealth.models.intake import PatientIntake
from telehealth.notes import (
    NOTE_MAX_CHARS,
    IntakeNote,
    compose_customer_note,
    generate_access_code,
    parse_latest_intake,
    render_intake_block,
    render_patient_note,
    render_provider_note,
)
from telehealth.notifications import ConfirmationEmail, Notifier, build_notifier
from telehealth.platforms.base import (
    Booking,
    BookingDraft,
    Customer,
    CustomerDraft,
    Payment,
    PaymentDraft,
    SchedulingPlatform,
)
from telehealth.routing import ProviderRouter, build_router

log = logging.getLogger("telehealth.gateway")

APPOINTMENTS_SERVICE = "APPOINTMENTS_SERVICE"
INACTIVE_STATUSES = ("CANCELLED_BY_CUSTOMER", "CANCELLED_BY_SELLER", "DECLINED")


def redact_pii(value: str) -> str:
    """Mask PII for logging, showing the first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


def format_price(cents: int) -> str:
    """Minor units to a two-decimal string: 4500 → ``"45.00"``."""
    return f"{cents // 100}.{cents % 100:02d}"


def _idempotency_key() -> str:
    return str(uuid.uuid4())


@dataclass
class ServiceOffering:
    """A bookable telehealth service, in display units."""

    id: str
    name: str
    description: str
    price_cents: int
    duration_minutes: int
    variation_id: str
    variation_version: int = 1

    @property
    def price(self) -> str:
        return format_price(self.price_cents)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "priceCents": self.price_cents,
            "duration": self.duration_minutes,
            "variationId": self.variation_id,
        }


class BookingGateway:
    """The patient booking and provider portal operations."""

    def __init__(
        self,
        settings: Settings,
        platform: SchedulingPlatform,
        authenticator: Authenticator,
        router: ProviderRouter,
        availability_policy: AvailabilityPolicy,
        notifier: Notifier,
    ) -> None:
        self._settings = settings
        self._platform = platform
        self._authenticator = authenticator
        self._router = router
        self._availability = availability_policy
        self._notifier = notifier
        self._tz = ZoneInfo(settings.display_timezone)

    @classmethod
    def from_settings(cls, settings: Settings, platform: SchedulingPlatform) -> "BookingGateway":
        tz = ZoneInfo(settings.display_timezone)
        if settings.availability_fallback == "grid":
            policy: AvailabilityPolicy = FallbackGridAvailability(
                tz,
                start_hour=settings.fallback_start_hour,
                end_hour=settings.fallback_end_hour,
                slot_minutes=settings.fallback_slot_minutes,
            )
        else:
            policy = TrustRemoteAvailability(tz)

        return cls(
            settings=settings,
            platform=platform,
            authenticator=build_authenticator(settings.providers, settings.provider_auth),
            router=build_router(settings.providers, settings.provider_routing),
            availability_policy=policy,
            notifier=build_notifier(settings.resend_api_key, settings.email_from),
        )

    @property
    def authenticator(self) -> Authenticator:
        return self._authenticator

    # ── Catalog ─────────────────────────────────────────────────

    async def list_services(self, keyword: str = "") -> list[ServiceOffering]:
        """Appointment services matching the configured (or given) keyword."""
        items = await self._platform.list_catalog_items()

        keywords = [k.lower() for k in ([keyword] if keyword else self._settings.service_keywords) if k]
        mapped_ids = set(self._settings.service_variation_ids.values())

        offerings: list[ServiceOffering] = []
        for item in items:
            if item.product_type != APPOINTMENTS_SERVICE:
                continue
            if keywords:
                wanted = any(k in item.name.lower() for k in keywords) or item.variation_id in mapped_ids
            elif mapped_ids:
                wanted = item.variation_id in mapped_ids
            else:
                wanted = True
            if not wanted:
                continue
            offerings.append(
                ServiceOffering(
                    id=item.id,
                    name=item.name,
                    description=item.description,
                    price_cents=item.price_cents,
                    duration_minutes=item.duration_ms // 60_000,
                    variation_id=item.variation_id,
                    variation_version=item.variation_version,
                )
            )

        log.info("Listed %d service(s) from %d catalog item(s)", len(offerings), len(items))
        return offerings

    async def find_service(self, selection: ServiceSelection) -> ServiceOffering:
        """Resolve a service reference against the live catalog."""
        offerings = await self.list_services()
        mapped = self._settings.service_variation_ids.get(selection.name, "")

        for offering in offerings:
            if selection.variation_id and offering.variation_id == selection.variation_id:
                return offering
            if selection.id and offering.id == selection.id:
                return offering
            if mapped and offering.variation_id == mapped:
                return offering
        for offering in offerings:
            if selection.name and offering.name.lower() == selection.name.lower():
                return offering

        raise BookingValidationError(
            f"Unknown service: {selection.variation_id or selection.id or selection.name!r}"
        )

    # ── Availability ────────────────────────────────────────────

    async def get_availability(
        self, service_variation_id: str, day: date, provider_id: str = ""
    ) -> AvailabilityResult:
        service = await self.find_service(
            ServiceSelection(id=service_variation_id, variation_id=service_variation_id)
        )
        provider = self._router.route(service.name, provider_id)
        start, end = day_range(day, self._tz)

        log.info(
            "Searching availability for %s with provider %s on %s",
            service.variation_id, provider.id, day.isoformat(),
        )
        remote = await self._platform.search_availability(
            service.variation_id, [provider.id], start, end
        )
        result = self._availability.resolve(day, remote, provider.id, service.duration_minutes)
        log.info("Found %d slot(s) (fallback=%s)", len(result.slots), result.fallback)
        return result

    # ── Booking workflow ────────────────────────────────────────

    async def _resolve_customer(self, intake: PatientIntake, block: str) -> tuple[Customer, bool]:
        """Find the customer by exact email and record the intake, or create one."""
        personal = intake.personal
        matches = await self._platform.search_customers_by_email(personal.email)

        if matches:
            existing = matches[0]
            note = compose_customer_note(
                existing.note,
                block,
                policy=self._settings.customer_note_policy,
                max_chars=self._settings.customer_note_max_chars,
            )
            customer = await self._platform.update_customer_note(existing.id, note)
            log.info("Updated existing customer %s", customer.id)
            return customer, False

        customer = await self._platform.create_customer(
            CustomerDraft(
                given_name=personal.first_name,
                family_name=personal.last_name,
                email=personal.email,
                phone=personal.phone,
                note=block,
            ),
            idempotency_key=_idempotency_key(),
        )
        log.info("Created customer %s for %s", customer.id, redact_pii(personal.email))
        return customer, True

    def _payment_applies(self, payment_token: str, service: ServiceOffering) -> bool:
        mode = self._settings.payment_mode
        if mode == "required" and not payment_token and service.price_cents > 0:
            raise BookingValidationError("A payment method is required to book this appointment.")
        if mode == "none":
            if payment_token:
                log.info("Payments disabled, ignoring supplied payment token")
            return False
        return bool(payment_token) and service.price_cents > 0

    async def create_booking(
        self,
        intake: PatientIntake,
        selection: ServiceSelection,
        start_at: datetime,
        payment_token: str = "",
        provider_id: str = "",
    ) -> dict[str, Any]:
        """Customer → (payment) → booking, strictly in that order."""
        service = await self.find_service(selection)
        provider = self._router.route(service.name, provider_id)
        charge = self._payment_applies(payment_token, service)

        access_code = generate_access_code() if self._settings.access_codes_enabled else ""
        note = IntakeNote.from_intake(intake, access_code=access_code, service=service.name)
        block = render_intake_block(note)
        customer_note = render_patient_note(note)
        seller_note = render_provider_note(note, self._settings.video_call_url)
        if max(len(customer_note), len(seller_note)) > NOTE_MAX_CHARS:
            raise BookingValidationError(
                "The intake form is too long. Please shorten the free-text answers."
            )

        log.info(
            "Booking %s for %s at %s",
            service.name, redact_pii(intake.personal.email), isoformat_utc(start_at),
        )

        # 1. Customer
        customer, _ = await self._resolve_customer(intake, block)

        # 2. Payment
        payment: Optional[Payment] = None
        if charge:
            try:
                payment = await self._platform.create_payment(
                    PaymentDraft(
                        source_id=payment_token,
                        amount_cents=service.price_cents,
                        currency=self._settings.currency,
                        customer_id=customer.id,
                        note=f"{service.name} - {isoformat_utc(start_at)}",
                    ),
                    idempotency_key=_idempotency_key(),
                )
            except RemoteAPIError:
                log.error(
                    "Payment failed for customer %s; no booking created, customer record kept",
                    customer.id,
                )
                raise
            log.info("Payment %s captured (%s)", payment.id, payment.status)

        # 3. Booking
        try:
            booking = await self._platform.create_booking(
                BookingDraft(
                    customer_id=customer.id,
                    start_at=start_at,
                    service_variation_id=service.variation_id,
                    service_variation_version=service.variation_version,
                    team_member_id=provider.id,
                    duration_minutes=service.duration_minutes,
                    customer_note=customer_note,
                    seller_note=seller_note,
                ),
                idempotency_key=_idempotency_key(),
            )
        except RemoteAPIError:
            if payment is not None:
                log.error(
                    "Payment %s captured but booking failed for customer %s; charge NOT reversed",
                    payment.id, customer.id,
                )
            raise

        confirmation = {
            "serviceName": service.name,
            "startAt": isoformat_utc(booking.start_at),
            "date": format_display_date(booking.start_at, self._tz),
            "time": format_clock_time(booking.start_at, self._tz),
            "price": service.price,
            "duration": service.duration_minutes,
            "provider": provider.name,
            "videoLink": self._settings.video_call_url,
        }

        # 4. Email (best effort)
        await self._notifier.send_confirmation(
            ConfirmationEmail(
                to=intake.personal.email,
                patient_name=intake.personal.name,
                service_name=service.name,
                date=confirmation["date"],
                time=confirmation["time"],
                price=service.price,
                video_link=self._settings.video_call_url,
                access_code=access_code,
            )
        )

        result: dict[str, Any] = {
            "success": True,
            "bookingId": booking.id,
            "customerId": customer.id,
            "confirmation": confirmation,
            "message": "Appointment booked successfully!",
        }
        if payment is not None:
            result["paymentId"] = payment.id
            result["receiptUrl"] = payment.receipt_url
        if access_code:
            result["accessCode"] = access_code
        return result

    async def process_payment(
        self,
        source_id: str,
        amount_cents: Optional[int] = None,
        selection: Optional[ServiceSelection] = None,
        customer: Optional[PaymentCustomer] = None,
    ) -> dict[str, Any]:
        """Standalone charge, by explicit amount or by a service's price."""
        if amount_cents is None:
            if selection is None:
                raise BookingValidationError("Either an amount or a service is required.")
            amount_cents = (await self.find_service(selection)).price_cents
        if amount_cents <= 0:
            raise BookingValidationError("Payment amount must be greater than zero.")

        customer_id = ""
        if customer is not None and customer.email:
            matches = await self._platform.search_customers_by_email(customer.email)
            if matches:
                customer_id = matches[0].id
            else:
                first, _, last = customer.name.strip().partition(" ")
                created = await self._platform.create_customer(
                    CustomerDraft(
                        given_name=first,
                        family_name=last.strip(),
                        email=customer.email,
                        phone=customer.phone,
                    ),
                    idempotency_key=_idempotency_key(),
                )
                customer_id = created.id

        payment = await self._platform.create_payment(
            PaymentDraft(
                source_id=source_id,
                amount_cents=amount_cents,
                currency=self._settings.currency,
                customer_id=customer_id,
            ),
            idempotency_key=_idempotency_key(),
        )
        log.info("Payment %s captured for %s", payment.id, format_price(amount_cents))
        return {
            "success": True,
            "paymentId": payment.id,
            "receiptUrl": payment.receipt_url,
            "status": payment.status,
            "amount": format_price(payment.amount_cents),
        }

    # ── Provider portal ─────────────────────────────────────────

    def provider_login(self, password: str) -> dict[str, Any]:
        provider = self._authenticator.authenticate(password)
        if provider is None:
            log.warning("Provider login failed")
            raise AuthenticationError("Invalid password.")
        log.info("Provider %s logged in", provider.id)
        return {
            "success": True,
            "token": self._authenticator.issue_token(provider),
            "provider": {"id": provider.id, "name": provider.name},
        }

    def _providers_for(self, provider: ProviderProfile, provider_id: str) -> list[ProviderProfile]:
        if provider_id == "all":
            return self._router.providers
        if provider_id:
            return [self._router.get(provider_id)]
        return [provider]

    async def _describe_booking(self, booking: Booking, provider: ProviderProfile) -> dict[str, Any]:
        intake = parse_latest_intake(booking.seller_note)
        customer: Optional[Customer] = None
        if booking.customer_id:
            try:
                customer = await self._platform.retrieve_customer(booking.customer_id)
            except RemoteAPIError as exc:
                log.warning("Customer lookup failed for booking %s: %s", booking.id, exc)

        fallback = intake or IntakeNote()
        name = (customer.display_name if customer else "") or fallback.name or "Unknown patient"
        return {
            "id": booking.id,
            "startAt": isoformat_utc(booking.start_at),
            "time": f"{format_display_date(booking.start_at, self._tz)} at "
                    f"{format_clock_time(booking.start_at, self._tz)}",
            "status": booking.status,
            "durationMinutes": booking.duration_minutes,
            "provider": {"id": provider.id, "name": provider.name},
            "customer": {
                "id": booking.customer_id,
                "name": name,
                "email": (customer.email if customer else "") or fallback.email,
                "phone": (customer.phone if customer else "") or fallback.phone,
            },
            "notes": booking.seller_note,
            "patientNote": booking.customer_note,
            "intake": asdict(intake) if intake else None,
        }

    async def list_provider_bookings(
        self, provider: ProviderProfile, provider_id: str = ""
    ) -> list[dict[str, Any]]:
        """Upcoming bookings joined with customer details, soonest first.

        ``provider_id`` selects another provider's calendar, ``"all"``
        every configured provider; by default the logged-in provider's.
        """
        now = datetime.now(tz=timezone.utc)
        end = now + timedelta(days=self._settings.provider_window_days)

        pairs: list[tuple[Booking, ProviderProfile]] = []
        for p in self._providers_for(provider, provider_id):
            bookings = await self._platform.list_bookings(p.id, now, end)
            pairs.extend((b, p) for b in bookings if b.status not in INACTIVE_STATUSES)

        described = await asyncio.gather(*(self._describe_booking(b, p) for b, p in pairs))
        described.sort(key=lambda d: d["startAt"])
        log.info("Listed %d upcoming booking(s)", len(described))
        return described

    async def patient_login(self, access_code: str, email: str) -> dict[str, Any]:
        """Find an appointment by access code plus the email used to book it."""
        code = access_code.strip()
        wanted_email = email.strip().lower()
        if not code or not wanted_email:
            raise AppointmentNotFoundError("Access code and email are required.")

        now = datetime.now(tz=timezone.utc)
        start = now - timedelta(days=self._settings.patient_lookup_past_days)
        end = now + timedelta(days=self._settings.patient_lookup_future_days)

        for provider in self._router.providers:
            for booking in await self._platform.list_bookings(provider.id, start, end):
                intake = parse_latest_intake(booking.seller_note)
                if intake is None or intake.access_code != code:
                    continue
                if intake.email.strip().lower() != wanted_email:
                    log.warning("Access code matched booking %s but email did not", booking.id)
                    continue
                log.info("Patient lookup matched booking %s", booking.id)
                return {
                    "success": True,
                    "appointment": {
                        "id": booking.id,
                        "startAt": isoformat_utc(booking.start_at),
                        "date": format_display_date(booking.start_at, self._tz),
                        "time": format_clock_time(booking.start_at, self._tz),
                        "status": booking.status,
                        "serviceName": intake.service,
                        "provider": provider.name,
                        "patientName": intake.name,
                        "chiefComplaint": intake.chief_complaint,
                        "videoLink": self._settings.video_call_url,
                    },
                }

        raise AppointmentNotFoundError("No appointment matches that access code and email.")
