"""HTTP tests for the FastAPI app, wired to the in-memory platform."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from telehealth.app import create_app
from telehealth.errors import PaymentFailedError, RemoteAPIError
from telehealth.platforms.base import RemoteSlot


@pytest.fixture
def client(settings, platform):
    return TestClient(create_app(settings=settings, platform=platform))


def _booking_body(**overrides):
    body = {
        "personalInfo": {
            "firstName": "Jane",
            "lastName": "Doe",
            "email": "new.patient@example.com",
            "phone": "+15551234567",
        },
        "healthInfo": {"chiefComplaint": "Sore throat", "duration": "3 days"},
        "consent": {"hipaaConsent": True, "telehealthConsent": True, "signature": "Jane Doe"},
        "selectedService": {"variationId": "VAR-FU"},
        "selectedTime": "2025-06-02T13:00:00Z",
    }
    body.update(overrides)
    return body


# ── Health and catalog ─────────────────────────────────────────────

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_services(client):
    resp = client.get("/api/services")
    assert resp.status_code == 200
    services = resp.json()["services"]
    assert [s["variationId"] for s in services] == ["VAR-FU", "VAR-WV"]
    assert services[0]["price"] == "45.00"


def test_services_keyword(client):
    resp = client.get("/api/services", params={"keyword": "office"})
    assert [s["name"] for s in resp.json()["services"]] == ["Office Visit"]


# ── Availability ───────────────────────────────────────────────────

class TestAvailability:
    def test_slots_sorted_with_display_time(self, client, platform):
        platform.slots = [
            RemoteSlot(start_at=datetime(2025, 6, 2, 10, 30, tzinfo=timezone.utc), team_member_id="TM1"),
            RemoteSlot(start_at=datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc), team_member_id="TM1"),
        ]
        resp = client.post("/api/availability", json={"serviceVariationId": "VAR-FU", "date": "2025-06-02"})
        assert resp.status_code == 200
        slots = resp.json()["availabilities"]
        assert len(slots) == 2
        assert [s["startAt"] for s in slots] == ["2025-06-02T09:00:00Z", "2025-06-02T10:30:00Z"]
        assert all(s["time"] for s in slots)

    def test_empty_day(self, client):
        resp = client.post("/api/availability", json={"serviceId": "VAR-FU", "date": "2025-06-02"})
        assert resp.status_code == 200
        assert resp.json()["availabilities"] == []
        assert resp.json()["message"]

    def test_missing_service(self, client):
        resp = client.post("/api/availability", json={"date": "2025-06-02"})
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_bad_date(self, client):
        resp = client.post("/api/availability", json={"serviceId": "VAR-FU", "date": "next tuesday"})
        assert resp.status_code == 400

    def test_unknown_service(self, client):
        resp = client.post("/api/availability", json={"serviceId": "NOPE", "date": "2025-06-02"})
        assert resp.status_code == 400
        assert "NOPE" in resp.json()["details"]


# ── Booking ────────────────────────────────────────────────────────

class TestBooking:
    def test_new_patient(self, client, platform):
        resp = client.post("/api/booking", json=_booking_body(paymentToken="cnon:card-ok"))
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["bookingId"] == "BOOK1"
        assert platform.count("create_customer") == 1
        assert platform.count("create_booking") == 1

    def test_plural_alias(self, client, platform):
        resp = client.post("/api/bookings", json=_booking_body())
        assert resp.status_code == 200
        assert platform.count("create_booking") == 1

    def test_slot_object_and_string_service(self, client, platform):
        body = _booking_body(
            selectedService="Telehealth Wellness Visit",
            selectedTime={"startAt": "2025-06-02T14:00:00Z", "time": "Monday..."},
        )
        resp = client.post("/api/booking", json=body)
        assert resp.status_code == 200
        assert resp.json()["confirmation"]["serviceName"] == "Telehealth Wellness Visit"
        assert platform.bookings[0].start_at == datetime(2025, 6, 2, 14, tzinfo=timezone.utc)

    def test_missing_email(self, client, platform):
        body = _booking_body(personalInfo={"firstName": "Jane"})
        resp = client.post("/api/booking", json=body)
        assert resp.status_code == 400
        assert "email" in resp.json()["details"]
        assert platform.calls == []

    def test_missing_time(self, client):
        body = _booking_body()
        del body["selectedTime"]
        assert client.post("/api/booking", json=body).status_code == 400

    def test_oversized_intake(self, client, platform):
        body = _booking_body(
            healthInfo={"chiefComplaint": "Sore throat", "medicalHistory": "x" * 5000},
            paymentToken="cnon:card-ok",
        )
        resp = client.post("/api/booking", json=body)
        assert resp.status_code == 400
        assert "too long" in resp.json()["details"]
        assert platform.count("create_payment") == 0
        assert platform.count("create_booking") == 0

    def test_unexpected_error_is_json(self, settings, platform, monkeypatch):
        async def broken(draft, idempotency_key):
            raise KeyError("customer")

        monkeypatch.setattr(platform, "create_customer", broken)
        app = create_app(
            settings=settings.model_copy(update={"support_phone": "555-0100"}), platform=platform,
        )
        resp = TestClient(app, raise_server_exceptions=False).post("/api/booking", json=_booking_body())
        assert resp.status_code == 500
        body = resp.json()
        assert body["details"] == "Unexpected server error."
        assert body["supportPhone"] == "555-0100"
        assert platform.count("create_booking") == 0

    def test_payment_declined(self, client, platform):
        platform.payment_error = PaymentFailedError("Card declined.")
        resp = client.post("/api/booking", json=_booking_body(paymentToken="cnon:bad"))
        assert resp.status_code == 500
        assert resp.json()["details"] == "Card declined."
        assert "No appointment was booked" in resp.json()["error"]
        assert platform.count("create_booking") == 0

    def test_remote_failure_includes_support_phone(self, settings, platform):
        app = create_app(
            settings=settings.model_copy(update={"support_phone": "555-0100"}), platform=platform,
        )
        platform.booking_error = RemoteAPIError("Booking conflict")
        resp = TestClient(app).post("/api/booking", json=_booking_body())
        assert resp.status_code == 500
        assert resp.json()["supportPhone"] == "555-0100"
        assert "555-0100" in resp.json()["error"]


class TestProcessPayment:
    def test_by_service(self, client):
        resp = client.post("/api/process-payment", json={"sourceId": "cnon:ok", "service": "VAR-FU"})
        assert resp.status_code == 200
        assert resp.json()["amount"] == "45.00"

    def test_needs_amount_or_service(self, client):
        resp = client.post("/api/process-payment", json={"sourceId": "cnon:ok"})
        assert resp.status_code == 400

    def test_zero_amount(self, client):
        resp = client.post("/api/process-payment", json={"sourceId": "cnon:ok", "amount": 0})
        assert resp.status_code == 400


# ── Provider portal ────────────────────────────────────────────────

class TestProviderPortal:
    def _login(self, client, path="/api/provider-login", password="s3cret"):
        return client.post(path, json={"password": password})

    def test_login(self, client):
        resp = self._login(client)
        assert resp.status_code == 200
        assert resp.json()["provider"]["id"] == "TM1"

    def test_login_alias(self, client):
        assert self._login(client, path="/api/provider/login").status_code == 200

    def test_wrong_password(self, client):
        resp = self._login(client, password="S3CRET")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_bookings_require_token(self, client):
        assert client.get("/api/provider/bookings").status_code == 401
        resp = client.get("/api/provider/bookings", headers={"Authorization": "Bearer TM1.forged"})
        assert resp.status_code == 401

    def test_bookings(self, client, platform):
        start = (datetime.now(tz=timezone.utc) + timedelta(days=2)).replace(microsecond=0)
        client.post("/api/booking", json=_booking_body(selectedTime=start.isoformat()))
        token = self._login(client).json()["token"]

        resp = client.get("/api/provider/bookings", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        bookings = resp.json()["bookings"]
        assert len(bookings) == 1
        assert bookings[0]["customer"]["email"] == "new.patient@example.com"
        assert bookings[0]["intake"]["chief_complaint"] == "Sore throat"

    def test_unknown_provider_filter(self, client):
        token = self._login(client).json()["token"]
        resp = client.get(
            "/api/provider/bookings",
            params={"teamMemberId": "TM9"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 400


# ── Patient login ──────────────────────────────────────────────────

class TestPatientLogin:
    def _book(self, client):
        start = (datetime.now(tz=timezone.utc) + timedelta(days=3)).replace(microsecond=0)
        return client.post("/api/booking", json=_booking_body(selectedTime=start.isoformat())).json()

    def test_found(self, client):
        booked = self._book(client)
        resp = client.post(
            "/api/patient-login",
            json={"accessCode": booked["accessCode"], "email": "new.patient@example.com"},
        )
        assert resp.status_code == 200
        assert resp.json()["appointment"]["id"] == booked["bookingId"]

    def test_email_mismatch(self, client):
        booked = self._book(client)
        resp = client.post(
            "/api/patient-login",
            json={"accessCode": booked["accessCode"], "email": "intruder@example.com"},
        )
        assert resp.status_code == 404
        assert "error" in resp.json()

    def test_missing_fields(self, client):
        assert client.post("/api/patient-login", json={"email": "a@b.co"}).status_code == 400
