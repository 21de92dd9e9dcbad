"""FastAPI application: HTTP endpoints for telehealth booking.

Endpoints:

  GET  /health                  Health check
  GET  /api/services            Bookable telehealth services
  POST /api/availability        Open slots for a service on one day
  POST /api/booking             Intake + (payment) + booking  (alias /api/bookings)
  POST /api/process-payment     Standalone payment capture
  POST /api/provider-login      Provider password login  (alias /api/provider/login)
  GET  /api/provider/bookings   Upcoming bookings (Bearer token)
  POST /api/patient-login       Appointment lookup by access code + email

The booking flow:
  1. Browser loads services, then availability for a chosen date
  2. Patient fills the intake form and picks a slot
  3. POST /api/booking finds or creates the Square customer, charges the
     card if a payment token was sent, then creates the booking
"""

from __future__ import annotations

# Load .env into os.environ before Settings is built
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# Configure root logger early so all app loggers have a handler
# when run via `uvicorn telehealth.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from telehealth.auth import require_provider
from telehealth.config import ProviderProfile, Settings
from telehealth.errors import AuthenticationError, BookingValidationError, GatewayError
from telehealth.gateway import BookingGateway
from telehealth.models import (
    AvailabilityRequest,
    BookingRequest,
    LoginRequest,
    PatientLoginRequest,
    PaymentRequest,
)
from telehealth.platforms.base import SchedulingPlatform
from telehealth.platforms.square import SquarePlatform

log = logging.getLogger("telehealth.app")


def create_app(
    settings: Settings | None = None,
    platform: SchedulingPlatform | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration. If None, read from the environment.
        platform: Scheduling backend. If None, Square is used.
    """
    if settings is None:
        settings = Settings()
    for warning in settings.validate_startup():
        log.warning(warning)

    if platform is None:
        platform = SquarePlatform(settings)
    gateway = BookingGateway.from_settings(settings, platform)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(
            "Booking gateway starting (environment=%s, square=%s, location=%s)",
            settings.environment, settings.square_environment, settings.square_location_id,
        )
        yield
        await platform.aclose()

    app = FastAPI(
        title="Telehealth Booking Gateway",
        description="Patient booking and provider portal backed by Square",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.authenticator = gateway.authenticator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error handling ─────────────────────────────────────────

    def _error_response(exc: GatewayError) -> JSONResponse:
        body = exc.to_dict()
        if settings.support_phone and exc.status_code >= 500:
            body["error"] = f"{body['error']} Please call {settings.support_phone} to book by phone."
            body["supportPhone"] = settings.support_phone
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
        return JSONResponse(body, status_code=exc.status_code, headers=headers)

    @app.exception_handler(GatewayError)
    async def gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = []
        for err in exc.errors():
            field = ".".join(str(p) for p in err.get("loc", ())[1:]) or "body"
            problems.append(f"{field}: {err.get('msg', 'invalid')}")
        return _error_response(BookingValidationError("; ".join(problems)))

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        log.exception("%s %s failed unexpectedly", request.method, request.url.path)
        return _error_response(GatewayError("Unexpected server error."))

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({
            "status": "healthy",
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "environment": settings.environment,
        })

    # ── Patient booking ────────────────────────────────────────

    @app.get("/api/services")
    async def list_services(keyword: str = Query(default="")) -> JSONResponse:
        services = await gateway.list_services(keyword)
        return JSONResponse({"services": [s.to_dict() for s in services]})

    @app.post("/api/availability")
    async def availability(body: AvailabilityRequest) -> JSONResponse:
        result = await gateway.get_availability(
            body.service_variation_id, body.date, body.provider_id
        )
        return JSONResponse(result.to_dict())

    @app.post("/api/booking")
    @app.post("/api/bookings")
    async def create_booking(body: BookingRequest) -> JSONResponse:
        result = await gateway.create_booking(
            intake=body.intake,
            selection=body.service,
            start_at=body.selected_time,
            payment_token=body.payment_token,
            provider_id=body.provider_id,
        )
        return JSONResponse(result)

    @app.post("/api/process-payment")
    async def process_payment(body: PaymentRequest) -> JSONResponse:
        result = await gateway.process_payment(
            source_id=body.source_id,
            amount_cents=body.amount,
            selection=body.service,
            customer=body.customer,
        )
        return JSONResponse(result)

    @app.post("/api/patient-login")
    async def patient_login(body: PatientLoginRequest) -> JSONResponse:
        return JSONResponse(await gateway.patient_login(body.access_code, body.email))

    # ── Provider portal ────────────────────────────────────────

    @app.post("/api/provider-login")
    @app.post("/api/provider/login")
    async def provider_login(body: LoginRequest) -> JSONResponse:
        return JSONResponse(gateway.provider_login(body.password))

    @app.get("/api/provider/bookings")
    async def provider_bookings(
        team_member_id: str = Query(default="", alias="teamMemberId"),
        provider: ProviderProfile = Depends(require_provider),
    ) -> JSONResponse:
        bookings = await gateway.list_provider_bookings(provider, team_member_id)
        return JSONResponse({"bookings": bookings})

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "telehealth.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
