from __future__ import annotations

import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any, Literal

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from starlette.middleware.trustedhost import TrustedHostMiddleware

from spotshare import availability as availability_service
from spotshare import claims as claim_service
from spotshare import profiles as profile_service
from spotshare import spots as spot_service
from spotshare.config import (
    allowed_hosts,
    claim_auto_confirm,
    claim_rate_limit,
    claim_rate_window_seconds,
    cors_origins,
    database_url,
    enforce_secure_secrets,
    is_local_dev,
    log_level,
)
from spotshare.dashboard import build_dashboard
from spotshare.db import Database
from spotshare.deps import CurrentProfile, DbSession, get_limiter
from spotshare.errors import ServiceError, ValidationError, error_body
from spotshare.models import AuditLog
from spotshare.rate_limit import RateLimiter
from spotshare.schemas import (
    AvailabilityCreateIn,
    AvailabilityUpdateIn,
    ClaimActionIn,
    ClaimCreateIn,
    ClaimUpdateIn,
    ModerateIn,
    ProfileUpdateIn,
    SpotCreateIn,
    SpotUpdateIn,
    audit_out,
    availability_out,
    claim_out,
    profile_out,
    spot_out,
)


logger = logging.getLogger(__name__)


def create_app(database: Database | None = None) -> FastAPI:
    """
    Build the API. The database handle is created here (or injected by the
    caller) and disposed on shutdown; nothing holds a module-level engine.
    """
    logging.basicConfig(level=log_level())
    # Production hardening: ensure we don't run with dangerous defaults.
    enforce_secure_secrets()

    db_handle = database or Database(database_url())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if database is None and is_local_dev():
            # Local sqlite has no migration step; production runs alembic.
            db_handle.create_all()
        logger.info("SpotShare API ready (db=%s)", db_handle.engine.url.render_as_string(hide_password=True))
        yield
        db_handle.dispose()

    app = FastAPI(title="SpotShare API", lifespan=lifespan)
    app.state.db = db_handle
    app.state.limiter = RateLimiter()

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts())
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _security_headers(request, call_next):
        resp = await call_next(request)
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        return resp

    _register_error_handlers(app)
    _register_routes(app)
    return app


# -----------------------
# Error rendering
# -----------------------
def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(e.get("loc") or []), "msg": str(e.get("msg") or ""), "type": str(e.get("type") or "")}
            for e in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": details})

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError):
        logger.warning("%s %s integrity error: %s", request.method, request.url.path, exc.orig)
        return JSONResponse(status_code=409, content={"detail": "This record already exists"})

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        logger.exception("%s %s unexpected error", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _require_id(value: str | None, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{label} ID is required")
    return value


def _register_routes(app: FastAPI) -> None:
    # -----------------------
    # Health
    # -----------------------
    @app.get("/health")
    def health():
        return {"ok": True}

    # -----------------------
    # Profile
    # -----------------------
    @app.get("/profile")
    def get_profile(me: CurrentProfile) -> dict[str, Any]:
        return {"profile": profile_out(me)}

    @app.put("/profile")
    def update_profile(data: ProfileUpdateIn, me: CurrentProfile, db: DbSession) -> dict[str, Any]:
        profile = profile_service.update_own_profile(
            db,
            me,
            full_name=data.full_name,
            apartment_number=data.apartment_number,
            phone_number=data.phone_number,
        )
        return {"profile": profile_out(profile)}

    # -----------------------
    # Parking spots
    # -----------------------
    @app.get("/parking-spots")
    def list_parking_spots(
        me: CurrentProfile,
        db: DbSession,
        owner_id: str | None = Query(default=None),
    ) -> dict[str, Any]:
        return {"spots": [spot_out(s) for s in spot_service.list_spots(db, owner_id=owner_id)]}

    @app.post("/parking-spots", status_code=201)
    def create_parking_spot(data: SpotCreateIn, me: CurrentProfile, db: DbSession) -> dict[str, Any]:
        spot = spot_service.create_spot(db, me, spot_number=data.spot_number, location=data.location, notes=data.notes)
        return {"spot": spot_out(spot)}

    @app.put("/parking-spots")
    def update_parking_spot(data: SpotUpdateIn, me: CurrentProfile, db: DbSession) -> dict[str, Any]:
        spot = spot_service.update_spot(
            db,
            me,
            data.id,
            spot_number=data.spot_number,
            location=data.location,
            notes=data.notes,
        )
        return {"spot": spot_out(spot)}

    @app.delete("/parking-spots")
    def delete_parking_spot(
        me: CurrentProfile,
        db: DbSession,
        id: str | None = Query(default=None),
    ) -> dict[str, Any]:
        spot_service.delete_spot(db, me, _require_id(id, "Spot"))
        return {"message": "Parking spot deleted successfully"}

    # -----------------------
    # Availabilities
    # -----------------------
    @app.get("/availabilities")
    def list_availabilities(
        me: CurrentProfile,
        db: DbSession,
        spot_id: str | None = Query(default=None),
        is_active: bool | None = Query(default=None),
        available: bool = Query(default=False),
    ) -> dict[str, Any]:
        items = availability_service.list_availabilities(db, spot_id=spot_id, is_active=is_active, available=available)
        return {"availabilities": [availability_out(a) for a in items]}

    @app.post("/availabilities", status_code=201)
    def create_availability(data: AvailabilityCreateIn, me: CurrentProfile, db: DbSession) -> dict[str, Any]:
        a = availability_service.create_availability(
            db,
            me,
            spot_id=str(data.spot_id),
            start_time=data.start_time,
            end_time=data.end_time,
            notes=data.notes,
            is_active=data.is_active,
        )
        return {"availability": availability_out(a)}

    @app.put("/availabilities")
    def update_availability(data: AvailabilityUpdateIn, me: CurrentProfile, db: DbSession) -> dict[str, Any]:
        a = availability_service.update_availability(
            db,
            me,
            data.id,
            start_time=data.start_time,
            end_time=data.end_time,
            notes=data.notes,
            is_active=data.is_active,
        )
        return {"availability": availability_out(a)}

    @app.delete("/availabilities")
    def delete_availability(
        me: CurrentProfile,
        db: DbSession,
        id: str | None = Query(default=None),
    ) -> dict[str, Any]:
        availability_service.delete_availability(db, me, _require_id(id, "Availability"))
        return {"message": "Availability deleted successfully"}

    # -----------------------
    # Claims
    # -----------------------
    @app.get("/claims")
    def list_claims(
        me: CurrentProfile,
        db: DbSession,
        claimer_id: str | None = Query(default=None),
        availability_id: str | None = Query(default=None),
        status: str | None = Query(default=None),
    ) -> dict[str, Any]:
        items = claim_service.list_claims(db, me, claimer_id=claimer_id, availability_id=availability_id, status=status)
        return {"claims": [claim_out(c) for c in items]}

    @app.post("/claims", status_code=201)
    def submit_claim(
        data: ClaimCreateIn,
        me: CurrentProfile,
        db: DbSession,
        limiter: Annotated[RateLimiter, Depends(get_limiter)],
    ) -> dict[str, Any]:
        limiter.hit(
            key=f"claim:{me.id}",
            limit=claim_rate_limit(),
            window_seconds=claim_rate_window_seconds(),
            detail="Too many claim attempts. Please wait and try again.",
        )
        claim = claim_service.submit_claim(
            db,
            me,
            availability_id=str(data.availability_id),
            notes=data.notes,
            auto_confirm=claim_auto_confirm(),
        )
        return {"claim": claim_out(claim)}

    @app.put("/claims")
    def update_claim(data: ClaimUpdateIn, me: CurrentProfile, db: DbSession) -> dict[str, Any]:
        claim = claim_service.update_claim(db, me, data.id, status=data.status, notes=data.notes)
        return {"claim": claim_out(claim)}

    @app.patch("/claims")
    def claim_action(data: ClaimActionIn, me: CurrentProfile, db: DbSession) -> dict[str, Any]:
        if data.action != "release":
            raise ValidationError('Invalid action. Use "release" to release a claimed spot.')
        claim = claim_service.release_claim(db, me, data.id)
        return {"message": "Spot released successfully", "claim": claim_out(claim)}

    @app.delete("/claims")
    def delete_claim(
        me: CurrentProfile,
        db: DbSession,
        id: str | None = Query(default=None),
    ) -> dict[str, Any]:
        claim_service.delete_claim(db, me, _require_id(id, "Claim"))
        return {"message": "Claim deleted successfully"}

    # -----------------------
    # Dashboard
    # -----------------------
    @app.get("/dashboard")
    def dashboard(me: CurrentProfile, db: DbSession) -> dict[str, Any]:
        return build_dashboard(db, me)

    # -----------------------
    # Admin
    # -----------------------
    @app.get("/admin/profiles")
    def admin_list_profiles(
        me: CurrentProfile,
        db: DbSession,
        pending: bool | None = Query(default=None),
    ) -> dict[str, Any]:
        profile_service.require_admin(me)
        return {"profiles": [profile_out(p) for p in profile_service.list_profiles(db, pending=pending)]}

    @app.post("/admin/profiles/{profile_id}/{action}")
    def admin_profile_action(
        profile_id: str,
        action: Literal["approve", "reject", "promote", "demote"],
        me: CurrentProfile,
        db: DbSession,
        data: ModerateIn | None = None,
    ) -> dict[str, Any]:
        target = profile_service.admin_set_flags(
            db, me, profile_id=profile_id, action=action, reason=(data.reason if data else "") or ""
        )
        return {"profile": profile_out(target)}

    @app.post("/admin/spots/{spot_id}/verify")
    def admin_verify_spot(spot_id: str, me: CurrentProfile, db: DbSession, data: ModerateIn | None = None) -> dict[str, Any]:
        spot = spot_service.set_verified(db, me, spot_id, verified=True, reason=(data.reason if data else "") or "")
        return {"spot": spot_out(spot)}

    @app.post("/admin/spots/{spot_id}/unverify")
    def admin_unverify_spot(spot_id: str, me: CurrentProfile, db: DbSession, data: ModerateIn | None = None) -> dict[str, Any]:
        spot = spot_service.set_verified(db, me, spot_id, verified=False, reason=(data.reason if data else "") or "")
        return {"spot": spot_out(spot)}

    @app.get("/admin/logs")
    def admin_logs(
        me: CurrentProfile,
        db: DbSession,
        limit: int = Query(default=200, ge=1, le=1000),
    ) -> dict[str, Any]:
        profile_service.require_admin(me)
        rows = db.execute(select(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit)).scalars().all()
        return {"items": [audit_out(r) for r in rows]}

    # -----------------------
    # SMS provider webhook (acknowledge + log only)
    # -----------------------
    @app.post("/webhooks/sms")
    async def sms_webhook(request: Request) -> dict[str, Any]:
        received_at = dt.datetime.now(dt.timezone.utc).isoformat()
        try:
            event = await request.json()
        except Exception:
            # The provider retries on non-200; acknowledge anyway.
            logger.warning("SMS webhook: unreadable payload")
            return {"status": "error", "message": "Failed to process webhook", "timestamp": received_at}
        event_type = event.get("type") if isinstance(event, dict) else None
        logger.info("SMS webhook event received: type=%s", event_type)
        return {"status": "received", "timestamp": received_at}


app = create_app()
