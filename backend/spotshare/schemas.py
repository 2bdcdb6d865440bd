from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field

from spotshare.models import AuditLog, Availability, Claim, ParkingSpot, Profile


ClaimStatus = Literal["pending", "confirmed", "expired", "cancelled", "released"]


# -----------------------
# Request bodies
# -----------------------
class AvailabilityCreateIn(BaseModel):
    spot_id: uuid.UUID
    start_time: dt.datetime
    end_time: dt.datetime
    notes: str | None = Field(default=None, max_length=500)
    is_active: bool = True


class AvailabilityUpdateIn(BaseModel):
    """
    Partial update; only provided fields are applied.
    """

    id: str = Field(min_length=1)
    start_time: dt.datetime | None = None
    end_time: dt.datetime | None = None
    notes: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None


class ClaimCreateIn(BaseModel):
    availability_id: uuid.UUID
    notes: str | None = Field(default=None, max_length=500)


class ClaimUpdateIn(BaseModel):
    id: str = Field(min_length=1)
    status: ClaimStatus | None = None
    notes: str | None = Field(default=None, max_length=500)


class ClaimActionIn(BaseModel):
    id: str = Field(min_length=1)
    action: str = ""


class SpotCreateIn(BaseModel):
    spot_number: str = Field(min_length=1, max_length=10)
    location: str = Field(min_length=1, max_length=50)
    notes: str | None = Field(default=None, max_length=500)


class SpotUpdateIn(BaseModel):
    id: str = Field(min_length=1)
    spot_number: str | None = Field(default=None, min_length=1, max_length=10)
    location: str | None = Field(default=None, min_length=1, max_length=50)
    notes: str | None = Field(default=None, max_length=500)


class ProfileUpdateIn(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    apartment_number: str | None = Field(default=None, max_length=40)
    phone_number: str | None = Field(default=None, max_length=32)


class ModerateIn(BaseModel):
    reason: str = ""


# -----------------------
# Response shaping
# -----------------------
class OwnerSummary(BaseModel):
    id: str
    full_name: str
    apartment_number: str


def _ts(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def owner_summary(spot: ParkingSpot | None) -> OwnerSummary | None:
    """Owner info is only present when the spot and its owner were loaded."""
    if spot is None or spot.owner is None:
        return None
    return OwnerSummary(
        id=spot.owner.id,
        full_name=spot.owner.full_name or "",
        apartment_number=spot.owner.apartment_number or "",
    )


def profile_out(p: Profile) -> dict[str, Any]:
    return {
        "id": p.id,
        "email": p.email,
        "full_name": p.full_name,
        "apartment_number": p.apartment_number,
        "phone_number": p.phone_number,
        "is_approved": bool(p.is_approved),
        "is_admin": bool(p.is_admin),
        "created_at": _ts(p.created_at),
        "updated_at": _ts(p.updated_at),
    }


def spot_out(s: ParkingSpot) -> dict[str, Any]:
    return {
        "id": s.id,
        "owner_id": s.owner_id,
        "spot_number": s.spot_number,
        "location": s.location,
        "is_active": bool(s.is_active),
        "is_verified": bool(s.is_verified),
        "notes": s.notes,
        "created_at": _ts(s.created_at),
        "updated_at": _ts(s.updated_at),
    }


def availability_out(a: Availability, *, spot: ParkingSpot | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": a.id,
        "spot_id": a.spot_id,
        "start_time": _ts(a.start_time),
        "end_time": _ts(a.end_time),
        "notes": a.notes,
        "is_active": bool(a.is_active),
        "created_at": _ts(a.created_at),
        "updated_at": _ts(a.updated_at),
    }
    if spot is not None:
        owner = owner_summary(spot)
        out["parking_spot"] = {
            "id": spot.id,
            "spot_number": spot.spot_number,
            "location": spot.location,
            "notes": spot.notes,
            "owner_id": spot.owner_id,
            "owner": owner.model_dump() if owner is not None else None,
        }
    return out


def claim_out(c: Claim, *, availability: Availability | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": c.id,
        "availability_id": c.availability_id,
        "claimer_id": c.claimer_id,
        "status": c.status,
        "notes": c.notes,
        "created_at": _ts(c.created_at),
        "updated_at": _ts(c.updated_at),
    }
    if availability is not None:
        out["availability"] = availability_out(availability, spot=availability.spot)
    return out


def audit_out(row: AuditLog) -> dict[str, Any]:
    return {
        "id": row.id,
        "actor_id": row.actor_id,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "action": row.action,
        "reason": row.reason,
        "created_at": _ts(row.created_at),
    }
