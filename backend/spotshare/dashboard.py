from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from spotshare.models import CLAIM_CONFIRMED, CLAIM_PENDING, Availability, Claim, ParkingSpot, Profile, utcnow
from spotshare.schemas import availability_out, claim_out, spot_out


def build_dashboard(db: Session, me: Profile, *, now: dt.datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()

    my_spots = (
        db.execute(
            select(ParkingSpot)
            .options(selectinload(ParkingSpot.availabilities))
            .where(ParkingSpot.owner_id == me.id)
            .order_by(ParkingSpot.spot_number.asc())
        )
        .scalars()
        .all()
    )

    available = (
        db.execute(
            select(Availability)
            .join(ParkingSpot, Availability.spot_id == ParkingSpot.id)
            .options(selectinload(Availability.spot).selectinload(ParkingSpot.owner))
            .where(
                (Availability.is_active.is_(True))
                & (Availability.end_time > now)
                & (ParkingSpot.owner_id != me.id)
            )
            .order_by(Availability.start_time.asc())
        )
        .scalars()
        .all()
    )

    claim_options = selectinload(Claim.availability).selectinload(Availability.spot).selectinload(ParkingSpot.owner)
    my_claims = (
        db.execute(
            select(Claim).options(claim_options).where(Claim.claimer_id == me.id).order_by(Claim.created_at.desc())
        )
        .scalars()
        .all()
    )
    claims_on_my_spots = (
        db.execute(
            select(Claim)
            .join(Availability, Claim.availability_id == Availability.id)
            .join(ParkingSpot, Availability.spot_id == ParkingSpot.id)
            .options(claim_options, selectinload(Claim.claimer))
            .where(ParkingSpot.owner_id == me.id)
            .order_by(Claim.created_at.desc())
        )
        .scalars()
        .all()
    )

    stats = {
        "my_spots": len(my_spots),
        "available_spots": len(available),
        "active_claims": sum(1 for c in my_claims if c.status in (CLAIM_PENDING, CLAIM_CONFIRMED)),
        "total_claims": len(my_claims),
        "pending_claims_on_my_spots": sum(1 for c in claims_on_my_spots if c.status == CLAIM_PENDING),
        "confirmed_claims_on_my_spots": sum(1 for c in claims_on_my_spots if c.status == CLAIM_CONFIRMED),
    }

    def _claim_on_my_spot(c: Claim) -> dict[str, Any]:
        out = claim_out(c, availability=c.availability)
        out["claimer"] = (
            {"id": c.claimer.id, "full_name": c.claimer.full_name, "apartment_number": c.claimer.apartment_number}
            if c.claimer is not None
            else None
        )
        return out

    return {
        "stats": stats,
        "my_spots": [
            {**spot_out(s), "availabilities": [availability_out(a) for a in s.availabilities]} for s in my_spots
        ],
        "available_spots": [availability_out(a, spot=a.spot) for a in available],
        "my_claims": [claim_out(c, availability=c.availability) for c in my_claims],
        "claims_on_my_spots": [_claim_on_my_spot(c) for c in claims_on_my_spots],
    }
