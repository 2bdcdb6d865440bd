from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spotshare.audit import log_action
from spotshare.errors import ConflictError, NotFoundError
from spotshare.models import ParkingSpot, Profile, utcnow
from spotshare.profiles import require_admin, require_approved

logger = logging.getLogger(__name__)

MSG_DUPLICATE_SPOT = "A parking spot with this number already exists"


def list_spots(db: Session, *, owner_id: str | None = None) -> list[ParkingSpot]:
    stmt = select(ParkingSpot).order_by(ParkingSpot.spot_number.asc(), ParkingSpot.created_at.asc())
    if owner_id:
        stmt = stmt.where(ParkingSpot.owner_id == owner_id)
    return list(db.execute(stmt).scalars().all())


def _owned_spot(db: Session, me: Profile, spot_id: str, *, verb: str) -> ParkingSpot:
    spot = db.get(ParkingSpot, spot_id)
    if not spot or spot.owner_id != me.id:
        raise NotFoundError(f"Parking spot not found or you do not have permission to {verb} it")
    return spot


def _number_taken(db: Session, *, owner_id: str, spot_number: str, exclude_id: str | None = None) -> bool:
    stmt = select(ParkingSpot.id).where(
        (ParkingSpot.owner_id == owner_id) & (ParkingSpot.spot_number == spot_number)
    )
    if exclude_id:
        stmt = stmt.where(ParkingSpot.id != exclude_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none() is not None


def create_spot(db: Session, me: Profile, *, spot_number: str, location: str, notes: str | None = None) -> ParkingSpot:
    require_approved(me)
    spot_number = spot_number.strip()
    if _number_taken(db, owner_id=me.id, spot_number=spot_number):
        raise ConflictError(MSG_DUPLICATE_SPOT)

    spot = ParkingSpot(
        owner_id=me.id,
        spot_number=spot_number,
        location=location.strip(),
        notes=(notes or "").strip() or None,
        is_active=True,
        is_verified=False,
    )
    db.add(spot)
    try:
        db.flush()
    except IntegrityError:
        # Double-submit can still race the pre-check above.
        db.rollback()
        raise ConflictError(MSG_DUPLICATE_SPOT)
    log_action(db, actor_id=me.id, entity_type="parking_spot", entity_id=spot.id, action="create")
    logger.info("Spot %s (%s) created by %s", spot.id, spot.spot_number, me.id)
    return spot


def update_spot(
    db: Session,
    me: Profile,
    spot_id: str,
    *,
    spot_number: str | None = None,
    location: str | None = None,
    notes: str | None = None,
) -> ParkingSpot:
    spot = _owned_spot(db, me, spot_id, verb="update")
    if spot_number is not None:
        spot_number = spot_number.strip()
        if spot_number != spot.spot_number:
            if _number_taken(db, owner_id=me.id, spot_number=spot_number, exclude_id=spot.id):
                raise ConflictError(MSG_DUPLICATE_SPOT)
            spot.spot_number = spot_number
    if location is not None:
        spot.location = location.strip()
    if notes is not None:
        spot.notes = notes.strip() or None
    spot.updated_at = utcnow()
    db.add(spot)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError(MSG_DUPLICATE_SPOT)
    return spot


def delete_spot(db: Session, me: Profile, spot_id: str) -> None:
    """Owner or admin. Availabilities and their claims go with the spot."""
    spot = db.get(ParkingSpot, spot_id)
    if not spot or (spot.owner_id != me.id and not me.is_admin):
        raise NotFoundError("Parking spot not found or you do not have permission to delete it")
    db.delete(spot)
    log_action(db, actor_id=me.id, entity_type="parking_spot", entity_id=spot_id, action="delete")
    logger.info("Spot %s deleted by %s", spot_id, me.id)


def set_verified(db: Session, admin: Profile, spot_id: str, *, verified: bool, reason: str = "") -> ParkingSpot:
    require_admin(admin)
    spot = db.get(ParkingSpot, spot_id)
    if not spot:
        raise NotFoundError("Parking spot not found")
    spot.is_verified = bool(verified)
    spot.updated_at = utcnow()
    db.add(spot)
    log_action(
        db,
        actor_id=admin.id,
        entity_type="parking_spot",
        entity_id=spot.id,
        action="verify" if verified else "unverify",
        reason=reason,
    )
    return spot
