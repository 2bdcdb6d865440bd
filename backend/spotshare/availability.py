"""
Availability manager: time windows a spot owner offers for claiming.

Windows are validated on create/update, and no two windows of the same spot
that are open or claimed may overlap. Claim state never flows through here;
the claim service re-derives `is_active` after every claim transition.
"""
from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy import exists, select
from sqlalchemy.orm import Session, selectinload

from spotshare.audit import log_action
from spotshare.errors import ConflictError, NotFoundError, ValidationError
from spotshare.models import CLAIM_CONFIRMED, Availability, Claim, ParkingSpot, Profile, as_utc, utcnow

logger = logging.getLogger(__name__)

MSG_END_BEFORE_START = "End time must be after start time"
MSG_START_IN_PAST = "Start time cannot be in the past"
MSG_OVERLAP = "This time range overlaps with an existing availability"


def validate_time_range(
    start_time: dt.datetime,
    end_time: dt.datetime,
    *,
    allow_past_start: bool = False,
    now: dt.datetime | None = None,
) -> None:
    start = as_utc(start_time)
    end = as_utc(end_time)
    if start >= end:
        raise ValidationError(MSG_END_BEFORE_START)
    if not allow_past_start and start < as_utc(now or utcnow()):
        raise ValidationError(MSG_START_IN_PAST)


def find_overlapping(
    db: Session,
    *,
    spot_id: str,
    start_time: dt.datetime,
    end_time: dt.datetime,
    exclude_id: str | None = None,
) -> list[Availability]:
    """
    Windows of the spot that hold it during [start, end]: existing.start <= end
    and existing.end >= start, and either open for claims or already claimed.
    """
    claimed = exists().where((Claim.availability_id == Availability.id) & (Claim.status == CLAIM_CONFIRMED))
    stmt = select(Availability).where(
        (Availability.spot_id == spot_id)
        & (Availability.is_active.is_(True) | claimed)
        & (Availability.start_time <= as_utc(end_time))
        & (Availability.end_time >= as_utc(start_time))
    )
    if exclude_id:
        stmt = stmt.where(Availability.id != exclude_id)
    return list(db.execute(stmt).scalars().all())


def has_confirmed_claim(db: Session, availability_id: str, *, exclude_claim_id: str | None = None) -> bool:
    stmt = select(Claim.id).where((Claim.availability_id == availability_id) & (Claim.status == CLAIM_CONFIRMED))
    if exclude_claim_id:
        stmt = stmt.where(Claim.id != exclude_claim_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none() is not None


def _owned_availability(db: Session, me: Profile, availability_id: str, *, verb: str, allow_admin: bool = False) -> Availability:
    # Non-owners get 404.
    a = db.execute(
        select(Availability).options(selectinload(Availability.spot)).where(Availability.id == availability_id)
    ).scalar_one_or_none()
    if not a or a.spot is None:
        raise NotFoundError(f"Availability not found or you do not have permission to {verb} it")
    if a.spot.owner_id != me.id and not (allow_admin and me.is_admin):
        raise NotFoundError(f"Availability not found or you do not have permission to {verb} it")
    return a


def list_availabilities(
    db: Session,
    *,
    spot_id: str | None = None,
    is_active: bool | None = None,
    available: bool = False,
    now: dt.datetime | None = None,
) -> list[Availability]:
    stmt = select(Availability).order_by(Availability.start_time.asc(), Availability.id.asc())
    if spot_id:
        stmt = stmt.where(Availability.spot_id == spot_id)
    if is_active is not None:
        stmt = stmt.where(Availability.is_active.is_(bool(is_active)))
    if available:
        stmt = stmt.where(Availability.is_active.is_(True)).where(Availability.end_time > as_utc(now or utcnow()))
    return list(db.execute(stmt).scalars().all())


def create_availability(
    db: Session,
    me: Profile,
    *,
    spot_id: str,
    start_time: dt.datetime,
    end_time: dt.datetime,
    notes: str | None = None,
    is_active: bool = True,
) -> Availability:
    start = as_utc(start_time)
    end = as_utc(end_time)
    # A window published as open right away may start now-ish.
    validate_time_range(start, end, allow_past_start=bool(is_active))

    spot = db.get(ParkingSpot, spot_id)
    if not spot or spot.owner_id != me.id:
        raise NotFoundError("Parking spot not found or you do not have permission to create availability for it")
    if not spot.is_verified:
        raise ValidationError("This parking spot has not been verified by an admin yet")

    if is_active and find_overlapping(db, spot_id=spot.id, start_time=start, end_time=end):
        raise ConflictError(MSG_OVERLAP)

    a = Availability(
        spot_id=spot.id,
        start_time=start,
        end_time=end,
        notes=(notes or "").strip() or None,
        is_active=bool(is_active),
    )
    db.add(a)
    db.flush()
    log_action(db, actor_id=me.id, entity_type="availability", entity_id=a.id, action="create")
    logger.info("Availability %s on spot %s [%s, %s] created", a.id, spot.id, start.isoformat(), end.isoformat())
    return a


def update_availability(
    db: Session,
    me: Profile,
    availability_id: str,
    *,
    start_time: dt.datetime | None = None,
    end_time: dt.datetime | None = None,
    notes: str | None = None,
    is_active: bool | None = None,
) -> Availability:
    """Partial update by the spot owner. `is_active=False` withdraws an open offer."""
    a = _owned_availability(db, me, availability_id, verb="update")

    new_start = as_utc(start_time) if start_time is not None else a.start_time
    new_end = as_utc(end_time) if end_time is not None else a.end_time
    window_changed = start_time is not None or end_time is not None
    will_be_active = a.is_active if is_active is None else bool(is_active)
    if window_changed:
        validate_time_range(new_start, new_end, allow_past_start=will_be_active)

    reactivating = bool(is_active) and not a.is_active
    if (reactivating or window_changed) and has_confirmed_claim(db, a.id):
        # The claimer's booking is fixed once confirmed.
        raise ConflictError("This availability has already been claimed")
    if will_be_active and (window_changed or reactivating):
        if find_overlapping(db, spot_id=a.spot_id, start_time=new_start, end_time=new_end, exclude_id=a.id):
            raise ConflictError(MSG_OVERLAP)

    a.start_time = new_start
    a.end_time = new_end
    if notes is not None:
        a.notes = notes.strip() or None
    if is_active is not None:
        a.is_active = bool(is_active)
    a.updated_at = utcnow()
    db.add(a)
    log_action(
        db,
        actor_id=me.id,
        entity_type="availability",
        entity_id=a.id,
        action="deactivate" if is_active is False else "update",
    )
    return a


def deactivate_availability(db: Session, me: Profile, availability_id: str) -> Availability:
    return update_availability(db, me, availability_id, is_active=False)


def delete_availability(db: Session, me: Profile, availability_id: str) -> None:
    """Owner (or admin) only; every claim on the window is deleted with it."""
    a = _owned_availability(db, me, availability_id, verb="delete", allow_admin=True)
    db.delete(a)
    log_action(db, actor_id=me.id, entity_type="availability", entity_id=availability_id, action="delete")
    logger.info("Availability %s deleted by %s", availability_id, me.id)
