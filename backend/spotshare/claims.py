"""
Claim lifecycle.

    (new) -> confirmed                      auto-confirm mode
    (new) -> pending -> confirmed           two-step mode, owner confirms
    pending|confirmed -> cancelled|expired
    confirmed -> released                   claimer, while the window is open

`expired`, `cancelled` and `released` are terminal.

Two rules hold across every operation here:

* at most one claim per availability is `confirmed`. The partial unique
  index `uq_claims_one_confirmed_per_availability` is what actually
  enforces it; the SELECT pre-checks only produce a friendlier message, and
  an IntegrityError from a racing insert is reported as a conflict.
* `Availability.is_active` is re-derived from the remaining confirmed claims
  whenever a claim leaves `confirmed` (see `reactivation_check`), inside the
  same transaction as the claim change.
"""
from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from spotshare.audit import log_action
from spotshare.availability import has_confirmed_claim
from spotshare.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from spotshare.models import (
    CLAIM_CANCELLED,
    CLAIM_CONFIRMED,
    CLAIM_EXPIRED,
    CLAIM_PENDING,
    CLAIM_RELEASED,
    CLAIM_STATUSES,
    OPEN_CLAIM_STATUSES,
    TERMINAL_CLAIM_STATUSES,
    Availability,
    Claim,
    ParkingSpot,
    Profile,
    utcnow,
)
from spotshare.profiles import require_approved
from spotshare.sms import notify_spot_claimed

logger = logging.getLogger(__name__)

MSG_ALREADY_CLAIMED = "This availability has already been claimed"
MSG_ANOTHER_CONFIRMED = "Another claim has already been confirmed for this availability"
MSG_WINDOW_EXPIRED = "This availability has already expired"

ROLE_CLAIMER = "claimer"
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"

# (from, to) -> roles allowed to make the move.
TRANSITIONS: dict[tuple[str, str], frozenset[str]] = {
    (CLAIM_PENDING, CLAIM_CONFIRMED): frozenset({ROLE_OWNER}),
    (CLAIM_PENDING, CLAIM_CANCELLED): frozenset({ROLE_CLAIMER, ROLE_OWNER, ROLE_ADMIN}),
    (CLAIM_PENDING, CLAIM_EXPIRED): frozenset({ROLE_OWNER, ROLE_ADMIN}),
    (CLAIM_CONFIRMED, CLAIM_RELEASED): frozenset({ROLE_CLAIMER}),
    (CLAIM_CONFIRMED, CLAIM_CANCELLED): frozenset({ROLE_CLAIMER, ROLE_OWNER, ROLE_ADMIN}),
    (CLAIM_CONFIRMED, CLAIM_EXPIRED): frozenset({ROLE_OWNER, ROLE_ADMIN}),
}


def _load_claim(db: Session, claim_id: str) -> Claim:
    claim = db.execute(
        select(Claim)
        .options(selectinload(Claim.availability).selectinload(Availability.spot))
        .where(Claim.id == claim_id)
    ).scalar_one_or_none()
    if not claim or claim.availability is None or claim.availability.spot is None:
        raise NotFoundError("Claim not found")
    return claim


def _roles(me: Profile, claim: Claim) -> set[str]:
    roles: set[str] = set()
    if claim.claimer_id == me.id:
        roles.add(ROLE_CLAIMER)
    if claim.availability.spot.owner_id == me.id:
        roles.add(ROLE_OWNER)
    if me.is_admin:
        roles.add(ROLE_ADMIN)
    return roles


def _flush_or_conflict(db: Session, message: str) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Claim uniqueness violated (%s): %s", message, exc.orig)
        raise ConflictError(message)


def confirmed_claim_count(db: Session, availability_id: str) -> int:
    return int(
        db.execute(
            select(func.count(Claim.id)).where(
                (Claim.availability_id == availability_id) & (Claim.status == CLAIM_CONFIRMED)
            )
        ).scalar_one()
    )


def reactivation_check(db: Session, availability: Availability) -> bool:
    """
    Reopen the window iff no confirmed claim remains on it.

    Pending changes are flushed first so the count sees them. Returns the new
    `is_active` value.
    """
    db.flush()
    remaining = confirmed_claim_count(db, availability.id)
    active = remaining == 0
    if availability.is_active != active:
        availability.is_active = active
        availability.updated_at = utcnow()
        db.add(availability)
        logger.info("Availability %s is_active=%s (%d confirmed claims remain)", availability.id, active, remaining)
    return active


def _mark_claimed(db: Session, availability: Availability) -> None:
    availability.is_active = False
    availability.updated_at = utcnow()
    db.add(availability)


# -----------------------
# Queries
# -----------------------
def list_claims(
    db: Session,
    me: Profile,
    *,
    claimer_id: str | None = None,
    availability_id: str | None = None,
    status: str | None = None,
) -> list[Claim]:
    """Newest first. Non-admins only see their own claims and claims on their spots."""
    stmt = (
        select(Claim)
        .join(Availability, Claim.availability_id == Availability.id)
        .join(ParkingSpot, Availability.spot_id == ParkingSpot.id)
        .order_by(Claim.created_at.desc(), Claim.id.desc())
    )
    if not me.is_admin:
        stmt = stmt.where(or_(Claim.claimer_id == me.id, ParkingSpot.owner_id == me.id))
    if claimer_id:
        stmt = stmt.where(Claim.claimer_id == claimer_id)
    if availability_id:
        stmt = stmt.where(Claim.availability_id == availability_id)
    if status:
        if status not in CLAIM_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        stmt = stmt.where(Claim.status == status)
    return list(db.execute(stmt).scalars().all())


# -----------------------
# Submit
# -----------------------
def submit_claim(
    db: Session,
    me: Profile,
    *,
    availability_id: str,
    notes: str | None = None,
    auto_confirm: bool = True,
    now: dt.datetime | None = None,
) -> Claim:
    require_approved(me)
    now = now or utcnow()

    availability = db.execute(
        select(Availability)
        .options(selectinload(Availability.spot).selectinload(ParkingSpot.owner))
        .where(Availability.id == availability_id)
    ).scalar_one_or_none()
    if not availability or availability.spot is None:
        raise NotFoundError("Availability not found or no longer active")
    if availability.end_time <= now:
        raise ValidationError(MSG_WINDOW_EXPIRED)
    if availability.spot.owner_id == me.id:
        raise ValidationError("You cannot claim your own parking spot")

    mine = db.execute(
        select(Claim.id).where(
            (Claim.availability_id == availability.id)
            & (Claim.claimer_id == me.id)
            & (Claim.status.in_(OPEN_CLAIM_STATUSES))
        ).limit(1)
    ).scalar_one_or_none()
    if mine:
        raise ConflictError("You already have a claim for this availability")
    if has_confirmed_claim(db, availability.id):
        raise ConflictError(MSG_ALREADY_CLAIMED)
    if not availability.is_active:
        raise NotFoundError("Availability not found or no longer active")

    claim = Claim(
        availability_id=availability.id,
        claimer_id=me.id,
        status=CLAIM_CONFIRMED if auto_confirm else CLAIM_PENDING,
        notes=(notes or "").strip() or None,
    )
    db.add(claim)
    if auto_confirm:
        _mark_claimed(db, availability)
    _flush_or_conflict(db, MSG_ALREADY_CLAIMED)
    log_action(db, actor_id=me.id, entity_type="claim", entity_id=claim.id, action="submit")
    logger.info("Claim %s on availability %s by %s -> %s", claim.id, availability.id, me.id, claim.status)

    notify_spot_claimed(owner=availability.spot.owner, claimer=me, availability=availability, claim=claim)
    return claim


# -----------------------
# Transitions
# -----------------------
def transition_claim(
    db: Session,
    me: Profile,
    claim_id: str,
    to_status: str,
    *,
    reason: str = "",
    now: dt.datetime | None = None,
) -> Claim:
    if to_status not in CLAIM_STATUSES:
        raise ValidationError(f"Invalid status: {to_status}")
    claim = _load_claim(db, claim_id)
    roles = _roles(me, claim)
    if not roles:
        raise PermissionDeniedError("You do not have permission to update this claim")

    from_status = claim.status
    allowed = TRANSITIONS.get((from_status, to_status))
    if allowed is None:
        if from_status in TERMINAL_CLAIM_STATUSES:
            raise ValidationError(f"Claim is already {from_status}")
        if to_status == CLAIM_RELEASED:
            raise ValidationError("Only confirmed claims can be released")
        raise ValidationError(f"Cannot change claim from {from_status} to {to_status}")
    if not roles & allowed:
        if to_status == CLAIM_CONFIRMED:
            raise PermissionDeniedError("Only the spot owner can confirm claims")
        if to_status == CLAIM_RELEASED:
            raise PermissionDeniedError("You can only release your own claims")
        raise PermissionDeniedError(f"You do not have permission to mark this claim {to_status}")

    availability = claim.availability
    now = now or utcnow()

    if to_status == CLAIM_CONFIRMED:
        if availability.end_time <= now:
            raise ValidationError(MSG_WINDOW_EXPIRED)
        # Re-validate at confirm time, not just at submit time.
        if has_confirmed_claim(db, availability.id, exclude_claim_id=claim.id):
            raise ConflictError(MSG_ANOTHER_CONFIRMED)
        claim.status = CLAIM_CONFIRMED
        claim.updated_at = utcnow()
        db.add(claim)
        _mark_claimed(db, availability)
        _flush_or_conflict(db, MSG_ANOTHER_CONFIRMED)
    else:
        if to_status == CLAIM_RELEASED and availability.end_time <= now:
            raise ValidationError("Cannot release claim - availability window has expired")
        claim.status = to_status
        claim.updated_at = utcnow()
        db.add(claim)
        if from_status == CLAIM_CONFIRMED:
            reactivation_check(db, availability)

    log_action(db, actor_id=me.id, entity_type="claim", entity_id=claim.id, action=to_status, reason=reason)
    logger.info("Claim %s %s -> %s by %s", claim.id, from_status, to_status, me.id)
    return claim


def confirm_claim(db: Session, me: Profile, claim_id: str) -> Claim:
    return transition_claim(db, me, claim_id, CLAIM_CONFIRMED)


def release_claim(db: Session, me: Profile, claim_id: str, *, now: dt.datetime | None = None) -> Claim:
    return transition_claim(db, me, claim_id, CLAIM_RELEASED, now=now)


def cancel_claim(db: Session, me: Profile, claim_id: str, *, reason: str = "") -> Claim:
    return transition_claim(db, me, claim_id, CLAIM_CANCELLED, reason=reason)


def expire_claim(db: Session, me: Profile, claim_id: str, *, reason: str = "") -> Claim:
    return transition_claim(db, me, claim_id, CLAIM_EXPIRED, reason=reason)


def update_claim(
    db: Session,
    me: Profile,
    claim_id: str,
    *,
    status: str | None = None,
    notes: str | None = None,
) -> Claim:
    claim = _load_claim(db, claim_id)
    if not _roles(me, claim):
        raise PermissionDeniedError("You do not have permission to update this claim")
    if status is not None and status != claim.status:
        claim = transition_claim(db, me, claim_id, status)
    elif status is not None and status in TERMINAL_CLAIM_STATUSES:
        raise ValidationError(f"Claim is already {status}")
    if notes is not None:
        claim.notes = notes.strip() or None
        claim.updated_at = utcnow()
        db.add(claim)
    return claim


def delete_claim(db: Session, me: Profile, claim_id: str) -> None:
    """Claimer, spot owner or admin. Reopens the window if a confirmed claim goes away."""
    claim = _load_claim(db, claim_id)
    if not _roles(me, claim):
        raise PermissionDeniedError("You do not have permission to delete this claim")
    availability = claim.availability
    was_confirmed = claim.status == CLAIM_CONFIRMED
    db.delete(claim)
    if was_confirmed:
        reactivation_check(db, availability)
    log_action(db, actor_id=me.id, entity_type="claim", entity_id=claim_id, action="delete")
    logger.info("Claim %s deleted by %s (was_confirmed=%s)", claim_id, me.id, was_confirmed)
