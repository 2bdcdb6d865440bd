from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spotshare.audit import log_action
from spotshare.config import admin_emails
from spotshare.errors import NotFoundError, PermissionDeniedError, ServerError, ValidationError
from spotshare.models import Profile, utcnow

logger = logging.getLogger(__name__)


def get_or_create_profile(db: Session, *, user_id: str, email: str, metadata: dict[str, Any] | None = None) -> Profile:
    """
    Load the caller's profile, creating it on first authenticated request.

    New residents start unapproved. Emails listed in ADMIN_EMAILS are
    provisioned as approved admins.
    """
    profile = db.get(Profile, user_id)
    if profile:
        return profile

    meta = metadata or {}
    email = (email or "").strip().lower()
    is_admin = bool(email) and email in admin_emails()
    profile = Profile(
        id=user_id,
        email=email,
        full_name=str(meta.get("full_name") or "").strip(),
        apartment_number=str(meta.get("apartment_number") or "").strip(),
        phone_number=(str(meta.get("phone_number") or "").strip() or None),
        is_approved=is_admin,
        is_admin=is_admin,
    )
    db.add(profile)
    try:
        db.flush()
    except IntegrityError as exc:
        # A parallel first request created it already.
        db.rollback()
        existing = db.get(Profile, user_id)
        if existing is None:
            raise ServerError("Could not create profile") from exc
        return existing
    logger.info("Provisioned profile %s (%s) admin=%s", profile.id, profile.email, profile.is_admin)
    return profile


def update_own_profile(
    db: Session,
    profile: Profile,
    *,
    full_name: str | None = None,
    apartment_number: str | None = None,
    phone_number: str | None = None,
) -> Profile:
    # Approval and admin flags only change through admin_set_flags.
    if full_name is not None:
        name = full_name.strip()
        if not name:
            raise ValidationError("Full name is required")
        profile.full_name = name
    if apartment_number is not None:
        profile.apartment_number = apartment_number.strip()
    if phone_number is not None:
        profile.phone_number = phone_number.strip() or None
    profile.updated_at = utcnow()
    db.add(profile)
    return profile


def require_approved(profile: Profile) -> None:
    if not profile.is_approved and not profile.is_admin:
        raise PermissionDeniedError("Your account is pending admin approval")


def require_admin(profile: Profile) -> None:
    if not profile.is_admin:
        raise PermissionDeniedError("Admin only")


# -----------------------
# Admin workflow
# -----------------------
def list_profiles(db: Session, *, pending: bool | None = None) -> list[Profile]:
    stmt = select(Profile).order_by(Profile.created_at.desc())
    if pending is True:
        stmt = stmt.where(Profile.is_approved.is_(False))
    elif pending is False:
        stmt = stmt.where(Profile.is_approved.is_(True))
    return list(db.execute(stmt).scalars().all())


_ADMIN_ACTIONS = {
    "approve": {"is_approved": True},
    "reject": {"is_approved": False},
    "promote": {"is_admin": True, "is_approved": True},
    "demote": {"is_admin": False},
}


def admin_set_flags(db: Session, admin: Profile, *, profile_id: str, action: str, reason: str = "") -> Profile:
    require_admin(admin)
    changes = _ADMIN_ACTIONS.get(action)
    if changes is None:
        raise ValidationError(f"Unknown action: {action}")
    target = db.get(Profile, profile_id)
    if not target:
        raise NotFoundError("Profile not found")
    if action == "demote" and target.id == admin.id:
        raise ValidationError("You cannot demote yourself")
    for field, value in changes.items():
        setattr(target, field, value)
    target.updated_at = utcnow()
    db.add(target)
    log_action(db, actor_id=admin.id, entity_type="profile", entity_id=target.id, action=action, reason=reason)
    logger.info("Admin %s: %s profile %s", admin.id, action, target.id)
    return target
