from __future__ import annotations

import logging
import os

from spotshare.models import Availability, Claim, Profile

logger = logging.getLogger(__name__)


def sms_backend() -> str:
    """
    SMS delivery backend.
    - "console" (default): log the SMS payload
    - "disabled": do nothing
    """
    return (os.environ.get("SMS_BACKEND") or "console").strip().lower()


def send_sms(*, to_phone: str, text: str) -> str:
    """
    Sends an SMS message (best-effort).

    No paid provider ships with the project; wire a real one here and keep
    the same interface.
    """
    to_phone = (to_phone or "").strip()
    text = (text or "").strip()
    if not to_phone or not text:
        return "skipped"

    backend = sms_backend()
    if backend in {"disabled", "off", "none"}:
        return "disabled"

    logger.warning("SMS_BACKEND=%s: to=%s\n%s", backend, to_phone, text)
    return "console"


def notify_spot_claimed(*, owner: Profile, claimer: Profile, availability: Availability, claim: Claim) -> str:
    """Tell the spot owner that one of their windows was claimed. Never raises."""
    try:
        who = (claimer.full_name or claimer.email or "A resident").strip()
        apt = f" (apt {claimer.apartment_number})" if (claimer.apartment_number or "").strip() else ""
        spot_number = availability.spot.spot_number if availability.spot is not None else "?"
        text = (
            f"{who}{apt} {claim.status} your spot {spot_number} for "
            f"{availability.start_time:%Y-%m-%d %H:%M}-{availability.end_time:%H:%M} UTC."
        )
        return send_sms(to_phone=owner.phone_number or "", text=text)
    except Exception:
        logger.exception("Failed to notify owner %s about claim %s", owner.id, claim.id)
        return "failed"
