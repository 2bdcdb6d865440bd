from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


CLAIM_PENDING = "pending"
CLAIM_CONFIRMED = "confirmed"
CLAIM_EXPIRED = "expired"
CLAIM_CANCELLED = "cancelled"
CLAIM_RELEASED = "released"

CLAIM_STATUSES = (CLAIM_PENDING, CLAIM_CONFIRMED, CLAIM_EXPIRED, CLAIM_CANCELLED, CLAIM_RELEASED)
OPEN_CLAIM_STATUSES = (CLAIM_PENDING, CLAIM_CONFIRMED)
TERMINAL_CLAIM_STATUSES = (CLAIM_EXPIRED, CLAIM_CANCELLED, CLAIM_RELEASED)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: dt.datetime) -> dt.datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as UTC.

    SQLite drops tzinfo on the way in and out; normalizing on bind keeps range
    comparisons in SQL correct, and results always come back aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else as_utc(value)

    def process_result_value(self, value, dialect):
        return None if value is None else as_utc(value)


class Base(DeclarativeBase):
    pass


class Profile(Base):
    __tablename__ = "profiles"

    # Same value as the identity provider's `sub` claim.
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), index=True)
    full_name: Mapped[str] = mapped_column(String(255), default="")
    apartment_number: Mapped[str] = mapped_column(String(40), default="")
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    spots = relationship("ParkingSpot", back_populates="owner")


class ParkingSpot(Base):
    __tablename__ = "parking_spots"
    __table_args__ = (UniqueConstraint("owner_id", "spot_number", name="uq_parking_spots_owner_spot_number"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), index=True)
    spot_number: Mapped[str] = mapped_column(String(10))
    location: Mapped[str] = mapped_column(String(50), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Only verified spots may publish availability.
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    owner = relationship("Profile", back_populates="spots")
    availabilities = relationship(
        "Availability",
        back_populates="spot",
        cascade="all, delete-orphan",
        order_by="Availability.start_time",
    )


class Availability(Base):
    __tablename__ = "availabilities"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_availabilities_window_order"),
        Index("ix_availabilities_spot_active_window", "spot_id", "is_active", "start_time", "end_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    spot_id: Mapped[str] = mapped_column(ForeignKey("parking_spots.id", ondelete="CASCADE"), index=True)
    start_time: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    end_time: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Open for claims. Re-derived from confirmed claims on every transition.
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    spot = relationship("ParkingSpot", back_populates="availabilities")
    claims = relationship("Claim", back_populates="availability", cascade="all, delete-orphan")


class Claim(Base):
    __tablename__ = "claims"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'expired', 'cancelled', 'released')",
            name="ck_claims_status",
        ),
        # At most one confirmed claim per availability. This index, not the
        # pre-check in the claim service, decides concurrent submits.
        Index(
            "uq_claims_one_confirmed_per_availability",
            "availability_id",
            unique=True,
            sqlite_where=text("status = 'confirmed'"),
            postgresql_where=text("status = 'confirmed'"),
        ),
        # At most one open claim per (availability, claimer).
        Index(
            "uq_claims_one_open_per_claimer",
            "availability_id",
            "claimer_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    availability_id: Mapped[str] = mapped_column(ForeignKey("availabilities.id", ondelete="CASCADE"), index=True)
    claimer_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), index=True)
    status: Mapped[str] = mapped_column(String(20), default=CLAIM_PENDING, index=True)  # see CLAIM_STATUSES
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    availability = relationship("Availability", back_populates="claims")
    claimer = relationship("Profile")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    actor_id: Mapped[str] = mapped_column(String(36), index=True)
    entity_type: Mapped[str] = mapped_column(String(40), index=True)  # profile|parking_spot|availability|claim
    entity_id: Mapped[str] = mapped_column(String(36), index=True)
    action: Mapped[str] = mapped_column(String(40), index=True)
    reason: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
