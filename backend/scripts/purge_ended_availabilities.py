from __future__ import annotations

import argparse
import datetime as dt
import os
import sys

from sqlalchemy import create_engine, delete, select
from sqlalchemy.engine import Engine

# Ensure `spotshare` imports work when running from backend/.
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from spotshare.models import Availability, Claim  # noqa: E402


def purge_ended(engine: Engine, *, cutoff: dt.datetime) -> tuple[int, int]:
    """Delete windows that ended before `cutoff`, claims first. Returns (availabilities, claims)."""
    ended = select(Availability.id).where(Availability.end_time < cutoff)
    with engine.begin() as conn:
        claims = conn.execute(delete(Claim).where(Claim.availability_id.in_(ended)))
        windows = conn.execute(delete(Availability).where(Availability.end_time < cutoff))
    return windows.rowcount, claims.rowcount


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete availability windows (and their claims) that ended long ago.")
    parser.add_argument("--days", type=int, default=30, help="Keep windows that ended within this many days (default 30)")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise SystemExit("DATABASE_URL is required")
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    cutoff = dt.datetime.now(dt.timezone.utc) - dt.timedelta(days=max(0, args.days))
    windows, claims = purge_ended(create_engine(db_url, future=True), cutoff=cutoff)
    print(f"Purged {windows} availabilities and {claims} claims that ended before {cutoff.isoformat()}.")


if __name__ == "__main__":
    main()
