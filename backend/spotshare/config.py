from __future__ import annotations

import os


def _load_dotenv_if_present() -> None:
    """
    Load environment variables from a local `.env` file (dev convenience).

    Production deployments should set real environment variables instead.
    """
    try:
        from dotenv import load_dotenv

        # Do not override existing environment variables.
        load_dotenv(override=False)
    except Exception:
        return


_load_dotenv_if_present()


def database_url() -> str:
    url = os.environ.get("DATABASE_URL") or "sqlite:///./local.db"
    # Some managed providers still supply `postgres://...` which SQLAlchemy treats as invalid.
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def jwt_secret() -> str:
    return os.environ.get("JWT_SECRET") or "dev-secret-change-me"


def jwt_audience() -> str:
    """
    Expected `aud` claim of identity-provider tokens (e.g. "authenticated").
    Empty disables the audience check.
    """
    return (os.environ.get("JWT_AUDIENCE") or "").strip()


def is_local_dev() -> bool:
    return not (os.environ.get("DATABASE_URL") or "").strip()


def app_env() -> str:
    """
    Application environment marker:
    - local (default when running with sqlite fallback)
    - staging
    - prod
    """
    raw = (os.environ.get("APP_ENV") or "").strip().lower()
    if raw:
        return raw
    return "local" if is_local_dev() else "prod"


def log_level() -> str:
    return (os.environ.get("LOG_LEVEL") or "INFO").strip().upper()


def allowed_hosts() -> list[str]:
    """
    Comma-separated list for TrustedHost middleware.
    Example: ALLOWED_HOSTS=api.example.com,example.com
    """
    raw = (os.environ.get("ALLOWED_HOSTS") or "").strip()
    if not raw:
        return ["*"]
    hosts = [h.strip() for h in raw.split(",") if h.strip()]
    return hosts or ["*"]


def cors_origins() -> list[str]:
    raw = (os.environ.get("CORS_ORIGINS") or "").strip()
    if raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]


def enforce_secure_secrets() -> None:
    """
    Fail-fast in production if dangerous defaults are still in use.
    """
    if app_env() in {"prod", "production"}:
        if jwt_secret() == "dev-secret-change-me":
            raise RuntimeError("JWT_SECRET must be set in production (default dev secret detected)")


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def claim_auto_confirm() -> bool:
    """
    True: a submitted claim is confirmed immediately (first past the post).
    False: claims start as `pending` and the spot owner confirms one.
    """
    return _env_bool("CLAIM_AUTO_CONFIRM", True)


def claim_rate_limit() -> int:
    raw = (os.environ.get("CLAIM_RATE_LIMIT") or "").strip()
    try:
        v = int(raw or "20")
    except Exception:
        v = 20
    return max(1, v)


def claim_rate_window_seconds() -> int:
    raw = (os.environ.get("CLAIM_RATE_WINDOW_SECONDS") or "").strip()
    try:
        v = int(raw or "60")
    except Exception:
        v = 60
    return max(1, v)


def admin_emails() -> set[str]:
    """
    Emails that are provisioned as approved admins on first sign-in.
    Example: ADMIN_EMAILS=board@example.com,manager@example.com
    """
    raw = (os.environ.get("ADMIN_EMAILS") or "").strip()
    return {e.strip().lower() for e in raw.split(",") if e.strip()}
