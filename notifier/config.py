# ----------------------------------------------------------------
# Import configuration variables to be used throughout the project
# ----------------------------------------------------------------
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env (allow container env to override file values)
load_dotenv(override=True)


class ConfigError(RuntimeError):
    """Raised when required settings or credentials are missing at startup."""


def _rstrip_slash(s: str) -> str:
    return (s or "").rstrip("/")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    # ── Supabase (queue store) ───────────────────────────────────────────────
    SUPABASE_URL: str = _rstrip_slash(os.getenv("SUPABASE_URL", ""))
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    QUEUE_TABLE: str = os.getenv("QUEUE_TABLE", "fcm_notification_queue")

    # "supabase" (PostgREST over HTTP) or "sql" (SQLAlchemy, local/dev)
    QUEUE_BACKEND: str = (os.getenv("QUEUE_BACKEND", "supabase") or "supabase").strip().lower()
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/notifications.db")

    # ── Firebase Cloud Messaging ─────────────────────────────────────────────
    FIREBASE_CREDENTIALS: str = os.getenv("FIREBASE_CREDENTIALS", "./firebase-service-account.json")
    CHAT_CHANNEL_ID: str = os.getenv("CHAT_CHANNEL_ID", "travel_buddy_chat")
    DEFAULT_CHANNEL_ID: str = os.getenv("DEFAULT_CHANNEL_ID", "travel_buddy_rides")

    # ── Worker ───────────────────────────────────────────────────────────────
    BATCH_SIZE: int = 10
    POLL_INTERVAL_SECONDS: float = 2.0
    HTTP_TIMEOUT_SECONDS: float = _get_float("HTTP_TIMEOUT_SECONDS", 10.0)

    # ── HTTP server ──────────────────────────────────────────────────────────
    SERVICE_NAME: str = "Travel Buddy FCM Notifications"
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = _get_int("PORT", 3000)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Comma-separated list in .env, e.g. "https://example.com, https://foo.bar"
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    def missing_required(self) -> List[str]:
        """
        Names of settings that must be present before any work starts.
        The Supabase pair is only required when the Supabase backend is active.
        """
        missing: List[str] = []
        if self.QUEUE_BACKEND == "supabase":
            if not self.SUPABASE_SERVICE_ROLE_KEY:
                missing.append("SUPABASE_SERVICE_ROLE_KEY")
            if not self.SUPABASE_URL:
                missing.append("SUPABASE_URL")
        elif self.QUEUE_BACKEND == "sql":
            if not self.DATABASE_URL:
                missing.append("DATABASE_URL")
        else:
            missing.append("QUEUE_BACKEND")
        if not self.FIREBASE_CREDENTIALS or not Path(self.FIREBASE_CREDENTIALS).is_file():
            missing.append("FIREBASE_CREDENTIALS")
        return missing

    def validate(self) -> None:
        missing = self.missing_required()
        if missing:
            raise ConfigError("missing required configuration: " + ", ".join(missing))


settings = Settings()
