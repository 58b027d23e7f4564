from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote_plus


def _get_first_set(*env_names: str) -> str:
    for env_name in env_names:
        value = os.getenv(env_name, "").strip()
        if value:
            return value
    return ""


def _normalize_database_url(raw_url: str) -> str:
    if not raw_url:
        return raw_url
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg2://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg2://", 1)
    if raw_url.startswith("postgresql+psycopg://"):
        return raw_url.replace("postgresql+psycopg://", "postgresql+psycopg2://", 1)
    return raw_url


def _with_sslmode_if_needed(db_url: str) -> str:
    if not db_url or "sslmode=" in db_url or not db_url.startswith("postgresql"):
        return db_url
    lowered = db_url.lower()
    if "localhost" in lowered or "127.0.0.1" in lowered:
        return db_url
    sep = "&" if "?" in db_url else "?"
    return f"{db_url}{sep}sslmode=require"


def _build_database_url() -> str:
    explicit = _get_first_set("DATABASE_URL", "SUPABASE_DB_URL")
    if explicit:
        return _with_sslmode_if_needed(_normalize_database_url(explicit))

    host = _get_first_set("PGHOST")
    port = _get_first_set("PGPORT") or "5432"
    user = _get_first_set("PGUSER")
    password = _get_first_set("PGPASSWORD")
    database = _get_first_set("PGDATABASE")
    if host and user and database:
        pwd = quote_plus(password)
        url = f"postgresql+psycopg2://{user}:{pwd}@{host}:{port}/{database}"
        return _with_sslmode_if_needed(url)

    # Local dev fallback when DATABASE_URL is not set.
    sqlite_file = Path(os.getenv("SQLITE_DB_PATH", "./push_relay.db")).as_posix()
    if sqlite_file.startswith("/"):
        return f"sqlite:///{sqlite_file}"
    return f"sqlite:///./{sqlite_file.lstrip('./')}"


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "push_notification_relay")
    app_debug: bool = os.getenv("APP_DEBUG", "false").lower() == "true"
    app_host: str = os.getenv("APP_HOST", "0.0.0.0")
    app_port: int = int(os.getenv("APP_PORT", "8000"))

    database_url: str = _build_database_url()
    db_schema: str = _get_first_set("DB_SCHEMA") or "public"

    supabase_url: str = _get_first_set("SUPABASE_URL")
    supabase_anon_key: str = _get_first_set("SUPABASE_ANON_KEY")

    # Service account; leaving any of these blank switches delivery to simulation.
    firebase_project_id: str = _get_first_set("FIREBASE_PROJECT_ID")
    firebase_client_email: str = _get_first_set("FIREBASE_CLIENT_EMAIL")
    firebase_private_key: str = _get_first_set("FIREBASE_PRIVATE_KEY")

    fcm_batch_size: int = int(os.getenv("FCM_BATCH_SIZE", "10"))
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
    simulation_delay_seconds: float = float(os.getenv("SIMULATION_DELAY_SECONDS", "1"))
    oauth_token_url: str = os.getenv("OAUTH_TOKEN_URL", "https://oauth2.googleapis.com/token")
    fcm_base_url: str = os.getenv("FCM_BASE_URL", "https://fcm.googleapis.com")


settings = Settings()


def get_settings() -> Settings:
    return settings
