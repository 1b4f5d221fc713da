from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env at the project root: app/core/config.py -> app/core -> app -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

OPENAI_KEY_PREFIX = "sk-"


class Settings(BaseSettings):
    secret_key: str = "change-me-in-production"
    database_url: str = "sqlite:///./geosched.db"
    cors_origins: str = "*"
    rate_limit_per_minute: int = 60
    rate_limit_register_per_minute: int = 3
    # Shared secret for the platform cron (Authorization: Bearer <cron_secret>)
    cron_secret: str = ""
    # Operator endpoints under /admin (X-Admin-Secret header)
    admin_secret: str = ""
    # Periodic trigger inside the web process; the standalone worker ignores this flag
    scheduler_enabled: bool = False
    scheduler_interval_seconds: int = 60
    scheduler_max_workers: int = 1
    stuck_run_timeout_minutes: int = 10
    # Slack incoming webhook; empty disables chat notifications
    slack_webhook_url: str = ""
    slack_channel: str = "#geo-scheduled-runs"
    slack_username: str = "GEO Scheduler"
    notify_owner_email: bool = True
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@geosched.local"
    smtp_from_name: str = "GEO Scheduler"
    smtp_use_tls: bool = True
    openai_api_key: str = ""
    # Comma-separated; falls through to the next key on auth/rate-limit errors
    openai_api_keys: str = ""
    openai_timeout_seconds: float = 60.0
    # "<engine_id>:<model>" pairs, e.g. "1:gpt-4o,6:gpt-4o-mini"
    engine_models: str = "1:gpt-4o,6:gpt-4o-mini,10:o1-preview,11:o1-mini"

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("openai_api_key", "openai_api_keys", "cron_secret", "admin_secret", mode="before")
    @classmethod
    def strip_secret(cls, v: str | None) -> str:
        """Whitespace from copy/paste breaks bearer comparisons."""
        return (v or "").strip()

    @field_validator("scheduler_max_workers", "stuck_run_timeout_minutes", "scheduler_interval_seconds")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


settings = Settings()


def get_openai_keys() -> list[str]:
    """
    Usable OpenAI keys (prefixed with sk-, no whitespace).
    OPENAI_API_KEYS wins when set; otherwise OPENAI_API_KEY as a single entry.
    """
    keys_raw = (settings.openai_api_keys or "").strip()
    if keys_raw:
        keys = [k.strip() for k in keys_raw.split(",") if k.strip() and k.strip().startswith(OPENAI_KEY_PREFIX)]
        if keys:
            return keys
    single = (settings.openai_api_key or "").strip()
    if single and single.startswith(OPENAI_KEY_PREFIX):
        return [single]
    return []


def is_openai_configured() -> bool:
    return len(get_openai_keys()) > 0


def get_engine_models() -> dict[int, str]:
    """Parse ENGINE_MODELS into {engine_id: model}; malformed pairs are skipped."""
    models: dict[int, str] = {}
    for pair in (settings.engine_models or "").split(","):
        engine_id, sep, model = pair.partition(":")
        if not sep or not engine_id.strip().isdigit() or not model.strip():
            continue
        models[int(engine_id.strip())] = model.strip()
    return models
