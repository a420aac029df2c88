from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str

    # CORS
    cors_origins: str = "http://localhost:3000"

    # All stored timestamps are naive wall-clock times in this zone
    timezone: str = "America/Sao_Paulo"

    # Slot generation
    slot_granularity_minutes: int = 30

    # Reminder sweep
    reminder_sweep_enabled: bool = True
    reminder_sweep_interval_seconds: int = 5 * 60
    reminder_sweep_timeout_seconds: int = 4 * 60
    reminder_lookahead_hours: int = 25
    # Also send the shorter tiers to appointments booked far in advance
    reminder_tier_cascade: bool = False

    # Env
    env: str = "development"

    # WhatsApp gateway (W-API compatible). Leave instance/token empty to disable sending.
    whatsapp_api_url: str = "https://api.w-api.app/v1/message/send-text"
    whatsapp_instance_id: str = ""
    whatsapp_token: str = ""
    whatsapp_country_code: str = "55"
    whatsapp_timeout_seconds: float = 10.0

    # Branding used in outgoing messages
    shop_name: str = "Barbershop"
    booking_portal_url: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def whatsapp_enabled(self) -> bool:
        return bool(self.whatsapp_api_url and self.whatsapp_instance_id and self.whatsapp_token)


settings = Settings()
