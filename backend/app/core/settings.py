import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    def __init__(self):
        self.app_name = "Studio Scheduler"
        self.api_version = "1.0.0"
        self.environment = os.getenv("STUDIO_ENVIRONMENT", "development")
        self.secret_key = os.getenv("STUDIO_SECRET_KEY", "CHANGE_ME")
        self.SECRET_KEY = self.secret_key
        self.access_token_expire_minutes = int(os.getenv("STUDIO_TOKEN_EXPIRE_MINUTES", "30"))
        self.ACCESS_TOKEN_EXPIRE_MINUTES = self.access_token_expire_minutes
        self.database_url = os.getenv("STUDIO_DATABASE_URL", "sqlite:///./studio.db")
        self.log_level = os.getenv("STUDIO_LOG_LEVEL", "INFO")

        # All scheduling arithmetic happens in the studio's local zone
        self.studio_timezone = os.getenv("STUDIO_TIMEZONE", "America/Los_Angeles")

        # Background supervisor
        self.background_sync_enabled = _env_bool("STUDIO_BACKGROUND_SYNC", True)
        self.incremental_sync_minutes = int(os.getenv("STUDIO_INCREMENTAL_SYNC_MINUTES", "15"))
        self.full_sync_hour = int(os.getenv("STUDIO_FULL_SYNC_HOUR", "2"))
        self.maintenance_hour = int(os.getenv("STUDIO_MAINTENANCE_HOUR", "11"))
        self.full_sync_delay_seconds = float(os.getenv("STUDIO_FULL_SYNC_DELAY_SECONDS", "0.5"))
        self.materialize_days_ahead = int(os.getenv("STUDIO_MATERIALIZE_DAYS_AHEAD", "28"))

        # External calendar; the integration stays NOT_CONFIGURED without a refresh token or access token
        self.google_calendar_id = os.getenv("GOOGLE_CALENDAR_ID", "primary")
        self.google_client_id = os.getenv("GOOGLE_CLIENT_ID")
        self.google_client_secret = os.getenv("GOOGLE_CLIENT_SECRET")
        self.google_refresh_token = os.getenv("GOOGLE_REFRESH_TOKEN")
        self.google_access_token = os.getenv("GOOGLE_ACCESS_TOKEN")
        self.google_api_base_url = os.getenv("GOOGLE_CALENDAR_API_URL", "https://www.googleapis.com/calendar/v3")
        self.google_token_url = os.getenv("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token")
        self.calendar_timeout_seconds = float(os.getenv("STUDIO_CALENDAR_TIMEOUT_SECONDS", "10"))


_settings_instance = None


def get_settings():
    """Return a singleton Settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
