"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings

DEFAULT_OPEN_METEO_BASE_URL = "https://api.open-meteo.com/v1"


class Settings(BaseSettings):
    # Upstream providers
    openweather_api_key: str = ""  # Empty = geocoding checks SKIP, map routes 503
    open_meteo_base_url: str = ""  # Empty = DEFAULT_OPEN_METEO_BASE_URL
    open_meteo_geocoding_url: str = "https://geocoding-api.open-meteo.com/v1"
    openweather_geo_base_url: str = "https://api.openweathermap.org/geo/1.0"
    upstream_timeout_seconds: float = 5.0  # Per-call budget, not global

    # Deployment
    frontend_url: str = ""
    port: int = 5000
    environment: str = ""

    # CORS
    # Comma-separated exact origins, FRONTEND_URL is appended at runtime
    cors_origins: str = "http://localhost:3000,http://localhost:5173,https://localhost"
    cors_platform_suffixes: str = ".pages.dev,.railway.app,.onrender.com,.vercel.app"

    # Rate limiting (fixed window)
    rate_limit_max: int = 300
    rate_limit_window_seconds: int = 900  # 15 minutes
    rate_limit_prefix: str = "/api/"

    # Diagnostics reference point (Hanoi)
    reference_city: str = "Hanoi"
    reference_latitude: float = 21.0285
    reference_longitude: float = 105.8542
    reference_timezone: str = "Asia/Bangkok"

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
    }

    @property
    def allowed_origins(self) -> list[str]:
        """Exact-match CORS origins, including FRONTEND_URL when set."""
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins

    @property
    def platform_suffixes(self) -> list[str]:
        return [s.strip() for s in self.cors_platform_suffixes.split(",") if s.strip()]

    @property
    def forecast_base_url(self) -> str:
        return (self.open_meteo_base_url or DEFAULT_OPEN_METEO_BASE_URL).rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()
