"""Open-Meteo provider: forecasts and city-name geocoding (no API key)."""

from weather_gateway.config.settings import Settings, get_settings
from weather_gateway.providers.base import UpstreamProvider, UpstreamResult

CURRENT_FIELDS = [
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "precipitation",
    "weather_code",
    "wind_speed_10m",
    "is_day",
]

DAILY_FIELDS = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "wind_speed_10m_max",
]

HOURLY_FIELDS = [
    "temperature_2m",
    "relative_humidity_2m",
    "precipitation_probability",
    "weather_code",
    "wind_speed_10m",
]


class OpenMeteoProvider(UpstreamProvider):
    name = "openMeteo"

    def __init__(self, settings: Settings | None = None, **kwargs):
        self.settings = settings or get_settings()
        kwargs.setdefault("timeout", self.settings.upstream_timeout_seconds)
        super().__init__(**kwargs)

    @property
    def forecast_url(self) -> str:
        return f"{self.settings.forecast_base_url}/forecast"

    async def current(self, lat: float, lon: float, timezone: str = "auto",
                      fields: list[str] | None = None) -> UpstreamResult:
        return await self.get_json(self.forecast_url, {
            "latitude": lat,
            "longitude": lon,
            "current": ",".join(fields or CURRENT_FIELDS),
            "timezone": timezone,
        })

    async def daily(self, lat: float, lon: float, days: int, timezone: str = "auto") -> UpstreamResult:
        return await self.get_json(self.forecast_url, {
            "latitude": lat,
            "longitude": lon,
            "daily": ",".join(DAILY_FIELDS),
            "forecast_days": days,
            "timezone": timezone,
        })

    async def hourly(self, lat: float, lon: float, hours: int, timezone: str = "auto") -> UpstreamResult:
        return await self.get_json(self.forecast_url, {
            "latitude": lat,
            "longitude": lon,
            "hourly": ",".join(HOURLY_FIELDS),
            "forecast_hours": hours,
            "timezone": timezone,
        })

    async def search_city(self, name: str, language: str = "en") -> UpstreamResult:
        """Resolve a city name to coordinates via the Open-Meteo geocoding API."""
        url = f"{self.settings.open_meteo_geocoding_url.rstrip('/')}/search"
        return await self.get_json(url, {"name": name, "count": 1, "language": language, "format": "json"})
