"""OpenWeather geocoding provider (requires OPENWEATHER_API_KEY)."""

from weather_gateway.config.settings import Settings, get_settings
from weather_gateway.providers.base import UpstreamProvider, UpstreamResult


class OpenWeatherGeocoder(UpstreamProvider):
    name = "openWeather"

    def __init__(self, settings: Settings | None = None, **kwargs):
        self.settings = settings or get_settings()
        kwargs.setdefault("timeout", self.settings.upstream_timeout_seconds)
        super().__init__(**kwargs)

    @property
    def has_credential(self) -> bool:
        return bool(self.settings.openweather_api_key)

    def _url(self, endpoint: str) -> str:
        return f"{self.settings.openweather_geo_base_url.rstrip('/')}/{endpoint}"

    async def direct(self, query: str, limit: int = 1) -> UpstreamResult:
        """Forward geocoding: place name -> candidate locations."""
        return await self.get_json(self._url("direct"), {
            "q": query,
            "limit": limit,
            "appid": self.settings.openweather_api_key,
        })

    async def reverse(self, lat: float, lon: float, limit: int = 1) -> UpstreamResult:
        """Reverse geocoding: coordinate -> nearby place names."""
        return await self.get_json(self._url("reverse"), {
            "lat": lat,
            "lon": lon,
            "limit": limit,
            "appid": self.settings.openweather_api_key,
        })
