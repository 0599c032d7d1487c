"""Shared fixtures for the Weather Gateway test suite."""

import asyncio
import json

import httpx
import pytest

from weather_gateway.config.settings import Settings, get_settings
from weather_gateway.providers.open_meteo import OpenMeteoProvider
from weather_gateway.providers.openweather import OpenWeatherGeocoder

HANOI_FORECAST = {
    "latitude": 21.0,
    "longitude": 105.875,
    "timezone": "Asia/Bangkok",
    "current_units": {"temperature_2m": "°C"},
    "current": {"time": "2026-10-18T10:00", "temperature_2m": 29.4},
    "daily_units": {"temperature_2m_max": "°C"},
    "daily": {"time": ["2026-10-18"], "temperature_2m_max": [31.2], "temperature_2m_min": [24.8]},
    "hourly_units": {"temperature_2m": "°C"},
    "hourly": {"time": ["2026-10-18T10:00"], "temperature_2m": [29.4]},
}

HANOI_CITY_SEARCH = {
    "results": [
        {
            "name": "Hanoi",
            "country": "Vietnam",
            "latitude": 21.0245,
            "longitude": 105.84117,
            "timezone": "Asia/Bangkok",
        }
    ]
}

HANOI_GEOCODE = [
    {"name": "Hanoi", "local_names": {"vi": "Hà Nội"}, "lat": 21.0283, "lon": 105.8542, "country": "VN"}
]


class FakeClock:
    """Controllable monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(OPENWEATHER_API_KEY="abc", RATE_LIMIT_MAX="5")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Explicit settings with a geocoding key and a known frontend."""
    return Settings(
        openweather_api_key="ow-test-key-1234567890",
        frontend_url="https://weather.example.com",
        environment="test",
        upstream_timeout_seconds=1.0,
    )


@pytest.fixture
def keyless_settings() -> Settings:
    return Settings(openweather_api_key="", upstream_timeout_seconds=1.0)


def make_upstream_handler(routes: dict, calls: list | None = None):
    """Build an httpx.MockTransport handler from {path_suffix: response}.

    A response may be JSON-serialisable data (200), an httpx.Response,
    an exception instance to raise, or a float meaning "sleep this long".
    """
    async def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        for suffix, outcome in routes.items():
            if request.url.path.endswith(suffix):
                if isinstance(outcome, float):
                    await asyncio.sleep(outcome)
                    return httpx.Response(200, json={})
                if isinstance(outcome, Exception):
                    raise outcome
                if isinstance(outcome, httpx.Response):
                    return outcome
                return httpx.Response(200, content=json.dumps(outcome).encode(),
                                      headers={"Content-Type": "application/json"})
        return httpx.Response(404, json={"reason": "no route"})

    return handler


@pytest.fixture
def make_providers():
    """Factory: (settings, routes) -> (open_meteo, geocoder) wired to a mock transport."""
    def _make(settings: Settings, routes: dict, calls: list | None = None):
        transport = httpx.MockTransport(make_upstream_handler(routes, calls))
        open_meteo = OpenMeteoProvider(settings, transport=transport)
        geocoder = OpenWeatherGeocoder(settings, transport=transport)
        return open_meteo, geocoder

    return _make
