"""Provider registry: one instance per upstream, owned by the app.

The registry lives on app.state so an app built with its own Settings
(tests, multiple apps in one process) gets its own providers.
"""

from fastapi import Request

from weather_gateway.config.settings import Settings
from weather_gateway.providers.base import UpstreamProvider
from weather_gateway.providers.open_meteo import OpenMeteoProvider
from weather_gateway.providers.openweather import OpenWeatherGeocoder

OPEN_METEO = "open_meteo"
OPENWEATHER = "openweather"


def build_providers(settings: Settings, **overrides: UpstreamProvider) -> dict[str, UpstreamProvider]:
    """Create the provider map, letting callers substitute instances by name."""
    providers: dict[str, UpstreamProvider] = {
        OPEN_METEO: OpenMeteoProvider(settings),
        OPENWEATHER: OpenWeatherGeocoder(settings),
    }
    for name, provider in overrides.items():
        if name not in providers:
            raise ValueError(f"Unknown provider: {name}")
        providers[name] = provider
    return providers


def get_open_meteo(request: Request) -> OpenMeteoProvider:
    return request.app.state.providers[OPEN_METEO]


def get_geocoder(request: Request) -> OpenWeatherGeocoder:
    return request.app.state.providers[OPENWEATHER]


async def close_all_providers(providers: dict[str, UpstreamProvider]) -> None:
    """Gracefully shut down all provider connections."""
    for provider in providers.values():
        await provider.close()
