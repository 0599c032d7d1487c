"""Weather routes: Open-Meteo forecasts by city name or coordinate."""

from fastapi import APIRouter, Depends, HTTPException, Query

from weather_gateway.providers.base import UpstreamFailure, UpstreamResult
from weather_gateway.providers.open_meteo import OpenMeteoProvider
from weather_gateway.providers.registry import get_open_meteo

router = APIRouter(prefix="/api/weather", tags=["weather"])


def upstream_error(result: UpstreamFailure, provider: str) -> HTTPException:
    """Map a failed upstream call onto a gateway error response."""
    if result.timed_out:
        return HTTPException(status_code=504, detail=f"{provider} timed out")
    if result.status_code is None:
        return HTTPException(status_code=502, detail=f"Cannot reach {provider}: {result.message}")
    return HTTPException(status_code=502, detail=f"{provider} error: {result.message}")


def unwrap(result: UpstreamResult, provider: str):
    if isinstance(result, UpstreamFailure):
        raise upstream_error(result, provider)
    return result.data


async def resolve_location(
    city: str | None,
    lat: float | None,
    lon: float | None,
    open_meteo: OpenMeteoProvider,
) -> dict:
    """Turn ?city= or ?lat=&lon= into a location dict with coordinates."""
    if lat is not None and lon is not None:
        return {"name": None, "country": None, "latitude": lat, "longitude": lon, "timezone": "auto"}
    if not city:
        raise HTTPException(status_code=400, detail="Provide either 'city' or both 'lat' and 'lon'")

    data = unwrap(await open_meteo.search_city(city), "Open-Meteo geocoding")
    results = (data or {}).get("results") or []
    if not results:
        raise HTTPException(status_code=404, detail=f"City not found: {city}")

    loc = results[0]
    return {
        "name": loc.get("name"),
        "country": loc.get("country"),
        "latitude": loc.get("latitude"),
        "longitude": loc.get("longitude"),
        "timezone": loc.get("timezone") or "auto",
    }


@router.get("/current")
async def current_weather(
    city: str | None = Query(None, description="City name"),
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
    open_meteo: OpenMeteoProvider = Depends(get_open_meteo),
):
    location = await resolve_location(city, lat, lon, open_meteo)
    data = unwrap(
        await open_meteo.current(location["latitude"], location["longitude"], location["timezone"]),
        "Open-Meteo",
    )
    return {"location": location, "current": data.get("current"), "units": data.get("current_units")}


@router.get("/forecast")
async def daily_forecast(
    city: str | None = Query(None),
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
    days: int = Query(7, ge=1, le=16),
    open_meteo: OpenMeteoProvider = Depends(get_open_meteo),
):
    location = await resolve_location(city, lat, lon, open_meteo)
    data = unwrap(
        await open_meteo.daily(location["latitude"], location["longitude"], days, location["timezone"]),
        "Open-Meteo",
    )
    return {"location": location, "days": days, "daily": data.get("daily"), "units": data.get("daily_units")}


@router.get("/hourly")
async def hourly_forecast(
    city: str | None = Query(None),
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
    hours: int = Query(24, ge=1, le=168),
    open_meteo: OpenMeteoProvider = Depends(get_open_meteo),
):
    location = await resolve_location(city, lat, lon, open_meteo)
    data = unwrap(
        await open_meteo.hourly(location["latitude"], location["longitude"], hours, location["timezone"]),
        "Open-Meteo",
    )
    return {"location": location, "hours": hours, "hourly": data.get("hourly"), "units": data.get("hourly_units")}
