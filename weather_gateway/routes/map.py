"""Map routes: OpenWeather forward and reverse geocoding."""

from fastapi import APIRouter, Depends, HTTPException, Query

from weather_gateway.providers.openweather import OpenWeatherGeocoder
from weather_gateway.providers.registry import get_geocoder
from weather_gateway.routes.weather import unwrap

router = APIRouter(prefix="/api/map", tags=["map"])


def require_geocoder(geocoder: OpenWeatherGeocoder = Depends(get_geocoder)) -> OpenWeatherGeocoder:
    if not geocoder.has_credential:
        raise HTTPException(status_code=503, detail="Geocoding is not configured (OPENWEATHER_API_KEY not set)")
    return geocoder


def _place(item: dict) -> dict:
    return {
        "name": item.get("name"),
        "local_names": item.get("local_names"),
        "state": item.get("state"),
        "country": item.get("country"),
        "lat": item.get("lat"),
        "lon": item.get("lon"),
    }


@router.get("/search")
async def search(
    q: str = Query(..., min_length=1, description="Place name"),
    limit: int = Query(5, ge=1, le=5),
    geocoder: OpenWeatherGeocoder = Depends(require_geocoder),
):
    data = unwrap(await geocoder.direct(q, limit=limit), "OpenWeather geocoding")
    results = [_place(item) for item in data or []]
    return {"query": q, "count": len(results), "results": results}


@router.get("/reverse")
async def reverse(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    limit: int = Query(1, ge=1, le=5),
    geocoder: OpenWeatherGeocoder = Depends(require_geocoder),
):
    data = unwrap(await geocoder.reverse(lat, lon, limit=limit), "OpenWeather geocoding")
    results = [_place(item) for item in data or []]
    return {"lat": lat, "lon": lon, "count": len(results), "results": results}
