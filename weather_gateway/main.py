"""Weather Gateway: FastAPI application entry point.

An HTTP gateway in front of Open-Meteo (forecasts) and OpenWeather
(geocoding), enforcing CORS origin policy, per-client rate limits and
request logging, with upstream diagnostics for operators.

Request pipeline (outermost first):
Origin policy (CORS) -> Body parsing -> Rate limit (/api/ only) -> Request log -> Route
"""

import os
import platform
import time
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from weather_gateway.config.settings import Settings, get_settings
from weather_gateway.diagnostics.aggregator import DiagnosticAggregator
from weather_gateway.logging.audit import client_ip, get_audit_logger, log_request, setup_logging
from weather_gateway.providers.base import UpstreamProvider
from weather_gateway.providers.registry import OPEN_METEO, OPENWEATHER, build_providers, close_all_providers
from weather_gateway.routes import map as map_routes
from weather_gateway.routes import weather as weather_routes
from weather_gateway.security.origin import OriginPolicy, OriginPolicyCORSMiddleware
from weather_gateway.security.ratelimit import FixedWindowRateLimiter, rate_limit_middleware

VERSION = "1.0.0"

_started_at = time.monotonic()


def uptime_seconds() -> float:
    return round(time.monotonic() - _started_at, 3)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def mask_secret(value: str) -> str:
    """Short prefix of a credential for troubleshooting, never the whole value."""
    if not value:
        return "NOT SET"
    return f"{value[:min(8, len(value) // 2)]}..."


def create_app(
    settings: Settings | None = None,
    clock: Callable[[], float] = time.monotonic,
    **provider_overrides: UpstreamProvider,
) -> FastAPI:
    """Build the gateway app with its policy components wired in."""
    settings = settings or get_settings()
    providers = build_providers(settings, **provider_overrides)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings)
        get_audit_logger().info(
            "Gateway started",
            extra={"audit_data": {
                "port": settings.port,
                "environment": settings.environment or "NOT SET",
                "version": VERSION,
            }},
        )
        yield
        await close_all_providers(providers)
        get_audit_logger().info("Gateway stopped")

    app = FastAPI(
        title="Weather Gateway",
        description="Rate-limited gateway for Open-Meteo forecasts and OpenWeather geocoding",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.providers = providers
    app.state.origin_policy = OriginPolicy.from_settings(settings)
    app.state.rate_limiter = FixedWindowRateLimiter(
        max_requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
        clock=clock,
    )
    app.state.diagnostics = DiagnosticAggregator(settings, providers[OPEN_METEO], providers[OPENWEATHER])

    # add_middleware wraps: the last one added runs first
    app.middleware("http")(log_request)
    app.middleware("http")(rate_limit_middleware(app.state.rate_limiter, settings.rate_limit_prefix))
    app.add_middleware(
        OriginPolicyCORSMiddleware,
        policy=app.state.origin_policy,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset", "Retry-After", "X-Request-Id"],
    )

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health():
        return {
            "status": "OK",
            "message": "Weather gateway for Open-Meteo + OpenWeather geocoding",
            "timestamp": _now_iso(),
            "uptime": uptime_seconds(),
            "version": VERSION,
        }

    @app.get("/api/test")
    async def capabilities(request: Request):
        settings: Settings = request.app.state.settings
        return {
            "message": "Gateway is running",
            "stack": {
                "weather": "Open-Meteo (free)",
                "geocoding": "OpenWeather Geocoding API",
                "map": "Leaflet (frontend)",
            },
            "apis": {
                "currentWeather": "/api/weather/current?city=Hanoi",
                "forecast": "/api/weather/forecast?city=Hanoi&days=7",
                "hourly": "/api/weather/hourly?city=Hanoi&hours=24",
                "search": "/api/map/search?q=Hanoi",
                "reverse": "/api/map/reverse?lat=21.0285&lon=105.8542",
                "check": "/api/check",
                "rateLimit": "/api/ratelimit",
            },
            "rateLimit": {
                "max": settings.rate_limit_max,
                "windowSeconds": settings.rate_limit_window_seconds,
                "prefix": settings.rate_limit_prefix,
                "note": "Check RateLimit-* headers in responses",
            },
        }

    @app.get("/api/ratelimit")
    async def rate_limit_status(request: Request):
        result = getattr(request.state, "rate_limit", None)
        if result is None:
            result = await request.app.state.rate_limiter.peek(client_ip(request))
        reset_at = datetime.now(timezone.utc) + timedelta(seconds=result.reset_seconds)
        return {
            "limit": result.limit,
            "remaining": result.remaining,
            "reset": reset_at.isoformat(),
            "resetSeconds": result.retry_after,
            "current": result.count,
        }

    @app.get("/api/check")
    async def check_upstreams(request: Request):
        report = await request.app.state.diagnostics.run()
        return report.to_dict()

    @app.get("/api/debug")
    async def debug_config(request: Request):
        settings: Settings = request.app.state.settings
        return {
            "env": {
                "OPENWEATHER_API_KEY": mask_secret(settings.openweather_api_key),
                "FRONTEND_URL": settings.frontend_url or "NOT SET",
                "PORT": str(settings.port),
                "ENVIRONMENT": settings.environment or "NOT SET",
                "OPEN_METEO_BASE_URL": settings.open_meteo_base_url
                or f"{settings.forecast_base_url} (default)",
            },
            "server": {
                "uptime": uptime_seconds(),
                "pid": os.getpid(),
                "pythonVersion": platform.python_version(),
            },
            "timestamp": _now_iso(),
        }

    app.include_router(weather_routes.router)
    app.include_router(map_routes.router)

    # Must stay last: anything the routers above did not match
    @app.api_route(
        "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
        include_in_schema=False,
    )
    async def not_found(request: Request, path: str):
        return JSONResponse(
            status_code=404,
            content={"error": "Route not found", "path": request.url.path},
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        get_audit_logger().error(
            "Unhandled error",
            exc_info=exc,
            extra={"audit_data": {
                "method": request.method,
                "path": request.url.path,
                "client_ip": client_ip(request),
            }},
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(exc)},
        )


app = create_app()


def serve() -> None:
    """Run the gateway with uvicorn on the configured port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    serve()
