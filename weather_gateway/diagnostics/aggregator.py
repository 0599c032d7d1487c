"""Upstream diagnostics for GET /api/check.

Runs three independent probes concurrently, each with its own timeout:

    openMeteo             current weather at the reference coordinate
    openWeatherGeocoding  forward geocode of the reference city
    openWeatherReverse    reverse geocode of the reference coordinate

Each probe settles into a ServiceCheck (OK, ERROR or SKIP). A probe that
fails never affects the others, and nothing here raises to the caller:
the endpoint always answers 200 and the report itself carries health.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from weather_gateway.config.settings import Settings
from weather_gateway.logging.audit import RequestTimer, get_audit_logger
from weather_gateway.providers.base import UpstreamFailure, UpstreamResult
from weather_gateway.providers.open_meteo import OpenMeteoProvider
from weather_gateway.providers.openweather import OpenWeatherGeocoder

MISSING_KEY_MESSAGE = "OPENWEATHER_API_KEY not set"


class ServiceStatus(str, Enum):
    OK = "OK"
    ERROR = "ERROR"
    SKIP = "SKIP"


@dataclass
class ServiceCheck:
    status: ServiceStatus
    response_time_ms: float | None = None
    status_code: int | None = None
    has_data: bool | None = None
    found: bool | None = None
    error: str | None = None
    code: str | None = None
    response_data: Any = None

    @classmethod
    def skip(cls, reason: str) -> "ServiceCheck":
        return cls(status=ServiceStatus.SKIP, error=reason)

    def to_dict(self) -> dict:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["status"] = self.status.value
        return data


@dataclass
class DiagnosticReport:
    timestamp: str
    env: dict[str, str]
    services: dict[str, ServiceCheck] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return all(check.status is not ServiceStatus.ERROR for check in self.services.values())

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "env": self.env,
            "services": {name: check.to_dict() for name, check in self.services.items()},
        }


def env_snapshot(settings: Settings) -> dict[str, str]:
    """Configuration presence only, never secret values."""
    return {
        "OPENWEATHER_API_KEY": "SET" if settings.openweather_api_key else "MISSING",
        "FRONTEND_URL": settings.frontend_url or "NOT SET",
        "PORT": str(settings.port),
        "ENVIRONMENT": settings.environment or "NOT SET",
    }


class DiagnosticAggregator:
    def __init__(self, settings: Settings, open_meteo: OpenMeteoProvider, geocoder: OpenWeatherGeocoder):
        self.settings = settings
        self.open_meteo = open_meteo
        self.geocoder = geocoder

    async def run(self) -> DiagnosticReport:
        report = DiagnosticReport(
            timestamp=datetime.now(timezone.utc).isoformat(),
            env=env_snapshot(self.settings),
        )

        probes: dict[str, Callable[[], Awaitable[ServiceCheck]]] = {
            "openMeteo": self.check_open_meteo,
            "openWeatherGeocoding": self.check_geocoding,
            "openWeatherReverse": self.check_reverse_geocoding,
        }
        outcomes = await asyncio.gather(*(self._guarded(name, probe) for name, probe in probes.items()))
        report.services.update(zip(probes, outcomes))

        get_audit_logger().info(
            "Diagnostics completed",
            extra={"audit_data": {
                "healthy": report.healthy,
                "services": {name: check.status.value for name, check in report.services.items()},
            }},
        )
        return report

    async def _guarded(self, name: str, probe: Callable[[], Awaitable[ServiceCheck]]) -> ServiceCheck:
        """Run one probe; an unexpected exception becomes a timed ERROR check."""
        timer = RequestTimer()
        try:
            with timer:
                return await probe()
        except Exception as e:
            get_audit_logger().error(
                "Diagnostic probe crashed",
                exc_info=e,
                extra={"audit_data": {"service": name}},
            )
            return ServiceCheck(
                status=ServiceStatus.ERROR,
                response_time_ms=timer.elapsed_ms,
                error=str(e),
                code=type(e).__name__,
            )

    async def check_open_meteo(self) -> ServiceCheck:
        s = self.settings
        with RequestTimer() as timer:
            result = await self.open_meteo.current(
                s.reference_latitude, s.reference_longitude, s.reference_timezone, fields=["temperature_2m"],
            )
        return _settle(result, timer.elapsed_ms, has_data=_has_current_block)

    async def check_geocoding(self) -> ServiceCheck:
        if not self.geocoder.has_credential:
            return ServiceCheck.skip(MISSING_KEY_MESSAGE)
        with RequestTimer() as timer:
            result = await self.geocoder.direct(self.settings.reference_city, limit=1)
        return _settle(result, timer.elapsed_ms, found=_non_empty_list)

    async def check_reverse_geocoding(self) -> ServiceCheck:
        if not self.geocoder.has_credential:
            return ServiceCheck.skip(MISSING_KEY_MESSAGE)
        s = self.settings
        with RequestTimer() as timer:
            result = await self.geocoder.reverse(s.reference_latitude, s.reference_longitude, limit=1)
        return _settle(result, timer.elapsed_ms, found=_non_empty_list)


def _settle(result: UpstreamResult, elapsed_ms: float, **signals: Callable[[Any], bool]) -> ServiceCheck:
    """Collapse an upstream result into a ServiceCheck."""
    if isinstance(result, UpstreamFailure):
        return ServiceCheck(
            status=ServiceStatus.ERROR,
            response_time_ms=elapsed_ms,
            status_code=result.status_code,
            error=result.message,
            code=result.code,
            response_data=result.data,
        )
    check = ServiceCheck(status=ServiceStatus.OK, response_time_ms=elapsed_ms, status_code=result.status_code)
    for name, signal in signals.items():
        setattr(check, name, signal(result.data))
    return check


def _has_current_block(data: Any) -> bool:
    return isinstance(data, dict) and bool(data.get("current"))


def _non_empty_list(data: Any) -> bool:
    return isinstance(data, list) and len(data) > 0
