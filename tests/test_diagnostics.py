"""Tests for weather_gateway/diagnostics/aggregator.py: upstream health report."""

import time
from unittest.mock import AsyncMock

import httpx

from weather_gateway.config.settings import Settings
from weather_gateway.diagnostics.aggregator import (
    MISSING_KEY_MESSAGE,
    DiagnosticAggregator,
    ServiceCheck,
    ServiceStatus,
    env_snapshot,
)
from tests.conftest import HANOI_FORECAST, HANOI_GEOCODE

ALL_OK = {"/forecast": HANOI_FORECAST, "/direct": HANOI_GEOCODE, "/reverse": HANOI_GEOCODE}


def _aggregator(settings, make_providers, routes, calls=None) -> DiagnosticAggregator:
    open_meteo, geocoder = make_providers(settings, routes, calls)
    return DiagnosticAggregator(settings, open_meteo, geocoder)


class TestRun:

    async def test_all_ok(self, settings, make_providers):
        report = await _aggregator(settings, make_providers, ALL_OK).run()

        assert set(report.services) == {"openMeteo", "openWeatherGeocoding", "openWeatherReverse"}
        meteo = report.services["openMeteo"]
        assert meteo.status is ServiceStatus.OK
        assert meteo.has_data is True
        assert meteo.status_code == 200
        assert meteo.response_time_ms >= 0
        assert report.services["openWeatherGeocoding"].found is True
        assert report.services["openWeatherReverse"].found is True
        assert report.healthy is True

    async def test_empty_geocode_is_ok_but_not_found(self, settings, make_providers):
        routes = {**ALL_OK, "/direct": []}
        report = await _aggregator(settings, make_providers, routes).run()
        check = report.services["openWeatherGeocoding"]
        assert check.status is ServiceStatus.OK
        assert check.found is False

    async def test_missing_key_skips_geocoding(self, keyless_settings, make_providers):
        calls = []
        report = await _aggregator(keyless_settings, make_providers, ALL_OK, calls).run()

        for name in ("openWeatherGeocoding", "openWeatherReverse"):
            check = report.services[name]
            assert check.status is ServiceStatus.SKIP
            assert check.error == MISSING_KEY_MESSAGE
            assert check.response_time_ms is None
        assert report.services["openMeteo"].status is ServiceStatus.OK
        # only the forecast call went out
        assert [c.url.path for c in calls] == ["/v1/forecast"]
        assert report.healthy is True

    async def test_missing_key_forecast_error_still_reported(self, keyless_settings, make_providers):
        routes = {"/forecast": httpx.ConnectError("Connection refused")}
        report = await _aggregator(keyless_settings, make_providers, routes).run()
        assert report.services["openMeteo"].status is ServiceStatus.ERROR
        assert report.services["openWeatherGeocoding"].status is ServiceStatus.SKIP

    async def test_upstream_error_fields(self, settings, make_providers):
        routes = {
            **ALL_OK,
            "/direct": httpx.Response(401, json={"cod": 401, "message": "Invalid API key"}),
        }
        report = await _aggregator(settings, make_providers, routes).run()
        check = report.services["openWeatherGeocoding"]
        assert check.status is ServiceStatus.ERROR
        assert check.status_code == 401
        assert check.code == "HTTPStatusError"
        assert check.response_data == {"cod": 401, "message": "Invalid API key"}
        assert check.response_time_ms is not None
        assert report.services["openWeatherReverse"].status is ServiceStatus.OK
        assert report.healthy is False

    async def test_forecast_timeout_bounded_and_others_complete(self, make_providers):
        settings = Settings(openweather_api_key="k", upstream_timeout_seconds=0.2)
        routes = {**ALL_OK, "/forecast": 3.0}
        aggregator = _aggregator(settings, make_providers, routes)

        started = time.perf_counter()
        report = await aggregator.run()
        total = time.perf_counter() - started

        meteo = report.services["openMeteo"]
        assert meteo.status is ServiceStatus.ERROR
        assert meteo.code == "TimeoutError"
        assert 195 <= meteo.response_time_ms <= 200 + 250
        assert report.services["openWeatherGeocoding"].status is ServiceStatus.OK
        assert report.services["openWeatherReverse"].status is ServiceStatus.OK
        assert total < 1.0

    async def test_calls_run_concurrently(self, make_providers):
        settings = Settings(openweather_api_key="k", upstream_timeout_seconds=0.3)
        routes = {"/forecast": 2.0, "/direct": 2.0, "/reverse": 2.0}
        started = time.perf_counter()
        report = await _aggregator(settings, make_providers, routes).run()
        total = time.perf_counter() - started

        assert all(c.status is ServiceStatus.ERROR for c in report.services.values())
        # three 0.3s budgets in parallel, not 0.9s in sequence
        assert total < 0.8

    async def test_crashing_probe_does_not_abort_report(self, settings, make_providers):
        aggregator = _aggregator(settings, make_providers, ALL_OK)
        aggregator.geocoder.reverse = AsyncMock(side_effect=RuntimeError("bug"))
        report = await aggregator.run()
        check = report.services["openWeatherReverse"]
        assert check.status is ServiceStatus.ERROR
        assert check.error == "bug"
        assert check.code == "RuntimeError"
        assert check.response_time_ms is not None
        assert report.services["openMeteo"].status is ServiceStatus.OK

    async def test_malformed_base_url_is_timed_error(self, make_providers):
        settings = Settings(openweather_api_key="k", open_meteo_base_url="http://exa\x00mple.com/v1")
        report = await _aggregator(settings, make_providers, ALL_OK).run()
        meteo = report.services["openMeteo"]
        assert meteo.status is ServiceStatus.ERROR
        assert meteo.code == "InvalidURL"
        assert meteo.response_time_ms is not None
        assert report.services["openWeatherGeocoding"].status is ServiceStatus.OK


class TestServiceCheck:

    def test_skip_has_no_timing(self):
        data = ServiceCheck.skip("no key").to_dict()
        assert data == {"status": "SKIP", "error": "no key"}

    def test_ok_serialisation(self):
        check = ServiceCheck(status=ServiceStatus.OK, response_time_ms=12.5, status_code=200, has_data=True)
        assert check.to_dict() == {"status": "OK", "response_time_ms": 12.5, "status_code": 200, "has_data": True}


class TestEnvSnapshot:

    def test_never_leaks_secret(self, settings):
        snapshot = env_snapshot(settings)
        assert snapshot["OPENWEATHER_API_KEY"] == "SET"
        assert settings.openweather_api_key not in str(snapshot)

    def test_missing_values(self):
        snapshot = env_snapshot(Settings(openweather_api_key="", frontend_url="", environment=""))
        assert snapshot["OPENWEATHER_API_KEY"] == "MISSING"
        assert snapshot["FRONTEND_URL"] == "NOT SET"
        assert snapshot["ENVIRONMENT"] == "NOT SET"

    async def test_report_dict(self, settings, make_providers):
        report = await _aggregator(settings, make_providers, ALL_OK).run()
        data = report.to_dict()
        assert data["env"]["FRONTEND_URL"] == "https://weather.example.com"
        assert data["services"]["openMeteo"]["status"] == "OK"
        assert "timestamp" in data

