"""Tests for weather adapter."""

from datetime import UTC, date, datetime

import httpx
import pytest

from backend.outing.adapters.weather import OpenMeteoSuitability, fetch_weather, is_outdoor_friendly
from backend.outing.config import Settings
from backend.outing.models.common import Geo, Provenance
from backend.outing.models.weather import WeatherDay


def open_meteo_response(precip: list[int | None]) -> dict:
    days = [f"2026-11-{14 + i}" for i in range(len(precip))]
    return {
        "daily": {
            "time": days,
            "temperature_2m_max": [31.2] * len(days),
            "temperature_2m_min": [25.1] * len(days),
            "precipitation_probability_max": precip,
            "wind_speed_10m_max": [12.5] * len(days),
        }
    }


def weather_day(day: date, precip_prob: float) -> WeatherDay:
    return WeatherDay(
        date=day,
        precip_prob=precip_prob,
        wind_kmh=10.0,
        temp_c_high=31.0,
        temp_c_low=25.0,
        provenance=Provenance(source="weather.open_meteo", fetched_at=datetime.now(UTC)),
    )


@pytest.mark.asyncio
async def test_fetch_weather_parses_open_meteo_response() -> None:
    """Test that weather adapter parses Open-Meteo API response correctly."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=open_meteo_response([20, 60]))

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    weather_days = await fetch_weather(
        location=Geo(lat=1.3521, lon=103.8198),
        start_date=date(2026, 11, 14),
        end_date=date(2026, 11, 15),
        client=client,
    )

    assert len(weather_days) == 2
    day1 = weather_days[0]
    assert day1.date == date(2026, 11, 14)
    assert day1.temp_c_high == 31.2
    assert day1.precip_prob == 0.2  # 20% -> 0.2
    assert day1.wind_kmh == 12.5
    assert day1.provenance.source == "weather.open_meteo"
    assert day1.provenance.mode is None
    assert "open-meteo.com" in (day1.provenance.source_url or "")
    assert weather_days[1].precip_prob == 0.6

    await client.aclose()


@pytest.mark.asyncio
async def test_fetch_weather_handles_null_values() -> None:
    """Test that weather adapter handles null values in API response."""
    response = open_meteo_response([None])
    response["daily"]["temperature_2m_max"] = [None]
    response["daily"]["wind_speed_10m_max"] = [None]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=response)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    weather_days = await fetch_weather(
        location=Geo(lat=1.3521, lon=103.8198),
        start_date=date(2026, 11, 14),
        end_date=date(2026, 11, 14),
        client=client,
    )

    day = weather_days[0]
    assert day.temp_c_high == 31.0  # Default
    assert day.precip_prob == 0.0  # Default
    assert day.wind_kmh == 0.0  # Default

    await client.aclose()


@pytest.mark.asyncio
async def test_fetch_weather_constructs_correct_url() -> None:
    """Test that weather adapter constructs correct Open-Meteo API URL."""
    captured_requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured_requests.append(request)
        return httpx.Response(200, json=open_meteo_response([10]))

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    await fetch_weather(
        location=Geo(lat=1.3521, lon=103.8198),
        start_date=date(2026, 11, 14),
        end_date=date(2026, 11, 14),
        base_url="https://api.open-meteo.com/v1/forecast",
        client=client,
    )

    assert len(captured_requests) == 1
    params = dict(captured_requests[0].url.params)
    assert params["latitude"] == "1.3521"
    assert params["longitude"] == "103.8198"
    assert params["start_date"] == "2026-11-14"
    assert "precipitation_probability_max" in params["daily"]
    assert params["timezone"] == "UTC"

    await client.aclose()


def test_is_outdoor_friendly_uses_threshold() -> None:
    """Test rain probability against the threshold."""
    days = [weather_day(date(2026, 11, 14), 0.3), weather_day(date(2026, 11, 15), 0.7)]

    assert is_outdoor_friendly(days, date(2026, 11, 14), 0.5) is True
    assert is_outdoor_friendly(days, date(2026, 11, 15), 0.5) is False
    assert is_outdoor_friendly(days, date(2026, 11, 16), 0.5) is None


@pytest.mark.asyncio
async def test_suitability_reports_forecast() -> None:
    """Test OpenMeteoSuitability for a rainy day."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=open_meteo_response([80]))

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    suitability = OpenMeteoSuitability(Settings(_env_file=None), client=client)

    assert await suitability(date(2026, 11, 14)) is False

    await client.aclose()


@pytest.mark.asyncio
async def test_suitability_unknown_on_http_error() -> None:
    """Test that a failed forecast yields None instead of raising."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    suitability = OpenMeteoSuitability(Settings(_env_file=None), client=client)

    assert await suitability(date(2026, 11, 14)) is None

    await client.aclose()
