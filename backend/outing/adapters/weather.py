"""Weather adapter using Open-Meteo API (keyless, free tier)."""

import logging
from datetime import date

import httpx

from backend.outing.adapters.provenance import provenance_for_http
from backend.outing.config import Settings, get_settings
from backend.outing.models.common import Geo
from backend.outing.models.weather import WeatherDay

logger = logging.getLogger(__name__)


async def fetch_weather(
    location: Geo,
    start_date: date,
    end_date: date,
    base_url: str = "https://api.open-meteo.com/v1/forecast",
    client: httpx.AsyncClient | None = None,
) -> list[WeatherDay]:
    """Fetch daily forecast from Open-Meteo API.

    Args:
        location: Geographic coordinates
        start_date: First date to fetch
        end_date: Last date to fetch (inclusive)
        base_url: Open-Meteo API base URL
        client: Optional httpx client (for testing with mocks)

    Returns:
        WeatherDay per date, each with provenance

    Raises:
        httpx.HTTPError: On network or HTTP errors
    """
    # Docs: https://open-meteo.com/en/docs
    params: dict[str, str | float] = {
        "latitude": location.lat,
        "longitude": location.lon,
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "daily": (
            "temperature_2m_max,temperature_2m_min,"
            "precipitation_probability_max,wind_speed_10m_max"
        ),
        "timezone": "UTC",
    }

    url = f"{base_url}?{'&'.join(f'{k}={v}' for k, v in params.items())}"

    close_client = False
    if client is None:
        client = httpx.AsyncClient(timeout=4.0)
        close_client = True

    try:
        response = await client.get(base_url, params=params)
        response.raise_for_status()
        daily = response.json()["daily"]

        weather_days = []
        for i, day in enumerate(daily["time"]):
            # precipitation_probability is 0-100
            precip = daily["precipitation_probability_max"][i]
            wind = daily["wind_speed_10m_max"][i]
            high = daily["temperature_2m_max"][i]
            low = daily["temperature_2m_min"][i]
            weather_days.append(
                WeatherDay(
                    date=date.fromisoformat(day),
                    precip_prob=precip / 100.0 if precip is not None else 0.0,
                    wind_kmh=wind if wind is not None else 0.0,
                    temp_c_high=high if high is not None else 31.0,
                    temp_c_low=low if low is not None else 25.0,
                    provenance=provenance_for_http("weather.open_meteo", url, mode=None),
                )
            )
        return weather_days
    finally:
        if close_client:
            await client.aclose()


def is_outdoor_friendly(days: list[WeatherDay], day: date, rain_threshold: float) -> bool | None:
    """Whether the forecast for a day keeps rain probability under the threshold."""
    for weather_day in days:
        if weather_day.date == day:
            return weather_day.precip_prob < rain_threshold
    return None


class OpenMeteoSuitability:
    """Outdoor-suitability lookup for the outing date (best-effort)."""

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self._settings = settings or get_settings()
        self._client = client

    async def __call__(self, day: date) -> bool | None:
        """Return outdoor suitability, or None when the forecast is unavailable."""
        location = Geo(lat=self._settings.default_lat, lon=self._settings.default_lng)
        try:
            days = await fetch_weather(
                location,
                day,
                day,
                base_url=self._settings.weather_base_url,
                client=self._client,
            )
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(f"Weather lookup failed for {day}: {e}")
            return None
        return is_outdoor_friendly(days, day, self._settings.weather_rain_threshold)
