"""Weather models used for outdoor suitability."""

from datetime import date

from pydantic import BaseModel

from backend.outing.models.common import Provenance


class WeatherDay(BaseModel):
    """Daily weather forecast."""

    date: date
    precip_prob: float
    wind_kmh: float
    temp_c_high: float
    temp_c_low: float
    provenance: Provenance
