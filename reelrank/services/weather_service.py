"""
OpenWeather current-conditions client.

Fetches the weather at a catch location so it can be stored as a snapshot
on the catch. Falls back to None on any failure so catch logging is never
blocked.
"""

import logging
import os
from typing import Optional

import httpx
from pydantic import BaseModel

from reelrank.utils.constants import WEATHER_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"

# OpenWeather reports pressure in hPa regardless of units
HPA_TO_INHG = 0.02953


class WeatherData(BaseModel):
    """Weather snapshot in imperial units."""

    temperature: Optional[float] = None  # °F
    pressure: Optional[float] = None  # inHg
    humidity: Optional[float] = None  # %
    wind_speed: float = 0.0  # mph
    wind_direction: float = 0.0  # degrees
    conditions: str = ""
    description: str = ""
    icon: str = ""


def _get_api_key() -> Optional[str]:
    """Read the OpenWeather API key from the environment."""
    return os.environ.get("OPENWEATHER_API_KEY")


def parse_weather_response(data: dict) -> WeatherData:
    """Build a WeatherData from an OpenWeather /weather response body."""
    main = data.get("main") or {}
    wind = data.get("wind") or {}
    weather = (data.get("weather") or [{}])[0]

    pressure = main.get("pressure")
    return WeatherData(
        temperature=main.get("temp"),
        pressure=round(pressure * HPA_TO_INHG, 2) if pressure is not None else None,
        humidity=main.get("humidity"),
        wind_speed=wind.get("speed") or 0.0,
        wind_direction=wind.get("deg") or 0.0,
        conditions=weather.get("main") or "",
        description=weather.get("description") or "",
        icon=weather.get("icon") or "",
    )


async def get_weather_data(latitude: float, longitude: float) -> Optional[WeatherData]:
    """
    Get current weather at a coordinate.

    Args:
        latitude: Latitude in degrees
        longitude: Longitude in degrees

    Returns:
        WeatherData, or None if the key is missing or the request fails
    """
    api_key = _get_api_key()
    if not api_key:
        logger.warning("OPENWEATHER_API_KEY not set, skipping weather lookup")
        return None

    try:
        async with httpx.AsyncClient(timeout=WEATHER_TIMEOUT_SECONDS) as client:
            resp = await client.get(
                OPENWEATHER_URL,
                params={"lat": latitude, "lon": longitude, "appid": api_key, "units": "imperial"},
            )
            resp.raise_for_status()
            data = resp.json()
        return parse_weather_response(data)

    except Exception:
        logger.warning("Weather lookup failed for (%s, %s)", latitude, longitude, exc_info=True)
        return None


def get_weather_condition_score(weather: Optional[WeatherData]) -> int:
    """
    Rate how favorable conditions are for fishing (0-20).

    Temperature 60-80°F scores 10, 50-60 or 80-90 scores 5; pressure
    between 30.0 and 30.2 inHg adds 5; wind under 10 mph adds 5.
    """
    if weather is None:
        return 0

    score = 0
    temperature = weather.temperature
    if temperature is not None:
        if 60 <= temperature <= 80:
            score += 10
        elif 50 <= temperature < 60 or 80 < temperature <= 90:
            score += 5

    if weather.pressure is not None and 30.0 <= weather.pressure <= 30.2:
        score += 5

    if weather.wind_speed < 10:
        score += 5

    return score
