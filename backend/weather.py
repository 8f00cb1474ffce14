"""Current weather and elevation from Open-Meteo, cached per ~110 m cell."""

import logging

import httpx

import config
from cache import TTLCache
from models import WeatherInfo, WeatherResult
from upstream import get_json, to_number, to_str

logger = logging.getLogger(__name__)

# WMO weather interpretation codes
WEATHER_CODE_DESCRIPTIONS: dict[int, str] = {
    0: "Despejado",
    1: "Mayormente despejado",
    2: "Parcialmente nublado",
    3: "Nublado",
    45: "Niebla",
    48: "Niebla",
    51: "Llovizna ligera",
    53: "Llovizna moderada",
    55: "Llovizna intensa",
    56: "Llovizna helada ligera",
    57: "Llovizna helada intensa",
    61: "Lluvia ligera",
    63: "Lluvia moderada",
    65: "Lluvia intensa",
    66: "Lluvia helada ligera",
    67: "Lluvia helada intensa",
    71: "Nieve ligera",
    73: "Nieve moderada",
    75: "Nieve intensa",
    77: "Granizo",
    80: "Chubascos ligeros",
    81: "Chubascos moderados",
    82: "Chubascos intensos",
    85: "Nieve ligera (chubascos)",
    86: "Nieve intensa (chubascos)",
    95: "Tormenta",
    96: "Tormenta con granizo",
    99: "Tormenta fuerte con granizo",
}


def describe_weather_code(code: int | None) -> str | None:
    if code is None:
        return None
    return WEATHER_CODE_DESCRIPTIONS.get(code)


def weather_cache_key(lat: float, lon: float) -> str:
    return f"{lat:.3f}:{lon:.3f}"


def _parse_weather(data: dict) -> WeatherResult:
    current = data.get("current") if isinstance(data.get("current"), dict) else None
    weather = None
    if current is not None:
        code = to_number(current.get("weather_code"))
        code = int(code) if code is not None else None
        weather = WeatherInfo(
            source="Open-Meteo",
            temperature_c=to_number(current.get("temperature_2m")),
            wind_kph=to_number(current.get("wind_speed_10m")),
            precipitation_mm=to_number(current.get("precipitation")),
            weather_code=code,
            description=describe_weather_code(code),
            time_iso=to_str(current.get("time")),
        )
    return WeatherResult(weather=weather, elevation_m=to_number(data.get("elevation")))


async def _fetch_weather_uncached(client: httpx.AsyncClient, lat: float, lon: float) -> WeatherResult | None:
    data = await get_json(
        client,
        config.OPEN_METEO_API_URL,
        {
            "latitude": lat,
            "longitude": lon,
            "current": "temperature_2m,wind_speed_10m,precipitation,weather_code",
            "temperature_unit": "celsius",
            "wind_speed_unit": "kmh",
            "precipitation_unit": "mm",
            "timezone": "auto",
        },
    )
    if not isinstance(data, dict):
        return None
    return _parse_weather(data)


async def fetch_weather(
    client: httpx.AsyncClient,
    cache: TTLCache,
    lat: float,
    lon: float,
) -> WeatherResult | None:
    """Weather + elevation for a point; None (cached for the TTL) on upstream failure."""
    return await cache.get_or_fetch(
        weather_cache_key(lat, lon),
        lambda: _fetch_weather_uncached(client, lat, lon),
    )
