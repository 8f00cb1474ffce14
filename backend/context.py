"""Context aggregation: resolve a location, fan out to every provider, assemble ContextData.

A failing provider never aborts the aggregation: its slot degrades to
None or [] (flood and air to a DOWN record) and a warning is recorded
for the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

import collector
import config
import geocoding
import indicators
import knowledge
import pois
import weather
from cache import ClientCaches
from geo import validate_coordinates
from models import ContextData, ContextSources, Coordinate, EnvironmentInfo

logger = logging.getLogger(__name__)


class LocationNotFound(Exception):
    """No coordinates could be resolved for the requested address."""


@dataclass
class ResolvedLocation:
    lat: float
    lon: float
    display_name: str | None = None


@dataclass
class ContextResult:
    context: ContextData
    place_name: str | None
    warnings: list[str] = field(default_factory=list)


async def resolve_location(
    client: httpx.AsyncClient,
    address: str | None,
    lat: float | None,
    lon: float | None,
) -> ResolvedLocation:
    """Coordinates for an address (geocoded) or an explicit lat/lon pair.

    Raises ValueError on invalid input and LocationNotFound when the address
    has no match.
    """
    if address is not None:
        result = await geocoding.forward_geocode(client, address)
        if result is None:
            raise LocationNotFound(f"No results for {address!r}")
        return ResolvedLocation(result.lat, result.lon, result.display_name)

    if lat is None or lon is None:
        raise ValueError("Missing address or lat/lon")
    validate_coordinates(lat, lon)
    return ResolvedLocation(lat, lon)


def _settle(name: str, result, default):
    """Unwrap one asyncio.gather(return_exceptions=True) slot."""
    if isinstance(result, BaseException):
        logger.warning("%s branch failed: %r", name, result)
        return default
    return result


async def build_context(
    client: httpx.AsyncClient,
    caches: ClientCaches,
    lat: float,
    lon: float,
    radius_m: int = config.DEFAULT_RADIUS_M,
) -> ContextResult:
    validate_coordinates(lat, lon)
    wide_radius = min(radius_m * 2, config.WATERWAY_MAX_RADIUS_M)

    results = await asyncio.gather(
        geocoding.reverse_geocode(client, lat, lon),
        weather.fetch_weather(client, caches.weather, lat, lon),
        knowledge.fetch_nearby(client, caches.knowledge, lat, lon, wide_radius, config.KNOWLEDGE_DEFAULT_LIMIT),
        knowledge.fetch_wikidata_pois(client, caches.wikidata, lat, lon, radius_m),
        collector.fetch_overpass_pois(client, lat, lon, radius_m),
        collector.fetch_geoapify_places(client, lat, lon, radius_m),
        collector.fetch_google_places(client, lat, lon, radius_m),
        collector.fetch_nearest_waterways(client, lat, lon, wide_radius),
        indicators.fetch_flood_risk(client, lat, lon),
        indicators.fetch_air_quality(client, lat, lon),
        indicators.fetch_land_cover(client, lat, lon),
        return_exceptions=True,
    )
    place = _settle("reverse_geocode", results[0], None)
    weather_result = _settle("weather", results[1], None)
    nearby = _settle("knowledge", results[2], [])
    wikidata_pois = _settle("wikidata", results[3], [])
    osm_pois = _settle("overpass", results[4], [])
    geoapify_pois = _settle("geoapify", results[5], [])
    google_pois = _settle("google_places", results[6], [])
    waterways = _settle("waterways", results[7], [])
    flood = indicators.ensure_flood_risk(_settle("flood_risk", results[8], None))
    air = indicators.ensure_air_quality(_settle("air_quality", results[9], None))
    land_cover = _settle("land_cover", results[10], None)
    flood = indicators.apply_flood_proxy(flood, waterways)

    center = (lat, lon)
    merged, extras = pois.categorize(osm_pois, center)
    for external in (geoapify_pois, google_pois, wikidata_pois):
        mapped, more_extras = pois.categorize(external, center)
        merged = pois.merge(merged, mapped)
        extras += more_extras

    sources = ContextSources(
        nominatim=place is not None,
        overpass=bool(osm_pois),
        geoapify=bool(geoapify_pois),
        google_places=bool(google_pois),
        wikipedia=bool(nearby),
        wikidata=bool(wikidata_pois),
        open_meteo=weather_result is not None and (
            weather_result.weather is not None or weather_result.elevation_m is not None
        ),
        flood_wms=flood.ok,
        corine=land_cover is not None,
        cams=air.ok,
    )

    warnings = []
    if place is None:
        warnings.append("Sin geocodificacion inversa (Nominatim)")
    if land_cover is None:
        warnings.append("Sin datos de uso del suelo CLC/OSM")
    if not flood.ok:
        warnings.append("Servicio de inundacion no disponible")
    elif flood.status == "VISUAL_ONLY":
        warnings.append("Riesgo inundacion disponible solo como capa visual")
    if not air.ok:
        warnings.append("Servicio CAMS no disponible")
    elif air.status == "VISUAL_ONLY":
        warnings.append("Calidad del aire disponible solo como capa visual")
    if not sources.overpass and not merged.restaurants:
        warnings.append("POIs limitados: usando fuentes alternativas")
    if not sources.open_meteo:
        warnings.append("Meteorologia no disponible (Open-Meteo)")

    context = ContextData(
        center=Coordinate(lat=lat, lon=lon),
        radius_m=radius_m,
        place=place,
        pois=merged,
        poi_summary=pois.summarize(merged),
        external_pois=extras,
        wikipedia_nearby=nearby,
        environment=EnvironmentInfo(
            nearest_waterways=waterways,
            is_coastal=collector.is_coastal(waterways),
        ),
        flood_risk=flood,
        air_quality=air,
        land_cover=land_cover,
        weather=weather_result.weather if weather_result else None,
        elevation_m=weather_result.elevation_m if weather_result else None,
        sources=sources,
    )
    place_name = (place.display_name or place.name) if place else None
    logger.info(
        "Context for (%.5f, %.5f) r=%dm: %d POIs, %d extras, %d warnings",
        lat, lon, radius_m, context.poi_summary.total, len(extras), len(warnings),
    )
    return ContextResult(context=context, place_name=place_name, warnings=warnings)
