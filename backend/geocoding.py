"""Forward and reverse geocoding against Nominatim (OpenStreetMap)."""

import logging

import httpx

import config
from models import AddressInfo, ForwardGeocodeResult, ReverseGeocodeResult
from upstream import get_json, to_number, to_str

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = list(AddressInfo.model_fields)

# Probed in order; the first non-empty value names the municipality.
MUNICIPALITY_FIELDS = ["municipality", "city", "town", "village", "county"]


async def forward_geocode(client: httpx.AsyncClient, query: str) -> ForwardGeocodeResult | None:
    """Best (first) Nominatim match for a free-text query, or None."""
    if not query or not query.strip():
        raise ValueError("Missing address")

    data = await get_json(
        client,
        f"{config.NOMINATIM_BASE_URL}/search",
        {
            "format": "jsonv2",
            "q": query.strip(),
            "limit": 1,
            "addressdetails": 1,
            "accept-language": "es",
        },
    )
    if not isinstance(data, list) or not data:
        logger.info("No geocoding results for %r", query)
        return None

    item = data[0]
    if not isinstance(item, dict):
        return None

    lat = to_number(item.get("lat"))
    lon = to_number(item.get("lon"))
    display_name = to_str(item.get("display_name"))
    if lat is None or lon is None or not display_name:
        logger.warning("Malformed geocoding result for %r", query)
        return None

    importance = item.get("importance")
    return ForwardGeocodeResult(
        lat=lat,
        lon=lon,
        display_name=display_name,
        importance=importance if isinstance(importance, (int, float)) else None,
        type=to_str(item.get("type")),
        category=to_str(item.get("class")) or to_str(item.get("category")),
    )


def _parse_address(raw: dict) -> AddressInfo:
    return AddressInfo(**{field: to_str(raw.get(field)) for field in ADDRESS_FIELDS})


def _municipality(raw: dict) -> str | None:
    for field in MUNICIPALITY_FIELDS:
        value = to_str(raw.get(field))
        if value:
            return value
    return None


async def reverse_geocode(client: httpx.AsyncClient, lat: float, lon: float) -> ReverseGeocodeResult | None:
    """Human label and administrative breakdown for a point, or None."""
    data = await get_json(
        client,
        f"{config.NOMINATIM_BASE_URL}/reverse",
        {
            "format": "jsonv2",
            "lat": lat,
            "lon": lon,
            "addressdetails": 1,
            "accept-language": "es",
        },
    )
    # Nominatim answers {"error": "Unable to geocode"} for open water.
    if not isinstance(data, dict) or "error" in data:
        return None

    raw_address = data.get("address") if isinstance(data.get("address"), dict) else None
    display_name = to_str(data.get("display_name"))

    return ReverseGeocodeResult(
        name=to_str(data.get("name")) or (to_str(raw_address.get("road")) if raw_address else None),
        display_name=display_name,
        category=to_str(data.get("category")) or to_str(data.get("class")),
        type=to_str(data.get("type")),
        address_line=display_name,
        municipality=_municipality(raw_address) if raw_address else None,
        address=_parse_address(raw_address) if raw_address else None,
    )
