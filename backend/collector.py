"""POI providers: Overpass (OSM), Geoapify Places and Google Places nearby search.

Every provider returns raw ExternalPoi records for the categorizer:
- one attempt per call, no retry;
- HTTP errors, timeouts and malformed payloads yield [];
- providers without a configured API key are skipped.

Also fetches nearby waterways / coastline from Overpass for the
environment block of the context.
"""

import logging

import httpx

import config
from geo import haversine
from models import ExternalPoi, WaterwayInfo
from upstream import get_json, request_json, to_number, to_str

logger = logging.getLogger(__name__)

# OSM tag values requested from Overpass per tag key. Key order decides which
# tag classifies an element carrying several of them.
OSM_QUERY_TAGS: dict[str, list[str]] = {
    "amenity": [
        "restaurant", "fast_food", "bar", "pub", "nightclub", "cafe", "pharmacy",
        "hospital", "clinic", "doctors", "school", "college", "university", "bus_station",
    ],
    "shop": ["supermarket"],
    "tourism": ["hotel", "hostel", "guest_house", "attraction", "museum", "viewpoint"],
    "highway": ["bus_stop"],
    "public_transport": ["platform", "station"],
}

# Tag keys renamed when used as the category; "public_transport" would otherwise
# match the "pub" keyword.
OSM_CATEGORY_ALIASES = {"public_transport": "transport"}

# Spanish labels for unnamed OSM features, keyed by tag value.
UNNAMED_LABELS: dict[str, str] = {
    "restaurant": "Restaurante",
    "fast_food": "Fast food",
    "bar": "Bar",
    "pub": "Bar",
    "nightclub": "Club",
    "cafe": "Cafe",
    "pharmacy": "Farmacia",
    "hospital": "Hospital",
    "clinic": "Hospital",
    "doctors": "Consulta medica",
    "school": "Colegio",
    "college": "Colegio",
    "university": "Universidad",
    "supermarket": "Supermercado",
    "bus_stop": "Parada de bus",
    "bus_station": "Estacion de bus",
    "platform": "Parada de transporte",
    "station": "Estacion",
    "hotel": "Hotel",
    "hostel": "Hostal",
    "guest_house": "Casa de huespedes",
    "attraction": "Atraccion",
    "museum": "Museo",
    "viewpoint": "Mirador",
}

GEOAPIFY_CATEGORIES = [
    "catering.restaurant",
    "catering.fast_food",
    "catering.cafe",
    "catering.bar",
    "catering.pub",
    "entertainment.nightclub",
    "commercial.supermarket",
    "service.pharmacy",
    "healthcare.hospital",
    "education.school",
    "accommodation.hotel",
    "tourism.attraction",
    "entertainment.museum",
    "tourism.sights.viewpoint",
]

GOOGLE_PLACE_TYPES = [
    "restaurant",
    "cafe",
    "bar",
    "night_club",
    "pharmacy",
    "hospital",
    "school",
    "supermarket",
    "transit_station",
    "tourist_attraction",
    "museum",
]


# --- Overpass ---

def _tag_filter(key: str, values: list[str]) -> str:
    if len(values) == 1:
        return f'["{key}"="{values[0]}"]'
    return f'["{key}"~"^({"|".join(values)})$"]'


def build_overpass_query(lat: float, lon: float, radius_m: int) -> str:
    around = f"(around:{radius_m},{lat},{lon})"
    lines = [f"  nwr{_tag_filter(key, values)}{around};" for key, values in OSM_QUERY_TAGS.items()]
    return "[out:json][timeout:25];\n(\n" + "\n".join(lines) + "\n);\nout center 120;\n"


def _element_coords(element: dict) -> tuple[float | None, float | None]:
    center = element.get("center") if isinstance(element.get("center"), dict) else {}
    lat = to_number(element.get("lat"))
    lon = to_number(element.get("lon"))
    if lat is None or lon is None:
        lat, lon = to_number(center.get("lat")), to_number(center.get("lon"))
    return lat, lon


def _parse_overpass_element(element: dict) -> ExternalPoi | None:
    tags = element.get("tags") if isinstance(element.get("tags"), dict) else {}
    # The first requested key whose value was requested too; an element tagged
    # amenity=place_of_worship + tourism=attraction classifies as tourism.
    tag_key = next((k for k, values in OSM_QUERY_TAGS.items() if tags.get(k) in values), None)
    if tag_key is None:
        return None
    tag_value = tags[tag_key]

    name = next((tags[k].strip() for k in ("name", "brand", "operator") if to_str(tags.get(k)) and tags[k].strip()), None)
    if name is None:
        label = UNNAMED_LABELS.get(tag_value)
        if label is None:
            return None
        name = f"{label} (sin nombre)"

    lat, lon = _element_coords(element)
    return ExternalPoi(
        name=name,
        source="OSM",
        lat=lat,
        lon=lon,
        category=OSM_CATEGORY_ALIASES.get(tag_key, tag_key),
        kinds=[tag_value],
        url=to_str(tags.get("website")),
        raw={"osm_type": element.get("type"), "osm_id": element.get("id")},
    )


async def fetch_overpass_pois(client: httpx.AsyncClient, lat: float, lon: float, radius_m: int) -> list[ExternalPoi]:
    data = await request_json(
        client,
        "POST",
        config.OVERPASS_URL,
        content=build_overpass_query(lat, lon, radius_m),
        headers={"User-Agent": config.USER_AGENT, "Content-Type": "text/plain"},
    )
    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        return []
    pois = []
    outside = 0
    for element in data["elements"]:
        if not isinstance(element, dict):
            continue
        poi = _parse_overpass_element(element)
        if poi is None:
            continue
        # `around` matches ways and relations by any member node, so their
        # center can sit well outside the radius.
        if poi.lat is not None and poi.lon is not None and haversine(lat, lon, poi.lat, poi.lon) > radius_m:
            outside += 1
            continue
        pois.append(poi)
    logger.info("Overpass: %d POIs within %dm (%d centers outside dropped)", len(pois), radius_m, outside)
    return pois


def build_waterway_query(lat: float, lon: float, radius_m: int) -> str:
    around = f"(around:{radius_m},{lat},{lon})"
    return (
        "[out:json][timeout:25];\n(\n"
        f'  way["waterway"~"river|stream|canal"]{around};\n'
        f'  way["natural"="coastline"]{around};\n'
        f'  nwr["natural"="water"]{around};\n'
        ");\nout center 60;\n"
    )


async def fetch_nearest_waterways(
    client: httpx.AsyncClient,
    lat: float,
    lon: float,
    radius_m: int,
    limit: int = 5,
) -> list[WaterwayInfo]:
    """Waterways and coastline around a point, nearest first."""
    data = await request_json(
        client,
        "POST",
        config.OVERPASS_URL,
        content=build_waterway_query(lat, lon, radius_m),
        headers={"User-Agent": config.USER_AGENT, "Content-Type": "text/plain"},
    )
    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        return []

    found: list[WaterwayInfo] = []
    for element in data["elements"]:
        if not isinstance(element, dict):
            continue
        tags = element.get("tags") if isinstance(element.get("tags"), dict) else {}
        el_lat, el_lon = _element_coords(element)
        if el_lat is None or el_lon is None:
            continue
        if to_str(tags.get("waterway")):
            wtype = tags["waterway"]
        elif tags.get("natural") == "coastline":
            wtype = "coastline"
        else:
            wtype = to_str(tags.get("water")) or "water"
        found.append(WaterwayInfo(
            name=to_str(tags.get("name")),
            type=wtype,
            distance_m=round(haversine(lat, lon, el_lat, el_lon)),
        ))
    found.sort(key=lambda w: w.distance_m)
    return found[:limit]


def is_coastal(waterways: list[WaterwayInfo]) -> bool | None:
    """Tri-state coastal flag: None when nothing was found to judge from."""
    if not waterways:
        return None
    return any("coastline" in w.type.lower() for w in waterways)


# --- Geoapify ---

def _parse_geoapify_feature(feature: dict) -> ExternalPoi | None:
    props = feature.get("properties") if isinstance(feature.get("properties"), dict) else {}
    name = to_str(props.get("name")) or to_str(props.get("address_line1"))
    if not name:
        return None
    categories = [c for c in props.get("categories") or [] if isinstance(c, str)]
    geometry = feature.get("geometry") if isinstance(feature.get("geometry"), dict) else {}
    coords = geometry.get("coordinates")
    lon, lat = (to_number(coords[0]), to_number(coords[1])) if isinstance(coords, list) and len(coords) >= 2 else (None, None)
    distance = to_number(props.get("distance"))
    return ExternalPoi(
        name=name,
        source="Geoapify",
        lat=lat,
        lon=lon,
        distance_m=round(distance) if distance is not None else None,
        category=categories[0] if categories else None,
        kinds=categories,
        url=to_str(props.get("website")),
        raw=props,
    )


async def fetch_geoapify_places(
    client: httpx.AsyncClient,
    lat: float,
    lon: float,
    radius_m: int,
    limit: int = 60,
) -> list[ExternalPoi]:
    if not config.GEOAPIFY_API_KEY:
        return []
    data = await get_json(
        client,
        config.GEOAPIFY_API_URL,
        {
            "categories": ",".join(GEOAPIFY_CATEGORIES),
            "filter": f"circle:{lon},{lat},{round(radius_m)}",
            "bias": f"proximity:{lon},{lat}",
            "limit": min(max(limit, 10), 100),
            "apiKey": config.GEOAPIFY_API_KEY,
        },
    )
    if not isinstance(data, dict) or not isinstance(data.get("features"), list):
        return []
    pois = [_parse_geoapify_feature(f) for f in data["features"] if isinstance(f, dict)]
    return [p for p in pois if p is not None]


# --- Google Places ---

def _parse_place(result: dict) -> ExternalPoi | None:
    name = to_str(result.get("name"))
    if not name:
        return None
    location = (result.get("geometry") or {}).get("location") or {}
    types = [t for t in result.get("types") or [] if isinstance(t, str)]
    return ExternalPoi(
        name=name,
        source="Google Places",
        lat=to_number(location.get("lat")),
        lon=to_number(location.get("lng")),
        category=types[0] if types else None,
        kinds=types,
        raw={
            "place_id": result.get("place_id"),
            "rating": result.get("rating"),
            "user_ratings_total": result.get("user_ratings_total"),
        },
    )


async def fetch_google_places(client: httpx.AsyncClient, lat: float, lon: float, radius_m: int) -> list[ExternalPoi]:
    """One nearby search per configured type, deduped by place_id."""
    if not config.GOOGLE_MAPS_API_KEY:
        return []

    seen: dict[str, ExternalPoi] = {}
    for poi_type in GOOGLE_PLACE_TYPES:
        data = await get_json(
            client,
            config.GOOGLE_PLACES_URL,
            {
                "key": config.GOOGLE_MAPS_API_KEY,
                "location": f"{lat},{lon}",
                "radius": radius_m,
                "type": poi_type,
            },
        )
        if not isinstance(data, dict):
            continue
        status = data.get("status", "")
        if status == "ZERO_RESULTS":
            continue
        if status != "OK":
            logger.error("Google Places status=%s: %s", status, data.get("error_message", ""))
            # REQUEST_DENIED / OVER_QUERY_LIMIT apply to every type; stop here.
            break
        for result in data.get("results", []):
            if not isinstance(result, dict):
                continue
            poi = _parse_place(result)
            if poi is not None:
                seen.setdefault(result.get("place_id") or f"{poi.name}:{poi.lat}:{poi.lon}", poi)
    return list(seen.values())
