"""Nearby knowledge: Wikipedia entries (geosearch, then one batched detail call)
and geotagged Wikidata items (SPARQL around query)."""

import logging
import re

import httpx

import config
from cache import TTLCache
from geo import haversine
from models import ExternalPoi, NearbyItem
from upstream import get_json, request_json, to_number, to_str

logger = logging.getLogger(__name__)


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def knowledge_cache_key(lat: float, lon: float, radius: int, limit: int) -> str:
    return f"{lat:.4f}:{lon:.4f}:{radius}:{limit}"


async def fetch_geosearch(
    client: httpx.AsyncClient,
    lat: float,
    lon: float,
    radius: int,
    limit: int,
) -> list[dict]:
    """Phase 1: candidate pages {pageid, title, lat, lon, dist?} around a point."""
    data = await get_json(
        client,
        config.WIKIPEDIA_API_URL,
        {
            "action": "query",
            "format": "json",
            "list": "geosearch",
            "gscoord": f"{lat}|{lon}",
            "gsradius": radius,
            "gslimit": limit,
            "gsprop": "type|name|country|region|globe",
        },
    )
    if not isinstance(data, dict):
        return []
    query = data.get("query") if isinstance(data.get("query"), dict) else {}
    raw_items = query.get("geosearch")
    if not isinstance(raw_items, list):
        return []

    candidates = []
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        pageid = to_number(item.get("pageid"))
        title = to_str(item.get("title"))
        item_lat = to_number(item.get("lat"))
        item_lon = to_number(item.get("lon"))
        if not pageid or not title or item_lat is None or item_lon is None:
            continue
        candidates.append({
            "pageid": int(pageid),
            "title": title,
            "lat": item_lat,
            "lon": item_lon,
            "dist": to_number(item.get("dist")),
        })
    return candidates


async def fetch_page_details(client: httpx.AsyncClient, page_ids: list[int]) -> dict[int, dict]:
    """Phase 2: extract/description/url/thumbnail keyed by page id."""
    if not page_ids:
        return {}
    data = await get_json(
        client,
        config.WIKIPEDIA_API_URL,
        {
            "action": "query",
            "format": "json",
            "prop": "extracts|pageimages|description|info",
            "inprop": "url",
            "pageids": "|".join(str(pid) for pid in page_ids),
            "exintro": 1,
            "explaintext": 1,
            "pithumbsize": 240,
        },
    )
    if not isinstance(data, dict):
        return {}
    query = data.get("query") if isinstance(data.get("query"), dict) else {}
    pages = query.get("pages")
    if not isinstance(pages, dict):
        return {}

    details: dict[int, dict] = {}
    for page in pages.values():
        if isinstance(page, dict) and isinstance(page.get("pageid"), int):
            details[page["pageid"]] = page
    return details


async def _fetch_nearby_uncached(
    client: httpx.AsyncClient,
    lat: float,
    lon: float,
    radius: int,
    limit: int,
) -> list[NearbyItem]:
    candidates = await fetch_geosearch(client, lat, lon, radius, limit)
    if not candidates:
        return []

    pages = await fetch_page_details(client, [c["pageid"] for c in candidates])

    results = []
    for cand in candidates:
        page = pages.get(cand["pageid"], {})
        if cand["dist"] is not None:
            distance = round(cand["dist"])
        else:
            distance = round(haversine(lat, lon, cand["lat"], cand["lon"]))
        thumbnail = page.get("thumbnail") if isinstance(page.get("thumbnail"), dict) else {}
        results.append(NearbyItem(
            pageid=cand["pageid"],
            title=to_str(page.get("title")) or cand["title"],
            extract=to_str(page.get("extract")),
            description=to_str(page.get("description")),
            url=to_str(page.get("fullurl")),
            distance_m=distance,
            lat=cand["lat"],
            lon=cand["lon"],
            thumbnail=to_str(thumbnail.get("source")),
        ))
    return results


async def fetch_nearby(
    client: httpx.AsyncClient,
    cache: TTLCache,
    lat: float,
    lon: float,
    radius_m: float,
    limit: int = 6,
) -> list[NearbyItem]:
    """Encyclopedic entries near a point; empty results are cached too."""
    radius = _clamp(round(radius_m), config.KNOWLEDGE_MIN_RADIUS_M, config.KNOWLEDGE_MAX_RADIUS_M)
    limit = _clamp(limit, 1, config.KNOWLEDGE_MAX_LIMIT)
    return await cache.get_or_fetch(
        knowledge_cache_key(lat, lon, radius, limit),
        lambda: _fetch_nearby_uncached(client, lat, lon, radius, limit),
    )


# --- Wikidata ---

WKT_POINT_RE = re.compile(r"Point\(([-\d.]+)\s+([-\d.]+)\)", re.IGNORECASE)
ENTITY_ID_RE = re.compile(r"Q\d+")


def build_wikidata_query(lat: float, lon: float, radius_km: float, limit: int) -> str:
    return f"""PREFIX wikibase: <http://wikiba.se/ontology#>
PREFIX wdt: <http://www.wikidata.org/prop/direct/>
PREFIX schema: <http://schema.org/>
PREFIX geo: <http://www.opengis.net/ont/geosparql#>
PREFIX bd: <http://www.bigdata.com/rdf#>
SELECT ?item ?itemLabel ?itemDescription ?dist ?coord
       (GROUP_CONCAT(DISTINCT ?typeLabel; separator="|") AS ?types)
       (SAMPLE(?article) AS ?article)
WHERE {{
  SERVICE wikibase:around {{
    ?item wdt:P625 ?coord .
    bd:serviceParam wikibase:center "Point({lon} {lat})"^^geo:wktLiteral .
    bd:serviceParam wikibase:radius "{radius_km}" .
    bd:serviceParam wikibase:distance ?dist .
  }}
  OPTIONAL {{ ?item wdt:P31 ?type . }}
  OPTIONAL {{
    ?article schema:about ?item;
             schema:isPartOf <https://es.wikipedia.org/> .
  }}
  SERVICE wikibase:label {{ bd:serviceParam wikibase:language "es,en" . }}
}}
GROUP BY ?item ?itemLabel ?itemDescription ?dist ?coord
ORDER BY ?dist
LIMIT {limit}"""


def parse_wkt_point(value: str | None) -> tuple[float | None, float | None]:
    match = WKT_POINT_RE.search(value or "")
    if not match:
        return None, None
    lon, lat = to_number(match.group(1)), to_number(match.group(2))
    if lat is None or lon is None:
        return None, None
    return lat, lon


def _binding(row: dict, name: str) -> str | None:
    cell = row.get(name)
    return to_str(cell.get("value")) if isinstance(cell, dict) else None


def parse_wikidata_row(row: dict, lat: float, lon: float) -> ExternalPoi | None:
    match = ENTITY_ID_RE.search(_binding(row, "item") or "")
    if not match:
        return None
    entity_id = match.group(0)
    item_lat, item_lon = parse_wkt_point(_binding(row, "coord"))
    dist_km = to_number(_binding(row, "dist"))
    if dist_km is not None:
        distance = round(dist_km * 1000)
    elif item_lat is not None and item_lon is not None:
        distance = round(haversine(lat, lon, item_lat, item_lon))
    else:
        distance = None
    types = [t.strip() for t in (_binding(row, "types") or "").split("|") if t.strip()]
    wikidata_url = f"https://www.wikidata.org/wiki/{entity_id}"
    return ExternalPoi(
        name=_binding(row, "itemLabel") or f"Elemento {entity_id}",
        source="Wikidata",
        lat=item_lat,
        lon=item_lon,
        distance_m=distance,
        category=types[0] if types else None,
        kinds=types,
        url=_binding(row, "article") or wikidata_url,
        raw={"id": entity_id, "description": _binding(row, "itemDescription"), "wikidata_url": wikidata_url},
    )


async def _fetch_wikidata_uncached(
    client: httpx.AsyncClient,
    lat: float,
    lon: float,
    radius_km: float,
    limit: int,
) -> list[ExternalPoi]:
    data = await request_json(
        client,
        "POST",
        config.WIKIDATA_SPARQL_URL,
        content=build_wikidata_query(lat, lon, radius_km, limit),
        headers={
            "User-Agent": config.USER_AGENT,
            "Content-Type": "application/sparql-query",
            "Accept": "application/sparql-results+json",
        },
    )
    results = data.get("results") if isinstance(data, dict) else None
    bindings = results.get("bindings") if isinstance(results, dict) else None
    if not isinstance(bindings, list):
        return []
    pois = [parse_wikidata_row(row, lat, lon) for row in bindings if isinstance(row, dict)]
    return [p for p in pois if p is not None]


async def fetch_wikidata_pois(
    client: httpx.AsyncClient,
    cache: TTLCache,
    lat: float,
    lon: float,
    radius_m: float,
    limit: int = 8,
) -> list[ExternalPoi]:
    """Geotagged Wikidata items around a point as raw POIs, nearest first."""
    radius_km = min(max(radius_m / 1000, 0.5), 8)
    limit = _clamp(limit, 1, 20)
    return await cache.get_or_fetch(
        f"{knowledge_cache_key(lat, lon, round(radius_km * 1000), limit)}:wikidata",
        lambda: _fetch_wikidata_uncached(client, lat, lon, radius_km, limit),
    )
