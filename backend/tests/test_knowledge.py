"""Tests for the Wikipedia and Wikidata nearby clients."""

import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from cache import TTLCache
from knowledge import fetch_nearby, fetch_wikidata_pois, knowledge_cache_key, parse_wikidata_row

GEOSEARCH = {
    "query": {
        "geosearch": [
            {"pageid": 101, "title": "Puerta del Sol", "lat": 40.4169, "lon": -3.7035, "dist": 12.6},
            {"pageid": 102, "title": "Casa de Correos", "lat": 40.4166, "lon": -3.7037},
            {"title": "Sin id", "lat": 40.0, "lon": -3.0},
        ]
    }
}

DETAILS = {
    "query": {
        "pages": {
            "101": {
                "pageid": 101,
                "title": "Puerta del Sol",
                "extract": "Plaza de Madrid.",
                "description": "plaza",
                "fullurl": "https://es.wikipedia.org/wiki/Puerta_del_Sol",
                "thumbnail": {"source": "https://upload.example/sol.jpg"},
            }
        }
    }
}


class Wiki:
    def __init__(self, details_status=200):
        self.details_status = details_status
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if request.url.params.get("list") == "geosearch":
            return httpx.Response(200, json=GEOSEARCH)
        if self.details_status != 200:
            return httpx.Response(self.details_status)
        return httpx.Response(200, json=DETAILS)


@pytest.mark.asyncio
async def test_fetch_nearby_joins_details():
    wiki = Wiki()
    async with httpx.AsyncClient(transport=httpx.MockTransport(wiki)) as client:
        items = await fetch_nearby(client, TTLCache("knowledge", 900), 40.4168, -3.7038, 1200)

    assert [i.pageid for i in items] == [101, 102]
    sol, correos = items
    assert sol.distance_m == 13
    assert sol.extract == "Plaza de Madrid."
    assert sol.thumbnail == "https://upload.example/sol.jpg"
    assert correos.extract is None
    assert correos.distance_m is not None  # haversine fallback
    assert len(wiki.calls) == 2
    assert wiki.calls[1].url.params["pageids"] == "101|102"


@pytest.mark.asyncio
async def test_details_failure_keeps_candidates():
    wiki = Wiki(details_status=500)
    async with httpx.AsyncClient(transport=httpx.MockTransport(wiki)) as client:
        items = await fetch_nearby(client, TTLCache("knowledge", 900), 40.4168, -3.7038, 1200)
    assert [i.title for i in items] == ["Puerta del Sol", "Casa de Correos"]
    assert all(i.url is None for i in items)


@pytest.mark.asyncio
async def test_radius_and_limit_are_clamped():
    wiki = Wiki()
    async with httpx.AsyncClient(transport=httpx.MockTransport(wiki)) as client:
        await fetch_nearby(client, TTLCache("knowledge", 900), 40.0, -3.0, 50, limit=99)
    params = wiki.calls[0].url.params
    assert params["gsradius"] == "300"
    assert params["gslimit"] == "12"


@pytest.mark.asyncio
async def test_empty_result_is_cached():
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"query": {"geosearch": []}})

    cache = TTLCache("knowledge", 900)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await fetch_nearby(client, cache, 10.0, 10.0, 1000) == []
        assert await fetch_nearby(client, cache, 10.0, 10.0, 1000) == []
    assert calls == 1  # no detail call, no second geosearch


def test_cache_key_format():
    assert knowledge_cache_key(40.41678, -3.70379, 1200, 6) == "40.4168:-3.7038:1200:6"


SPARQL = {
    "results": {
        "bindings": [
            {
                "item": {"type": "uri", "value": "http://www.wikidata.org/entity/Q1128441"},
                "itemLabel": {"type": "literal", "value": "Puerta del Sol"},
                "itemDescription": {"type": "literal", "value": "plaza de Madrid"},
                "dist": {"type": "literal", "value": "0.035"},
                "coord": {"type": "literal", "value": "Point(-3.7035 40.4169)"},
                "types": {"type": "literal", "value": "plaza|tourist attraction"},
                "article": {"type": "uri", "value": "https://es.wikipedia.org/wiki/Puerta_del_Sol"},
            },
            {"item": {"type": "uri", "value": "http://example.org/no-entity"}},
        ]
    }
}


@pytest.mark.asyncio
async def test_fetch_wikidata_pois_parses_bindings():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=SPARQL)

    cache = TTLCache("wikidata", 60)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        pois = await fetch_wikidata_pois(client, cache, 40.4168, -3.7038, 1200)
        again = await fetch_wikidata_pois(client, cache, 40.4168, -3.7038, 1200)

    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert seen[0].headers["content-type"] == "application/sparql-query"
    assert 'wikibase:radius "1.2"' in seen[0].content.decode()
    assert again == pois
    assert len(pois) == 1
    poi = pois[0]
    assert poi.source == "Wikidata"
    assert poi.name == "Puerta del Sol"
    assert poi.distance_m == 35
    assert (poi.lat, poi.lon) == (40.4169, -3.7035)
    assert poi.category == "plaza"
    assert poi.kinds == ["plaza", "tourist attraction"]
    assert poi.url == "https://es.wikipedia.org/wiki/Puerta_del_Sol"


def test_wikidata_row_without_label_or_coords():
    row = {"item": {"value": "http://www.wikidata.org/entity/Q42"}}
    poi = parse_wikidata_row(row, 40.0, -3.0)
    assert poi.name == "Elemento Q42"
    assert poi.lat is None and poi.distance_m is None
    assert poi.url == "https://www.wikidata.org/wiki/Q42"


@pytest.mark.asyncio
async def test_fetch_wikidata_pois_failure_is_empty():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda req: httpx.Response(500))) as client:
        assert await fetch_wikidata_pois(client, TTLCache("wikidata", 60), 40.0, -3.0, 1000) == []
