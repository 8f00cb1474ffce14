"""Tests for the Overpass, Geoapify and Google Places collectors."""

import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import collector
from models import WaterwayInfo

OVERPASS = {
    "elements": [
        {"type": "node", "id": 1, "lat": 40.4170, "lon": -3.7040, "tags": {"amenity": "restaurant", "name": "Casa Pepe"}},
        {"type": "way", "id": 2, "center": {"lat": 40.4175, "lon": -3.7030}, "tags": {"amenity": "cafe"}},
        {"type": "node", "id": 3, "lat": 40.4160, "lon": -3.7030, "tags": {"public_transport": "platform", "name": "Sol"}},
        {"type": "node", "id": 4, "lat": 40.4160, "lon": -3.7030, "tags": {"amenity": "bench"}},
        {"type": "node", "id": 5, "lat": 40.4160, "lon": -3.7030, "tags": {"building": "yes"}},
    ]
}


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_overpass_query_lists_every_tag_family():
    query = collector.build_overpass_query(40.0, -3.0, 1200)
    assert "(around:1200,40.0,-3.0)" in query
    for key in collector.OSM_QUERY_TAGS:
        assert f'["{key}"' in query
    assert '["shop"="supermarket"]' in query
    assert "doctors" in query
    assert "out center" in query


def test_classifies_by_first_requested_tag_value():
    worship = {"type": "node", "id": 7, "lat": 40.4, "lon": -3.7,
               "tags": {"amenity": "place_of_worship", "tourism": "attraction", "name": "San Gines"}}
    arts = {"type": "node", "id": 8, "lat": 40.4, "lon": -3.7,
            "tags": {"amenity": "arts_centre", "tourism": "museum", "name": "Museo Y"}}
    both = {"type": "node", "id": 9, "lat": 40.4, "lon": -3.7,
            "tags": {"amenity": "cafe", "tourism": "museum", "name": "Cafe del Museo"}}

    poi = collector._parse_overpass_element(worship)
    assert (poi.category, poi.kinds) == ("tourism", ["attraction"])
    poi = collector._parse_overpass_element(arts)
    assert (poi.category, poi.kinds) == ("tourism", ["museum"])
    poi = collector._parse_overpass_element(both)
    assert (poi.category, poi.kinds) == ("amenity", ["cafe"])


def test_unrequested_tag_values_are_skipped():
    element = {"type": "node", "id": 10, "lat": 40.4, "lon": -3.7,
               "tags": {"amenity": "place_of_worship", "name": "San Gines"}}
    assert collector._parse_overpass_element(element) is None


def test_doctors_parsed_without_name():
    element = {"type": "node", "id": 11, "lat": 40.4, "lon": -3.7, "tags": {"amenity": "doctors"}}
    poi = collector._parse_overpass_element(element)
    assert poi.name == "Consulta medica (sin nombre)"
    assert poi.kinds == ["doctors"]


@pytest.mark.asyncio
async def test_fetch_overpass_pois_parses_elements():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=OVERPASS)

    async with client_for(handler) as client:
        pois = await collector.fetch_overpass_pois(client, 40.4168, -3.7038, 1200)

    assert seen[0].method == "POST"
    assert [p.name for p in pois] == ["Casa Pepe", "Cafe (sin nombre)", "Sol"]
    restaurant, cafe, platform = pois
    assert restaurant.category == "amenity"
    assert restaurant.kinds == ["restaurant"]
    assert restaurant.source == "OSM"
    assert cafe.lat == 40.4175  # taken from the way center
    assert platform.category == "transport"
    assert platform.raw == {"osm_type": "node", "osm_id": 3}


@pytest.mark.asyncio
async def test_fetch_overpass_pois_drops_centers_outside_radius():
    payload = {
        "elements": [
            # Way matched by one member node; its center is ~2 km north.
            {"type": "way", "id": 20, "center": {"lat": 40.4349, "lon": -3.7038},
             "tags": {"tourism": "attraction", "name": "Parque lejano"}},
            {"type": "node", "id": 21, "lat": 40.4180, "lon": -3.7038,
             "tags": {"amenity": "pharmacy", "name": "Farmacia Sol"}},
        ]
    }
    async with client_for(lambda req: httpx.Response(200, json=payload)) as client:
        pois = await collector.fetch_overpass_pois(client, 40.4168, -3.7038, 500)

    assert [p.name for p in pois] == ["Farmacia Sol"]


@pytest.mark.asyncio
async def test_fetch_overpass_pois_upstream_failure():
    async with client_for(lambda req: httpx.Response(504)) as client:
        assert await collector.fetch_overpass_pois(client, 40.0, -3.0, 500) == []


@pytest.mark.asyncio
async def test_fetch_nearest_waterways_sorted_and_limited():
    payload = {
        "elements": [
            {"type": "way", "center": {"lat": 40.43, "lon": -3.72}, "tags": {"waterway": "river", "name": "Manzanares"}},
            {"type": "way", "center": {"lat": 40.418, "lon": -3.704}, "tags": {"natural": "water", "water": "pond"}},
            {"type": "way", "tags": {"waterway": "canal"}},
        ]
    }
    async with client_for(lambda req: httpx.Response(200, json=payload)) as client:
        waterways = await collector.fetch_nearest_waterways(client, 40.4168, -3.7038, 2400)

    assert [w.type for w in waterways] == ["pond", "river"]
    assert waterways[0].distance_m <= waterways[1].distance_m
    assert waterways[1].name == "Manzanares"


def test_is_coastal_tri_state():
    assert collector.is_coastal([]) is None
    assert collector.is_coastal([WaterwayInfo(type="river", distance_m=10)]) is False
    assert collector.is_coastal([WaterwayInfo(type="river", distance_m=10), WaterwayInfo(type="coastline", distance_m=900)]) is True


@pytest.mark.asyncio
async def test_geoapify_skipped_without_key(monkeypatch):
    monkeypatch.setattr(collector.config, "GEOAPIFY_API_KEY", "")
    calls = []
    async with client_for(lambda req: calls.append(req) or httpx.Response(200, json={})) as client:
        assert await collector.fetch_geoapify_places(client, 40.0, -3.0, 1000) == []
    assert calls == []


@pytest.mark.asyncio
async def test_geoapify_features(monkeypatch):
    monkeypatch.setattr(collector.config, "GEOAPIFY_API_KEY", "test-key")
    payload = {
        "features": [
            {
                "geometry": {"coordinates": [-3.7036, 40.4171]},
                "properties": {"name": "Museo X", "categories": ["entertainment.museum"], "distance": 45.4},
            },
            {"geometry": {"coordinates": [-3.7, 40.4]}, "properties": {"categories": ["catering.cafe"]}},
        ]
    }
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=payload)

    async with client_for(handler) as client:
        pois = await collector.fetch_geoapify_places(client, 40.4168, -3.7038, 1000)

    assert len(pois) == 1
    assert pois[0].category == "entertainment.museum"
    assert pois[0].distance_m == 45
    assert pois[0].lat == 40.4171 and pois[0].lon == -3.7036
    assert seen[0].url.params["filter"] == "circle:-3.7038,40.4168,1000"
    assert seen[0].url.params["apiKey"] == "test-key"


@pytest.mark.asyncio
async def test_google_places_dedupes_and_stops_on_denied(monkeypatch):
    monkeypatch.setattr(collector.config, "GOOGLE_MAPS_API_KEY", "test-key")
    monkeypatch.setattr(collector, "GOOGLE_PLACE_TYPES", ["restaurant", "cafe", "bar"])
    place = {
        "place_id": "abc",
        "name": "Casa Pepe",
        "geometry": {"location": {"lat": 40.417, "lng": -3.704}},
        "types": ["restaurant", "food"],
        "rating": 4.5,
    }
    responses = [
        {"status": "OK", "results": [place]},
        {"status": "OK", "results": [place]},
        {"status": "REQUEST_DENIED", "error_message": "nope"},
    ]
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        return httpx.Response(200, json=responses[calls - 1])

    async with client_for(handler) as client:
        pois = await collector.fetch_google_places(client, 40.4168, -3.7038, 1000)

    assert calls == 3
    assert len(pois) == 1
    assert pois[0].source == "Google Places"
    assert pois[0].kinds == ["restaurant", "food"]
