"""Tests for FastAPI endpoints."""

import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi.testclient import TestClient

import config
import db as db_module
import main
from main import app

MADRID = {"lat": "40.4167047", "lon": "-3.7035825", "display_name": "Madrid, España", "class": "boundary", "type": "city"}

REVERSE = {
    "display_name": "Puerta del Sol, Centro, Madrid, España",
    "name": "Puerta del Sol",
    "category": "place",
    "type": "square",
    "address": {"city": "Madrid", "country": "España"},
}

OVERPASS = {
    "elements": [
        {"type": "node", "id": 1, "lat": 40.4170, "lon": -3.7040, "tags": {"amenity": "restaurant", "name": "Casa Pepe"}},
        {"type": "node", "id": 2, "lat": 40.4171, "lon": -3.7041, "tags": {"amenity": "pharmacy", "name": "Farmacia Sol"}},
    ]
}

OPEN_METEO = {"elevation": 657, "current": {"temperature_2m": 18, "weather_code": 0, "time": "2026-10-18T12:00"}}

FLOOD_HIT = {"features": [{"properties": {"zona": "ARPSI"}}]}
CAMS_VALUE = {"features": [{"properties": {"value": 8.5}}]}
CLC_URBAN = {"results": [{"attributes": {"Code_18": "111"}}]}


class Upstreams:
    """Routes outbound requests to canned responses and counts them."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        for name, prefix in (
            ("nominatim", config.NOMINATIM_BASE_URL),
            ("weather", config.OPEN_METEO_API_URL),
            ("wikipedia", config.WIKIPEDIA_API_URL),
            ("overpass", config.OVERPASS_URL),
            ("flood", config.FLOOD_WMS_URL),
            ("air", config.CAMS_WMS_URL),
            ("land", config.CLC_ARCGIS_URL),
        ):
            if url.startswith(prefix) and name in self.fail:
                return httpx.Response(500)
        if url.startswith(config.NOMINATIM_BASE_URL + "/search"):
            q = request.url.params.get("q")
            return httpx.Response(200, json=[MADRID] if q == "Madrid" else [])
        if url.startswith(config.NOMINATIM_BASE_URL + "/reverse"):
            return httpx.Response(200, json=REVERSE)
        if url.startswith(config.OPEN_METEO_API_URL):
            return httpx.Response(200, json=OPEN_METEO)
        if url.startswith(config.WIKIPEDIA_API_URL):
            return httpx.Response(200, json={"query": {"geosearch": []}})
        if url.startswith(config.OVERPASS_URL):
            body = request.content.decode()
            return httpx.Response(200, json=OVERPASS if "amenity" in body else {"elements": []})
        if url.startswith(config.FLOOD_WMS_URL):
            return httpx.Response(200, json=FLOOD_HIT)
        if url.startswith(config.CAMS_WMS_URL):
            return httpx.Response(200, json=CAMS_VALUE)
        if url.startswith(config.CLC_ARCGIS_URL):
            return httpx.Response(200, json=CLC_URBAN)
        return httpx.Response(404)


@pytest.fixture
def upstreams():
    return Upstreams()


@pytest.fixture
def client(tmp_path, monkeypatch, upstreams):
    monkeypatch.setattr(db_module, "DB_PATH", tmp_path / "test_reports.db")
    for name in ("TURSO_DATABASE_URL", "ADMIN_API_KEY", "GEOAPIFY_API_KEY", "GOOGLE_MAPS_API_KEY",
                 "OPENAI_API_KEY", "GROQ_API_KEY"):
        monkeypatch.setattr(config, name, "")
    monkeypatch.setattr(main, "create_http_client", lambda: httpx.AsyncClient(transport=httpx.MockTransport(upstreams)))
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_geocode_ok(client):
    resp = client.post("/geocode", json={"direccion": "Madrid"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["result"]["display_name"] == "Madrid, España"


def test_geocode_blank_is_400_without_network(client, upstreams):
    resp = client.post("/geocode", json={"direccion": "  "})
    assert resp.status_code == 400
    assert upstreams.calls == []


def test_geocode_not_found(client):
    resp = client.post("/geocode", json={"direccion": "Nowhere at all"})
    assert resp.status_code == 404


def test_reverse(client):
    resp = client.get("/reverse?lat=40.4168&lon=-3.7038")
    assert resp.status_code == 200
    assert resp.json()["municipality"] == "Madrid"


def test_reverse_invalid_coordinates(client, upstreams):
    resp = client.get("/reverse?lat=95&lon=0")
    assert resp.status_code == 400
    assert upstreams.calls == []


def test_context_by_coordinates(client):
    resp = client.post("/context", json={"lat": 40.4168, "lon": -3.7038, "radius_m": 800})
    assert resp.status_code == 200
    data = resp.json()
    ctx = data["context"]
    assert data["place_name"].startswith("Puerta del Sol")
    assert ctx["radius_m"] == 800
    assert [p["name"] for p in ctx["pois"]["restaurants"]] == ["Casa Pepe"]
    assert ctx["pois"]["pharmacies"][0]["type"] == "pharmacy"
    assert ctx["poi_summary"]["total"] == 2
    assert ctx["weather"]["description"] == "Despejado"
    assert ctx["elevation_m"] == 657
    assert ctx["sources"]["overpass"] is True
    assert ctx["sources"]["wikipedia"] is False
    assert ctx["environment"]["is_coastal"] is None
    assert ctx["flood_risk"]["risk_level"] == "medio"
    assert ctx["flood_risk"]["layers_hit"] == ["AreaImp_100"]
    assert ctx["air_quality"]["details"] == "Valor estimado: 8.5 ug/m3"
    assert ctx["land_cover"]["label"] == "Tejido urbano continuo"
    assert ctx["sources"]["flood_wms"] is True
    assert ctx["sources"]["cams"] is True
    assert ctx["sources"]["corine"] is True
    assert data["warnings"] == []


def test_context_by_address_uses_geocoded_name(client):
    resp = client.post("/context", json={"address": "Madrid"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["place_name"] == "Madrid, España"
    assert data["context"]["center"]["lat"] == pytest.approx(40.4167047)
    assert data["context"]["radius_m"] == config.DEFAULT_RADIUS_M


def test_context_unknown_address_is_404(client):
    assert client.post("/context", json={"address": "Nowhere at all"}).status_code == 404


def test_context_missing_location_is_400(client):
    assert client.post("/context", json={}).status_code == 400


def test_context_bad_radius_is_422(client):
    assert client.post("/context", json={"lat": 1, "lon": 1, "radius_m": 0}).status_code == 422


def test_context_degrades_on_upstream_failure(client, upstreams):
    upstreams.fail.update({"nominatim", "weather", "overpass"})
    resp = client.post("/context", json={"lat": 40.4168, "lon": -3.7038})
    assert resp.status_code == 200
    data = resp.json()
    assert data["place_name"] is None
    assert data["context"]["weather"] is None
    assert data["context"]["poi_summary"]["total"] == 0
    assert "POIs limitados: usando fuentes alternativas" in data["warnings"]


def test_context_indicators_degrade_to_defaults(client, upstreams):
    upstreams.fail.update({"flood", "air", "land"})
    resp = client.post("/context", json={"lat": 40.4168, "lon": -3.7038})
    assert resp.status_code == 200
    data = resp.json()
    ctx = data["context"]
    assert ctx["flood_risk"]["ok"] is False
    assert ctx["flood_risk"]["status"] == "DOWN"
    assert ctx["flood_risk"]["details"] == "Servicio no disponible"
    assert ctx["air_quality"]["status"] == "DOWN"
    assert ctx["land_cover"] is None
    for warning in (
        "Sin datos de uso del suelo CLC/OSM",
        "Servicio de inundacion no disponible",
        "Servicio CAMS no disponible",
    ):
        assert warning in data["warnings"]


def test_weather_is_cached_between_requests(client, upstreams):
    body = {"lat": 40.4168, "lon": -3.7038}
    client.post("/context", json=body)
    client.post("/context", json=body)
    weather_calls = [u for u in upstreams.calls if u.startswith(config.OPEN_METEO_API_URL)]
    assert len(weather_calls) == 1
    stats = client.get("/cache/stats").json()
    assert stats["weather"]["hits"] == 1


def test_analyze_falls_back_without_llm(client):
    resp = client.post("/analyze", json={"lat": 40.4168, "lon": -3.7038})
    assert resp.status_code == 200
    data = resp.json()
    assert data["ai_generated"] is False
    assert data["warning"] == "IA no disponible"
    assert set(data["report"]) == {
        "descripcion_zona", "infraestructura_cercana", "riesgos", "usos_urbanos",
        "recomendacion_final", "fuentes", "limitaciones",
    }
    assert "Casa Pepe" in data["report"]["infraestructura_cercana"]


def test_compare_endpoint(client):
    base = {"center": {"lat": 40.4168, "lon": -3.7038}, "radius_m": 1200}
    target = {"center": {"lat": 41.3874, "lon": 2.1686}, "radius_m": 1200}
    resp = client.post("/compare", json={"base": base, "target": target, "base_name": "Madrid"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["base"]["name"] == "Madrid"
    assert "Riesgo inundacion: base sin datos | comparado sin datos" in data["highlights"]


def test_reports_roundtrip(client):
    record = {"place_name": "Sol", "lat": 40.4168, "lon": -3.7038, "report": {"descripcion_zona": "x"}}
    resp = client.post("/reports", json=record)
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    listed = client.get("/reports?limit=5").json()
    assert listed["count"] == 1
    assert listed["reports"][0]["report"] == {"descripcion_zona": "x"}


def test_reports_require_admin_key_when_configured(client, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_API_KEY", "secret")
    record = {"lat": 1.0, "lon": 1.0, "report": {}}
    assert client.post("/reports", json=record).status_code == 403
    assert client.post("/reports", json=record, headers={"X-API-Key": "secret"}).status_code == 200


def test_reports_persistence_failure_is_500(client, monkeypatch):
    def broken(record):
        raise RuntimeError("disk full")

    monkeypatch.setattr(db_module, "insert_report", broken)
    resp = client.post("/reports", json={"lat": 1.0, "lon": 1.0, "report": {}})
    assert resp.status_code == 500
