"""Pydantic models for the context snapshot, reports and API payloads."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

import config


class Coordinate(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


# ---------- POIs ----------

class PoiItem(BaseModel):
    name: str
    distance_m: int = Field(ge=0)
    lat: float
    lon: float
    type: str
    source: str
    category: str | None = None
    raw: dict[str, Any] | None = None


class PoisByCategory(BaseModel):
    restaurants: list[PoiItem] = []
    bars_and_clubs: list[PoiItem] = []
    cafes: list[PoiItem] = []
    pharmacies: list[PoiItem] = []
    hospitals: list[PoiItem] = []
    schools: list[PoiItem] = []
    supermarkets: list[PoiItem] = []
    transport: list[PoiItem] = []
    hotels: list[PoiItem] = []
    tourism: list[PoiItem] = []
    museums: list[PoiItem] = []
    viewpoints: list[PoiItem] = []


class ExternalPoi(BaseModel):
    name: str
    source: str
    lat: float | None = None
    lon: float | None = None
    distance_m: float | None = None
    category: str | None = None
    kinds: list[str] = []
    url: str | None = None
    raw: dict[str, Any] | None = None


class PoiSummary(BaseModel):
    counts: dict[str, int]
    total: int


# ---------- Upstream results ----------

class WeatherInfo(BaseModel):
    source: str = "Open-Meteo"
    temperature_c: float | None = None
    wind_kph: float | None = None
    precipitation_mm: float | None = None
    weather_code: int | None = None
    description: str | None = None
    time_iso: str | None = None


class WeatherResult(BaseModel):
    weather: WeatherInfo | None = None
    elevation_m: float | None = None


class NearbyItem(BaseModel):
    pageid: int
    title: str
    extract: str | None = None
    description: str | None = None
    url: str | None = None
    distance_m: int | None = None
    lat: float
    lon: float
    thumbnail: str | None = None


class ForwardGeocodeResult(BaseModel):
    lat: float
    lon: float
    display_name: str
    importance: float | None = None
    type: str | None = None
    category: str | None = None


class AddressInfo(BaseModel):
    house_number: str | None = None
    road: str | None = None
    neighbourhood: str | None = None
    suburb: str | None = None
    city_district: str | None = None
    county: str | None = None
    state: str | None = None
    state_district: str | None = None
    region: str | None = None
    postcode: str | None = None
    country: str | None = None


class ReverseGeocodeResult(BaseModel):
    name: str | None = None
    display_name: str | None = None
    category: str | None = None
    type: str | None = None
    address_line: str | None = None
    municipality: str | None = None
    address: AddressInfo | None = None


# ---------- Environment indicators ----------

IndicatorStatus = Literal["OK", "DOWN", "VISUAL_ONLY"]


class WaterwayInfo(BaseModel):
    name: str | None = None
    type: str
    distance_m: int


class EnvironmentInfo(BaseModel):
    nearest_waterways: list[WaterwayInfo] = []
    is_coastal: bool | None = None


class FloodRiskInfo(BaseModel):
    ok: bool
    status: IndicatorStatus = "OK"
    source: str
    risk_level: str = "desconocido"
    details: str = ""
    layers_hit: list[str] = []


class AirQualityInfo(BaseModel):
    ok: bool
    status: IndicatorStatus = "OK"
    source: str
    metric: str = "CAMS"
    units: str | None = None
    details: str = ""
    layer: str | None = None


class LandCoverInfo(BaseModel):
    code: str
    label: str
    source: str = "Copernicus CLC 2018"


# ---------- Context ----------

class ContextSources(BaseModel):
    nominatim: bool = False
    overpass: bool = False
    geoapify: bool = False
    google_places: bool = False
    wikipedia: bool = False
    wikidata: bool = False
    open_meteo: bool = False
    flood_wms: bool = False
    corine: bool = False
    cams: bool = False


class ContextData(BaseModel):
    center: Coordinate
    radius_m: int
    place: ReverseGeocodeResult | None = None
    pois: PoisByCategory = Field(default_factory=PoisByCategory)
    poi_summary: PoiSummary | None = None
    external_pois: list[ExternalPoi] = []
    wikipedia_nearby: list[NearbyItem] = []
    environment: EnvironmentInfo = Field(default_factory=EnvironmentInfo)
    flood_risk: FloodRiskInfo | None = None
    air_quality: AirQualityInfo | None = None
    land_cover: LandCoverInfo | None = None
    weather: WeatherInfo | None = None
    elevation_m: float | None = None
    sources: ContextSources = Field(default_factory=ContextSources)


# ---------- AI report ----------

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class AiReport(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    descripcion_zona: NonBlank
    infraestructura_cercana: NonBlank
    riesgos: NonBlank
    usos_urbanos: NonBlank
    recomendacion_final: NonBlank
    fuentes: list[NonBlank]
    limitaciones: list[NonBlank]


# ---------- Comparison ----------

class ComparisonSide(BaseModel):
    name: str | None = None
    coords: Coordinate
    radius_m: int


class PoiTotals(BaseModel):
    base: int
    target: int


class ComparisonSummary(BaseModel):
    base: ComparisonSide
    target: ComparisonSide
    distance_km: float | None = None
    poi_totals: PoiTotals
    highlights: list[str]
    created_at: str


# ---------- Report store ----------

class ReportRecord(BaseModel):
    place_name: str | None = None
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    category: str | None = None
    report: dict[str, Any]


class StoredReport(ReportRecord):
    id: int
    created_at: str


# ---------- Request bodies ----------

class GeocodeRequest(BaseModel):
    direccion: str = ""


class LocationRequest(BaseModel):
    address: str | None = None
    lat: float | None = None
    lon: float | None = None
    radius_m: int = Field(default=config.DEFAULT_RADIUS_M, gt=0, le=config.MAX_RADIUS_M)


class CompareRequest(BaseModel):
    base: ContextData
    target: ContextData
    base_name: str | None = None
    target_name: str | None = None
