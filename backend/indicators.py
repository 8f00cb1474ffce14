"""Environmental indicators: flood zones and air quality (WMS), land cover (ArcGIS).

- Every fetcher makes single-attempt calls and never raises for upstream trouble.
- Flood and air results always come back as a record with an ok/status pair;
  `ensure_*` fills in the DOWN record for a branch that failed outright.
- Land cover is either a CORINE class or None.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

import config
from models import AirQualityInfo, FloodRiskInfo, LandCoverInfo, WaterwayInfo
from upstream import request, to_number

logger = logging.getLogger(__name__)

FLOOD_SOURCE = "MITECO"
AIR_SOURCE = "Copernicus"
UNAVAILABLE = "Servicio no disponible"

NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
CAPABILITIES_RE = re.compile(r"WMS_Capabilities|WMT_MS_Capabilities", re.IGNORECASE)


@dataclass
class FeatureInfo:
    """Body of a successful GetFeatureInfo call: decoded JSON or plain text."""
    json: Any = None
    text: str = ""


def wms_bbox(lat: float, lon: float, buffer_deg: float) -> str:
    # WMS 1.3.0 with EPSG:4326 uses lat,lon axis order.
    return f"{lat - buffer_deg},{lon - buffer_deg},{lat + buffer_deg},{lon + buffer_deg}"


async def fetch_wms_feature_info(
    client: httpx.AsyncClient,
    base_url: str,
    layer: str,
    lat: float,
    lon: float,
    buffer_deg: float = 0.002,
    extra_params: dict | None = None,
) -> FeatureInfo | None:
    """GetFeatureInfo at the center pixel of a small box around the point."""
    params = {
        "SERVICE": "WMS",
        "REQUEST": "GetFeatureInfo",
        "VERSION": "1.3.0",
        "CRS": "EPSG:4326",
        "BBOX": wms_bbox(lat, lon, buffer_deg),
        "WIDTH": 101,
        "HEIGHT": 101,
        "LAYERS": layer,
        "QUERY_LAYERS": layer,
        "INFO_FORMAT": "application/json",
        "I": 50,
        "J": 50,
        "FEATURE_COUNT": 5,
        **(extra_params or {}),
    }
    resp = await request(client, "GET", base_url, params=params)
    if resp is None:
        return None
    if "json" in resp.headers.get("content-type", ""):
        try:
            return FeatureInfo(json=resp.json())
        except ValueError:
            return FeatureInfo()
    return FeatureInfo(text=resp.text)


def _truncate(value: str, limit: int = 240) -> str:
    return value if len(value) <= limit else value[: limit - 3] + "..."


def summarize_properties(props: Any) -> str | None:
    if not isinstance(props, dict):
        return None
    entries = [
        f"{key}: {value}"
        for key, value in props.items()
        if isinstance(value, (str, int, float)) and not isinstance(value, bool)
    ][:6]
    return " | ".join(entries) or None


def _first_feature(info: FeatureInfo) -> dict | None:
    if not isinstance(info.json, dict):
        return None
    features = info.json.get("features")
    if not isinstance(features, list) or not features:
        return None
    return features[0] if isinstance(features[0], dict) else {}


# --- Flood risk ---

def parse_flood_hit(info: FeatureInfo) -> tuple[bool, str | None]:
    """(hit, detail) for one layer response."""
    if info.json is not None:
        feature = _first_feature(info)
        if feature is None:
            return False, None
        return True, summarize_properties(feature.get("properties"))

    text = info.text.strip()
    lower = text.lower()
    if not text or "no features" in lower or "sin resultados" in lower:
        return False, None
    return True, _truncate(text)


def layer_risk_score(layer: str) -> int:
    """Risk score from the return period in a layer name (T10 high, T500 low)."""
    name = layer.lower()
    # Longer periods first: "100" contains "10" and "500" contains "50".
    for marker, score in (("500", 1), ("100", 2), ("50", 2), ("10", 3)):
        if marker in name:
            return score
    return 1


def risk_level(layers: list[str]) -> str:
    score = max((layer_risk_score(layer) for layer in layers), default=0)
    if score >= 3:
        return "alto"
    if score == 2:
        return "medio"
    if score == 1:
        return "bajo"
    return "desconocido"


async def fetch_flood_risk(client: httpx.AsyncClient, lat: float, lon: float) -> FloodRiskInfo:
    answered = False
    hits: list[tuple[str, str | None]] = []
    for layer in config.FLOOD_WMS_LAYERS:
        info = await fetch_wms_feature_info(client, config.FLOOD_WMS_URL, layer, lat, lon, buffer_deg=0.0015)
        if info is None:
            continue
        answered = True
        hit, detail = parse_flood_hit(info)
        if hit:
            hits.append((layer, detail))

    if not answered:
        return FloodRiskInfo(ok=False, status="DOWN", source=FLOOD_SOURCE, details=UNAVAILABLE)
    if not hits:
        return FloodRiskInfo(
            ok=True,
            source=FLOOD_SOURCE,
            risk_level="bajo",
            details="No se detectan zonas inundables en el punto consultado.",
        )

    layers = [layer for layer, _ in hits]
    details = " | ".join(
        f"Interseccion con {layer}: {detail}" if detail else f"Interseccion con {layer}"
        for layer, detail in hits
    )
    logger.info("Flood layers hit at (%.5f, %.5f): %s", lat, lon, layers)
    return FloodRiskInfo(
        ok=True,
        source=FLOOD_SOURCE,
        risk_level=risk_level(layers),
        details=details,
        layers_hit=layers,
    )


def ensure_flood_risk(value: FloodRiskInfo | None) -> FloodRiskInfo:
    if value is not None:
        return value
    return FloodRiskInfo(ok=False, status="DOWN", source=FLOOD_SOURCE, details=UNAVAILABLE)


def apply_flood_proxy(flood: FloodRiskInfo, waterways: list[WaterwayInfo]) -> FloodRiskInfo:
    """Note the nearest OSM water body when the flood layer gave no usable answer."""
    if not waterways or "Proxy OSM" in flood.details:
        return flood
    inconclusive = (
        not flood.ok
        or flood.risk_level == "desconocido"
        or not flood.layers_hit
        or flood.status == "VISUAL_ONLY"
    )
    if not inconclusive:
        return flood
    nearest = waterways[0]
    note = f"Proxy OSM: agua cercana {nearest.name or nearest.type} a {nearest.distance_m} m."
    details = f"{flood.details} {note}".strip()
    return flood.model_copy(update={"details": details})


# --- Air quality ---

def _cams_params() -> dict:
    return {"token": config.CAMS_WMS_TOKEN} if config.CAMS_WMS_TOKEN else {}


def extract_numeric(info: FeatureInfo) -> float | None:
    """First numeric value in the feature properties, or in a text body."""
    if info.json is not None:
        feature = _first_feature(info)
        props = feature.get("properties") if feature else None
        if not isinstance(props, dict):
            return None
        for value in props.values():
            if isinstance(value, str):
                match = NUMBER_RE.search(value)
                value = match.group(0) if match else None
            number = to_number(value)
            if number is not None:
                return number
        return None

    match = NUMBER_RE.search(info.text)
    return float(match.group(0)) if match else None


async def check_wms_available(client: httpx.AsyncClient, base_url: str) -> bool:
    resp = await request(
        client,
        "GET",
        base_url,
        params={"service": "WMS", "request": "GetCapabilities", **_cams_params()},
    )
    return resp is not None and bool(CAPABILITIES_RE.search(resp.text))


async def fetch_air_quality(client: httpx.AsyncClient, lat: float, lon: float) -> AirQualityInfo:
    fields = {
        "source": AIR_SOURCE,
        "metric": config.CAMS_METRIC or "CAMS",
        "units": config.CAMS_UNITS or None,
        "layer": config.CAMS_WMS_LAYER,
    }
    info = await fetch_wms_feature_info(
        client, config.CAMS_WMS_URL, config.CAMS_WMS_LAYER, lat, lon,
        buffer_deg=0.2, extra_params=_cams_params(),
    )
    if info is None:
        if await check_wms_available(client, config.CAMS_WMS_URL):
            return AirQualityInfo(
                ok=True,
                status="VISUAL_ONLY",
                details="Capa CAMS disponible para visualizacion. No se pudo muestrear el valor.",
                **fields,
            )
        return AirQualityInfo(ok=False, status="DOWN", details="Servicio CAMS no disponible", **fields)

    value = extract_numeric(info)
    if value is None:
        return AirQualityInfo(
            ok=True,
            status="VISUAL_ONLY",
            details="Capa CAMS disponible para visualizacion. No se pudo extraer valor puntual.",
            **fields,
        )
    units = f" {fields['units']}" if fields["units"] else ""
    return AirQualityInfo(ok=True, status="OK", details=f"Valor estimado: {value:g}{units}", **fields)


def ensure_air_quality(value: AirQualityInfo | None) -> AirQualityInfo:
    if value is not None:
        return value
    return AirQualityInfo(ok=False, status="DOWN", source=AIR_SOURCE, metric="CAMS", details=UNAVAILABLE)


# --- Land cover ---

async def fetch_land_cover(client: httpx.AsyncClient, lat: float, lon: float) -> LandCoverInfo | None:
    """CORINE Land Cover 2018 class at the point via the ArcGIS identify operation."""
    resp = await request(
        client,
        "GET",
        config.CLC_ARCGIS_URL.rstrip("/") + "/identify",
        params={
            "f": "json",
            "geometry": f"{lon},{lat}",
            "geometryType": "esriGeometryPoint",
            "sr": 4326,
            "layers": f"all:{config.CLC_LAYER}",
            "tolerance": 2,
            "mapExtent": f"{lon - 0.02},{lat - 0.02},{lon + 0.02},{lat + 0.02}",
            "imageDisplay": "100,100,96",
            "returnGeometry": "false",
        },
    )
    if resp is None:
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        return None
    attributes = results[0].get("attributes")
    if not isinstance(attributes, dict):
        return None

    raw_code = next(
        (attributes[k] for k in ("Code_18", "CODE_18", "code_18") if attributes.get(k) not in (None, "")),
        None,
    )
    if raw_code is None or isinstance(raw_code, bool):
        return None
    code = str(int(raw_code)) if isinstance(raw_code, float) and raw_code.is_integer() else str(raw_code).strip()
    if not code:
        return None
    return LandCoverInfo(code=code, label=config.CLC_LABELS.get(code, f"Clase CLC {code}"))
