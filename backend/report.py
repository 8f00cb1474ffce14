"""AI report generation with strict validation and a deterministic fallback.

The narrative generator is asked for a single JSON object matching AiReport.
Whatever comes back is parsed and validated strictly (extra keys, wrong types
and blank strings are rejected). A missing or invalid answer is replaced by
`build_fallback_report`, which only reads the context and always produces a
schema-valid report.
"""

import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from pydantic import ValidationError

import config
import llm
from models import AiReport, ContextData, PoiItem
from pois import iter_pois

logger = logging.getLogger(__name__)

AI_UNAVAILABLE = "IA no disponible"
AI_INVALID = "Respuesta IA invalida"
NO_PLACE_NAME = "Lugar sin nombre"


# ---------- Prompt ----------

def build_system_prompt() -> str:
    return "\n".join([
        "Eres un analista geoespacial. Responde SIEMPRE en castellano.",
        "Usa SOLO los datos del contexto proporcionado. No inventes datos, nombres ni cifras.",
        "Si falta informacion, indicalo en el campo limitaciones.",
        "Devuelve SOLO un objeto JSON valido, sin texto adicional, con exactamente estas claves:",
        "{",
        '  "descripcion_zona": string,',
        '  "infraestructura_cercana": string,',
        '  "riesgos": string,',
        '  "usos_urbanos": string,',
        '  "recomendacion_final": string,',
        '  "fuentes": string[],',
        '  "limitaciones": string[]',
        "}",
        "Ningun campo de texto puede quedar vacio.",
    ])


def _context_json(context: ContextData) -> str:
    exclude_raw = {"__all__": {"raw"}}
    exclude = {
        "pois": {cat: exclude_raw for cat in config.POI_CATEGORIES},
        "external_pois": exclude_raw,
    }
    return context.model_dump_json(exclude=exclude, exclude_none=True)


def build_messages(context: ContextData, place_name: str | None) -> list[dict]:
    user = "\n".join([
        "Contexto JSON (datos reales):",
        _context_json(context),
        "",
        f"Nombre del lugar: {place_name or NO_PLACE_NAME}",
    ])
    return [
        {"role": "system", "content": build_system_prompt()},
        {"role": "user", "content": user},
    ]


# ---------- Validation ----------

@dataclass(frozen=True)
class Valid:
    report: AiReport


@dataclass(frozen=True)
class Invalid:
    reason: str


def parse_json_object(content: str) -> dict | None:
    """Decode a JSON object, retrying on the outermost {...} slice."""
    try:
        parsed = json.loads(content)
    except ValueError:
        start, end = content.find("{"), content.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(content[start:end + 1])
        except ValueError:
            return None
    return parsed if isinstance(parsed, dict) else None


def validate_report(content: str | None) -> Valid | Invalid:
    if not content or not content.strip():
        return Invalid("empty response")
    parsed = parse_json_object(content)
    if parsed is None:
        return Invalid("response is not a JSON object")
    try:
        return Valid(AiReport.model_validate(parsed))
    except ValidationError as exc:
        return Invalid(f"{exc.error_count()} schema error(s): {exc.errors()[0]['msg']}")


# ---------- Fallback ----------

def _format_number(value: float) -> str:
    return f"{value:,.0f}".replace(",", ".")


def _format_metric(value: float, unit: str) -> str:
    text = f"{value:.1f}".rstrip("0").rstrip(".").replace(".", ",")
    return f"{text} {unit}"


def _admin_line(context: ContextData) -> str:
    place = context.place
    if place is None:
        return ""
    address = place.address
    parts = []
    if address and address.road:
        parts.append(f"Via: {address.road}")
    if place.municipality:
        parts.append(f"Municipio: {place.municipality}")
    if address:
        district = address.city_district or address.suburb
        province = address.state_district or address.county
        region = address.state or address.region
        for label, value in (
            ("Distrito", district),
            ("Provincia", province),
            ("Comunidad", region),
            ("CP", address.postcode),
            ("Pais", address.country),
        ):
            if value:
                parts.append(f"{label}: {value}")
    return ". ".join(parts) + "." if parts else ""


def _weather_line(context: ContextData) -> str:
    weather = context.weather
    if weather is None:
        return ""
    parts = []
    if weather.description:
        parts.append(f"Estado: {weather.description}")
    if weather.temperature_c is not None:
        parts.append(f"Temp: {_format_metric(weather.temperature_c, 'C')}")
    if weather.wind_kph is not None:
        parts.append(f"Viento: {_format_metric(weather.wind_kph, 'km/h')}")
    if weather.precipitation_mm is not None:
        parts.append(f"Precipitacion: {_format_metric(weather.precipitation_mm, 'mm')}")
    return f"Meteorologia actual: {', '.join(parts)}." if parts else ""


def _wikipedia_line(context: ContextData) -> str:
    items = context.wikipedia_nearby[:3]
    if not items:
        return ""
    top = " | ".join(
        f"{item.title} ({item.distance_m} m)" if item.distance_m is not None else f"{item.title} (distancia n/d)"
        for item in items
    )
    return f"Wikipedia cercana: {top}."


def _counts(context: ContextData) -> dict[str, int]:
    pois = context.pois
    return {
        "restaurantes": len(pois.restaurants),
        "bares": len(pois.bars_and_clubs),
        "cafes": len(pois.cafes),
        "supermercados": len(pois.supermarkets),
        "transporte": len(pois.transport),
        "hoteles": len(pois.hotels),
        "turismo": len(pois.tourism) + len(pois.museums) + len(pois.viewpoints),
    }


def _density_label(total: int) -> str:
    if total >= 30:
        return "alta"
    if total >= 12:
        return "media"
    return "baja"


def _top_pois(context: ContextData, limit: int) -> list[PoiItem]:
    return sorted(iter_pois(context.pois), key=lambda p: p.distance_m)[:limit]


def _poi_label(poi: PoiItem) -> str:
    return f"{poi.name or 'Sin nombre'} ({poi.type}, {poi.distance_m} m)"


def _external_highlights(context: ContextData) -> list[str]:
    lines = []
    for poi in context.external_pois[:5]:
        distance = f"{round(poi.distance_m)} m" if poi.distance_m is not None else "distancia n/d"
        category = f" ({poi.category})" if poi.category else ""
        lines.append(f"- {poi.name or 'Sin nombre'}{category} [{poi.source}] {distance}")
    return lines


def _recommendation(top: list[PoiItem], summary: str, density: str) -> str:
    if not top:
        return (
            "En conjunto, el entorno muestra baja densidad de servicios dentro del radio actual. "
            "Si buscas mas opciones, conviene ampliar el radio de analisis."
        )
    alternatives = " | ".join(_poi_label(p) for p in top[1:3]) or "Sin alternativas cercanas adicionales"
    return " ".join([
        f"Opcion principal: {_poi_label(top[0])}.",
        f"El entorno muestra una densidad {density} de servicios: {summary}.",
        f"Alternativas: {alternatives}.",
    ])


def _fuentes(context: ContextData) -> list[str]:
    sources = context.sources
    fuentes = []
    if sources.nominatim or sources.overpass:
        fuentes.append("OpenStreetMap (Nominatim/Overpass)")
    if context.land_cover:
        fuentes.append("Copernicus CLC 2018")
    if context.flood_risk and context.flood_risk.ok:
        fuentes.append(f"Riesgo de inundacion ({context.flood_risk.source})")
    if context.air_quality and context.air_quality.ok:
        fuentes.append("Copernicus CAMS (aire)")
    if sources.wikipedia:
        fuentes.append("Wikipedia")
    if sources.wikidata:
        fuentes.append("Wikidata")
    if sources.geoapify:
        fuentes.append("Geoapify Places")
    if sources.google_places:
        fuentes.append("Google Places")
    if sources.open_meteo:
        fuentes.append("Open-Meteo")
    return fuentes


def _limitaciones(context: ContextData, extra: list[str]) -> list[str]:
    limits = [item.strip() for item in extra if isinstance(item, str) and item.strip()]
    if not context.land_cover:
        limits.append("Sin datos de uso del suelo CLC 2018.")
    if not context.flood_risk or not context.flood_risk.ok:
        limits.append("Sin datos de riesgo de inundacion del WMS oficial.")
    elif context.flood_risk.status == "VISUAL_ONLY":
        limits.append("Riesgo inundacion disponible solo como capa visual.")
    if not context.air_quality or not context.air_quality.ok:
        limits.append("Sin datos CAMS de calidad del aire.")
    elif context.air_quality.status == "VISUAL_ONLY":
        limits.append("Calidad del aire disponible solo como capa visual.")
    if not context.sources.wikipedia:
        limits.append("Sin datos de Wikipedia cercana.")
    if not context.sources.open_meteo:
        limits.append("Sin datos de meteorologia actual (Open-Meteo).")
    if not any(True for _ in iter_pois(context.pois)):
        limits.append("Sin POIs disponibles dentro del radio.")
    return limits


def build_fallback_report(
    context: ContextData,
    place_name: str | None,
    extra_limitations: list[str] | None = None,
) -> AiReport:
    """Deterministic report built only from `context`; never raises."""
    center = context.center
    radius = round(context.radius_m)
    counts = _counts(context)
    summary = ", ".join(f"{key} {value}" for key, value in counts.items())
    density = _density_label(sum(counts.values()))
    top = _top_pois(context, 6)
    externals = _external_highlights(context)

    descripcion = " ".join(filter(None, [
        f"Punto analizado en {center.lat:.5f}, {center.lon:.5f} con radio {radius} m.",
        f"Lugar: {place_name}." if place_name else f"{NO_PLACE_NAME}.",
        _admin_line(context),
        f"Elevacion: {_format_number(context.elevation_m)} m." if context.elevation_m is not None else "",
        _weather_line(context),
        _wikipedia_line(context),
    ]))

    infraestructura = "\n".join([
        f"En el radio de {radius} m se observan: {summary}.",
        f"La densidad de servicios en el entorno es {density}.",
        "Destacados cercanos:" if top else "Sin destacados cercanos.",
        *(f"- {_poi_label(p)}" for p in top),
        "POIs de fuentes alternativas:" if externals else "Sin POIs adicionales en fuentes alternativas.",
        *externals,
    ])

    flood = context.flood_risk
    if flood is None:
        riesgo = "No hay datos de inundacion disponibles para este punto."
    elif flood.ok:
        riesgo = f"Riesgo {flood.risk_level}. {flood.details}"
    else:
        riesgo = f"Riesgo desconocido. {flood.details}"

    air = context.air_quality
    if air is None:
        aire = "Calidad del aire no disponible."
    elif air.ok:
        aire = f"Calidad del aire: {air.details}"
    else:
        aire = f"Calidad del aire no disponible. {air.details}"

    land = context.land_cover
    usos = (
        f"Uso del suelo dominante segun CLC 2018: {land.label} (codigo {land.code})."
        if land
        else "No hay datos de uso del suelo CLC 2018 para este punto."
    )
    waterways = context.environment.nearest_waterways
    if waterways:
        nearest = waterways[0]
        usos += f" Agua cercana: {nearest.name or nearest.type} a {nearest.distance_m} m."

    return AiReport(
        descripcion_zona=descripcion,
        infraestructura_cercana=infraestructura,
        riesgos=f"{riesgo.strip()} {aire.strip()}".strip(),
        usos_urbanos=usos,
        recomendacion_final=_recommendation(top, summary, density),
        fuentes=_fuentes(context),
        limitaciones=_limitaciones(context, extra_limitations or []),
    )


# ---------- Generation ----------

@dataclass
class GeneratedReport:
    report: AiReport
    ai_generated: bool
    warning: str | None = None


async def generate(
    context: ContextData,
    place_name: str | None,
    complete: Callable[..., Awaitable[str | None]] = llm.complete,
) -> GeneratedReport:
    messages = build_messages(context, place_name)
    content = await complete(messages, temperature=config.LLM_TEMPERATURE, json_output=True)

    if not content or not content.strip():
        logger.warning("Narrative generator returned no content; using fallback report")
        return GeneratedReport(
            report=build_fallback_report(context, place_name, [AI_UNAVAILABLE]),
            ai_generated=False,
            warning=AI_UNAVAILABLE,
        )

    result = validate_report(content)
    if isinstance(result, Invalid):
        logger.warning("Invalid AI report (%s); using fallback report", result.reason)
        return GeneratedReport(
            report=build_fallback_report(context, place_name, [AI_INVALID]),
            ai_generated=False,
            warning=AI_INVALID,
        )

    return GeneratedReport(report=result.report, ai_generated=True)
