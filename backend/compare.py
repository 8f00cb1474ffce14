"""Side-by-side comparison of two context snapshots."""

import math
from datetime import datetime, timezone

import config
from geo import haversine_km
from models import ComparisonSide, ComparisonSummary, ContextData, PoiTotals


def poi_total(context: ContextData) -> int:
    if context.poi_summary is not None:
        return context.poi_summary.total
    return sum(len(getattr(context.pois, cat)) for cat in config.POI_CATEGORIES)


def distance_km(base: ContextData, target: ContextData) -> float | None:
    coords = (base.center.lat, base.center.lon, target.center.lat, target.center.lon)
    if not all(math.isfinite(c) for c in coords):
        return None
    km = haversine_km(*coords)
    return km if math.isfinite(km) else None


def format_diff(value: int) -> str:
    if value > 0:
        return f"+{value}"
    return str(value)


def format_flood(context: ContextData) -> str:
    flood = context.flood_risk
    if flood is None:
        return "sin datos"
    if not flood.ok:
        return f"sin datos ({flood.details})"
    if flood.status == "VISUAL_ONLY":
        return "solo visual"
    return flood.risk_level


def format_air(context: ContextData) -> str:
    air = context.air_quality
    if air is None:
        return "sin datos"
    if not air.ok:
        return "no disponible"
    return "CAMS visual" if air.status == "VISUAL_ONLY" else "CAMS ok"


def format_land(context: ContextData) -> str:
    return context.land_cover.label if context.land_cover else "sin datos"


def format_water(context: ContextData) -> str:
    waterways = context.environment.nearest_waterways
    if not waterways:
        return "sin datos"
    nearest = waterways[0]
    return f"{nearest.name or nearest.type} ({nearest.distance_m} m)"


def format_coastal(context: ContextData) -> str:
    value = context.environment.is_coastal
    if value is None:
        return "sin datos"
    return "si" if value else "no"


def _side(context: ContextData, name: str | None) -> ComparisonSide:
    return ComparisonSide(name=name, coords=context.center.model_copy(), radius_m=context.radius_m)


def compare(
    base: ContextData,
    target: ContextData,
    base_name: str | None = None,
    target_name: str | None = None,
) -> ComparisonSummary:
    """Build the comparison summary; highlights keep a fixed order."""
    base_total = poi_total(base)
    target_total = poi_total(target)
    km = distance_km(base, target)

    highlights = []
    if km is not None:
        highlights.append(f"Distancia entre puntos: {km:.2f} km")
    highlights += [
        f"POIs totales: base {base_total} | comparado {target_total} ({format_diff(target_total - base_total)})",
        f"Riesgo inundacion: base {format_flood(base)} | comparado {format_flood(target)}",
        f"Calidad del aire: base {format_air(base)} | comparado {format_air(target)}",
        f"Uso del suelo: base {format_land(base)} | comparado {format_land(target)}",
        f"Agua cercana: base {format_water(base)} | comparado {format_water(target)}",
        f"Zona costera: base {format_coastal(base)} | comparado {format_coastal(target)}",
    ]

    return ComparisonSummary(
        base=_side(base, base_name),
        target=_side(target, target_name),
        distance_km=km,
        poi_totals=PoiTotals(base=base_total, target=target_total),
        highlights=highlights,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
