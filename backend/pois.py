"""POI categorizer: fold raw provider records into the 12-bucket taxonomy.

- Classification key = lowercase `category` + `kinds`.
- Items without coordinates or distance, or whose type has no bucket, are
  returned as extras instead of being dropped.
- Every bucket is stably sorted by distance, so ties keep insertion order.
"""

import math
from typing import Iterable, Iterator

import config
from geo import haversine, is_valid_coordinate
from models import ExternalPoi, PoiItem, PoisByCategory, PoiSummary


def empty_pois() -> PoisByCategory:
    return PoisByCategory()


def classification_key(poi: ExternalPoi) -> str:
    return " ".join([poi.category or "", " ".join(poi.kinds)]).lower()


def infer_type(key: str) -> str | None:
    """Canonical type for a classification key; first matching rule wins."""
    for keywords, poi_type in config.TYPE_RULES:
        if any(kw in key for kw in keywords):
            return poi_type
    return None


def pick_bucket(key: str, poi_type: str) -> str | None:
    bucket = config.TYPE_TO_BUCKET.get(poi_type)
    if bucket:
        return bucket
    if config.TOURISM_KEY_MARKER in key:
        return "tourism"
    return None


def sort_pois(pois: PoisByCategory) -> PoisByCategory:
    return PoisByCategory(**{
        cat: sorted(getattr(pois, cat), key=lambda p: p.distance_m)
        for cat in config.POI_CATEGORIES
    })


def categorize(
    external: Iterable[ExternalPoi],
    center: tuple[float, float],
) -> tuple[PoisByCategory, list[ExternalPoi]]:
    """Return (buckets, extras) for a list of untrusted provider records."""
    center_lat, center_lon = center
    buckets: dict[str, list[PoiItem]] = {cat: [] for cat in config.POI_CATEGORIES}
    extras: list[ExternalPoi] = []

    for poi in external:
        key = classification_key(poi)
        if poi.lat is None or poi.lon is None or not is_valid_coordinate(poi.lat, poi.lon):
            extras.append(poi)
            continue

        if poi.distance_m is not None and math.isfinite(poi.distance_m):
            distance = round(poi.distance_m)
        else:
            distance = round(haversine(center_lat, center_lon, poi.lat, poi.lon))
        if distance < 0:
            extras.append(poi)
            continue

        poi_type = infer_type(key) or config.DEFAULT_POI_TYPE
        bucket = pick_bucket(key, poi_type)
        if bucket is None:
            extras.append(poi)
            continue

        buckets[bucket].append(PoiItem(
            name=poi.name,
            distance_m=distance,
            lat=poi.lat,
            lon=poi.lon,
            type=poi_type,
            source=poi.source,
            category=poi.category,
            raw=poi.raw,
        ))

    return sort_pois(PoisByCategory(**buckets)), extras


def merge(base: PoisByCategory, extra: PoisByCategory) -> PoisByCategory:
    """Concatenate same-named buckets, then re-sort each one."""
    return sort_pois(PoisByCategory(**{
        cat: getattr(base, cat) + getattr(extra, cat)
        for cat in config.POI_CATEGORIES
    }))


def summarize(pois: PoisByCategory) -> PoiSummary:
    counts = {cat: len(getattr(pois, cat)) for cat in config.POI_CATEGORIES}
    return PoiSummary(counts=counts, total=sum(counts.values()))


def is_empty(pois: PoisByCategory) -> bool:
    return all(not getattr(pois, cat) for cat in config.POI_CATEGORIES)


def iter_pois(pois: PoisByCategory) -> Iterator[PoiItem]:
    for cat in config.POI_CATEGORIES:
        yield from getattr(pois, cat)
