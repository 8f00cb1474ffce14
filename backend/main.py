"""FastAPI application for place context aggregation and AI place reports."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

import compare
import config
import context
import db
import geocoding
import report
from cache import create_caches
from geo import validate_coordinates
from models import CompareRequest, ComparisonSummary, GeocodeRequest, LocationRequest, ReportRecord
from upstream import DEFAULT_HEADERS

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def create_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(headers=DEFAULT_HEADERS, timeout=config.HTTP_TIMEOUT_S)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.init_db()
    logger.info("Database initialized")
    app.state.http = create_http_client()
    app.state.caches = create_caches()
    yield
    await app.state.http.aclose()


app = FastAPI(title="Place Context", version="1.0.0", lifespan=lifespan)

# CORS: allow frontend origin(s)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Admin auth for write endpoints ----------

async def verify_admin(x_api_key: str = Header(default="")):
    """Protect write endpoints with an API key. No key configured = allow (local dev)."""
    admin_key = config.ADMIN_API_KEY
    if not admin_key:
        return
    if x_api_key != admin_key:
        raise HTTPException(403, "Invalid or missing API key")


def get_http(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


# ---------- Health check ----------

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/cache/stats")
async def cache_stats(request: Request):
    return request.app.state.caches.stats()


# ---------- Geocoding ----------

@app.post("/geocode")
async def geocode(body: GeocodeRequest, http: httpx.AsyncClient = Depends(get_http)):
    try:
        result = await geocoding.forward_geocode(http, body.direccion)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    if result is None:
        raise HTTPException(404, "No results")
    return {"ok": True, "result": result}


@app.get("/reverse")
async def reverse(
    lat: float = Query(..., description="Latitude"),
    lon: float = Query(..., description="Longitude"),
    http: httpx.AsyncClient = Depends(get_http),
):
    try:
        validate_coordinates(lat, lon)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    result = await geocoding.reverse_geocode(http, lat, lon)
    if result is None:
        raise HTTPException(404, "No place found at these coordinates")
    return result


# ---------- Context & analysis ----------

async def _build_location_context(body: LocationRequest, request: Request) -> context.ContextResult:
    http = request.app.state.http
    try:
        location = await context.resolve_location(http, body.address, body.lat, body.lon)
        result = await context.build_context(
            http, request.app.state.caches, location.lat, location.lon, body.radius_m,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    except context.LocationNotFound as exc:
        raise HTTPException(404, str(exc))
    if location.display_name:
        result.place_name = location.display_name
    return result


@app.post("/context")
async def place_context(body: LocationRequest, request: Request):
    result = await _build_location_context(body, request)
    return {"place_name": result.place_name, "context": result.context, "warnings": result.warnings}


@app.post("/analyze")
async def analyze(body: LocationRequest, request: Request):
    result = await _build_location_context(body, request)
    generated = await report.generate(result.context, result.place_name)
    warnings = list(result.warnings)
    if generated.warning:
        warnings.append(generated.warning)
    return {
        "place_name": result.place_name,
        "context": result.context,
        "warnings": warnings,
        "report": generated.report,
        "ai_generated": generated.ai_generated,
        "warning": generated.warning,
    }


@app.post("/compare", response_model=ComparisonSummary)
async def compare_places(body: CompareRequest):
    return compare.compare(body.base, body.target, body.base_name, body.target_name)


# ---------- Stored reports ----------

@app.post("/reports", dependencies=[Depends(verify_admin)])
async def save_report(record: ReportRecord):
    try:
        created_at = db.insert_report(record)
    except Exception:
        logger.exception("Failed to save AI report")
        raise HTTPException(500, "Failed to save report")
    return {"ok": True, "created_at": created_at}


@app.get("/reports")
async def list_reports(limit: int = Query(20, ge=1, le=100, description="Max reports to return")):
    try:
        reports = db.get_recent_reports(limit)
    except Exception:
        logger.exception("Failed to load AI reports")
        raise HTTPException(500, "Failed to load reports")
    return {"count": len(reports), "reports": reports}
