import os
from dotenv import load_dotenv

load_dotenv()

# --- Upstream endpoints ---
NOMINATIM_BASE_URL = os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org")
OPEN_METEO_API_URL = os.getenv("OPEN_METEO_API_URL", "https://api.open-meteo.com/v1/forecast")
WIKIPEDIA_API_URL = os.getenv("WIKIPEDIA_API_URL", "https://es.wikipedia.org/w/api.php")
OVERPASS_URL = os.getenv("OVERPASS_BASE_URL", "https://overpass-api.de/api/interpreter")
GEOAPIFY_API_URL = os.getenv("GEOAPIFY_API_URL", "https://api.geoapify.com/v2/places")
GOOGLE_PLACES_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"
WIKIDATA_SPARQL_URL = os.getenv("WIKIDATA_SPARQL_ENDPOINT", "https://query.wikidata.org/sparql")

# --- Environmental indicator services ---
FLOOD_WMS_URL = os.getenv(
    "FLOOD_WMS_URL", "https://servicios.mapama.gob.es/arcgis/services/Agua/Riesgo/MapServer/WMSServer"
)
FLOOD_WMS_LAYERS = [
    layer.strip() for layer in os.getenv("FLOOD_WMS_LAYERS", "AreaImp_100").split(",") if layer.strip()
] or ["AreaImp_100"]
CAMS_WMS_URL = os.getenv("CAMS_WMS_URL", "https://eccharts.ecmwf.int/wms/")
CAMS_WMS_TOKEN = os.getenv("CAMS_WMS_TOKEN", "public")
CAMS_WMS_LAYER = os.getenv("CAMS_WMS_LAYER", "composition_europe_pm2p5_forecast_surface")
CAMS_METRIC = os.getenv("CAMS_METRIC", "PM2.5")
CAMS_UNITS = os.getenv("CAMS_UNITS", "ug/m3")
CLC_ARCGIS_URL = os.getenv(
    "COPERNICUS_CLC_ARCGIS_URL",
    "https://image.discomap.eea.europa.eu/arcgis/rest/services/Corine/CLC2018_WM/MapServer",
)
CLC_LAYER = os.getenv("COPERNICUS_CLC_LAYER", "0")

USER_AGENT = os.getenv("USER_AGENT", "place-context/1.0")
HTTP_TIMEOUT_S = float(os.getenv("HTTP_TIMEOUT_S", "15"))

# --- API keys (empty = provider disabled) ---
GEOAPIFY_API_KEY = os.getenv("GEOAPIFY_API_KEY", "")
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY", "")

# --- Narrative generator ---
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_API_URL = os.getenv("GROQ_API_URL", "https://api.groq.com/openai/v1")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
LLM_TEMPERATURE = 0.2

# --- Turso Database (report store) ---
TURSO_DATABASE_URL = os.getenv("TURSO_DATABASE_URL", "")
TURSO_AUTH_TOKEN = os.getenv("TURSO_AUTH_TOKEN", "")
REPORTS_DB_PATH = os.getenv("REPORTS_DB_PATH", "reports.db")

# --- Admin ---
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:8000,http://localhost:3000").split(",")

# --- Caches ---
WEATHER_CACHE_TTL_S = 10 * 60
KNOWLEDGE_CACHE_TTL_S = 15 * 60
WIKIDATA_CACHE_TTL_S = 20 * 60

# --- Spatial ---
DEFAULT_RADIUS_M = 1200
MAX_RADIUS_M = 5000
KNOWLEDGE_MIN_RADIUS_M = 300
KNOWLEDGE_MAX_RADIUS_M = 10_000
KNOWLEDGE_MAX_LIMIT = 12
KNOWLEDGE_DEFAULT_LIMIT = 8
WATERWAY_MAX_RADIUS_M = 4000

# --- POI taxonomy ---
POI_CATEGORIES = [
    "restaurants",
    "bars_and_clubs",
    "cafes",
    "pharmacies",
    "hospitals",
    "schools",
    "supermarkets",
    "transport",
    "hotels",
    "tourism",
    "museums",
    "viewpoints",
]

# Ordered (keywords, canonical type) pairs; the first rule with a keyword
# contained in the classification key wins.
TYPE_RULES: list[tuple[tuple[str, ...], str]] = [
    (("restaurant",), "restaurant"),
    (("fast_food",), "fast_food"),
    (("cafe",), "cafe"),
    (("bar", "pub"), "bar"),
    (("nightclub", "club"), "club"),
    (("pharmacy",), "pharmacy"),
    (("hospital", "clinic", "doctors"), "hospital"),
    (("school", "college", "university"), "school"),
    (("supermarket",), "supermarket"),
    (("bus", "station", "transport"), "bus_stop"),
    (("hotel", "hostel", "guest_house"), "hotel"),
    (("museum",), "museum"),
    (("viewpoint",), "viewpoint"),
    (("attraction", "tourism", "monument"), "attraction"),
]

DEFAULT_POI_TYPE = "poi"

TYPE_TO_BUCKET: dict[str, str] = {
    "restaurant": "restaurants",
    "fast_food": "restaurants",
    "bar": "bars_and_clubs",
    "club": "bars_and_clubs",
    "cafe": "cafes",
    "pharmacy": "pharmacies",
    "hospital": "hospitals",
    "school": "schools",
    "supermarket": "supermarkets",
    "bus_stop": "transport",
    "hotel": "hotels",
    "museum": "museums",
    "viewpoint": "viewpoints",
    "attraction": "tourism",
}

# Classification keys containing this marker land in `tourism` when the
# type itself has no bucket.
TOURISM_KEY_MARKER = "tourism"

# Spanish labels for CORINE Land Cover 2018 level-3 codes.
CLC_LABELS: dict[str, str] = {
    "111": "Tejido urbano continuo",
    "112": "Tejido urbano discontinuo",
    "121": "Zonas industriales o comerciales",
    "122": "Redes viarias y ferroviarias",
    "123": "Zonas portuarias",
    "124": "Aeropuertos",
    "131": "Extraccion minera",
    "132": "Vertederos",
    "133": "Zonas en construccion",
    "141": "Zonas verdes urbanas",
    "142": "Instalaciones deportivas y ocio",
    "211": "Cultivos de secano",
    "212": "Cultivos de regadio",
    "213": "Arrozales",
    "221": "Vinedos",
    "222": "Frutales y bayas",
    "223": "Olivares",
    "231": "Pastos",
    "241": "Cultivos mixtos con permanentes",
    "242": "Mosaico de cultivos",
    "243": "Agricultura con vegetacion natural",
    "244": "Agroforesteria",
    "311": "Bosque frondoso",
    "312": "Bosque de coniferas",
    "313": "Bosque mixto",
    "321": "Praderas naturales",
    "322": "Matorrales y brezales",
    "323": "Vegetacion esclerofila",
    "324": "Matorral arbolado",
    "331": "Playas, dunas y arenas",
    "332": "Roquedo",
    "333": "Vegetacion escasa",
    "334": "Zonas quemadas",
    "335": "Glaciares y nieves perpetuas",
    "411": "Marismas interiores",
    "412": "Turberas",
    "421": "Marismas salinas",
    "422": "Salinas",
    "423": "Llanuras intermareales",
    "511": "Cursos de agua",
    "512": "Laminas de agua",
    "521": "Lagunas costeras",
    "522": "Estuarios",
    "523": "Mar y oceano",
}
