import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Logging
    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    TRACE_LOG_FILENAME = os.getenv("TRACE_LOG_FILENAME", "query_trace.log")
    TRACE_LOG_PATH = os.path.join(LOG_DIR, TRACE_LOG_FILENAME)

    # Store backend: "memory" or "elasticsearch"
    STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")
    CHECKINS_PATH = os.getenv("CHECKINS_PATH", "")

    # Elasticsearch
    ES_HOST = os.getenv("ES_HOST", "http://localhost:9200")
    ES_INDEX = os.getenv("ES_INDEX", "checkins_v1")
    ES_REQUEST_TIMEOUT = float(os.getenv("ES_REQUEST_TIMEOUT", "10.0"))

    # Search Application
    APP_PORT = int(os.getenv("APP_PORT", "8000"))
    SERVICE_HOST = os.getenv("SERVICE_HOST", "127.0.0.1")

    # Distance sort reference point (New York City)
    REFERENCE_LATITUDE = float(os.getenv("REFERENCE_LATITUDE", "40.7128"))
    REFERENCE_LONGITUDE = float(os.getenv("REFERENCE_LONGITUDE", "-74.0060"))

    # Trajectory correlation
    COMPANION_WINDOW_HOURS = float(os.getenv("COMPANION_WINDOW_HOURS", "24"))
    COMPANION_LIMIT = int(os.getenv("COMPANION_LIMIT", "10"))
    MAX_CONCURRENT_LOOKUPS = int(os.getenv("MAX_CONCURRENT_LOOKUPS", "8"))

    # Autocomplete lookups
    DISTINCT_ID_LIMIT = int(os.getenv("DISTINCT_ID_LIMIT", "100"))


settings = Settings()
