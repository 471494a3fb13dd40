import logging

from checkin_explorer.core.config import settings
from checkin_explorer.store.base import CheckInStore

logger = logging.getLogger(__name__)


def build_store(backend: str = None) -> CheckInStore:
    """Create the store named by `backend` (defaults to settings.STORE_BACKEND)."""
    backend = (backend or settings.STORE_BACKEND).lower()

    if backend == "elasticsearch":
        from checkin_explorer.store.es_store import ElasticsearchCheckInStore

        logger.info(f"Using Elasticsearch store at {settings.ES_HOST}/{settings.ES_INDEX}")
        return ElasticsearchCheckInStore()

    if backend == "memory":
        from checkin_explorer.store.memory_store import InMemoryCheckInStore

        if settings.CHECKINS_PATH:
            return InMemoryCheckInStore.from_gowalla_file(settings.CHECKINS_PATH)
        logger.warning("CHECKINS_PATH not set, in-memory store starts empty")
        return InMemoryCheckInStore()

    raise ValueError(f"Unknown store backend: {backend}")
