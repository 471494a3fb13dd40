import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from checkin_explorer.core.config import settings
from checkin_explorer.core.errors import InvalidArgument, UpstreamUnavailable
from checkin_explorer.models import (
    CustomSearchRequest,
    CustomSearchResponse,
    LocationIdsResponse,
    PopularPOIRequest,
    PopularPOIResponse,
    SearchCriteria,
    TrajectorySearchRequest,
    TrajectorySearchResponse,
    UserIdsResponse,
)
from checkin_explorer.orchestrator import QueryOrchestrator
from checkin_explorer.store.factory import build_store

logger = logging.getLogger(__name__)

_orchestrator = None


def get_orchestrator() -> QueryOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = QueryOrchestrator(build_store())
    return _orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    orchestrator = get_orchestrator()
    logger.info(f"Check-in store ready: {orchestrator.store.name}")
    yield
    await orchestrator.store.close()


app = FastAPI(title="Check-in Explorer Service", version="1.0", lifespan=lifespan)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"status": "error", "message": message}
    )


@app.exception_handler(InvalidArgument)
async def invalid_argument_handler(request: Request, exc: InvalidArgument):
    return _error(400, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first["loc"] if part != "body")
    return _error(400, f"{field}: {first['msg']}" if field else first["msg"])


@app.exception_handler(UpstreamUnavailable)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailable):
    logger.error(f"{request.url.path} failed: {exc!r} (cause: {exc.__cause__!r})")
    return _error(503, "Check-in store is unavailable, please try again later")


@app.get("/api/available-userids", response_model=UserIdsResponse)
async def available_user_ids(orchestrator: QueryOrchestrator = Depends(get_orchestrator)):
    return {"user_ids": await orchestrator.available_user_ids()}


@app.get("/api/available-locationids", response_model=LocationIdsResponse)
async def available_location_ids(
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
):
    return {"location_ids": await orchestrator.available_location_ids()}


@app.post("/api/trajectory-search", response_model=TrajectorySearchResponse)
async def trajectory_search(
    req: TrajectorySearchRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
):
    points = await orchestrator.build_trajectory(
        req.user_id, req.start_date, req.end_date, req.radius
    )
    return {
        "user_id": req.user_id,
        "start_date": req.start_date,
        "end_date": req.end_date,
        "check_ins": points,
    }


@app.post("/api/custom-search", response_model=CustomSearchResponse)
async def custom_search(
    req: CustomSearchRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
):
    check_ins = await orchestrator.search(
        SearchCriteria(
            user_id=req.user_id,
            location_id=req.location_id,
            sort_mode=req.sort_by,
            limit=req.limit,
        )
    )
    return {
        "user_id": req.user_id,
        "location_id": req.location_id,
        "sort_by": req.sort_by,
        "check_ins": check_ins,
    }


@app.post("/api/popular-pois", response_model=PopularPOIResponse)
async def popular_pois(
    req: PopularPOIRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
):
    pois = await orchestrator.rank_popular_locations(
        req.start_date, req.end_date, req.bounds, req.limit
    )
    return {
        "start_date": req.start_date,
        "end_date": req.end_date,
        "bounds": req.bounds,
        "pois": pois,
    }


@app.get("/health")
async def health():
    return {"status": "ok", "store": settings.STORE_BACKEND}


if __name__ == "__main__":
    uvicorn.run(app, host=settings.SERVICE_HOST, port=settings.APP_PORT)
