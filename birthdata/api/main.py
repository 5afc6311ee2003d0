"""FastAPI application for the SCB birth data API.

Provides:
- /api/birth-data: All records (cached), refresh, per-region, aggregates,
  trends, comparison, top list, statistics and filtering
- /api/municipalities: Municipality boundary GeoJSON passthrough
- /api/cities: City reference data passthrough
- /health: Health check endpoint

Usage:
    python -m birthdata.api.main [--port 5001]
    # Or via the console script:
    birthdata-serve
"""

import argparse
import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any

import duckdb
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from birthdata.api.queries import BirthDataFilter
from birthdata.api.schemas import (
    BirthRecordResponse,
    BirthStatistics,
    ErrorResponse,
    HealthResponse,
    RefreshResponse,
    RegionYearTotal,
    TopRegion,
    TrendPoint,
)
from birthdata.config import Config
from birthdata.data_access import create_configured_connection
from birthdata.errors import BirthDataError, FetchFailed, InvalidRequest, PersistFailed
from birthdata.service import DEFAULT_TOP_LIMIT, BirthDataService
from birthdata.store import count_records

logger = logging.getLogger(__name__)

MUNICIPALITIES_FILE = "swedish_municipalities.geojson"
CITIES_FILE = "se.json"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - open and close the database."""
    config: Config = getattr(app.state, "config", None) or Config.load()
    app.state.config = config

    try:
        logger.info(f"Opening database {config.database.path}")
        conn = create_configured_connection(config.database)
    except duckdb.Error as e:
        logger.error(f"Could not open database: {e}")
        logger.warning("API will run but /api/birth-data will return 503")
        app.state.service = None
        conn = None
    else:
        app.state.service = BirthDataService.from_config(config, conn)
        logger.info(f"Database ready with {count_records(conn):,} records")

    yield

    if conn is not None:
        conn.close()


# API metadata for OpenAPI docs
app = FastAPI(
    title="SCB Birth Data API",
    description="Swedish municipal birth statistics from SCB",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


def _error(status_code: int, message: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "error": str(exc)})


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest) -> JSONResponse:
    return _error(400, "Invalid request", exc)


@app.exception_handler(FetchFailed)
async def fetch_failed_handler(request: Request, exc: FetchFailed) -> JSONResponse:
    return _error(500, "Error updating birth data", exc)


@app.exception_handler(PersistFailed)
async def persist_failed_handler(request: Request, exc: PersistFailed) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "message": "Error updating birth data",
            "error": str(exc),
            "applied": exc.applied,
        },
    )


@app.exception_handler(BirthDataError)
async def birth_data_error_handler(request: Request, exc: BirthDataError) -> JSONResponse:
    return _error(500, "Error processing birth data", exc)


@app.exception_handler(duckdb.Error)
async def database_error_handler(request: Request, exc: duckdb.Error) -> JSONResponse:
    logger.error(f"Database error on {request.url.path}: {exc}")
    return _error(500, "Error reading birth data", exc)


def get_service(request: Request) -> BirthDataService:
    """Get birth data service from app state.

    Args:
        request: FastAPI request object

    Returns:
        BirthDataService bound to the open database

    Raises:
        HTTPException: If database not initialized
    """
    service: BirthDataService | None = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Database not initialized")
    return service


def get_data_dir(request: Request) -> Path:
    config: Config | None = getattr(request.app.state, "config", None)
    return config.data_dir if config is not None else Path("data")


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(request: Request) -> HealthResponse:
    """Check API health and return basic stats."""
    try:
        service = get_service(request)
        return HealthResponse(status="healthy", records_count=count_records(service.conn))
    except HTTPException:
        # Database not initialized - still healthy but no records
        return HealthResponse(status="healthy", records_count=0)


@app.get("/api/birth-data", response_model=list[BirthRecordResponse], tags=["Birth data"])
async def get_all_birth_data(request: Request) -> list[dict[str, Any]]:
    """Get every birth record. Served from cache until the next refresh or TTL expiry."""
    records = get_service(request).list_all()
    logger.info(f"Returning {len(records)} records")
    return records


@app.get(
    "/api/birth-data/update",
    response_model=RefreshResponse,
    responses={500: {"model": ErrorResponse}},
    tags=["Birth data"],
)
async def update_birth_data(request: Request) -> RefreshResponse:
    """Fetch births from SCB, upsert them and invalidate the cache."""
    logger.info("Received birth data refresh request")
    service = get_service(request)
    raw = await run_in_threadpool(service.fetch)
    result = service.apply(raw)
    return RefreshResponse(message=result.message, applied=result.applied, skipped=result.skipped)


@app.get(
    "/api/birth-data/aggregated", response_model=list[RegionYearTotal], tags=["Birth data"]
)
async def get_aggregated_data(request: Request) -> list[dict[str, Any]]:
    """Births per municipality and year, ordered by year then municipality code."""
    return get_service(request).aggregate_by_region_year()


@app.get("/api/birth-data/trends", response_model=list[TrendPoint], tags=["Birth data"])
async def get_birth_trends(request: Request) -> list[dict[str, Any]]:
    """Births per year and sex, ordered by year then sex."""
    return get_service(request).trends()


@app.get(
    "/api/birth-data/compare",
    response_model=list[RegionYearTotal],
    responses={400: {"model": ErrorResponse}},
    tags=["Birth data"],
)
async def compare_regions(
    request: Request,
    region_codes: Annotated[
        str | None,
        Query(alias="regionCodes", description="Comma-separated municipality codes"),
    ] = None,
) -> list[dict[str, Any]]:
    """Births per municipality and year for the given municipalities."""
    codes = region_codes.split(",") if region_codes else []
    return get_service(request).compare(codes)


@app.get(
    "/api/birth-data/top",
    response_model=list[TopRegion],
    responses={400: {"model": ErrorResponse}},
    tags=["Birth data"],
)
async def get_top_regions(
    request: Request,
    year: Annotated[int | None, Query(description="Year to rank municipalities for")] = None,
    limit: Annotated[int, Query(description="Municipalities to return")] = DEFAULT_TOP_LIMIT,
) -> list[dict[str, Any]]:
    """Municipalities with the most births in a year."""
    return get_service(request).top(year=year, limit=limit)


@app.get("/api/birth-data/statistics", response_model=BirthStatistics, tags=["Birth data"])
async def get_birth_statistics(request: Request) -> dict[str, Any]:
    """Sum, average, max and min of births across all records."""
    return get_service(request).statistics()


@app.get("/api/birth-data/filter", response_model=list[BirthRecordResponse], tags=["Birth data"])
async def get_filtered_birth_data(
    request: Request,
    year: Annotated[int | None, Query(description="Filter by year")] = None,
    gender: Annotated[str | None, Query(description="Filter by SCB sex code")] = None,
    region_code: Annotated[
        str | None, Query(alias="regionCode", description="Filter by municipality code")
    ] = None,
) -> list[dict[str, Any]]:
    """Records matching all supplied filters. Omitted filters match everything."""
    birth_filter = BirthDataFilter(
        year=year, gender=gender or None, region_code=region_code or None
    )
    return get_service(request).filter(birth_filter)


# Registered after the fixed /api/birth-data/* paths so they are not shadowed
@app.get(
    "/api/birth-data/{region_code}",
    response_model=list[BirthRecordResponse],
    tags=["Birth data"],
)
async def get_region_data(request: Request, region_code: str) -> list[dict[str, Any]]:
    """All records for one municipality."""
    return get_service(request).by_region(region_code)


@app.get("/api/municipalities", tags=["Reference data"], response_model=None)
async def get_municipalities(request: Request) -> FileResponse | JSONResponse:
    """Municipality boundaries as GeoJSON."""
    path = get_data_dir(request) / MUNICIPALITIES_FILE
    if not path.exists():
        return _error(500, "Error reading municipality data", FileNotFoundError(path))
    return FileResponse(path, media_type="application/geo+json")


@app.get("/api/cities", tags=["Reference data"], response_model=None)
async def get_cities(request: Request) -> Any:
    """Swedish city reference data."""
    path = get_data_dir(request) / CITIES_FILE
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read {path}: {e}")
        return _error(500, "Error reading city data", e)


def create_app(config: Config | None = None) -> FastAPI:
    """Configure the FastAPI app with settings and CORS.

    Args:
        config: Application configuration. Defaults to config.toml plus
            environment overrides.

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = Config.load()

    # Lifespan picks this up to open the database
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.server.allowed_origin],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    return app


def main() -> None:
    """Run the API server."""
    import uvicorn

    config = Config.load()

    parser = argparse.ArgumentParser(description="SCB birth data API server")
    parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=config.server.port,
        help=f"Port to serve on (default: {config.server.port})",
    )
    parser.add_argument(
        "--host",
        "-H",
        type=str,
        default=config.server.host,
        help=f"Host to bind to (default: {config.server.host})",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    print("Starting SCB birth data API...")
    print(f"API docs: http://{args.host}:{args.port}/docs")
    print("Press Ctrl+C to stop\n")

    create_app(config)
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
