from contextlib import asynccontextmanager
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Optional
from dotenv import load_dotenv
import logging
import os
import time
import uuid

from mapscraper.browser import ScrapeError
from mapscraper.config import load_config_from_env
from mapscraper.models import ScrapeMode
from mapscraper.scrape import GoogleMapsScraper

from .models import SearchResponse, ErrorResponse, HealthResponse

load_dotenv()

# Set up logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
DEFAULT_TO_INDEX = 20

# Lazily created so the API starts even before a browser is needed
scraper: Optional[GoogleMapsScraper] = None


def get_scraper() -> GoogleMapsScraper:
    """Get scraper instance, initializing if needed"""
    global scraper
    if scraper is None:
        scraper = GoogleMapsScraper(load_config_from_env())
    return scraper


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    global scraper
    if scraper is not None:
        logger.info("Closing browser sessions")
        await scraper.close()
        scraper = None


app = FastAPI(
    title="Maps Place Scraper",
    description="Look up places on Google Maps and return structured records",
    version="1.0.0",
    lifespan=lifespan,
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.middleware("http")
async def request_logging(request: Request, call_next):
    """Tag every request with a short id and log it on the way in and out"""
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    started = time.monotonic()
    logger.info(f"[{request_id}] -> {request.method} {request.url.path}")
    response = await call_next(request)
    duration_ms = (time.monotonic() - started) * 1000
    logger.info(f"[{request_id}] <- {response.status_code} {request.method} {request.url.path} ({duration_ms:.0f}ms)")
    return response


# Global exception handler to ensure all errors return JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON responses"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return _error(500, "Internal server error.")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON responses"""
    return JSONResponse(status_code=422, content={"success": False, "error": str(exc.errors())})


@app.get("/", response_model=HealthResponse)
@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse()


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or not str(raw).strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@app.get("/search")
async def search(
    request: Request,
    q: str = Query("", description="Search query, e.g. 'coffee in Jakarta'"),
    limit: Optional[str] = Query(None, description="Flat top-N lookup size"),
    from_: Optional[str] = Query(None, alias="from", description="First result index, 1-based"),
    to: Optional[str] = Query(None, description="Last result index, inclusive"),
    detailed: bool = Query(False, description="Open each place page for full details"),
    key: str = Query("", description="API key, when the server requires one"),
):
    request_id = getattr(request.state, "request_id", "unknown")
    started = time.monotonic()
    query = q.strip()

    if not query:
        logger.info(f"[{request_id}] Missing parameter q")
        return _error(400, "Parameter q is required.")

    api_key = os.getenv("API_KEY", "")
    if api_key and key != api_key:
        logger.info(f"[{request_id}] Invalid API key")
        return _error(401, "Invalid API key.")

    limit_value = _parse_int(limit)
    from_value = _parse_int(from_)
    to_value = _parse_int(to)

    try:
        if from_value is None and to_value is None and not detailed:
            top_n = max(1, limit_value or DEFAULT_LIMIT)
            logger.info(f"[{request_id}] Scrape start: q=\"{query}\" limit={top_n}")
            records = await get_scraper().scrape_top(query, top_n, request_id=request_id)
            results = [r.to_dict() for r in records]
            total_available, actual_from, actual_to = len(results), 1 if results else 0, len(results)
        else:
            start = max(1, from_value or 1)
            if to_value is not None:
                end = max(start, to_value)
            elif limit_value:
                end = start + max(1, limit_value) - 1
            else:
                end = DEFAULT_TO_INDEX
            mode = ScrapeMode.DETAILED if detailed else ScrapeMode.FAST
            logger.info(f"[{request_id}] Scrape start: q=\"{query}\" from={start} to={end} mode={mode.value}")
            result = await get_scraper().scrape(query, start, end, mode, request_id=request_id)
            payload = result.to_dict()
            results = payload["results"]
            total_available = payload["totalAvailable"]
            actual_from, actual_to = payload["actualFrom"], payload["actualTo"]
    except ValueError as e:
        return _error(400, str(e))
    except ScrapeError as e:
        logger.error(f"[{request_id}] Scrape error: {e}")
        return _error(500, str(e) or "Scraping failed.")

    logger.info(f"[{request_id}] Scrape done: results={len(results)}")
    return SearchResponse(
        query=query,
        durationMs=int((time.monotonic() - started) * 1000),
        resultsCount=len(results),
        results=results,
        totalAvailable=total_available,
        actualFrom=actual_from,
        actualTo=actual_to,
    )


def run():
    """Serve the API with uvicorn"""
    import uvicorn

    port = int(os.getenv("PORT", "3000"))
    logger.info(f"Maps scraper API listening on port {port}. Try /search?q=coffee&limit=3")
    uvicorn.run("app.main:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
