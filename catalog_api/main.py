from contextlib import asynccontextmanager
from datetime import datetime
from typing import Iterator, Optional

import redis
from elasticsearch import Elasticsearch
from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .activity_log import ActivityReader, ActivityRecorder
from .data_models import (
    ActivityResponse,
    BookResponse,
    BookWriteResponse,
    SearchCriteria,
    SearchResponse,
    StoreResponse,
)
from .database import elasticsearch_client, redis_client
from .errors import AggregationUnavailableError, CatalogError
from .logger_setup import get_logger
from .middleware import MonitoringMiddleware, get_metrics_collector
from .params import parse_price_range
from .queries import catalog_write, ensure_books_index, get_book, get_store_statistics, search_books

logger = get_logger("catalog-api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the books index on startup if it is missing."""
    try:
        with elasticsearch_client() as client:
            created = ensure_books_index(client)
        logger.info("Books index ready", created=created)
    except CatalogError as e:
        logger.warning("Could not ensure books index on startup", error=str(e))

    yield


app = FastAPI(title="Book Catalog API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(MonitoringMiddleware)


# ------------------------------------------------------
# STORE CLIENTS (one per request, always closed)
# ------------------------------------------------------
def get_es() -> Iterator[Elasticsearch]:
    with elasticsearch_client() as client:
        yield client


def get_redis() -> Iterator[redis.Redis]:
    with redis_client() as client:
        yield client


def record_activity(client: redis.Redis, user_id: Optional[str], route: str, method: str) -> Optional[str]:
    """
    Record the request in the user's activity log.

    Failures are returned as text for the response instead of raised: the
    request they belong to has already succeeded.
    """
    if not user_id:
        return None
    try:
        ActivityRecorder(client).record(user_id, route, method)
    except CatalogError as e:
        logger.warning("Activity not recorded", user_id=user_id, route=route, method=method, error=str(e))
        return str(e)
    return None


# ------------------------------------------------------
# ERROR RENDERING
# ------------------------------------------------------
@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "invalid request parameters", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def unsupported_method_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return JSONResponse(
            status_code=405,
            content={"detail": f"Unsupported request for {request.url.path} {request.method}"},
        )
    return await http_exception_handler(request, exc)


# ------------------------------------------------------
# HEALTH CHECK AND METRICS (no external dependencies)
# ------------------------------------------------------
@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/metrics")
def get_api_metrics():
    """Get request metrics per endpoint."""
    return get_metrics_collector().get_all_stats()


# ------------------------------------------------------
# 1. BOOK CATALOG
# ------------------------------------------------------
@app.get("/book", response_model=BookResponse)
def read_book(
    book_id: str = Query(..., alias="id", min_length=1),
    user_id: Optional[str] = None,
    es: Elasticsearch = Depends(get_es),
    kv: redis.Redis = Depends(get_redis),
):
    book = get_book(es, book_id)
    return BookResponse(id=book_id, book=book, activity_error=record_activity(kv, user_id, "book", "GET"))


@app.put("/book", response_model=BookWriteResponse)
def add_book_api(
    book_id: str = Query(..., alias="id", min_length=1),
    title: str = "",
    author_name: str = "",
    price: int = 0,
    ebook_available: bool = False,
    publish_date: Optional[datetime] = None,
    user_id: Optional[str] = None,
    es: Elasticsearch = Depends(get_es),
    kv: redis.Redis = Depends(get_redis),
):
    fields = {
        "title": title,
        "author_name": author_name,
        "price": price,
        "ebook_available": ebook_available,
        "publish_date": publish_date,
    }
    result = catalog_write(es, "PUT", book_id, fields)
    return BookWriteResponse(**result, activity_error=record_activity(kv, user_id, "book", "PUT"))


@app.post("/book", response_model=BookWriteResponse)
def update_book_api(
    book_id: str = Query(..., alias="id", min_length=1),
    title: str = Query(...),
    user_id: Optional[str] = None,
    es: Elasticsearch = Depends(get_es),
    kv: redis.Redis = Depends(get_redis),
):
    result = catalog_write(es, "POST", book_id, {"title": title})
    return BookWriteResponse(**result, activity_error=record_activity(kv, user_id, "book", "POST"))


@app.delete("/book", response_model=BookWriteResponse)
def delete_book_api(
    book_id: str = Query(..., alias="id", min_length=1),
    user_id: Optional[str] = None,
    es: Elasticsearch = Depends(get_es),
    kv: redis.Redis = Depends(get_redis),
):
    result = catalog_write(es, "DELETE", book_id, {})
    return BookWriteResponse(**result, activity_error=record_activity(kv, user_id, "book", "DELETE"))


# ------------------------------------------------------
# 2. FILTERED SEARCH
# ------------------------------------------------------
@app.get("/search", response_model=SearchResponse)
def search_api(
    title: Optional[str] = None,
    author_name: Optional[str] = None,
    price_range: Optional[str] = Query(default=None, description="'<from>-<to>' or '<from>-'"),
    user_id: Optional[str] = None,
    es: Elasticsearch = Depends(get_es),
    kv: redis.Redis = Depends(get_redis),
):
    criteria = SearchCriteria(title=title, author_name=author_name, price_range=parse_price_range(price_range))
    result = search_books(es, criteria)
    return SearchResponse(
        total=result.total,
        books=result.books,
        activity_error=record_activity(kv, user_id, "search", "GET"),
    )


# ------------------------------------------------------
# 3. STORE STATISTICS
# ------------------------------------------------------
@app.get("/store", response_model=StoreResponse)
def store_api(
    user_id: Optional[str] = None,
    es: Elasticsearch = Depends(get_es),
    kv: redis.Redis = Depends(get_redis),
):
    summary = get_store_statistics(es)
    if summary is None:
        raise AggregationUnavailableError("no summary available")
    return StoreResponse(
        books=summary.books,
        authors=summary.authors,
        activity_error=record_activity(kv, user_id, "store", "GET"),
    )


# ------------------------------------------------------
# 4. RECENT USER ACTIVITY
# ------------------------------------------------------
@app.get("/activity", response_model=ActivityResponse)
def activity_api(
    user_id: Optional[str] = None,
    kv: redis.Redis = Depends(get_redis),
):
    if not user_id:
        return ActivityResponse(user_id=None, entries=[])
    return ActivityResponse(user_id=user_id, entries=ActivityReader(kv).recent(user_id))
