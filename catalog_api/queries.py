import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from elasticsearch import ApiError, ConnectionError as ESConnectionError, ConnectionTimeout, Elasticsearch
from elasticsearch import NotFoundError as ESNotFoundError

from .data_models import AggregateSummary, Book, SearchCriteria
from .errors import NotFoundError, StoreConnectionError, StoreError, UnsupportedOperationError
from .logger_setup import get_logger
from .settings import get_settings

logger = get_logger("catalog-queries")

SEARCH_OFFSET = 0
SEARCH_PAGE_SIZE = 10
SEARCH_SORT = [{"title.keyword": {"order": "asc"}}]

DISTINCT_AUTHORS_AGG = "distinct_authors"

BOOKS_INDEX_SETTINGS = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
}

BOOKS_INDEX_MAPPINGS = {
    "properties": {
        "title": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
        "author_name": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
        "price": {"type": "integer"},
        "ebook_available": {"type": "boolean"},
        "publish_date": {"type": "date"},
    }
}


@dataclass
class SearchResult:
    query: Dict[str, Any]
    total: int = 0
    books: List[Dict[str, Any]] = field(default_factory=list)


def _index(index: Optional[str]) -> str:
    return index or get_settings().books_index


def _body(response) -> Dict[str, Any]:
    # client responses wrap the decoded JSON; plain dicts pass through
    return getattr(response, "body", response)


@contextmanager
def _store_call(context: str, **fields):
    """Wrap Elasticsearch client errors in the catalog error taxonomy."""
    try:
        yield
    except (ESConnectionError, ConnectionTimeout) as e:
        logger.error("Document store unreachable", step=context, error=str(e), **fields)
        raise StoreConnectionError(context, str(e)) from e
    except ESNotFoundError as e:
        raise NotFoundError(context, "not found") from e
    except ApiError as e:
        logger.error("Document store error", step=context, error=str(e), **fields)
        raise StoreError(context, str(e)) from e


# ---------------------------------------------------------------------
# INDEX BOOTSTRAP
# ---------------------------------------------------------------------
def ensure_books_index(client: Elasticsearch, index: Optional[str] = None) -> bool:
    """Create the books index unless it exists. Returns True when created."""
    index = _index(index)
    with _store_call("cannot create the books index", index=index):
        if client.indices.exists(index=index):
            return False
        client.indices.create(index=index, settings=BOOKS_INDEX_SETTINGS, mappings=BOOKS_INDEX_MAPPINGS)
    logger.info("Books index created", index=index)
    return True


# ---------------------------------------------------------------------
# CATALOG CRUD
# ---------------------------------------------------------------------
def add_book(client: Elasticsearch, book_id: str, book: Book, index: Optional[str] = None) -> Dict[str, Any]:
    index = _index(index)
    with _store_call("cannot add the book", book_id=book_id):
        response = client.index(index=index, id=book_id, document=book.model_dump(mode="json"))
    logger.info("Book indexed", book_id=response["_id"], index=index, version=response["_version"])
    return {
        "id": response["_id"],
        "index": response["_index"],
        "version": response["_version"],
        "result": response["result"],
        "found": True,
    }


def get_book(client: Elasticsearch, book_id: str, index: Optional[str] = None) -> Dict[str, Any]:
    with _store_call("cannot GET a book", book_id=book_id):
        response = client.get(index=_index(index), id=book_id)
    return response["_source"]


def update_book_title(client: Elasticsearch, book_id: str, title: str, index: Optional[str] = None) -> Dict[str, Any]:
    with _store_call("cannot update the book", book_id=book_id):
        response = client.update(index=_index(index), id=book_id, doc={"title": title})
    logger.info("Book title updated", book_id=book_id, version=response["_version"])
    return {
        "id": response["_id"],
        "version": response["_version"],
        "result": response["result"],
        "found": True,
    }


def delete_book(client: Elasticsearch, book_id: str, index: Optional[str] = None) -> Dict[str, Any]:
    """Delete a book. A missing id is reported through ``found`` rather than raised."""
    try:
        with _store_call("cannot delete the book", book_id=book_id):
            response = client.delete(index=_index(index), id=book_id)
    except NotFoundError:
        logger.info("Book to delete not found", book_id=book_id)
        return {"id": book_id, "version": None, "result": "not_found", "found": False}

    logger.info("Book deleted", book_id=book_id, version=response["_version"])
    return {
        "id": response["_id"],
        "version": response["_version"],
        "result": response["result"],
        "found": True,
    }


def catalog_write(client: Elasticsearch, method: str, book_id: str, fields: Dict[str, Any],
                  index: Optional[str] = None) -> Dict[str, Any]:
    """Dispatch a mutating /book request: PUT adds, POST retitles, DELETE removes."""
    method = method.upper()
    if method == "PUT":
        return add_book(client, book_id, Book(**fields), index=index)
    if method == "POST":
        return update_book_title(client, book_id, fields.get("title") or "", index=index)
    if method == "DELETE":
        return delete_book(client, book_id, index=index)
    raise UnsupportedOperationError(f"Unsupported request for /book {method}")


# ---------------------------------------------------------------------
# FILTERED SEARCH
# ---------------------------------------------------------------------
def build_search_query(criteria: SearchCriteria) -> Dict[str, Any]:
    """
    Compose the criteria into one conjunctive query.

    Each present criterion adds a ``must`` clause; with no criteria the
    query is ``match_all``.
    """
    if criteria.is_empty:
        return {"match_all": {}}

    clauses = []
    if criteria.title is not None:
        clauses.append({"match": {"title": criteria.title}})
    if criteria.author_name is not None:
        clauses.append({"match": {"author_name": criteria.author_name}})
    if criteria.price_range is not None:
        bounds = {"gte": criteria.price_range.from_}
        if criteria.price_range.to is not None:
            bounds["lte"] = criteria.price_range.to
        clauses.append({"range": {"price": bounds}})

    return {"bool": {"must": clauses}}


def search_books(client: Elasticsearch, criteria: SearchCriteria, index: Optional[str] = None) -> SearchResult:
    query = build_search_query(criteria)
    try:
        with _store_call("cannot search books"):
            response = client.search(
                index=_index(index),
                query=query,
                sort=SEARCH_SORT,
                from_=SEARCH_OFFSET,
                size=SEARCH_PAGE_SIZE,
                track_total_hits=True,
            )
    except NotFoundError:
        # books index not created yet
        logger.warning("Books index not found", index=_index(index))
        return SearchResult(query=query)

    hits = response["hits"]
    total = hits["total"]
    result = SearchResult(
        query=query,
        total=int(total["value"] if isinstance(total, dict) else total),
        books=[hit["_source"] for hit in hits["hits"]],
    )
    logger.info("Books searched", total=result.total, returned=len(result.books))
    return result


# ---------------------------------------------------------------------
# STATISTICS
# ---------------------------------------------------------------------
def build_statistics_request() -> Dict[str, Any]:
    return {
        "size": 0,
        "track_total_hits": True,
        "aggs": {DISTINCT_AUTHORS_AGG: {"cardinality": {"field": "author_name.keyword"}}},
    }


def _round_half_away(value: float) -> int:
    return max(0, int(math.floor(value + 0.5)))


def summarize_aggregation(raw: Dict[str, Any]) -> Optional[AggregateSummary]:
    """
    Turn a raw aggregation response into an ``AggregateSummary``.

    Returns ``None`` when the cardinality value is missing, so that "no data"
    stays distinguishable from a collection of zero books. The estimate is
    rounded half away from zero.
    """
    raw = _body(raw)
    aggregation = (raw.get("aggregations") or {}).get(DISTINCT_AUTHORS_AGG)
    if not aggregation or aggregation.get("value") is None:
        return None

    total = raw["hits"]["total"]
    books = int(total["value"] if isinstance(total, dict) else total)
    return AggregateSummary(books=books, authors=_round_half_away(aggregation["value"]))


def get_store_statistics(client: Elasticsearch, index: Optional[str] = None) -> Optional[AggregateSummary]:
    with _store_call("cannot run the aggregation query"):
        response = client.search(index=_index(index), **build_statistics_request())

    summary = summarize_aggregation(response)
    if summary is None:
        logger.warning("Distinct authors aggregation not available", index=_index(index))
    else:
        logger.info("Store statistics computed", books=summary.books, authors=summary.authors)
    return summary
