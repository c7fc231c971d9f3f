"""FastAPI application wiring search, suggestions and index synchronization."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .container import get_index_store, get_search_service, get_suggestion_engine, get_sync_controller
from .exceptions import NotFoundError, SearchEngineError, ValidationError
from .history import DEFAULT_OWNER
from .models import (
    ListingResponse,
    SearchResponse,
    StatusResponse,
    SuggestionItem,
    SuggestionsResponse,
    SyncCommand,
    SyncResponse,
)
from .query_builder import build_search_query
from .suggestions import SuggestionType
from .sync import Cancellation, Outcome

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL = logging.getLevelName(settings.log_level.upper())

# ``force=True`` replaces uvicorn's default handlers so engine logs share one format.
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, force=True)
for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "elastic_transport"):
    logging.getLogger(name).setLevel(LOG_LEVEL)

logger = logging.getLogger(__name__)
logger.info("Logging configured at %s", settings.log_level.upper())

app = FastAPI(title="Storefront Search Service")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request: " + "; ".join(err.get("msg", "") for err in exc.errors()))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, str(exc))


@app.exception_handler(SearchEngineError)
async def engine_error_handler(request: Request, exc: SearchEngineError) -> JSONResponse:
    logger.error("Engine failure on %s: %s", request.url.path, exc)
    return _error(500, str(exc))


@app.on_event("startup")
async def startup_event() -> None:
    if not settings.auto_create_index:
        return
    try:
        result = await get_sync_controller().create_index()
        logger.info("Startup index check: %s", result.message)
    except SearchEngineError as exc:
        logger.error("Index store unavailable at startup: %s", exc)


@app.get("/health")
async def health() -> dict:
    store = get_index_store()
    connected = await store.ping()
    exists = await store.index_exists() if connected else False
    return {
        "connected": connected,
        "index": settings.es_index,
        "indexExists": exists,
        "documents": await store.count() if exists else 0,
    }


@app.get("/search", response_model=SearchResponse)
async def search(
    q: str = Query("", description="Search query"),
    limit: Optional[int] = None,
    owner: str = DEFAULT_OWNER,
) -> SearchResponse:
    payload = await get_search_service().search_products(q, limit=limit, owner=owner)
    return SearchResponse(**payload)


@app.get("/products/search", response_model=ListingResponse)
async def list_products(
    q: str = "",
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    in_stock: bool = Query(False, alias="inStock"),
    rating: Optional[float] = None,
    tags: Optional[str] = None,
    sort: str = "relevance",
    page: int = 1,
    limit: Optional[int] = None,
    owner: str = DEFAULT_OWNER,
) -> ListingResponse:
    tag_list = [tag for tag in (tags or "").split(",") if tag.strip()]
    search_query = build_search_query(
        q,
        category=category,
        subcategory=subcategory,
        brand=brand,
        min_price=min_price,
        max_price=max_price,
        in_stock_only=in_stock,
        min_rating=rating,
        tags=tag_list,
        sort=sort,
        page=page,
        limit=limit,
    )
    result = await get_search_service().browse(search_query, owner=owner)
    return ListingResponse(
        success=result.error is None,
        products=result.products,
        pagination=result.pagination(),
        facets=result.facets,
        query={
            "searchTerm": search_query.text,
            "filters": {
                "category": category,
                "subcategory": subcategory,
                "brand": brand,
                "minPrice": min_price,
                "maxPrice": max_price,
                "inStock": in_stock,
                "rating": rating,
                "tags": tag_list,
            },
            "sort": search_query.sort.value,
        },
        error=result.error,
    )


@app.get("/search/suggestions", response_model=SuggestionsResponse)
async def suggestions(
    q: str = "",
    category: Optional[str] = None,
    limit: int = settings.suggest_default_limit,
    owner: str = DEFAULT_OWNER,
) -> SuggestionsResponse:
    if not q.strip():
        return SuggestionsResponse(success=True, query="", suggestions=[], count=0)
    result = await get_suggestion_engine().suggest(q, category=category, limit=limit, owner=owner)
    items = [
        SuggestionItem(
            text=item.text,
            type=item.type.value,
            score=item.score,
            count=item.weight if item.type is SuggestionType.HISTORY else None,
            product=item.product,
        )
        for item in result.suggestions
    ]
    return SuggestionsResponse(
        success=not (result.errors and not items),
        query=result.query,
        suggestions=items,
        count=len(items),
        error=result.error,
    )


@app.get("/admin/search", response_model=StatusResponse)
async def admin_status(action: Optional[str] = None) -> StatusResponse:
    if action != "status":
        raise ValidationError("Invalid action. Use ?action=status")
    status = await get_sync_controller().status()
    return StatusResponse(status=status.to_dict())


@app.post("/admin/search", response_model=SyncResponse)
async def admin_sync(command: SyncCommand):
    if not command.action:
        raise ValidationError("action is required")
    result = await get_sync_controller().run(
        command.action,
        product_id=command.productId,
        updates=command.updates,
        cancellation=Cancellation.after(command.timeout),
    )
    if result.outcome is Outcome.ALREADY_IN_PROGRESS:
        return JSONResponse(status_code=409, content=result.to_dict())
    return SyncResponse(**result.to_dict())
