"""
API routes for the Product Data Service.

Handlers are plain ``def`` functions: FastAPI runs them in its worker
thread pool, so the synchronous core and store calls never block the
event loop.

Endpoints:
    GET    /                     health check
    GET    /skus                 query with $filter/$top/$skip/$orderby/$count/$inlinecount
    POST   /skus                 merge-on-write upsert of SKU entries
    POST   /skus/ingest          upsert of flat product readings
    GET    /productid/{id}       product entry by product id
    DELETE /skus/{sku}           remove one SKU
    GET    /metrics              in-process operation counters
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from ..mapping.ingest import Reading
from ..mapping.service import PRODUCT_ID_MAX_LENGTH, ProductDataService
from ..metrics import CountingObserver
from ..models import ProductEntry, SkuEntry
from ..query.directives import QueryDirectives

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Product Data"])


# --- Request Models ---


class ProductIn(BaseModel):
    """One product of an incoming SKU entry."""

    model_config = ConfigDict(extra="forbid")

    productId: str = Field(..., min_length=1, max_length=PRODUCT_ID_MAX_LENGTH)
    beingRead: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    becomingReadable: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    exitError: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    dailyTurn: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SkuIn(BaseModel):
    """An incoming SKU entry."""

    model_config = ConfigDict(extra="forbid")

    sku: str = Field(..., description="Unique business key")
    productList: list[ProductIn] = Field(..., description="Products of the SKU")

    def to_entry(self) -> SkuEntry:
        return SkuEntry.from_dict(self.model_dump())


class SkuBatchRequest(BaseModel):
    """Request to upsert SKU entries."""

    model_config = ConfigDict(extra="forbid")

    data: list[SkuIn] = Field(..., min_length=1, description="SKU entries to upsert")


class ReadingIn(BaseModel):
    """One flat product reading."""

    model_config = ConfigDict(extra="forbid")

    sku: str = Field(..., min_length=1)
    upc: str = Field(..., min_length=1, max_length=PRODUCT_ID_MAX_LENGTH)
    beingRead: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    becomingReadable: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    exitError: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    dailyTurn: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    metadata: dict[str, Any] = Field(default_factory=dict)


class IngestRequest(BaseModel):
    """Request to ingest flat readings."""

    model_config = ConfigDict(extra="forbid")

    data: list[ReadingIn] = Field(..., min_length=1, description="Readings to ingest")


# --- Dependencies ---


def get_service(request: Request) -> ProductDataService:
    """Get the service from app state."""
    return request.app.state.service


# --- Routes ---


@router.get("/")
def index() -> str:
    """Health check."""
    return "Product Data Service"


@router.get("/skus")
def get_skus(
    request: Request,
    service: ProductDataService = Depends(get_service),
) -> dict[str, Any]:
    """
    Query SKU entries.

    Examples:
        /skus?$count                                   total number of entries
        /skus?$count&$filter=(sku eq 'MS122-32')       number of matching entries
        /skus?$inlinecount=allpages&$filter=...        matching entries and their count
        /skus?$top=10&$orderby=sku desc                first page, newest skus first
    """
    directives = QueryDirectives.from_query(request.query_params.multi_items())
    result = service.retrieve(directives, request.app.state.settings.response_limit)

    body: dict[str, Any] = {}
    if result.entries is not None:
        body["results"] = [entry.to_dict() for entry in result.entries]
    if result.count is not None:
        body["count"] = result.count.count
    return body


@router.post("/skus", status_code=201)
def post_skus(
    payload: SkuBatchRequest,
    service: ProductDataService = Depends(get_service),
) -> Response:
    """Upsert SKU entries, merging products with what is already stored."""
    written = service.insert([item.to_entry() for item in payload.data])
    logger.info("Inserted SKU entries", extra={"received": len(payload.data), "written": written})
    return Response(status_code=201)


@router.post("/skus/ingest", status_code=201)
def ingest_readings(
    payload: IngestRequest,
    service: ProductDataService = Depends(get_service),
) -> Response:
    """Upsert flat product readings grouped by sku."""
    readings = [Reading.from_dict(item.model_dump()) for item in payload.data]
    written = service.ingest(readings)
    logger.info("Ingested readings", extra={"received": len(readings), "written": written})
    return Response(status_code=201)


@router.get("/productid/{product_id}")
def get_product(
    product_id: str,
    service: ProductDataService = Depends(get_service),
) -> dict[str, Any]:
    """Return the product entry with the given product id."""
    entry = service.get_by_product_id(product_id)
    product: ProductEntry = entry.product_list[0]
    return product.to_dict()


@router.delete("/skus/{sku}", status_code=204)
def delete_sku(
    sku: str,
    service: ProductDataService = Depends(get_service),
) -> Response:
    """Delete one SKU entry."""
    service.delete_by_sku(sku)
    return Response(status_code=204)


@router.get("/metrics")
def get_metrics(service: ProductDataService = Depends(get_service)) -> dict[str, Any]:
    """Operation counters; empty when metrics are disabled."""
    observer = service.observer
    if isinstance(observer, CountingObserver):
        return {"enabled": True, "operations": observer.snapshot()}
    return {"enabled": False, "operations": {}}
