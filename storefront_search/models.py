"""Pydantic models for request/response payloads."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SearchResponse(BaseModel):
    query: str
    products: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0
    error: Optional[str] = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int
    hasNextPage: bool
    hasPreviousPage: bool


class ListingResponse(BaseModel):
    success: bool
    products: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination
    facets: Optional[Dict[str, Any]] = None
    query: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class SuggestionItem(BaseModel):
    text: str
    type: str
    score: float
    count: Optional[int] = None
    product: Optional[Dict[str, Any]] = None


class SuggestionsResponse(BaseModel):
    success: bool
    query: str
    suggestions: List[SuggestionItem] = Field(default_factory=list)
    count: int = 0
    error: Optional[str] = None


class SyncStatusModel(BaseModel):
    connected: bool
    indexExists: bool
    documentsIndexed: int
    productsInCatalog: int
    synced: bool


class StatusResponse(BaseModel):
    success: bool = True
    status: SyncStatusModel


class SyncCommand(BaseModel):
    """Admin action; field presence is checked by the controller so gaps map to 400."""

    action: Optional[str] = None
    productId: Optional[str] = None
    updates: Optional[Dict[str, Any]] = None
    timeout: Optional[float] = Field(None, gt=0, description="Seconds before a bulk action stops")


class FailedItem(BaseModel):
    id: str
    error: str


class SyncResponse(BaseModel):
    success: bool
    message: str
    outcome: str
    indexed: int = 0
    failed: List[FailedItem] = Field(default_factory=list)
