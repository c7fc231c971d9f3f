"""Catalog product -> search document transformation.

The transformer is the only place where catalog values are coerced into the
primitive types the index mapping expects. Decimal and string numbers become
``float``/``int``, missing optionals fall back to fixed defaults, and the
derived fields (``discount``, ``inStock``) are computed here once.
"""
from __future__ import annotations

import logging
import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

FEATURE_FLAGS = (
    "isFeatured",
    "isNewArrival",
    "isFlashSale",
    "isFavourite",
    "isRecommended",
    "isForYou",
)


class SearchDocument(BaseModel):
    """Denormalized, index-ready view of one catalog product."""

    id: str
    name: str = ""
    description: str = ""
    brand: str = ""
    category: str = ""
    subcategory: str = ""
    price: float = 0.0
    originalPrice: Optional[float] = None
    discount: int = 0
    stock: int = 0
    inStock: bool = False
    rating: float = 0.0
    reviewCount: int = 0
    image: str = ""
    images: List[str] = Field(default_factory=list)
    sku: str = ""
    tags: List[str] = Field(default_factory=list)
    ingredients: str = ""
    isFeatured: bool = False
    isNewArrival: bool = False
    isFlashSale: bool = False
    isFavourite: bool = False
    isRecommended: bool = False
    isForYou: bool = False
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

    def to_source(self) -> dict:
        """JSON-ready body sent to the index."""
        return self.model_dump(mode="json")


def _to_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        number = float(value) if isinstance(value, Decimal) else float(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, TypeError):
        logger.debug("Could not coerce %r to float; using %r", value, default)
        return default
    return number if math.isfinite(number) else default


def _to_int(value: Any, default: int = 0) -> int:
    number = _to_float(value, None)
    if number is None:
        return default
    return int(number)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _to_timestamp(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _to_tags(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def _resolve_images(product: Mapping[str, Any]) -> tuple[str, List[str]]:
    """Return the primary image and the ordered image list.

    Catalog images are either plain URLs or ``{url, isDefault, sortOrder}``
    records; records are ordered by ``sortOrder`` and the default one wins.
    """
    raw_images = product.get("images") or []
    records = []
    for position, item in enumerate(raw_images):
        if isinstance(item, Mapping):
            url = _to_text(item.get("url"))
            if url:
                records.append((_to_int(item.get("sortOrder"), position), position, url, bool(item.get("isDefault"))))
        elif item:
            records.append((position, position, _to_text(item), False))
    records.sort(key=lambda record: (record[0], record[1]))
    urls = [record[2] for record in records]

    primary = _to_text(product.get("image"))
    if not primary:
        defaults = [record[2] for record in records if record[3]]
        primary = defaults[0] if defaults else (urls[0] if urls else "")
    if not urls and primary:
        urls = [primary]
    return primary, urls


def _discount(price: float, original_price: Optional[float], catalog_discount: Any) -> int:
    if original_price and original_price > price:
        return int(round((original_price - price) / original_price * 100))
    return max(_to_int(catalog_discount), 0)


def to_search_document(product: Mapping[str, Any]) -> SearchDocument:
    """Transform a catalog product record into a :class:`SearchDocument`.

    Pure and deterministic: the same record always yields the same document.
    Only a missing ``id`` is rejected; every other field has a default.
    """
    raw_id = product.get("id")
    if raw_id is None or str(raw_id).strip() == "":
        raise ValidationError("Catalog product has no id")

    price = _to_float(product.get("price"))
    original_price = _to_float(product.get("originalPrice"), None)
    stock = max(_to_int(product.get("stock")), 0)
    rating = min(max(_to_float(product.get("rating")), 0.0), 5.0)
    image, images = _resolve_images(product)

    document = SearchDocument(
        id=str(raw_id),
        name=_to_text(product.get("name")),
        description=_to_text(product.get("description")),
        brand=_to_text(product.get("brand")),
        category=_to_text(product.get("category")),
        subcategory=_to_text(product.get("subcategory")),
        price=price,
        originalPrice=original_price,
        discount=_discount(price, original_price, product.get("discount")),
        stock=stock,
        inStock=stock > 0,
        rating=rating,
        reviewCount=max(_to_int(product.get("reviewCount")), 0),
        image=image,
        images=images,
        sku=_to_text(product.get("sku")),
        tags=_to_tags(product.get("tags")),
        ingredients=_to_text(product.get("ingredients")),
        createdAt=_to_timestamp(product.get("createdAt")),
        updatedAt=_to_timestamp(product.get("updatedAt")),
        **{flag: bool(product.get(flag) or False) for flag in FEATURE_FLAGS},
    )
    return document
