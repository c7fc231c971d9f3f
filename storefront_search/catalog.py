"""Read-only access to the product catalog (the source of truth).

The catalog is an external system; this module defines what the search
engine consumes from it and ships a JSON-file backed implementation used by
the CLI and local runs.

A product is *active* when its ``isActive`` flag is truthy; a record that
carries no ``isActive`` key counts as active. :func:`is_active` is the only
definition of that predicate and is used both when building the index and
when computing sync status.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .exceptions import NotFoundError

logger = logging.getLogger(__name__)

ACTIVE_FLAG = "isActive"

Product = Mapping[str, Any]


def is_active(product: Product) -> bool:
    return bool(product.get(ACTIVE_FLAG, True))


@dataclass(frozen=True)
class CatalogPage:
    products: List[Product]
    next_cursor: Optional[int] = None


class CatalogStore(Protocol):
    async def list_active_products(self, cursor: Optional[int], batch_size: int) -> CatalogPage: ...

    async def get_product(self, product_id: str) -> Product: ...

    async def count_active_products(self) -> int: ...


@dataclass
class InMemoryCatalog:
    """Catalog held in process memory, keyed by product id."""

    products: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_records(cls, records: Sequence[Product]) -> "InMemoryCatalog":
        return cls({str(record["id"]): dict(record) for record in records})

    def upsert(self, product: Product) -> None:
        self.products[str(product["id"])] = dict(product)

    def remove(self, product_id: str) -> None:
        self.products.pop(product_id, None)

    def _active_ids(self) -> List[str]:
        return sorted(pid for pid, product in self.products.items() if is_active(product))

    async def list_active_products(self, cursor: Optional[int], batch_size: int) -> CatalogPage:
        ids = self._active_ids()
        start = cursor or 0
        chunk = ids[start : start + batch_size]
        next_cursor = start + batch_size if start + batch_size < len(ids) else None
        return CatalogPage([dict(self.products[pid]) for pid in chunk], next_cursor)

    async def get_product(self, product_id: str) -> Product:
        product = self.products.get(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return dict(product)

    async def count_active_products(self) -> int:
        return len(self._active_ids())


def _load_products(path: Path) -> list[dict]:
    if not path.exists():
        logger.warning("Catalog file %s is missing", path)
        return []
    # Detect Git LFS placeholder to avoid attempting to parse it as JSON.
    with path.open("r", encoding="utf-8") as fh:
        first_line = fh.readline()
        if first_line.startswith("version https://git-lfs.github.com/spec/v1"):
            logger.warning("Catalog file %s is a Git LFS pointer; real data not downloaded", path)
            return []
        fh.seek(0)
        payload = json.load(fh)
    if isinstance(payload, dict):
        payload = payload.get("products", [])
    return [item for item in payload if isinstance(item, dict) and item.get("id") is not None]


def load_json_catalog(path: str | Path) -> InMemoryCatalog:
    """Build a catalog from a JSON export (a list, or ``{"products": [...]}``)."""
    records = _load_products(Path(path))
    logger.info("Loaded %s catalog products from %s", len(records), path)
    return InMemoryCatalog.from_records(records)
