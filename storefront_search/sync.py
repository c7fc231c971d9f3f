"""Keeps the search index reconciled with the catalog.

The catalog and the index are two independent systems with no shared
transaction; between a catalog write and the matching call here the two
are allowed to drift. Every operation reports a :class:`SyncResult` and
nothing is retried automatically.

``reindex_all`` is the only destructive operation. It is serialized by a
process-wide lock and a second request made while one is running is
rejected with ``already_in_progress`` instead of waiting.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .catalog import CatalogStore, is_active
from .config import settings
from .documents import to_search_document
from .exceptions import AlreadyExistsError, NotFoundError, OperationCancelled, ValidationError
from .index_store import BulkItemError, BulkResult, IndexStore, load_mapping

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    CREATE_INDEX = "create-index"
    INDEX_ALL = "index-all"
    REINDEX_ALL = "reindex-all"
    INDEX_PRODUCT = "index-product"
    UPDATE_PRODUCT = "update-product"
    DELETE_PRODUCT = "delete-product"


PRODUCT_ACTIONS = {SyncAction.INDEX_PRODUCT, SyncAction.UPDATE_PRODUCT, SyncAction.DELETE_PRODUCT}


class Outcome(str, Enum):
    COMPLETED = "completed"
    ALREADY_EXISTS = "already_exists"
    ALREADY_IN_PROGRESS = "already_in_progress"
    ALREADY_ABSENT = "already_absent"
    REMOVED = "removed"
    PARTIAL_FAILURE = "partial_failure"
    CANCELLED = "cancelled"


class ReindexState(str, Enum):
    IDLE = "idle"
    DELETING_INDEX = "deleting_index"
    CREATING_INDEX = "creating_index"
    BULK_INDEXING = "bulk_indexing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SyncResult:
    success: bool
    message: str
    outcome: Outcome = Outcome.COMPLETED
    indexed: int = 0
    failed: List[BulkItemError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "outcome": self.outcome.value,
            "indexed": self.indexed,
            "failed": [asdict(item) for item in self.failed],
        }


@dataclass(frozen=True)
class SyncStatus:
    connected: bool
    indexExists: bool
    documentsIndexed: int
    productsInCatalog: int

    @property
    def synced(self) -> bool:
        # Counts from an unreachable store prove nothing.
        return self.connected and self.documentsIndexed == self.productsInCatalog

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "synced": self.synced}


@dataclass
class Cancellation:
    """Cooperative stop signal checked between catalog batches."""

    event: asyncio.Event = field(default_factory=asyncio.Event)
    deadline: Optional[float] = None

    @classmethod
    def after(cls, seconds: Optional[float]) -> "Cancellation":
        return cls(deadline=time.monotonic() + seconds if seconds else None)

    def cancel(self) -> None:
        self.event.set()

    def check(self) -> None:
        if self.event.is_set():
            raise OperationCancelled("Operation cancelled by caller")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise OperationCancelled("Operation deadline exceeded")


class SyncController:
    def __init__(
        self,
        store: IndexStore,
        catalog: CatalogStore,
        mapping: Optional[Dict[str, Any]] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.mapping = mapping
        self.batch_size = batch_size or settings.catalog_batch_size
        self.reindex_state = ReindexState.IDLE
        self._reindex_lock = asyncio.Lock()

    def _mapping(self) -> Dict[str, Any]:
        if self.mapping is None:
            self.mapping = load_mapping()
        return self.mapping

    async def create_index(self) -> SyncResult:
        if await self.store.index_exists():
            logger.info("Index already exists")
            return SyncResult(True, "Index already exists", Outcome.ALREADY_EXISTS)
        try:
            await self.store.create_index(self._mapping())
        except AlreadyExistsError:
            # Created concurrently between the check and the create.
            return SyncResult(True, "Index already exists", Outcome.ALREADY_EXISTS)
        logger.info("Index created")
        return SyncResult(True, "Index created successfully")

    async def _bulk_index(self, cancellation: Optional[Cancellation]) -> BulkResult:
        total = BulkResult()
        cursor: Optional[int] = None
        batches = 0
        while True:
            if cancellation is not None:
                cancellation.check()
            page = await self.catalog.list_active_products(cursor, self.batch_size)
            documents = []
            for product in page.products:
                try:
                    documents.append(to_search_document(product))
                except ValidationError as exc:
                    total.failed.append(BulkItemError(id=str(product.get("id")), error=str(exc)))
            if documents:
                total.merge(await self.store.bulk_put(documents))
            batches += 1
            logger.debug("Indexed batch %s (%s documents)", batches, len(documents))
            if page.next_cursor is None:
                return total
            cursor = page.next_cursor

    async def index_all(self, cancellation: Optional[Cancellation] = None) -> SyncResult:
        """Bulk index every active catalog product, one bulk request per batch.

        Items that fail are reported individually; items already written are
        kept (no rollback).
        """
        await self.create_index()
        logger.info("Indexing all active products (batch size %s)", self.batch_size)
        result = BulkResult()
        try:
            result = await self._bulk_index(cancellation)
        except OperationCancelled as exc:
            await self.store.refresh()
            logger.warning("Index-all cancelled: %s", exc)
            return SyncResult(False, str(exc), Outcome.CANCELLED)
        await self.store.refresh()

        for item in result.failed:
            logger.error("Failed to index product %s: %s", item.id, item.error)
        if not result.ok:
            return SyncResult(
                False,
                f"Indexed {result.succeeded} products; {len(result.failed)} failed",
                Outcome.PARTIAL_FAILURE,
                indexed=result.succeeded,
                failed=result.failed,
            )
        logger.info("Successfully indexed %s products", result.succeeded)
        return SyncResult(True, f"Indexed {result.succeeded} products", indexed=result.succeeded)

    async def reindex_all(self, cancellation: Optional[Cancellation] = None) -> SyncResult:
        """Drop, recreate and refill the index. Reads fail while it runs."""
        if self._reindex_lock.locked():
            logger.warning("Reindex requested while another is running; rejecting")
            return SyncResult(False, "Reindex already in progress", Outcome.ALREADY_IN_PROGRESS)
        async with self._reindex_lock:
            try:
                self.reindex_state = ReindexState.DELETING_INDEX
                logger.info("Reindex: deleting index")
                await self.store.delete_index()
                self.reindex_state = ReindexState.CREATING_INDEX
                logger.info("Reindex: creating index")
                try:
                    await self.store.create_index(self._mapping())
                except AlreadyExistsError:
                    # A single-product write recreated it after the delete.
                    logger.info("Reindex: index already recreated; continuing")
                self.reindex_state = ReindexState.BULK_INDEXING
                logger.info("Reindex: indexing products")
                result = await self.index_all(cancellation)
            except BaseException:
                self.reindex_state = ReindexState.FAILED
                logger.exception("Reindex failed")
                raise
            self.reindex_state = ReindexState.DONE if result.success else ReindexState.FAILED
        if result.success:
            result.message = f"Reindex completed: {result.message}"
        return result

    async def index_product(self, product_id: str) -> SyncResult:
        product = await self.catalog.get_product(product_id)
        if not is_active(product):
            raise ValidationError(f"Product {product_id} is not active and cannot be indexed")
        await self.create_index()
        await self.store.put(to_search_document(product))
        await self.store.refresh()
        logger.info("Product %s indexed", product_id)
        return SyncResult(True, "Product indexed successfully", indexed=1)

    async def update_product(self, product_id: str, updates: Mapping[str, Any]) -> SyncResult:
        """Re-index a product with ``updates`` applied over its catalog record.

        The document is rebuilt in full so derived fields stay consistent. An
        update that leaves the product inactive removes it from the index.
        """
        if not isinstance(updates, Mapping) or not updates:
            raise ValidationError("updates must be a non-empty object")
        product = await self.catalog.get_product(product_id)
        merged = {**product, **updates, "id": product["id"]}
        if not is_active(merged):
            await self.delete_product(product_id)
            return SyncResult(True, "Product is inactive; removed from index", Outcome.REMOVED)
        await self.create_index()
        await self.store.put(to_search_document(merged))
        await self.store.refresh()
        logger.info("Product %s updated", product_id)
        return SyncResult(True, "Product updated successfully", indexed=1)

    async def delete_product(self, product_id: str) -> SyncResult:
        try:
            await self.store.delete(product_id)
        except NotFoundError:
            logger.info("Product %s was not in the index", product_id)
            return SyncResult(True, "Product was not in the index", Outcome.ALREADY_ABSENT)
        await self.store.refresh()
        logger.info("Product %s deleted from index", product_id)
        return SyncResult(True, "Product deleted from index")

    async def status(self) -> SyncStatus:
        connected, catalog_count = await asyncio.gather(self.store.ping(), self.catalog.count_active_products())
        if not connected:
            return SyncStatus(False, False, 0, catalog_count)
        exists = await self.store.index_exists()
        documents = await self.store.count() if exists else 0
        return SyncStatus(True, exists, documents, catalog_count)

    async def run(
        self,
        action: str,
        product_id: Optional[str] = None,
        updates: Optional[Mapping[str, Any]] = None,
        cancellation: Optional[Cancellation] = None,
    ) -> SyncResult:
        """Validate an admin command and dispatch it."""
        try:
            parsed = SyncAction(action)
        except ValueError as exc:
            raise ValidationError(f"Invalid action {action!r}") from exc
        if parsed in PRODUCT_ACTIONS and not product_id:
            raise ValidationError("productId is required")
        if parsed is SyncAction.UPDATE_PRODUCT and not updates:
            raise ValidationError("productId and updates are required")

        logger.info("Sync action %s product=%s", parsed.value, product_id)
        if parsed is SyncAction.CREATE_INDEX:
            return await self.create_index()
        if parsed is SyncAction.INDEX_ALL:
            return await self.index_all(cancellation)
        if parsed is SyncAction.REINDEX_ALL:
            return await self.reindex_all(cancellation)
        if parsed is SyncAction.INDEX_PRODUCT:
            return await self.index_product(product_id)
        if parsed is SyncAction.UPDATE_PRODUCT:
            return await self.update_product(product_id, updates)
        return await self.delete_product(product_id)
