"""Shopify sync service functions.

WHAT:
    - Product sync: page through the catalogue, resolve each product's shop
      name, and replace the owner's `products` rows with one row per variant
      that has a SKU.
    - Shop listing: fetch `shop_name` metaobjects for display (never stored).

WHY:
    Keeps routers thin (auth, request parsing) while services handle the
    Shopify reconciliation logic.

REFERENCES:
    - backend/app/services/shopify_client.py (API client)
    - backend/app/services/shop_name_resolver.py (name strategies)
    - backend/app/routers/shopify_sync.py (HTTP entrypoints)

Shop name resolution runs in three passes:
    1. Metafield reference displayName, else raw value, else "Unknown".
    2. Raw GIDs left over are looked up with batched `nodes(ids:)` queries.
    3. Names still shaped like a GID fall back to the most recent purchase
       recorded for the same SKU.
"""

from __future__ import annotations

import asyncio
import weakref
import logging
import time
from asyncio import sleep
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import Product, ProductSyncState, Purchase, SyncStatusEnum
from app.services.shop_name_resolver import first_pass_shop_name, is_gid, resolve_metaobject_name
from app.services.shopify_client import ShopifyClient

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 100
INSERT_BATCH_DELAY = 0.05


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

@dataclass
class SyncedProduct:
    """One flattened variant ready to be stored."""
    shopify_product_id: str
    sku: str
    shop_name: str
    title: str
    variant_id: Optional[str] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None


@dataclass
class ProductSyncResult:
    """Outcome of a product sync."""
    success: bool
    count: int = 0
    generation: int = 0
    pages: int = 0
    resolved_from_nodes: int = 0
    resolved_from_history: int = 0
    unresolved: int = 0
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)


class ProductSyncSuperseded(Exception):
    """A newer sync for the same owner started before this one could swap."""

    def __init__(self, user_id: UUID, generation: int, current_generation: int):
        super().__init__(
            f"Product sync generation {generation} for user {user_id} was superseded "
            f"by generation {current_generation}"
        )
        self.generation = generation
        self.current_generation = current_generation


# Serialises syncs per owner inside this process; the generation token
# guards against syncs running in other processes. An entry disappears once
# no sync holds or awaits its lock.
_owner_locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = weakref.WeakValueDictionary()


def _owner_lock(user_id: UUID) -> asyncio.Lock:
    lock = _owner_locks.get(user_id)
    if lock is None:
        lock = _owner_locks[user_id] = asyncio.Lock()
    return lock


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def flatten_product(node: Dict[str, Any]) -> Tuple[List[SyncedProduct], Optional[str]]:
    """Turn one product node into per-variant records.

    Variants without a SKU are dropped, as are repeats of a SKU within the
    same product.

    Returns:
        (records, pending_gid) where pending_gid is an unresolved metaobject GID
    """
    shop_name, pending_gid = first_pass_shop_name(node.get("metafield"))
    image_url = (node.get("featuredImage") or {}).get("url")
    product_url = node.get("onlineStoreUrl")

    records: List[SyncedProduct] = []
    seen_skus: Set[str] = set()
    for edge in (node.get("variants") or {}).get("edges") or []:
        variant = (edge or {}).get("node") or {}
        sku = variant.get("sku")
        if not sku or sku in seen_skus:
            continue
        seen_skus.add(sku)
        records.append(SyncedProduct(
            shopify_product_id=node.get("id"),
            sku=sku,
            shop_name=shop_name,
            title=node.get("title") or "",
            variant_id=variant.get("id"),
            image_url=image_url,
            product_url=product_url,
        ))

    return records, pending_gid


async def resolve_pending_shop_names(
    client: ShopifyClient,
    records: List[SyncedProduct],
    pending_gids: Set[str],
) -> int:
    """Replace GID shop names with names looked up via `nodes(ids:)`.

    Returns:
        Number of records renamed
    """
    if not pending_gids:
        return 0

    logger.info(f"[SHOPIFY_SYNC] Resolving {len(pending_gids)} metaobject references to names")
    metaobjects = await client.get_metaobjects_by_ids(sorted(pending_gids))

    names: Dict[str, str] = {}
    for metaobject in metaobjects:
        names[metaobject["id"]] = resolve_metaobject_name(metaobject)
        logger.debug(
            "[SHOPIFY_SYNC] Metaobject %s resolved to %r (displayName=%r, handle=%r, type=%r)",
            metaobject["id"],
            names[metaobject["id"]],
            metaobject.get("displayName"),
            metaobject.get("handle"),
            metaobject.get("type"),
        )

    renamed = 0
    for record in records:
        name = names.get(record.shop_name)
        if name:
            record.shop_name = name
            renamed += 1

    logger.info(f"[SHOPIFY_SYNC] Resolved {len(names)} metaobject names ({renamed} records)")
    return renamed


def apply_purchase_history_names(db: Session, user_id: UUID, records: List[SyncedProduct]) -> int:
    """Fill still-unresolved GID shop names from the latest purchase per SKU.

    The metaobject reference can be transiently missing from the API even
    though the name was typed in earlier with a purchase.

    Returns:
        Number of records renamed
    """
    stale_skus = {record.sku for record in records if is_gid(record.shop_name)}
    if not stale_skus:
        return 0

    rows = (
        db.query(Purchase.sku, Purchase.shop_name)
        .filter(
            Purchase.user_id == user_id,
            Purchase.sku.in_(stale_skus),
        )
        .order_by(Purchase.created_at.desc())
        .all()
    )

    latest_names: Dict[str, str] = {}
    for sku, shop_name in rows:
        if sku in latest_names or not shop_name or is_gid(shop_name):
            continue
        latest_names[sku] = shop_name

    renamed = 0
    for record in records:
        if is_gid(record.shop_name) and record.sku in latest_names:
            record.shop_name = latest_names[record.sku]
            renamed += 1

    logger.info(f"[SHOPIFY_SYNC] Replaced {renamed} GID shop names from purchase history")
    return renamed


def _begin_generation(db: Session, user_id: UUID) -> int:
    """Claim a new sync generation for the owner and mark it running."""
    state = (
        db.query(ProductSyncState)
        .filter(ProductSyncState.user_id == user_id)
        .with_for_update()
        .first()
    )
    if state is None:
        state = ProductSyncState(user_id=user_id, generation=0)
        db.add(state)

    state.generation = (state.generation or 0) + 1
    state.status = SyncStatusEnum.running
    state.started_at = datetime.utcnow()
    state.finished_at = None
    state.last_error = None
    db.commit()
    return state.generation


def _lock_current_state(db: Session, user_id: UUID, generation: int) -> ProductSyncState:
    state = (
        db.query(ProductSyncState)
        .filter(ProductSyncState.user_id == user_id)
        .with_for_update()
        .one()
    )
    if state.generation != generation:
        raise ProductSyncSuperseded(user_id, generation, state.generation)
    return state


async def replace_products(
    db: Session,
    user_id: UUID,
    generation: int,
    records: List[SyncedProduct],
) -> int:
    """Swap the owner's products for `records` in a single transaction.

    The previous rows stay visible to other sessions until commit, and a
    failure part-way rolls the whole swap back.

    Raises:
        ProductSyncSuperseded: If a newer sync claimed the owner meanwhile
    """
    try:
        state = _lock_current_state(db, user_id, generation)

        deleted = (
            db.query(Product)
            .filter(Product.user_id == user_id)
            .delete(synchronize_session=False)
        )
        logger.info(f"[SHOPIFY_SYNC] Replacing {deleted} existing products for user {user_id}")

        for start in range(0, len(records), INSERT_BATCH_SIZE):
            if start:
                await sleep(INSERT_BATCH_DELAY)
            batch = records[start:start + INSERT_BATCH_SIZE]
            db.add_all([
                Product(
                    user_id=user_id,
                    shopify_product_id=record.shopify_product_id,
                    sku=record.sku,
                    shop_name=record.shop_name,
                    title=record.title,
                    variant_id=record.variant_id,
                    image_url=record.image_url,
                    product_url=record.product_url,
                )
                for record in batch
            ])
            db.flush()

        state.status = SyncStatusEnum.succeeded
        state.last_count = len(records)
        state.finished_at = datetime.utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise

    return len(records)


def _record_failure(db: Session, user_id: UUID, generation: int, message: str) -> None:
    db.rollback()
    state = db.get(ProductSyncState, user_id)
    if state is None or state.generation != generation:
        return
    state.status = SyncStatusEnum.failed
    state.last_error = message
    state.finished_at = datetime.utcnow()
    db.commit()


def get_sync_state(db: Session, user_id: UUID) -> Optional[ProductSyncState]:
    return db.get(ProductSyncState, user_id)


# =============================================================================
# SYNC FUNCTIONS
# =============================================================================

async def fetch_catalogue(client: ShopifyClient) -> Tuple[List[SyncedProduct], Set[str], int]:
    """Page through every product and flatten it.

    Returns:
        (records, pending_gids, pages)
    """
    records: List[SyncedProduct] = []
    pending_gids: Set[str] = set()
    pages = 0

    async for nodes in client.iter_product_pages():
        pages += 1
        for node in nodes:
            product_records, pending_gid = flatten_product(node)
            records.extend(product_records)
            if pending_gid:
                pending_gids.add(pending_gid)

    return records, pending_gids, pages


async def sync_products(
    db: Session,
    user_id: UUID,
    store_url: str,
    access_token: str,
    client: Optional[ShopifyClient] = None,
) -> ProductSyncResult:
    """Sync products from Shopify to the database.

    WHAT: Fetch all products, resolve shop names, and replace the owner's rows
    WHY: Purchase uploads match spreadsheet SKUs against this table

    Args:
        db: Database session
        user_id: Owner of the synced rows
        store_url: Shopify store domain
        access_token: Shopify Admin API token
        client: Optional preconfigured client (tests)

    Returns:
        ProductSyncResult with the number of variant records stored

    Raises:
        ShopifyAPIError: Any unrecoverable API failure; nothing is replaced
        ProductSyncSuperseded: A newer sync for this owner took over
    """
    client = client or ShopifyClient(shop_domain=store_url, access_token=access_token)

    async with _owner_lock(user_id):
        start_time = time.monotonic()
        generation = _begin_generation(db, user_id)
        logger.info(f"[SHOPIFY_SYNC] Starting product sync: user={user_id}, generation={generation}")

        try:
            records, pending_gids, pages = await fetch_catalogue(client)
            logger.info(f"[SHOPIFY_SYNC] Fetched {len(records)} variants with SKU across {pages} pages")

            from_nodes = await resolve_pending_shop_names(client, records, pending_gids)
            from_history = apply_purchase_history_names(db, user_id, records)

            count = await replace_products(db, user_id, generation, records)
        except ProductSyncSuperseded:
            logger.warning(f"[SHOPIFY_SYNC] Generation {generation} superseded for user {user_id}")
            raise
        except Exception as e:
            logger.error(f"[SHOPIFY_SYNC] Product sync failed for user {user_id}: {e}")
            _record_failure(db, user_id, generation, str(e))
            raise

    result = ProductSyncResult(
        success=True,
        count=count,
        generation=generation,
        pages=pages,
        resolved_from_nodes=from_nodes,
        resolved_from_history=from_history,
        unresolved=sum(1 for record in records if is_gid(record.shop_name)),
        duration_seconds=time.monotonic() - start_time,
    )
    logger.info(
        f"[SHOPIFY_SYNC] Product sync complete: user={user_id}, count={result.count}, "
        f"unresolved={result.unresolved}, duration={result.duration_seconds:.2f}s"
    )
    return result


async def list_shops(
    store_url: str,
    access_token: str,
    client: Optional[ShopifyClient] = None,
) -> List[Dict[str, Any]]:
    """Fetch all `shop_name` metaobjects for display. Nothing is persisted."""
    client = client or ShopifyClient(shop_domain=store_url, access_token=access_token)
    logger.info("[SHOPIFY_SHOPS] Fetching shop_name metaobjects from Shopify")
    return await client.get_shop_name_metaobjects()
