"""
Store integration routes: connection lifecycle, remote catalog, import and sync.
Never expose api_credentials to the frontend.
"""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth import get_current_brand_id
from app.database import get_db, get_session_factory
from app.http.requests import ImportProductsRequest, RemoteProductsRequest, ShopifyConnectRequest, WooConnectRequest
from app.models import Store, StoreType, SyncType
from app.services import connection_store
from app.services.errors import StoreNotFoundError
from app.services.http_client import get_transport
from app.services.import_dedup import import_selected
from app.services.remote_catalog import CatalogSelector, RemoteCatalogClient
from app.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_owned_store(db: Session, store_id: int, brand_id: int) -> Store:
    store = db.query(Store).filter(Store.id == store_id, Store.brand_id == brand_id).first()
    if not store:
        raise StoreNotFoundError("Store not found")
    return store


@router.get("/status")
async def get_connection_status(
    platform: StoreType = Query(StoreType.WOOCOMMERCE),
    session_factory=Depends(get_session_factory),
    brand_id: int = Depends(get_current_brand_id),
):
    """Connection status for the current brand (bounded, never errors)"""
    return await connection_store.get_status(brand_id, platform, session_factory=session_factory)


@router.post("/woocommerce/connect")
async def connect_woocommerce(
    request: WooConnectRequest,
    db: Session = Depends(get_db),
    brand_id: int = Depends(get_current_brand_id),
):
    """Connect WooCommerce store"""
    store = connection_store.connect(db, brand_id, request.site_url, request.consumer_key, request.consumer_secret)
    return {"success": True, "store": connection_store.serialize_store(store)}


@router.post("/shopify/connect")
async def connect_shopify(
    request: ShopifyConnectRequest,
    db: Session = Depends(get_db),
    brand_id: int = Depends(get_current_brand_id),
):
    """Persist a Shopify store after the OAuth exchange returned its access token"""
    store = connection_store.connect_shopify(db, brand_id, request.shop_domain, request.access_token)
    return {"success": True, "store": connection_store.serialize_store(store)}


@router.delete("/{store_id}")
async def disconnect_store(
    store_id: int,
    db: Session = Depends(get_db),
    brand_id: int = Depends(get_current_brand_id),
):
    """Disconnect store and remove its imported catalog"""
    _get_owned_store(db, store_id, brand_id)
    connection_store.disconnect(db, store_id)
    return {"success": True}


@router.post("/remote-products")
async def list_remote_products(
    request: RemoteProductsRequest,
    db: Session = Depends(get_db),
    brand_id: int = Depends(get_current_brand_id),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    """List the remote catalog, tagged with already_imported"""
    if request.store_id:
        _get_owned_store(db, request.store_id, brand_id)
    selector = CatalogSelector(
        store_id=request.store_id,
        brand_id=brand_id,
        limit=request.limit,
        platform=request.platform,
    )
    return await RemoteCatalogClient(db, transport=transport).list_remote_products(selector)


@router.post("/{store_id}/import")
async def import_products(
    store_id: int,
    request: ImportProductsRequest,
    db: Session = Depends(get_db),
    brand_id: int = Depends(get_current_brand_id),
):
    """Import selected remote products; per-item failures do not abort the batch"""
    store = _get_owned_store(db, store_id, brand_id)
    selected = [p.dict() for p in request.products]

    async def work():
        return import_selected(db, store.id, selected)

    sync_log, result = await SyncEngine(db).run_sync(store.id, SyncType.PRODUCTS, work)
    return {
        "success": True,
        "insertedCount": result.inserted_count,
        "skippedCount": result.skipped_count,
        "perItemErrors": [e.to_dict() for e in result.per_item_errors],
        "syncLogId": sync_log.id,
    }


@router.post("/{store_id}/sync")
async def sync_products(
    store_id: int,
    db: Session = Depends(get_db),
    brand_id: int = Depends(get_current_brand_id),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    """Full catalog sync through the sync proxy"""
    store = _get_owned_store(db, store_id, brand_id)
    client = RemoteCatalogClient(db, transport=transport)

    async def work():
        return {"synced": await client.sync_via_proxy(store)}

    sync_log, result = await SyncEngine(db).run_sync(store.id, SyncType.PRODUCTS, work)
    return {"success": True, "synced": result["synced"], "syncLogId": sync_log.id}


@router.get("/{store_id}/sync-logs")
async def get_sync_logs(
    store_id: int,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    brand_id: int = Depends(get_current_brand_id),
):
    """Sync history for a store"""
    _get_owned_store(db, store_id, brand_id)
    return {"storeId": store_id, "logs": SyncEngine(db).get_sync_logs(store_id, limit)}
