"""
Store connection lifecycle: connect, disconnect and connection status.

One Store row per (brand, platform). Connecting again for the same pair
rewrites the existing row's credentials.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models import Product, Store, StoreType, SyncLog, SyncStatus
from app.services.credentials import (
    ShopifyCredentials,
    WooCredentials,
    normalize_shop_domain,
    normalize_site_url,
    strip_protocol,
    validate_shop_domain,
    validate_woo_credentials,
)
from app.services.errors import BackendMisconfigured, ConnectError, DisconnectError, StoreNotFoundError

logger = logging.getLogger(__name__)

# Fragments of backend errors meaning our own service credentials were rejected
BACKEND_AUTH_MARKERS = (
    "invalid api key",
    "password authentication failed",
    "access denied for user",
    "authentication failed",
)


def default_status() -> dict:
    return {"connected": False, "store": None, "productsCount": 0, "lastSync": None}


def serialize_store(store: Store) -> dict:
    return {
        "id": store.id,
        "brandId": store.brand_id,
        "name": store.name,
        "storeType": store.store_type.value,
        "externalStoreId": store.external_store_id,
        "createdAt": store.created_at.isoformat() if store.created_at else None,
    }


def _is_backend_auth_error(message: str) -> bool:
    msg = (message or "").lower()
    return any(marker in msg for marker in BACKEND_AUTH_MARKERS)


def _persist_store(db: Session, brand_id: int, store_type: StoreType, name: str, credentials_blob: dict) -> Store:
    try:
        store = (
            db.query(Store)
            .filter(Store.brand_id == brand_id, Store.store_type == store_type)
            .order_by(Store.id.desc())
            .first()
        )
        if store is None:
            store = Store(brand_id=brand_id, store_type=store_type)
            db.add(store)
        store.name = name
        store.external_store_id = name
        store.api_credentials = credentials_blob
        db.commit()
        db.refresh(store)
        return store
    except SQLAlchemyError as e:
        db.rollback()
        message = str(getattr(e, "orig", None) or e)
        if _is_backend_auth_error(message):
            logger.error("Store persistence rejected by backend credentials")
            raise BackendMisconfigured("Database backend rejected the service credentials; check DATABASE_URL")
        logger.warning("Failed to persist %s store for brand %s: %s", store_type.value, brand_id, message)
        raise ConnectError(f"Error connecting store: {message}")


def connect(db: Session, brand_id: int, site_url: str, consumer_key: str, consumer_secret: str) -> Store:
    """Connect a WooCommerce store for brand_id."""
    validate_woo_credentials(site_url, consumer_key, consumer_secret)
    canonical = normalize_site_url(site_url)
    creds = WooCredentials(
        site_url=canonical,
        consumer_key=consumer_key.strip(),
        consumer_secret=consumer_secret.strip(),
    )
    store = _persist_store(db, brand_id, StoreType.WOOCOMMERCE, strip_protocol(canonical), creds.to_blob())
    logger.info("Connected WooCommerce store %s (%s) for brand %s", store.id, store.name, brand_id)
    return store


def connect_shopify(db: Session, brand_id: int, shop_domain: str, access_token: str) -> Store:
    """Persist a Shopify connection once the OAuth exchange produced an access token."""
    validate_shop_domain(shop_domain)
    shop = normalize_shop_domain(shop_domain)
    creds = ShopifyCredentials(shop_domain=shop, access_token=(access_token or "").strip())
    store = _persist_store(db, brand_id, StoreType.SHOPIFY, shop, creds.to_blob())
    logger.info("Connected Shopify store %s (%s) for brand %s", store.id, shop, brand_id)
    return store


def disconnect(db: Session, store_id: int) -> None:
    """
    Remove a store and everything hanging off it. Products and sync logs go
    first (FK order), the store last, all in one transaction.
    """
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise StoreNotFoundError(f"Store {store_id} not found")
    try:
        removed = db.query(Product).filter(Product.store_id == store_id).delete(synchronize_session=False)
        db.query(SyncLog).filter(SyncLog.store_id == store_id).delete(synchronize_session=False)
        db.delete(store)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Disconnect of store %s failed, rolled back: %s", store_id, e)
        raise DisconnectError("Error disconnecting store")
    logger.info("Disconnected store %s (%s products removed)", store_id, removed)


def _load_status(db: Session, brand_id: int, store_type: StoreType) -> dict:
    store = (
        db.query(Store)
        .filter(Store.brand_id == brand_id, Store.store_type == store_type)
        .order_by(Store.id.desc())
        .first()
    )
    if not store:
        return default_status()
    products_count = db.query(Product).filter(Product.store_id == store.id).count()
    last_sync = (
        db.query(SyncLog.finished_at)
        .filter(SyncLog.store_id == store.id, SyncLog.status == SyncStatus.SUCCESS)
        .order_by(SyncLog.finished_at.desc())
        .first()
    )
    return {
        "connected": True,
        "store": serialize_store(store),
        "productsCount": products_count,
        "lastSync": last_sync[0].isoformat() if last_sync and last_sync[0] else None,
    }


def _load_status_isolated(session_factory, brand_id: int, store_type: StoreType) -> dict:
    # Runs in a worker thread that may outlive the request, so it owns its session
    db = session_factory()
    try:
        return _load_status(db, brand_id, store_type)
    finally:
        db.close()


async def get_status(
    brand_id: int,
    store_type: StoreType = StoreType.WOOCOMMERCE,
    timeout: Optional[float] = None,
    session_factory=SessionLocal,
) -> dict:
    """
    Connection status for the brand. Bounded by STATUS_TIMEOUT_SECONDS; on
    timeout or any error the disconnected default is returned instead.
    """
    timeout = settings.STATUS_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(_load_status_isolated, session_factory, brand_id, store_type), timeout
        )
    except asyncio.TimeoutError:
        logger.warning("Status lookup for brand %s exceeded %.1fs; reporting disconnected", brand_id, timeout)
    except Exception as e:
        logger.warning("Status lookup for brand %s failed: %s", brand_id, e)
    return default_status()
