"""
Remote catalog listing for connected stores.

Strategy, first success wins:
1. Trusted proxy function (server-side credentials).
2. Only when the proxy is unreachable: direct calls to the store API, walking
   an ordered ladder of FetchAttempt strategies one at a time. Each attempt
   has its own timeout; a non-2xx answer or a network error moves on to the
   next attempt. Attempts are never run in parallel so a fragile dev store is
   not hit with concurrent requests.

Results are normalized to the RemoteProduct shape and tagged with
already_imported before being returned.
"""
import base64
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional
from urllib.parse import quote

import httpx
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Store, StoreType
from app.services.credentials import ShopifyCredentials, StoreCredentials, WooCredentials, parse_credentials
from app.services.errors import (
    ConfigurationError,
    CredentialError,
    ProxyUnavailable,
    RemoteFetchError,
    StoreNotFoundError,
)
from app.services.http_client import send_once
from app.services.import_dedup import tag_already_imported
from app.services.proxy_functions import LIST_FUNCTIONS, SYNC_FUNCTIONS, invoke_function

logger = logging.getLogger(__name__)


@dataclass
class CatalogSelector:
    store_id: Optional[int] = None
    brand_id: Optional[int] = None
    limit: int = settings.REMOTE_LIST_DEFAULT_LIMIT
    platform: StoreType = StoreType.WOOCOMMERCE

    def to_body(self) -> dict:
        body = {"limit": self.limit}
        if self.store_id:
            body["store_id"] = self.store_id
        elif self.brand_id:
            body["brand_id"] = self.brand_id
        return body


@dataclass(frozen=True)
class FetchRequest:
    url: str
    headers: dict


@dataclass(frozen=True)
class FetchAttempt:
    """One rung of the fallback ladder. build() returns None when the rung does not apply."""
    name: str
    build: Callable[[StoreCredentials, int], Optional[FetchRequest]]


# WooCommerce REST

def woo_products_url(site_url: str, limit: int) -> str:
    return f"{site_url.rstrip('/')}/wp-json/wc/v3/products?per_page={limit}&status=publish"


def _woo_query_auth(creds: WooCredentials) -> str:
    return f"&consumer_key={quote(creds.consumer_key, safe='')}&consumer_secret={quote(creds.consumer_secret, safe='')}"


def basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


def _https_query_auth(creds: WooCredentials, limit: int) -> Optional[FetchRequest]:
    return FetchRequest(woo_products_url(creds.site_url, limit) + _woo_query_auth(creds), {})


def _http_query_auth(creds: WooCredentials, limit: int) -> Optional[FetchRequest]:
    # Same request over plain HTTP for dev stores without a valid certificate
    if not creds.site_url.lower().startswith("https://"):
        return None
    http_url = "http://" + creds.site_url[len("https://"):]
    return FetchRequest(woo_products_url(http_url, limit) + _woo_query_auth(creds), {})


def _basic_auth_header(creds: WooCredentials, limit: int) -> Optional[FetchRequest]:
    return FetchRequest(
        woo_products_url(creds.site_url, limit),
        {"Authorization": basic_auth_header(creds.consumer_key, creds.consumer_secret)},
    )


WOO_LADDER = [
    FetchAttempt("https_query_auth", _https_query_auth),
    FetchAttempt("http_query_auth", _http_query_auth),
    FetchAttempt("basic_auth_header", _basic_auth_header),
]


def normalize_woo_product(p: dict) -> dict:
    images = p.get("images") or []
    stock = p.get("stock_quantity")
    return {
        "id": str(p.get("id")),
        "title": str(p.get("name") or ""),
        "image": (images[0] or {}).get("src") or None if images else None,
        "price": str(p.get("price") or "0.00"),
        "sku": str(p.get("sku") or ""),
        "inventory": stock if isinstance(stock, int) else 0,
        "vendor": "",
        "product_type": "",
        "handle": str(p.get("slug") or ""),
        "already_imported": False,
    }


# Shopify Admin REST

def shopify_products_url(shop_domain: str, limit: int) -> str:
    return f"https://{shop_domain}/admin/api/{settings.SHOPIFY_API_VERSION}/products.json?limit={limit}&status=active"


def _shopify_admin_token(creds: ShopifyCredentials, limit: int) -> Optional[FetchRequest]:
    return FetchRequest(
        shopify_products_url(creds.shop_domain, limit),
        {"X-Shopify-Access-Token": creds.access_token, "Content-Type": "application/json"},
    )


SHOPIFY_LADDER = [
    FetchAttempt("shopify_admin_token", _shopify_admin_token),
]


def normalize_shopify_product(p: dict) -> dict:
    images = p.get("images") or []
    variants = p.get("variants") or []
    first = variants[0] if variants else {}
    qty = first.get("inventory_quantity")
    return {
        "id": str(p.get("id")),
        "title": str(p.get("title") or ""),
        "image": (images[0] or {}).get("src") or None if images else None,
        "price": str(first.get("price") or "0.00"),
        "sku": str(first.get("sku") or ""),
        "inventory": qty if isinstance(qty, int) else 0,
        "vendor": str(p.get("vendor") or ""),
        "product_type": str(p.get("product_type") or ""),
        "handle": str(p.get("handle") or ""),
        "already_imported": False,
    }


def _woo_items(data) -> list:
    return data if isinstance(data, list) else []


def _shopify_items(data) -> list:
    return (data or {}).get("products") or [] if isinstance(data, dict) else []


@dataclass(frozen=True)
class PlatformCatalog:
    ladder: list
    extract: Callable
    normalize: Callable[[dict], dict]


PLATFORMS = {
    StoreType.WOOCOMMERCE: PlatformCatalog(WOO_LADDER, _woo_items, normalize_woo_product),
    StoreType.SHOPIFY: PlatformCatalog(SHOPIFY_LADDER, _shopify_items, normalize_shopify_product),
}


async def run_ladder(
    attempts: list,
    creds: StoreCredentials,
    limit: int,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
):
    """Try each attempt in order; return (attempt_name, decoded JSON) of the first success."""
    failures = []
    for attempt in attempts:
        request = attempt.build(creds, limit)
        if request is None:
            continue
        try:
            resp = await send_once(
                "GET", request.url, headers=request.headers,
                timeout=settings.DIRECT_FETCH_TIMEOUT_SECONDS, transport=transport,
            )
        except httpx.HTTPError as e:
            failures.append((attempt.name, str(e) or type(e).__name__))
            continue
        if not resp.is_success:
            failures.append((attempt.name, f"HTTP {resp.status_code}"))
            continue
        try:
            return attempt.name, resp.json()
        except ValueError:
            failures.append((attempt.name, "Invalid JSON response"))

    last_error = failures[-1][1] if failures else "no applicable attempt"
    raise RemoteFetchError(f"Remote API fetch failed: {last_error}", failures)


class RemoteCatalogClient:
    """Lists (and proxy-syncs) a connected store's remote catalog."""

    def __init__(self, db: Session, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = db
        self.transport = transport

    async def list_remote_products(self, selector: CatalogSelector) -> dict:
        platform = PLATFORMS.get(selector.platform)
        if platform is None:
            raise CredentialError(f"Remote listing is not supported for {selector.platform.value} stores")
        if not selector.store_id and not selector.brand_id:
            raise CredentialError("Missing store_id or brand_id parameter")

        # Platform and credentials are checked locally before any network call
        store = self._find_store(selector)
        creds = parse_credentials(store.store_type, store.api_credentials)

        try:
            result = await invoke_function(
                LIST_FUNCTIONS[selector.platform.value],
                replace(selector, store_id=store.id).to_body(),
                transport=self.transport,
            )
        except ProxyUnavailable as e:
            logger.info("Listing proxy unavailable (%s); falling back to direct store access", e.message)
            return await self._list_direct(store, creds, platform, selector.limit)

        if result.error:
            if result.status_code == 404:
                raise StoreNotFoundError(result.error)
            raise RemoteFetchError(result.error, [("proxy", result.error)])
        products = result.data.get("products")
        if not result.data.get("success") or not isinstance(products, list):
            raise RemoteFetchError("Listing proxy returned a malformed payload", [("proxy", "malformed payload")])
        products = [dict(p, id=str(p.get("id"))) for p in products if isinstance(p, dict)]
        return {
            "success": True,
            # already_imported is always recomputed from the local catalog
            "products": tag_already_imported(self.db, store.id, products),
            "storeId": store.id,
            "storeName": result.data.get("store_name") or store.name,
        }

    def _find_store(self, selector: CatalogSelector) -> Store:
        query = self.db.query(Store)
        if selector.store_id:
            store = query.filter(Store.id == selector.store_id).first()
            if store and selector.brand_id and store.brand_id != selector.brand_id:
                store = None
        else:
            store = (
                query.filter(Store.brand_id == selector.brand_id, Store.store_type == selector.platform)
                .order_by(Store.id.desc())
                .first()
            )
        if not store:
            raise StoreNotFoundError(f"{selector.platform.value} store not found")
        if store.store_type != selector.platform:
            raise CredentialError(
                f"Store {store.id} is a {store.store_type.value} store, not {selector.platform.value}"
            )
        return store

    async def _list_direct(self, store: Store, creds: StoreCredentials, platform: PlatformCatalog, limit: int) -> dict:
        source, data = await run_ladder(platform.ladder, creds, limit, transport=self.transport)
        logger.info("Listed store %s catalog via %s", store.id, source)

        normalized = [platform.normalize(p) for p in platform.extract(data) if isinstance(p, dict)]
        return {
            "success": True,
            "products": tag_already_imported(self.db, store.id, normalized),
            "storeId": store.id,
            "storeName": store.name,
        }

    async def sync_via_proxy(self, store: Store) -> int:
        """Ask the sync proxy to upsert the full remote catalog; returns the synced count."""
        name = SYNC_FUNCTIONS.get(store.store_type.value)
        if not name:
            raise ConfigurationError(f"Catalog sync is not supported for {store.store_type.value} stores")
        result = await invoke_function(name, {"store_id": store.id}, transport=self.transport)
        if result.error:
            raise RemoteFetchError(result.error, [("proxy", result.error)])
        return int(result.data.get("synced") or 0)
