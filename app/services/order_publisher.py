"""
Push a finalized local order to the store's remote platform (WooCommerce or Shopify).

Publishing is idempotent per local order: the order row is re-read under a
per-order lock and an order that already carries external_order_id is not
sent again; the stored remote id is returned instead.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Order, Store
from app.services.credentials import ShopifyCredentials, StoreCredentials, WooCredentials, parse_credentials
from app.services.errors import ConfigurationError, CredentialError, PublishError
from app.services.http_client import send_once
from app.services.remote_catalog import basic_auth_header

logger = logging.getLogger(__name__)

# order_id -> [lock, holders and waiters]; dropped when the last user leaves
_order_locks: dict = {}


@asynccontextmanager
async def _order_lock(order_id: int):
    entry = _order_locks.get(order_id)
    if entry is None:
        entry = _order_locks[order_id] = [asyncio.Lock(), 0]
    entry[1] += 1
    try:
        async with entry[0]:
            yield
    finally:
        entry[1] -= 1
        if entry[1] == 0:
            _order_locks.pop(order_id, None)


def idempotency_key(order_id: int) -> str:
    return f"local-order-{order_id}"


def _remote_product_id(external_product_id: Optional[str]) -> Optional[int]:
    try:
        pid = int(str(external_product_id).strip())
    except (TypeError, ValueError):
        return None
    return pid if pid > 0 else None


def resolve_line_items(order: Order):
    """
    Map order items to remote product ids.
    Returns (mapped, skipped_item_ids) where mapped holds (OrderItem, remote_product_id).
    """
    mapped = []
    skipped = []
    for item in order.items:
        product = item.product
        pid = _remote_product_id(product.external_product_id if product else None)
        if pid is None:
            logger.warning("Order %s item %s has no remote product mapping; skipped", order.id, item.id)
            skipped.append(item.id)
            continue
        mapped.append((item, pid))
    return mapped, skipped


# WooCommerce

def woo_line_items(mapped: list) -> list:
    return [{"product_id": pid, "quantity": item.quantity} for item, pid in mapped]


def build_order_payload(order: Order, line_items: list) -> dict:
    return {
        "billing": {
            "email": order.customer_email or "",
            "first_name": order.customer_name or "",
        },
        "line_items": line_items,
        "set_paid": False,
    }


def _woo_request(creds: WooCredentials, order: Order, mapped: list):
    url = f"{creds.site_url}/wp-json/wc/v3/orders"
    headers = {
        "Authorization": basic_auth_header(creds.consumer_key, creds.consumer_secret),
        "Content-Type": "application/json",
    }
    return url, headers, build_order_payload(order, woo_line_items(mapped))


def _woo_order_id(created: dict) -> str:
    return str(created.get("id") or "")


# Shopify

def shopify_line_items(mapped: list) -> list:
    return [
        {"product_id": pid, "quantity": item.quantity, "price": str(item.unit_price)}
        for item, pid in mapped
    ]


def build_shopify_order_payload(order: Order, line_items: list) -> dict:
    payload = {
        "line_items": line_items,
        "financial_status": "pending",
        "send_receipt": False,
        "send_fulfillment_receipt": False,
        "note": f"Order #{order.id}",
    }
    if order.customer_email:
        first_name, _, last_name = (order.customer_name or "").strip().partition(" ")
        payload["email"] = order.customer_email
        payload["customer"] = {
            "email": order.customer_email,
            "first_name": first_name,
            "last_name": last_name.strip(),
        }
    return {"order": payload}


def shopify_orders_url(shop_domain: str) -> str:
    return f"https://{shop_domain}/admin/api/{settings.SHOPIFY_API_VERSION}/orders.json"


def _shopify_request(creds: ShopifyCredentials, order: Order, mapped: list):
    headers = {
        "X-Shopify-Access-Token": creds.access_token,
        "Content-Type": "application/json",
    }
    return shopify_orders_url(creds.shop_domain), headers, build_shopify_order_payload(order, shopify_line_items(mapped))


def _shopify_order_id(created: dict) -> str:
    if created.get("errors"):
        raise PublishError(f"Create order error: {created['errors']}")
    return str((created.get("order") or {}).get("id") or "")


def _load_credentials(db: Session, order: Order) -> StoreCredentials:
    if not order.store_id:
        raise ConfigurationError(f"Order {order.id} is not linked to a store")
    store = db.query(Store).filter(Store.id == order.store_id).first()
    if not store:
        raise PublishError(f"Store {order.store_id} for order {order.id} not found")
    try:
        return parse_credentials(store.store_type, store.api_credentials)
    except CredentialError as e:
        raise ConfigurationError(e.message)


async def _create_remote_order(creds: StoreCredentials, order: Order, mapped: list, transport) -> str:
    if isinstance(creds, ShopifyCredentials):
        url, headers, payload = _shopify_request(creds, order, mapped)
        extract_id = _shopify_order_id
    else:
        url, headers, payload = _woo_request(creds, order, mapped)
        extract_id = _woo_order_id
    headers["Idempotency-Key"] = idempotency_key(order.id)

    try:
        resp = await send_once(
            "POST", url, json=payload, headers=headers,
            timeout=settings.DIRECT_FETCH_TIMEOUT_SECONDS, transport=transport,
        )
    except httpx.HTTPError as e:
        raise PublishError(f"Create order error: {e}")
    if not resp.is_success:
        raise PublishError(f"Create order error: {resp.status_code}")
    try:
        created = resp.json()
    except ValueError:
        raise PublishError("Create order error: invalid JSON response")
    remote_id = extract_id(created) if isinstance(created, dict) else ""
    if not remote_id:
        raise PublishError("Create order error: response carried no order id")
    return remote_id


async def publish(
    db: Session,
    order_id: int,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Create the remote order for local order_id and store the remote id on it."""
    async with _order_lock(order_id):
        order = db.query(Order).populate_existing().filter(Order.id == order_id).first()
        if not order:
            raise PublishError(f"Order {order_id} not found")
        if order.external_order_id:
            logger.info("Order %s already published as %s", order_id, order.external_order_id)
            return {"success": True, "remoteOrderId": order.external_order_id, "alreadyPublished": True, "skippedItems": []}

        creds = _load_credentials(db, order)
        mapped, skipped = resolve_line_items(order)
        if not mapped:
            logger.warning("Order %s has no mapped line items; publishing without items", order_id)

        remote_id = await _create_remote_order(creds, order, mapped, transport)
        order.external_order_id = remote_id
        db.commit()
        logger.info("Published order %s as remote order %s", order_id, remote_id)
        return {"success": True, "remoteOrderId": remote_id, "alreadyPublished": False, "skippedItems": skipped}
