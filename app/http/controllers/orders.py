"""
Order routes: push local orders to the connected store
"""
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import get_current_brand_id
from app.database import get_db
from app.models import Order, SyncType
from app.services.errors import ConfigurationError
from app.services.http_client import get_transport
from app.services.order_publisher import publish
from app.services.sync_engine import SyncEngine

router = APIRouter()


@router.post("/{order_id}/publish")
async def publish_order(
    order_id: int,
    db: Session = Depends(get_db),
    brand_id: int = Depends(get_current_brand_id),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    """Create the remote order for a local order (idempotent)"""
    order = db.query(Order).filter(Order.id == order_id, Order.brand_id == brand_id).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if not order.store_id:
        raise ConfigurationError(f"Order {order_id} is not linked to a store")

    async def work():
        return await publish(db, order.id, transport=transport)

    sync_log, result = await SyncEngine(db).run_sync(order.store_id, SyncType.ORDERS, work)
    return {**result, "syncLogId": sync_log.id}
