"""
Pydantic schemas for request/response validation (Http/Requests).
"""
from pydantic import BaseModel, Field, validator
from typing import Optional, List
from app.config import settings
from app.models import StoreType

# Store connection schemas
class WooConnectRequest(BaseModel):
    site_url: str
    consumer_key: str
    consumer_secret: str

class ShopifyConnectRequest(BaseModel):
    shop_domain: str
    access_token: str

    @validator("shop_domain")
    def validate_shop_domain(cls, v):
        return v.strip()

# Remote catalog schemas
class RemoteProductsRequest(BaseModel):
    store_id: Optional[int] = None
    platform: StoreType = StoreType.WOOCOMMERCE
    limit: int = Field(settings.REMOTE_LIST_DEFAULT_LIMIT, ge=1, le=100)

    @validator("platform")
    def validate_platform(cls, v):
        if v == StoreType.INTERNAL:
            raise ValueError("Internal stores have no remote catalog")
        return v

class RemoteProductPayload(BaseModel):
    id: str
    title: str = ""
    image: Optional[str] = None
    price: str = "0.00"
    sku: str = ""
    inventory: int = 0
    vendor: str = ""
    product_type: str = ""
    handle: str = ""
    already_imported: bool = False

    @validator("id", "price", pre=True)
    def coerce_str(cls, v):
        return "" if v is None else str(v)

class ImportProductsRequest(BaseModel):
    products: List[RemoteProductPayload]
