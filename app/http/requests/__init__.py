from app.http.requests.schemas import (
    WooConnectRequest,
    ShopifyConnectRequest,
    RemoteProductsRequest,
    RemoteProductPayload,
    ImportProductsRequest,
)
