"""
Client for the trusted server-side functions (catalog listing and sync proxy).

Distinguishes a proxy that cannot be reached (ProxyUnavailable, callers may
fall back to direct access) from a proxy that answered with an application
error (FunctionResult.error is set, callers must not fall back).
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from app.config import settings
from app.services.errors import ProxyUnavailable
from app.services.http_client import send_once

logger = logging.getLogger(__name__)

# Gateway answers meaning the function itself never ran
UNREACHABLE_STATUS = (502, 503, 504)

LIST_FUNCTIONS = {
    "woocommerce": "woocommerce-list-products",
    "shopify": "shopify-list-products",
}
SYNC_FUNCTIONS = {
    "woocommerce": "woocommerce-sync-products",
    "shopify": "shopify-sync-products",
}


@dataclass
class FunctionResult:
    status_code: int
    data: dict = field(default_factory=dict)

    @property
    def error(self) -> Optional[str]:
        if self.data.get("error"):
            details = self.data.get("details") or self.data.get("message")
            return f"{self.data['error']}: {details}" if details else str(self.data["error"])
        if self.status_code >= 400:
            return f"HTTP {self.status_code}"
        return None


async def invoke_function(
    name: str,
    body: dict,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FunctionResult:
    """POST body to function `name`. Raises ProxyUnavailable on transport-level failure."""
    if not settings.PROXY_BASE_URL:
        raise ProxyUnavailable("Proxy functions are not configured")

    url = f"{settings.PROXY_BASE_URL}/functions/v1/{name}"
    headers = {"Content-Type": "application/json"}
    if settings.PROXY_API_KEY:
        headers["Authorization"] = f"Bearer {settings.PROXY_API_KEY}"
        headers["apikey"] = settings.PROXY_API_KEY

    try:
        resp = await send_once(
            "POST", url, json=body, headers=headers,
            timeout=settings.PROXY_TIMEOUT_SECONDS, transport=transport,
        )
    except httpx.TransportError as e:
        logger.warning("Proxy function %s unreachable: %s", name, e)
        raise ProxyUnavailable(f"Failed to send a request to function {name}: {e}")

    if resp.status_code in UNREACHABLE_STATUS:
        raise ProxyUnavailable(f"Function {name} unavailable: HTTP {resp.status_code}")

    try:
        data = resp.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        data = {"error": f"Function {name} returned a malformed response"}
    return FunctionResult(status_code=resp.status_code, data=data)
