"""
Shared HTTP helpers for outbound calls (proxy functions, WooCommerce, Shopify).
Single attempt per call with an explicit timeout; fallback policy lives with the caller.
"""
import logging
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
SECRET_PARAMS = ("consumer_key", "consumer_secret", "access_token")


def redact_url(url: str) -> str:
    """Mask credential query parameters so URLs are safe to log."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (k, "***" if k in SECRET_PARAMS else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query, safe="*"), parts.fragment))


async def send_once(
    method: str,
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    Perform one HTTP request with a timeout. Transport errors propagate as
    httpx.TransportError; non-2xx responses are returned to the caller.
    """
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        resp = await client.request(method, url, **kwargs)
    if resp.status_code >= 400:
        logger.warning("HTTP %s %s -> %s", method, redact_url(url), resp.status_code)
    else:
        logger.info("HTTP %s %s -> %s", method, redact_url(url), resp.status_code)
    return resp


def get_transport() -> Optional[httpx.AsyncBaseTransport]:
    """FastAPI dependency for the outbound transport; None means real network I/O."""
    return None
