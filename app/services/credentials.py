"""
Store credential handling: URL/domain canonicalization, validation, typed
credential variants and encryption of secrets at rest.
"""
import base64
import logging
import re
from dataclasses import dataclass
from typing import Union

from cryptography.fernet import Fernet, InvalidToken

from app.config import settings
from app.models import StoreType
from app.services.errors import ConfigurationError, CredentialError

logger = logging.getLogger(__name__)

_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)


def get_encryption_key() -> bytes:
    """Get or generate encryption key"""
    key_str = settings.ENCRYPTION_KEY
    # Ensure key is 32 bytes for Fernet
    key_bytes = key_str.encode()[:32].ljust(32, b'0')
    return base64.urlsafe_b64encode(key_bytes)

def encrypt_token(token: str) -> str:
    """Encrypt a token"""
    f = Fernet(get_encryption_key())
    return f.encrypt(token.encode()).decode()

def decrypt_token(encrypted: str) -> str:
    """Decrypt a token"""
    f = Fernet(get_encryption_key())
    return f.decrypt(encrypted.encode()).decode()


def normalize_site_url(raw: str) -> str:
    """Trim, default to https:// when no protocol is given, drop trailing slashes."""
    url = (raw or "").strip()
    if not _PROTOCOL_RE.match(url):
        url = f"https://{url}"
    return url.rstrip("/")


def strip_protocol(url: str) -> str:
    return _PROTOCOL_RE.sub("", url)


def normalize_shop_domain(shop_domain: str) -> str:
    """Canonical Shopify domain: lowercase, no protocol/slash, always *.myshopify.com for bare names."""
    shop = (shop_domain or "").lower().strip()
    shop = strip_protocol(shop).rstrip("/")
    if shop and "." not in shop:
        shop = f"{shop}.myshopify.com"
    return shop


def validate_woo_credentials(site_url: str, consumer_key: str, consumer_secret: str) -> None:
    missing = [
        name
        for name, value in (
            ("site_url", site_url),
            ("consumer_key", consumer_key),
            ("consumer_secret", consumer_secret),
        )
        if not (value or "").strip()
    ]
    if missing:
        raise CredentialError(f"Missing WooCommerce credentials: {', '.join(missing)}")


def validate_shop_domain(shop_domain: str) -> None:
    if not (shop_domain or "").strip():
        raise CredentialError("Shop domain is required")


@dataclass(frozen=True)
class WooCredentials:
    site_url: str
    consumer_key: str
    consumer_secret: str

    def to_blob(self) -> dict:
        return {
            "site_url": self.site_url,
            "consumer_key": self.consumer_key,
            "consumer_secret": encrypt_token(self.consumer_secret),
        }


@dataclass(frozen=True)
class ShopifyCredentials:
    shop_domain: str
    access_token: str

    def to_blob(self) -> dict:
        return {
            "shop_domain": self.shop_domain,
            "access_token": encrypt_token(self.access_token),
        }


StoreCredentials = Union[WooCredentials, ShopifyCredentials]


def _decrypt_secret(value: str, field: str) -> str:
    try:
        return decrypt_token(value)
    except (InvalidToken, ValueError) as e:
        logger.warning("Stored %s could not be decrypted: %s", field, type(e).__name__)
        raise ConfigurationError(f"Stored {field} could not be decrypted; reconnect the store")


def parse_credentials(store_type: StoreType, blob) -> StoreCredentials:
    """
    Turn the persisted api_credentials blob into the typed variant for store_type.
    Raises CredentialError when the blob is missing or incomplete, and
    ConfigurationError when a stored secret cannot be decrypted.
    """
    blob = blob or {}
    if store_type == StoreType.WOOCOMMERCE:
        site_url = blob.get("site_url") or ""
        key = blob.get("consumer_key") or ""
        secret = blob.get("consumer_secret") or ""
        if not site_url or not key or not secret:
            raise CredentialError("Store credentials not configured")
        return WooCredentials(
            site_url=normalize_site_url(site_url),
            consumer_key=key,
            consumer_secret=_decrypt_secret(secret, "consumer_secret"),
        )
    if store_type == StoreType.SHOPIFY:
        shop = blob.get("shop_domain") or ""
        token = blob.get("access_token") or ""
        if not shop or not token:
            raise CredentialError("Store credentials not configured. Please reconnect your Shopify store.")
        return ShopifyCredentials(
            shop_domain=normalize_shop_domain(shop),
            access_token=_decrypt_secret(token, "access_token"),
        )
    raise CredentialError(f"Store type {getattr(store_type, 'value', store_type)} has no remote credentials")
