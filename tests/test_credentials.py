"""
Credential canonicalization, validation and encryption
"""
import pytest

from app.models import StoreType
from app.services.credentials import (
    ShopifyCredentials,
    WooCredentials,
    decrypt_token,
    normalize_shop_domain,
    normalize_site_url,
    parse_credentials,
    strip_protocol,
    validate_woo_credentials,
)
from app.services.errors import ConfigurationError, CredentialError


class TestNormalizeSiteUrl:

    @pytest.mark.parametrize("raw", [
        "example.com",
        "example.com/",
        "  example.com//  ",
        "https://example.com",
        "https://example.com/",
    ])
    def test_canonical_form(self, raw):
        assert normalize_site_url(raw) == "https://example.com"

    def test_http_is_preserved(self):
        assert normalize_site_url("http://dev.example.com/") == "http://dev.example.com"

    def test_idempotent(self):
        once = normalize_site_url(" shop.example.com/store/ ")
        assert normalize_site_url(once) == once

    def test_strip_protocol(self):
        assert strip_protocol("https://example.com") == "example.com"
        assert strip_protocol("http://example.com") == "example.com"


class TestShopDomain:

    def test_bare_name_gets_myshopify_suffix(self):
        assert normalize_shop_domain("My-Store") == "my-store.myshopify.com"

    def test_full_url_is_reduced_to_host(self):
        assert normalize_shop_domain("https://my-store.myshopify.com/") == "my-store.myshopify.com"


class TestValidation:

    def test_missing_fields_are_listed(self):
        with pytest.raises(CredentialError) as exc:
            validate_woo_credentials("example.com", "", "  ")
        assert "consumer_key" in exc.value.message
        assert "consumer_secret" in exc.value.message
        assert "site_url" not in exc.value.message

    def test_complete_credentials_pass(self):
        validate_woo_credentials("example.com", "ck", "cs")


class TestCredentialBlob:

    def test_woo_secret_encrypted_at_rest(self):
        blob = WooCredentials("https://example.com", "ck_1", "cs_secret").to_blob()
        assert blob["consumer_secret"] != "cs_secret"
        assert decrypt_token(blob["consumer_secret"]) == "cs_secret"
        assert blob["consumer_key"] == "ck_1"

    def test_woo_blob_parses_back(self):
        blob = WooCredentials("https://example.com", "ck_1", "cs_secret").to_blob()
        creds = parse_credentials(StoreType.WOOCOMMERCE, blob)
        assert creds == WooCredentials("https://example.com", "ck_1", "cs_secret")

    def test_shopify_blob_parses_back(self):
        blob = ShopifyCredentials("shop.myshopify.com", "shpat_x").to_blob()
        creds = parse_credentials(StoreType.SHOPIFY, blob)
        assert creds.access_token == "shpat_x"
        assert creds.shop_domain == "shop.myshopify.com"

    def test_incomplete_blob_rejected(self):
        with pytest.raises(CredentialError):
            parse_credentials(StoreType.WOOCOMMERCE, {"site_url": "https://example.com"})

    def test_undecryptable_secret_rejected(self):
        blob = {"site_url": "https://example.com", "consumer_key": "ck", "consumer_secret": "not-a-token"}
        with pytest.raises(ConfigurationError) as exc:
            parse_credentials(StoreType.WOOCOMMERCE, blob)
        assert "reconnect" in exc.value.message

    def test_internal_store_has_no_credentials(self):
        with pytest.raises(CredentialError):
            parse_credentials(StoreType.INTERNAL, {})
