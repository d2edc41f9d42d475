"""
Already-imported tagging and selective import
"""
from decimal import Decimal

import pytest
from sqlalchemy import event

from app.models import Product, ProductSourceType, Store, StoreType
from app.services.errors import StoreNotFoundError
from app.services.import_dedup import import_selected, mark_imported, tag_already_imported


def _remote(pid, price="19.90", title=None):
    return {"id": pid, "title": title or f"Remote {pid}", "image": None, "price": price, "inventory": 3}


class TestTagging:

    def test_tags_previously_imported_ids(self, db_session, woo_store):
        db_session.add(Product(
            store_id=woo_store.id, name="Shirt", price=Decimal("10"),
            external_product_id="123", product_source_type=ProductSourceType.MANUAL,
        ))
        db_session.commit()

        tagged = tag_already_imported(db_session, woo_store.id, [_remote("123"), _remote("456")])

        assert [p["already_imported"] for p in tagged] == [True, False]

    def test_numeric_remote_ids_match_string_ids(self):
        tagged = mark_imported([{"id": 123}], {"123"})
        assert tagged[0]["already_imported"] is True

    def test_inputs_are_not_mutated(self):
        original = [{"id": "1", "already_imported": False}]
        mark_imported(original, {"1"})
        assert original[0]["already_imported"] is False

    def test_other_store_imports_do_not_count(self, db_session, woo_store):
        other = Store(brand_id=99, name="other", store_type=StoreType.WOOCOMMERCE)
        db_session.add(other)
        db_session.commit()
        db_session.add(Product(
            store_id=other.id, name="Shirt", price=Decimal("10"),
            external_product_id="123", product_source_type=ProductSourceType.MANUAL,
        ))
        db_session.commit()

        tagged = tag_already_imported(db_session, woo_store.id, [_remote("123")])
        assert tagged[0]["already_imported"] is False


class TestImportSelected:

    def test_bad_item_does_not_abort_batch(self, db_session, woo_store):
        selected = [_remote("1"), _remote("2", price="not-a-price"), _remote("3")]

        result = import_selected(db_session, woo_store.id, selected)

        assert result.inserted_count == 2
        assert result.partial is True
        assert len(result.per_item_errors) == 1
        assert result.per_item_errors[0].product_id == "2"
        ids = {p.external_product_id for p in db_session.query(Product).filter(Product.store_id == woo_store.id)}
        assert ids == {"1", "3"}

    def test_failed_insert_is_rolled_back_and_batch_continues(self, db_session, woo_store):
        def reject_second(mapper, connection, target):
            if target.external_product_id == "2":
                raise ValueError("rejected by database")

        event.listen(Product, "before_insert", reject_second)
        try:
            result = import_selected(db_session, woo_store.id, [_remote("1"), _remote("2"), _remote("3")])
        finally:
            event.remove(Product, "before_insert", reject_second)

        assert result.inserted_count == 2
        assert [e.product_id for e in result.per_item_errors] == ["2"]
        assert "rejected by database" in result.per_item_errors[0].error
        ids = {p.external_product_id for p in db_session.query(Product).filter(Product.store_id == woo_store.id)}
        assert ids == {"1", "3"}

    def test_imported_rows_carry_remote_fields(self, db_session, woo_store):
        import_selected(db_session, woo_store.id, [_remote("10", price="49.90", title="Mug")])

        product = db_session.query(Product).filter(Product.external_product_id == "10").one()
        assert product.name == "Mug"
        assert product.price == Decimal("49.90")
        assert product.stock_quantity == 3
        assert product.product_source_type == ProductSourceType.MANUAL

    def test_shopify_store_imports_as_shopify_source(self, db_session, brand_id):
        store = Store(brand_id=brand_id, name="s.myshopify.com", store_type=StoreType.SHOPIFY)
        db_session.add(store)
        db_session.commit()

        import_selected(db_session, store.id, [_remote("5")])

        product = db_session.query(Product).filter(Product.store_id == store.id).one()
        assert product.product_source_type == ProductSourceType.SHOPIFY

    def test_reimport_skips_existing(self, db_session, woo_store):
        import_selected(db_session, woo_store.id, [_remote("1")])

        result = import_selected(db_session, woo_store.id, [_remote("1"), _remote("2")])

        assert result.inserted_count == 1
        assert result.skipped_count == 1
        assert db_session.query(Product).filter(Product.store_id == woo_store.id).count() == 2

    def test_item_without_id_is_reported(self, db_session, woo_store):
        result = import_selected(db_session, woo_store.id, [{"id": "", "title": "Nameless"}])
        assert result.inserted_count == 0
        assert result.per_item_errors[0].title == "Nameless"

    def test_unknown_store(self, db_session):
        with pytest.raises(StoreNotFoundError):
            import_selected(db_session, 404, [_remote("1")])
