"""
Cross-reference remote catalog items with what a store already imported, and
import a selected subset as local Product rows.

The batch import is deliberately not transactional: every row is committed on
its own so one bad item never blocks the others. Failures come back as a list
of per-item outcomes on ImportResult.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from app.models import Product, ProductSourceType, Store, StoreType
from app.services.errors import StoreNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ImportItemError:
    product_id: str
    title: str
    error: str

    def to_dict(self) -> dict:
        return {"productId": self.product_id, "title": self.title, "error": self.error}


@dataclass
class ImportResult:
    inserted_count: int = 0
    skipped_count: int = 0
    per_item_errors: list[ImportItemError] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.per_item_errors)

    def summary(self) -> str:
        total = self.inserted_count + len(self.per_item_errors)
        msg = f"{self.inserted_count} of {total} imported"
        if self.per_item_errors:
            msg += f", {len(self.per_item_errors)} failed"
        if self.skipped_count:
            msg += f", {self.skipped_count} already imported"
        return msg


def load_imported_ids(db: Session, store_id: int) -> set[str]:
    rows = (
        db.query(Product.external_product_id)
        .filter(Product.store_id == store_id, Product.external_product_id.isnot(None))
        .all()
    )
    return {str(ext_id) for (ext_id,) in rows}


def mark_imported(products: Iterable[dict], imported_ids: set[str]) -> list[dict]:
    """Return copies of products with already_imported set from imported_ids."""
    return [{**p, "already_imported": str(p.get("id")) in imported_ids} for p in products]


def tag_already_imported(db: Session, store_id: int, products: Iterable[dict]) -> list[dict]:
    return mark_imported(products, load_imported_ids(db, store_id))


def _source_type_for(store: Store) -> ProductSourceType:
    if store.store_type == StoreType.SHOPIFY:
        return ProductSourceType.SHOPIFY
    return ProductSourceType.MANUAL


def _to_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def import_selected(db: Session, store_id: int, selected: Iterable[dict]) -> ImportResult:
    """Insert one Product per selected remote item that is not yet imported."""
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise StoreNotFoundError(f"Store {store_id} not found")

    imported_ids = load_imported_ids(db, store_id)
    source_type = _source_type_for(store)
    result = ImportResult()

    for item in selected:
        external_id = str(item.get("id") or "").strip()
        title = str(item.get("title") or "")
        if not external_id:
            result.per_item_errors.append(ImportItemError(external_id, title, "Remote product id is missing"))
            continue
        if external_id in imported_ids:
            result.skipped_count += 1
            continue

        try:
            product = Product(
                store_id=store.id,
                name=title,
                price=Decimal(str(item.get("price") or "0")),
                image_url=item.get("image") or None,
                external_product_id=external_id,
                product_source_type=source_type,
                stock_quantity=_to_int(item.get("inventory")),
            )
            db.add(product)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning("Import of product %s into store %s failed: %s", external_id, store.id, e)
            result.per_item_errors.append(ImportItemError(external_id, title, str(e) or type(e).__name__))
            continue

        imported_ids.add(external_id)
        result.inserted_count += 1

    logger.info("Import into store %s: %s", store.id, result.summary())
    return result
