"""
SQLAlchemy models for store connections, imported catalog, orders and sync logs.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Numeric, Text, Enum as SQLEnum, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

# Enums
class StoreType(str, enum.Enum):
    SHOPIFY = "shopify"
    WOOCOMMERCE = "woocommerce"
    INTERNAL = "internal"

class ProductSourceType(str, enum.Enum):
    SHOPIFY = "shopify"
    MANUAL = "manual"

class SyncType(str, enum.Enum):
    PRODUCTS = "products"
    ORDERS = "orders"
    INVENTORY = "inventory"

class SyncStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"

# Models
class Store(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column("brand_id", Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    store_type = Column("store_type", SQLEnum(StoreType), nullable=False)
    external_store_id = Column("external_store_id", String, nullable=True)
    api_credentials = Column("api_credentials", JSON, nullable=True)  # secrets encrypted
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    products = relationship("Product", back_populates="store")
    sync_logs = relationship("SyncLog", back_populates="store")

    __table_args__ = (
        Index("ix_stores_brand_type", "brand_id", "store_type"),
    )

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column("store_id", Integer, ForeignKey("stores.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column("price", Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BRL")
    image_url = Column("image_url", String, nullable=True)
    external_product_id = Column("external_product_id", String, nullable=True)  # NULL = authored locally
    product_source_type = Column("product_source_type", SQLEnum(ProductSourceType), nullable=False)
    stock_quantity = Column("stock_quantity", Integer, default=0)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    store = relationship("Store", back_populates="products")

    __table_args__ = (
        UniqueConstraint("store_id", "external_product_id", name="products_store_external_unique"),
    )

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column("brand_id", Integer, nullable=False, index=True)
    store_id = Column("store_id", Integer, ForeignKey("stores.id", ondelete="SET NULL"), nullable=True)
    customer_name = Column("customer_name", String, nullable=True)
    customer_email = Column("customer_email", String, nullable=True)
    total_amount = Column("total_amount", Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="BRL")
    external_order_id = Column("external_order_id", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column("order_id", Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column("product_id", Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column("unit_price", Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

class SyncLog(Base):
    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column("store_id", Integer, ForeignKey("stores.id"), nullable=False, index=True)
    sync_type = Column("sync_type", SQLEnum(SyncType), nullable=False)
    status = Column(SQLEnum(SyncStatus), nullable=False, default=SyncStatus.IN_PROGRESS)
    started_at = Column("started_at", DateTime, nullable=False)
    finished_at = Column("finished_at", DateTime, nullable=True)
    message = Column(String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    store = relationship("Store", back_populates="sync_logs")
