"""SQLAlchemy ORM models and enums.

This module defines the domain schema using UUID primary keys and explicit
relationships. Authentication secrets are stored in a separate
`auth_credentials` table to keep the domain `users` table clean, and the
Shopify admin token lives (encrypted) in `user_credentials`.

Every write-path table carries a `user_id` foreign key. Visibility is scoped
by filtering on it in the service layer.
"""

import uuid
from datetime import datetime, date
import enum

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Date,
    Enum,
    Integer,
    ForeignKey,
    Numeric,
    JSON,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class PurchaseTypeEnum(str, enum.Enum):
    purchase = "purchase"
    return_ = "return"


class SyncStatusEnum(str, enum.Enum):
    running = "running"
    succeeded = "succeeded"
    failed = "failed"


# Core models ----------------------------------------------------

class User(Base):
    """User represents the operator of a single Shopify storefront.

    All catalogue, ledger and analytics rows hang off a user via `user_id`.
    """
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    credential = relationship("AuthCredential", back_populates="user", uselist=False, cascade="all, delete-orphan")
    shopify_credentials = relationship("UserCredential", back_populates="user", uselist=False, cascade="all, delete-orphan")

    def __str__(self):
        return self.email


class AuthCredential(Base):
    """Password hash for a user, kept out of the `users` table."""
    __tablename__ = "auth_credentials"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="credential")


class UserCredential(Base):
    """Shopify store credentials for a user.

    The admin token is stored encrypted (see app.security.encrypt_secret)
    and only decrypted right before a sync call.
    """
    __tablename__ = "user_credentials"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    shopify_store_url = Column(String, nullable=False)
    shopify_admin_token_enc = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="shopify_credentials")

    def __str__(self):
        return self.shopify_store_url


# Catalogue ------------------------------------------------------

class Product(Base):
    """One synced Shopify variant with a SKU.

    Wiped and recreated for the owner on every product sync; read-only
    otherwise. `shop_name` is the resolved display name of the product's
    `custom.shop_name` metafield.
    """
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("user_id", "sku", "shopify_product_id", name="uq_products_user_sku_product"),
        Index("ix_products_user_shop_name", "user_id", "shop_name"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    shopify_product_id = Column(String, nullable=False)  # gid://shopify/Product/...
    sku = Column(String, nullable=False)
    shop_name = Column(String, nullable=False)
    title = Column(String, nullable=False)
    variant_id = Column(String, nullable=True)
    image_url = Column(Text, nullable=True)
    product_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __str__(self):
        return f"{self.sku} ({self.shop_name})"


class ProductSyncState(Base):
    """Per-owner sync bookkeeping.

    `generation` is bumped at the start of every sync. A sync only swaps
    the product table if the generation it started with is still current.
    """
    __tablename__ = "product_sync_states"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    generation = Column(Integer, nullable=False, default=0)
    status = Column(Enum(SyncStatusEnum, values_callable=lambda obj: [e.value for e in obj]), nullable=True)
    last_count = Column(Integer, nullable=True)
    last_error = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)


# Ledger ---------------------------------------------------------

class PurchaseBatch(Base):
    """One upload action (spreadsheet files or a manual save)."""
    __tablename__ = "purchase_batches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    upload_date = Column(Date, nullable=False, default=date.today)
    file_names = Column(JSON, nullable=False, default=list)
    total_items = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    purchases = relationship(
        "Purchase",
        back_populates="batch",
        cascade="all, delete-orphan",
    )

    def __str__(self):
        return f"Batch {self.upload_date} ({self.total_items} items)"


class Purchase(Base):
    """A line item of a purchase batch.

    Quantity, type and notes stay editable after upload.
    """
    __tablename__ = "purchases"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id = Column(UUID(as_uuid=True), ForeignKey("purchase_batches.id", ondelete="CASCADE"), nullable=True, index=True)
    date = Column(Date, nullable=False, default=date.today)
    shop_name = Column(String, nullable=False)
    sku = Column(String, nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    type = Column(String, nullable=False, default=PurchaseTypeEnum.purchase.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    batch = relationship("PurchaseBatch", back_populates="purchases")


class Return(Base):
    """A customer return recorded by hand."""
    __tablename__ = "returns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    return_date = Column(Date, nullable=False)
    shop_name = Column(String, nullable=False)
    sku = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# Analytics ------------------------------------------------------

class Order(Base):
    """Flat, denormalized order line from a logistics export.

    Inserted by the order import and only ever aggregated afterwards.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_user_order_date", "user_id", "order_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    order_number = Column(String, nullable=False)
    sub_order_number = Column(String, nullable=True)
    order_date = Column(DateTime, nullable=False)
    channel = Column(String, nullable=False, default="Shopify")

    product_name = Column(String, nullable=False, default="")
    product_sku = Column(String, nullable=False, default="")
    product_quantity = Column(Integer, nullable=False, default=1)
    product_price = Column(Numeric(12, 2), nullable=False, default=0)
    product_discount = Column(Numeric(12, 2), nullable=True)

    payment_method = Column(String, nullable=False, default="COD")
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_mobile = Column(String, nullable=True)
    customer_city = Column(String, nullable=True)
    customer_state = Column(String, nullable=True)
    customer_pincode = Column(String, nullable=True)

    order_total = Column(Numeric(12, 2), nullable=False, default=0)
    order_status = Column(String, nullable=False, default="Pending")

    courier_company = Column(String, nullable=True)
    awb_no = Column(String, nullable=True)
    awb_assigned_date = Column(DateTime, nullable=True)
    warehouse_id = Column(String, nullable=True)
    warehouse_name = Column(String, nullable=True)
    order_pickup_date = Column(DateTime, nullable=True)
    order_delivered_date = Column(DateTime, nullable=True)
    zone = Column(String, nullable=True)

    billed_weight = Column(Numeric(10, 3), nullable=True)
    fwd_charges = Column(Numeric(12, 2), nullable=True)
    rto_charges = Column(Numeric(12, 2), nullable=True)
    cod_charges = Column(Numeric(12, 2), nullable=True)
    gst_charges = Column(Numeric(12, 2), nullable=True)
    total_freight_charge = Column(Numeric(12, 2), nullable=True)

    store_name = Column(String, nullable=True)
    store_order_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __str__(self):
        return self.order_number
