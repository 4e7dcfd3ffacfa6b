"""Pydantic schemas for request/response payloads."""

import datetime as dt
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, EmailStr, constr, Field

from .models import PurchaseTypeEnum, SyncStatusEnum


# Auth Schemas
class UserCreate(BaseModel):
    """Payload for user registration."""

    email: EmailStr = Field(description="User email address")
    name: str = Field(description="User full name")
    password: constr(min_length=8) = Field(description="Password (minimum 8 characters)")

    model_config = {
        "json_schema_extra": {
            "example": {
                "email": "jane.doe@company.com",
                "name": "Jane Doe",
                "password": "securePassword123"
            }
        }
    }


class UserLogin(BaseModel):
    """Payload for user login."""

    email: EmailStr = Field(description="User email address")
    password: str = Field(description="User password")


class UserOut(BaseModel):
    """Public representation of a user."""

    id: UUID = Field(description="Unique user identifier")
    email: EmailStr = Field(description="User email address")
    name: str = Field(description="User display name")

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    """Response from successful login."""

    user: UserOut = Field(description="Authenticated user information")


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str = Field(description="Error message")

    model_config = {
        "json_schema_extra": {
            "example": {
                "detail": "Invalid credentials"
            }
        }
    }


class SuccessResponse(BaseModel):
    """Standard success response."""

    status: str = Field(default="ok", description="Status message")
    detail: str | None = Field(default=None, description="Success message")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status")


# Credential Schemas
class CredentialsIn(BaseModel):
    """Shopify store URL and Admin API token to store for the user."""

    shopify_store_url: str = Field(description="Store domain, e.g. your-store.myshopify.com")
    shopify_admin_token: str = Field(description="Shopify Admin API access token")


class CredentialsOut(BaseModel):
    """Stored credentials; the token itself is never returned."""

    shopify_store_url: Optional[str] = None
    has_token: bool = False
    updated_at: Optional[datetime] = None


# Shopify Sync Schemas
class ShopifySyncRequest(BaseModel):
    """Optional explicit credentials for a sync call.

    Missing values fall back to the user's stored credentials.
    """

    shopify_store_url: Optional[str] = Field(default=None, alias="shopifyStoreUrl")
    shopify_token: Optional[str] = Field(default=None, alias="shopifyToken")

    model_config = ConfigDict(populate_by_name=True)


class ProductSyncResponse(BaseModel):
    """Response from a product sync."""

    success: bool = Field(description="Whether the sync completed")
    count: int = Field(default=0, description="Variant records stored")
    generation: Optional[int] = Field(default=None, description="Sync generation that wrote the rows")
    resolved_from_nodes: int = Field(default=0, description="Shop names resolved by metaobject lookup")
    resolved_from_history: int = Field(default=0, description="Shop names taken from purchase history")
    unresolved: int = Field(default=0, description="Records still named by a raw GID")
    duration_seconds: float = Field(default=0.0, description="Sync duration")

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "count": 100,
                "generation": 3,
                "resolved_from_nodes": 4,
                "resolved_from_history": 0,
                "unresolved": 0,
                "duration_seconds": 2.41
            }
        }
    }


class ShopMetaobjectField(BaseModel):
    key: str
    value: Optional[str] = None


class ShopMetaobject(BaseModel):
    """A `shop_name` metaobject as returned by Shopify."""

    id: str
    displayName: Optional[str] = None
    handle: Optional[str] = None
    type: Optional[str] = None
    fields: List[ShopMetaobjectField] = Field(default_factory=list)


class ShopsResponse(BaseModel):
    success: bool = True
    shops: List[ShopMetaobject] = Field(default_factory=list)


class SyncStatusResponse(BaseModel):
    """Latest product sync state for the user."""

    status: Optional[SyncStatusEnum] = Field(default=None, description="None when never synced")
    generation: int = 0
    last_count: Optional[int] = None
    last_error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# Product Schemas
class ProductOut(BaseModel):
    id: UUID
    shopify_product_id: str
    variant_id: Optional[str] = None
    sku: str
    shop_name: str
    title: str
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ShopNamesResponse(BaseModel):
    shops: List[str] = Field(default_factory=list)


# Purchase Ledger Schemas
class PurchaseEntryIn(BaseModel):
    """An uploaded entry after the user has reviewed it."""

    sku: str
    shop_name: str
    title: str = ""
    quantity: int = Field(ge=0, description="Expected quantity")
    received_quantity: int = Field(default=0, ge=0, description="Quantity actually received")
    is_done: bool = False
    is_partial: bool = False


class PurchaseEntryOut(BaseModel):
    sku: str
    shop_name: str
    title: str
    quantity: int


class PurchaseOut(BaseModel):
    id: UUID
    batch_id: UUID
    date: dt.date
    shop_name: str
    sku: str
    quantity: int
    type: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BatchOut(BaseModel):
    id: UUID
    upload_date: date
    file_names: List[str] = Field(default_factory=list)
    total_items: int
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BatchDetailOut(BatchOut):
    purchases: List[PurchaseOut] = Field(default_factory=list)


class PurchaseUploadResponse(BaseModel):
    """Result of a spreadsheet upload."""

    batch: BatchOut
    entries: List[PurchaseEntryOut] = Field(default_factory=list)
    matched: int = Field(description="Entries matched to a synced product")
    unmatched: int = Field(description="Entries under the Unknown shop")


class ManualEntriesRequest(BaseModel):
    entries: List[PurchaseEntryIn]


class PurchaseUpdate(BaseModel):
    id: UUID
    quantity: int = Field(ge=0)
    type: PurchaseTypeEnum
    notes: Optional[str] = None


class PurchaseBulkUpdate(BaseModel):
    purchases: List[PurchaseUpdate]


# Return Schemas
class ReturnCreate(BaseModel):
    return_date: Optional[date] = Field(default=None, description="Defaults to today")
    shop_name: str
    sku: str
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = None


class ReturnOut(BaseModel):
    id: UUID
    return_date: date
    shop_name: str
    sku: str
    quantity: int
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# Order Analytics Schemas
class OrderUploadResponse(BaseModel):
    success: bool = True
    count: int = Field(description="Orders inserted")


class OrderOut(BaseModel):
    id: UUID
    order_number: str
    sub_order_number: Optional[str] = None
    order_date: datetime
    channel: str
    product_name: str
    product_sku: str
    product_quantity: int
    product_price: float
    payment_method: str
    customer_name: Optional[str] = None
    customer_city: Optional[str] = None
    customer_state: Optional[str] = None
    order_total: float
    order_status: str
    courier_company: Optional[str] = None
    awb_no: Optional[str] = None
    order_delivered_date: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderFilterOptions(BaseModel):
    states: List[str] = Field(default_factory=list)
    couriers: List[str] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)


class DailyOrders(BaseModel):
    date: dt.date
    orders: int
    revenue: float


class DeliveryMetrics(BaseModel):
    statuses: List[str]
    total_attempted: int
    delivered: int
    delivery_percentage: float


class NamedCount(BaseModel):
    name: str
    value: int


class CourierPerformance(BaseModel):
    courier: str
    total: int
    delivered: int
    delivery_rate: float


class OrderAnalytics(BaseModel):
    """Dashboard metrics over the filtered orders."""

    total_orders: int
    total_revenue: float
    average_order_value: float
    delivered_percentage: float
    orders_over_time: List[DailyOrders] = Field(default_factory=list)
    delivery: DeliveryMetrics
    status_breakdown: List[NamedCount] = Field(default_factory=list)
    top_states: List[NamedCount] = Field(default_factory=list)
    courier_performance: List[CourierPerformance] = Field(default_factory=list)
