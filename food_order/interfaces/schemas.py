"""
Request and response bodies for the HTTP façade.

Response models read straight from ORM rows (from_attributes), so services
can hand back SQLAlchemy objects and the routers never build dicts by hand.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from food_order.domain.enums import (
    AddressType,
    MenuItemStatus,
    OrderStatus,
    PaymentMethodType,
    PaymentStatus,
)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


# --- CART ---

class AddCartItemIn(BaseModel):
    menu_item_id: int
    quantity: int = Field(1, ge=1)
    special_instructions: Optional[str] = None


class UpdateCartItemIn(BaseModel):
    quantity: int = Field(..., ge=1)


class MenuItemOut(ORMModel):
    id: int
    restaurant_id: int
    name: str
    price: float
    discount_price: Optional[float] = None
    current_price: float
    status: MenuItemStatus


class CartLineOut(ORMModel):
    id: int
    menu_item_id: int
    quantity: int
    special_instructions: Optional[str] = None
    line_total: float
    menu_item: MenuItemOut


class CartSummaryOut(BaseModel):
    item_count: int
    total_quantity: int
    subtotal: float
    delivery_fee: float
    total: float


class CartOut(ORMModel):
    items: List[CartLineOut]
    summary: CartSummaryOut


# --- ORDERS ---

class CreateOrderIn(BaseModel):
    address_id: int
    payment_method: PaymentMethodType
    special_instructions: Optional[str] = None


class UpdateStatusIn(BaseModel):
    status: OrderStatus
    message: Optional[str] = None


class CancelOrderIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class OrderItemOut(ORMModel):
    id: int
    menu_item_id: int
    quantity: int
    price: float
    special_instructions: Optional[str] = None


class TrackingEventOut(ORMModel):
    id: int
    status: OrderStatus
    message: str
    created_at: datetime


class OrderOut(ORMModel):
    id: int
    order_number: str
    user_id: str
    restaurant_id: int
    address_id: Optional[int] = None
    driver_id: Optional[str] = None
    subtotal: float
    delivery_fee: float
    tax: float
    discount: float
    total: float
    status: OrderStatus
    payment_method: PaymentMethodType
    payment_status: PaymentStatus
    special_instructions: Optional[str] = None
    cancel_reason: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    preparing_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemOut] = []


class OrderDetailOut(OrderOut):
    tracking: List[TrackingEventOut] = []


class OrderPageOut(ORMModel):
    data: List[OrderOut]
    pagination: Pagination


class OrderRefOut(BaseModel):
    id: int
    order_number: str
    status: OrderStatus


class TrackingOut(ORMModel):
    order: OrderRefOut
    tracking: List[TrackingEventOut]


# --- ADDRESSES ---

class AddressIn(BaseModel):
    type: AddressType = AddressType.HOME
    label: Optional[str] = None
    full_address: str = Field(..., min_length=1)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_default: bool = False


class AddressUpdateIn(BaseModel):
    type: Optional[AddressType] = None
    label: Optional[str] = None
    full_address: Optional[str] = Field(None, min_length=1)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_default: Optional[bool] = None


class AddressOut(ORMModel):
    id: int
    type: AddressType
    label: Optional[str] = None
    full_address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_default: bool


# --- PAYMENT METHODS ---

class PaymentMethodIn(BaseModel):
    type: PaymentMethodType
    card_number: Optional[str] = Field(None, max_length=32)
    card_holder: Optional[str] = None
    expiry_date: Optional[str] = Field(None, max_length=8)
    phone_number: Optional[str] = Field(None, max_length=32)
    is_default: bool = False


class PaymentMethodUpdateIn(BaseModel):
    type: Optional[PaymentMethodType] = None
    card_number: Optional[str] = Field(None, max_length=32)
    card_holder: Optional[str] = None
    expiry_date: Optional[str] = Field(None, max_length=8)
    phone_number: Optional[str] = Field(None, max_length=32)
    is_default: Optional[bool] = None


class PaymentMethodOut(ORMModel):
    id: int
    type: PaymentMethodType
    card_number: Optional[str] = None
    card_holder: Optional[str] = None
    expiry_date: Optional[str] = None
    phone_number: Optional[str] = None
    is_default: bool

    @field_serializer("card_number")
    def mask_card_number(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return value
        return f"**** {value[-4:]}"


# --- REVIEWS ---

class ReviewIn(BaseModel):
    order_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    images: List[str] = []


class ReviewUpdateIn(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None
    images: Optional[List[str]] = None


class ReviewOut(ORMModel):
    id: int
    user_id: str
    restaurant_id: int
    order_id: int
    rating: int
    comment: Optional[str] = None
    images: List[str] = []
    created_at: datetime


class ReviewStatistics(BaseModel):
    average_rating: float
    total_reviews: int
    rating_distribution: Dict[str, int]


class ReviewPageOut(ORMModel):
    data: List[ReviewOut]
    pagination: Pagination
    statistics: Optional[ReviewStatistics] = None
