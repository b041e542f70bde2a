"""
Database Schemas for the Store Admin API

Each Pydantic model represents a document in MongoDB. Collection names are the
lowercase singular of the resource: account, product, customer, order, store.
Request bodies that only carry a subset of fields live next to the document
they update.
"""
import re
from datetime import datetime, timezone
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from database import INT64_MAX, INT64_MIN

Role = Literal["admin", "superadmin"]
OrderStatus = Literal["pending", "processing", "canceled", "delivered", "shipped"]
PaymentStatus = Literal["paid", "unpaid", "pending"]
CustomerTag = Literal["premium", "new customer", "inactive", "frequent buyer"]
Currency = Literal["USD", "EUR", "GBP", "JPY", "AUD"]

ORDER_STATUSES = ("pending", "processing", "canceled", "delivered", "shipped")
PRODUCT_CATEGORIES = ("Bags", "Frames", "Accessories", "Tablecloth", "Clothes", "Stocks", "Gloves")
DEFAULT_AVATAR = "https://i.ibb.co/TVstPXp/default-Image.jpg"
MAX_PRODUCT_IMAGES = 4

CUSTOMER_NUMBER_PATTERN = r"^01[0125][0-9]{8}$"
STORE_URL_PATTERN = r"^https?://.+"

_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "lowercase"),
    (re.compile(r"[A-Z]"), "uppercase"),
    (re.compile(r"\d"), "number"),
    (re.compile(r"[@$!%*?&]"), "special character"),
)


def check_password_strength(value: str) -> str:
    for pattern, name in _PASSWORD_RULES:
        if not pattern.search(value):
            raise ValueError(f"Password must include at least one {name}")
    return value


def check_category(value: str) -> str:
    if value in PRODUCT_CATEGORIES or ObjectId.is_valid(value):
        return value
    raise ValueError(f"{value} is not a valid category")


# Accounts

class Account(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., description="bcrypt hash, never the plaintext")
    role: Role = "admin"
    avatar: str = DEFAULT_AVATAR
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=20)
    confirm_password: str
    role: Role = "admin"

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Confirm password does not match password")
        return self


class LoginRequest(BaseModel):
    email: str
    password: str


class AccountUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=30)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8, max_length=20)
    role: Optional[Role] = None
    avatar: Optional[str] = None

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return check_password_strength(v) if v is not None else v


# Products

class Dimensions(BaseModel):
    length: float = Field(..., ge=0)
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)


class ShippingInfo(BaseModel):
    shipping_cost: float = Field(..., ge=0)
    estimated_delivery: float = Field(..., ge=0)


class Product(BaseModel):
    product_id: Optional[int] = None
    name: str = Field(..., min_length=3, max_length=100)
    price: float = Field(..., ge=0, le=1_000_000)
    rating: float = Field(0, ge=0, le=5)
    product_images: List[str] = Field(default_factory=list, max_length=MAX_PRODUCT_IMAGES)
    discount_amount: float = Field(0, ge=0)
    discount_percentage: float = Field(0, ge=0, le=100)
    product_discount: float = Field(0, ge=0, le=90)
    category: str
    description: str = Field(..., min_length=1, max_length=5000)
    views: int = Field(0, ge=0)
    quantity: int = Field(..., ge=0)
    in_stock: int = 1
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    shipping_info: Optional[ShippingInfo] = None
    sold_by: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    @field_validator("category")
    @classmethod
    def valid_category(cls, v):
        return check_category(v)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    price: Optional[float] = Field(None, ge=0, le=1_000_000)
    rating: Optional[float] = Field(None, ge=0, le=5)
    discount_amount: Optional[float] = Field(None, ge=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    product_discount: Optional[float] = Field(None, ge=0, le=90)
    category: Optional[str] = None
    description: Optional[str] = Field(None, min_length=1, max_length=5000)
    quantity: Optional[int] = Field(None, ge=0)
    in_stock: Optional[int] = None
    weight: Optional[float] = Field(None, ge=0)

    @field_validator("category")
    @classmethod
    def valid_category(cls, v):
        return check_category(v) if v is not None else v


def price_after_discount(doc: dict) -> float:
    price = float(doc.get("price") or 0)
    amount = float(doc.get("discount_amount") or 0)
    percentage = float(doc.get("discount_percentage") or 0)
    return max(price - amount - price * (percentage / 100), 0)


# Customers

class Customer(BaseModel):
    customer_id: Optional[int] = Field(None, ge=INT64_MIN, le=INT64_MAX)
    customer_image: Optional[str] = None
    customer_name: str = Field(..., min_length=1)
    customer_email: EmailStr
    customer_number: str = Field(..., pattern=CUSTOMER_NUMBER_PATTERN, description="Egyptian mobile number")
    number_of_orders: int = Field(0, ge=0)
    total: float = Field(0, ge=0)
    tags: List[CustomerTag] = Field(default_factory=list)


class CustomerUpdate(BaseModel):
    customer_id: Optional[int] = Field(None, ge=INT64_MIN, le=INT64_MAX)
    customer_image: Optional[str] = None
    customer_name: Optional[str] = Field(None, min_length=1)
    customer_email: Optional[EmailStr] = None
    customer_number: Optional[str] = Field(None, pattern=CUSTOMER_NUMBER_PATTERN)
    number_of_orders: Optional[int] = Field(None, ge=0)
    total: Optional[float] = Field(None, ge=0)
    tags: Optional[List[CustomerTag]] = None


# Orders

class OrderLine(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1, description="Quantity must be at least 1")


class ShippingAddress(BaseModel):
    street: str
    city: str
    postal_code: int


class PaymentInfo(BaseModel):
    payment_method: str
    transaction_id: int
    billing_postal_code: int
    payment_status: PaymentStatus = "paid"


class OrderCreate(BaseModel):
    order_id: int = Field(..., ge=INT64_MIN, le=INT64_MAX)
    order_date: datetime
    status: OrderStatus = "pending"
    customer: str
    shipping_address: ShippingAddress
    payment_info: PaymentInfo
    products: List[OrderLine] = Field(..., min_length=1)

    @field_validator("order_date")
    @classmethod
    def utc_order_date(cls, v: datetime) -> datetime:
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v.astimezone(timezone.utc)


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None


class OrderProductsUpdate(BaseModel):
    products: List[OrderLine] = Field(..., min_length=1)


# Store configuration

class ShippingMethod(BaseModel):
    method_name: str = Field(..., min_length=1)
    cost: float = Field(..., ge=0)
    estimated_delivery_min: float = Field(..., ge=0)
    estimated_delivery_max: float = Field(..., le=600, description="Hours")
    active: bool = True

    @model_validator(mode="after")
    def delivery_window(self):
        if self.estimated_delivery_min > self.estimated_delivery_max:
            raise ValueError("Minimum estimated delivery must be less than or equal to maximum.")
        return self


class ShippingMethodPatch(BaseModel):
    id: str
    method_name: Optional[str] = Field(None, min_length=1)
    cost: Optional[float] = Field(None, ge=0)
    estimated_delivery_min: Optional[float] = Field(None, ge=0)
    estimated_delivery_max: Optional[float] = Field(None, le=600)
    active: Optional[bool] = None


class StoreConfig(BaseModel):
    store_name: str = Field(..., min_length=2, max_length=50)
    store_url: str = Field(..., max_length=200, pattern=STORE_URL_PATTERN)
    currency: Currency = "USD"
    default_language: str = "English"
    shipping_methods: List[ShippingMethod] = Field(default_factory=list)


class StoreUpdate(BaseModel):
    store_name: Optional[str] = Field(None, min_length=2, max_length=50)
    store_url: Optional[str] = Field(None, max_length=200, pattern=STORE_URL_PATTERN)
    currency: Optional[Currency] = None
    default_language: Optional[str] = None
    shipping_methods: Optional[List[ShippingMethodPatch]] = None
