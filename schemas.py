"""
Database Schemas for the shop backend

Each document model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from enum import Enum
from typing import Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class PaymentMethod(str, Enum):
    COD = "COD"
    ONLINE = "ONLINE"
    UNKNOWN = "UNKNOWN"


class OrderStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class Location(BaseModel):
    address: Optional[str] = None
    coordinates: Optional[Dict[str, float]] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None


# ----------------------- Documents -----------------------
class CartItem(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId
    quantity: int = Field(1, ge=1)


class Address(BaseModel):
    full_name: str
    mobile: str
    street: str
    city: str
    state: str
    zip: str
    country: str
    is_default: bool = False
    location: Optional[Location] = None


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    contact: Optional[str] = None
    password_hash: str = Field(..., description="Hashed password")
    location: Optional[Location] = None
    is_admin: bool = False
    is_verified: bool = False
    profilepic: Optional[str] = None
    addresses: List[dict] = []
    cart: List[dict] = []


class Category(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None
    image_url: str = ""


class Specifications(BaseModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    material: Optional[str] = None
    warranty: Optional[str] = None
    features: List[str] = []
    color: Optional[str] = None
    size: Optional[str] = None


class Review(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: ObjectId
    user_name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str


class Product(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    category_id: ObjectId
    image_url: Optional[str] = None
    specifications: Specifications = Field(default_factory=Specifications)
    stock: int = Field(0, ge=0)
    is_available: bool = True
    reviews: List[dict] = []
    average_rating: float = 0
    total_reviews: int = 0
    slug: str
    tags: List[str] = []
    sku: Optional[str] = None


class OrderItem(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId
    name: str
    price: float
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True)

    user_id: ObjectId
    legacy_order_id: str
    items: List[OrderItem]
    subtotal_amount: float = Field(..., ge=0)
    delivery_fee: float = Field(0, ge=0)
    total_amount: float = Field(..., ge=0)
    currency: str = "INR"
    payment_method: PaymentMethod = PaymentMethod.UNKNOWN
    status: OrderStatus = OrderStatus.PENDING
    shipping_address: Optional[dict] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None


# ----------------------- Request bodies -----------------------
class SignupBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    contact: str = Field(..., min_length=10)
    password: str = Field(..., min_length=6)
    location: Optional[Location] = None


class LoginBody(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdateBody(BaseModel):
    name: Optional[str] = None
    contact: Optional[str] = Field(None, min_length=10)
    location: Optional[Location] = None


class AddressBody(Address):
    pass


class AddToCartBody(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class UpdateQuantityBody(BaseModel):
    quantity: int


class CreateOrderBody(BaseModel):
    total: float
    address_id: Optional[str] = None
    payment_method: Optional[str] = None


class OnlinePaymentBody(BaseModel):
    method: Optional[str] = None


class VerifyPaymentBody(BaseModel):
    order_id: Optional[str] = None
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class OrderStatusBody(BaseModel):
    status: OrderStatus


class CategoryCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    image_url: str = ""


class CategoryUpdateBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class ProductCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    category: str = Field(..., description="Category id or slug")
    image_url: Optional[str] = None
    specifications: Specifications = Field(default_factory=Specifications)
    stock: int = Field(0, ge=0)
    is_available: bool = True
    tags: List[str] = []
    sku: Optional[str] = None


class ProductUpdateBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None
    specifications: Optional[Specifications] = None
    stock: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None
    tags: Optional[List[str]] = None
    sku: Optional[str] = None


class ProductImageBody(BaseModel):
    image_url: str = Field(..., min_length=1)


class ReviewBody(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)
