"""
Database Schemas for the Velora Wear store

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr

Role = Literal["customer", "admin"]
Category = Literal["Casual Wear", "Streetwear", "Essentials", "Limited Edition"]
Gender = Literal["Men", "Women", "Unisex"]
Size = Literal["XS", "S", "M", "L", "XL", "XXL"]
OrderStatus = Literal["Processing", "Shipped", "Delivered", "Cancelled"]
PaymentStatus = Literal["Pending", "Paid", "Failed"]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    role: Role = "customer"
    phone: Optional[str] = None
    address: Optional[Address] = None


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0)
    category: Category
    gender: Gender
    sizes: List[Size] = []
    colors: List[str] = []
    images: List[str] = []
    stock: int = Field(0, ge=0)
    is_featured: bool = False
    is_new_arrival: bool = False
    rating: float = Field(0, ge=0, le=5)
    num_reviews: int = Field(0, ge=0)


class OrderItem(BaseModel):
    product: str = Field(..., description="Referenced Product id, snapshot only")
    name: str
    price: float = Field(..., ge=0)
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None


class ShippingAddress(BaseModel):
    street: str
    city: str
    state: str
    zip_code: str
    country: str


class Order(BaseModel):
    user: str
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: str
    items_price: float = Field(0, ge=0)
    shipping_price: float = Field(0, ge=0)
    tax_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)
    order_status: OrderStatus = "Processing"
    payment_status: PaymentStatus = "Pending"
    delivered_at: Optional[datetime] = None


class Review(BaseModel):
    user: Optional[str] = None
    name: str
    image: Optional[str] = None
    rating: int = Field(..., ge=0, le=5)
    comment: str
