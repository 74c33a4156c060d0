"""
Schemas for customer and order ingestion (camelCase on the wire).
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.repositories.order import OrderStatus


class CustomerInput(BaseModel):
    """One customer record to create or update (matched by email)."""

    model_config = ConfigDict(populate_by_name=True)

    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    total_spends: Optional[float] = Field(default=None, alias="totalSpends", ge=0)
    visits: Optional[int] = Field(default=None, ge=0)
    last_visit: Optional[datetime] = Field(default=None, alias="lastVisit")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError("email is invalid")
        return value

    @field_validator("name", "phone")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value else value


class ProductItem(BaseModel):
    name: str
    quantity: int = Field(default=1, ge=0)
    price: float = Field(default=0, ge=0)


class OrderInput(BaseModel):
    """One order; the customer must already exist."""

    model_config = ConfigDict(populate_by_name=True)

    customer_email: str = Field(alias="customerEmail")
    order_amount: float = Field(alias="orderAmount", ge=0)
    order_date: Optional[datetime] = Field(default=None, alias="orderDate")
    status: OrderStatus = OrderStatus.COMPLETED
    products: List[ProductItem] = Field(default_factory=list)

    @field_validator("customer_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()
