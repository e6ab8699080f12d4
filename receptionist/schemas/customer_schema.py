"""Customer data models."""

from pydantic import BaseModel
from typing import Optional


class Customer(BaseModel):
    """Customer record keyed by mobile number."""
    id: str
    first_name: str
    last_name: Optional[str] = None
    phone_number: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() if self.last_name else self.first_name


class CustomerLookup(BaseModel):
    """Result of create-or-find: the customer and whether they already existed."""
    customer: Customer
    is_existing: bool = False
