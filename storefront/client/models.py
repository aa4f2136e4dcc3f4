from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from storefront.domain.models import BatchEntryResult


class CartLine(BaseModel):
    """One product in the client mirror; price is unknown until the server confirms it"""
    product_id: str
    quantity: int
    unit_price: Optional[Decimal] = None

    @property
    def line_total(self) -> Decimal:
        if self.unit_price is None:
            return Decimal("0")
        return self.unit_price * self.quantity


class CartSnapshot(BaseModel):
    items: List[CartLine] = Field(default_factory=list)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.items)

    @property
    def total_price(self) -> Decimal:
        return sum((line.line_total for line in self.items), Decimal("0"))


class FlushResult(BaseModel):
    results: List[BatchEntryResult]
    cart: CartSnapshot

    @property
    def failed(self) -> List[BatchEntryResult]:
        return [r for r in self.results if r.status == "error"]
