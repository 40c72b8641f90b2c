"""
Core Ledger Models for Pocket Ledger

A LedgerEntry is the only thing that is ever persisted. Everything the
model produces is transient until the executor turns it into one of these.

DESIGN DECISION: Entries are frozen. The total is derived, never supplied
independently, and the only way to change an entry is `updated()`, which
recomputes the total and re-validates.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


DEFAULT_CATEGORY = "General"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerEntry(BaseModel):
    """
    One recorded expense.

    The identity is assigned by the store; an entry that has not been
    stored yet has `id=None`.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: Optional[int] = Field(
        default=None,
        description="Store-assigned identity"
    )
    item_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What was bought (e.g. 'mango')"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        min_length=1,
        max_length=100,
    )
    quantity: int = Field(
        default=1,
        ge=1,
        description="Number of units"
    )
    price_per_unit: Decimal = Field(
        ...,
        ge=0,
        description="Price of a single unit at the time of the transaction"
    )
    total_price: Decimal = Field(
        ...,
        description="quantity * price_per_unit"
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        description="When the entry was created (UTC)"
    )

    @model_validator(mode='after')
    def validate_total(self) -> 'LedgerEntry':
        """The total must always equal quantity times unit price."""
        if self.total_price != self.quantity * self.price_per_unit:
            raise ValueError(
                f"Total price {self.total_price} does not match "
                f"{self.quantity} x {self.price_per_unit}"
            )
        return self

    @classmethod
    def create(
        cls,
        item_name: str,
        price_per_unit: Decimal,
        quantity: int = 1,
        category: str = DEFAULT_CATEGORY,
    ) -> 'LedgerEntry':
        """Build a new, unsaved entry with the total computed."""
        return cls(
            item_name=item_name,
            category=category,
            quantity=quantity,
            price_per_unit=price_per_unit,
            total_price=quantity * Decimal(price_per_unit),
        )

    def updated(self, **changes) -> 'LedgerEntry':
        """
        Return a copy with `changes` applied and the total recomputed.

        Identity and creation time are preserved.
        """
        data = self.model_dump()
        data.update(changes)
        data["total_price"] = data["quantity"] * Decimal(data["price_per_unit"])
        return LedgerEntry(**data)

    def summary(self) -> str:
        """Short form used in batch messages, e.g. 'mango (4 x 20)'."""
        return f"{self.item_name} ({self.quantity} x {self.price_per_unit})"
