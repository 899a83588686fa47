"""
Core Shop Models for Shop Ledger

Products are purchased item lines entered by the shopkeeper. Bills are the
aggregates the migration builds out of them. Both are read from and written
to the document store as plain dictionaries; these models give them a strict
shape on the way in and a JSON-safe shape on the way out.

DESIGN DECISION: Money and quantities are Decimal, never float.
Bill totals are compared against sums of product amounts, and float drift
would make the integrity checks report phantom mismatches.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


UNNAMED_PRODUCT = "Unnamed Product"


# =============================================================================
# ENUMS
# =============================================================================

class Collection(str, Enum):
    """Logical collections held by the document store."""
    PRODUCTS = "products"
    BILLS = "bills"


class BillStatus(str, Enum):
    """Lifecycle status of a bill."""
    ACTIVE = "active"
    PAID = "paid"
    ARCHIVED = "archived"
    RETURNED = "returned"


def _blank_to_none(v: Any) -> Any:
    # Documents coming back from spreadsheets carry "" for unset cells
    if isinstance(v, str) and not v.strip():
        return None
    return v


# =============================================================================
# PRODUCT
# =============================================================================

class Product(BaseModel):
    """
    A purchased item line.

    Before migration the only grouping information is the free-text
    bill_number. After migration every product carries a bill_id that
    resolves to a Bill.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: str = Field(
        ...,
        min_length=1,
        description="Store-assigned identifier"
    )
    product_name: Optional[str] = None
    category: Optional[str] = None
    vendor: Optional[str] = None
    purchase_date: Optional[date] = None

    # Grouping key and the reference the migration assigns
    bill_number: Optional[str] = Field(
        default=None,
        description="Original free-text bill number"
    )
    bill_id: Optional[str] = Field(
        default=None,
        description="Reference to a Bill, set by the migration"
    )

    # Quantities and prices
    total_quantity: Optional[Decimal] = Field(default=None, ge=0)
    quantity: Optional[Decimal] = Field(default=None, ge=0)
    price_per_piece: Optional[Decimal] = Field(default=None, ge=0)
    mrp: Optional[Decimal] = Field(default=None, ge=0)
    profit_per_piece: Decimal = Field(
        default=Decimal("0"),
        description="Profit per piece, may be negative"
    )
    total_amount: Decimal = Field(default=Decimal("0"))

    @field_validator(
        'product_name', 'category', 'vendor', 'purchase_date',
        'bill_number', 'bill_id',
        'total_quantity', 'quantity', 'price_per_piece', 'mrp',
        mode='before',
    )
    @classmethod
    def blank_optional_fields(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator('profit_per_piece', 'total_amount', mode='before')
    @classmethod
    def blank_amounts_to_zero(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return Decimal("0") if v is None else v

    @property
    def display_name(self) -> str:
        return self.product_name or UNNAMED_PRODUCT

    @property
    def effective_quantity(self) -> Decimal:
        """total_quantity when present, else quantity, else zero."""
        if self.total_quantity is not None:
            return self.total_quantity
        if self.quantity is not None:
            return self.quantity
        return Decimal("0")


# =============================================================================
# BILL
# =============================================================================

class BillTotals(BaseModel):
    """
    Aggregate figures of a bill, always derived from its products.

    Synthesis, validation and remediation all go through
    calculate_totals() so the three can never disagree on the formula.
    """

    total_quantity: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    total_profit: Decimal = Decimal("0")
    product_count: int = Field(default=0, ge=0)


def calculate_totals(products: list[Product]) -> BillTotals:
    """Sum quantity, amount and profit (profit per piece x quantity) over products."""
    totals = BillTotals()
    for product in products:
        quantity = product.effective_quantity
        totals.total_quantity += quantity
        totals.total_amount += product.total_amount
        totals.total_profit += product.profit_per_piece * quantity
        totals.product_count += 1
    return totals


class Bill(BaseModel):
    """
    An aggregate of products sharing a bill number.

    Created only by the migration (from a product group or for an orphan)
    and deleted only by rollback or an explicit user delete.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: Optional[str] = Field(
        default=None,
        description="Store-assigned identifier (None until persisted)"
    )
    bill_number: str = Field(
        ...,
        min_length=1,
        description="Bill number, intended unique"
    )
    vendor: str = Field(..., min_length=1)
    bill_date: date
    status: BillStatus = Field(default=BillStatus.ACTIVE)

    total_quantity: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    total_profit: Decimal = Decimal("0")
    product_count: int = Field(default=0, ge=0)

    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator(
        'total_quantity', 'total_amount', 'total_profit', 'product_count',
        mode='before',
    )
    @classmethod
    def blank_totals_to_zero(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return 0 if v is None else v

    @field_validator('notes', mode='before')
    @classmethod
    def blank_notes(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator('status', mode='before')
    @classmethod
    def default_status(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return BillStatus.ACTIVE if v is None else v

    @property
    def totals(self) -> BillTotals:
        return BillTotals(
            total_quantity=self.total_quantity,
            total_amount=self.total_amount,
            total_profit=self.total_profit,
            product_count=self.product_count,
        )

    def to_document(self) -> dict[str, Any]:
        """JSON-safe dictionary for the document store (identity excluded)."""
        return self.model_dump(mode="json", exclude={"id"})


def totals_to_document(totals: BillTotals) -> dict[str, Any]:
    """Partial bill update carrying freshly computed totals."""
    document = totals.model_dump(mode="json")
    document["updated_at"] = datetime.utcnow().isoformat()
    return document
