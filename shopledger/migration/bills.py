"""
Bill Synthesis Helpers

Turns a list of products into the Bill that aggregates them, and generates
bill numbers for placeholder bills.
"""

import re
from collections import Counter
from datetime import date
from typing import Iterable, Optional

from shopledger.config import get_settings
from shopledger.models.shop import Bill, BillStatus, Product, calculate_totals


def pick_vendor(products: list[Product], default: str) -> str:
    """
    Most common non-empty vendor among the products.

    Ties go to the vendor that appears first.
    """
    vendors = [p.vendor.strip() for p in products if p.vendor and p.vendor.strip()]
    if not vendors:
        return default

    counts = Counter(vendors)
    best = max(counts.values())
    for vendor in vendors:
        if counts[vendor] == best:
            return vendor
    return default


def earliest_date(products: list[Product]) -> Optional[date]:
    dates = [p.purchase_date for p in products if p.purchase_date]
    return min(dates) if dates else None


def calculate_bill_data_from_products(
    bill_number: str,
    products: list[Product],
    notes: Optional[str] = None,
) -> Bill:
    """
    Build an unsaved Bill from the products it will aggregate.

    Raises:
        ValueError: If products is empty
    """
    if not products:
        raise ValueError("Cannot create bill from empty product list")

    settings = get_settings().migration
    totals = calculate_totals(products)

    return Bill(
        bill_number=bill_number.strip(),
        vendor=pick_vendor(products, settings.default_vendor),
        bill_date=earliest_date(products) or date.today(),
        status=BillStatus.ACTIVE,
        notes=notes or f"Migrated from {len(products)} existing products",
        **totals.model_dump(),
    )


def generate_bill_number(existing_numbers: Iterable[Optional[str]]) -> str:
    """
    Next free generated bill number, e.g. B001, B002, ...

    Only numbers made of the configured prefix plus digits are considered;
    the comparison ignores case.
    """
    settings = get_settings().migration
    prefix = settings.orphan_bill_prefix
    pattern = re.compile(rf"^{re.escape(prefix.casefold())}(\d+)$")

    highest = 0
    for number in existing_numbers:
        if not number:
            continue
        match = pattern.match(number.strip().casefold())
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}{highest + 1:0{settings.orphan_bill_number_width}d}"
