"""
Product Grouping

Partitions a product snapshot into candidate bills keyed by normalized
bill number. Pure: it never touches the store, so the same snapshot always
yields the same partition.
"""

from typing import Optional

from shopledger.models.migration import GroupingResult
from shopledger.models.shop import Product


def normalize_bill_number(bill_number: Optional[str]) -> str:
    """Grouping key for a free-text bill number: trimmed and case-folded."""
    if not bill_number:
        return ""
    return bill_number.strip().casefold()


def group_products_by_bill_number(products: list[Product]) -> GroupingResult:
    """
    Bucket products by normalized bill number.

    Products whose key is empty are orphans. Within a bucket, products keep
    their snapshot order.
    """
    grouped: dict[str, list[Product]] = {}
    orphaned: list[Product] = []

    for product in products:
        key = normalize_bill_number(product.bill_number)
        if not key:
            orphaned.append(product)
        else:
            grouped.setdefault(key, []).append(product)

    return GroupingResult(
        grouped_products=grouped,
        orphaned_products=orphaned,
        total_products=len(products),
    )
