"""Product-to-bill migration and rollback package."""

from shopledger.migration.bills import (
    calculate_bill_data_from_products,
    generate_bill_number,
    pick_vendor,
)
from shopledger.migration.grouping import (
    group_products_by_bill_number,
    normalize_bill_number,
)
from shopledger.migration.records import load_bills, load_products
from shopledger.migration.rollback import RollbackEngine, RollbackProgressCallback
from shopledger.migration.service import MigrationService, ProgressCallback

__all__ = [
    "MigrationService",
    "ProgressCallback",
    "RollbackEngine",
    "RollbackProgressCallback",
    "calculate_bill_data_from_products",
    "generate_bill_number",
    "group_products_by_bill_number",
    "load_bills",
    "load_products",
    "normalize_bill_number",
    "pick_vendor",
]
