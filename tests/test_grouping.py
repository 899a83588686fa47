"""Tests for product grouping and bill synthesis helpers."""

import pytest
from datetime import date
from decimal import Decimal

from shopledger.migration import (
    calculate_bill_data_from_products,
    generate_bill_number,
    group_products_by_bill_number,
    normalize_bill_number,
    pick_vendor,
)
from shopledger.models.shop import BillStatus, Product


def _product(product_id, bill_number=None, **fields):
    return Product(id=product_id, bill_number=bill_number, **fields)


class TestNormalization:
    """Tests for bill number normalization."""

    def test_trim_and_casefold(self):
        """Test whitespace and case don't matter."""
        assert normalize_bill_number("  INV-7 ") == "inv-7"
        assert normalize_bill_number("inv-7") == normalize_bill_number("Inv-7")

    def test_empty_values(self):
        """Test missing bill numbers normalize to empty."""
        assert normalize_bill_number(None) == ""
        assert normalize_bill_number("") == ""
        assert normalize_bill_number("   ") == ""


class TestGrouping:
    """Tests for group_products_by_bill_number."""

    def test_variants_share_a_group(self):
        """Test differently written numbers land in one bucket."""
        result = group_products_by_bill_number([
            _product("a", "B1"),
            _product("b", " b1 "),
            _product("c", "B2"),
        ])
        assert set(result.grouped_products) == {"b1", "b2"}
        assert [p.id for p in result.grouped_products["b1"]] == ["a", "b"]
        assert result.group_count == 2

    def test_orphans(self):
        """Test products without a bill number become orphans."""
        result = group_products_by_bill_number([
            _product("a", None),
            _product("b", "B1"),
        ])
        assert [p.id for p in result.orphaned_products] == ["a"]

    def test_partition_is_complete(self):
        """Test every product lands in exactly one bucket."""
        products = [
            _product(str(i), bill_number)
            for i, bill_number in enumerate(["X", "x", None, "Y", "", "Z", " y"])
        ]
        result = group_products_by_bill_number(products)

        grouped_ids = [p.id for group in result.grouped_products.values() for p in group]
        orphan_ids = [p.id for p in result.orphaned_products]

        assert len(grouped_ids) + len(orphan_ids) == result.total_products == len(products)
        assert sorted(grouped_ids + orphan_ids) == sorted(p.id for p in products)
        assert result.grouped_product_count == len(grouped_ids)

    def test_empty_snapshot(self):
        """Test grouping nothing yields nothing."""
        result = group_products_by_bill_number([])
        assert result.grouped_products == {}
        assert result.orphaned_products == []
        assert result.total_products == 0


class TestVendorPolicy:
    """Tests for pick_vendor."""

    def test_most_common_vendor(self):
        """Test the majority vendor wins."""
        products = [
            _product("a", vendor="Beta"),
            _product("b", vendor="Acme"),
            _product("c", vendor="Acme"),
        ]
        assert pick_vendor(products, "Unknown") == "Acme"

    def test_tie_goes_to_first_seen(self):
        """Test ties are broken by first appearance."""
        products = [
            _product("a", vendor="Beta"),
            _product("b", vendor="Acme"),
        ]
        assert pick_vendor(products, "Unknown") == "Beta"

    def test_no_vendor_uses_default(self):
        """Test blank vendors fall back to the default."""
        products = [_product("a"), _product("b", vendor="  ")]
        assert pick_vendor(products, "Unknown") == "Unknown"


class TestBillSynthesis:
    """Tests for calculate_bill_data_from_products."""

    def test_bill_from_group(self):
        """Test totals, vendor, date and notes of a synthesized bill."""
        products = [
            _product("a", "B1", vendor="Acme", purchase_date=date(2024, 3, 2),
                     total_quantity="2", profit_per_piece="10", total_amount="100"),
            _product("b", "b1", purchase_date=date(2024, 3, 1),
                     quantity="4", profit_per_piece="5", total_amount="200"),
        ]
        bill = calculate_bill_data_from_products(" B1 ", products)

        assert bill.id is None
        assert bill.bill_number == "B1"
        assert bill.vendor == "Acme"
        assert bill.bill_date == date(2024, 3, 1)
        assert bill.status == BillStatus.ACTIVE
        assert bill.total_amount == Decimal("300")
        assert bill.total_quantity == Decimal("6")
        assert bill.total_profit == Decimal("40")
        assert bill.product_count == 2
        assert bill.notes == "Migrated from 2 existing products"

    def test_undated_products_use_today(self):
        """Test a bill always has a date."""
        bill = calculate_bill_data_from_products("B1", [_product("a", "B1")])
        assert bill.bill_date == date.today()
        assert bill.vendor == "Unknown"

    def test_custom_notes(self):
        """Test explicit notes are kept."""
        bill = calculate_bill_data_from_products("B1", [_product("a")], notes="hand made")
        assert bill.notes == "hand made"

    def test_empty_group_rejected(self):
        """Test a bill can't be built from nothing."""
        with pytest.raises(ValueError):
            calculate_bill_data_from_products("B1", [])


class TestBillNumberGeneration:
    """Tests for generate_bill_number."""

    def test_first_number(self):
        """Test numbering starts at B001."""
        assert generate_bill_number([]) == "B001"

    def test_continues_after_highest(self):
        """Test the next number follows the highest generated one."""
        assert generate_bill_number(["B001", "b007", "B003"]) == "B008"

    def test_ignores_other_formats(self):
        """Test free-text numbers don't affect numbering."""
        assert generate_bill_number(["INV-99", "B12A", None, ""]) == "B001"

    def test_short_numbers_count(self):
        """Test unpadded numbers still count."""
        assert generate_bill_number(["B1"]) == "B002"

    def test_prefix_from_settings(self, monkeypatch):
        """Test prefix and width are configurable."""
        monkeypatch.setenv("MIGRATION_ORPHAN_BILL_PREFIX", "ORF")
        monkeypatch.setenv("MIGRATION_ORPHAN_BILL_NUMBER_WIDTH", "5")
        assert generate_bill_number(["orf00041"]) == "ORF00042"
