"""
Tests for invoice assembly and saving.

Verifies the GST arithmetic for PAKKA and KACHA bills, multi-item totals,
return handling, validation and what ends up in the Invoices sheet.
"""

from datetime import date
from decimal import Decimal

import pytest

from domain.errors import StoreIOError, ValidationError
from domain.models import InvoiceForm
from services.billing_service import (
    build_invoice,
    describe_invoice,
    list_invoices,
    persist_invoice,
    save_invoice,
)
from utils.decimals import round_money
import workbook_store
from workbook_store import CUSTOMERS, INVOICES, WorkbookStore


def _form(items, **overrides) -> InvoiceForm:
    values = {
        "customer_id": "C001",
        "customer_name": "Asha",
        "customer_phone": "9999999999",
        "customer_address": "MG Road",
        "bill_type": "PAKKA",
    }
    values.update(overrides)
    return InvoiceForm(items=items, **values)


class TestBuildInvoice:
    """Computed invoice figures."""

    def test_pakka_bill(self, ring_row):
        """Ring, 10 g at 6000/g plus 500 making, with GST."""
        invoice = build_invoice(_form([ring_row]))

        assert invoice.sub_total == Decimal("60500.00")
        assert invoice.cgst_amount == Decimal("907.50")
        assert invoice.sgst_amount == Decimal("907.50")
        assert invoice.gst_amount == Decimal("1815.00")
        assert invoice.total_amount == Decimal("62315.00")
        assert invoice.return_amount == Decimal("0")
        assert invoice.net_amount == Decimal("62315.00")
        assert (invoice.cgst_rate, invoice.sgst_rate, invoice.igst_rate) == (
            Decimal("1.5"), Decimal("1.5"), Decimal("0"),
        )

    def test_kacha_bill(self, ring_row):
        invoice = build_invoice(_form([ring_row], bill_type="KACHA"))

        assert invoice.sub_total == Decimal("60500.00")
        assert invoice.gst_amount == Decimal("0")
        assert invoice.total_amount == Decimal("60500.00")
        assert invoice.net_amount == Decimal("60500.00")
        assert invoice.cgst_rate == invoice.sgst_rate == Decimal("0")

    def test_return_by_weight(self, ring_row):
        invoice = build_invoice(_form(
            [ring_row],
            return_mode="BY_WEIGHT",
            return_weight="2.000",
            return_rate="5800",
        ))

        assert invoice.return_weight == Decimal("2.000")
        assert invoice.return_amount == Decimal("11600.00")
        assert invoice.net_amount == Decimal("50715.00")

    def test_return_by_weight_ignores_typed_amount(self, ring_row):
        invoice = build_invoice(_form([ring_row], return_mode="BY_WEIGHT", return_amount="9999"))

        assert invoice.return_amount == Decimal("0")
        assert invoice.net_amount == invoice.total_amount

    def test_return_by_amount_ignores_rate(self, ring_row):
        invoice = build_invoice(_form(
            [ring_row],
            return_mode="BY_AMOUNT",
            return_weight="1.000",
            return_rate="5800",
            return_amount="3000",
        ))

        assert invoice.return_amount == Decimal("3000")
        assert invoice.return_weight == Decimal("1.000")
        assert invoice.net_amount == Decimal("59315.00")

    def test_return_larger_than_total_gives_negative_net(self, ring_row):
        invoice = build_invoice(_form(
            [ring_row], bill_type="KACHA", return_mode="BY_AMOUNT", return_amount="70000",
        ))

        assert invoice.net_amount == Decimal("-9500.00")

    def test_multiple_items_with_discount(self, ring_row, chain_row):
        invoice = build_invoice(_form([ring_row, chain_row], discount="750.50"))

        # 60500 + (5.5 * 6000 + 250.50) - 750.50
        assert invoice.sub_total == Decimal("93000.00")
        assert invoice.weight == Decimal("15.500")
        assert invoice.gst_amount == Decimal("2790.00")
        assert invoice.total_amount == Decimal("95790.00")
        assert len(invoice.items) == 2

    def test_flat_display_fields(self, ring_row, chain_row):
        second_ring = dict(ring_row, description="Ring (small)")

        invoice = build_invoice(_form([ring_row, chain_row, second_ring]))

        assert invoice.item_description == "Ring, Chain, Ring (small)"
        assert invoice.metal == "GOLD, SILVER"
        assert invoice.purity == "22K, 18K"
        assert invoice.rate_per_gram == Decimal("6000")
        assert invoice.making_charges == Decimal("1250.50")

    def test_discount_larger_than_items_is_kept_negative(self, ring_row):
        invoice = build_invoice(_form([ring_row], bill_type="KACHA", discount="61000"))

        assert invoice.sub_total == Decimal("-500")
        assert invoice.total_amount == Decimal("-500")

    def test_fixed_point_amounts(self):
        row = {"description": "Coin", "weight": "3", "rate_per_gram": "6000.10", "making_charges": "0.20"}

        invoice = build_invoice(_form([row], bill_type="KACHA"))

        assert invoice.items[0].amount == Decimal("18000.50")
        assert invoice.sub_total == Decimal("18000.50")

    def test_gst_rounds_half_even(self):
        row = {"description": "Nose pin", "weight": "1", "rate_per_gram": "3"}

        invoice = build_invoice(_form([row]))

        # 3.00 * 1.5% = 0.045 -> 0.04
        assert invoice.gst_amount == Decimal("0.08")
        assert invoice.total_amount == Decimal("3.08")

    @pytest.mark.parametrize(
        "weight,rate,making,discount",
        [
            ("10.000", "6000", "500", "0"),
            ("3.333", "5999.99", "123.45", "10"),
            ("0.125", "7200", "0", "0"),
            ("25.750", "6150.50", "2500", "1999.99"),
            ("1.001", "73.37", "0.01", "0"),
        ],
    )
    def test_gst_and_total_invariants(self, weight, rate, making, discount):
        row = {"description": "Item", "weight": weight, "rate_per_gram": rate, "making_charges": making}

        invoice = build_invoice(_form([row], discount=discount))

        expected_sub_total = Decimal(weight) * Decimal(rate) + Decimal(making) - Decimal(discount)
        assert invoice.sub_total == expected_sub_total
        assert invoice.gst_amount == 2 * round_money(expected_sub_total * Decimal("0.015"))
        assert invoice.total_amount == invoice.sub_total + invoice.gst_amount
        assert invoice.net_amount == invoice.total_amount - invoice.return_amount

    def test_defaults(self, ring_row):
        invoice = build_invoice(_form([ring_row], bill_type="", status=None))

        assert invoice.id == ""
        assert invoice.bill_type == "PAKKA"
        assert invoice.status == "PENDING"
        assert invoice.date == date.today().isoformat()

    def test_values_are_normalised(self, ring_row):
        row = dict(ring_row, metal="gold")

        invoice = build_invoice(_form([row], bill_type="kacha", status="paid", customer_id="  C001 "))

        assert invoice.customer_id == "C001"
        assert invoice.bill_type == "KACHA"
        assert invoice.status == "PAID"
        assert invoice.items[0].metal == "GOLD"

    def test_decimal_inputs_are_accepted(self):
        row = {"description": "Ring", "weight": Decimal("10.000"), "rate_per_gram": Decimal("6000"),
               "making_charges": Decimal("500")}

        assert build_invoice(_form([row])).total_amount == Decimal("62315.00")


class TestInvoiceValidation:
    """Bad input is rejected with a ValidationError."""

    @pytest.mark.parametrize("customer_id", ["", "   ", None])
    def test_customer_id_required(self, ring_row, customer_id):
        with pytest.raises(ValidationError) as exc:
            build_invoice(_form([ring_row], customer_id=customer_id))

        assert exc.value.field == "customer_id"

    def test_at_least_one_item(self):
        with pytest.raises(ValidationError) as exc:
            build_invoice(_form([]))

        assert exc.value.field == "items"

    def test_customer_checked_before_items(self):
        with pytest.raises(ValidationError) as exc:
            build_invoice(_form([], customer_id=""))

        assert exc.value.field == "customer_id"

    @pytest.mark.parametrize(
        "override",
        [
            {"description": ""},
            {"metal": "PLATINUM"},
            {"weight": "-1"},
            {"weight": ""},
            {"rate_per_gram": "abc"},
            {"rate_per_gram": 6000.5},
            {"making_charges": "-10"},
        ],
    )
    def test_bad_item_fields(self, ring_row, override):
        with pytest.raises(ValidationError):
            build_invoice(_form([dict(ring_row, **override)]))

    @pytest.mark.parametrize(
        "override",
        [
            {"bill_type": "CASH"},
            {"status": "OVERDUE"},
            {"discount": "-5"},
            {"return_mode": "BY_MOOD"},
            {"return_weight": "x"},
        ],
    )
    def test_bad_invoice_fields(self, ring_row, override):
        with pytest.raises(ValidationError):
            build_invoice(_form([ring_row], **override))


class TestSaveInvoice:
    """Persisting invoices and the customer side effects."""

    def test_assigns_sequential_identifiers(self, store, ring_row):
        first = save_invoice(store, _form([ring_row]))
        second = save_invoice(store, _form([ring_row]))

        assert (first.record.id, first.row_number) == ("INV-001", 1)
        assert (second.record.id, second.row_number) == ("INV-002", 2)

    def test_sheet_row_holds_computed_figures(self, store, ring_row):
        save_invoice(store, _form(
            [ring_row], return_mode="BY_WEIGHT", return_weight="2.000", return_rate="5800",
        ))

        saved = list_invoices(store)

        assert len(saved) == 1
        invoice = saved[0]
        assert invoice.id == "INV-001"
        assert invoice.customer_id == "C001"
        assert invoice.customer_phone == "9999999999"
        assert invoice.bill_type == "PAKKA"
        assert invoice.item_description == "Ring"
        assert invoice.weight == Decimal("10.000")
        assert invoice.sub_total == Decimal("60500.00")
        assert invoice.gst_amount == Decimal("1815.00")
        assert invoice.total_amount == Decimal("62315.00")
        assert invoice.return_amount == Decimal("11600.00")
        assert invoice.net_amount == Decimal("50715.00")
        assert invoice.cgst_rate == Decimal("1.5")
        assert invoice.status == "PENDING"
        assert invoice.items == ()

    def test_records_purchase_against_customer(self, store, ring_row):
        save_invoice(store, _form([ring_row]))
        save_invoice(store, _form([ring_row], bill_type="KACHA"))

        customers = store.load_all(CUSTOMERS)
        assert len(customers) == 1
        assert customers[0]["Name"] == "Asha"
        assert customers[0]["CustomerType"] == "Purchase"
        assert Decimal(str(customers[0]["TotalPurchases"])) == Decimal("122815.00")

    def test_unnamed_customer_is_named_after_customer_id(self, store, ring_row):
        save_invoice(store, _form([ring_row], customer_name=""))

        assert store.load_all(CUSTOMERS)[0]["Name"] == "C001"

    def test_no_phone_no_customer(self, store, ring_row):
        save_invoice(store, _form([ring_row], customer_phone=""))

        assert store.load_all(CUSTOMERS) == []
        assert len(store.load_all(INVOICES)) == 1

    def test_validation_failure_writes_nothing(self, store, workbook_path, ring_row):
        before = workbook_path.read_bytes()

        with pytest.raises(ValidationError):
            save_invoice(store, _form([ring_row], customer_id=""))

        assert workbook_path.read_bytes() == before

    def test_previewed_invoice_is_saved_unchanged(self, store, ring_row):
        preview = build_invoice(_form([ring_row]))

        saved = persist_invoice(store, preview, customer_name="Asha")

        assert saved.record.id == "INV-001"
        assert saved.record.net_amount == preview.net_amount
        assert saved.record.items == preview.items

    def test_store_errors_propagate(self, workbook_path, ring_row):
        workbook_path.write_bytes(b"not a workbook")

        with pytest.raises(StoreIOError):
            save_invoice(WorkbookStore(workbook_path), _form([ring_row]))

        assert workbook_path.read_bytes() == b"not a workbook"

    def test_failed_customer_update_keeps_invoice_out(self, store, workbook_path, ring_row, monkeypatch):
        """The invoice row and the customer update land together or not at all."""
        save_invoice(store, _form([ring_row]))
        before = workbook_path.read_bytes()

        def _fail(existing, incoming):
            raise StoreIOError("customer sheet unavailable")

        monkeypatch.setattr(workbook_store, "merge_customer_type", _fail)

        with pytest.raises(StoreIOError):
            save_invoice(store, _form([ring_row]))

        assert workbook_path.read_bytes() == before
        assert [i.id for i in list_invoices(store)] == ["INV-001"]

    def test_describe_invoice(self, ring_row):
        invoice = build_invoice(_form([ring_row]))

        assert describe_invoice(invoice) == (
            "Invoice (unsaved) PAKKA: Net ₹62,315.00 (Total ₹62,315.00, Return ₹0.00)"
        )
