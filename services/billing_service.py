# services/billing_service.py

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from domain.errors import StoreIOError, ValidationError
from domain.models import (
    BILL_KACHA,
    BILL_PAKKA,
    BILL_TYPES,
    CUSTOMER_PURCHASE,
    INVOICE_STATUSES,
    METALS,
    RETURN_BY_WEIGHT,
    RETURN_MODES,
    ZERO,
    Invoice,
    InvoiceForm,
    InvoiceItem,
    SavedRecord,
    today_iso,
)
from utils.decimals import cell_to_decimal, parse_decimal, round_money
from utils.formatting import format_rupees, join_display
from utils.validation import require_choice, require_text
from workbook_store import INVOICE_ID_PREFIX, INVOICES, WorkbookStore

logger = logging.getLogger(__name__)

CGST_RATE = Decimal("1.5")
SGST_RATE = Decimal("1.5")
IGST_RATE = Decimal("0")


def build_invoice_items(item_rows: List[Dict[str, Any]]) -> Tuple[InvoiceItem, ...]:
    """
    Build InvoiceItem objects from the billing screen's item rows.

    Each row is expected to look like:
      {
        "description": str,
        "metal": "GOLD" | "SILVER",
        "purity": str,           # defaults to 22K
        "weight": str | Decimal,
        "rate_per_gram": str | Decimal,
        "making_charges": str | Decimal,   # optional
      }
    """
    items: List[InvoiceItem] = []

    for idx, row in enumerate(item_rows, start=1):
        label = f"Item {idx}"
        items.append(
            InvoiceItem(
                description=require_text(row.get("description"), f"{label} description", "description"),
                metal=require_choice(row.get("metal"), METALS, f"{label} metal", default="GOLD"),
                purity=str(row.get("purity") or "22K").strip(),
                weight=parse_decimal(row.get("weight"), f"{label} weight"),
                rate_per_gram=parse_decimal(row.get("rate_per_gram"), f"{label} rate per gram"),
                making_charges=parse_decimal(row.get("making_charges"), f"{label} making charges", default=ZERO),
            )
        )

    return tuple(items)


def compute_gst(sub_total: Decimal, bill_type: str) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """
    Returns (cgst_rate, sgst_rate, igst_rate, gst_amount).

    PAKKA bills charge CGST and SGST at the same rate on the sub-total; the
    CGST share is rounded to paise and doubled. KACHA bills carry no tax.
    """
    if bill_type == BILL_KACHA:
        return ZERO, ZERO, ZERO, ZERO

    cgst = round_money(sub_total * CGST_RATE / 100)
    sgst = cgst
    return CGST_RATE, SGST_RATE, IGST_RATE, cgst + sgst


def compute_return(form: InvoiceForm) -> Tuple[Decimal, Decimal]:
    """
    Returns (return_weight, return_amount) for the active return mode.

    BY_WEIGHT prices the returned weight at the return rate and ignores any
    typed amount. BY_AMOUNT takes the typed amount; the weight is kept for the
    record only and the rate is ignored.
    """
    mode = require_choice(form.return_mode, RETURN_MODES, "Return mode", default=RETURN_BY_WEIGHT)
    return_weight = parse_decimal(form.return_weight, "Return weight", default=ZERO)

    if mode == RETURN_BY_WEIGHT:
        return_rate = parse_decimal(form.return_rate, "Return rate", default=ZERO)
        return return_weight, return_weight * return_rate

    return return_weight, parse_decimal(form.return_amount, "Return amount", default=ZERO)


def build_invoice(form: InvoiceForm) -> Invoice:
    """
    Validate the form and compute every derived figure. Nothing is saved,
    so this doubles as the print preview. The returned invoice has no ID yet.
    """
    customer_id = require_text(form.customer_id, "Customer ID", "customer_id")
    if not form.items:
        raise ValidationError("Add at least one item to the invoice", "items")

    bill_type = require_choice(form.bill_type, BILL_TYPES, "Bill type", default=BILL_PAKKA)
    status = require_choice(form.status, INVOICE_STATUSES, "Status", default="PENDING")
    items = build_invoice_items(form.items)
    discount = parse_decimal(form.discount, "Discount", default=ZERO)
    return_weight, return_amount = compute_return(form)

    sub_total = sum((item.amount for item in items), ZERO) - discount
    cgst_rate, sgst_rate, igst_rate, gst_amount = compute_gst(sub_total, bill_type)
    total = sub_total + gst_amount

    return Invoice(
        id="",
        customer_id=customer_id,
        customer_phone=(form.customer_phone or "").strip(),
        customer_address=(form.customer_address or "").strip(),
        date=(form.date or "").strip() or today_iso(),
        bill_type=bill_type,
        items=items,
        item_description=join_display(item.description for item in items),
        metal=join_display((item.metal for item in items), distinct=True),
        purity=join_display((item.purity for item in items), distinct=True),
        weight=sum((item.weight for item in items), ZERO),
        rate_per_gram=items[0].rate_per_gram,
        making_charges=sum((item.making_charges for item in items), ZERO),
        discount=discount,
        sub_total=sub_total,
        cgst_rate=cgst_rate,
        sgst_rate=sgst_rate,
        igst_rate=igst_rate,
        gst_amount=gst_amount,
        total_amount=total,
        return_weight=return_weight,
        return_amount=return_amount,
        net_amount=total - return_amount,
        status=status,
    )


# ---------------------------------------------------------------------------
# Sheet rows
# ---------------------------------------------------------------------------

def invoice_to_row(invoice: Invoice) -> Dict[str, Any]:
    return {
        "ID": invoice.id,
        "CustomerID": invoice.customer_id,
        "Address": invoice.customer_address,
        "Date": invoice.date,
        "BillType": invoice.bill_type,
        "Item": invoice.item_description,
        "Metal": invoice.metal,
        "Weight": invoice.weight,
        "Purity": invoice.purity,
        "RatePerGram": invoice.rate_per_gram,
        "Making": invoice.making_charges,
        "Discount": invoice.discount,
        "SubTotal": invoice.sub_total,
        "CGST%": invoice.cgst_rate,
        "SGST%": invoice.sgst_rate,
        "IGST%": invoice.igst_rate,
        "GSTAmount": invoice.gst_amount,
        "Total": invoice.total_amount,
        "ReturnWeight": invoice.return_weight,
        "ReturnAmount": invoice.return_amount,
        "NetAmount": invoice.net_amount,
        "Status": invoice.status,
        "Phone": invoice.customer_phone,
    }


def invoice_from_row(row: Dict[str, Any]) -> Invoice:
    return Invoice(
        id=str(row["ID"]),
        customer_id=str(row["CustomerID"]),
        customer_phone=str(row["Phone"]).strip(),
        customer_address=str(row["Address"]),
        date=str(row["Date"]),
        bill_type=str(row["BillType"]),
        item_description=str(row["Item"]),
        metal=str(row["Metal"]),
        purity=str(row["Purity"]),
        weight=cell_to_decimal(row["Weight"]),
        rate_per_gram=cell_to_decimal(row["RatePerGram"]),
        making_charges=cell_to_decimal(row["Making"]),
        discount=cell_to_decimal(row["Discount"]),
        sub_total=cell_to_decimal(row["SubTotal"]),
        cgst_rate=cell_to_decimal(row["CGST%"]),
        sgst_rate=cell_to_decimal(row["SGST%"]),
        igst_rate=cell_to_decimal(row["IGST%"]),
        gst_amount=cell_to_decimal(row["GSTAmount"]),
        total_amount=cell_to_decimal(row["Total"]),
        return_weight=cell_to_decimal(row["ReturnWeight"]),
        return_amount=cell_to_decimal(row["ReturnAmount"]),
        net_amount=cell_to_decimal(row["NetAmount"]),
        status=str(row["Status"]),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def persist_invoice(store: WorkbookStore, invoice: Invoice, customer_name: str = "") -> SavedRecord:
    """
    Save an already built (previewed) invoice and record the purchase
    against the customer's phone number.
    """
    try:
        row_number, invoice_id, _ = store.append_with_customer(
            INVOICES,
            invoice_to_row(invoice),
            INVOICE_ID_PREFIX,
            name=customer_name,
            phone=invoice.customer_phone,
            address=invoice.customer_address,
            customer_type=CUSTOMER_PURCHASE,
            purchase_amount=invoice.net_amount,
            default_name=invoice.customer_id,
        )
    except StoreIOError as e:
        logger.error("Saving invoice for customer %s failed: %s", invoice.customer_id, e)
        raise

    invoice = replace(invoice, id=invoice_id)
    logger.info("Saved invoice %s for %s as row %d", invoice.id, invoice.customer_id, row_number)
    return SavedRecord(record=invoice, row_number=row_number)


def save_invoice(store: WorkbookStore, form: InvoiceForm) -> SavedRecord:
    return persist_invoice(store, build_invoice(form), customer_name=form.customer_name)


def list_invoices(store: WorkbookStore) -> Tuple[Invoice, ...]:
    return tuple(invoice_from_row(row) for row in store.load_all(INVOICES))


def describe_invoice(invoice: Invoice) -> str:
    return (
        f"Invoice {invoice.id or '(unsaved)'} {invoice.bill_type}: "
        f"Net ₹{format_rupees(invoice.net_amount)} "
        f"(Total ₹{format_rupees(invoice.total_amount)}, Return ₹{format_rupees(invoice.return_amount)})"
    )
