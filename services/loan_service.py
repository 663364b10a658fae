# services/loan_service.py

import logging
from dataclasses import replace
from typing import Any, Dict, List, Tuple

from app_config import get_default_interest_rate
from domain.errors import StoreIOError, ValidationError
from domain.models import (
    CUSTOMER_LOAN,
    METALS,
    ZERO,
    Loan,
    LoanForm,
    LoanItem,
    SavedRecord,
    today_iso,
)
from utils.decimals import cell_to_decimal, parse_decimal
from utils.formatting import format_rupees, join_display
from utils.validation import require_choice, require_text
from workbook_store import LOAN_ID_PREFIX, LOANS, WorkbookStore

logger = logging.getLogger(__name__)


def build_loan_items(item_rows: List[Dict[str, Any]]) -> Tuple[LoanItem, ...]:
    items: List[LoanItem] = []

    for idx, row in enumerate(item_rows, start=1):
        label = f"Pledged item {idx}"
        items.append(
            LoanItem(
                description=require_text(row.get("description"), f"{label} description", "description"),
                metal_type=require_choice(row.get("metal_type"), METALS, f"{label} metal", default="GOLD"),
                purity=str(row.get("purity") or "22K").strip(),
                weight=parse_decimal(row.get("weight"), f"{label} weight"),
            )
        )

    return tuple(items)


def build_loan(form: LoanForm) -> Loan:
    """
    Validate the loan form and assemble an ACTIVE loan without an ID.

    Blank interest rate -> configured default; blank start date -> today.
    """
    name = require_text(form.customer_name, "Customer name", "customer_name")
    phone = require_text(form.customer_phone, "Phone", "customer_phone")
    address = require_text(form.customer_address, "Address", "customer_address")
    gov_id = require_text(form.gov_id, "Government ID", "gov_id")
    if not form.items:
        raise ValidationError("Add at least one pledged item to the loan", "items")

    items = build_loan_items(form.items)
    principal = parse_decimal(form.principal, "Principal")
    interest_rate = parse_decimal(form.interest_rate, "Interest rate", default=get_default_interest_rate())

    return Loan(
        id="",
        customer_name=name,
        customer_phone=phone,
        customer_address=address,
        gov_id_type=(form.gov_id_type or "").strip().upper() or "AADHAAR",
        gov_id=gov_id,
        items=items,
        product_description=join_display(item.description for item in items),
        metal_type=join_display((item.metal_type for item in items), distinct=True),
        purity=join_display((item.purity for item in items), distinct=True),
        weight=sum((item.weight for item in items), ZERO),
        principal_amount=principal,
        interest_rate=interest_rate,
        start_date=(form.start_date or "").strip() or today_iso(),
        total_repaid=ZERO,
        status="ACTIVE",
    )


def loan_to_row(loan: Loan) -> Dict[str, Any]:
    return {
        "ID": loan.id,
        "CustomerName": loan.customer_name,
        "Phone": loan.customer_phone,
        "Address": loan.customer_address,
        "GovID": loan.gov_id,
        "Metal": loan.metal_type,
        "Product": loan.product_description,
        "Weight": loan.weight,
        "Purity": loan.purity,
        "Principal": loan.principal_amount,
        "Interest%": loan.interest_rate,
        "StartDate": loan.start_date,
        "Repaid": loan.total_repaid,
        "Status": loan.status,
        "IDType": loan.gov_id_type,
    }


def loan_from_row(row: Dict[str, Any]) -> Loan:
    return Loan(
        id=str(row["ID"]),
        customer_name=str(row["CustomerName"]),
        customer_phone=str(row["Phone"]).strip(),
        customer_address=str(row["Address"]),
        gov_id_type=str(row["IDType"]),
        gov_id=str(row["GovID"]),
        product_description=str(row["Product"]),
        metal_type=str(row["Metal"]),
        purity=str(row["Purity"]),
        weight=cell_to_decimal(row["Weight"]),
        principal_amount=cell_to_decimal(row["Principal"]),
        interest_rate=cell_to_decimal(row["Interest%"]),
        start_date=str(row["StartDate"]),
        total_repaid=cell_to_decimal(row["Repaid"]),
        status=str(row["Status"]),
    )


def persist_loan(store: WorkbookStore, loan: Loan) -> SavedRecord:
    try:
        row_number, loan_id, _ = store.append_with_customer(
            LOANS,
            loan_to_row(loan),
            LOAN_ID_PREFIX,
            name=loan.customer_name,
            phone=loan.customer_phone,
            address=loan.customer_address,
            customer_type=CUSTOMER_LOAN,
            loan_opened=True,
        )
    except StoreIOError as e:
        logger.error("Saving loan for %s (%s) failed: %s", loan.customer_name, loan.customer_phone, e)
        raise

    loan = replace(loan, id=loan_id)
    logger.info("Saved loan %s for %s as row %d", loan.id, loan.customer_name, row_number)
    return SavedRecord(record=loan, row_number=row_number)


def save_loan(store: WorkbookStore, form: LoanForm) -> SavedRecord:
    return persist_loan(store, build_loan(form))


def list_loans(store: WorkbookStore) -> Tuple[Loan, ...]:
    return tuple(loan_from_row(row) for row in store.load_all(LOANS))


def describe_loan(loan: Loan) -> str:
    return (
        f"Loan {loan.id or '(unsaved)'} for {loan.customer_name}: "
        f"Principal ₹{format_rupees(loan.principal_amount)}, "
        f"interest ₹{format_rupees(loan.monthly_interest)}/month at {loan.interest_rate}%"
    )
