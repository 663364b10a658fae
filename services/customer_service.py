# services/customer_service.py

import logging
from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

from domain.errors import StoreIOError
from domain.models import Customer, SavedRecord, ZERO, today_iso
from utils.decimals import cell_to_decimal
from utils.validation import require_text
from workbook_store import CUSTOMER_ID_PREFIX, CUSTOMERS, WorkbookStore

logger = logging.getLogger(__name__)


def customer_from_row(row: Dict[str, Any]) -> Customer:
    return Customer(
        id=str(row["ID"]),
        name=str(row["Name"]),
        phone=str(row["Phone"]).strip(),
        address=str(row["Address"]),
        tax_id=str(row["TaxID"]),
        total_purchases=cell_to_decimal(row["TotalPurchases"]),
        active_loans=int(cell_to_decimal(row["ActiveLoans"])),
        loyalty_points=int(cell_to_decimal(row["LoyaltyPoints"])),
        join_date=str(row["JoinDate"]),
        customer_type=str(row["CustomerType"]),
    )


def register_customer(
        store: WorkbookStore,
        name: str,
        phone: str,
        address: str,
        tax_id: str = "",
) -> SavedRecord:
    """
    Add a customer from the customer screen. Name, phone and address are
    required and the phone number must not be registered yet.
    The type tag stays blank until the first purchase or loan.
    """
    customer = Customer(
        id="",
        name=require_text(name, "Name", "name"),
        phone=require_text(phone, "Phone", "phone"),
        address=require_text(address, "Address", "address"),
        tax_id=(tax_id or "").strip().upper(),
        total_purchases=ZERO,
        join_date=today_iso(),
    )

    row = {
        "Name": customer.name,
        "Phone": customer.phone,
        "Address": customer.address,
        "TaxID": customer.tax_id,
        "TotalPurchases": customer.total_purchases,
        "ActiveLoans": customer.active_loans,
        "LoyaltyPoints": customer.loyalty_points,
        "JoinDate": customer.join_date,
        "CustomerType": customer.customer_type,
    }

    try:
        row_number, customer_id = store.append_with_identifier(
            CUSTOMERS, row, CUSTOMER_ID_PREFIX, unique_on="Phone"
        )
    except StoreIOError as e:
        logger.error("Saving customer '%s' failed: %s", customer.name, e)
        raise

    logger.info("Customer '%s' saved as %s (row %d)", customer.name, customer_id, row_number)
    return SavedRecord(record=replace(customer, id=customer_id), row_number=row_number)


def list_customers(store: WorkbookStore) -> Tuple[Customer, ...]:
    return tuple(customer_from_row(row) for row in store.load_all(CUSTOMERS))


def find_customer_by_phone(store: WorkbookStore, phone: str) -> Optional[Customer]:
    phone = (phone or "").strip()
    if not phone:
        return None
    return next((c for c in list_customers(store) if c.phone == phone), None)
