# domain/models.py

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

ZERO = Decimal("0")

BILL_PAKKA = "PAKKA"  # GST bill
BILL_KACHA = "KACHA"  # untaxed estimate
BILL_TYPES = (BILL_PAKKA, BILL_KACHA)

METALS = ("GOLD", "SILVER")
INVOICE_STATUSES = ("PENDING", "PAID")
LOAN_STATUSES = ("ACTIVE", "CLOSED", "OVERDUE")

RETURN_BY_WEIGHT = "BY_WEIGHT"
RETURN_BY_AMOUNT = "BY_AMOUNT"
RETURN_MODES = (RETURN_BY_WEIGHT, RETURN_BY_AMOUNT)

CUSTOMER_PURCHASE = "Purchase"
CUSTOMER_LOAN = "Loan"
CUSTOMER_PURCHASE_AND_LOAN = "Purchase+Loan"

# Raw form value: the GUI hands over trimmed strings or already parsed numbers
FormValue = Union[str, int, Decimal, None]


def today_iso() -> str:
    return date.today().isoformat()


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    phone: str
    address: str = ""
    tax_id: str = ""  # GSTIN
    total_purchases: Decimal = ZERO
    active_loans: int = 0
    loyalty_points: int = 0
    join_date: str = ""
    customer_type: str = ""  # Purchase | Loan | Purchase+Loan


@dataclass(frozen=True)
class InvoiceItem:
    """
    One product line of an invoice.
    """
    description: str
    metal: str = "GOLD"
    purity: str = "22K"
    weight: Decimal = ZERO  # grams
    rate_per_gram: Decimal = ZERO
    making_charges: Decimal = ZERO

    @property
    def amount(self) -> Decimal:
        return self.weight * self.rate_per_gram + self.making_charges


@dataclass(frozen=True)
class Invoice:
    """
    A sales invoice with its GST breakdown.

    The flat fields (item_description, metal, purity, rate_per_gram,
    making_charges) are what the sheet row shows; `items` is only populated
    for invoices built in this process, since the sheet keeps one row per invoice.
    """
    id: str
    customer_id: str
    customer_phone: str = ""
    customer_address: str = ""
    date: str = ""
    bill_type: str = BILL_PAKKA
    items: Tuple[InvoiceItem, ...] = ()
    item_description: str = ""
    metal: str = ""
    purity: str = ""
    weight: Decimal = ZERO
    rate_per_gram: Decimal = ZERO
    making_charges: Decimal = ZERO
    discount: Decimal = ZERO
    sub_total: Decimal = ZERO
    cgst_rate: Decimal = ZERO
    sgst_rate: Decimal = ZERO
    igst_rate: Decimal = ZERO
    gst_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    return_weight: Decimal = ZERO
    return_amount: Decimal = ZERO
    net_amount: Decimal = ZERO
    status: str = "PENDING"

    @property
    def cgst_amount(self) -> Decimal:
        return self.gst_amount / 2

    @property
    def sgst_amount(self) -> Decimal:
        return self.gst_amount / 2


@dataclass(frozen=True)
class LoanItem:
    description: str
    metal_type: str = "GOLD"
    purity: str = "22K"
    weight: Decimal = ZERO


@dataclass(frozen=True)
class Loan:
    """
    A gold/silver loan against pledged jewellery.
    """
    id: str
    customer_name: str
    customer_phone: str = ""
    customer_address: str = ""
    gov_id_type: str = "AADHAAR"
    gov_id: str = ""
    items: Tuple[LoanItem, ...] = ()
    product_description: str = ""
    metal_type: str = ""
    purity: str = ""
    weight: Decimal = ZERO
    principal_amount: Decimal = ZERO
    interest_rate: Decimal = ZERO  # percent per month
    start_date: str = ""
    total_repaid: Decimal = ZERO
    status: str = "ACTIVE"

    @property
    def monthly_interest(self) -> Decimal:
        return self.principal_amount * self.interest_rate / 100


@dataclass
class InvoiceForm:
    """
    Raw invoice input as collected by the billing screen.

    Each entry of `items` is expected to look like:
      {
        "description": str,
        "metal": "GOLD" | "SILVER",
        "purity": str,
        "weight": str | Decimal,
        "rate_per_gram": str | Decimal,
        "making_charges": str | Decimal,
      }

    Only the return fields of the active `return_mode` are used.
    """
    customer_id: str
    items: List[Dict[str, Any]] = field(default_factory=list)
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    bill_type: str = BILL_PAKKA
    discount: FormValue = None
    status: str = "PENDING"
    return_mode: str = RETURN_BY_WEIGHT
    return_weight: FormValue = None
    return_rate: FormValue = None
    return_amount: FormValue = None
    date: Optional[str] = None


@dataclass
class LoanForm:
    """
    Raw loan input. `items` entries carry "description", "metal_type",
    "purity" and "weight".
    """
    customer_name: str
    customer_phone: str
    customer_address: str
    gov_id: str
    principal: FormValue
    items: List[Dict[str, Any]] = field(default_factory=list)
    gov_id_type: str = "AADHAAR"
    interest_rate: FormValue = None
    start_date: Optional[str] = None


@dataclass(frozen=True)
class SavedRecord:
    record: Union[Customer, Invoice, Loan]
    row_number: int  # 1-based data row in its sheet
