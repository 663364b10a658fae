import io
import logging
import os
import tempfile
import threading
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app_config import get_id_pad_width, get_workbook_path
from domain.errors import NotFoundError, StoreIOError, ValidationError
from domain.models import (
    CUSTOMER_LOAN,
    CUSTOMER_PURCHASE,
    CUSTOMER_PURCHASE_AND_LOAN,
    ZERO,
    today_iso,
)
from utils.decimals import cell_to_decimal, decimal_to_cell

logger = logging.getLogger(__name__)

CUSTOMERS = "Customers"
INVOICES = "Invoices"
LOANS = "Loans"

COLUMNS: Dict[str, List[str]] = {
    CUSTOMERS: [
        "ID", "Name", "Phone", "Address", "TaxID", "TotalPurchases", "ActiveLoans",
        "LoyaltyPoints", "JoinDate", "CustomerType",
    ],
    INVOICES: [
        "ID", "CustomerID", "Address", "Date", "BillType", "Item", "Metal", "Weight", "Purity",
        "RatePerGram", "Making", "Discount", "SubTotal", "CGST%", "SGST%", "IGST%", "GSTAmount",
        "Total", "ReturnWeight", "ReturnAmount", "NetAmount", "Status", "Phone",
    ],
    LOANS: [
        "ID", "CustomerName", "Phone", "Address", "GovID", "Metal", "Product", "Weight", "Purity",
        "Principal", "Interest%", "StartDate", "Repaid", "Status", "IDType",
    ],
}

CUSTOMER_ID_PREFIX = "C"
INVOICE_ID_PREFIX = "INV-"
LOAN_ID_PREFIX = "L-"

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="28283C", end_color="28283C", fill_type="solid")
HEADER_BORDER = Border(bottom=Side(style="thick", color="6464FF"))
COLUMN_WIDTH = 18

WEIGHT_FORMAT = "0.000"
MONEY_FORMAT = "#,##0.00"
RATE_FORMAT = "0.00"

# Display format for decimal cells; the stored value is a plain number
NUMBER_FORMATS: Dict[str, str] = {
    "Weight": WEIGHT_FORMAT,
    "ReturnWeight": WEIGHT_FORMAT,
    "CGST%": RATE_FORMAT,
    "SGST%": RATE_FORMAT,
    "IGST%": RATE_FORMAT,
    "Interest%": RATE_FORMAT,
    **{
        column: MONEY_FORMAT
        for column in (
            "TotalPurchases", "RatePerGram", "Making", "Discount", "SubTotal", "GSTAmount",
            "Total", "ReturnAmount", "NetAmount", "Principal", "Repaid",
        )
    },
}

# Older workbooks spelled the combined tag with spaces
LEGACY_CUSTOMER_TYPES = {"Purchase + Loan": CUSTOMER_PURCHASE_AND_LOAN}

Row = Dict[str, Any]
Sheets = Dict[str, List[Row]]

# One write gate per workbook file, shared by every store object in the process
_write_locks: Dict[str, threading.Lock] = {}
_write_locks_guard = threading.Lock()


def _write_lock_for(path: Path) -> threading.Lock:
    with _write_locks_guard:
        return _write_locks.setdefault(str(path), threading.Lock())


def merge_customer_type(existing: Optional[str], incoming: str) -> str:
    """
    Combine the stored customer type with the kind of transaction just made.

      ""        + X         -> X
      X         + X         -> X
      Purchase+Loan + any   -> Purchase+Loan
      Purchase  + Loan      -> Purchase+Loan (either order)
      otherwise             -> incoming
    """
    existing = (existing or "").strip()
    existing = LEGACY_CUSTOMER_TYPES.get(existing, existing)

    if not existing:
        return incoming
    if existing == incoming:
        return existing
    if existing == CUSTOMER_PURCHASE_AND_LOAN:
        return existing
    if {existing, incoming} == {CUSTOMER_PURCHASE, CUSTOMER_LOAN}:
        return CUSTOMER_PURCHASE_AND_LOAN
    return incoming


def _to_cell(value: Any) -> Any:
    if isinstance(value, Decimal):
        return decimal_to_cell(value)
    if value == "":
        return None
    return value


def _from_cell(value: Any) -> Any:
    return "" if value is None else value


def _style_header_row(worksheet, column_count: int) -> None:
    for col in range(1, column_count + 1):
        cell = worksheet.cell(row=1, column=col)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER
        cell.alignment = Alignment(horizontal="center")
        worksheet.column_dimensions[get_column_letter(col)].width = COLUMN_WIDTH


def _new_workbook() -> openpyxl.Workbook:
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for name, columns in COLUMNS.items():
        worksheet = workbook.create_sheet(name)
        worksheet.append(columns)
        _style_header_row(worksheet, len(columns))
    return workbook


def _check_collection(collection: str) -> None:
    if collection not in COLUMNS:
        raise NotFoundError(f"Unknown collection '{collection}'. Expected one of {list(COLUMNS)}")


class _SheetTable:
    """
    The known columns of one worksheet as row dicts, tied back to the cells
    they came from. Columns and sheets the store does not know about are
    never touched.
    """

    def __init__(self, worksheet, collection: str):
        self.worksheet = worksheet
        self.collection = collection

        self.positions: Dict[str, int] = {}
        for cell in worksheet[1]:
            if cell.value is not None:
                self.positions.setdefault(str(cell.value).strip(), cell.column)

        missing = [c for c in COLUMNS[collection] if c not in self.positions]
        if missing:
            raise NotFoundError(f"Sheet '{collection}' is missing columns: {missing}")

        self.rows: List[Row] = [
            {c: _from_cell(values[self.positions[c] - 1]) for c in COLUMNS[collection]}
            for values in worksheet.iter_rows(min_row=2, values_only=True)
        ]
        # Formatted but empty rows at the bottom are not records
        while self.rows and all(v == "" for v in self.rows[-1].values()):
            self.rows.pop()

        self._loaded = [dict(row) for row in self.rows]

    def write_back(self) -> None:
        """Write only the cells whose value changed since loading."""
        for index, row in enumerate(self.rows):
            loaded = self._loaded[index] if index < len(self._loaded) else {}
            for column, value in row.items():
                if column in loaded and loaded[column] == value:
                    continue
                cell = self.worksheet.cell(row=index + 2, column=self.positions[column])
                cell.value = _to_cell(value)
                if isinstance(value, Decimal) and column in NUMBER_FORMATS:
                    cell.number_format = NUMBER_FORMATS[column]


class WorkbookStore:
    """
    Row-oriented persistence on a single .xlsx workbook holding the
    Customers, Invoices and Loans sheets.

    Every mutation loads the whole workbook, changes the affected cells and
    writes the whole workbook back while holding the per-file write lock.
    Anything else in the file (extra sheets, extra columns, formatting) is
    kept. Writes go to a temporary file that replaces the workbook, so
    readers, which take no lock, see either the old or the new file. The
    file is never held open between calls.
    """

    def __init__(self, path: Union[str, Path], pad_width: Optional[int] = None):
        if pad_width is None:
            pad_width = get_id_pad_width()
        if pad_width < 1:
            raise ValueError(f"pad_width must be a positive integer, got {pad_width}")

        self.path = Path(path).resolve()
        self.pad_width = pad_width
        self._lock = _write_lock_for(self.path)

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def _read_bytes(self) -> bytes:
        try:
            with open(self.path, "rb") as f:
                return f.read()
        except OSError as e:
            raise StoreIOError(f"Cannot open workbook {self.path}: {e}") from e

    def _read_sheets(self, collections: Iterable[str] = tuple(COLUMNS)) -> Sheets:
        data = self._read_bytes()
        try:
            frames = pd.read_excel(
                io.BytesIO(data),
                sheet_name=None,
                dtype=object,
                keep_default_na=False,
                na_values=[],
                engine="openpyxl",
            )
        except Exception as e:
            raise StoreIOError(f"Workbook {self.path} is corrupt or not an .xlsx file: {e}") from e

        sheets: Sheets = {}
        for name in collections:
            if name not in frames:
                raise NotFoundError(f"Sheet '{name}' is missing from {self.path}")

            frame = frames[name]
            frame.columns = [str(c).strip() for c in frame.columns]
            missing = [c for c in COLUMNS[name] if c not in frame.columns]
            if missing:
                raise NotFoundError(f"Sheet '{name}' in {self.path} is missing columns: {missing}")

            frame = frame[COLUMNS[name]].astype(object)
            frame = frame.where(frame.notna(), "")
            sheets[name] = frame.to_dict(orient="records")

        return sheets

    def _load_workbook(self) -> openpyxl.Workbook:
        data = self._read_bytes()
        try:
            return openpyxl.load_workbook(io.BytesIO(data))
        except Exception as e:
            raise StoreIOError(f"Workbook {self.path} is corrupt or not an .xlsx file: {e}") from e

    def _tables(self, workbook: openpyxl.Workbook, collections: Iterable[str] = tuple(COLUMNS)) -> Dict[str, _SheetTable]:
        tables = {}
        for name in collections:
            if name not in workbook.sheetnames:
                raise NotFoundError(f"Sheet '{name}' is missing from {self.path}")
            tables[name] = _SheetTable(workbook[name], name)
        return tables

    def _save_workbook(self, workbook: openpyxl.Workbook) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".~", suffix=".xlsx", dir=self.path.parent)
            os.close(fd)

            workbook.save(tmp_name)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except Exception as e:
            raise StoreIOError(f"Could not write workbook {self.path}: {e}") from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)

    def _mutate(self, change: Callable[[Sheets], Any]) -> Any:
        """
        Run `change` on the rows of every sheet and save once.
        Nothing is written when `change` raises.
        """
        with self._lock:
            if self.path.exists():
                workbook = self._load_workbook()
            else:
                logger.warning("Workbook %s is missing, recreating it", self.path)
                workbook = _new_workbook()

            tables = self._tables(workbook)
            result = change({name: table.rows for name, table in tables.items()})

            for table in tables.values():
                table.write_back()
            self._save_workbook(workbook)
            return result

    def _format_identifier(self, prefix: str, number: int) -> str:
        return f"{prefix}{number:0{self.pad_width}d}"

    # ------------------------------------------------------------------
    # Setup / health
    # ------------------------------------------------------------------

    def ensure_initialized(self) -> bool:
        """
        Create the workbook with its three header rows if it does not exist.
        Returns True when a new file was created.
        """
        with self._lock:
            if self.path.exists():
                return False

            self._save_workbook(_new_workbook())
            logger.info("Created workbook %s", self.path)
            return True

    def test_connection(self) -> Tuple[bool, str]:
        """
        Returns (ok, message) for the startup status line.
        """
        try:
            self.ensure_initialized()
            self._read_sheets()
        except StoreIOError as e:
            logger.error("Workbook check failed: %s", e)
            return False, str(e)

        return True, f"Workbook ready at {self.path}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_all(self, collection: str) -> List[Row]:
        """
        Every row of `collection` as {column: value}, in sheet order.
        Blank cells read as "". A workbook that does not exist yet has no rows.
        """
        _check_collection(collection)
        if not self.path.exists():
            return []
        return self._read_sheets([collection])[collection]

    def fetch_rows(self, collection: str) -> Tuple[bool, str, List[Row]]:
        """
        Same as load_all, but never raises.
        Returns (ok, message, rows); rows is empty on failure.
        """
        try:
            rows = self.load_all(collection)
        except StoreIOError as e:
            logger.error("Could not load %s: %s", collection, e)
            return False, str(e), []

        if not rows:
            return True, "No rows found", []
        return True, "Fetched", rows

    def next_identifier(self, collection: str, prefix: str) -> str:
        """
        Identifier the next appended row would get, e.g. "INV-004".

        Only a preview: another append can land before the caller's. Use
        append_with_identifier to assign and persist in one step.
        """
        _check_collection(collection)
        if not self.path.exists():
            return self._format_identifier(prefix, 1)

        table = self._tables(self._load_workbook(), [collection])[collection]
        return self._format_identifier(prefix, len(table.rows) + 1)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _check_record(self, collection: str, record: Row) -> None:
        _check_collection(collection)
        unknown = [k for k in record if k not in COLUMNS[collection]]
        if unknown:
            raise ValueError(f"Unknown columns for {collection}: {unknown}")

    def _identified_append(
            self,
            collection: str,
            record: Row,
            prefix: str,
            unique_on: Optional[str],
    ) -> Callable[[Sheets], Tuple[int, str]]:
        self._check_record(collection, record)
        if unique_on is not None and unique_on not in COLUMNS[collection]:
            raise ValueError(f"Unknown column for {collection}: {unique_on}")

        def _append(sheets: Sheets) -> Tuple[int, str]:
            rows = sheets[collection]
            if unique_on is not None:
                wanted = str(record.get(unique_on, "")).strip()
                if any(str(row.get(unique_on, "")).strip() == wanted for row in rows):
                    raise ValidationError(f"{unique_on} {wanted} already exists in {collection}", unique_on)
            identifier = self._format_identifier(prefix, len(rows) + 1)
            rows.append({**record, "ID": identifier})
            return len(rows), identifier

        return _append

    def _customer_upsert(
            self,
            name: str,
            phone: str,
            address: str,
            customer_type: str,
            purchase_amount: Decimal,
            loan_opened: bool,
            default_name: str,
    ) -> Callable[[Sheets], Tuple[Optional[str], bool]]:
        phone = (phone or "").strip()
        name = (name or "").strip()
        default_name = (default_name or "").strip()
        address = (address or "").strip()

        def _upsert(sheets: Sheets) -> Tuple[Optional[str], bool]:
            if not phone:
                return None, False

            rows = sheets[CUSTOMERS]
            for row in rows:
                if str(row.get("Phone", "")).strip() != phone:
                    continue

                row["CustomerType"] = merge_customer_type(row.get("CustomerType"), customer_type)
                if name:
                    row["Name"] = name
                if address:
                    row["Address"] = address
                if purchase_amount:
                    row["TotalPurchases"] = cell_to_decimal(row.get("TotalPurchases")) + purchase_amount
                if loan_opened:
                    row["ActiveLoans"] = int(cell_to_decimal(row.get("ActiveLoans"))) + 1
                return str(row["ID"]), False

            identifier = self._format_identifier(CUSTOMER_ID_PREFIX, len(rows) + 1)
            rows.append({
                "ID": identifier,
                "Name": name or default_name,
                "Phone": phone,
                "Address": address,
                "TaxID": "",
                "TotalPurchases": purchase_amount,
                "ActiveLoans": 1 if loan_opened else 0,
                "LoyaltyPoints": 0,
                "JoinDate": today_iso(),
                "CustomerType": customer_type,
            })
            return identifier, True

        return _upsert

    def _log_customer(self, customer_id: Optional[str], created: bool, phone: str, customer_type: str) -> None:
        if customer_id is None:
            return
        if created:
            logger.info("New customer %s (%s) as %s", customer_id, phone.strip(), customer_type)
        else:
            logger.info("Updated customer %s (%s) after %s", customer_id, phone.strip(), customer_type)

    def append_row(self, collection: str, record: Row) -> int:
        """
        Append one row and return its 1-based data row number.
        """
        self._check_record(collection, record)

        def _append(sheets: Sheets) -> int:
            rows = sheets[collection]
            rows.append(dict(record))
            return len(rows)

        row_number = self._mutate(_append)
        logger.info("Appended row %d to %s", row_number, collection)
        return row_number

    def append_with_identifier(
            self,
            collection: str,
            record: Row,
            prefix: str,
            unique_on: Optional[str] = None,
    ) -> Tuple[int, str]:
        """
        Append one row with a freshly assigned ID column value.

        The ID number is the new row's data row number, computed inside the
        write lock, so two concurrent callers never get the same identifier.
        With `unique_on`, the append is refused (ValidationError) when another
        row already holds the same trimmed value in that column.
        Returns (row_number, identifier).
        """
        append = self._identified_append(collection, record, prefix, unique_on)

        row_number, identifier = self._mutate(append)
        logger.info("Appended %s as row %d of %s", identifier, row_number, collection)
        return row_number, identifier

    def append_with_customer(
            self,
            collection: str,
            record: Row,
            prefix: str,
            *,
            name: str,
            phone: str,
            address: str,
            customer_type: str,
            purchase_amount: Decimal = ZERO,
            loan_opened: bool = False,
            default_name: str = "",
    ) -> Tuple[int, str, Optional[str]]:
        """
        append_with_identifier and upsert_customer_by_phone in one write.
        Either both land in the file or neither does.

        Returns (row_number, identifier, customer_id).
        """
        append = self._identified_append(collection, record, prefix, None)
        upsert = self._customer_upsert(
            name, phone, address, customer_type, purchase_amount, loan_opened, default_name
        )

        def _both(sheets: Sheets) -> Tuple[int, str, Optional[str], bool]:
            row_number, identifier = append(sheets)
            customer_id, created = upsert(sheets)
            return row_number, identifier, customer_id, created

        row_number, identifier, customer_id, created = self._mutate(_both)
        logger.info("Appended %s as row %d of %s", identifier, row_number, collection)
        self._log_customer(customer_id, created, phone or "", customer_type)
        return row_number, identifier, customer_id

    def upsert_customer_by_phone(
            self,
            name: str,
            phone: str,
            address: str,
            customer_type: str,
            *,
            purchase_amount: Decimal = ZERO,
            loan_opened: bool = False,
            default_name: str = "",
    ) -> Optional[str]:
        """
        Find the customer with this phone number, or create one.

        Behaviour:
          - blank phone -> nothing happens, returns None
          - existing customer -> type tag merged, name/address replaced only by
            non-blank values, purchases and active loans accumulated
          - new customer -> appended as C<nnn> with today's join date, named
            `default_name` when `name` is blank

        Returns the customer ID.
        """
        if not (phone or "").strip():
            return None

        upsert = self._customer_upsert(
            name, phone, address, customer_type, purchase_amount, loan_opened, default_name
        )
        customer_id, created = self._mutate(upsert)
        self._log_customer(customer_id, created, phone, customer_type)
        return customer_id


def get_store(path: Union[str, Path, None] = None) -> WorkbookStore:
    store = WorkbookStore(path or get_workbook_path())
    store.ensure_initialized()
    return store
