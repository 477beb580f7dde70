import io
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Sequence

import openpyxl

from calculator import calculate_totals
from models import BuyerDtls, DocDtls, EInvoice, ExpDtls, Item, SellerDtls, TranDtls
from validation import InvoiceValidationError, validate_invoice

logger = logging.getLogger(__name__)

MIN_COLUMNS = 12

# Column positions in an import sheet
COL_SELLER_GSTIN = 0
COL_INVOICE_NO = 1
COL_INVOICE_DATE = 2
COL_BUYER_GSTIN = 3
COL_BUYER_NAME = 4
COL_ADDRESS = 5  # buyer address, also the item description
COL_LOCATION = 6  # buyer location, also the HSN code
COL_QUANTITY = 7
COL_UNIT = 8
COL_UNIT_PRICE = 9
COL_GST_RATE = 10
COL_IS_SERVICE = 11

IMPORT_COLUMNS = [
    "Seller GSTIN", "Invoice No", "Invoice Date (DD/MM/YYYY)", "Buyer GSTIN",
    "Buyer Name", "Buyer Address / Item Description", "Buyer Location / HSN Code",
    "Quantity", "Unit", "Unit Price", "GST Rate (%)", "Is Service (Y/N)",
]


class SpreadsheetImportError(Exception):
    """Raised when an uploaded workbook cannot be turned into invoices"""
    pass


class RowParseError(SpreadsheetImportError):
    """Raised for a sheet row that cannot be read; row_number is 1-based"""

    def __init__(self, row_number: int, message: str):
        self.row_number = row_number
        super().__init__(f"Row {row_number} {message}")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_workbook_rows(content: bytes) -> List[List[str]]:
    """Read the first sheet of an .xlsx workbook as rows of cell text.

    Trailing empty cells of every row and trailing empty rows are dropped,
    so a row's length is the position of its last filled cell.
    """
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        logger.error(f"Failed to open workbook: {str(e)}")
        raise SpreadsheetImportError("Failed to parse Excel file") from e

    try:
        if not workbook.worksheets:
            raise SpreadsheetImportError("No sheets found in Excel file")

        rows = []
        for values in workbook.worksheets[0].iter_rows(values_only=True):
            cells = [_cell_text(value) for value in values]
            while cells and cells[-1] == "":
                cells.pop()
            rows.append(cells)
    finally:
        workbook.close()

    while rows and not rows[-1]:
        rows.pop()

    logger.info(f"Read {len(rows)} rows from workbook")
    return rows


def _parse_number(text: str) -> float:
    try:
        value = float(text.replace(",", "")) if text else 0.0
    except ValueError:
        value = math.nan

    if not math.isfinite(value):
        logger.warning(f"Could not parse number '{text}', using 0")
        return 0.0
    return value


def _new_invoice(row: Sequence[str]) -> EInvoice:
    return EInvoice(
        version="1.1",
        tran_dtls=TranDtls(tax_sch="GST", sup_typ="EXPWP", reg_rev="N"),
        doc_dtls=DocDtls(typ="INV", no=row[COL_INVOICE_NO], dt=row[COL_INVOICE_DATE]),
        seller_dtls=SellerDtls(
            gstin=row[COL_SELLER_GSTIN],
            lgl_nm="SELLER COMPANY NAME",
            trd_nm="SELLER TRADE NAME",
            addr1="SELLER ADDRESS LINE 1",
            addr2="SELLER ADDRESS LINE 2",
            loc="SELLER CITY",
            pin=110001,
            stcd="07",
        ),
        buyer_dtls=BuyerDtls(
            gstin=row[COL_BUYER_GSTIN],
            lgl_nm=row[COL_BUYER_NAME],
            trd_nm=row[COL_BUYER_NAME],
            pos="96",
            addr1=row[COL_ADDRESS],
            addr2="",
            loc=row[COL_LOCATION],
            pin=999999,
            stcd="96",
        ),
        exp_dtls=ExpDtls(for_cur=None, cnt_code=None),
    )


def _row_item(row: Sequence[str], serial: int) -> Item:
    is_service = "Y" if row[COL_IS_SERVICE].strip().upper() in ("Y", "YES") else "N"
    return Item(
        sl_no=str(serial),
        prd_desc=row[COL_ADDRESS],
        is_servc=is_service,
        hsn_cd=row[COL_LOCATION],
        qty=_parse_number(row[COL_QUANTITY]),
        unit=row[COL_UNIT],
        unit_price=_parse_number(row[COL_UNIT_PRICE]),
        gst_rt=_parse_number(row[COL_GST_RATE]),
    )


def reconcile_rows(rows: Sequence[Sequence[str]]) -> Dict[str, EInvoice]:
    """Group sheet rows into invoices keyed by invoice number.

    The first row is a header. Header fields come from the first row seen for
    an invoice number; later rows with the same number only add items. Every
    invoice is totalled and validated once all rows are grouped. Any failure
    aborts the whole batch.
    """
    if len(rows) < 2:
        raise SpreadsheetImportError("Excel file does not contain enough data")

    invoices: Dict[str, EInvoice] = {}

    for index, row in enumerate(rows):
        if index == 0:
            continue

        if len(row) < MIN_COLUMNS:
            raise RowParseError(index + 1, "does not have enough columns")

        invoice_no = row[COL_INVOICE_NO]
        invoice = invoices.get(invoice_no)
        if invoice is None:
            invoice = _new_invoice(row)
            invoices[invoice_no] = invoice

        invoice.item_list.append(_row_item(row, len(invoice.item_list) + 1))

    for invoice_no, invoice in invoices.items():
        calculate_totals(invoice)
        try:
            validate_invoice(invoice)
        except InvoiceValidationError as e:
            e.invoice_no = invoice_no
            raise

    logger.info(f"Reconciled {len(rows) - 1} rows into {len(invoices)} invoices")
    return invoices
