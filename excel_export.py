"""Excel workbooks for invoice export and the bulk import template."""

import io
import logging
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font

from excel_import import IMPORT_COLUMNS
from models import EInvoice

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "GSTIN", "Invoice No", "Invoice Date", "Buyer GSTIN", "Buyer Name",
    "Item Description", "HSN Code", "Quantity", "Unit", "Unit Price",
    "GST Rate", "IGST Amount", "Total Amount",
]

TEMPLATE_SAMPLE_ROWS = [
    ["27AADCS0472N1Z1", "INV-001", "25/03/2023", "06AABCS1234Z1Z1", "Sample Buyer Ltd",
     "Computer Monitor", "8471", 2, "PCS", 15000, 18, "N"],
    ["27AADCS0472N1Z1", "INV-001", "25/03/2023", "06AABCS1234Z1Z1", "Sample Buyer Ltd",
     "Software Service", "9983", 1, "SAC", 25000, 18, "Y"],
]

TEMPLATE_INSTRUCTIONS = [
    "Instructions for filling the Excel template:",
    "1. Each row represents an invoice line item",
    "2. For multi-item invoices, repeat the invoice number on every item row",
    "3. Seller, buyer and date columns are taken from the first row of each invoice",
    "4. Date format should be DD/MM/YYYY",
    "5. GST Rate should be a number (e.g., 18 for 18%)",
    "6. Is Service should be 'Y' for services or 'N' for goods",
    "7. All twelve columns must be present on every row",
    "8. Save the file as Excel (.xlsx) format and upload it through the 'Upload Excel' page",
]


def _write_header(sheet, headers) -> None:
    sheet.append(headers)
    for cell in sheet[1]:
        cell.font = Font(bold=True)


def _to_bytes(workbook: Workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_invoices_workbook(invoices: Iterable[EInvoice]) -> bytes:
    """Flatten invoices into one sheet row per line item and return xlsx bytes"""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Invoices"
    _write_header(sheet, EXPORT_COLUMNS)

    row_count = 0
    for invoice in invoices:
        for item in invoice.item_list:
            sheet.append([
                invoice.seller_dtls.gstin,
                invoice.doc_dtls.no,
                invoice.doc_dtls.dt,
                invoice.buyer_dtls.gstin,
                invoice.buyer_dtls.lgl_nm,
                item.prd_desc,
                item.hsn_cd,
                item.qty,
                item.unit,
                item.unit_price,
                item.gst_rt,
                item.igst_amt,
                item.tot_item_val,
            ])
            row_count += 1

    logger.info(f"Exported {row_count} invoice item rows")
    return _to_bytes(workbook)


def build_import_template() -> bytes:
    """Workbook matching the bulk import column layout, with sample rows"""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Invoice Template"
    _write_header(sheet, IMPORT_COLUMNS)
    for row in TEMPLATE_SAMPLE_ROWS:
        sheet.append(row)

    instructions = workbook.create_sheet("Instructions")
    for text in TEMPLATE_INSTRUCTIONS:
        instructions.append([text])

    return _to_bytes(workbook)
