"""Unit tests for Excel export and the import template."""

import io

import openpyxl

from calculator import calculate_totals
from excel_export import EXPORT_COLUMNS, build_import_template, export_invoices_workbook
from excel_import import IMPORT_COLUMNS, MIN_COLUMNS, read_workbook_rows, reconcile_rows
from models import Item


def _load(content: bytes):
    return openpyxl.load_workbook(io.BytesIO(content))


def test_export_writes_one_row_per_item(sample_invoice):
    sample_invoice.item_list.append(Item(sl_no="2", prd_desc="Keyboard", hsn_cd="8471",
                                         qty=1, unit="PCS", unit_price=500, gst_rt=18))
    calculate_totals(sample_invoice)

    sheet = _load(export_invoices_workbook([sample_invoice]))["Invoices"]

    assert [cell.value for cell in sheet[1]] == EXPORT_COLUMNS
    assert sheet.max_row == 3

    first = [cell.value for cell in sheet[2]]
    assert first[:7] == ["07AADCS0472N1Z1", "INV-001", "25/03/2023", "06AABCS1234Z1Z1",
                         "Sample Buyer Ltd", "Computer Monitor", "8471"]
    assert first[7:] == [2, "PCS", 15000, 18, 5400, 35400]

    second = [cell.value for cell in sheet[3]]
    assert second[5] == "Keyboard"
    assert second[-1] == 590


def test_export_with_no_invoices_has_only_headers():
    sheet = _load(export_invoices_workbook([]))["Invoices"]
    assert sheet.max_row == 1


def test_template_matches_import_columns():
    workbook = _load(build_import_template())

    assert workbook.sheetnames == ["Invoice Template", "Instructions"]
    headers = [cell.value for cell in workbook["Invoice Template"][1]]
    assert headers == IMPORT_COLUMNS
    assert len(headers) == MIN_COLUMNS


def test_template_sample_rows_import_cleanly():
    invoices = reconcile_rows(read_workbook_rows(build_import_template()))

    invoice = invoices["INV-001"]
    assert [item.prd_desc for item in invoice.item_list] == ["Computer Monitor", "Software Service"]
    assert [item.is_servc for item in invoice.item_list] == ["N", "Y"]
    assert invoice.val_dtls.tot_inv_val == 64900
