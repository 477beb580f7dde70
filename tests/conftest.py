"""Pytest configuration and shared fixtures."""

import io
import os

# Must be set before the application modules read their configuration.
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_FILE", "")

import openpyxl
import pytest
from fastapi.testclient import TestClient

from database import Database
from main import create_app
from models import EInvoice

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

IMPORT_HEADER = [
    "Seller GSTIN", "Invoice No", "Invoice Date", "Buyer GSTIN", "Buyer Name",
    "Address", "Location", "Quantity", "Unit", "Unit Price", "GST Rate", "Is Service",
]


def import_row(invoice_no="INV-001", qty="2", price="15000", rate="18",
               seller="07AADCS0472N1Z1", description="Computer Monitor", hsn="8471",
               buyer_name="Sample Buyer Ltd", date="25/03/2023", service="N"):
    """One twelve-column bulk import row"""
    return [seller, invoice_no, date, "06AABCS1234Z1Z1", buyer_name,
            description, hsn, qty, "PCS", price, rate, service]


def build_workbook(rows) -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def invoice_payload(invoice_no="INV-001", items=None, gstin="07AADCS0472N1Z1"):
    """GST e-invoice document as a client would send it"""
    if items is None:
        items = [{"SlNo": "1", "PrdDesc": "Computer Monitor", "IsServc": "N", "HsnCd": "8471",
                  "Qty": 2, "Unit": "PCS", "UnitPrice": 15000, "GstRt": 18}]
    return {
        "Version": "1.1",
        "TranDtls": {"TaxSch": "GST", "SupTyp": "B2B", "RegRev": "N"},
        "DocDtls": {"Typ": "INV", "No": invoice_no, "Dt": "25/03/2023"},
        "SellerDtls": {"Gstin": gstin, "LglNm": "Sample Seller Ltd", "TrdNm": "Sample Trading Co",
                       "Addr1": "123 Business Park", "Addr2": "Floor 4", "Loc": "Delhi",
                       "Pin": 110001, "Stcd": "07"},
        "BuyerDtls": {"Gstin": "06AABCS1234Z1Z1", "LglNm": "Sample Buyer Ltd", "TrdNm": "Sample Customer",
                      "Pos": "06", "Addr1": "456 Industrial Area", "Addr2": "Block B", "Loc": "Gurgaon",
                      "Pin": 122001, "Stcd": "06"},
        "ItemList": items,
        "ValDtls": {"AssVal": 0, "IgstVal": 0, "TotInvVal": 0},
        "ExpDtls": {"ForCur": None, "CntCode": None},
    }


@pytest.fixture
def sample_invoice():
    return EInvoice.model_validate(invoice_payload())


@pytest.fixture
def db(tmp_path):
    return Database(str(tmp_path / "invoices.db"))


@pytest.fixture
def client(db):
    return TestClient(create_app(db))
