import logging
from typing import Any, Dict, Iterable, List

from calculator import calculate_totals
from database import Database, InvoiceRecord
from excel_import import read_workbook_rows, reconcile_rows
from invoice_codec import dump_invoice, load_invoice
from models import EInvoice
from qr_generator import generate_qr_png
from validation import InvoiceValidationError, validate_invoice

logger = logging.getLogger(__name__)


class InvoiceNotFoundError(Exception):
    """Raised when no stored invoice has the requested id"""
    pass


def qr_url(invoice_id: int) -> str:
    return f"/api/qr/{invoice_id}"


def prepare_invoice(invoice: EInvoice) -> EInvoice:
    """Validate an invoice and recompute all derived amounts"""
    validate_invoice(invoice)
    return calculate_totals(invoice)


def prepare_invoices(invoices: Iterable[EInvoice]) -> List[EInvoice]:
    """Prepare a batch; the first invalid invoice fails the whole batch"""
    prepared = []
    for invoice in invoices:
        try:
            prepared.append(prepare_invoice(invoice))
        except InvoiceValidationError as e:
            e.invoice_no = invoice.doc_dtls.no
            raise
    return prepared


def build_record(invoice: EInvoice) -> InvoiceRecord:
    return InvoiceRecord(
        seller_gstin=invoice.seller_dtls.gstin,
        invoice_no=invoice.doc_dtls.no,
        invoice_json=dump_invoice(invoice),
        qr_code=generate_qr_png(invoice),
    )


def store_invoices(db: Database, invoices: List[EInvoice], upsert: bool) -> List[Dict[str, Any]]:
    """Persist prepared invoices in one transaction"""
    records = [build_record(invoice) for invoice in invoices]
    ids = db.save_invoices(records, upsert=upsert)

    return [
        {"id": invoice_id, "invoice_no": record.invoice_no, "qr_url": qr_url(invoice_id)}
        for invoice_id, record in zip(ids, records)
    ]


def generate_invoices(db: Database, invoices: List[EInvoice]) -> List[Dict[str, Any]]:
    """Create new invoices; an existing invoice number is an error"""
    prepared = prepare_invoices(invoices)
    results = store_invoices(db, prepared, upsert=False)
    logger.info(f"Generated {len(results)} invoices")
    return results


def import_invoices(db: Database, invoices: List[EInvoice]) -> List[Dict[str, Any]]:
    """Create or overwrite invoices keyed by invoice number"""
    prepared = prepare_invoices(invoices)
    results = store_invoices(db, prepared, upsert=True)
    logger.info(f"Imported {len(results)} invoices")
    return results


def import_workbook(db: Database, content: bytes) -> List[Dict[str, Any]]:
    """Reconcile an uploaded workbook into invoices and upsert them all"""
    rows = read_workbook_rows(content)
    invoices = reconcile_rows(rows)
    results = store_invoices(db, list(invoices.values()), upsert=True)
    logger.info(f"Imported {len(results)} invoices from workbook")
    return results


def update_invoice(db: Database, invoice_id: int, invoice: EInvoice) -> None:
    """Replace a stored invoice with a recalculated one"""
    prepare_invoice(invoice)
    if not db.update_invoice(invoice_id, build_record(invoice)):
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    logger.info(f"Updated invoice {invoice_id} ({invoice.doc_dtls.no})")


def get_invoice(db: Database, invoice_id: int) -> EInvoice:
    row = db.get_invoice(invoice_id)
    if row is None:
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    return load_invoice(row["invoice_json"])


def list_invoice_summaries(db: Database) -> List[Dict[str, Any]]:
    """Invoice list with buyer, date and total pulled from the stored JSON"""
    summaries = []
    for row in db.list_invoices():
        summary = {
            "id": row["id"],
            "invoice_no": row["invoice_no"],
            "seller_gstin": row["seller_gstin"],
            "created_at": row["created_at"],
            "qr_url": qr_url(row["id"]),
            "exported": row["exported"],
        }
        if row["exported_at"]:
            summary["exported_at"] = row["exported_at"]

        try:
            invoice = load_invoice(row["invoice_json"])
        except ValueError as e:
            logger.error(f"Error reading stored invoice {row['id']}: {str(e)}")
            summary["buyer_name"] = "Unknown"
            summary["date"] = ""
            summary["total_value"] = 0
        else:
            summary["buyer_name"] = invoice.buyer_dtls.lgl_nm
            summary["date"] = invoice.doc_dtls.dt
            summary["total_value"] = invoice.val_dtls.tot_inv_val

        summaries.append(summary)
    return summaries


def load_all_invoices(db: Database) -> List[EInvoice]:
    """Every stored invoice, newest first; unreadable documents are skipped"""
    invoices = []
    for row in db.list_invoices():
        try:
            invoices.append(load_invoice(row["invoice_json"]))
        except ValueError as e:
            logger.warning(f"Skipping unreadable invoice {row['id']}: {str(e)}")
    return invoices
