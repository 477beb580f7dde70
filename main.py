from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional
import json
import logging
from collections import defaultdict
from pydantic import ValidationError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from config import config
from database import Database, DuplicateInvoiceError, PersistenceError
from excel_export import build_import_template, export_invoices_workbook
from excel_import import RowParseError, SpreadsheetImportError
from invoice_codec import invoice_to_dict, parse_invoice_payload, pretty_json
from invoice_service import (
    InvoiceNotFoundError, generate_invoices, get_invoice, import_invoices,
    import_workbook, list_invoice_summaries, load_all_invoices, update_invoice
)
from logging_config import setup_logging
from models import EInvoice, SupplierIn
from pdf_generator import generate_invoice_pdf
from validation import InvoiceValidationError

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Error tracking metrics
error_metrics = defaultdict(lambda: {'count': 0, 'last_error': None})


def track_error(error_type: str, invoice_no: str = None, details: str = None):
    """Track error occurrences for monitoring"""
    error_metrics[error_type]['count'] += 1
    error_metrics[error_type]['last_error'] = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'invoice_no': invoice_no,
        'details': details
    }

    logger.error(
        f"Error tracked: {error_type}",
        extra={
            'error_type': error_type,
            'invoice_no': invoice_no,
            'details': details
        }
    )


limiter = Limiter(key_func=get_remote_address, enabled=config.RATE_LIMIT_ENABLED)
WRITE_LIMIT = f"{config.RATE_LIMIT_PER_MINUTE}/minute"
IMPORT_LIMIT = f"{config.RATE_LIMIT_PER_HOUR}/hour"

router = APIRouter(prefix="/api")


def get_db(request: Request) -> Database:
    """Database handle attached to the running application"""
    return request.app.state.db


def attachment_headers(filename: str) -> dict:
    return {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    }


# Exception handlers

async def invoice_validation_handler(request: Request, exc: InvoiceValidationError):
    track_error('validation_error', exc.invoice_no, str(exc))
    return JSONResponse(status_code=400, content={"detail": str(exc), "field": exc.field})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    track_error('request_validation_error', None, str(exc.errors()))
    # Offending inputs can be NaN or Infinity, which JSON responses cannot carry
    errors = [{key: value for key, value in error.items() if key != "input"} for error in exc.errors()]
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(errors)})


async def spreadsheet_import_handler(request: Request, exc: SpreadsheetImportError):
    track_error('import_error', None, str(exc))
    content = {"detail": str(exc)}
    if isinstance(exc, RowParseError):
        content["row"] = exc.row_number
    return JSONResponse(status_code=400, content=content)


async def persistence_handler(request: Request, exc: PersistenceError):
    track_error('persistence_error', None, str(exc))
    status_code = 409 if isinstance(exc, DuplicateInvoiceError) else 500
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def not_found_handler(request: Request, exc: InvoiceNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# Invoices

@router.get("/download-template")
async def download_template():
    """Excel template matching the bulk import layout"""
    return Response(
        content=build_import_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers=attachment_headers("invoice_template.xlsx"),
    )


@router.post("/generate-invoice", status_code=201)
@limiter.limit(WRITE_LIMIT)
async def generate_invoice(request: Request, invoices: List[EInvoice], db: Database = Depends(get_db)):
    """Validate, total and store new invoices; all or nothing"""
    if not invoices:
        raise HTTPException(status_code=400, detail="No invoice data provided")

    results = generate_invoices(db, invoices)
    return {"message": "Invoice(s) generated successfully", "invoices": results}


@router.post("/upload-excel", status_code=201)
@limiter.limit(IMPORT_LIMIT)
async def upload_excel(request: Request, file: UploadFile = File(...), db: Database = Depends(get_db)):
    """Bulk import invoices from an .xlsx sheet, one row per item"""
    if file.content_type != XLSX_MEDIA_TYPE:
        raise HTTPException(status_code=400, detail="Only Excel files (.xlsx) are supported")

    content = await file.read()
    if len(content) > config.max_file_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {config.MAX_FILE_SIZE_MB}MB"
        )

    logger.info(f"Importing workbook {file.filename} ({len(content)} bytes)")
    results = import_workbook(db, content)
    return {"message": "Invoices imported successfully", "invoices": results}


@router.get("/export-invoices")
async def export_invoices(db: Database = Depends(get_db)):
    """Every stored invoice item as an Excel sheet"""
    content = export_invoices_workbook(load_all_invoices(db))
    return Response(content=content, media_type=XLSX_MEDIA_TYPE, headers=attachment_headers("invoices.xlsx"))


@router.get("/invoices")
async def list_invoices(db: Database = Depends(get_db)):
    return {"invoices": list_invoice_summaries(db)}


@router.get("/invoices/{invoice_id}")
async def read_invoice(invoice_id: int, db: Database = Depends(get_db)):
    invoice = get_invoice(db, invoice_id)
    return {"invoice": invoice_to_dict(invoice), "id": invoice_id}


@router.put("/invoices/{invoice_id}")
@limiter.limit(WRITE_LIMIT)
async def replace_invoice(request: Request, invoice_id: int, invoice: EInvoice, db: Database = Depends(get_db)):
    """Replace an invoice; totals and QR code are recomputed"""
    update_invoice(db, invoice_id, invoice)
    return {"message": "Invoice updated successfully", "invoice_id": invoice_id}


@router.delete("/invoices/{invoice_id}")
async def delete_invoice(invoice_id: int, db: Database = Depends(get_db)):
    if not db.delete_invoice(invoice_id):
        raise HTTPException(status_code=404, detail="Invoice not found")

    logger.info(f"Deleted invoice {invoice_id}")
    return {"message": "Invoice deleted successfully", "invoice_id": invoice_id}


@router.put("/invoices/{invoice_id}/mark-exported")
async def mark_invoice_exported(invoice_id: int, db: Database = Depends(get_db)):
    """Flag an invoice as exported to the GST portal"""
    exported_at = db.mark_invoice_exported(invoice_id)
    if exported_at is None:
        raise HTTPException(status_code=404, detail="Invoice not found")

    return {
        "message": "Invoice marked as exported successfully",
        "invoice_id": invoice_id,
        "exported_at": exported_at
    }


@router.get("/invoices/{invoice_id}/pdf")
async def download_invoice_pdf(invoice_id: int, db: Database = Depends(get_db)):
    invoice = get_invoice(db, invoice_id)
    try:
        pdf_bytes = generate_invoice_pdf(invoice)
    except Exception as e:
        logger.error(f"Error generating PDF for invoice {invoice_id}: {str(e)}",
                     extra={'invoice_no': invoice.doc_dtls.no})
        track_error('pdf_generation_error', invoice.doc_dtls.no, str(e))
        raise HTTPException(status_code=500, detail="Failed to generate PDF")

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers=attachment_headers(f"invoice-{invoice.doc_dtls.no}.pdf"),
    )


@router.get("/qr/{invoice_id}")
async def get_qr_code(invoice_id: int, db: Database = Depends(get_db)):
    qr_code = db.get_qr_code(invoice_id)
    if qr_code is None:
        raise HTTPException(status_code=404, detail="QR code not found")

    return Response(content=qr_code, media_type="image/png")


@router.post("/import-json", status_code=201)
@limiter.limit(WRITE_LIMIT)
async def import_json(request: Request, db: Database = Depends(get_db)):
    """Import a single GST e-invoice document or an array of them"""
    try:
        payload = await request.json()
    except ValueError as e:
        # JSONDecodeError and UnicodeDecodeError
        raise HTTPException(status_code=400, detail=f"Invalid JSON format: {str(e)}")

    try:
        invoices, single = parse_invoice_payload(payload)
    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON format: {str(e)}")

    if not invoices:
        raise HTTPException(status_code=400, detail="No invoice data provided")

    results = import_invoices(db, invoices)
    if single:
        return {"message": "Invoice imported successfully", "invoice": results[0]}
    return {"message": f"{len(results)} invoice(s) imported successfully", "invoices": results}


@router.get("/export-json/{invoice_id}")
async def export_json(invoice_id: int, db: Database = Depends(get_db)):
    """Download one stored invoice document"""
    row = db.get_invoice(invoice_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Invoice not found")

    return Response(
        content=pretty_json(row["invoice_json"]),
        media_type="application/json; charset=utf-8",
        headers=attachment_headers(f"invoice-{row['invoice_no']}.json"),
    )


@router.get("/export-all-json")
async def export_all_json(db: Database = Depends(get_db)):
    """Download every stored invoice document as one array"""
    documents = [json.loads(row["invoice_json"]) for row in db.list_invoices()]
    filename = f"all-invoices-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.json"
    return Response(
        content=json.dumps(documents),
        media_type="application/json",
        headers=attachment_headers(filename),
    )


# Suppliers

@router.get("/suppliers")
async def list_suppliers(db: Database = Depends(get_db)):
    return {"suppliers": db.list_suppliers()}


@router.post("/suppliers", status_code=201)
@limiter.limit(WRITE_LIMIT)
async def create_supplier(request: Request, supplier: SupplierIn, db: Database = Depends(get_db)):
    if not supplier.name.strip():
        raise HTTPException(status_code=400, detail="Supplier name is required")

    supplier_id = db.create_supplier(supplier.model_dump())
    return {"message": "Supplier created successfully", "supplier_id": supplier_id}


@router.put("/suppliers/{supplier_id}")
@limiter.limit(WRITE_LIMIT)
async def update_supplier(request: Request, supplier_id: int, supplier: SupplierIn, db: Database = Depends(get_db)):
    if not supplier.name.strip():
        raise HTTPException(status_code=400, detail="Supplier name is required")

    if not db.update_supplier(supplier_id, supplier.model_dump()):
        raise HTTPException(status_code=404, detail="Supplier not found")

    return {"message": "Supplier updated successfully", "supplier_id": supplier_id}


@router.delete("/suppliers/{supplier_id}")
async def delete_supplier(supplier_id: int, db: Database = Depends(get_db)):
    if not db.delete_supplier(supplier_id):
        raise HTTPException(status_code=404, detail="Supplier not found")

    return {"message": "Supplier deleted successfully", "supplier_id": supplier_id}


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the API; a database is opened at startup when none is given"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        try:
            config.validate()
            logger.info("Configuration validated successfully")
        except ValueError as e:
            logger.warning(f"Configuration validation warning: {e}")

        if app.state.db is None:
            app.state.db = Database()
        yield

    app = FastAPI(title="GST e-Invoice API", lifespan=lifespan)
    app.state.db = database

    # Configure rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(InvoiceValidationError, invoice_validation_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SpreadsheetImportError, spreadsheet_import_handler)
    app.add_exception_handler(PersistenceError, persistence_handler)
    app.add_exception_handler(InvoiceNotFoundError, not_found_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Authorization", "Accept"],
        expose_headers=["Content-Disposition", "Content-Length", "Content-Type"],
    )

    @app.get("/health")
    async def health_check(request: Request):
        """Database reachability and the number of stored invoices"""
        health_status = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {}
        }

        try:
            health_status["invoices"] = get_db(request).count_invoices()
            health_status["checks"]["database"] = "healthy"
        except Exception as e:
            health_status["checks"]["database"] = f"unhealthy: {str(e)}"
            health_status["status"] = "degraded"
            logger.error(f"Database health check failed: {str(e)}")

        return health_status

    @app.get("/metrics")
    async def get_metrics():
        """Get error metrics and statistics"""
        return {
            "error_metrics": dict(error_metrics),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
