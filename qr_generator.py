import io
import logging

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from qrcode.image.pil import PilImage

from config import config
from models import EInvoice

logger = logging.getLogger(__name__)


def qr_payload(invoice_no: str, total_invoice_value: float) -> str:
    """Text encoded in an invoice QR code"""
    return f"{invoice_no}:{total_invoice_value:.2f}"


def invoice_qr_payload(invoice: EInvoice) -> str:
    return qr_payload(invoice.doc_dtls.no, invoice.val_dtls.tot_inv_val)


def generate_qr_png(invoice: EInvoice) -> bytes:
    """Render the invoice QR code as PNG bytes"""
    payload = invoice_qr_payload(invoice)

    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_M,
        box_size=config.QR_BOX_SIZE,
        border=config.QR_BORDER,
        image_factory=PilImage,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer)

    logger.debug(f"Generated QR code for invoice {invoice.doc_dtls.no}")
    return buffer.getvalue()
