import re
from typing import Optional

from models import EInvoice

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][0-9A-Z]Z[0-9A-Z]$")


class InvoiceValidationError(Exception):
    """Raised when an invoice breaks a business rule"""

    def __init__(self, field: str, message: str, invoice_no: Optional[str] = None):
        self.field = field
        self.message = message
        self.invoice_no = invoice_no
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.invoice_no is not None:
            return f"Invoice {self.invoice_no}: {self.message}"
        return self.message


def is_valid_gstin(gstin: str) -> bool:
    return bool(GSTIN_PATTERN.match(gstin or ""))


def validate_invoice(invoice: EInvoice) -> None:
    """Check seller GSTIN format and item quantity/price rules"""
    if not is_valid_gstin(invoice.seller_dtls.gstin):
        raise InvoiceValidationError("SellerDtls.Gstin", "invalid seller GSTIN format")

    for index, item in enumerate(invoice.item_list):
        # Zero quantity is accepted, a zero price is not; NaN fails both
        if not item.qty >= 0:
            raise InvoiceValidationError(f"ItemList[{index}].Qty", "quantity cannot be negative")
        if not item.unit_price > 0:
            raise InvoiceValidationError(f"ItemList[{index}].UnitPrice", "unit price must be greater than zero")
