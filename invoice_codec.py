import json
from typing import Any, List, Tuple

from models import EInvoice


def dump_invoice(invoice: EInvoice) -> str:
    """Serialize an invoice to its stored JSON form"""
    return invoice.model_dump_json(by_alias=True)


def invoice_to_dict(invoice: EInvoice) -> dict:
    return invoice.model_dump(mode="json", by_alias=True)


def load_invoice(raw: str) -> EInvoice:
    """Parse a stored JSON document back into an invoice"""
    return EInvoice.model_validate_json(raw)


def parse_invoice_payload(data: Any) -> Tuple[List[EInvoice], bool]:
    """Accept either a single invoice object or an array of invoices.

    Returns the parsed invoices and whether the payload was a single object.
    Raises pydantic.ValidationError for documents that do not fit the schema
    and ValueError for payloads that are neither an object nor an array.
    """
    if isinstance(data, dict):
        return [EInvoice.model_validate(data)], True
    if isinstance(data, list):
        return [EInvoice.model_validate(entry) for entry in data], False
    raise ValueError("Expected an invoice object or an array of invoices")


def pretty_json(raw: str) -> str:
    """Indent a JSON document for download; returns it unchanged if it does not parse"""
    try:
        return json.dumps(json.loads(raw), indent=2)
    except json.JSONDecodeError:
        return raw
