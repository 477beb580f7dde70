"""Unit tests for invoice total calculation."""

import pytest

from calculator import calculate_totals
from models import EInvoice, Item


def test_single_item_totals(sample_invoice):
    calculate_totals(sample_invoice)

    item = sample_invoice.item_list[0]
    assert item.tot_amt == 30000
    assert item.ass_amt == 30000
    assert item.igst_amt == 5400
    assert item.tot_item_val == 35400

    assert sample_invoice.val_dtls.ass_val == 30000
    assert sample_invoice.val_dtls.igst_val == 5400
    assert sample_invoice.val_dtls.tot_inv_val == 35400


def test_item_amounts_follow_formula():
    invoice = EInvoice(item_list=[Item(qty=3.5, unit_price=199.99, gst_rt=12)])
    calculate_totals(invoice)

    item = invoice.item_list[0]
    assert item.ass_amt == pytest.approx(3.5 * 199.99)
    assert item.igst_amt == pytest.approx(3.5 * 199.99 * 12 / 100)
    assert item.tot_item_val == item.ass_amt + item.igst_amt


def test_totals_sum_items_in_insertion_order():
    items = [
        Item(qty=0.1, unit_price=3, gst_rt=5),
        Item(qty=0.2, unit_price=7, gst_rt=12),
        Item(qty=0.3, unit_price=11, gst_rt=18),
    ]
    invoice = EInvoice(item_list=items)
    calculate_totals(invoice)

    expected_ass = 0.0
    expected_igst = 0.0
    for item in invoice.item_list:
        expected_ass += item.ass_amt
        expected_igst += item.igst_amt

    assert invoice.val_dtls.ass_val == expected_ass
    assert invoice.val_dtls.igst_val == expected_igst
    assert invoice.val_dtls.tot_inv_val == expected_ass + expected_igst


def test_recalculation_is_deterministic(sample_invoice):
    sample_invoice.item_list.append(Item(sl_no="2", qty=1.1, unit_price=0.7, gst_rt=28))
    calculate_totals(sample_invoice)
    first = sample_invoice.val_dtls.model_copy()

    calculate_totals(sample_invoice)
    assert sample_invoice.val_dtls == first


def test_client_supplied_derived_values_are_overwritten():
    invoice = EInvoice(item_list=[Item(qty=1, unit_price=100, gst_rt=18, igst_amt=999, tot_item_val=1)])
    calculate_totals(invoice)

    assert invoice.item_list[0].igst_amt == 18
    assert invoice.item_list[0].tot_item_val == 118


def test_inputs_are_not_modified(sample_invoice):
    calculate_totals(sample_invoice)
    item = sample_invoice.item_list[0]
    assert (item.qty, item.unit_price, item.gst_rt) == (2, 15000, 18)


def test_empty_invoice_has_zero_totals():
    invoice = calculate_totals(EInvoice())
    assert invoice.val_dtls.ass_val == 0
    assert invoice.val_dtls.igst_val == 0
    assert invoice.val_dtls.tot_inv_val == 0
