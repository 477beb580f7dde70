from models import EInvoice


def calculate_totals(invoice: EInvoice) -> EInvoice:
    """Populate every derived item amount and the invoice value details.

    Amounts stay unrounded floats. Totals are accumulated in item order so
    repeated runs over the same invoice give identical results.
    """
    total_ass_val = 0.0
    total_igst_val = 0.0

    for item in invoice.item_list:
        item.tot_amt = item.qty * item.unit_price
        item.ass_amt = item.tot_amt
        item.igst_amt = item.ass_amt * item.gst_rt / 100
        item.tot_item_val = item.ass_amt + item.igst_amt

        total_ass_val += item.ass_amt
        total_igst_val += item.igst_amt

    invoice.val_dtls.ass_val = total_ass_val
    invoice.val_dtls.igst_val = total_igst_val
    invoice.val_dtls.tot_inv_val = total_ass_val + total_igst_val
    return invoice
