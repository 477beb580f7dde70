import io
import logging
from xml.sax.saxutils import escape
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.lib.colors import HexColor
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing

from models import EInvoice
from qr_generator import invoice_qr_payload

logger = logging.getLogger(__name__)

QR_SIZE = 1.4 * inch


def format_currency(amount: float) -> str:
    """Format amount as currency"""
    return f"Rs. {amount:,.2f}"


def qr_drawing(payload: str, size: float = QR_SIZE) -> Drawing:
    """Vector QR code scaled into a square drawing"""
    widget = QrCodeWidget(payload)
    x1, y1, x2, y2 = widget.getBounds()
    width = x2 - x1
    height = y2 - y1
    drawing = Drawing(size, size, transform=[size / width, 0, 0, size / height, 0, 0])
    drawing.add(widget)
    return drawing


def _party_lines(title: str, party) -> list:
    lines = [escape(party.lgl_nm) or "-"]
    if party.trd_nm and party.trd_nm != party.lgl_nm:
        lines.append(escape(party.trd_nm))
    for part in (party.addr1, party.addr2, party.loc):
        if part:
            lines.append(escape(part))
    if party.pin:
        lines.append(f"PIN {party.pin}")
    lines.append(f"GSTIN: {escape(party.gstin) or '-'}")
    return [f"<b>{title}</b>"] + lines


def generate_invoice_pdf(invoice: EInvoice) -> bytes:
    """Render a printable tax invoice with its QR code"""
    try:
        buffer = io.BytesIO()

        # Create PDF document
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=54,
            leftMargin=54,
            topMargin=54,
            bottomMargin=36,
            title=f"Invoice {invoice.doc_dtls.no}",
        )

        # Container for the 'Flowable' objects
        elements = []

        # Define styles
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            'CustomTitle',
            parent=styles['Heading1'],
            fontSize=22,
            textColor=HexColor('#2E3440'),
            spaceAfter=24,
            alignment=TA_CENTER
        )

        heading_style = ParagraphStyle(
            'CustomHeading',
            parent=styles['Heading2'],
            fontSize=13,
            textColor=HexColor('#2E3440'),
            spaceAfter=10,
        )

        normal_style = styles['Normal']

        elements.append(Paragraph("TAX INVOICE", title_style))

        # Document details next to the QR code
        invoice_details = [
            ['Invoice Number:', invoice.doc_dtls.no],
            ['Invoice Date:', invoice.doc_dtls.dt or '-'],
            ['Document Type:', invoice.doc_dtls.typ or '-'],
            ['Supply Type:', invoice.tran_dtls.sup_typ or '-'],
        ]

        details_table = Table(invoice_details, colWidths=[1.6*inch, 2.4*inch])
        details_table.setStyle(TableStyle([
            ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
            ('ALIGN', (1, 0), (1, -1), 'LEFT'),
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))

        header_table = Table(
            [[details_table, qr_drawing(invoice_qr_payload(invoice))]],
            colWidths=[4.6*inch, 1.8*inch],
        )
        header_table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
        ]))
        elements.append(header_table)
        elements.append(Spacer(1, 0.3*inch))

        # Seller and buyer
        seller = [Paragraph(line, normal_style) for line in _party_lines("Seller", invoice.seller_dtls)]
        buyer = [Paragraph(line, normal_style) for line in _party_lines("Buyer", invoice.buyer_dtls)]
        parties_table = Table([[seller, buyer]], colWidths=[3.2*inch, 3.2*inch])
        parties_table.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
        elements.append(parties_table)
        elements.append(Spacer(1, 0.3*inch))

        # Items Table
        elements.append(Paragraph("Items:", heading_style))
        items_data = [['#', 'Description', 'HSN/SAC', 'Qty', 'Unit Price', 'Taxable', 'GST', 'Total']]

        for item in invoice.item_list:
            items_data.append([
                item.sl_no,
                Paragraph(escape(item.prd_desc) or '-', normal_style),
                item.hsn_cd,
                f"{item.qty:g} {item.unit}".strip(),
                format_currency(item.unit_price),
                format_currency(item.ass_amt),
                f"{item.gst_rt:g}%",
                format_currency(item.tot_item_val),
            ])

        items_data.append(['', '', '', '', '', '', 'Taxable:', format_currency(invoice.val_dtls.ass_val)])
        items_data.append(['', '', '', '', '', '', 'IGST:', format_currency(invoice.val_dtls.igst_val)])
        items_data.append(['', '', '', '', '', '', 'Total:', format_currency(invoice.val_dtls.tot_inv_val)])

        items_table = Table(
            items_data,
            colWidths=[0.3*inch, 1.8*inch, 0.7*inch, 0.7*inch, 0.8*inch, 0.8*inch, 0.6*inch, 0.9*inch],
        )
        items_table.setStyle(TableStyle([
            # Header row
            ('BACKGROUND', (0, 0), (-1, 0), HexColor('#E5E9F0')),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 9),
            ('ALIGN', (0, 0), (-1, 0), 'CENTER'),

            # Data rows
            ('FONTSIZE', (0, 1), (-1, -1), 8),
            ('ALIGN', (3, 1), (-1, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),

            # Totals rows
            ('FONTNAME', (6, -3), (-1, -1), 'Helvetica-Bold'),
            ('LINEABOVE', (6, -3), (-1, -3), 1, colors.black),
            ('LINEABOVE', (6, -1), (-1, -1), 1.5, colors.black),

            # Grid
            ('GRID', (0, 0), (-1, -4), 0.5, HexColor('#D8DEE9')),
            ('BOX', (0, 0), (-1, -1), 1, HexColor('#2E3440')),
        ]))

        elements.append(items_table)
        elements.append(Spacer(1, 0.4*inch))
        elements.append(Paragraph(
            f"Scan the QR code to verify invoice {escape(invoice.doc_dtls.no)} "
            f"for {format_currency(invoice.val_dtls.tot_inv_val)}.",
            normal_style,
        ))

        # Build PDF
        doc.build(elements)

        logger.info(f"Generated PDF for invoice {invoice.doc_dtls.no}")
        return buffer.getvalue()

    except Exception as e:
        logger.error(f"Error generating PDF: {str(e)}")
        raise
