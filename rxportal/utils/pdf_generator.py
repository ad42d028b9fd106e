"""
PDF Documents

FLOW OVERVIEW
- StatementPDFGenerator.create_pdf(data, profile=None) -> bytes
  • Company header and contact line, ACCOUNT STATEMENT title with period and generation date.
  • Account holder block (company or name, email, billing address) or a placeholder.
  • Summary: opening balance, purchases, payments, closing balance.
  • Transactions table (Date, Description, Debit, Credit, Balance) with the header repeated
    on every page; an empty period prints a single "No transactions" row.
  • Footer and page number drawn on every page.
- InvoicePDFGenerator.create_pdf(order, summary=None) -> bytes
  • Invoice header, bill-to/ship-to, line items, totals block, paid and balance due.
- generate_statement_filename(data, profile=None)
  • statement_<company | first_last | user id>_<start>_to_<end>_<today>.pdf

Both generators work from a BytesIO buffer and return the rendered bytes.
"""

import logging
import re
from datetime import date, datetime
from io import BytesIO

from flask import current_app
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from .money import format_money, to_decimal
from .payment_summary import calculate_payment_summary
from .prom_metrics import observe_document

logger = logging.getLogger(__name__)

HEADER_BLUE = colors.HexColor('#2980b9')
MUTED = colors.HexColor('#7f8c8d')
FOOTER_TEXT = ("This statement was generated by {company}. Please contact us if you have any "
               "questions about your account.")


def _identifier(text: str) -> str:
    return re.sub(r'[^a-zA-Z0-9\-_]', '_', text)[:20]


def generate_statement_filename(data, profile=None, today: date = None) -> str:
    identifier = data.user_id
    if profile is not None and profile.company_name:
        identifier = _identifier(profile.company_name)
    elif profile is not None and profile.first_name and profile.last_name:
        identifier = _identifier(f"{profile.first_name}_{profile.last_name}")
    stamp = (today or date.today()).isoformat()
    return (f"statement_{identifier}_{data.start_date:%Y-%m-%d}_to_{data.end_date:%Y-%m-%d}"
            f"_{stamp}.pdf")


def _address_lines(address):
    if not address:
        return []
    lines = []
    if address.get('street'):
        lines.append(address['street'])
    city_state_zip = ', '.join(part for part in (address.get('city'), address.get('state')) if part)
    if address.get('zip_code') or address.get('zip'):
        city_state_zip = f"{city_state_zip} {address.get('zip_code') or address.get('zip')}".strip()
    if city_state_zip:
        lines.append(city_state_zip)
    return lines


class _DocumentBase:
    def __init__(self, company_name=None, contact_info=None):
        self.company_name = company_name or current_app.config.get('COMPANY_NAME', '9RX LLC')
        self.contact_info = contact_info or current_app.config.get('COMPANY_CONTACT', '')
        self.styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle('CompanyTitle', parent=self.styles['Heading1'],
                                          fontSize=20, spaceAfter=4)
        self.small_style = ParagraphStyle('Small', parent=self.styles['Normal'], fontSize=8,
                                          textColor=MUTED)
        self.right_style = ParagraphStyle('Right', parent=self.styles['Normal'], alignment=2)
        self.logger = logging.getLogger(__name__)

    def _header(self, title, subtitle_lines):
        elements = [
            Paragraph(self.contact_info, self.small_style),
            Spacer(1, 6),
        ]
        header = Table(
            [[Paragraph(self.company_name, self.title_style),
              Paragraph(f"<b>{title}</b><br/>" + '<br/>'.join(subtitle_lines), self.right_style)]],
            colWidths=[260, 252],
        )
        header.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
        elements.append(header)
        elements.append(Spacer(1, 16))
        return elements

    def _render(self, elements, footer_text):
        buffer = BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=letter, rightMargin=50, leftMargin=50,
                                topMargin=50, bottomMargin=60)
        generated = datetime.now().strftime('%m/%d/%Y at %I:%M %p')

        def draw_footer(canvas, document):
            canvas.saveState()
            canvas.setFont('Helvetica', 8)
            canvas.setFillColor(MUTED)
            width = document.pagesize[0]
            canvas.drawCentredString(width / 2, 40, footer_text)
            canvas.drawCentredString(width / 2, 30, f"Generated on {generated}")
            canvas.drawRightString(width - document.rightMargin, 30, f"Page {document.page}")
            canvas.restoreState()

        doc.build(elements, onFirstPage=draw_footer, onLaterPages=draw_footer)
        return buffer.getvalue()


class StatementPDFGenerator(_DocumentBase):
    """Account statement PDF"""

    def create_pdf(self, data, profile=None) -> bytes:
        try:
            content = self._render(self._statement_elements(data, profile),
                                   FOOTER_TEXT.format(company=self.company_name))
        except Exception as e:
            observe_document('statement', False)
            self.logger.error(f"Statement PDF generation failed for {data.user_id}: {e}")
            raise
        observe_document('statement', True)
        return content

    def _statement_elements(self, data, profile):
        styles = self.styles
        elements = self._header('ACCOUNT STATEMENT', [
            f"Statement Period: {data.start_date:%m/%d/%Y} - {data.end_date:%m/%d/%Y}",
            f"Generated: {date.today():%m/%d/%Y}",
        ])

        elements.append(Paragraph('<b>Account Holder:</b>', styles['Normal']))
        if profile is not None:
            elements.append(Paragraph(profile.display_name, styles['Normal']))
            if profile.email:
                elements.append(Paragraph(profile.email, styles['Normal']))
            for line in _address_lines(profile.billing_address):
                elements.append(Paragraph(line, styles['Normal']))
        else:
            elements.append(Paragraph('Account information not available', styles['Normal']))
        elements.append(Spacer(1, 16))

        elements.append(Paragraph('Statement Summary', styles['Heading3']))
        summary = Table([
            ['Opening Balance:', format_money(data.opening_balance),
             'Total Payments:', format_money(data.total_payments)],
            ['Total Purchases:', format_money(data.total_purchases),
             'Closing Balance:', format_money(data.closing_balance)],
        ], colWidths=[100, 156, 100, 156])
        summary.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
            ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#f4f6f7')),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))
        elements.append(summary)
        elements.append(Spacer(1, 16))

        rows = [['Date', 'Description', 'Debit', 'Credit', 'Balance']]
        if not data.transactions:
            rows.append(['No transactions found for this period', '', '', '', ''])
        for transaction in data.transactions:
            debit = to_decimal(transaction.debit_amount)
            credit = to_decimal(transaction.credit_amount)
            rows.append([
                f"{transaction.transaction_date:%b %d, %Y}",
                Paragraph(transaction.description or 'N/A', styles['BodyText']),
                format_money(debit) if debit > 0 else '',
                format_money(credit) if credit > 0 else '',
                format_money(transaction.balance),
            ])

        table = Table(rows, colWidths=[72, 220, 70, 70, 80], repeatRows=1)
        style = [
            ('BACKGROUND', (0, 0), (-1, 0), HEADER_BLUE),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
            ('ALIGN', (2, 1), (-1, -1), 'RIGHT'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]
        if not data.transactions:
            style.append(('SPAN', (0, 1), (-1, 1)))
        table.setStyle(TableStyle(style))
        elements.append(table)
        return elements


class InvoicePDFGenerator(_DocumentBase):
    """Invoice for a single order"""

    def create_pdf(self, order, summary=None) -> bytes:
        summary = summary or calculate_payment_summary(order)
        try:
            content = self._render(self._invoice_elements(order, summary),
                                   f"Thank you for your business. {self.company_name}")
        except Exception as e:
            observe_document('invoice', False)
            self.logger.error(f"Invoice PDF generation failed for order {order.order_number}: {e}")
            raise
        observe_document('invoice', True)
        return content

    def _invoice_elements(self, order, summary):
        styles = self.styles
        profile = order.profile
        created = order.created_at or datetime.utcnow()
        subtitle = [f"Invoice #{order.order_number}", f"Date: {created:%m/%d/%Y}"]
        if order.po_number:
            subtitle.append(f"PO #: {order.po_number}")
        elements = self._header('INVOICE', subtitle)

        bill_to = ['<b>Bill To:</b>', profile.display_name if profile else '']
        bill_to += _address_lines(order.billing_address or (profile.billing_address if profile else None))
        if profile is not None and profile.email:
            bill_to.append(profile.email)
        ship_to = ['<b>Ship To:</b>'] + (_address_lines(order.shipping_address) or ['Same as billing'])
        parties = Table([[Paragraph('<br/>'.join(bill_to), styles['Normal']),
                          Paragraph('<br/>'.join(ship_to), styles['Normal'])]], colWidths=[256, 256])
        parties.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
        elements.append(parties)
        elements.append(Spacer(1, 20))

        rows = [['SKU', 'Product', 'Size', 'Qty', 'Price', 'Total']]
        for item in order.items:
            rows.append([
                item.sku or '',
                Paragraph(item.product_name or '', styles['BodyText']),
                item.size_label or '',
                str(item.quantity),
                format_money(item.unit_price),
                format_money(item.line_total),
            ])
        table = Table(rows, colWidths=[60, 190, 70, 40, 70, 82], repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#333333')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('ALIGN', (3, 0), (-1, -1), 'RIGHT'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))
        elements.append(table)
        elements.append(Spacer(1, 16))

        totals = [['Subtotal:', format_money(order.subtotal)]]
        if to_decimal(order.discount_amount) > 0:
            totals.append(['Discount:', f"-{format_money(order.discount_amount)}"])
        totals.append(['Shipping:', format_money(order.shipping_cost)])
        totals.append(['Tax:', format_money(order.tax_amount)])
        totals.append(['Total:', format_money(order.total_amount)])
        totals.append(['Paid:', format_money(summary.paid_amount)])
        totals.append(['Balance Due:', format_money(summary.balance_due)])

        totals_table = Table(totals, colWidths=[90, 82], hAlign='RIGHT')
        totals_table.setStyle(TableStyle([
            ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
            ('FONTNAME', (0, -3), (-1, -3), 'Helvetica-Bold'),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('LINEABOVE', (0, -3), (-1, -3), 0.5, colors.grey),
        ]))
        elements.append(totals_table)
        return elements
