"""ReportLab invoice renderer

Builds the document from four sections: company header, invoice details,
line items and the amount breakdown.
"""

from io import BytesIO
from decimal import Decimal
from typing import List, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from src.app.services.pdf_service import PdfService
from src.domain.invoice import Invoice, InvoiceStatus
from src.domain.invoice_line_item import InvoiceLineItem

INK = colors.HexColor("#1F2D3D")
MUTED = colors.HexColor("#8492A6")
RULE = colors.HexColor("#D3DCE6")
STRIPE = colors.HexColor("#F9FAFC")

STATUS_COLORS = {
    InvoiceStatus.PAID: colors.HexColor("#13CE66"),
    InvoiceStatus.PENDING: colors.HexColor("#FFBA00"),
    InvoiceStatus.FAILED: colors.HexColor("#FF4949"),
    InvoiceStatus.REFUNDED: colors.HexColor("#7E5BEF"),
}

# Description, quantity, unit price, amount
COLUMNS = [82 * mm, 22 * mm, 32 * mm, 34 * mm]

DATE = "%Y-%m-%d"
TIMESTAMP = "%Y-%m-%d %H:%M UTC"


class ReportLabPdfService(PdfService):
    """PdfService backed by ReportLab platypus flowables"""

    def generate_invoice(
        self,
        invoice: Invoice,
        line_items: List[InvoiceLineItem],
        company_name: str,
        company_address: str,
    ) -> bytes:
        styles = self._styles(invoice.status)

        flowables = [
            Paragraph(company_name, styles["company"]),
            Paragraph(company_address, styles["muted"]),
            Spacer(1, 8 * mm),
            Paragraph(f"Invoice {invoice.invoice_number} ({invoice.status.value})", styles["status"]),
            self._details_table(invoice),
            Spacer(1, 8 * mm),
            Paragraph("Billed to", styles["label"]),
            Paragraph(invoice.tenant_id, styles["body"]),
            Spacer(1, 8 * mm),
            self._line_items_table(invoice.currency, line_items, styles["body"]),
            Spacer(1, 4 * mm),
            self._totals_table(invoice),
        ]
        if invoice.notes:
            flowables.append(Spacer(1, 10 * mm))
            flowables.append(Paragraph(invoice.notes, styles["muted"]))

        with BytesIO() as buffer:
            document = SimpleDocTemplate(
                buffer,
                pagesize=A4,
                leftMargin=18 * mm,
                rightMargin=18 * mm,
                topMargin=18 * mm,
                bottomMargin=18 * mm,
                title=invoice.invoice_number,
            )
            document.build(flowables)
            return buffer.getvalue()

    @staticmethod
    def _styles(status: InvoiceStatus) -> dict:
        base = getSampleStyleSheet()
        return {
            "company": ParagraphStyle("Company", parent=base["Title"], alignment=0, fontSize=20, textColor=INK),
            "status": ParagraphStyle(
                "Status",
                parent=base["Heading3"],
                textColor=STATUS_COLORS.get(status, MUTED),
                spaceAfter=6 * mm,
            ),
            "label": ParagraphStyle("Label", parent=base["Normal"], fontName="Helvetica-Bold", fontSize=9),
            "body": ParagraphStyle("Body", parent=base["Normal"], fontSize=9),
            "muted": ParagraphStyle("Muted", parent=base["Normal"], fontSize=9, textColor=MUTED),
        }

    @staticmethod
    def _details_table(invoice: Invoice) -> Table:
        period = (
            f"{invoice.billing_period_start.strftime(DATE)} - "
            f"{invoice.billing_period_end.strftime(DATE)}"
        )
        rows = [
            ("Period", period),
            ("Issued", invoice.created_at.strftime(TIMESTAMP)),
            ("Due", invoice.due_date.strftime(DATE)),
            ("Currency", invoice.currency),
        ]
        if invoice.paid_at:
            rows.append(("Paid", invoice.paid_at.strftime(TIMESTAMP)))

        table = Table(rows, colWidths=[30 * mm, 90 * mm], hAlign="LEFT")
        table.setStyle(
            TableStyle(
                [
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("TEXTCOLOR", (0, 0), (0, -1), MUTED),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
                ]
            )
        )
        return table

    @staticmethod
    def _line_items_table(currency: str, line_items: List[InvoiceLineItem], body_style) -> Table:
        rows = [["Item", "Qty", "Unit price", "Amount"]]
        rows.extend(
            [
                Paragraph(item.description, body_style),
                f"{item.quantity:,}",
                _money(currency, item.unit_price),
                _money(currency, item.total_price),
            ]
            for item in line_items
        )

        table = Table(rows, colWidths=COLUMNS, repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), INK),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                    ("LINEBELOW", (0, 1), (-1, -1), 0.25, RULE),
                    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, STRIPE]),
                    ("TOPPADDING", (0, 0), (-1, -1), 5),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
                ]
            )
        )
        return table

    @staticmethod
    def _totals_table(invoice: Invoice) -> Table:
        rows = [
            ["", "", label, _money(invoice.currency, amount)]
            for label, amount in _breakdown(invoice)
            if amount
        ]
        rows.append(["", "", "Total due", _money(invoice.currency, invoice.total_amount)])

        table = Table(rows, colWidths=COLUMNS)
        table.setStyle(
            TableStyle(
                [
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
                    ("TEXTCOLOR", (2, 0), (2, -2), MUTED),
                    ("FONTNAME", (2, -1), (-1, -1), "Helvetica-Bold"),
                    ("FONTSIZE", (2, -1), (-1, -1), 11),
                    ("LINEABOVE", (2, -1), (-1, -1), 1, INK),
                ]
            )
        )
        return table


def _breakdown(invoice: Invoice) -> List[Tuple[str, Decimal]]:
    # Zero rows are dropped by the caller
    return [
        ("Subscription", invoice.base_subscription_amount),
        ("Agent add-ons", invoice.agent_addons_amount),
        ("Usage overage", invoice.usage_overage_amount),
        ("Discount", -invoice.discount_amount),
        ("Tax", invoice.tax_amount),
    ]


def _money(currency: str, amount: Decimal) -> str:
    return f"{currency} {amount:,.2f}"
