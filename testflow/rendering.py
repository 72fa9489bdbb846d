# testflow/rendering.py
"""
Fixed-layout A4 rendering of lab documents (ROR, Proforma, test report).

The renderer is looked up from settings.TESTFLOW_DOCUMENT_RENDERER so tests
and deployments can substitute their own implementation. Any failure is
raised as RenderError; callers translate it to DependencyError.
"""
from __future__ import annotations

import base64
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

from django.conf import settings
from django.utils.module_loading import import_string
from fpdf import FPDF
from fpdf.enums import XPos, YPos

DEFAULT_RENDERER = "testflow.rendering.DocumentRenderer"

LAB_NAME = "ATL Material Testing Laboratory"


class RenderError(Exception):
    pass


def get_renderer():
    path = getattr(settings, "TESTFLOW_DOCUMENT_RENDERER", DEFAULT_RENDERER)
    try:
        return import_string(path)()
    except ImportError as exc:
        raise RenderError(f"Document renderer {path!r} cannot be loaded: {exc}") from exc


def encode_pdf(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_pdf(blob: str) -> bytes:
    return base64.b64decode(blob.encode("ascii"))


# ===============================================================
# Amounts
# ===============================================================

_ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
_TEENS = [
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen",
    "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]


def _below_thousand(n: int) -> List[str]:
    words: List[str] = []
    if n >= 100:
        words += [_ONES[n // 100], "Hundred"]
        n %= 100
        if n:
            words.append("and")
    if n >= 20:
        words.append(_TENS[n // 10])
        n %= 10
        if n:
            words.append(_ONES[n])
    elif n >= 10:
        words.append(_TEENS[n - 10])
    elif n:
        words.append(_ONES[n])
    return words


def amount_in_words(amount) -> str:
    """
    Indian numbering: 1,25,000 -> "One Lakh Twenty Five Thousand Rupees Only".
    """
    number = int(_money(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if number == 0:
        return "Zero Rupees Only"

    words: List[str] = []
    for divisor, label in ((10_000_000, "Crore"), (100_000, "Lakh"), (1_000, "Thousand")):
        chunk = number // divisor
        number %= divisor
        if chunk:
            # Crore counts above 999 are spelled recursively.
            if chunk >= 1000:
                words += amount_in_words(chunk).replace(" Rupees Only", "").split()
            else:
                words += _below_thousand(chunk)
            words.append(label)
    words += _below_thousand(number)
    return " ".join(words) + " Rupees Only"


def _money(value) -> Decimal:
    """
    Parse an invoice figure. Only finite, non-negative amounts are accepted.
    """
    try:
        amount = Decimal(str(value if value not in (None, "") else "0"))
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    if amount < 0:
        raise ValueError(f"Amount cannot be negative: {value!r}")
    return amount


def proforma_totals(items: Sequence[Dict[str, Any]], sgst=0, cgst=0) -> Dict[str, Any]:
    """
    Line amounts, SGST/CGST, rounding to whole rupees and amount in words.
    """
    cents = Decimal("0.01")
    lines = []
    total = Decimal("0")
    for idx, item in enumerate(items, start=1):
        qty = _money(item.get("quantity", 1))
        rate = _money(item.get("rate", 0))
        amount = _money(item["amount"]) if item.get("amount") not in (None, "") else qty * rate
        total += amount
        lines.append(
            {
                "srno": idx,
                "description": str(item.get("description") or ""),
                "quantity": qty,
                "rate": rate.quantize(cents),
                "amount": amount.quantize(cents),
            }
        )

    sgst_rate = _money(sgst)
    cgst_rate = _money(cgst)
    sgst_amount = (total * sgst_rate / 100).quantize(cents, rounding=ROUND_HALF_UP)
    cgst_amount = (total * cgst_rate / 100).quantize(cents, rounding=ROUND_HALF_UP)
    total_tax = sgst_amount + cgst_amount
    final = total + total_tax
    rounded = final.quantize(Decimal("1"), rounding=ROUND_HALF_UP)

    return {
        "lines": lines,
        "total_amount": total.quantize(cents),
        "sgst": sgst_rate,
        "cgst": cgst_rate,
        "sgst_amount": sgst_amount,
        "cgst_amount": cgst_amount,
        "total_tax": total_tax,
        "rounding": (rounded - final).quantize(cents),
        "final_amount": rounded.quantize(cents),
        "words": amount_in_words(rounded),
        "tax_words": amount_in_words(total_tax),
    }


# ===============================================================
# PDF
# ===============================================================

def _latin1(text: Any) -> str:
    # Core fonts are latin-1 only.
    return str(text if text is not None else "").encode("latin-1", "replace").decode("latin-1")


class _Sheet:
    """
    A4 portrait page flow with a lab header on the first page.
    """

    def __init__(self, title: str, number: str = ""):
        self.pdf = FPDF(orientation="P", unit="mm", format="A4")
        self.pdf.set_auto_page_break(auto=True, margin=15)
        self.pdf.set_title(_latin1(title))
        self.pdf.set_author(LAB_NAME)
        self.pdf.add_page()

        self.pdf.set_font("Helvetica", "B", 14)
        self.pdf.cell(0, 8, _latin1(LAB_NAME), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.pdf.set_font("Helvetica", "B", 12)
        self.pdf.cell(0, 7, _latin1(title), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        if number:
            self.pdf.set_font("Helvetica", "", 10)
            self.pdf.cell(0, 6, _latin1(f"No: {number}"), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.pdf.ln(2)

    @property
    def content_width(self) -> float:
        return self.pdf.w - self.pdf.l_margin - self.pdf.r_margin

    def heading(self, text: str) -> None:
        self.pdf.ln(2)
        self.pdf.set_font("Helvetica", "B", 11)
        self.pdf.cell(0, 7, _latin1(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def pairs(self, rows: Sequence[Tuple[str, Any]]) -> None:
        label_w = 55
        for label, value in rows:
            self.pdf.set_font("Helvetica", "B", 9)
            self.pdf.cell(label_w, 6, _latin1(label), border=1)
            self.pdf.set_font("Helvetica", "", 9)
            self.pdf.multi_cell(self.content_width - label_w, 6, _latin1(value), border=1,
                                new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[Any]], widths: Sequence[float]) -> None:
        scale = self.content_width / float(sum(widths))
        cols = [w * scale for w in widths]

        self.pdf.set_font("Helvetica", "B", 8)
        for header, w in zip(headers, cols):
            self.pdf.cell(w, 6, _latin1(header), border=1, align="C")
        self.pdf.ln()

        self.pdf.set_font("Helvetica", "", 8)
        for row in rows:
            for value, w in zip(row, cols):
                text = _latin1(value)
                # Clip long cells to one line; full text lives in the record.
                while text and self.pdf.get_string_width(text) > w - 2:
                    text = text[:-1]
                self.pdf.cell(w, 6, text, border=1)
            self.pdf.ln()

    def paragraph(self, text: str) -> None:
        self.pdf.set_font("Helvetica", "", 9)
        self.pdf.multi_cell(0, 5, _latin1(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def markup(self, html: str) -> None:
        if not html:
            return
        self.pdf.set_font("Helvetica", "", 9)
        self.pdf.write_html(_latin1(html))
        self.pdf.ln(2)

    def build(self) -> bytes:
        return bytes(self.pdf.output())


class DocumentRenderer:
    """
    Default fpdf2 renderer. Each method takes a plain dict and returns PDF bytes.
    """

    def render_ror(self, context: Dict[str, Any]) -> bytes:
        try:
            sheet = _Sheet("Review of Request", context.get("ror_number", ""))
            sheet.pairs(
                [
                    ("Date", context.get("date", "")),
                    ("Customer", context.get("customer_name", "")),
                    ("Project", context.get("project_name", "")),
                    ("Site address", context.get("site_address", "")),
                    ("Billing address", context.get("billing_address", "")),
                    ("Email", context.get("email", "")),
                    ("Contact no.", context.get("contact_no", "")),
                    ("Completion date", context.get("completion_date", "")),
                    ("Days required", context.get("days_required", "")),
                ]
            )

            sheet.heading("Tests")
            sheet.table(
                ["#", "ATL ID", "Material", "Material ID", "Qty", "Tests", "Standards", "Remarks"],
                [
                    (
                        t["id"], t["atl_id"], t["material"], t["material_id"],
                        t["quantity"], t["tests"], t["standards"], t["remarks"],
                    )
                    for t in context.get("tests", [])
                ],
                [6, 22, 22, 20, 10, 30, 30, 20],
            )

            sheet.heading("Review of requirements")
            sheet.pairs(
                [(label, answer or "N/A") for label, answer in context.get("requirements", [])]
            )
            return sheet.build()
        except Exception as exc:
            raise RenderError(f"ROR rendering failed: {exc}") from exc

    def render_proforma(self, context: Dict[str, Any]) -> bytes:
        try:
            totals = context["totals"]
            buyer = context.get("buyer", {})

            sheet = _Sheet("Proforma Invoice", context.get("invoice_no", ""))
            sheet.pairs(
                [
                    ("Date", context.get("date", "")),
                    ("Mode of payment", context.get("mode", "CASH")),
                    ("Buyer", buyer.get("name", "")),
                    ("Address", buyer.get("address", "")),
                    ("GSTIN", buyer.get("gstin", "")),
                    ("PAN", buyer.get("pan", "")),
                ]
            )

            sheet.heading("Particulars")
            sheet.table(
                ["Sr", "Description", "HSN/SAC", "Qty", "Rate", "Per", "Amount"],
                [
                    (
                        line["srno"], line["description"], context.get("hsn", ""),
                        line["quantity"], line["rate"], "unit", line["amount"],
                    )
                    for line in totals["lines"]
                ],
                [8, 60, 20, 12, 20, 12, 25],
            )

            sheet.pairs(
                [
                    ("Total", totals["total_amount"]),
                    (f"SGST @ {totals['sgst']}%", totals["sgst_amount"]),
                    (f"CGST @ {totals['cgst']}%", totals["cgst_amount"]),
                    ("Rounding", totals["rounding"]),
                    ("Amount payable", totals["final_amount"]),
                    ("In words", totals["words"]),
                    ("Tax in words", totals["tax_words"]),
                ]
            )
            return sheet.build()
        except Exception as exc:
            raise RenderError(f"Proforma rendering failed: {exc}") from exc

    def render_report(self, context: Dict[str, Any]) -> bytes:
        try:
            sheet = _Sheet("Test Report", context.get("atl_id", ""))
            sheet.pairs(
                [
                    ("Test request", context.get("request_id", "")),
                    ("Customer", context.get("client_name", "")),
                    ("Material", context.get("material", "")),
                    ("Material ID", context.get("material_id", "")),
                    ("Test type", context.get("test_type", "")),
                    ("Quantity", context.get("quantity", "")),
                    ("Date of testing", context.get("test_date", "")),
                    ("Test period", context.get("test_period", "")),
                ]
            )

            measurements = context.get("measurements") or []
            if measurements:
                sheet.heading("Results")
                sheet.table(
                    ["Test", "Standard", "Result", "Unit"],
                    [
                        (m.get("test", ""), m.get("standard", ""), m.get("result", ""), m.get("unit", ""))
                        for m in measurements
                    ],
                    [40, 40, 25, 15],
                )

            for title, key in (
                ("Equipment used", "equipment_table"),
                ("Observations", "result_table"),
                ("Report", "report_artifact"),
            ):
                if context.get(key):
                    sheet.heading(title)
                    sheet.markup(context[key])

            if context.get("remarks"):
                sheet.heading("Remarks")
                sheet.paragraph(context["remarks"])
            return sheet.build()
        except Exception as exc:
            raise RenderError(f"Report rendering failed: {exc}") from exc


def render(kind: str, context: Dict[str, Any], renderer: Optional[Any] = None) -> bytes:
    renderer = renderer or get_renderer()
    method = getattr(renderer, f"render_{kind}", None)
    if method is None:
        raise RenderError(f"Renderer has no '{kind}' layout.")
    data = method(context)
    if not isinstance(data, (bytes, bytearray)) or not data:
        raise RenderError(f"Renderer returned no {kind} document.")
    return bytes(data)
