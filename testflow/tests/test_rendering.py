# testflow/tests/test_rendering.py

from decimal import Decimal

import pytest

from testflow.errors import ValidationError
from testflow.rendering import (
    DocumentRenderer,
    RenderError,
    amount_in_words,
    get_renderer,
    proforma_totals,
    render,
)
from testflow.workflows import documents

from .factories import CHEM_KEY


@pytest.mark.parametrize(
    "amount,words",
    [
        (0, "Zero Rupees Only"),
        (101, "One Hundred and One Rupees Only"),
        (1180, "One Thousand One Hundred and Eighty Rupees Only"),
        (125000, "One Lakh Twenty Five Thousand Rupees Only"),
        (20000000, "Two Crore Rupees Only"),
        ("99.5", "One Hundred Rupees Only"),
    ],
)
def test_amount_in_words(amount, words):
    assert amount_in_words(amount) == words


def test_proforma_totals_with_tax():
    totals = proforma_totals(
        [
            {"description": "Tensile test", "quantity": 2, "rate": "500"},
            {"description": "Sample cutting", "amount": "0.40"},
        ],
        sgst=9,
        cgst=9,
    )

    assert [line["amount"] for line in totals["lines"]] == [Decimal("1000.00"), Decimal("0.40")]
    assert totals["total_amount"] == Decimal("1000.40")
    assert totals["sgst_amount"] == Decimal("90.04")
    assert totals["total_tax"] == Decimal("180.08")
    assert totals["final_amount"] == Decimal("1180.00")
    assert totals["rounding"] == Decimal("-0.48")
    assert totals["words"] == "One Thousand One Hundred and Eighty Rupees Only"


def test_proforma_totals_rejects_non_numbers():
    with pytest.raises(ValueError):
        proforma_totals([{"description": "x", "rate": "abc"}])


def test_render_reports_missing_layout():
    class NoLayouts:
        pass

    with pytest.raises(RenderError):
        render("ror", {}, renderer=NoLayouts())


def test_get_renderer_with_bad_path(settings):
    settings.TESTFLOW_DOCUMENT_RENDERER = "testflow.nowhere.Renderer"
    with pytest.raises(RenderError):
        get_renderer()


@pytest.mark.django_db
def test_pdf_layouts(make_request):
    test_request = make_request()
    renderer = DocumentRenderer()

    ror = renderer.render_ror(documents.ror_context(test_request, {"project_name": "Metro Line 3"}))
    proforma = renderer.render_proforma(
        documents.proforma_context(
            test_request, {"items": [{"description": "Tensile test", "rate": 500}], "sgst": 9, "cgst": 9}
        )
    )

    atl_id, test_type, material = CHEM_KEY
    sub = test_request.sub_tests.get(atl_id=atl_id, test_type=test_type, material=material)
    sub.equipment_table = "<p>Spectrometer</p>"
    sub.report_artifact = "<p>Carbon within IS 1786 limits.</p>"
    report = renderer.render_report(documents.report_context(test_request, sub))

    for pdf in (ror, proforma, report):
        assert pdf.startswith(b"%PDF")


@pytest.mark.parametrize("amount", ["Infinity", "-Infinity", "NaN", "-5"])
def test_proforma_totals_rejects_non_finite_and_negative(amount):
    with pytest.raises(ValueError):
        proforma_totals([{"description": "x", "amount": amount}])


def test_amount_in_words_rejects_negative_and_infinite():
    with pytest.raises(ValueError):
        amount_in_words(-1)
    with pytest.raises(ValueError):
        amount_in_words("Infinity")


@pytest.mark.django_db
def test_infinite_invoice_line_is_validation_error(make_request, fake_renderer):
    test_request = make_request()
    with pytest.raises(ValidationError):
        documents.generate_proforma(
            test_request.pk, {"items": [{"description": "Tensile test", "amount": "Infinity"}]}
        )
    test_request.refresh_from_db()
    assert test_request.proforma_document is None
    assert fake_renderer.calls == []
