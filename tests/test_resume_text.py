from io import BytesIO

import pytest

from backend.jobhound.services.resume_text import (
    DOCX_MIME,
    PDF_MIME,
    clean_extracted_text,
    extract_text_from_docx_bytes,
    mime_type_for,
)


def test_clean_extracted_text_normalizes_layout():
    raw = "Experience\r\n\r\n\r\n\r\n• Built REST APIs\x07 using   FastAPI.\n●  Devel-\nopment of backend services.\n"
    cleaned = clean_extracted_text(raw)

    assert "\r" not in cleaned
    assert "\x07" not in cleaned
    assert "\n\n\n" not in cleaned
    assert "- Built REST APIs using FastAPI." in cleaned
    assert "- Development of backend services." in cleaned
    # Paragraph breaks survive.
    assert cleaned.startswith("Experience\n\n- Built")


def test_clean_extracted_text_handles_empty():
    assert clean_extracted_text("") == ""
    assert clean_extracted_text(None) == ""


@pytest.mark.parametrize(
    "filename, declared, expected",
    [
        ("cv.pdf", None, PDF_MIME),
        ("CV.DOCX", "application/octet-stream", DOCX_MIME),
        ("cv", "application/pdf", PDF_MIME),
        (None, None, PDF_MIME),
    ],
)
def test_mime_type_for(filename, declared, expected):
    assert mime_type_for(filename, declared) == expected


def test_extract_text_from_docx_bytes_reads_paragraphs_and_tables():
    import docx

    document = docx.Document()
    document.add_paragraph("Jane Doe")
    document.add_paragraph("")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Python"
    table.rows[0].cells[1].text = "8 years"
    buf = BytesIO()
    document.save(buf)

    text = extract_text_from_docx_bytes(buf.getvalue())
    assert text.splitlines() == ["Jane Doe", "Python | 8 years"]
