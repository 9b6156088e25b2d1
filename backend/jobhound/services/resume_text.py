"""
Local resume text helpers.

PDF text is read by the model (it handles scanned pages and odd layouts better than a
text layer parser); DOCX files are not accepted as model input, so their text is
pulled out here with python-docx and cleaned before it is stored or sent in a prompt.
"""
import io
import re

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

MIME_BY_EXT = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
}

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_MULTISPACE_RE = re.compile(r"[ \t]{2,}")
_MULTINEWLINE_RE = re.compile(r"\n{3,}")
_BULLET_RE = re.compile(r"^[ \t]*[•·●◦▪▫∙⁃‣]+[ \t]*", re.MULTILINE)
_HYPHEN_LINEBREAK_RE = re.compile(r"([A-Za-z])-\n([A-Za-z])")


def mime_type_for(filename: str | None, declared: str | None = None) -> str:
    name = (filename or "").lower()
    for ext, mime in MIME_BY_EXT.items():
        if name.endswith(ext):
            return mime
    return (declared or "").strip() or PDF_MIME


def is_pdf(mime_type: str | None) -> bool:
    return (mime_type or "").lower() == PDF_MIME


def is_docx(mime_type: str | None) -> bool:
    return (mime_type or "").lower() == DOCX_MIME


def extract_text_from_docx_bytes(data: bytes) -> str:
    """
    Extract plain text from DOCX bytes using python-docx.
    """
    import docx  # type: ignore

    d = docx.Document(io.BytesIO(data))
    parts = [p.text for p in d.paragraphs if p.text]
    for table in d.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text and c.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts).strip()


def clean_extracted_text(raw_text: str) -> str:
    """
    Normalize newlines, drop control characters, rejoin hyphenated line breaks,
    unify bullets and collapse runs of whitespace (paragraph breaks are kept).
    """
    text = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS_RE.sub("", text)
    # "devel-\nopment" -> "development"
    text = _HYPHEN_LINEBREAK_RE.sub(r"\1\2", text)
    text = _BULLET_RE.sub("- ", text)
    text = _MULTISPACE_RE.sub(" ", text)
    text = _MULTINEWLINE_RE.sub("\n\n", text)
    return text.strip()
