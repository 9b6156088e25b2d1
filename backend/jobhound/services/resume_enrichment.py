"""
Background enrichment for a freshly created resume row.

Three stages, each allowed to fail on its own:
  1) obtain the file bytes (inline base64 from the request, else storage)
  2) render a thumbnail of the first PDF page
  3) extract raw text (model for PDF, python-docx for DOCX)

Failures are written into the row as visible text instead of being raised, so the
resume never stays on the "Extracting text..." placeholder once the task has run.
"""
import asyncio
import base64
import binascii
import io
import logging
from datetime import datetime, timezone

from ..config import (
    AI_LOG_PAYLOADS,
    AI_MAX_RETRIES,
    AI_TIMEOUT_S,
    EXTRACT_TEMPERATURE,
    GEMINI_API_VERSION,
    GEMINI_BASE_URL,
    GEMINI_EXTRACT_MODEL,
    POPPLER_PATH,
    THUMBNAIL_HEIGHT,
    THUMBNAIL_WIDTH,
)
from ..database import session_scope
from ..models.resume import Resume
from .ai_client import GenerationSettings, InlineFile, gemini_generate_content
from .ai_common import require_ai_key
from .ai_prompts import resume_text_extraction_prompt
from .resume_text import (
    clean_extracted_text,
    extract_text_from_docx_bytes,
    is_docx,
    is_pdf,
    mime_type_for,
)
from .storage import create_signed_url, get_object, put_object
from .task_queue import register_task_handler

logger = logging.getLogger(__name__)

ENRICHMENT_TASK_KIND = "resume_enrichment"


def thumbnail_key(user_id: int, resume_id: int) -> str:
    return f"thumbnails/{int(user_id)}/{int(resume_id)}.png"


def decode_inline_file(file_base64: str) -> bytes:
    raw = (file_base64 or "").strip()
    # Accept data URLs as sent by browsers: data:application/pdf;base64,....
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 payload ({e})") from e
    if not data:
        raise ValueError("empty file payload")
    return data


def render_thumbnail(pdf_bytes: bytes, *, width: int = THUMBNAIL_WIDTH, height: int = THUMBNAIL_HEIGHT) -> bytes:
    """
    Rasterize the first PDF page and crop it to width x height (top-anchored),
    returned as PNG bytes. Requires Poppler for pdf2image.
    """
    from pdf2image import convert_from_bytes  # type: ignore
    from PIL import ImageOps

    pages = convert_from_bytes(
        pdf_bytes,
        dpi=150,
        first_page=1,
        last_page=1,
        fmt="png",
        poppler_path=(POPPLER_PATH or None),  # type: ignore[arg-type]
    )
    if not pages:
        raise ValueError("PDF has no pages")
    img = ImageOps.fit(pages[0].convert("RGB"), (int(width), int(height)), centering=(0.5, 0.0))
    out = io.BytesIO()
    img.save(out, format="PNG")
    return out.getvalue()


async def extract_resume_text(data: bytes, mime_type: str) -> str:
    if is_docx(mime_type):
        return clean_extracted_text(await asyncio.to_thread(extract_text_from_docx_bytes, data))

    api_key = require_ai_key()
    text, meta = await gemini_generate_content(
        api_key=api_key,
        base_url=GEMINI_BASE_URL,
        api_version=GEMINI_API_VERSION,
        model=GEMINI_EXTRACT_MODEL,
        user_text=resume_text_extraction_prompt(),
        files=[InlineFile(mime_type=mime_type, data=data)],
        settings=GenerationSettings(temperature=EXTRACT_TEMPERATURE),
        timeout_s=AI_TIMEOUT_S,
        max_retries=AI_MAX_RETRIES,
        log_payloads=AI_LOG_PAYLOADS,
    )
    logger.info("resume text extracted model=%s latency_ms=%s chars=%s", meta.model, meta.latency_ms, len(text))
    return text.strip()


def _update_resume(resume_id: int, **values) -> None:
    with session_scope() as db:
        resume = db.get(Resume, int(resume_id))
        if resume is None:
            logger.warning("resume_id=%s deleted during enrichment; dropping %s", resume_id, sorted(values))
            return
        for k, v in values.items():
            setattr(resume, k, v)
        resume.updated_at = datetime.now(timezone.utc)
        db.commit()


async def enrich_resume(resume_id: int, *, file_base64: str | None = None) -> None:
    with session_scope() as db:
        resume = db.get(Resume, int(resume_id))
        if resume is None:
            logger.warning("resume_id=%s not found; nothing to enrich", resume_id)
            return
        user_id = resume.user_id
        file_path = resume.file_path
        mime_type = mime_type_for(resume.filename, resume.mime_type)

    # Stage 1: bytes
    try:
        if file_base64:
            data = decode_inline_file(file_base64)
        else:
            data = get_object(file_path)
    except Exception as e:
        logger.warning("resume_id=%s download failed: %s", resume_id, e)
        _update_resume(resume_id, raw_text=f"Error downloading file: {e}")
        return

    # Stage 2: thumbnail
    if is_pdf(mime_type):
        try:
            png = await asyncio.to_thread(render_thumbnail, data)
            key = put_object(thumbnail_key(user_id, resume_id), png)
            _update_resume(resume_id, thumbnail_path=key, thumbnail_url=create_signed_url(key))
        except Exception:
            logger.exception("resume_id=%s thumbnail generation failed", resume_id)

    # Stage 3: text
    try:
        text = await extract_resume_text(data, mime_type)
        if not text:
            raise ValueError("no text found in file")
    except Exception as e:
        logger.warning("resume_id=%s text extraction failed: %s", resume_id, e)
        _update_resume(resume_id, raw_text=f"Error extracting text: {e}")
        return
    _update_resume(resume_id, raw_text=text)


@register_task_handler(ENRICHMENT_TASK_KIND)
async def _resume_enrichment_task(payload: dict) -> None:
    await enrich_resume(int(payload["resume_id"]), file_base64=payload.get("file_base64"))
