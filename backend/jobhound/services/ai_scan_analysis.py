import logging
from dataclasses import dataclass
from typing import AsyncIterator

from ..config import (
    AI_LOG_PAYLOADS,
    AI_MAX_RETRIES,
    AI_TIMEOUT_S,
    GEMINI_API_VERSION,
    GEMINI_BASE_URL,
    GEMINI_SCAN_MODEL,
    SCAN_TEMPERATURE,
)
from .ai_client import (
    GeminiMeta,
    GenerationSettings,
    InlineFile,
    gemini_generate_content,
    gemini_stream_content,
)
from .ai_common import require_ai_key
from .ai_prompts import scan_system_prompt, scan_user_prompt
from .resume_text import clean_extracted_text, extract_text_from_docx_bytes, is_docx


logger = logging.getLogger(__name__)

_MAX_RESUME_PROMPT_CHARS = 20_000


@dataclass(frozen=True)
class ScanInput:
    job_title: str | None
    company: str | None
    job_description: str | None
    resume_bytes: bytes
    resume_mime_type: str


def scan_settings() -> GenerationSettings:
    return GenerationSettings(
        temperature=SCAN_TEMPERATURE,
        top_p=0.8,
        top_k=40,
        max_output_tokens=2048,
        response_mime_type="application/json",
    )


def build_scan_request(inp: ScanInput) -> tuple[str, list[InlineFile]]:
    """
    Returns (user_text, files). PDFs travel as inline data; DOCX text is extracted
    locally and appended to the prompt because the model does not accept the format.
    """
    user_text = scan_user_prompt(
        job_title=inp.job_title,
        company=inp.company,
        job_description=inp.job_description,
    )
    if is_docx(inp.resume_mime_type):
        resume_text = clean_extracted_text(extract_text_from_docx_bytes(inp.resume_bytes))
        user_text += "\n\nResume:\n" + resume_text[:_MAX_RESUME_PROMPT_CHARS]
        return user_text, []
    return user_text, [InlineFile(mime_type=inp.resume_mime_type, data=inp.resume_bytes)]


async def analyze_resume_against_job(inp: ScanInput) -> tuple[str, GeminiMeta]:
    """Single-shot scan; returns the raw model text for reconciliation."""
    api_key = require_ai_key()
    user_text, files = build_scan_request(inp)
    text, meta = await gemini_generate_content(
        api_key=api_key,
        base_url=GEMINI_BASE_URL,
        api_version=GEMINI_API_VERSION,
        model=GEMINI_SCAN_MODEL,
        user_text=user_text,
        system_text=scan_system_prompt(),
        files=files,
        settings=scan_settings(),
        timeout_s=AI_TIMEOUT_S,
        max_retries=AI_MAX_RETRIES,
        log_payloads=AI_LOG_PAYLOADS,
    )
    logger.info("scan analysis done model=%s latency_ms=%s chars=%s", meta.model, meta.latency_ms, len(text))
    return text, meta


async def stream_resume_analysis(inp: ScanInput) -> AsyncIterator[str]:
    api_key = require_ai_key()
    user_text, files = build_scan_request(inp)
    async for chunk in gemini_stream_content(
        api_key=api_key,
        base_url=GEMINI_BASE_URL,
        api_version=GEMINI_API_VERSION,
        model=GEMINI_SCAN_MODEL,
        user_text=user_text,
        system_text=scan_system_prompt(),
        files=files,
        settings=scan_settings(),
        timeout_s=AI_TIMEOUT_S,
        log_payloads=AI_LOG_PAYLOADS,
    ):
        yield chunk
