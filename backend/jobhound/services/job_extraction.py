import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..config import (
    AI_LOG_PAYLOADS,
    AI_MAX_RETRIES,
    AI_TIMEOUT_S,
    EXTRACT_TEMPERATURE,
    GEMINI_API_VERSION,
    GEMINI_BASE_URL,
    GEMINI_JOB_MODEL,
)
from ..schemas.job_listing import JobListingExtraction
from ..utils.error_handlers import AIServiceError, AppError, get_error_message
from .ai_client import AIClientError, GenerationSettings, gemini_generate_content
from .ai_common import parse_json_object, require_ai_key
from .ai_prompts import job_listing_system_prompt


logger = logging.getLogger(__name__)

_MAX_LISTING_CHARS = 30_000


def parse_job_listing(raw_text: str) -> JobListingExtraction:
    """Lenient: missing fields default, but the response must still be a JSON object."""
    try:
        obj = parse_json_object(raw_text)
        return JobListingExtraction.model_validate(obj)
    except (ValueError, PydanticValidationError) as e:
        logger.warning("job listing response unparseable: %s", e)
        raise AppError(get_error_message("ai_parse_failed"), status_code=500) from e


async def extract_job_listing(text: str) -> dict[str, Any]:
    """
    Pasted listing text -> structured job fields plus confidence/provenance metadata.
    """
    api_key = require_ai_key()
    listing = (text or "").strip()
    try:
        raw, meta = await gemini_generate_content(
            api_key=api_key,
            base_url=GEMINI_BASE_URL,
            api_version=GEMINI_API_VERSION,
            model=GEMINI_JOB_MODEL,
            system_text=job_listing_system_prompt(),
            user_text=f"Extract structured information from this job listing:\n\n{listing[:_MAX_LISTING_CHARS]}",
            settings=GenerationSettings(temperature=EXTRACT_TEMPERATURE, response_mime_type="application/json"),
            timeout_s=AI_TIMEOUT_S,
            max_retries=AI_MAX_RETRIES,
            log_payloads=AI_LOG_PAYLOADS,
        )
    except AIClientError as e:
        logger.warning("job listing extraction call failed: %s", e)
        raise AIServiceError(details=str(e)) from e

    extraction = parse_job_listing(raw)
    logger.info("job listing extracted model=%s latency_ms=%s title=%r", meta.model, meta.latency_ms, extraction.title)
    data = extraction.model_dump()
    data.update(
        {
            "raw_job_text": listing,
            "ai_confidence": extraction.confidence(),
            "ai_version": GEMINI_JOB_MODEL,
            "ai_processed_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    return data
