import json
import re

from ..config import GEMINI_API_KEY
from ..utils.error_handlers import ConfigurationError


# ```json\n...\n``` first, then any fenced block.
_JSON_FENCE_RE = re.compile(r"```json\s*\n([\s\S]*?)\n\s*```", re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```([\s\S]*?)```")


def extract_json_text(text: str) -> str:
    """
    Pull the JSON payload out of a model response.

    Models sometimes wrap JSON in Markdown code fences even when asked not to.
    A ```json fenced block wins, then any fenced block, otherwise the whole
    response is taken as-is.
    """
    raw = (text or "").strip()
    m = _JSON_FENCE_RE.search(raw)
    if m:
        return m.group(1).strip()
    m = _ANY_FENCE_RE.search(raw)
    if m:
        chunk = m.group(1).strip()
        # ```json{...}``` on one line leaves the language tag in the chunk.
        if chunk[:4].lower() == "json":
            chunk = chunk[4:].strip()
        return chunk
    return raw


def parse_json_object(text: str) -> dict:
    """Decode the (possibly fenced) JSON object in a model response."""
    payload = extract_json_text(text)
    if not payload:
        raise ValueError("Empty AI response")
    obj = json.loads(payload)
    if not isinstance(obj, dict):
        raise ValueError("AI response JSON is not an object")
    return obj


def require_ai_key() -> str:
    if not GEMINI_API_KEY:
        raise ConfigurationError("Missing AI API key")
    return GEMINI_API_KEY
