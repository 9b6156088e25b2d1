import asyncio
import base64
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx


logger = logging.getLogger(__name__)


class AIClientError(RuntimeError):
    pass


class AIClientTimeout(AIClientError):
    pass


class AIClientHTTPError(AIClientError):
    def __init__(self, *, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class GeminiMeta:
    model: str
    latency_ms: int
    status_code: int | None
    retries: int


@dataclass(frozen=True)
class InlineFile:
    """A file sent to the model next to the prompt (resume PDF, etc.)."""
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class GenerationSettings:
    temperature: float = 0.0
    top_p: float | None = None
    top_k: int | None = None
    max_output_tokens: int | None = None
    response_mime_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        cfg: dict[str, Any] = {"temperature": float(self.temperature)}
        if self.top_p is not None:
            cfg["topP"] = float(self.top_p)
        if self.top_k is not None:
            cfg["topK"] = int(self.top_k)
        if self.max_output_tokens is not None:
            cfg["maxOutputTokens"] = int(self.max_output_tokens)
        if self.response_mime_type:
            cfg["responseMimeType"] = self.response_mime_type
        cfg.update(self.extra)
        return cfg


def _safe_truncate(s: str, n: int = 800) -> str:
    s = s or ""
    if len(s) <= n:
        return s
    return s[:n] + "…"


def _model_url(*, base_url: str, api_version: str, model: str, method: str) -> str:
    api_v = (api_version or "v1beta").strip().lstrip("/")
    base = (base_url or "").rstrip("/")
    model_path = model.strip()
    if model_path.startswith("models/"):
        model_path = model_path[len("models/") :]
    return f"{base}/{api_v}/models/{model_path}:{method}"


def build_request_body(
    *,
    user_text: str,
    system_text: str | None = None,
    files: list[InlineFile] | None = None,
    settings: GenerationSettings | None = None,
) -> dict[str, Any]:
    """
    The system prompt is inlined ahead of the user prompt rather than sent as
    systemInstruction, which not every API version accepts. Files follow the text
    as base64 inlineData parts.
    """
    effective_user = user_text or ""
    if system_text:
        effective_user = f"{system_text.strip()}\n\n{effective_user}"

    parts: list[dict[str, Any]] = [{"text": effective_user}]
    for f in files or []:
        parts.append(
            {
                "inlineData": {
                    "mimeType": f.mime_type or "application/octet-stream",
                    "data": base64.b64encode(f.data).decode("ascii"),
                }
            }
        )

    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": (settings or GenerationSettings()).to_payload(),
    }


def _candidate_text(data: dict[str, Any]) -> str:
    # { candidates: [ { content: { parts: [ { text: "..." }, ... ] } } ], ... }
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))


def _log_body(model: str, url: str, body: dict[str, Any]) -> None:
    # Never log the base64 file payloads.
    redacted = json.loads(json.dumps(body))
    for content in redacted.get("contents") or []:
        for part in content.get("parts") or []:
            if "inlineData" in part:
                part["inlineData"]["data"] = f"<{len(part['inlineData'].get('data') or '')} b64 chars>"
    logger.info(
        "Gemini request model=%s url=%s body=%s",
        model,
        url,
        _safe_truncate(json.dumps(redacted, ensure_ascii=False)),
    )


async def gemini_generate_content(
    *,
    api_key: str,
    base_url: str,
    api_version: str = "v1beta",
    model: str,
    user_text: str,
    system_text: str | None = None,
    files: list[InlineFile] | None = None,
    settings: GenerationSettings | None = None,
    timeout_s: float = 20.0,
    max_retries: int = 0,
    log_payloads: bool = False,
) -> tuple[str, GeminiMeta]:
    """
    Calls Gemini Generative Language API (API key auth) and returns the model text.

    Endpoint:
      POST {base_url}/{api_version}/models/{model}:generateContent
    Auth:
      x-goog-api-key: {api_key}
    """
    if not api_key:
        raise AIClientError("Missing GEMINI_API_KEY")
    if not model:
        raise AIClientError("Missing Gemini model name")

    url = _model_url(base_url=base_url, api_version=api_version, model=model, method="generateContent")
    body = build_request_body(user_text=user_text, system_text=system_text, files=files, settings=settings)
    headers = {
        "x-goog-api-key": api_key,
        "content-type": "application/json",
    }

    start = time.perf_counter()
    for attempt in range(max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout_s) as client:
                if log_payloads:
                    _log_body(model, url, body)
                r = await client.post(url, json=body, headers=headers)

            if r.status_code >= 400:
                # Retry only on transient server errors / rate limits.
                if r.status_code in {408, 429, 500, 502, 503, 504} and attempt < max_retries:
                    backoff = 0.5 * (2**attempt)
                    logger.warning("Gemini HTTP %s; retrying in %.1fs", r.status_code, backoff)
                    await asyncio.sleep(backoff)
                    continue
                raise AIClientHTTPError(status_code=r.status_code, message=_safe_truncate(r.text, 1000))

            text = _candidate_text(r.json() or {})
            meta = GeminiMeta(
                model=model,
                latency_ms=int((time.perf_counter() - start) * 1000),
                status_code=r.status_code,
                retries=attempt,
            )
            logger.info(
                "Gemini ok model=%s status=%s latency_ms=%s retries=%s",
                meta.model,
                meta.status_code,
                meta.latency_ms,
                meta.retries,
            )
            return text.strip(), meta
        except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.PoolTimeout):
            if attempt < max_retries:
                backoff = 0.5 * (2**attempt)
                logger.warning("Gemini timeout; retrying in %.1fs", backoff)
                await asyncio.sleep(backoff)
                continue
            raise AIClientTimeout("Gemini request timed out") from None
        except httpx.RequestError as e:
            if attempt < max_retries:
                backoff = 0.5 * (2**attempt)
                logger.warning("Gemini network error (%s); retrying in %.1fs", type(e).__name__, backoff)
                await asyncio.sleep(backoff)
                continue
            raise AIClientError(f"Gemini request failed: {type(e).__name__}") from e

    raise AIClientError("Gemini request failed after retries")


async def gemini_stream_content(
    *,
    api_key: str,
    base_url: str,
    api_version: str = "v1beta",
    model: str,
    user_text: str,
    system_text: str | None = None,
    files: list[InlineFile] | None = None,
    settings: GenerationSettings | None = None,
    timeout_s: float = 60.0,
    log_payloads: bool = False,
) -> AsyncIterator[str]:
    """
    Streams model text chunks via server-sent events.

    Endpoint:
      POST {base_url}/{api_version}/models/{model}:streamGenerateContent?alt=sse

    Each SSE ``data:`` line carries a partial GenerateContentResponse; the text of
    each one is yielded as it arrives. No retries: a half-delivered stream cannot
    be replayed safely.
    """
    if not api_key:
        raise AIClientError("Missing GEMINI_API_KEY")
    if not model:
        raise AIClientError("Missing Gemini model name")

    url = _model_url(base_url=base_url, api_version=api_version, model=model, method="streamGenerateContent")
    body = build_request_body(user_text=user_text, system_text=system_text, files=files, settings=settings)
    headers = {
        "x-goog-api-key": api_key,
        "content-type": "application/json",
        "accept": "text/event-stream",
    }
    if log_payloads:
        _log_body(model, url, body)

    start = time.perf_counter()
    chunks = 0
    try:
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            async with client.stream("POST", url, params={"alt": "sse"}, json=body, headers=headers) as r:
                if r.status_code >= 400:
                    detail = (await r.aread()).decode("utf-8", errors="replace")
                    raise AIClientHTTPError(status_code=r.status_code, message=_safe_truncate(detail, 1000))
                async for line in r.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:") :].strip()
                    if not data or data == "[DONE]":
                        continue
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("Gemini stream: skipping undecodable event %s", _safe_truncate(data, 200))
                        continue
                    text = _candidate_text(event)
                    if text:
                        chunks += 1
                        yield text
    except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.PoolTimeout):
        raise AIClientTimeout("Gemini stream timed out") from None
    except httpx.RequestError as e:
        raise AIClientError(f"Gemini stream failed: {type(e).__name__}") from e

    logger.info(
        "Gemini stream done model=%s chunks=%s latency_ms=%s",
        model,
        chunks,
        int((time.perf_counter() - start) * 1000),
    )
