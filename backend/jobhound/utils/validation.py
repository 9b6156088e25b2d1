"""
Validation utilities for input validation and normalization.
"""
import json
import re
from typing import Any
from fastapi import HTTPException


def validate_email(email: str) -> str:
    """Validate email format."""
    if not email or not isinstance(email, str):
        raise HTTPException(status_code=400, detail="Email is required")

    email = email.strip().lower()
    if len(email) > 255:
        raise HTTPException(status_code=400, detail="Email too long (max 255 characters)")

    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not re.match(pattern, email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    return email


def validate_password(password: str) -> None:
    """Validate password strength."""
    if not password or not isinstance(password, str):
        raise HTTPException(status_code=400, detail="Password is required")

    if len(password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    if len(password) > 128:
        raise HTTPException(status_code=400, detail="Password too long (max 128 characters)")


def validate_string_field(
    value: Any,
    field_name: str,
    min_length: int = 1,
    max_length: int = 1000,
    required: bool = True,
) -> str | None:
    """Validate a string field with common rules."""
    if value is None:
        if required:
            raise HTTPException(status_code=400, detail=f"{field_name} is required")
        return None

    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{field_name} must be a string")

    value = value.strip()

    if required and not value:
        raise HTTPException(status_code=400, detail=f"{field_name} cannot be empty")

    if value and len(value) < min_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must be at least {min_length} characters"
        )

    if len(value) > max_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must not exceed {max_length} characters"
        )

    return value or None


def validate_integer_field(
    value: Any,
    field_name: str,
    min_value: int | None = None,
    max_value: int | None = None,
    required: bool = True,
) -> int | None:
    """Validate an integer field."""
    if value is None:
        if required:
            raise HTTPException(status_code=400, detail=f"{field_name} is required")
        return None

    if isinstance(value, bool) or not isinstance(value, int):
        try:
            value = int(str(value).strip())
        except (ValueError, TypeError):
            raise HTTPException(status_code=400, detail=f"{field_name} must be a valid integer")

    if min_value is not None and value < min_value:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must be at least {min_value}"
        )

    if max_value is not None and value > max_value:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must not exceed {max_value}"
        )

    return value


def sanitize_filename(filename: str) -> str:
    """Sanitize filename to prevent directory traversal and other attacks."""
    if not filename:
        raise HTTPException(status_code=400, detail="Filename is required")

    filename = filename.replace("/", "_").replace("\\", "_")
    filename = filename.replace("\x00", "")
    filename = filename.replace("..", "_")
    # No hidden files
    filename = filename.lstrip(".")

    if len(filename) > 255:
        raise HTTPException(status_code=400, detail="Filename too long")

    if not filename or filename == "_":
        raise HTTPException(status_code=400, detail="Invalid filename")

    return filename


_LIST_SPLIT_RE = re.compile(r"\r?\n|;")
_BULLET_RE = re.compile(r"^\s*(?:[-*•●▪]|\d+[.)])\s*")


def normalize_string_list(value: Any) -> list[str]:
    """
    Canonical list-of-strings for job fields (requirements, benefits, skills).

    Accepts what the AI and older rows produce: a list, a JSON-encoded list/object,
    an object (its values are used), or free text split on newlines/semicolons
    (falling back to commas for single-line text). Bullets are stripped, empties
    and duplicates dropped, order kept.
    """
    if value is None:
        return []

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text[0] in "[{":
            try:
                return normalize_string_list(json.loads(text))
            except json.JSONDecodeError:
                pass
        parts = _LIST_SPLIT_RE.split(text)
        if len(parts) == 1:
            parts = text.split(",")
        items = parts
    elif isinstance(value, dict):
        items = []
        for v in value.values():
            items.extend(normalize_string_list(v))
    elif isinstance(value, (list, tuple, set)):
        items = []
        for v in value:
            if isinstance(v, (list, tuple, dict)):
                items.extend(normalize_string_list(v))
            elif v is not None:
                items.append(str(v))
    else:
        items = [str(value)]

    out: list[str] = []
    seen: set[str] = set()
    for item in items:
        cleaned = _BULLET_RE.sub("", str(item)).strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            out.append(cleaned)
    return out
