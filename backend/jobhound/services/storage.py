"""
Local object storage for resume files and thumbnails.

Objects are addressed by a relative key (``resumes/3/ab12.pdf``) under STORAGE_DIR.
Signed URLs carry a short-lived JWT bound to the key, verified by the
``/storage/{key}`` route.
"""
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import quote

from jose import JWTError, jwt

from ..config import SECRET_KEY, SIGNED_URL_TTL_S, SITE_URL, STORAGE_DIR

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_TOKEN_PURPOSE = "storage"


class StorageError(RuntimeError):
    pass


class ObjectNotFound(StorageError):
    pass


def normalize_key(key: str) -> str:
    """Reject absolute keys and traversal; return the canonical posix form."""
    raw = (key or "").strip().replace("\\", "/")
    if not raw:
        raise StorageError("Empty object key")
    p = PurePosixPath(raw)
    if p.is_absolute() or any(part in {"..", ""} for part in p.parts) or "\x00" in raw:
        raise StorageError(f"Invalid object key: {key!r}")
    return p.as_posix()


def _abs_path(key: str) -> Path:
    return Path(STORAGE_DIR) / normalize_key(key)


def key_owner_id(key: str) -> int | None:
    """Keys are laid out as <bucket>/<user_id>/<name>; returns the user id segment."""
    parts = PurePosixPath(normalize_key(key)).parts
    if len(parts) < 3:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def put_object(key: str, data: bytes) -> str:
    dest = _abs_path(key)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)
    logger.info("storage put key=%s bytes=%s", key, len(data))
    return normalize_key(key)


def get_object(key: str) -> bytes:
    src = _abs_path(key)
    if not src.is_file():
        raise ObjectNotFound(f"Object not found: {key}")
    return src.read_bytes()


def object_exists(key: str) -> bool:
    try:
        return _abs_path(key).is_file()
    except StorageError:
        return False


def object_path(key: str) -> Path:
    src = _abs_path(key)
    if not src.is_file():
        raise ObjectNotFound(f"Object not found: {key}")
    return src


def delete_object(key: str) -> bool:
    """Returns False when there was nothing to delete."""
    try:
        target = _abs_path(key)
    except StorageError:
        return False
    if not target.is_file():
        return False
    target.unlink()
    logger.info("storage delete key=%s", key)
    return True


def create_signed_url(key: str, *, ttl_s: int = SIGNED_URL_TTL_S) -> str:
    clean = normalize_key(key)
    expire = datetime.now(timezone.utc) + timedelta(seconds=int(ttl_s))
    token = jwt.encode({"key": clean, "purpose": _TOKEN_PURPOSE, "exp": expire}, SECRET_KEY, algorithm=_ALGORITHM)
    return f"{SITE_URL}/storage/{quote(clean)}?token={token}"


def verify_signed_token(key: str, token: str) -> bool:
    try:
        claims = jwt.decode(token or "", SECRET_KEY, algorithms=[_ALGORITHM])
        return claims.get("purpose") == _TOKEN_PURPOSE and claims.get("key") == normalize_key(key)
    except (JWTError, StorageError):
        return False
