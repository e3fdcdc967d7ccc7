"""
Path and key conventions shared by all storage providers and the HTTP layer.

Layout:
    <prefix>/active/...     current report files
    <prefix>/archived/...   retired report files, named <filename>.<timestamp>
"""

import base64
import binascii
import json
import re
from datetime import datetime, timezone
from typing import Any

from .errors import InvalidRequestError

#-----------------------------------------------------------------------------

ACTIVE_DIR = "active"
ARCHIVED_DIR = "archived"

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9_\-. ]+\.json$", re.IGNORECASE)

#-----------------------------------------------------------------------------

def clean_prefix(prefix: str | None) -> str:
    """
    Normalize a configured prefix.

    Quotes and surrounding slashes are removed; "", "null" and "none" mean
    no prefix.
    """
    s = prefix.strip().strip('"').strip("'") if prefix else ""
    if s.lower() in ("", "null", "none"):
        return ""
    return s.strip("/")


def object_store_paths(prefix: str | None) -> tuple[str, str]:
    """
    Active and archived roots for object stores.

    Object keys never start with a slash: "active" without a prefix,
    "<prefix>/active" with one.
    """
    p = clean_prefix(prefix)
    if p:
        return f"{p}/{ACTIVE_DIR}", f"{p}/{ARCHIVED_DIR}"
    return ACTIVE_DIR, ARCHIVED_DIR


def join_key(base: str, *parts: str) -> str:
    key = base.rstrip("/")
    for part in parts:
        part = part.strip("/")
        if not part:
            continue
        key = f"{key}/{part}" if key else part
    return key

#-----------------------------------------------------------------------------

def sanitize_sub_path(path: str | None) -> str:
    """
    Drop empty and ".." segments from a client supplied relative path.

    Segments are dropped, never resolved:
        "../../etc" -> "etc"
        "a/../b"    -> "a/b"
    """
    if not path:
        return ""

    segments = re.split(r"[/\\]", path)
    return "/".join(s for s in segments if s and s != "..")


def validate_filename(filename: str | None) -> bool:
    if not filename or not isinstance(filename, str):
        return False
    return FILENAME_PATTERN.match(filename) is not None


def is_json_key(key: str) -> bool:
    return key.lower().endswith(".json")


def basename(key: str) -> str:
    return re.split(r"[/\\]", key.rstrip("/\\"))[-1]

#-----------------------------------------------------------------------------

def dump_report(content: Any) -> bytes:
    """Stored form of a report: pretty printed UTF-8 JSON"""
    return json.dumps(content, indent=2, ensure_ascii=False).encode("utf-8")


def validate_report(content: Any, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> int:
    """
    Check an uploaded report before anything is written.

    Args:
        content: Parsed JSON document from the request body
        max_bytes: Upper bound for the document as save_file stores it

    Returns:
        Stored size in bytes

    Raises:
        InvalidRequestError: content is not a report or is too large
    """
    if not isinstance(content, dict) or not isinstance(content.get("Results"), list):
        raise InvalidRequestError("Invalid report format: 'Results' array is required")

    size = len(dump_report(content))
    if size > max_bytes:
        raise InvalidRequestError(f"Report too large: {size} bytes exceeds limit of {max_bytes} bytes")

    return size


def format_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with milliseconds, e.g. 2024-05-01T12:00:00.000Z"""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def archived_name(key: str, now: datetime | None = None) -> str:
    return f"{basename(key)}.{format_timestamp(now)}"

#-----------------------------------------------------------------------------
# Continuation tokens.
#
# Backend cursors are wrapped in a tagged JSON object and base64 encoded so
# that clients only ever see an opaque string:
#   {"t": "<native token>"}   object store page token
#   {"o": <offset>}           filesystem offset

TOKEN_NATIVE = "t"
TOKEN_OFFSET = "o"


def encode_token(native: str | None = None, offset: int | None = None) -> str | None:
    if native:
        data = {TOKEN_NATIVE: native}
    elif offset is not None:
        data = {TOKEN_OFFSET: offset}
    else:
        return None

    raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_token(token: str | None, kind: str) -> Any:
    """
    Unwrap a continuation token.

    Args:
        token: Opaque token from a previous page, or None/"" for the first page
        kind: TOKEN_NATIVE or TOKEN_OFFSET

    Returns:
        Native token string, offset int, or None for the first page

    Raises:
        InvalidRequestError: token is malformed or was issued by another backend kind
    """
    if not token:
        return None

    try:
        padded = token + "=" * (-len(token) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        raise InvalidRequestError("Invalid continuation token")

    if not isinstance(data, dict) or kind not in data:
        raise InvalidRequestError("Invalid continuation token")

    value = data[kind]
    if kind == TOKEN_OFFSET:
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InvalidRequestError("Invalid continuation token")
    elif not isinstance(value, str) or not value:
        raise InvalidRequestError("Invalid continuation token")

    return value

#-----------------------------------------------------------------------------
