"""Recognize URL and raw-ID shapes and normalize them to canonical IDs.

Accepted shapes:
    - https://www.notion.so/1fb79d4c71bb8032b722c82305b63a00?v=...
    - https://www.notion.so/workspace/Tasks-1fb79d4c71bb8032b722c82305b63a00
    - notion.so/1fb79d4c-71bb-8032-b722-c82305b63a00
    - 1fb79d4c-71bb-8032-b722-c82305b63a00
    - 1fb79d4c71bb8032b722c82305b63a00

Anything else is handed back as a name for cache or remote lookup.
"""

import re
from enum import Enum
from typing import Optional, Sequence
from urllib.parse import urlsplit

from pydantic import BaseModel

from .errors import ValidationError

DEFAULT_HOST_MARKERS: tuple[str, ...] = ("notion.so", "notion.site")
ID_LENGTH = 32

# A hex-only token with this many digits (but not 32) is a truncated or padded ID, not a name.
MIN_SUSPECT_ID_DIGITS = 16

_HEX_ID = re.compile(r"^[0-9a-f]{32}$", re.IGNORECASE)
_HEX_AND_DASHES = re.compile(r"^[0-9a-f-]+$", re.IGNORECASE)
_TRAILING_ID = re.compile(
    r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|[0-9a-f]{32})$",
    re.IGNORECASE,
)
_ANY_ID = re.compile(r"(?<![0-9a-f])([0-9a-f]{32})(?![0-9a-f])", re.IGNORECASE)
_ANY_DASHED_ID = re.compile(
    r"(?<![0-9a-f])([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})(?![0-9a-f])",
    re.IGNORECASE,
)


class IdentifierKind(str, Enum):
    URL = "url"
    ID = "id"
    NAME = "name"


class ParsedIdentifier(BaseModel):
    """Outcome of parsing one user-supplied identifier.

    Attributes:
        kind: Which shape was recognized
        value: Normalized ID for URL/ID inputs, the trimmed text for names
        raw: The input exactly as supplied
    """

    model_config = {"frozen": True}

    kind: IdentifierKind
    value: str
    raw: str

    @property
    def is_id(self) -> bool:
        return self.kind in (IdentifierKind.URL, IdentifierKind.ID)


def normalize_id(value: str) -> str:
    """Strip dashes and lowercase a 32-hex ID.

    Raises:
        ValidationError: If the result is not exactly 32 hex characters.
    """
    cleaned = value.strip().replace("-", "")
    if not _HEX_ID.match(cleaned):
        raise ValidationError(
            value,
            f"Invalid ID format: {value!r} (expected {ID_LENGTH} hexadecimal characters, with or without dashes)",
        )
    return cleaned.lower()


def is_valid_id(value: str) -> bool:
    return bool(value) and bool(_HEX_ID.match(value.strip().replace("-", "")))


def is_url(value: str, host_markers: Sequence[str] = DEFAULT_HOST_MARKERS) -> bool:
    """True for http(s) URLs and for scheme-less ``host/path`` whose host is a marker or a subdomain of one."""
    lowered = value.strip().lower()
    if lowered.startswith(("http://", "https://")):
        return True
    host = lowered.split("/", 1)[0]
    return any(host == marker or host.endswith("." + marker) for marker in host_markers)


def extract_id_from_url(url: str) -> str:
    """Pull the trailing canonical ID out of a URL.

    The last path segment is checked first, so ``Title-<id>`` slugs work. If
    that fails, any 32-hex run in the path is accepted.

    Raises:
        ValidationError: If no ID can be found.
    """
    text = url.strip()
    if "://" not in text:
        text = "https://" + text
    path = urlsplit(text).path
    segments = [segment for segment in path.split("/") if segment]
    if segments:
        match = _TRAILING_ID.search(segments[-1])
        if match:
            return normalize_id(match.group(1))
    match = _ANY_ID.search(path) or _ANY_DASHED_ID.search(path)
    if match:
        return normalize_id(match.group(1))
    raise ValidationError(url, f"Could not extract an ID from URL: {url!r}")


def _looks_like_malformed_id(value: str) -> bool:
    if not _HEX_AND_DASHES.match(value):
        return False
    digits = len(value.replace("-", ""))
    return digits >= MIN_SUSPECT_ID_DIGITS and digits != ID_LENGTH


def parse_identifier(value: Optional[str], host_markers: Sequence[str] = DEFAULT_HOST_MARKERS) -> ParsedIdentifier:
    """Classify and normalize user input.

    Checks run in order: URL, bare ID, then name.

    Args:
        value: Raw user input
        host_markers: Hostname fragments that mark a URL from the remote system

    Returns:
        ParsedIdentifier with a normalized ID, or the trimmed text for names

    Raises:
        ValidationError: On empty input, a URL without an ID, or a hex string of the wrong length
    """
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(value, "Identifier must be a non-empty string")
    trimmed = value.strip()

    if is_url(trimmed, host_markers):
        return ParsedIdentifier(kind=IdentifierKind.URL, value=extract_id_from_url(trimmed), raw=value)

    if is_valid_id(trimmed):
        return ParsedIdentifier(kind=IdentifierKind.ID, value=normalize_id(trimmed), raw=value)

    if _looks_like_malformed_id(trimmed):
        raise ValidationError(
            value,
            f"{trimmed!r} looks like an ID but has {len(trimmed.replace('-', ''))} hex digits, expected {ID_LENGTH}",
        )

    return ParsedIdentifier(kind=IdentifierKind.NAME, value=trimmed, raw=value)
