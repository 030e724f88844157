from __future__ import annotations

import re
from typing import Any

_HEX32_RE = re.compile(r"[0-9a-fA-F]{32}")


def normalize_page_id(value: Any) -> str:
    """Notion page id (dashless, dashed or a page URL) in dashed UUID form.

    Returns an empty string for empty input.
    """
    if value in (None, ""):
        return ""
    raw = str(value).strip()
    # URLs end with "<slug>-<32 hex>" optionally followed by a query string
    candidate = raw.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1].replace("-", "")
    match = _HEX32_RE.fullmatch(candidate[-32:]) if len(candidate) >= 32 else None
    if not match:
        msg = f"Invalid Notion page id: {raw!r}"
        raise ValueError(msg)
    h = match.group(0).lower()
    return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:]}"


def _ensure_api_key(value: str, *, name: str) -> str:
    if not value:
        msg = f"{name} API key is required"
        raise ValueError(msg)
    value = value.strip()
    if not value:
        msg = f"{name} API key is required"
        raise ValueError(msg)
    if len(value) > 500:
        msg = f"{name} API key appears to be too long"
        raise ValueError(msg)
    if any(char in value for char in [" ", "\n", "\t"]):
        msg = f"{name} API key contains invalid characters"
        raise ValueError(msg)
    return value


def parse_bounded_number(
    value: Any, *, default: float, minimum: float, maximum: float, name: str, cast: type = int
) -> Any:
    try:
        parsed = cast(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{name} must be a valid number"
        raise ValueError(msg) from exc
    if parsed < minimum or parsed > maximum:
        msg = f"{name} must be between {minimum} and {maximum}"
        raise ValueError(msg)
    return parsed
