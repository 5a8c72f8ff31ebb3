"""Normalization of operator-typed lap times and gaps.

Canonical lap/total time form is ``MM:SS.mmm``. Gaps are ``+<seconds>`` or the
``--`` sentinel (leader, or nothing entered yet).
"""

from __future__ import annotations

import re
from typing import Optional

NO_GAP = "--"

_NOISE = re.compile(r"[^\d:.]")
_GAP_NOISE = re.compile(r"[^\d.+\-]")
_MIN_SEC_MS = re.compile(r"^(\d{1,2}):(\d{2})\.(\d{1,3})$")
_SEC_MS = re.compile(r"^(\d{1,2})\.(\d{1,3})$")
_DIGITS = re.compile(r"^\d{1,7}$")
_CANONICAL = re.compile(r"^(\d{2}):(\d{2})\.(\d{3})$")


def format_time(value: Optional[str]) -> str:
    if not value or value.strip() in ("", NO_GAP):
        return ""

    cleaned = _NOISE.sub("", value)
    if not cleaned:
        return value

    match = _MIN_SEC_MS.match(cleaned)
    if match:
        minutes, seconds, millis = match.groups()
        return f"{minutes.zfill(2)}:{seconds}.{millis.ljust(3, '0')}"

    match = _SEC_MS.match(cleaned)
    if match:
        seconds, millis = match.groups()
        return f"00:{seconds.zfill(2)}.{millis.ljust(3, '0')}"

    if _DIGITS.match(cleaned):
        # split from the right: mm ss mmm
        digits = cleaned.zfill(7)
        return f"{digits[:2]}:{digits[2:4]}.{digits[4:]}"

    return value


def time_to_ms(value: Optional[str]) -> int:
    """Milliseconds for a canonical ``MM:SS.mmm`` string, 0 for anything else."""
    if not value:
        return 0
    match = _CANONICAL.match(value)
    if not match:
        return 0
    minutes, seconds, millis = (int(part) for part in match.groups())
    return minutes * 60_000 + seconds * 1000 + millis


def format_gap(value: Optional[str]) -> str:
    if not value or value.strip() in ("", NO_GAP, "-"):
        return NO_GAP

    cleaned = _GAP_NOISE.sub("", value)
    if cleaned in ("", "+", "-"):
        return NO_GAP
    if cleaned.startswith("+"):
        return cleaned
    if cleaned[0].isdigit():
        return f"+{cleaned}"
    return cleaned


def has_gap(value: Optional[str]) -> bool:
    return format_gap(value) != NO_GAP
