"""Canonical email address extraction from header and envelope text.

Header values arrive as raw lines (``From: "A Name" <a@b.com>``) and
envelope addresses as whatever the MTA reported (``<a@b.com>`` or
``a@b.com``).  Both go through :func:`extract_address`.
"""

from __future__ import annotations

import re

from .errors import AddressNotFound

ANGLE_PATTERN = re.compile(r"<([^>]*)>")
EMAIL_ADDRESS_PATTERN = re.compile(
    r"^[A-Za-z0-9._%+-]+@(?:[A-Za-z0-9-]+\.)+[A-Za-z]{2,}$"
)


def extract_address(text: str) -> str:
    """Return the first email address found in *text*, case preserved.

    If *text* contains a ``<...>`` segment only the first such segment
    is scanned.  Raises :class:`AddressNotFound` when nothing matches.
    """
    candidate = text
    match = ANGLE_PATTERN.search(text)
    if match is not None:
        candidate = match.group(1)

    for token in candidate.split():
        if EMAIL_ADDRESS_PATTERN.match(token):
            return token

    raise AddressNotFound(text)


def try_extract_address(text: str) -> str | None:
    """Like :func:`extract_address` but returns ``None`` on failure."""
    try:
        return extract_address(text)
    except AddressNotFound:
        return None
