"""
WhatsApp JID Normalization

PURE CONVERSION - NO LOGIC, NO I/O

Maps loosely formatted phone numbers / group ids to addressable JIDs:
- "55 99 9999-9999"          -> "5599999999999@s.whatsapp.net"
- "5599999999999@g.us"       -> unchanged
- "123@lid"                  -> unchanged (already qualified)

Malformed input is passed through best-effort; there is no failure path.
"""

import re

USER_SUFFIX = "@s.whatsapp.net"
GROUP_SUFFIX = "@g.us"

_STRIP_PATTERN = re.compile(r"[\s-]")


def normalize_jid(raw: str) -> str:
    """
    Convert a raw destination into a canonical JID.

    Args:
        raw: Phone number, group id or JID as typed by the caller

    Returns:
        The JID to address
    """
    normalized = _STRIP_PATTERN.sub("", raw)
    if normalized.endswith(USER_SUFFIX) or normalized.endswith(GROUP_SUFFIX):
        return normalized
    if "@" in normalized:
        return normalized
    return f"{normalized}{USER_SUFFIX}"


def digits_only(phone: str) -> str:
    """Strip everything but digits (vCard waid parameter)."""
    return re.sub(r"\D", "", phone)
