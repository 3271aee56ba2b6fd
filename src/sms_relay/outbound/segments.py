"""Split message bodies into transport-sized SMS segments."""

from __future__ import annotations

GSM_SINGLE_LIMIT = 160
GSM_MULTIPART_LIMIT = 153
UCS2_SINGLE_LIMIT = 70
UCS2_MULTIPART_LIMIT = 67

_GSM_BASIC = frozenset(
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞÆæßÉ !\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÑÜ§¿abcdefghijklmnopqrstuvwxyzäöñüà"
)
# Extension table characters are sent as escape + char.
_GSM_EXTENDED = frozenset("\f^{}\\[~]|€")


def is_gsm7(body: str) -> bool:
    """Return ``True`` when ``body`` fits the GSM 7-bit default alphabet."""
    return all(ch in _GSM_BASIC or ch in _GSM_EXTENDED for ch in body)


def _gsm_cost(ch: str) -> int:
    return 2 if ch in _GSM_EXTENDED else 1


def _ucs2_cost(ch: str) -> int:
    return 2 if ord(ch) > 0xFFFF else 1


def split_message(body: str) -> list[str]:
    """Return the segments ``body`` is sent as; always at least one."""
    if is_gsm7(body):
        cost, single, multipart = _gsm_cost, GSM_SINGLE_LIMIT, GSM_MULTIPART_LIMIT
    else:
        cost, single, multipart = _ucs2_cost, UCS2_SINGLE_LIMIT, UCS2_MULTIPART_LIMIT

    if sum(cost(ch) for ch in body) <= single:
        return [body]

    segments: list[str] = []
    current: list[str] = []
    used = 0
    for ch in body:
        units = cost(ch)
        if used + units > multipart:
            segments.append("".join(current))
            current, used = [], 0
        current.append(ch)
        used += units
    if current:
        segments.append("".join(current))
    return segments


__all__ = [
    "GSM_MULTIPART_LIMIT",
    "GSM_SINGLE_LIMIT",
    "UCS2_MULTIPART_LIMIT",
    "UCS2_SINGLE_LIMIT",
    "is_gsm7",
    "split_message",
]
