"""CRC-16/CCITT-FALSE implementation used by the BR Code checksum field."""
from __future__ import annotations

CRC16_POLY = 0x1021
CRC16_INIT = 0xFFFF


def crc16_ccitt(data: str) -> int:
    """Compute CRC-16/CCITT-FALSE (poly 0x1021, init 0xFFFF, no reflection).

    Every character must fit in a single byte; payload fields are ASCII once
    diacritics are stripped.
    """

    try:
        raw = data.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise ValueError(f"CRC input must be single-byte characters: {exc.object[exc.start:exc.end]!r}") from exc

    checksum = CRC16_INIT
    for ch in raw:
        checksum ^= ch << 8
        for _ in range(8):
            if checksum & 0x8000:
                checksum = (checksum << 1) ^ CRC16_POLY
            else:
                checksum <<= 1
            checksum &= 0xFFFF
    return checksum


def format_crc(checksum: int) -> str:
    return f"{checksum & 0xFFFF:04X}"


def crc16_hex(data: str) -> str:
    """Return the checksum of ``data`` as 4 uppercase hex digits."""

    return format_crc(crc16_ccitt(data))
