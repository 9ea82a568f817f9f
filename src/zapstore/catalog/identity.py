"""NIP-19-Kodierung von Identitäten (``npub1...`` ↔ 64-stelliger Hex-Schlüssel)."""

from __future__ import annotations

from bech32 import bech32_decode, bech32_encode, convertbits

NPUB_PREFIX = "npub"


def npub_encode(pubkey: str) -> str:
    """Hex-Schlüssel → npub.

    Raises:
        ValueError: Kein 32-Byte-Hex-Schlüssel.
    """
    raw = bytes.fromhex(pubkey)
    if len(raw) != 32:
        raise ValueError(f"Öffentlicher Schlüssel muss 32 Bytes lang sein: {pubkey!r}")
    data = convertbits(raw, 8, 5, True)
    return bech32_encode(NPUB_PREFIX, data)


def npub_decode(npub: str) -> str:
    """npub → Hex-Schlüssel.

    Raises:
        ValueError: Ungültige Prüfsumme, falsches Präfix oder falsche Länge.
    """
    hrp, data = bech32_decode(npub.strip().lower())
    if hrp != NPUB_PREFIX or data is None:
        raise ValueError(f"Keine gültige npub: {npub!r}")
    raw = convertbits(data, 5, 8, False)
    if raw is None or len(raw) != 32:
        raise ValueError(f"npub enthält keinen 32-Byte-Schlüssel: {npub!r}")
    return bytes(raw).hex()


def is_npub(value: str) -> bool:
    try:
        npub_decode(value)
    except ValueError:
        return False
    return True
