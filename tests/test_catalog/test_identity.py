"""Tests für zapstore.catalog.identity – npub-Kodierung."""

from __future__ import annotations

import pytest

from zapstore.catalog.identity import is_npub, npub_decode, npub_encode

# Beispiel aus NIP-19
HEX = "3bf0c63fcb93463407af97a5e5ee64fa883d107ef9e558472c4eb9aaaefa459d"
NPUB = "npub180cvv07tjdrrgpa0j7j7tmnyl2yr6yr7l8j4s3evf6u64th6gkwsyjh6w6"


class TestNpub:
    def test_encode(self) -> None:
        assert npub_encode(HEX) == NPUB

    def test_decode(self) -> None:
        assert npub_decode(NPUB) == HEX

    def test_decode_tolerates_whitespace_and_case(self) -> None:
        assert npub_decode(f"  {NPUB.upper()}\n") == HEX

    def test_encode_rejects_short_key(self) -> None:
        with pytest.raises(ValueError):
            npub_encode("abcd")

    @pytest.mark.parametrize(
        "value",
        ["", "npub1", NPUB[:-1] + "q", "nsec180cvv07tjdrrgpa0j7j7tmnyl2yr6yr7l8j4s3evf6u64th6gkwstas7vp"],
    )
    def test_decode_rejects(self, value: str) -> None:
        with pytest.raises(ValueError):
            npub_decode(value)
        assert not is_npub(value)

    def test_is_npub(self) -> None:
        assert is_npub(NPUB)
