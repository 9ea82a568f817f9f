"""Tests für zapstore.catalog.events – Struktur, ID und Schnorr-Signatur."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from coincurve import PrivateKey

from zapstore.catalog.events import KIND_APP, NostrEvent, compute_event_id, validate_event
from zapstore.core.errors import ValidationFailure


@pytest.fixture
def app_event(make_event: Callable[..., dict[str, Any]], publisher_key: PrivateKey) -> dict[str, Any]:
    return make_event(publisher_key, KIND_APP, [["d", "foo"], ["name", "Foo"], ["f", "linux-x86_64"]])


class TestNostrEvent:
    def test_tag_helpers(self, app_event: dict[str, Any]) -> None:
        event = NostrEvent.from_dict(app_event)
        assert event.tag("d") == "foo"
        assert event.tag("missing") is None
        assert event.tags_named("f") == ["linux-x86_64"]

    def test_to_dict_round_trip(self, app_event: dict[str, Any]) -> None:
        assert NostrEvent.from_dict(app_event).to_dict() == app_event

    def test_not_an_object(self) -> None:
        with pytest.raises(ValidationFailure):
            NostrEvent.from_dict(["not", "an", "event"])

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("id", "xyz"),
            ("pubkey", "A" * 64),
            ("sig", "00"),
            ("created_at", "yesterday"),
            ("kind", True),
            ("tags", [["d", 1]]),
            ("content", None),
        ],
    )
    def test_structural_problems(self, app_event: dict[str, Any], key: str, value: Any) -> None:
        broken = {**app_event, key: value}
        with pytest.raises(ValidationFailure) as exc_info:
            NostrEvent.from_dict(broken)
        assert exc_info.value.details["problems"]


class TestValidateEvent:
    def test_valid_signature(self, app_event: dict[str, Any]) -> None:
        event = NostrEvent.from_dict(app_event)
        assert validate_event(event) is event

    def test_id_mismatch(self, app_event: dict[str, Any]) -> None:
        tampered = {**app_event, "content": "changed"}
        with pytest.raises(ValidationFailure, match="Event-ID"):
            validate_event(NostrEvent.from_dict(tampered))

    def test_signature_from_other_key(
        self, app_event: dict[str, Any], make_event: Callable[..., dict[str, Any]], friend_key: PrivateKey,
    ) -> None:
        other = make_event(friend_key, KIND_APP, app_event["tags"])
        forged = {**app_event, "sig": other["sig"]}
        with pytest.raises(ValidationFailure, match="Signatur"):
            validate_event(NostrEvent.from_dict(forged))

    def test_canonical_id(self) -> None:
        event_id = compute_event_id("a" * 64, 1, 1, [["t", "ü"]], "hällo")
        assert len(event_id) == 64
        assert event_id == compute_event_id("a" * 64, 1, 1, [["t", "ü"]], "hällo")
        assert event_id != compute_event_id("a" * 64, 2, 1, [["t", "ü"]], "hällo")
