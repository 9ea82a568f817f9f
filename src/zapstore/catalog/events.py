"""Nostr-Events: Datenmodell und Validierung.

Ein Event ist gültig, wenn
  1. alle Felder strukturell stimmen (Hex-Längen, Typen, Tag-Listen),
  2. ``id`` dem SHA-256 der kanonischen Serialisierung entspricht und
  3. ``sig`` eine gültige BIP-340-Schnorr-Signatur über ``id`` ist.

Jede Abweichung führt zu ``ValidationFailure``; der Installationsfluss
bricht dann vor jedem Download ab.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import Any

from coincurve import PublicKeyXOnly

from zapstore.core.errors import ValidationFailure

KIND_PROFILE = 0
KIND_FILE_METADATA = 1063
KIND_RELEASE = 30063
KIND_APP = 32267

_HEX64 = re.compile(r"^[0-9a-f]{64}$")
_HEX128 = re.compile(r"^[0-9a-f]{128}$")

__all__ = [
    "KIND_APP",
    "KIND_FILE_METADATA",
    "KIND_PROFILE",
    "KIND_RELEASE",
    "NostrEvent",
    "compute_event_id",
    "validate_event",
]


@dataclass(frozen=True)
class NostrEvent:
    """Ein signiertes Katalog-Event."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = field(default_factory=list)
    content: str = ""
    sig: str = ""

    def tag(self, name: str) -> str | None:
        """Wert des ersten Tags mit diesem Namen."""
        for tag in self.tags:
            if len(tag) >= 2 and tag[0] == name:
                return tag[1]
        return None

    def tags_named(self, name: str) -> list[str]:
        """Werte aller Tags mit diesem Namen, in Reihenfolge."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": self.tags,
            "content": self.content,
            "sig": self.sig,
        }

    @classmethod
    def from_dict(cls, data: Any) -> NostrEvent:
        """Strukturelle Prüfung + Deserialisierung.

        Raises:
            ValidationFailure: Bei fehlenden oder falsch typisierten Feldern.
        """
        if not isinstance(data, dict):
            raise ValidationFailure("Event ist kein JSON-Objekt", details={"event": repr(data)[:200]})

        problems: list[str] = []
        for key in ("id", "pubkey"):
            if not isinstance(data.get(key), str) or not _HEX64.match(data[key]):
                problems.append(f"{key} ist kein 64-stelliger Hex-Wert")
        if not isinstance(data.get("sig"), str) or not _HEX128.match(data["sig"]):
            problems.append("sig ist kein 128-stelliger Hex-Wert")
        for key in ("created_at", "kind"):
            value = data.get(key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                problems.append(f"{key} ist keine nicht-negative Ganzzahl")
        tags = data.get("tags")
        if not isinstance(tags, list) or not all(
            isinstance(t, list) and all(isinstance(v, str) for v in t) for t in tags
        ):
            problems.append("tags ist keine Liste von String-Listen")
        if not isinstance(data.get("content"), str):
            problems.append("content ist kein String")

        if problems:
            raise ValidationFailure(
                f"Ungültiges Event: {'; '.join(problems)}",
                details={"id": data.get("id"), "problems": problems},
            )

        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=[list(t) for t in tags],
            content=data["content"],
            sig=data["sig"],
        )


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: list[list[str]],
    content: str,
) -> str:
    """SHA-256 (hex) der kanonischen NIP-01-Serialisierung."""
    serialized = json.dumps(
        [0, pubkey, created_at, kind, tags, content],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def validate_event(event: NostrEvent) -> NostrEvent:
    """Prüft Event-ID und Schnorr-Signatur.

    Returns:
        Das unveränderte Event (für Verkettung).

    Raises:
        ValidationFailure: ID oder Signatur stimmen nicht.
    """
    expected_id = compute_event_id(
        event.pubkey, event.created_at, event.kind, event.tags, event.content,
    )
    if expected_id != event.id:
        raise ValidationFailure(
            "Event-ID passt nicht zum Inhalt",
            details={"id": event.id, "expected": expected_id},
        )

    try:
        verified = PublicKeyXOnly(bytes.fromhex(event.pubkey)).verify(
            bytes.fromhex(event.sig), bytes.fromhex(event.id),
        )
    except ValueError as exc:
        raise ValidationFailure(
            f"Ungültiger öffentlicher Schlüssel: {exc}",
            details={"id": event.id, "pubkey": event.pubkey},
        ) from exc

    if not verified:
        raise ValidationFailure(
            "Signatur-Verifikation fehlgeschlagen",
            details={"id": event.id, "pubkey": event.pubkey},
        )
    return event
