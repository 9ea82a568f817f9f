"""Web-of-Trust und Profil-Metadaten.

  - SocialGraphClient: Welche Identitäten, denen der User folgt, folgen
    ihrerseits dem Signierer? (``/api/fwf/<user>/<signer>``)
  - ProfileDirectory: Anzeige-Metadaten (kind-0-Events) für eine Menge
    von Identitäten, parallel über alle Profil-Relays abgefragt.

Profile dienen nur der Anzeige. Ein fehlendes Profil oder ein nicht
erreichbares Profil-Relay führt zur Anzeige des rohen Schlüssels.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from zapstore.catalog.events import KIND_PROFILE, NostrEvent, validate_event
from zapstore.core.errors import ValidationFailure
from zapstore.models import Profile
from zapstore.utils.logging import get_logger

log = get_logger(__name__)

__all__ = ["ProfileDirectory", "SocialGraphClient", "parse_profile"]


class SocialGraphClient:
    """Client für den Follows-of-Follows-Endpunkt des Trust-Graphen."""

    def __init__(self, base_url: str, client: httpx.AsyncClient, *, timeout: float = 20.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    async def follows_of_follows(self, user_npub: str, signer_npub: str) -> dict[str, Any]:
        """Abbildung Zwischen-Identität (npub) → Beziehungs-Metadaten.

        Enthält die Abbildung die npub des Users selbst, folgt der User
        dem Signierer direkt.

        Raises:
            httpx.HTTPError: Netzwerk- oder HTTP-Fehler.
            ValidationFailure: Antwort ist kein JSON-Objekt.
        """
        url = f"{self._base_url}/api/fwf/{user_npub}/{signer_npub}"
        response = await self._client.get(url, timeout=self._timeout)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise ValidationFailure("Trust-Graph-Antwort ist kein JSON", details={"url": url}) from exc
        if not isinstance(payload, dict):
            raise ValidationFailure("Trust-Graph-Antwort ist kein Objekt", details={"url": url})
        log.debug("trust_graph_queried", signer=signer_npub, intermediaries=len(payload))
        return payload


def parse_profile(event: NostrEvent) -> Profile:
    """kind-0-Event → Profile. Unlesbarer Inhalt ergibt ein leeres Profil."""
    try:
        data = json.loads(event.content)
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    def _text(key: str) -> str:
        value = data.get(key)
        return value if isinstance(value, str) else ""

    return Profile(
        pubkey=event.pubkey,
        name=_text("name"),
        display_name=_text("display_name") or _text("displayName"),
        nip05=_text("nip05"),
    )


class ProfileDirectory:
    """Profil-Abfragen über mehrere Relays.

    Args:
        relay_urls: HTTP-Query-Relays für kind-0-Events.
        client: Geteilter httpx.AsyncClient.
        timeout: Timeout je Relay-Abfrage in Sekunden.
    """

    def __init__(
        self,
        relay_urls: list[str],
        client: httpx.AsyncClient,
        *,
        timeout: float = 20.0,
    ) -> None:
        self._relay_urls = list(relay_urls)
        self._client = client
        self._timeout = timeout

    async def fetch(self, pubkeys: list[str]) -> dict[str, Profile]:
        """Neuestes gültiges Profil je Identität. Fehlende Identitäten fehlen im Ergebnis."""
        wanted = sorted(set(pubkeys))
        if not wanted or not self._relay_urls:
            return {}

        batches = await asyncio.gather(
            *(self._query_relay(url, wanted) for url in self._relay_urls)
        )

        newest: dict[str, NostrEvent] = {}
        for events in batches:
            for event in events:
                if event.kind != KIND_PROFILE or event.pubkey not in wanted:
                    continue
                current = newest.get(event.pubkey)
                if current is None or event.created_at > current.created_at:
                    newest[event.pubkey] = event

        return {pubkey: parse_profile(event) for pubkey, event in newest.items()}

    async def _query_relay(self, relay_url: str, pubkeys: list[str]) -> list[NostrEvent]:
        try:
            response = await self._client.post(
                relay_url,
                json={"kinds": [KIND_PROFILE], "authors": pubkeys},
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("profile_relay_failed", relay=relay_url, error=str(exc))
            return []
        if not isinstance(payload, list):
            log.warning("profile_relay_invalid_response", relay=relay_url)
            return []

        events: list[NostrEvent] = []
        for item in payload:
            try:
                events.append(validate_event(NostrEvent.from_dict(item)))
            except ValidationFailure as exc:
                log.debug("profile_event_skipped", relay=relay_url, error=str(exc))
        return events
