"""Katalog-Client: Auflösung eines Anwendungsnamens zu einem ``RemoteCandidate``.

Drei strikt sequenzielle Abfragen gegen das HTTP-Relay (Datenabhängigkeit):

  1. Anwendungs-Events (kind 32267) per Suchbegriff + Plattform-Tag
  2. Neuestes Release-Event (kind 30063) per ``a``-Tag der Anwendung
  3. Datei-Metadaten (kind 1063) per ``e``-Referenzen des Releases + Plattform

Jedes Event wird vor der Verwendung validiert (Struktur, ID, Signatur).
Leere Ergebnisse führen zu ``LookupEmpty``, fehlerhafte zu ``ValidationFailure``.
Netzwerkfehler werden nicht wiederholt, sondern direkt durchgereicht.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from zapstore.catalog.events import (
    KIND_APP,
    KIND_FILE_METADATA,
    KIND_RELEASE,
    NostrEvent,
    validate_event,
)
from zapstore.core.errors import LookupEmpty, ValidationFailure
from zapstore.models import RemoteCandidate
from zapstore.store.local_store import is_valid_app_name
from zapstore.store.version import is_valid_version
from zapstore.utils.logging import get_logger

log = get_logger(__name__)

SEARCH_LIMIT = 20
_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")

# Auswahl bei mehreren Treffern: erhält die Anwendungs-Events, liefert einen Index
ChooseFn = Callable[[list[NostrEvent]], Awaitable[int]]

__all__ = ["CatalogClient", "ChooseFn", "app_label"]


def app_label(app: NostrEvent) -> str:
    """Anzeigename eines Anwendungs-Events (``name``-Tag, sonst ``d``-Tag)."""
    return app.tag("name") or app.tag("d") or app.id[:8]


class CatalogClient:
    """Abfragen an ein Nostr-Relay mit HTTP-Query-Endpunkt.

    Args:
        relay_url: Basis-URL des Relays (POST mit JSON-Filter).
        client: Geteilter httpx.AsyncClient.
        blossom_url: Fallback-Server für Datei-Events ohne ``url``-Tag.
    """

    def __init__(
        self,
        relay_url: str,
        client: httpx.AsyncClient,
        *,
        blossom_url: str = "",
    ) -> None:
        self._relay_url = relay_url
        self._client = client
        self._blossom_url = blossom_url.rstrip("/")

    async def query(self, filters: dict[str, Any]) -> list[NostrEvent]:
        """Sendet einen Filter ans Relay und gibt validierte Events zurück.

        Raises:
            httpx.HTTPError: Netzwerk- oder HTTP-Fehler.
            ValidationFailure: Antwort oder ein Event ist ungültig.
        """
        response = await self._client.post(self._relay_url, json=filters)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise ValidationFailure(
                "Relay-Antwort ist kein JSON",
                details={"relay": self._relay_url},
            ) from exc
        if not isinstance(payload, list):
            raise ValidationFailure(
                "Relay-Antwort ist keine Event-Liste",
                details={"relay": self._relay_url},
            )
        events = [validate_event(NostrEvent.from_dict(item)) for item in payload]
        log.debug("catalog_query", kinds=filters.get("kinds"), results=len(events))
        return events

    async def search(self, term: str, platform: str) -> list[NostrEvent]:
        """Anwendungs-Events zum Suchbegriff (für Anzeige und Auswahl)."""
        return await self.query({
            "kinds": [KIND_APP],
            "search": term,
            "#f": [platform],
            "limit": SEARCH_LIMIT,
        })

    async def resolve(
        self,
        term: str,
        platform: str,
        choose: ChooseFn | None = None,
    ) -> RemoteCandidate:
        """Vollständige Auflösung: Anwendung → Release → Datei-Metadaten.

        Args:
            term: Suchbegriff (in der Regel der Anwendungsname).
            platform: Plattform-Tag des Hosts.
            choose: Auswahl bei mehreren Anwendungen. Ohne Callback gewinnt
                der exakte Namenstreffer, sonst das erste Ergebnis.

        Raises:
            LookupEmpty: Keine Anwendung, kein Release oder keine Datei für die Plattform.
            ValidationFailure: Ein Event ist ungültig oder unvollständig.
        """
        apps = await self.search(term, platform)
        if not apps:
            raise LookupEmpty(f"Keine Anwendung für '{term}' gefunden", details={"term": term})

        app = await self._pick_app(term, apps, choose)
        app_id = app.tag("d")
        if not app_id:
            raise ValidationFailure("Anwendungs-Event ohne d-Tag", details={"id": app.id})

        releases = await self.query({
            "kinds": [KIND_RELEASE],
            "#a": [f"{KIND_APP}:{app.pubkey}:{app_id}"],
            "limit": 1,
        })
        if not releases:
            raise LookupEmpty(f"Keine Releases für '{app_label(app)}' gefunden", details={"app": app_id})
        release = max(releases, key=lambda e: e.created_at)

        file_refs = release.tags_named("e")
        if not file_refs:
            raise LookupEmpty(
                f"Release von '{app_label(app)}' verweist auf keine Dateien",
                details={"release": release.id},
            )
        files = await self.query({
            "kinds": [KIND_FILE_METADATA],
            "ids": file_refs,
            "#f": [platform],
        })
        if not files:
            raise LookupEmpty(
                f"Keine Datei für Plattform {platform} gefunden",
                details={"release": release.id, "platform": platform},
            )

        return self._candidate(app, files[0], platform)

    async def _pick_app(
        self,
        term: str,
        apps: list[NostrEvent],
        choose: ChooseFn | None,
    ) -> NostrEvent:
        if len(apps) == 1:
            return apps[0]
        if choose is not None:
            index = await choose(apps)
            return apps[index]
        for app in apps:
            if app_label(app) == term:
                return app
        return apps[0]

    def _candidate(self, app: NostrEvent, meta: NostrEvent, platform: str) -> RemoteCandidate:
        name = app_label(app)
        version = meta.tag("version") or ""
        content_hash = meta.tag("x") or ""
        url = meta.tag("url") or ""

        if not is_valid_version(version):
            raise ValidationFailure(
                f"Ungültige Version '{version}' im Datei-Event",
                details={"id": meta.id, "version": version},
            )
        if not _HASH_PATTERN.match(content_hash):
            raise ValidationFailure(
                "Datei-Event ohne gültigen SHA-256-Hash",
                details={"id": meta.id, "x": content_hash},
            )
        if not url and self._blossom_url:
            url = f"{self._blossom_url}/{content_hash.lower()}"
        if not url:
            raise ValidationFailure("Datei-Event ohne Download-URL", details={"id": meta.id})
        if not is_valid_app_name(name):
            raise ValidationFailure(f"Ungültiger Anwendungsname '{name}'", details={"id": app.id})

        candidate = RemoteCandidate(
            app_name=name,
            version=version,
            signer=meta.pubkey,
            builder=app.tag("p") or "",
            download_url=url,
            content_hash=content_hash,
            platform=platform,
            summary=app.tag("summary") or "",
        )
        log.info("catalog_resolved", app=name, version=version, signer=meta.pubkey[:8])
        return candidate
