"""Paket-Manager: orchestriert Katalog, Store, Trust und Installation.

Kontrollfluss einer Installation:

  resolve (Katalog) → load (Store) → decide (Policy)
    → [Downgrade-Bestätigung] → Trust-Bewertung → InstallPipeline

Jede Ablehnung des Users bricht mit ``UserDeclined`` ab, bevor der Store
verändert wird. Der Manager selbst berührt das Dateisystem nie direkt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import httpx

from zapstore.catalog.client import CatalogClient
from zapstore.catalog.events import NostrEvent
from zapstore.catalog.social import ProfileDirectory, SocialGraphClient
from zapstore.config import ZapstoreConfig
from zapstore.core.errors import LookupEmpty, NotInstalled, UserDeclined
from zapstore.models import (
    DecisionKind,
    InstalledVersion,
    RemoteCandidate,
    TrustReport,
    VersionDecision,
)
from zapstore.platform import host_platform_tag
from zapstore.store.installer import InstallPipeline
from zapstore.store.local_store import LocalStore, PackageStore
from zapstore.store.resolution import decide
from zapstore.store.trust import TrustEvaluator
from zapstore.user import ensure_user
from zapstore.utils.logging import get_logger

log = get_logger(__name__)

__all__ = [
    "CleanupResult",
    "Interaction",
    "InstallOutcome",
    "PackageManager",
    "create_manager",
]


class Interaction(Protocol):
    """Alles, was der Manager vom Terminal braucht."""

    async def confirm(self, question: str) -> bool: ...

    async def ask(self, question: str) -> str: ...

    async def choose(self, apps: list[NostrEvent]) -> int: ...

    def show_trust_report(self, report: TrustReport) -> None: ...

    def progress(self, loaded: int, total: int) -> None: ...


# ============================================================================
# Ergebnisse
# ============================================================================


@dataclass(frozen=True)
class InstallOutcome:
    """Ergebnis eines Install- oder Update-Laufs für eine Anwendung.

    ``active`` ist die danach aktive Version (None wenn keine aktiv ist).
    """

    candidate: RemoteCandidate
    decision: VersionDecision
    active: InstalledVersion | None = None
    changed: bool = False


@dataclass(frozen=True)
class CleanupResult:
    removed: list[InstalledVersion] = field(default_factory=list)
    orphaned_pointers: list[str] = field(default_factory=list)
    bytes_freed: int = 0


# ============================================================================
# Manager
# ============================================================================


class PackageManager:
    """Operationen der Kommandozeile, unabhängig von der Darstellung.

    Args:
        store: Dateisystem-Backend.
        catalog: Katalog-Client.
        evaluator: Trust-Bewertung.
        pipeline: Installations-Pipeline.
        ui: Rückfragen und Anzeige.
        platform: Plattform-Tag für Katalog-Abfragen.
    """

    def __init__(
        self,
        store: PackageStore,
        catalog: CatalogClient,
        evaluator: TrustEvaluator,
        pipeline: InstallPipeline,
        ui: Interaction,
        *,
        platform: str,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._evaluator = evaluator
        self._pipeline = pipeline
        self._ui = ui
        self._platform = platform

    @property
    def platform(self) -> str:
        return self._platform

    # ---- install / update -----------------------------------------------

    async def install(self, term: str, *, upgrade_only: bool = False) -> InstallOutcome:
        """Löst ``term`` im Katalog auf und führt die nötige Aktion aus.

        Args:
            term: Anwendungsname oder Suchbegriff.
            upgrade_only: Nur echte Upgrades ausführen (``update``). Dann
                muss der Katalog-Treffer exakt ``term`` heißen.

        Raises:
            LookupEmpty: Nichts im Katalog gefunden.
            UserDeclined: Downgrade- oder Trust-Rückfrage verneint.
        """
        choose = None if upgrade_only else self._ui.choose
        candidate = await self._catalog.resolve(term, self._platform, choose=choose)
        if upgrade_only and candidate.app_name != term:
            raise LookupEmpty(
                f"Keine Anwendung '{term}' im Katalog gefunden",
                details={"term": term, "found": candidate.app_name},
            )

        snapshot = self._store.load()
        decision = decide(candidate, snapshot)
        app = candidate.app_name
        log.info(
            "install_decision",
            app=app,
            version=candidate.version,
            decision=str(decision.kind),
        )

        if decision.kind in (DecisionKind.ALREADY_ACTIVE, DecisionKind.UP_TO_DATE):
            return InstallOutcome(candidate, decision, active=snapshot.enabled(app))

        if upgrade_only and decision.kind is not DecisionKind.UPGRADE:
            return InstallOutcome(candidate, decision, active=snapshot.enabled(app))

        if decision.kind is DecisionKind.RE_ENABLE:
            assert decision.existing is not None
            active = self._store.activate(decision.existing)
            return InstallOutcome(candidate, decision, active=active, changed=True)

        if decision.kind is DecisionKind.DOWNGRADE:
            assert decision.existing is not None
            question = (
                f"Installiert ist {app} {decision.existing.version}, neuer als "
                f"{candidate.version}. Trotzdem {candidate.version} installieren?"
            )
            if not await self._ui.confirm(question):
                raise UserDeclined(
                    f"Downgrade von {app} abgelehnt",
                    details={"app": app, "installed": decision.existing.version},
                )

        verdict = await self._evaluator.evaluate(
            candidate,
            snapshot.versions(app),
            self._ui.confirm,
            upgrade=decision.kind is DecisionKind.UPGRADE,
        )
        if not verdict.proceed:
            raise UserDeclined(
                f"Installation von {app} abgelehnt",
                details={"app": app, "signer": candidate.signer},
            )

        active = await self._pipeline.install(candidate)
        log.info("install_complete", app=app, version=active.version, decision=str(decision.kind))
        return InstallOutcome(candidate, decision, active=active, changed=True)

    async def update(self, name: str | None = None) -> list[InstallOutcome]:
        """Aktualisiert eine oder alle installierten Anwendungen.

        Bei ``name=None`` werden nicht auffindbare oder abgelehnte
        Anwendungen übersprungen; die übrigen laufen weiter.
        """
        snapshot = self._store.load()
        if name is not None:
            if name not in snapshot:
                raise NotInstalled(f"{name} ist nicht installiert", details={"app": name})
            return [await self.install(name, upgrade_only=True)]

        outcomes: list[InstallOutcome] = []
        for app in snapshot:
            try:
                outcomes.append(await self.install(app, upgrade_only=True))
            except (LookupEmpty, UserDeclined) as exc:
                log.info("update_skipped", app=app, reason=exc.error_code)
        return outcomes

    # ---- lokale Operationen ---------------------------------------------

    async def remove(self, name: str) -> int:
        """Entfernt Aktivierungs-Link und alle Artefakte der Anwendung.

        Returns:
            Freigegebene Bytes.
        """
        snapshot = self._store.load()
        versions = snapshot.versions(name)
        if not versions and name not in snapshot.orphaned_pointers:
            raise NotInstalled(f"{name} ist nicht installiert", details={"app": name})

        question = f"{name} mit {len(versions)} Version(en) wirklich entfernen?"
        if not await self._ui.confirm(question):
            raise UserDeclined(f"Entfernen von {name} abgelehnt", details={"app": name})

        self._store.deactivate(name)
        freed = 0
        for installed in versions:
            freed += self._store.delete_artifact(installed)
        log.info("app_removed", app=name, versions=len(versions), bytes=freed)
        return freed

    def enable(self, name: str) -> InstalledVersion:
        """Aktiviert die höchste installierte Version (No-op wenn schon eine aktiv ist)."""
        snapshot = self._store.load()
        active = snapshot.enabled(name)
        if active is not None:
            return active
        highest = snapshot.highest(name)
        if highest is None:
            raise NotInstalled(f"{name} ist nicht installiert", details={"app": name})
        return self._store.activate(highest)

    def disable(self, name: str) -> bool:
        """Entfernt den Aktivierungs-Link. False wenn die Anwendung schon inaktiv war."""
        snapshot = self._store.load()
        if name not in snapshot:
            raise NotInstalled(f"{name} ist nicht installiert", details={"app": name})
        return self._store.deactivate(name)

    def installed(self) -> LocalStore:
        return self._store.load()

    async def search(self, term: str) -> list[NostrEvent]:
        return await self._catalog.search(term, self._platform)

    def cleanup(self) -> CleanupResult:
        """Löscht inaktive Versionen aktiver Anwendungen und verwaiste Links.

        Vollständig deaktivierte Anwendungen behalten alle Artefakte.
        """
        snapshot = self._store.load()
        removed: list[InstalledVersion] = []
        freed = 0
        for app in snapshot:
            if snapshot.enabled(app) is None:
                continue
            for installed in snapshot.versions(app):
                if installed.enabled:
                    continue
                freed += self._store.delete_artifact(installed)
                removed.append(installed)

        for pointer in snapshot.orphaned_pointers:
            self._store.delete_pointer(pointer)

        log.info(
            "cleanup_complete",
            removed=len(removed),
            orphaned=len(snapshot.orphaned_pointers),
            bytes=freed,
        )
        return CleanupResult(
            removed=removed,
            orphaned_pointers=list(snapshot.orphaned_pointers),
            bytes_freed=freed,
        )


def create_manager(
    config: ZapstoreConfig,
    client: httpx.AsyncClient,
    ui: Interaction,
) -> PackageManager:
    """Verdrahtet alle Komponenten aus der Konfiguration."""
    store = PackageStore(config.store_home)
    catalog = CatalogClient(
        config.catalog.relay_url,
        client,
        blossom_url=config.catalog.blossom_url,
    )

    async def user() -> str:
        return await ensure_user(config.user_file, ui.ask)

    evaluator = TrustEvaluator(
        user,
        SocialGraphClient(
            config.trust.graph_url, client, timeout=config.trust.timeout_seconds,
        ),
        ProfileDirectory(
            config.trust.profile_relays, client, timeout=config.trust.timeout_seconds,
        ),
        on_report=ui.show_trust_report,
    )
    pipeline = InstallPipeline(
        store,
        client,
        chunk_size=config.download.chunk_size,
        timeout=config.download.timeout_seconds,
        on_progress=ui.progress,
    )
    return PackageManager(
        store,
        catalog,
        evaluator,
        pipeline,
        ui,
        platform=config.catalog.platform_override or host_platform_tag(),
    )
