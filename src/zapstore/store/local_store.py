"""Lokaler Paket-Store: Verzeichnis als implizite Datenbank.

Layout des Store-Verzeichnisses (Standard ``~/.zapstore``):

  <signer>-<app>@-<version>   ← Artefakt (reguläre Datei, ausführbar)
  <app>                       ← Aktivierungs-Link (Symlink auf ein Artefakt)
  _.json                      ← Identitäts-Record des lokalen Users
  .staging-* / .extract-*     ← Temporäre Dateien während einer Installation

Es gibt keinen persistierten Index. ``PackageStore.load()`` liest den
Zustand bei jedem Aufruf neu aus dem Verzeichnis und liefert einen
unveränderlichen ``LocalStore``-Snapshot. Nur ``PackageStore`` berührt
das Dateisystem; Policy und Trust-Bewertung arbeiten auf Snapshots.

Der Aktivierungs-Link wird ausschließlich atomar ersetzt (Symlink unter
temporärem Namen anlegen, dann ``os.replace``). Eine Shell, die den Link
parallel auflöst, sieht immer entweder das alte oder das neue Ziel.
"""

from __future__ import annotations

import os
import re
import secrets
import shutil
import stat
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from zapstore.core.errors import FilesystemFailure, ValidationFailure
from zapstore.models import InstalledVersion
from zapstore.store.version import compare
from zapstore.utils.logging import get_logger

log = get_logger(__name__)

ARTIFACT_PATTERN = re.compile(
    r"^(?P<signer>[0-9a-f]{64})-(?P<app>.+)@-(?P<version>\d+(?:\.\d+)*)$"
)
USER_RECORD_NAME = "_.json"
STAGING_PREFIX = ".staging-"
EXTRACT_PREFIX = ".extract-"
EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

__all__ = [
    "LocalStore",
    "PackageStore",
    "artifact_name",
    "is_valid_app_name",
    "parse_artifact_name",
]


def artifact_name(signer: str, app_name: str, version: str) -> str:
    """Deterministischer Dateiname eines Artefakts."""
    return f"{signer}-{app_name}@-{version}"


def parse_artifact_name(name: str) -> tuple[str, str, str] | None:
    """Zerlegt einen Artefakt-Dateinamen in (signer, app_name, version).

    Returns:
        None wenn der Name nicht dem Artefakt-Schema entspricht.
    """
    match = ARTIFACT_PATTERN.match(name)
    if match is None:
        return None
    return match.group("signer"), match.group("app"), match.group("version")


def is_valid_app_name(name: str) -> bool:
    """True wenn ``name`` als Aktivierungs-Link taugt.

    Ausgeschlossen sind Pfade, versteckte Namen, der Identitäts-Record und
    alles, was selbst wie ein Artefakt-Dateiname aussieht.
    """
    if not name or "/" in name or "\x00" in name or name.startswith("."):
        return False
    if name == USER_RECORD_NAME:
        return False
    return parse_artifact_name(name) is None


# ============================================================================
# Snapshot
# ============================================================================


@dataclass(frozen=True)
class LocalStore:
    """Snapshot aller installierten Versionen, gruppiert nach Anwendung.

    Pro Anwendung ist höchstens eine Version ``enabled``.
    """

    root: Path
    apps: dict[str, list[InstalledVersion]] = field(default_factory=dict)
    orphaned_pointers: list[str] = field(default_factory=list)

    def __contains__(self, app_name: object) -> bool:
        return app_name in self.apps

    def __iter__(self) -> Iterator[str]:
        return iter(self.apps)

    def __len__(self) -> int:
        return len(self.apps)

    def versions(self, app_name: str) -> list[InstalledVersion]:
        """Installierte Versionen einer Anwendung (leer wenn unbekannt)."""
        return list(self.apps.get(app_name, []))

    def enabled(self, app_name: str) -> InstalledVersion | None:
        """Die aktive Version oder None (Anwendung deaktiviert)."""
        for version in self.apps.get(app_name, []):
            if version.enabled:
                return version
        return None

    def find(self, app_name: str, version: str, signer: str | None = None) -> InstalledVersion | None:
        """Installierte Version mit exakt gleichem Versions-String.

        Mehrere Signierer können dieselbe Version liefern. Vorrang hat die
        aktive, danach die des angegebenen Signierers, sonst die erste.
        """
        same = [v for v in self.apps.get(app_name, []) if v.version == version]
        for installed in same:
            if installed.enabled:
                return installed
        for installed in same:
            if installed.signer == signer:
                return installed
        return same[0] if same else None

    def highest(self, app_name: str) -> InstalledVersion | None:
        """Höchste installierte Version einer Anwendung."""
        best: InstalledVersion | None = None
        for installed in self.apps.get(app_name, []):
            if best is None or compare(installed.version, best.version) == 1:
                best = installed
        return best


# ============================================================================
# Dateisystem-Backend
# ============================================================================


class PackageStore:
    """Einziger Zugriffspunkt auf das Store-Verzeichnis.

    Args:
        root: Store-Verzeichnis. Wird bei Bedarf angelegt.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def artifact_path(self, signer: str, app_name: str, version: str) -> Path:
        """Kanonischer Speicherort für das Tripel (signer, app, version)."""
        return self._root / artifact_name(signer, app_name, version)

    def pointer_path(self, app_name: str) -> Path:
        """Pfad des Aktivierungs-Links.

        Raises:
            ValidationFailure: Name würde Record, Artefakt oder Pfad treffen.
        """
        if not is_valid_app_name(app_name):
            raise ValidationFailure(
                f"Ungültiger Anwendungsname '{app_name}'",
                details={"app": app_name},
            )
        return self._root / app_name

    # ---- Laden ----------------------------------------------------------

    def load(self) -> LocalStore:
        """Liest den aktuellen Zustand aus dem Verzeichnis.

        Artefakte werden in Namensreihenfolge entdeckt. Links, deren Ziel
        kein bekanntes Artefakt derselben Anwendung ist, gelten als verwaist
        und werden ignoriert.
        """
        if not self._root.is_dir():
            return LocalStore(root=self._root)

        entries = sorted(self._root.iterdir(), key=lambda p: p.name)
        apps: dict[str, list[InstalledVersion]] = {}
        pointers: list[Path] = []

        for entry in entries:
            if entry.name.startswith("."):
                continue
            if entry.is_symlink():
                pointers.append(entry)
                continue
            if not entry.is_file():
                continue
            parsed = parse_artifact_name(entry.name)
            if parsed is None:
                if entry.name != USER_RECORD_NAME:
                    log.debug("store_entry_ignored", entry=entry.name)
                continue
            signer, app_name, version = parsed
            apps.setdefault(app_name, []).append(
                InstalledVersion(
                    app_name=app_name,
                    signer=signer,
                    version=version,
                    storage_path=entry,
                )
            )

        orphaned: list[str] = []
        for pointer in pointers:
            target = Path(os.readlink(pointer))
            versions = apps.get(pointer.name, [])
            for i, installed in enumerate(versions):
                if installed.storage_path.name == target.name:
                    versions[i] = installed.model_copy(update={"enabled": True})
                    break
            else:
                orphaned.append(pointer.name)
                log.debug("store_pointer_orphaned", pointer=pointer.name, target=str(target))

        return LocalStore(root=self._root, apps=apps, orphaned_pointers=orphaned)

    # ---- Aktivierung ----------------------------------------------------

    def activate(self, installed: InstalledVersion) -> InstalledVersion:
        """Setzt den Aktivierungs-Link der Anwendung atomar auf ``installed``.

        Raises:
            FilesystemFailure: Artefakt fehlt oder der Link kann nicht ersetzt werden.
        """
        target = installed.storage_path
        if not target.is_file() or target.parent != self._root:
            raise FilesystemFailure(
                f"Artefakt fehlt im Store: {target}",
                details={"path": str(target)},
            )

        pointer = self.pointer_path(installed.app_name)
        tmp_link = self._root / f".{installed.app_name}.link-{secrets.token_hex(4)}"
        try:
            # relativer Link: der Store bleibt verschiebbar
            os.symlink(target.name, tmp_link)
            os.replace(tmp_link, pointer)
        except OSError as exc:
            tmp_link.unlink(missing_ok=True)
            raise FilesystemFailure(
                f"Aktivierungs-Link für {installed.app_name} konnte nicht gesetzt werden: {exc}",
                details={"pointer": str(pointer), "target": target.name},
            ) from exc

        log.info(
            "artifact_activated",
            app=installed.app_name,
            version=installed.version,
            signer=installed.signer[:8],
        )
        return installed.model_copy(update={"enabled": True})

    def deactivate(self, app_name: str) -> bool:
        """Entfernt den Aktivierungs-Link. False wenn keiner existierte."""
        pointer = self.pointer_path(app_name)
        if not pointer.is_symlink():
            return False
        try:
            pointer.unlink()
        except OSError as exc:
            raise FilesystemFailure(
                f"Aktivierungs-Link für {app_name} konnte nicht entfernt werden: {exc}",
                details={"pointer": str(pointer)},
            ) from exc
        log.info("artifact_deactivated", app=app_name)
        return True

    # ---- Artefakte ------------------------------------------------------

    def place_artifact(self, source: Path, signer: str, app_name: str, version: str) -> InstalledVersion:
        """Verschiebt eine verifizierte Datei an ihren kanonischen Ort und macht sie ausführbar.

        ``source`` muss im selben Dateisystem liegen (Staging im Store-Root).
        """
        target = self.artifact_path(signer, app_name, version)
        if target.exists() or target.is_symlink():
            raise FilesystemFailure(
                f"Artefakt existiert bereits: {target.name}",
                details={"path": str(target)},
            )
        try:
            os.replace(source, target)
            mode = target.stat().st_mode
            target.chmod(mode | EXECUTABLE_BITS)
        except OSError as exc:
            raise FilesystemFailure(
                f"Artefakt konnte nicht abgelegt werden: {exc}",
                details={"source": str(source), "target": str(target)},
            ) from exc
        log.info("artifact_placed", app=app_name, version=version, path=str(target))
        return InstalledVersion(
            app_name=app_name,
            signer=signer,
            version=version,
            storage_path=target,
        )

    def delete_artifact(self, installed: InstalledVersion) -> int:
        """Löscht ein Artefakt. Gibt die freigegebenen Bytes zurück."""
        try:
            size = installed.storage_path.stat().st_size
            installed.storage_path.unlink()
        except OSError as exc:
            raise FilesystemFailure(
                f"Artefakt konnte nicht gelöscht werden: {exc}",
                details={"path": str(installed.storage_path)},
            ) from exc
        log.info("artifact_deleted", app=installed.app_name, version=installed.version)
        return size

    def delete_pointer(self, name: str) -> None:
        """Löscht einen (verwaisten) Link ohne weitere Prüfung."""
        pointer = self._root / name
        if pointer.is_symlink():
            pointer.unlink()
            log.info("pointer_deleted", pointer=name)

    # ---- Staging --------------------------------------------------------

    def staging_file(self, suffix: str = "") -> Path:
        """Legt eine leere temporäre Datei im Store-Root an."""
        self.ensure_root()
        fd, name = tempfile.mkstemp(prefix=STAGING_PREFIX, suffix=suffix, dir=self._root)
        os.close(fd)
        return Path(name)

    def extraction_dir(self) -> Path:
        """Legt ein temporäres Entpack-Verzeichnis im Store-Root an."""
        self.ensure_root()
        return Path(tempfile.mkdtemp(prefix=EXTRACT_PREFIX, dir=self._root))

    def ensure_root(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)

    # ---- Selbstregistrierung --------------------------------------------

    def bootstrap(self, executable: Path, *, signer: str, app_name: str, version: str) -> bool:
        """Registriert das eigene Executable als installierte Version und aktiviert es.

        Idempotent: sobald irgendein Artefakt der Anwendung existiert, passiert nichts.

        Returns:
            True wenn die Selbstregistrierung in diesem Aufruf stattfand.
        """
        if self.load().versions(app_name):
            return False

        staged = self.staging_file()
        try:
            shutil.copy2(executable, staged)
        except OSError as exc:
            staged.unlink(missing_ok=True)
            raise FilesystemFailure(
                f"Selbstregistrierung fehlgeschlagen: {exc}",
                details={"executable": str(executable)},
            ) from exc
        try:
            installed = self.place_artifact(staged, signer, app_name, version)
        except FilesystemFailure:
            staged.unlink(missing_ok=True)
            raise
        self.activate(installed)
        log.info("self_registered", app=app_name, version=version, source=str(executable))
        return True
