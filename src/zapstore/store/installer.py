"""Installations-Pipeline: Download → Verifikation → Ablage → Aktivierung.

Schritte (jeder ein möglicher Abbruchpunkt):

  1. Streaming-Download in eine Staging-Datei im Store-Root, mit
     Byte-Fortschritt. Fehlt ``Content-Length`` oder bricht das Netz ab,
     wird die Staging-Datei gelöscht; der Store bleibt unverändert.
  2. SHA-256 der Staging-Datei gegen den Katalog-Hash (ohne Groß-/Klein-
     schreibung). Bei Abweichung: Staging-Datei löschen, IntegrityMismatch.
     Nichts aus dem Download wird vor diesem Schritt weiterverwendet.
  3. Archive (tar.*, zip) in ein temporäres Verzeichnis entpacken, den
     Eintrag mit dem Anwendungsnamen an den kanonischen Ort verschieben.
     Andere Dateien werden direkt verschoben.
  4. Ausführbar machen.
  5. Aktivierungs-Link atomar umsetzen. Erst hier ändert sich die
     aktive Version; ein Fehler davor hinterlässt nie einen Link auf
     ein fehlendes oder halb geschriebenes Ziel.
"""

from __future__ import annotations

import hashlib
import shutil
import tarfile
import zipfile
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from urllib.parse import urlsplit

import httpx

from zapstore.core.errors import DownloadError, FilesystemFailure, IntegrityMismatch
from zapstore.models import InstalledVersion, RemoteCandidate
from zapstore.store.local_store import PackageStore
from zapstore.utils.logging import get_logger

log = get_logger(__name__)

ProgressFn = Callable[[int, int], None]

TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2", ".tar")
ZIP_SUFFIXES = (".zip",)
_GZIP_MAGIC = b"\x1f\x8b"
_ZIP_MAGIC = b"PK\x03\x04"
HASH_READ_SIZE = 1024 * 1024

__all__ = [
    "InstallPipeline",
    "ProgressFn",
    "archive_kind",
    "sha256_file",
]


def sha256_file(path: Path) -> str:
    """SHA-256 (hex) einer Datei, blockweise gelesen."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for block in iter(lambda: fh.read(HASH_READ_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def archive_kind(url: str, staged: Path | None = None) -> str | None:
    """Erkennt Archive an der Dateiendung der URL, sonst an den ersten Bytes.

    Returns:
        "tar", "zip" oder None (direkt ausführbare Datei).
    """
    basename = PurePosixPath(urlsplit(url).path).name.lower()
    if basename.endswith(TAR_SUFFIXES):
        return "tar"
    if basename.endswith(ZIP_SUFFIXES):
        return "zip"
    if staged is None:
        return None

    with open(staged, "rb") as fh:
        head = fh.read(4)
    if head.startswith(_GZIP_MAGIC) and tarfile.is_tarfile(staged):
        return "tar"
    if head.startswith(_ZIP_MAGIC) and zipfile.is_zipfile(staged):
        return "zip"
    return None


def _staging_suffix(url: str) -> str:
    basename = PurePosixPath(urlsplit(url).path).name.lower()
    for suffix in (*TAR_SUFFIXES, *ZIP_SUFFIXES):
        if basename.endswith(suffix):
            return suffix
    return ""


class InstallPipeline:
    """Lädt, verifiziert und aktiviert ein Artefakt.

    Args:
        store: Dateisystem-Backend des Stores.
        client: Geteilter httpx.AsyncClient für den Download.
        chunk_size: Blockgröße beim Streaming.
        timeout: Timeout je Netzwerk-Operation in Sekunden.
        on_progress: Callback (geladene Bytes, Gesamtbytes).
    """

    def __init__(
        self,
        store: PackageStore,
        client: httpx.AsyncClient,
        *,
        chunk_size: int = 64 * 1024,
        timeout: float = 120.0,
        on_progress: ProgressFn | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._chunk_size = chunk_size
        self._timeout = timeout
        self._on_progress = on_progress

    async def install(self, candidate: RemoteCandidate) -> InstalledVersion:
        """Führt alle fünf Schritte aus und gibt die aktive Version zurück."""
        staged = await self.download(candidate)
        try:
            self.verify(staged, candidate.content_hash)
            placed = self.materialize(staged, candidate)
        finally:
            staged.unlink(missing_ok=True)
        return self._store.activate(placed)

    # ---- 1. Download ----------------------------------------------------

    async def download(self, candidate: RemoteCandidate) -> Path:
        """Streamt die Download-URL in eine Staging-Datei.

        Raises:
            DownloadError: HTTP-/Netzwerkfehler oder fehlende Content-Length.
        """
        url = candidate.download_url
        staged = self._store.staging_file(_staging_suffix(url))
        try:
            async with self._client.stream("GET", url, timeout=self._timeout) as response:
                response.raise_for_status()
                length = response.headers.get("Content-Length")
                if length is None:
                    raise DownloadError(
                        "Content-Length fehlt in der Download-Antwort",
                        details={"url": url},
                    )
                try:
                    total = int(length)
                except ValueError as exc:
                    raise DownloadError(
                        f"Ungültige Content-Length '{length}' in der Download-Antwort",
                        details={"url": url},
                    ) from exc
                loaded = 0
                with open(staged, "wb") as fh:
                    async for chunk in response.aiter_bytes(self._chunk_size):
                        fh.write(chunk)
                        loaded += len(chunk)
                        if self._on_progress is not None:
                            self._on_progress(loaded, total)
        except httpx.HTTPError as exc:
            staged.unlink(missing_ok=True)
            raise DownloadError(f"Download fehlgeschlagen: {exc}", details={"url": url}) from exc
        except BaseException:
            staged.unlink(missing_ok=True)
            raise

        log.info("artifact_downloaded", app=candidate.app_name, url=url, bytes=loaded)
        return staged

    # ---- 2. Integrität --------------------------------------------------

    def verify(self, staged: Path, expected_hash: str) -> None:
        """Vergleicht den SHA-256 der Staging-Datei mit dem erwarteten Hash.

        Raises:
            IntegrityMismatch: Hash weicht ab (Staging-Datei ist dann gelöscht).
        """
        actual = sha256_file(staged)
        if actual.lower() != expected_hash.lower():
            staged.unlink(missing_ok=True)
            log.error("artifact_hash_mismatch", expected=expected_hash, actual=actual)
            raise IntegrityMismatch(
                "Hash stimmt nicht überein! Der Datei-Server könnte manipuliert sein.",
                details={"expected": expected_hash, "actual": actual},
            )
        log.debug("artifact_hash_verified", sha256=actual)

    # ---- 3./4. Ablage ---------------------------------------------------

    def materialize(self, staged: Path, candidate: RemoteCandidate) -> InstalledVersion:
        """Legt das verifizierte Artefakt am kanonischen Ort ab (ausführbar, noch inaktiv)."""
        kind = archive_kind(candidate.download_url, staged)
        if kind is None:
            return self._store.place_artifact(
                staged, candidate.signer, candidate.app_name, candidate.version,
            )

        extract_dir = self._store.extraction_dir()
        try:
            _extract(staged, extract_dir, kind)
            entry = _find_entry(extract_dir, candidate.app_name)
            return self._store.place_artifact(
                entry, candidate.signer, candidate.app_name, candidate.version,
            )
        finally:
            shutil.rmtree(extract_dir, ignore_errors=True)


def _extract(archive: Path, dest: Path, kind: str) -> None:
    try:
        if kind == "tar":
            with tarfile.open(archive, "r:*") as tar:
                tar.extractall(dest, filter="data")
        else:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(dest)
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as exc:
        raise FilesystemFailure(
            f"Archiv konnte nicht entpackt werden: {exc}",
            details={"archive": archive.name, "kind": kind},
        ) from exc


def _find_entry(root: Path, app_name: str) -> Path:
    """Datei mit dem Anwendungsnamen: zuerst auf oberster Ebene, sonst die flachste."""
    direct = root / app_name
    if direct.is_file() and not direct.is_symlink():
        return direct

    matches = [
        p for p in root.rglob("*")
        if p.name == app_name and p.is_file() and not p.is_symlink()
    ]
    if not matches:
        raise FilesystemFailure(
            f"Archiv enthält keinen Eintrag '{app_name}'",
            details={"app": app_name},
        )
    matches.sort(key=lambda p: (len(p.relative_to(root).parts), str(p)))
    return matches[0]
