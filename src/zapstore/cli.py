"""Terminal-Oberfläche: Rückfragen, Trust-Bericht, Fortschritt, Tabellen.

Features:
  - Farbige Ausgabe (via Rich)
  - Rückfragen [j/n] ohne den Event-Loop zu blockieren
  - Download-Fortschritt als Balken mit Transferrate
"""

from __future__ import annotations

import argparse
import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from zapstore.catalog.client import app_label
from zapstore.catalog.events import NostrEvent
from zapstore.catalog.identity import npub_encode
from zapstore.core.errors import UserDeclined
from zapstore.manager import CleanupResult, InstallOutcome, PackageManager
from zapstore.models import DecisionKind, Profile, TrustReport
from zapstore.store.local_store import LocalStore
from zapstore.utils.logging import get_logger

log = get_logger(__name__)

# Farben
COLOR_ERROR = "bold red"
COLOR_APPROVAL = "bold yellow"
COLOR_OK = "green"
COLOR_INFO = "dim"

YES_ANSWERS = ("j", "ja", "y", "yes")
NO_ANSWERS = ("n", "nein", "no")

__all__ = ["TerminalUI", "run_command"]


def _identity(pubkey: str, profile: Profile | None) -> str:
    npub = npub_encode(pubkey)
    if profile is not None and profile.label:
        return f"[bold]{profile.label}[/bold] ({npub})"
    return npub


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


class TerminalUI:
    """Rich-basierte Umsetzung von ``manager.Interaction``."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    @property
    def console(self) -> Console:
        return self._console

    # ---- Eingabe --------------------------------------------------------

    async def _read_input(self, prompt: str) -> str | None:
        """Liest User-Input nicht-blockierend.

        Nutzt asyncio.to_thread um den blockierenden input()-Call
        in den Thread-Pool auszulagern.
        """
        try:
            return await asyncio.to_thread(input, prompt)
        except (EOFError, KeyboardInterrupt):
            return None

    async def confirm(self, question: str) -> bool:
        self._console.print(f"[{COLOR_APPROVAL}]{question}[/{COLOR_APPROVAL}]")
        while True:
            answer = await self._read_input("[j/n]: ")
            if answer is None:
                return False
            answer = answer.strip().lower()
            if answer in YES_ANSWERS:
                return True
            if answer in NO_ANSWERS:
                return False
            self._console.print(f"[{COLOR_INFO}]Bitte 'j' oder 'n' eingeben.[/{COLOR_INFO}]")

    async def ask(self, question: str) -> str:
        answer = await self._read_input(question)
        return answer or ""

    async def choose(self, apps: list[NostrEvent]) -> int:
        """Nummerierte Auswahl bei mehreren Katalog-Treffern."""
        self._console.print(self._search_table(apps, numbered=True))
        while True:
            answer = await self._read_input(f"Auswahl [1-{len(apps)}]: ")
            if answer is None:
                raise UserDeclined("Keine Anwendung ausgewählt")
            answer = answer.strip()
            if answer.isdigit() and 1 <= int(answer) <= len(apps):
                return int(answer) - 1
            self._console.print(f"[{COLOR_INFO}]Bitte eine Zahl zwischen 1 und {len(apps)} eingeben.[/{COLOR_INFO}]")

    # ---- Anzeige --------------------------------------------------------

    def show_trust_report(self, report: TrustReport) -> None:
        candidate = report.candidate
        assessment = report.assessment
        lines = [
            f"Anwendung: [bold]{candidate.app_name}[/bold] {candidate.version}",
            f"Signierer: {_identity(candidate.signer, report.signer_profile)}",
        ]
        if candidate.builder:
            lines.append(f"Builder: {_identity(candidate.builder, report.builder_profile)}")
        if candidate.summary:
            lines.append(f"[{COLOR_INFO}]{candidate.summary}[/{COLOR_INFO}]")
        lines.append("")

        if assessment.trusted_by_history:
            lines.append(
                f"[{COLOR_OK}]Dieser Signierer hat bereits installierte Versionen "
                f"von {candidate.app_name} signiert.[/{COLOR_OK}]"
            )
        else:
            if assessment.follows_signer:
                lines.append(f"[{COLOR_OK}]Du folgst dem Signierer.[/{COLOR_OK}]")
            else:
                lines.append("Du folgst dem Signierer nicht.")
            if assessment.mutual_contacts:
                lines.append(
                    f"{len(assessment.mutual_contacts)} deiner Kontakte folgen dem Signierer:"
                )
                for pubkey, profile in report.contact_profiles.items():
                    lines.append(f"  • {_identity(pubkey, profile)}")
            else:
                lines.append("Keiner deiner Kontakte folgt dem Signierer.")

        self._console.print()
        self._console.print(
            Panel("\n".join(lines), border_style="yellow", title="Web of Trust")
        )

    def progress(self, loaded: int, total: int) -> None:
        if self._progress is None:
            self._progress = Progress(
                TextColumn("[bold]Download"),
                BarColumn(),
                DownloadColumn(),
                TransferSpeedColumn(),
                console=self._console,
                transient=True,
            )
            self._progress.start()
            self._task = self._progress.add_task("download", total=total)
        assert self._task is not None
        self._progress.update(self._task, completed=loaded, total=total)
        if loaded >= total:
            self.close()

    def close(self) -> None:
        """Beendet eine laufende Fortschrittsanzeige."""
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task = None

    def info(self, message: str) -> None:
        self._console.print(message)

    def error(self, message: str) -> None:
        self._console.print(f"[{COLOR_ERROR}]Fehler: {message}[/{COLOR_ERROR}]")

    def show_outcome(self, outcome: InstallOutcome, *, update: bool = False) -> None:
        candidate = outcome.candidate
        kind = outcome.decision.kind
        existing = outcome.decision.existing
        if kind is DecisionKind.ALREADY_ACTIVE:
            self.info(f"{candidate.app_name} {candidate.version} ist bereits installiert und aktiv.")
        elif kind is DecisionKind.UP_TO_DATE:
            installed = existing.version if existing is not None else candidate.version
            self.info(f"{candidate.app_name} ist aktuell ({installed}).")
        elif not outcome.changed:
            self.info(f"{candidate.app_name}: kein Update verfügbar.")
        elif kind is DecisionKind.RE_ENABLE:
            self.info(f"[{COLOR_OK}]✓ {candidate.app_name} {candidate.version} wieder aktiviert.[/{COLOR_OK}]")
        else:
            verb = "aktualisiert" if update or kind is DecisionKind.UPGRADE else "installiert"
            self.info(f"[{COLOR_OK}]✓ {candidate.app_name} {candidate.version} {verb}.[/{COLOR_OK}]")

    def show_installed(self, snapshot: LocalStore) -> None:
        if not len(snapshot):
            self.info("Keine Anwendungen installiert.")
            return
        table = Table(title=f"Installiert in {snapshot.root}")
        table.add_column("Anwendung", style="bold")
        table.add_column("Version")
        table.add_column("Signierer")
        table.add_column("Aktiv", justify="center")
        for app in sorted(snapshot):
            for installed in snapshot.versions(app):
                table.add_row(
                    app,
                    installed.version,
                    npub_encode(installed.signer)[:16] + "…",
                    f"[{COLOR_OK}]✓[/{COLOR_OK}]" if installed.enabled else "",
                )
        self._console.print(table)

    def show_search(self, apps: list[NostrEvent]) -> None:
        if not apps:
            self.info("Keine Anwendungen gefunden.")
            return
        self._console.print(self._search_table(apps))

    def show_cleanup(self, result: CleanupResult) -> None:
        for installed in result.removed:
            self.info(f"[{COLOR_INFO}]entfernt: {installed.app_name} {installed.version}[/{COLOR_INFO}]")
        for pointer in result.orphaned_pointers:
            self.info(f"[{COLOR_INFO}]verwaister Link entfernt: {pointer}[/{COLOR_INFO}]")
        self.info(
            f"{len(result.removed)} Version(en) entfernt, "
            f"{_format_bytes(result.bytes_freed)} freigegeben."
        )

    def _search_table(self, apps: list[NostrEvent], *, numbered: bool = False) -> Table:
        table = Table()
        if numbered:
            table.add_column("#", justify="right")
        table.add_column("Anwendung", style="bold")
        table.add_column("Beschreibung")
        table.add_column("Herausgeber")
        for i, app in enumerate(apps, start=1):
            row = [app_label(app), app.tag("summary") or "", npub_encode(app.pubkey)[:16] + "…"]
            if numbered:
                row.insert(0, str(i))
            table.add_row(*row)
        return table


# ============================================================================
# Kommandos
# ============================================================================


async def run_command(manager: PackageManager, args: argparse.Namespace, ui: TerminalUI) -> int:
    """Führt das geparste Kommando aus. Fehler propagieren zum Aufrufer."""
    command = args.command
    log.debug("command_start", command=command, platform=manager.platform)

    if command == "install":
        ui.show_outcome(await manager.install(args.name))
    elif command == "update":
        for outcome in await manager.update(args.name):
            ui.show_outcome(outcome, update=True)
    elif command == "remove":
        freed = await manager.remove(args.name)
        ui.info(f"[{COLOR_OK}]✓ {args.name} entfernt ({_format_bytes(freed)} freigegeben).[/{COLOR_OK}]")
    elif command == "enable":
        active = manager.enable(args.name)
        ui.info(f"[{COLOR_OK}]✓ {active.app_name} {active.version} aktiv.[/{COLOR_OK}]")
    elif command == "disable":
        if manager.disable(args.name):
            ui.info(f"[{COLOR_OK}]✓ {args.name} deaktiviert.[/{COLOR_OK}]")
        else:
            ui.info(f"{args.name} war bereits deaktiviert.")
    elif command == "list":
        ui.show_installed(manager.installed())
    elif command == "search":
        ui.show_search(await manager.search(args.term))
    elif command == "cleanup":
        ui.show_cleanup(manager.cleanup())
    else:
        raise ValueError(f"Unbekanntes Kommando: {command}")
    return 0
