"""Trust-Bewertung des Release-Signierers.

Ablauf:
  - Signierer hat schon einmal eine Version dieser Anwendung signiert
    (``trusted_by_history``): nur Profil-Lookup für die Anzeige, keine
    Graph-Abfrage, keine Rückfrage, Installation geht weiter.
  - Sonst: Trust-Graph abfragen (wem folgt der User, wer davon folgt dem
    Signierer), Profile für Builder, Signierer und gemeinsame Kontakte
    laden, Bericht anzeigen und den User fragen.

Der Graph ist rein informativ: Es gibt keine Mindestanzahl gemeinsamer
Kontakte. Ohne ausdrückliches "Ja" wird nie installiert, auch bei
leerem Kontakt-Set wird nur gefragt, nicht automatisch abgelehnt.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from zapstore.catalog.identity import npub_decode, npub_encode
from zapstore.catalog.social import ProfileDirectory, SocialGraphClient
from zapstore.models import InstalledVersion, RemoteCandidate, TrustAssessment, TrustReport
from zapstore.utils.logging import get_logger

log = get_logger(__name__)

ConfirmFn = Callable[[str], Awaitable[bool]]
ReportFn = Callable[[TrustReport], None]
# Liefert den Hex-Schlüssel des lokalen Users (fragt beim ersten Mal nach)
UserFn = Callable[[], Awaitable[str]]

__all__ = [
    "ConfirmFn",
    "ReportFn",
    "TrustEvaluator",
    "TrustVerdict",
    "UserFn",
    "trusted_by_history",
]


@dataclass(frozen=True)
class TrustVerdict:
    """Ergebnis einer Trust-Bewertung."""

    proceed: bool
    report: TrustReport


def trusted_by_history(candidate: RemoteCandidate, installed: list[InstalledVersion]) -> bool:
    """True wenn eine installierte Version vom selben Signierer stammt."""
    return any(v.signer == candidate.signer for v in installed)


class TrustEvaluator:
    """Entscheidet, ob ein Signierer für diese Anwendung akzeptiert wird.

    Args:
        user: Liefert den Hex-Schlüssel des lokalen Users. Wird nur
            aufgerufen, wenn der Signierer nicht schon bekannt ist.
        graph: Client für den Trust-Graphen.
        profiles: Profil-Verzeichnis für die Anzeige.
        on_report: Anzeige des Berichts vor der Rückfrage (optional).
    """

    def __init__(
        self,
        user: UserFn,
        graph: SocialGraphClient,
        profiles: ProfileDirectory,
        *,
        on_report: ReportFn | None = None,
    ) -> None:
        self._user = user
        self._graph = graph
        self._profiles = profiles
        self._on_report = on_report

    async def evaluate(
        self,
        candidate: RemoteCandidate,
        installed: list[InstalledVersion],
        confirm: ConfirmFn,
        *,
        upgrade: bool = False,
    ) -> TrustVerdict:
        """Bewertet den Signierer des Kandidaten.

        Args:
            candidate: Aufgelöster Katalog-Kandidat.
            installed: Installierte Versionen derselben Anwendung.
            confirm: Blockierende Rückfrage an den User.
            upgrade: Formulierung der Rückfrage (Update statt Installation).
        """
        if trusted_by_history(candidate, installed):
            profiles = await self._profiles.fetch([candidate.signer])
            report = TrustReport(
                candidate=candidate,
                assessment=TrustAssessment(trusted_by_history=True),
                signer_profile=profiles.get(candidate.signer),
            )
            self._emit(report)
            log.info("signer_trusted_by_history", app=candidate.app_name, signer=candidate.signer[:8])
            return TrustVerdict(proceed=True, report=report)

        user_npub = npub_encode(await self._user())
        signer_npub = npub_encode(candidate.signer)
        relations = await self._graph.follows_of_follows(user_npub, signer_npub)

        follows_signer = user_npub in relations
        mutual: set[str] = set()
        for npub in relations:
            if npub == user_npub:
                continue
            try:
                mutual.add(npub_decode(npub))
            except ValueError:
                log.warning("trust_graph_identity_invalid", identity=npub)

        wanted = [candidate.signer, *sorted(mutual)]
        if candidate.builder:
            wanted.append(candidate.builder)
        profiles = await self._profiles.fetch(wanted)

        report = TrustReport(
            candidate=candidate,
            assessment=TrustAssessment(
                trusted_by_history=False,
                mutual_contacts=frozenset(mutual),
                follows_signer=follows_signer,
            ),
            signer_profile=profiles.get(candidate.signer),
            builder_profile=profiles.get(candidate.builder) if candidate.builder else None,
            contact_profiles={pubkey: profiles.get(pubkey) for pubkey in sorted(mutual)},
        )
        self._emit(report)

        if upgrade:
            question = (
                f"Vertraust du dem Signierer und willst {candidate.app_name} "
                f"auf {candidate.version} aktualisieren?"
            )
        else:
            question = f"Vertraust du dem Signierer und willst {candidate.app_name} installieren?"
        proceed = await confirm(question)

        log.info(
            "signer_trust_evaluated",
            app=candidate.app_name,
            signer=candidate.signer[:8],
            mutual=len(mutual),
            follows_signer=follows_signer,
            proceed=proceed,
        )
        return TrustVerdict(proceed=proceed, report=report)

    def _emit(self, report: TrustReport) -> None:
        if self._on_report is not None:
            self._on_report(report)
