"""Versions-Policy: Welche Aktion erfordert ein Katalog-Kandidat?

Reine Funktion über (Kandidat, Snapshot). Reihenfolge der Regeln:

  1. Exakt gleicher Versions-String installiert → ALREADY_ACTIVE / RE_ENABLE
  2. Nichts installiert → FRESH_INSTALL
  3. Kandidat neuer als *jede* installierte Version → UPGRADE
  4. Eine installierte Version vergleicht gleich ("1.2" vs "1.2.0") → UP_TO_DATE
  5. Sonst existiert eine höhere Version → DOWNGRADE (Bestätigung nötig)

Der Signierer spielt hier keine Rolle; das Vertrauen prüft ``trust``.
"""

from __future__ import annotations

from zapstore.models import DecisionKind, RemoteCandidate, VersionDecision
from zapstore.store.local_store import LocalStore
from zapstore.store.version import compare


def decide(candidate: RemoteCandidate, store: LocalStore) -> VersionDecision:
    """Bestimmt genau eine Entscheidung für den Kandidaten."""
    installed = store.versions(candidate.app_name)

    same = store.find(candidate.app_name, candidate.version, candidate.signer)
    if same is not None:
        kind = DecisionKind.ALREADY_ACTIVE if same.enabled else DecisionKind.RE_ENABLE
        return VersionDecision(kind=kind, existing=same)

    if not installed:
        return VersionDecision(kind=DecisionKind.FRESH_INSTALL)

    if all(compare(candidate.version, v.version) == 1 for v in installed):
        return VersionDecision(kind=DecisionKind.UPGRADE)

    for v in installed:
        if compare(candidate.version, v.version) == 0:
            return VersionDecision(kind=DecisionKind.UP_TO_DATE, existing=v)

    higher = next(v for v in installed if compare(candidate.version, v.version) == -1)
    return VersionDecision(kind=DecisionKind.DOWNGRADE, existing=higher)
