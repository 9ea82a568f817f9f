"""
Zapstore · Central data models.

All Pydantic models shared between catalog, store and trust evaluation.

Design principles:
  - Immutable (frozen): every model describes one observed state
  - Nothing here is persisted; the store is re-read on every operation
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

# ============================================================================
# Enums
# ============================================================================


class DecisionKind(StrEnum):
    """Required action for a resolved candidate.

    ALREADY_ACTIVE:   Same version installed and active, nothing to do
    RE_ENABLE:        Same version installed but inactive, repoint the link
    UPGRADE:          Candidate newer than every installed version
    UP_TO_DATE:       An installed version compares equal to the candidate
    DOWNGRADE:        A higher version is installed, user must confirm
    FRESH_INSTALL:    Nothing installed for this application
    """

    ALREADY_ACTIVE = "already_active"
    RE_ENABLE = "re_enable"
    UPGRADE = "upgrade"
    UP_TO_DATE = "up_to_date"
    DOWNGRADE = "downgrade"
    FRESH_INSTALL = "fresh_install"


# ============================================================================
# Store
# ============================================================================


class InstalledVersion(BaseModel, frozen=True):
    """One artifact file in the store."""

    app_name: str
    signer: str  # Hex-Schlüssel des Release-Signierers
    version: str
    storage_path: Path
    enabled: bool = False  # Abgeleitet: Aktivierungs-Link zeigt auf storage_path


# ============================================================================
# Katalog
# ============================================================================


class RemoteCandidate(BaseModel, frozen=True):
    """Result of catalog resolution. Never persisted."""

    app_name: str
    version: str
    signer: str
    builder: str = ""
    download_url: str
    content_hash: str
    platform: str
    summary: str = ""


class Profile(BaseModel, frozen=True):
    """Display metadata of an identity (kind-0 record)."""

    pubkey: str
    name: str = ""
    display_name: str = ""
    nip05: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.name


# ============================================================================
# Entscheidungen
# ============================================================================


class VersionDecision(BaseModel, frozen=True):
    """Exactly one decision per resolution attempt.

    ``existing`` is the matching installed version for ALREADY_ACTIVE and
    RE_ENABLE, the equal version for UP_TO_DATE and the higher installed
    version for DOWNGRADE.
    """

    kind: DecisionKind
    existing: InstalledVersion | None = None

    @property
    def requires_download(self) -> bool:
        return self.kind in (
            DecisionKind.UPGRADE,
            DecisionKind.DOWNGRADE,
            DecisionKind.FRESH_INSTALL,
        )


class TrustAssessment(BaseModel, frozen=True):
    """Computed per install attempt, never persisted."""

    trusted_by_history: bool
    mutual_contacts: frozenset[str] = Field(default_factory=frozenset)
    follows_signer: bool = False


class TrustReport(BaseModel, frozen=True):
    """Everything shown to the user before the trust prompt."""

    candidate: RemoteCandidate
    assessment: TrustAssessment
    signer_profile: Profile | None = None
    builder_profile: Profile | None = None
    contact_profiles: dict[str, Profile | None] = Field(default_factory=dict)
