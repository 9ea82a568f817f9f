"""Tests für zapstore.models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from zapstore.models import (
    DecisionKind,
    InstalledVersion,
    Profile,
    TrustAssessment,
    VersionDecision,
)


class TestVersionDecision:
    @pytest.mark.parametrize(
        ("kind", "download"),
        [
            (DecisionKind.ALREADY_ACTIVE, False),
            (DecisionKind.RE_ENABLE, False),
            (DecisionKind.UP_TO_DATE, False),
            (DecisionKind.UPGRADE, True),
            (DecisionKind.DOWNGRADE, True),
            (DecisionKind.FRESH_INSTALL, True),
        ],
    )
    def test_requires_download(self, kind: DecisionKind, download: bool) -> None:
        assert VersionDecision(kind=kind).requires_download is download

    def test_kind_is_string(self) -> None:
        assert DecisionKind.RE_ENABLE == "re_enable"


class TestInstalledVersion:
    def test_frozen(self) -> None:
        installed = InstalledVersion(
            app_name="foo", signer="a" * 64, version="1.0", storage_path=Path("/tmp/x"),
        )
        assert installed.enabled is False
        with pytest.raises(ValidationError):
            installed.enabled = True  # type: ignore[misc]


class TestProfile:
    def test_label_prefers_display_name(self) -> None:
        assert Profile(pubkey="a" * 64, name="alice", display_name="Alice").label == "Alice"
        assert Profile(pubkey="a" * 64, name="alice").label == "alice"
        assert Profile(pubkey="a" * 64).label == ""


class TestTrustAssessment:
    def test_defaults(self) -> None:
        assessment = TrustAssessment(trusted_by_history=False)
        assert assessment.mutual_contacts == frozenset()
        assert assessment.follows_signer is False
