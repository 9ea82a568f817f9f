"""
Zapstore · Shared Test-Fixtures.

Alle Tests nutzen ein temporäres Store-Verzeichnis statt ~/.zapstore/.
Netzwerk-Kollaborateure (Relay, Trust-Graph, Download-Server) werden
über ``httpx.MockTransport`` simuliert, Rückfragen über ein Skript.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from coincurve import PrivateKey

from zapstore.catalog.events import (
    KIND_APP,
    KIND_FILE_METADATA,
    KIND_PROFILE,
    KIND_RELEASE,
    compute_event_id,
)
from zapstore.config import CatalogConfig, TrustConfig, ZapstoreConfig
from zapstore.models import InstalledVersion, TrustReport
from zapstore.store.local_store import PackageStore

PLATFORM = "linux-x86_64"
RELAY_URL = "https://relay.test"
PROFILE_RELAY_URL = "https://profiles.test"
GRAPH_URL = "https://graph.test"
CDN_URL = "https://cdn.test"


# ============================================================================
# Schlüssel und Events
# ============================================================================


def pubkey_of(key: PrivateKey) -> str:
    return key.public_key_xonly.format().hex()


def sign_event(
    key: PrivateKey,
    kind: int,
    tags: list[list[str]],
    content: str = "",
    created_at: int = 1_700_000_000,
) -> dict[str, Any]:
    """Signiertes Event als Relay-JSON."""
    pubkey = pubkey_of(key)
    event_id = compute_event_id(pubkey, created_at, kind, tags, content)
    sig = key.sign_schnorr(bytes.fromhex(event_id)).hex()
    return {
        "id": event_id,
        "pubkey": pubkey,
        "created_at": created_at,
        "kind": kind,
        "tags": tags,
        "content": content,
        "sig": sig,
    }


@pytest.fixture
def publisher_key() -> PrivateKey:
    """Schlüssel des Katalog-Herausgebers (signiert App, Release, Datei)."""
    return PrivateKey(bytes.fromhex("11" * 32))


@pytest.fixture
def user_key() -> PrivateKey:
    return PrivateKey(bytes.fromhex("22" * 32))


@pytest.fixture
def friend_key() -> PrivateKey:
    return PrivateKey(bytes.fromhex("33" * 32))


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    """Factory für signierte Events."""
    return sign_event


# ============================================================================
# Simuliertes Netzwerk
# ============================================================================


def _matches(event: dict[str, Any], flt: dict[str, Any]) -> bool:
    if "kinds" in flt and event["kind"] not in flt["kinds"]:
        return False
    if "ids" in flt and event["id"] not in flt["ids"]:
        return False
    if "authors" in flt and event["pubkey"] not in flt["authors"]:
        return False
    for key, wanted in flt.items():
        if key.startswith("#"):
            values = [t[1] for t in event["tags"] if len(t) >= 2 and t[0] == key[1:]]
            if not set(values) & set(wanted):
                return False
    if "search" in flt:
        names = [t[1] for t in event["tags"] if len(t) >= 2 and t[0] in ("name", "d")]
        if not any(flt["search"].lower() in name.lower() for name in names):
            return False
    return True


class FakeNetwork:
    """Relay, Trust-Graph und Download-Server hinter einem MockTransport."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self.fwf: dict[str, Any] = {}
        self.files: dict[str, httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if request.method == "POST":
            flt = json.loads(request.content)
            found = [e for e in self.events if _matches(e, flt)]
            if "limit" in flt:
                found = found[: flt["limit"]]
            return httpx.Response(200, json=found)
        if request.url.path.startswith("/api/fwf/"):
            return httpx.Response(200, json=self.fwf)
        if url in self.files:
            return self.files[url]
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def serve(self, url: str, content: bytes) -> None:
        self.files[url] = httpx.Response(200, content=content)

    @property
    def downloads(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "GET" and str(r.url) in self.files]

    @property
    def graph_queries(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/api/fwf/")]

    def publish_app(
        self,
        key: PrivateKey,
        name: str,
        version: str,
        content: bytes,
        *,
        url: str | None = None,
        builder: str = "",
        platform: str = PLATFORM,
        created_at: int = 1_700_000_000,
    ) -> str:
        """Legt App-, Release- und Datei-Event an. Gibt die Download-URL zurück."""
        digest = hashlib.sha256(content).hexdigest()
        url = url or f"{CDN_URL}/{name}-{version}"
        meta = sign_event(
            key,
            KIND_FILE_METADATA,
            [["url", url], ["version", version], ["x", digest], ["f", platform]],
            created_at=created_at,
        )
        app_tags = [["d", name], ["name", name], ["f", platform], ["summary", f"{name} tool"]]
        if builder:
            app_tags.append(["p", builder])
        app = sign_event(key, KIND_APP, app_tags, created_at=created_at)
        release = sign_event(
            key,
            KIND_RELEASE,
            [["a", f"{KIND_APP}:{pubkey_of(key)}:{name}"], ["e", meta["id"]]],
            created_at=created_at,
        )
        self.events = [e for e in self.events if not (e["kind"] == KIND_APP and _app_name(e) == name)]
        self.events.extend([app, release, meta])
        self.serve(url, content)
        return url

    def publish_profile(self, key: PrivateKey, name: str, created_at: int = 1_700_000_000) -> None:
        self.events.append(
            sign_event(key, KIND_PROFILE, [], json.dumps({"name": name}), created_at=created_at)
        )


def _app_name(event: dict[str, Any]) -> str | None:
    for tag in event["tags"]:
        if tag[0] == "d":
            return tag[1]
    return None


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


# ============================================================================
# Rückfragen
# ============================================================================


class ScriptedUI:
    """Beantwortet Rückfragen aus vorgegebenen Listen und protokolliert alles."""

    def __init__(self, confirms: list[bool] | None = None, answers: list[str] | None = None) -> None:
        self.confirms = list(confirms or [])
        self.answers = list(answers or [])
        self.questions: list[str] = []
        self.reports: list[TrustReport] = []
        self.progress_calls: list[tuple[int, int]] = []
        self.choices: list[int] = []

    async def confirm(self, question: str) -> bool:
        self.questions.append(question)
        if not self.confirms:
            raise AssertionError(f"Unerwartete Rückfrage: {question}")
        return self.confirms.pop(0)

    async def ask(self, question: str) -> str:
        self.questions.append(question)
        if not self.answers:
            raise AssertionError(f"Unerwartete Eingabe-Frage: {question}")
        return self.answers.pop(0)

    async def choose(self, apps: list[Any]) -> int:
        return self.choices.pop(0) if self.choices else 0

    def show_trust_report(self, report: TrustReport) -> None:
        self.reports.append(report)

    def progress(self, loaded: int, total: int) -> None:
        self.progress_calls.append((loaded, total))


@pytest.fixture
def ui() -> ScriptedUI:
    return ScriptedUI()


# ============================================================================
# Store und Konfiguration
# ============================================================================


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Temporäres, angelegtes Store-Verzeichnis."""
    root = tmp_path / ".zapstore"
    root.mkdir()
    return root


@pytest.fixture
def store(store_root: Path) -> PackageStore:
    return PackageStore(store_root)


@pytest.fixture
def config(store_root: Path) -> ZapstoreConfig:
    """ZapstoreConfig gegen das simulierte Netzwerk."""
    return ZapstoreConfig(
        store_home=store_root,
        catalog=CatalogConfig(relay_url=RELAY_URL, blossom_url=CDN_URL, platform_override=PLATFORM),
        trust=TrustConfig(graph_url=GRAPH_URL, profile_relays=[PROFILE_RELAY_URL]),
    )


@pytest.fixture
def add_artifact(store: PackageStore) -> Callable[..., InstalledVersion]:
    """Legt ein Artefakt direkt im Store ab (optional aktiviert)."""

    def _add(
        signer: str,
        app_name: str,
        version: str,
        content: bytes = b"#!/bin/sh\necho hi\n",
        *,
        enabled: bool = False,
    ) -> InstalledVersion:
        path = store.artifact_path(signer, app_name, version)
        path.write_bytes(content)
        installed = InstalledVersion(
            app_name=app_name, signer=signer, version=version, storage_path=path,
        )
        if enabled:
            installed = store.activate(installed)
        return installed

    return _add


def snapshot_tree(root: Path) -> dict[str, tuple[str, bytes | str]]:
    """Byte-genauer Zustand eines Verzeichnisses (Dateien und Links)."""
    state: dict[str, tuple[str, bytes | str]] = {}
    for path in sorted(root.rglob("*")):
        rel = str(path.relative_to(root))
        if path.is_symlink():
            state[rel] = ("link", str(path.readlink()))
        elif path.is_file():
            state[rel] = ("file", path.read_bytes())
        else:
            state[rel] = ("dir", "")
    return state


@pytest.fixture
def tree_state() -> Callable[[Path], dict[str, tuple[str, bytes | str]]]:
    return snapshot_tree
