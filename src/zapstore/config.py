"""
Zapstore · Configuration system.

Loads configuration from:
  1. Defaults (defined here)
  2. ~/.config/zapstore/config.yaml (overrides defaults)
  3. Environment variables ZAPSTORE_* (overrides everything)

The store root itself (~/.zapstore) only holds artifacts, activation
links and the user identity record; configuration lives outside it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from zapstore import __version__

log = logging.getLogger(__name__)

# Signierer des offiziellen zapstore-Releases (Selbstregistrierung)
ZAPSTORE_SIGNER = "78ce6faa72264387284e647ba6938995735ec8c7d5c5a65737e55130f026307d"

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "zapstore" / "config.yaml"

# ============================================================================
# Konfigurationsmodelle
# ============================================================================


class CatalogConfig(BaseModel):
    """Katalog-Relay (HTTP-Abfragen von App-, Release- und Datei-Events)."""

    relay_url: str = "https://relay.zap.store"
    timeout_seconds: int = Field(default=30, ge=1, le=300)
    blossom_url: str = "https://cdn.zapstore.dev"
    """Fallback-Server, wenn ein Datei-Event nur einen Hash, aber keine URL hat."""

    platform_override: str = ""
    """Leer = Host-Plattform erkennen (z.B. 'linux-x86_64')."""


class TrustConfig(BaseModel):
    """Web-of-Trust-Abfragen."""

    graph_url: str = "https://trustgraph.live"
    profile_relays: list[str] = Field(
        default_factory=lambda: [
            "https://relay.zap.store",
            "https://relay.nostr.band",
        ]
    )
    timeout_seconds: int = Field(default=20, ge=1, le=300)


class DownloadConfig(BaseModel):
    """Streaming-Download der Artefakte."""

    chunk_size: int = Field(default=64 * 1024, ge=1024, le=16 * 1024 * 1024)
    timeout_seconds: int = Field(default=120, ge=1, le=3600)


class BootstrapConfig(BaseModel):
    """Selbstregistrierung des eigenen Executables im Store."""

    app_name: str = "zapstore"
    signer: str = ZAPSTORE_SIGNER
    version: str = __version__

    @field_validator("signer")
    @classmethod
    def _signer_is_hex(cls, value: str) -> str:
        if len(value) != 64 or any(c not in "0123456789abcdef" for c in value):
            raise ValueError("signer muss ein 64-stelliger Hex-Schlüssel sein")
        return value


class LoggingConfig(BaseModel):
    """Logging-Konfiguration."""

    level: str = "WARNING"
    json_logs: bool = False
    console: bool = True
    log_dir: Path | None = None


# ============================================================================
# Haupt-Konfiguration
# ============================================================================


class ZapstoreConfig(BaseModel):
    """Complete Zapstore configuration.

    Loaded once per process and passed explicitly to every component.
    """

    version: str = __version__
    store_home: Path = Field(default_factory=lambda: Path.home() / ".zapstore")

    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    trust: TrustConfig = Field(default_factory=TrustConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def log_level(self) -> str:
        """Shortcut für logging.level."""
        return self.logging.level

    @property
    def user_file(self) -> Path:
        """Pfad zum Identitäts-Record des lokalen Users."""
        return self.store_home / "_.json"


# ============================================================================
# Config-Laden
# ============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Tiefes Mergen von zwei Dicts. Override gewinnt bei Konflikten."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Wendet ZAPSTORE_* Umgebungsvariablen an.

    Konvention: ZAPSTORE_SECTION_KEY → data["section"]["key"]
    Beispiel: ZAPSTORE_CATALOG_RELAY_URL → data["catalog"]["relay_url"]
    Unbekannte Sections werden nicht angelegt: ZAPSTORE_STORE_HOME → data["store_home"]
    """
    prefix = "ZAPSTORE_"
    sections = set(ZapstoreConfig.model_fields) - {"version", "store_home"}
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        parts = key[len(prefix):].lower().split("_")
        if len(parts) >= 2 and parts[0] in sections:
            overrides.setdefault(parts[0], {})["_".join(parts[1:])] = value
        else:
            overrides["_".join(parts)] = value
    return _deep_merge(data, overrides)


def load_config(config_path: Path | None = None) -> ZapstoreConfig:
    """Lädt die Konfiguration.

    Reihenfolge (spätere überschreiben frühere):
      1. Defaults (in den Pydantic-Modellen)
      2. config.yaml (wenn vorhanden)
      3. ZAPSTORE_* Umgebungsvariablen

    Args:
        config_path: Expliziter Pfad zur config.yaml. Wenn None: ~/.config/zapstore/config.yaml

    Returns:
        Vollständig validierte ZapstoreConfig.
    """
    data: dict[str, Any] = {}

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if isinstance(file_data, dict):
                data = file_data
        except yaml.YAMLError as exc:
            log.warning("Fehlerhafte config.yaml wird ignoriert: %s", exc)

    data = _apply_env_overrides(data)

    return ZapstoreConfig(**data)
