"""Identitäts-Record des lokalen Users.

``_.json`` im Store-Root enthält ``{"npub": "npub1..."}``. Der Record wird
erst angelegt, wenn er gebraucht wird (Trust-Graph-Abfrage für einen
unbekannten Signierer), und danach nie wieder abgefragt.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from pathlib import Path

from zapstore.catalog.identity import npub_decode
from zapstore.core.errors import FilesystemFailure, ValidationFailure
from zapstore.utils.logging import get_logger

log = get_logger(__name__)

AskFn = Callable[[str], Awaitable[str]]

USER_PROMPT = "Deine npub (für die Web-of-Trust-Abfrage): "


def read_user_record(path: Path) -> str | None:
    """Gespeicherte npub oder None (fehlt, unlesbar oder ungültig)."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        log.warning("user_record_unreadable", path=str(path), error=str(exc))
        return None
    npub = data.get("npub") if isinstance(data, dict) else None
    if not isinstance(npub, str):
        log.warning("user_record_invalid", path=str(path))
        return None
    return npub


def write_user_record(path: Path, npub: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"npub": npub}), encoding="utf-8")
    except OSError as exc:
        raise FilesystemFailure(
            f"User-Record konnte nicht geschrieben werden: {exc}",
            details={"path": str(path)},
        ) from exc


async def ensure_user(path: Path, ask: AskFn) -> str:
    """Hex-Schlüssel des lokalen Users; fragt einmalig nach der npub.

    Raises:
        ValidationFailure: Eingegebene npub ist ungültig.
    """
    stored = read_user_record(path)
    if stored is not None:
        try:
            return npub_decode(stored)
        except ValueError:
            log.warning("user_record_npub_invalid", npub=stored)

    answer = (await ask(USER_PROMPT)).strip()
    try:
        pubkey = npub_decode(answer)
    except ValueError as exc:
        raise ValidationFailure(
            "Ungültige npub",
            details={"npub": answer},
        ) from exc

    write_user_record(path, answer)
    log.info("user_record_created", path=str(path))
    return pubkey
