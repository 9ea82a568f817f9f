"""Versionsvergleich für punktgetrennte, numerische Versionen.

``compare("1.2", "1.2.0") == 0``, ``compare("2.0.0", "1.9.9") == 1``.
Nicht-numerische Komponenten sind eine Vertragsverletzung des Aufrufers
und werden vorgelagert (Katalog-Validierung) abgefangen.
"""

from __future__ import annotations

import re
from itertools import zip_longest

VERSION_PATTERN = re.compile(r"^\d+(\.\d+)*$")

__all__ = ["VERSION_PATTERN", "compare", "is_valid_version"]


def is_valid_version(version: str) -> bool:
    """True wenn ``version`` nur aus Ziffern-Komponenten mit Punkten besteht."""
    return bool(VERSION_PATTERN.match(version))


def compare(a: str, b: str) -> int:
    """Vergleicht zwei Versionen komponentenweise.

    Fehlende Komponenten zählen als 0.

    Returns:
        -1 wenn a < b, 0 wenn gleich, 1 wenn a > b.
    """
    for left, right in zip_longest(
        (int(p) for p in a.split(".")),
        (int(p) for p in b.split(".")),
        fillvalue=0,
    ):
        if left < right:
            return -1
        if left > right:
            return 1
    return 0
