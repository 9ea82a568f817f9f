"""Host-Plattform als Katalog-Tag (``f``-Tag), z.B. ``linux-x86_64``, ``darwin-arm64``.

Entspricht ``uname -sm`` in Kleinbuchstaben mit Bindestrich.
"""

from __future__ import annotations

import platform as _platform

# Python meldet unter Windows "AMD64"; der Katalog kennt nur x86_64
_MACHINE_ALIASES = {
    "amd64": "x86_64",
}


def host_platform_tag(system: str | None = None, machine: str | None = None) -> str:
    """Plattform-Tag des laufenden Systems."""
    system = (system or _platform.system()).strip().lower()
    machine = (machine or _platform.machine()).strip().lower()
    machine = _MACHINE_ALIASES.get(machine, machine)
    return f"{system}-{machine}"
