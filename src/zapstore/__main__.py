"""
Zapstore · Entry Point.

Usage: zapstore install <name>
       zapstore remove|enable|disable <name>
       zapstore list | search <term> | update [name] | cleanup
       zapstore --config /path/to/config.yaml ...
       python -m zapstore ...
"""

from __future__ import annotations

import argparse
import asyncio
import shutil
import sys
from pathlib import Path

import httpx

from zapstore import __version__
from zapstore.config import ZapstoreConfig

# Alias → Kommando
COMMANDS: dict[str, tuple[str, ...]] = {
    "install": ("i",),
    "remove": ("r",),
    "enable": ("link", "e"),
    "disable": ("unlink", "d"),
    "list": ("l",),
    "search": ("s",),
    "update": ("u",),
    "cleanup": (),
}
_CANONICAL = {alias: name for name, aliases in COMMANDS.items() for alias in (name, *aliases)}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Kommandozeilen-Argumente parsen."""
    parser = argparse.ArgumentParser(
        prog="zapstore",
        description="Zapstore · Paket-Manager mit Web-of-Trust-Prüfung",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"zapstore v{__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Pfad zur config.yaml (Default: ~/.config/zapstore/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log-Level überschreiben",
    )

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    helps = {
        "install": "Anwendung installieren oder aktualisieren",
        "remove": "Anwendung mit allen Versionen entfernen",
        "enable": "Höchste installierte Version aktivieren",
        "disable": "Anwendung deaktivieren (Versionen bleiben erhalten)",
        "list": "Installierte Anwendungen anzeigen",
        "search": "Katalog durchsuchen",
        "update": "Installierte Anwendungen aktualisieren",
        "cleanup": "Inaktive Versionen und verwaiste Links löschen",
    }
    for name, aliases in COMMANDS.items():
        cmd = sub.add_parser(name, aliases=list(aliases), help=helps[name])
        if name in ("install", "remove", "enable", "disable"):
            cmd.add_argument("name", help="Name der Anwendung")
        elif name == "search":
            cmd.add_argument("term", help="Suchbegriff")
        elif name == "update":
            cmd.add_argument("name", nargs="?", default=None, help="Nur diese Anwendung")

    args = parser.parse_args(argv)
    args.command = _CANONICAL[args.command]
    return args


def own_executable() -> Path | None:
    """Pfad des laufenden zapstore-Executables (None wenn nicht ermittelbar)."""
    found = shutil.which("zapstore")
    if found is not None:
        return Path(found).resolve()
    argv0 = Path(sys.argv[0])
    if argv0.name == "zapstore" and argv0.is_file():
        return argv0.resolve()
    return None


def bootstrap(config: ZapstoreConfig) -> bool:
    """Registriert zapstore selbst im Store (einmal pro Prozess, idempotent)."""
    from zapstore.store.local_store import PackageStore
    from zapstore.utils.logging import get_logger

    log = get_logger("zapstore")
    executable = own_executable()
    if executable is None:
        log.debug("bootstrap_skipped", reason="executable_not_found")
        return False

    store = PackageStore(config.store_home)
    if executable.parent == store.root:
        return False
    registered = store.bootstrap(
        executable,
        signer=config.bootstrap.signer,
        app_name=config.bootstrap.app_name,
        version=config.bootstrap.version,
    )
    if registered:
        log.info("bootstrap_complete", store=str(store.root), executable=str(executable))
    return registered


def main(argv: list[str] | None = None) -> None:
    """Haupteintrittspunkt für zapstore."""
    args = parse_args(argv)

    # 1. Konfiguration laden
    from zapstore.config import load_config

    config = load_config(args.config)

    # 2. Logging initialisieren
    from zapstore.utils.logging import get_logger, setup_logging

    log_level = args.log_level or config.logging.level
    setup_logging(
        level=log_level,
        log_dir=config.logging.log_dir,
        json_logs=config.logging.json_logs,
        console=config.logging.console,
    )
    log = get_logger("zapstore")
    log.debug(
        "zapstore_starting",
        version=__version__,
        store=str(config.store_home),
        command=args.command,
    )

    from zapstore.cli import TerminalUI, run_command
    from zapstore.core.errors import ZapstoreError
    from zapstore.manager import create_manager

    ui = TerminalUI()

    async def run() -> int:
        """Führt das Kommando mit einem geteilten HTTP-Client aus."""
        async with httpx.AsyncClient(
            timeout=config.catalog.timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": f"zapstore/{__version__}"},
        ) as client:
            manager = create_manager(config, client, ui)
            return await run_command(manager, args, ui)

    # 3. Selbstregistrierung, dann Kommando
    try:
        bootstrap(config)
        exit_code = asyncio.run(run())
    except ZapstoreError as exc:
        ui.close()
        if exc.exit_code == 0:
            ui.info(str(exc))
            log.info("command_ended", command=args.command, reason=exc.error_code)
        else:
            ui.error(str(exc))
            log.error("command_failed", command=args.command, error_code=exc.error_code, details=exc.details)
        exit_code = exc.exit_code
    except httpx.HTTPError as exc:
        ui.close()
        ui.error(f"Netzwerkfehler: {exc}")
        log.error("command_failed", command=args.command, error=str(exc))
        exit_code = 1
    except KeyboardInterrupt:
        ui.close()
        ui.info("\nAbgebrochen.")
        exit_code = 130
    finally:
        ui.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
