"""Zapstore · Paketmanager für Anwendungen aus einem Nostr-Katalog.

Löst Anwendungsnamen gegen einen dezentralen Katalog auf, prüft den
Signierer über das eigene Web-of-Trust und installiert die Artefakte
versioniert in einen lokalen Store mit einem Aktivierungs-Link pro
Anwendung.
"""

__version__ = "0.1.0"
