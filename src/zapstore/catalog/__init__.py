"""Zapstore Katalog-Paket.

Abfragen an das Katalog-Relay (Anwendung → Release → Datei-Metadaten),
Validierung der Nostr-Events sowie Web-of-Trust- und Profil-Abfragen.
"""

from .client import CatalogClient  # noqa: F401
from .events import NostrEvent, validate_event  # noqa: F401
from .social import ProfileDirectory, SocialGraphClient  # noqa: F401
