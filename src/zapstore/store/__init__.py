"""Zapstore Store-Paket.

Lokaler Paket-Store, Versions-Policy, Trust-Bewertung und
Installations-Pipeline. Nur ``local_store.PackageStore`` berührt das
Dateisystem direkt.
"""
