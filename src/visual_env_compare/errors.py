"""Basis-Fehlerklassen fuer Visual Env Compare.

Die konkreten Fehler leben in den Modulen, die sie ausloesen
(z.B. UnsupportedFormatError im image_loader).
"""

from __future__ import annotations


class VisualCompareError(Exception):
    """Basisklasse aller Fehler dieses Pakets."""
    pass


class FatalScanError(VisualCompareError):
    """Infrastruktur-Fehler, der den gesamten Lauf abbricht.

    Alle anderen Fehler werden pro Ziel abgefangen und im
    ComparisonResult vermerkt.
    """
    pass
