"""Aggregator - Fasst die Ergebnisse eines vollstaendigen Laufs zusammen."""

from __future__ import annotations

from collections import Counter

from ..models.scan_result import ComparisonResult, ComparisonTarget, IncompleteResultSetError, RunSummary


def aggregate(
    results: list[ComparisonResult],
    targets: list[ComparisonTarget],
    run_duration_ms: int = 0,
    **run_info,
) -> RunSummary:
    """Erstellt die RunSummary und prueft die Vollstaendigkeit.

    Jedes Ziel der Eingabe muss genau ein Ergebnis haben.

    Args:
        results: Alle Ergebnisse des Laufs (beliebige Reihenfolge).
        targets: Die urspruengliche Ziel-Liste.
        run_duration_ms: Wall-Clock-Dauer des Laufs.
        **run_info: Metadaten des Laufs fuer RunSummary.from_results
            (reference_base_url, comparison_base_url, threshold, viewport).

    Returns:
        Die RunSummary.

    Raises:
        IncompleteResultSetError: Wenn Ziele fehlen, doppelt oder fremd sind.
    """
    expected = Counter(targets)
    actual = Counter(result.target for result in results)

    if expected != actual:
        missing = sorted(t.path for t in (expected - actual))
        extra = sorted(t.path for t in (actual - expected))
        details = []
        if missing:
            details.append(f"fehlend: {', '.join(missing)}")
        if extra:
            details.append(f"doppelt/unbekannt: {', '.join(extra)}")
        raise IncompleteResultSetError(f"Ergebnisliste unvollstaendig ({'; '.join(details)})")

    return RunSummary.from_results(results, run_duration_ms=run_duration_ms, **run_info)
