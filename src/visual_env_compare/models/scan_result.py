"""Datenmodelle fuer Visual Env Compare."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse, urlunparse

from ..errors import VisualCompareError


# Maximale Laenge des lesbaren Teils eines Dateinamens
SLUG_MAX_LENGTH = 80


class ComparisonStatus(Enum):
    """Status eines Ziels im Vergleichs-Ablauf."""

    PENDING = "pending"
    CAPTURING = "capturing"
    COMPARING = "comparing"
    MATCH = "match"
    DIFF = "diff"
    ERROR = "error"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        """Ist dies ein Endzustand (keine weiteren Uebergaenge)?"""
        return self in _TERMINAL_STATES

    @property
    def is_errored(self) -> bool:
        """Endete das Ziel mit einem Fehler?"""
        return self in (ComparisonStatus.ERROR, ComparisonStatus.TIMEOUT)


_TERMINAL_STATES = frozenset({
    ComparisonStatus.MATCH,
    ComparisonStatus.DIFF,
    ComparisonStatus.ERROR,
    ComparisonStatus.TIMEOUT,
})


@dataclass(frozen=True)
class ComparisonTarget:
    """Ein logischer Pfad, der in beiden Umgebungen verglichen wird."""

    path: str

    def resolve(self, base_url: str) -> str:
        """Setzt den Pfad auf eine Basis-URL auf.

        Volle URLs behalten Pfad, Query und Fragment, Schema und Host
        kommen immer aus der Basis-URL.

        Args:
            base_url: Basis-URL der Umgebung (z.B. https://stage.example.com).

        Returns:
            Absolute URL fuer diese Umgebung.
        """
        parsed = urlparse(self.path)
        if parsed.scheme and parsed.netloc:
            relative = urlunparse(
                ("", "", parsed.path or "/", parsed.params, parsed.query, parsed.fragment)
            )
        else:
            relative = self.path

        if not relative.startswith("/"):
            relative = "/" + relative

        return base_url.rstrip("/") + relative

    @property
    def slug(self) -> str:
        """Dateisystem-sicherer Name fuer die Artefakte dieses Ziels.

        Nicht-alphanumerische Zeichen werden zu '_' zusammengefasst. Ein
        kurzer Hash des Pfads verhindert, dass zwei verschiedene Pfade
        (z.B. '/a-b' und '/a_b') dieselben Dateien beschreiben.
        """
        name = re.sub(r"\W+", "_", self.path).strip("_")[:SLUG_MAX_LENGTH] or "root"
        digest = hashlib.sha256(self.path.encode("utf-8")).hexdigest()[:8]
        return f"{name}_{digest}"


@dataclass(frozen=True)
class ComparisonResult:
    """Ergebnis des Vergleichs eines einzelnen Ziels.

    Wird genau einmal pro Ziel erzeugt und danach nicht mehr veraendert.
    """

    target: ComparisonTarget
    status: ComparisonStatus
    reference_path: str = ""
    comparison_path: str = ""
    diff_image_path: str = ""
    differing_pixel_count: int = 0
    total_pixel_count: int = 0
    error: str = ""
    duration_ms: int = 0
    attempts: int = 0
    reference_url: str = ""
    comparison_url: str = ""

    def __post_init__(self) -> None:
        if not self.status.is_terminal:
            raise ValueError(f"Ergebnis braucht einen Endzustand, nicht {self.status.value}")
        if self.differing_pixel_count < 0:
            raise ValueError("differing_pixel_count darf nicht negativ sein")
        if self.status == ComparisonStatus.MATCH and (self.differing_pixel_count or self.error):
            raise ValueError("MATCH erfordert 0 abweichende Pixel und keinen Fehler")
        if self.status == ComparisonStatus.DIFF and self.differing_pixel_count == 0:
            raise ValueError("DIFF erfordert mindestens einen abweichenden Pixel")
        if self.status.is_errored and not self.error:
            raise ValueError("Fehler-Ergebnisse brauchen eine Fehlerbeschreibung")

    @classmethod
    def resolved(
        cls,
        target: ComparisonTarget,
        differing_pixel_count: int,
        total_pixel_count: int,
        reference_path: str,
        comparison_path: str,
        diff_image_path: str,
        duration_ms: int,
        attempts: int = 1,
        reference_url: str = "",
        comparison_url: str = "",
    ) -> ComparisonResult:
        """Erstellt ein Ergebnis fuer einen erfolgreich verglichenen Pfad.

        Der Status (MATCH/DIFF) ergibt sich aus der Anzahl abweichender Pixel.
        """
        status = ComparisonStatus.MATCH if differing_pixel_count == 0 else ComparisonStatus.DIFF
        return cls(
            target=target,
            status=status,
            reference_path=reference_path,
            comparison_path=comparison_path,
            diff_image_path=diff_image_path,
            differing_pixel_count=differing_pixel_count,
            total_pixel_count=total_pixel_count,
            duration_ms=duration_ms,
            attempts=attempts,
            reference_url=reference_url,
            comparison_url=comparison_url,
        )

    @classmethod
    def failed(
        cls,
        target: ComparisonTarget,
        error: str,
        duration_ms: int = 0,
        timed_out: bool = False,
        attempts: int = 0,
        reference_path: str = "",
        comparison_path: str = "",
        reference_url: str = "",
        comparison_url: str = "",
    ) -> ComparisonResult:
        """Erstellt ein Fehler-Ergebnis (ERROR bzw. TIMEOUT)."""
        return cls(
            target=target,
            status=ComparisonStatus.TIMEOUT if timed_out else ComparisonStatus.ERROR,
            reference_path=reference_path,
            comparison_path=comparison_path,
            error=error or "Unbekannter Fehler",
            duration_ms=duration_ms,
            attempts=attempts,
            reference_url=reference_url,
            comparison_url=comparison_url,
        )

    @property
    def matched(self) -> bool:
        """Keine abweichenden Pixel und kein Fehler?"""
        return self.status == ComparisonStatus.MATCH

    @property
    def errored(self) -> bool:
        """Ist beim Erfassen oder Vergleichen ein Fehler aufgetreten?"""
        return self.status.is_errored

    @property
    def diff_percentage(self) -> float:
        """Anteil abweichender Pixel in Prozent."""
        if self.total_pixel_count <= 0:
            return 0.0
        return self.differing_pixel_count / self.total_pixel_count * 100

    @property
    def status_icon(self) -> str:
        """Kurzes Kennzeichen fuer den Status."""
        icons = {
            ComparisonStatus.PENDING: "...",
            ComparisonStatus.CAPTURING: ">>>",
            ComparisonStatus.COMPARING: "<->",
            ComparisonStatus.MATCH: "OK",
            ComparisonStatus.DIFF: "DIFF",
            ComparisonStatus.ERROR: "ERR",
            ComparisonStatus.TIMEOUT: "T/O",
        }
        return icons.get(self.status, "?")

    def to_dict(self) -> dict:
        """Konvertiert das Ergebnis in ein Dictionary."""
        return {
            "path": self.target.path,
            "status": self.status.value,
            "matched": self.matched,
            "reference_url": self.reference_url,
            "comparison_url": self.comparison_url,
            "reference_path": self.reference_path,
            "comparison_path": self.comparison_path,
            "diff_image_path": self.diff_image_path,
            "differing_pixel_count": self.differing_pixel_count,
            "total_pixel_count": self.total_pixel_count,
            "diff_percentage": round(self.diff_percentage, 4),
            "error": self.error,
            "duration_ms": self.duration_ms,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ComparisonResult:
        """Erstellt ein ComparisonResult aus einem Dictionary.

        Args:
            data: Dictionary mit den Ergebnis-Daten (z.B. aus einem JSON-Report).

        Returns:
            ComparisonResult mit den geladenen Werten.

        Raises:
            ValueError: Bei unbekanntem oder nicht-terminalem Status.
        """
        return cls(
            target=ComparisonTarget(data.get("path", "")),
            status=ComparisonStatus(data.get("status", "error")),
            reference_path=data.get("reference_path", ""),
            comparison_path=data.get("comparison_path", ""),
            diff_image_path=data.get("diff_image_path", ""),
            differing_pixel_count=data.get("differing_pixel_count", 0),
            total_pixel_count=data.get("total_pixel_count", 0),
            error=data.get("error", ""),
            duration_ms=data.get("duration_ms", 0),
            attempts=data.get("attempts", 0),
            reference_url=data.get("reference_url", ""),
            comparison_url=data.get("comparison_url", ""),
        )


@dataclass
class RunSummary:
    """Gesamtzusammenfassung eines Laufs.

    Es gilt immer: total == matched_count + different_count + errored_count.
    """

    total: int = 0
    matched_count: int = 0
    different_count: int = 0
    errored_count: int = 0
    timeouts: int = 0
    total_duration_ms: int = 0
    average_duration_ms: float = 0.0
    run_duration_ms: int = 0
    reference_base_url: str = ""
    comparison_base_url: str = ""
    threshold: float = 0.1
    viewport: str = "1920x1080"

    @staticmethod
    def from_results(
        results: list[ComparisonResult],
        run_duration_ms: int = 0,
        reference_base_url: str = "",
        comparison_base_url: str = "",
        threshold: float = 0.1,
        viewport: str = "1920x1080",
    ) -> RunSummary:
        """Erstellt eine Zusammenfassung aus den Ergebnissen.

        Args:
            results: Vollstaendige Liste der Ergebnisse.
            run_duration_ms: Wall-Clock-Dauer des gesamten Laufs.
            reference_base_url: Basis-URL der Referenz-Umgebung.
            comparison_base_url: Basis-URL der Vergleichs-Umgebung.
            threshold: Verwendete Diff-Schwelle.
            viewport: Verwendeter Viewport (z.B. "1920x1080").

        Returns:
            RunSummary mit aggregierten Werten.
        """
        summary = RunSummary(
            total=len(results),
            run_duration_ms=run_duration_ms,
            reference_base_url=reference_base_url,
            comparison_base_url=comparison_base_url,
            threshold=threshold,
            viewport=viewport,
        )

        for result in results:
            if result.status == ComparisonStatus.MATCH:
                summary.matched_count += 1
            elif result.status == ComparisonStatus.DIFF:
                summary.different_count += 1
            else:
                summary.errored_count += 1
                if result.status == ComparisonStatus.TIMEOUT:
                    summary.timeouts += 1

        summary.total_duration_ms = sum(r.duration_ms for r in results)
        if results:
            summary.average_duration_ms = summary.total_duration_ms / len(results)

        return summary

    @property
    def has_failures(self) -> bool:
        """Gab es Abweichungen oder Fehler?"""
        return (self.different_count + self.errored_count) > 0

    def to_dict(self) -> dict:
        """Konvertiert die Zusammenfassung in ein Dictionary."""
        return {
            "total": self.total,
            "matched_count": self.matched_count,
            "different_count": self.different_count,
            "errored_count": self.errored_count,
            "timeouts": self.timeouts,
            "total_duration_ms": self.total_duration_ms,
            "average_duration_ms": round(self.average_duration_ms, 1),
            "run_duration_ms": self.run_duration_ms,
            "reference_base_url": self.reference_base_url,
            "comparison_base_url": self.comparison_base_url,
            "threshold": self.threshold,
            "viewport": self.viewport,
        }


class IncompleteResultSetError(VisualCompareError):
    """Nicht jedes Ziel hat genau ein Ergebnis geliefert."""
    pass
