"""Compare-Run - Verbindet Screenshotter, Orchestrator, Scheduler und Aggregator."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..models.config import CompareConfig
from ..models.scan_result import ComparisonResult, ComparisonTarget, RunSummary
from .aggregator import aggregate
from .comparator import Comparator
from .orchestrator import COMPARISON_LABEL, DIFF_LABEL, CaptureOrchestrator
from .scheduler import run_bounded
from .screenshotter import ConsentState, Screenshotter


@dataclass
class RunReport:
    """Ergebnisliste und Zusammenfassung eines Laufs (Eingabe fuer den Reporter)."""

    results: list[ComparisonResult]
    summary: RunSummary


class CompareRun:
    """Fuehrt einen kompletten Vergleich Referenz- gegen Vergleichs-Umgebung aus."""

    def __init__(
        self,
        config: CompareConfig,
        on_result: Optional[Callable[[ComparisonResult], None]] = None,
        on_log: Optional[Callable[[str], None]] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
        screenshotter_factory: Optional[Callable[[CompareConfig, Callable[[str], None]], object]] = None,
    ) -> None:
        self.config = config.validate()
        self.on_result = on_result
        self.on_log = on_log
        self.on_progress = on_progress
        self.screenshotter_factory = screenshotter_factory or Screenshotter

    def _log(self, msg: str) -> None:
        if self.on_log:
            self.on_log(msg)

    async def run(self, targets: list[ComparisonTarget]) -> RunReport:
        """Erfasst und vergleicht alle Ziele.

        Args:
            targets: Die Ziele in Eingabe-Reihenfolge.

        Returns:
            RunReport mit einem Ergebnis pro Ziel und der Zusammenfassung.

        Raises:
            FatalScanError: Wenn der Browser nicht verfuegbar ist.
        """
        config = self.config
        start_time = time.monotonic()
        total = len(targets)

        for label in (config.reference_label, COMPARISON_LABEL, DIFF_LABEL):
            os.makedirs(os.path.join(config.screenshots_dir, label), exist_ok=True)

        self._log(
            f"Starte Vergleich von {total} Pfaden "
            f"(Concurrency: {config.concurrency_limit}, "
            f"Timeout: {config.navigation_timeout_ms / 1000:.0f}s, "
            f"Viewport: {config.viewport})"
        )
        self._log(f"  Referenz ({config.reference_label}): {config.reference_base_url}")
        self._log(f"  Vergleich ({COMPARISON_LABEL}): {config.comparison_base_url}")

        results: list[ComparisonResult] = []
        if targets:
            screenshotter = self.screenshotter_factory(config, self.on_log)
            async with screenshotter:
                orchestrator = CaptureOrchestrator(
                    screenshotter,
                    Comparator(threshold=config.diff_threshold),
                    config,
                    consent=ConsentState(),
                    on_log=self.on_log,
                )

                async def process(target: ComparisonTarget) -> ComparisonResult:
                    self._log(f"Vergleiche: {target.path}")
                    return await orchestrator.process(target)

                results = await run_bounded(
                    targets,
                    process,
                    concurrency_limit=config.concurrency_limit,
                    on_result=self.on_result,
                    on_progress=self.on_progress,
                )

        duration_ms = int((time.monotonic() - start_time) * 1000)
        summary = aggregate(
            results,
            targets,
            run_duration_ms=duration_ms,
            reference_base_url=config.reference_base_url,
            comparison_base_url=config.comparison_base_url,
            threshold=config.diff_threshold,
            viewport=config.viewport,
        )

        self._log(f"\n[bold green]Vergleich abgeschlossen in {duration_ms / 1000:.1f}s[/bold green]")
        self._log(
            f"Ergebnis: {summary.matched_count} OK | "
            f"{summary.different_count} Diffs | "
            f"{summary.errored_count} Fehler ({summary.timeouts} Timeouts)"
        )

        return RunReport(results=results, summary=summary)
