"""Capture-Orchestrator - Erfasst und vergleicht ein einzelnes Ziel.

Ablauf pro Ziel:
    PENDING -> CAPTURING (Versuch 1..n) -> COMPARING -> MATCH | DIFF
                                        \\-> ERROR | TIMEOUT
"""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import FatalScanError
from ..models.config import CompareConfig
from ..models.scan_result import ComparisonResult, ComparisonStatus, ComparisonTarget
from .comparator import Comparator
from .retry import RetryPolicy
from .screenshotter import CaptureError, ConsentState, NavigationTimeoutError


COMPARISON_LABEL = "prod"
DIFF_LABEL = "diff"


@dataclass(frozen=True)
class ArtifactPaths:
    """Ablageorte der drei Artefakte eines Ziels."""

    reference: str
    comparison: str
    diff: str


def artifact_paths(config: CompareConfig, target: ComparisonTarget) -> ArtifactPaths:
    """Ermittelt die Artefakt-Pfade nach der Konvention <dir>/{stage|dev,prod,diff}/<slug>.

    Args:
        config: Konfiguration des Laufs.
        target: Das Ziel.

    Returns:
        ArtifactPaths fuer Referenz-, Vergleichs- und Diff-Bild.
    """
    root = os.path.abspath(config.screenshots_dir)
    ext = config.screenshot_extension
    slug = target.slug
    return ArtifactPaths(
        reference=os.path.join(root, config.reference_label, f"{slug}.{ext}"),
        comparison=os.path.join(root, COMPARISON_LABEL, f"{slug}.{ext}"),
        diff=os.path.join(root, DIFF_LABEL, f"{slug}_diff.png"),
    )


def retry_policy_from_config(config: CompareConfig) -> RetryPolicy:
    """Retry-Policy fuer Captures: nur CaptureErrors werden wiederholt."""
    return RetryPolicy(
        max_attempts=config.max_retries,
        backoff=config.retry_backoff,
        delay_seconds=config.retry_delay_ms / 1000,
        retryable=(CaptureError,),
    )


class CaptureOrchestrator:
    """Erfasst Referenz- und Vergleichs-Screenshot eines Ziels und vergleicht sie.

    Jeder Versuch nutzt einen frischen Tab. Fehler pro Ziel werden nie
    weitergereicht, sondern als Fehler-Ergebnis zurueckgegeben. Nur
    FatalScanError (Browser nicht verfuegbar) bricht durch.
    """

    def __init__(
        self,
        screenshotter,
        comparator: Comparator,
        config: CompareConfig,
        retry_policy: Optional[RetryPolicy] = None,
        consent: Optional[ConsentState] = None,
        on_log: Optional[Callable[[str], None]] = None,
        on_status: Optional[Callable[[ComparisonTarget, ComparisonStatus, int], None]] = None,
    ) -> None:
        self.screenshotter = screenshotter
        self.comparator = comparator
        self.config = config
        self.retry_policy = retry_policy or retry_policy_from_config(config)
        self.consent = consent if consent is not None else ConsentState()
        self.on_log = on_log
        self.on_status = on_status

    def _log(self, msg: str) -> None:
        if self.on_log:
            self.on_log(msg)

    def _status(self, target: ComparisonTarget, status: ComparisonStatus, attempt: int = 0) -> None:
        if self.on_status:
            self.on_status(target, status, attempt)

    async def process(self, target: ComparisonTarget) -> ComparisonResult:
        """Fuehrt Capture und Vergleich fuer ein Ziel durch.

        Args:
            target: Das zu vergleichende Ziel.

        Returns:
            Genau ein ComparisonResult in einem Endzustand.

        Raises:
            FatalScanError: Bei Infrastruktur-Fehlern (Browser weg).
        """
        start_time = time.monotonic()
        paths = artifact_paths(self.config, target)
        reference_url = target.resolve(self.config.reference_base_url)
        comparison_url = target.resolve(self.config.comparison_base_url)
        attempts = 0
        _remove_stale(paths)

        def elapsed_ms() -> int:
            return int((time.monotonic() - start_time) * 1000)

        async def capture_both(attempt: int) -> None:
            nonlocal attempts
            attempts = attempt
            self._status(target, ComparisonStatus.CAPTURING, attempt)
            # Ergebnis-Pfade duerfen nur aus dem letzten Versuch stammen
            _remove_files(paths.reference, paths.comparison)
            async with self.screenshotter.open_page() as page:
                await self.screenshotter.capture(page, reference_url, paths.reference, self.consent)
                await self.screenshotter.capture(page, comparison_url, paths.comparison, self.consent)

        async def before_retry(attempt: int, error: Exception, wait_time: float) -> None:
            self._log(
                f"  Retry {attempt}/{self.retry_policy.max_attempts} fuer {target.path}"
                f" in {wait_time:.0f}s ({error})"
            )
            if self.config.wait_for_network:
                await self._wait_for_environments()

        try:
            await self.retry_policy.run(capture_both, on_retry=before_retry)
        except FatalScanError:
            raise
        except Exception as e:
            result = ComparisonResult.failed(
                target,
                error=str(e),
                duration_ms=elapsed_ms(),
                timed_out=isinstance(e, NavigationTimeoutError),
                attempts=attempts,
                reference_path=_existing(paths.reference),
                comparison_path=_existing(paths.comparison),
                reference_url=reference_url,
                comparison_url=comparison_url,
            )
            self._log(
                f"  [bold red][{result.status_icon}][/bold red] {target.path}: "
                f"fehlgeschlagen nach {attempts} Versuch(en): {e}"
            )
            self._status(target, result.status, attempts)
            return result

        self._status(target, ComparisonStatus.COMPARING, attempts)
        try:
            stats = await asyncio.to_thread(
                self.comparator.compare,
                paths.reference,
                paths.comparison,
                paths.diff,
            )
        except Exception as e:
            result = ComparisonResult.failed(
                target,
                error=f"Vergleich fehlgeschlagen: {e}",
                duration_ms=elapsed_ms(),
                attempts=attempts,
                reference_path=paths.reference,
                comparison_path=paths.comparison,
                reference_url=reference_url,
                comparison_url=comparison_url,
            )
            self._log(f"  [red][ERR][/red] {target.path}: {result.error}")
            self._status(target, result.status, attempts)
            return result

        result = ComparisonResult.resolved(
            target,
            differing_pixel_count=stats.differing_pixel_count,
            total_pixel_count=stats.total_pixel_count,
            reference_path=paths.reference,
            comparison_path=paths.comparison,
            diff_image_path=stats.diff_image_path,
            duration_ms=elapsed_ms(),
            attempts=attempts,
            reference_url=reference_url,
            comparison_url=comparison_url,
        )

        if result.matched:
            self._log(f"  [green][OK][/green] {target.path} ({result.duration_ms / 1000:.1f}s)")
        else:
            self._log(
                f"  [red][DIFF][/red] {target.path} "
                f"({result.differing_pixel_count:,} Pixel, {result.diff_percentage:.2f}%, "
                f"{result.duration_ms / 1000:.1f}s)"
            )
        self._status(target, result.status, attempts)
        return result

    async def _wait_for_environments(self) -> None:
        """Wartet vor einem Retry, bis beide Umgebungen wieder antworten."""
        max_wait = self.config.navigation_timeout_ms / 1000
        for base_url in (self.config.reference_base_url, self.config.comparison_base_url):
            if not await self.screenshotter.check_network(base_url):
                self._log(f"  Warte auf Netzwerk ({base_url})...")
                await self.screenshotter.wait_for_network(base_url, max_wait=max_wait)


def _existing(path: str) -> str:
    return path if os.path.exists(path) else ""


def _remove_stale(paths: ArtifactPaths) -> None:
    """Entfernt Artefakte eines frueheren Laufs fuer dieses Ziel."""
    _remove_files(paths.reference, paths.comparison, paths.diff)


def _remove_files(*paths: str) -> None:
    for path in paths:
        if os.path.exists(path):
            os.remove(path)
