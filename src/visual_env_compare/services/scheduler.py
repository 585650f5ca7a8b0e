"""Scheduler - Begrenzter Worker-Pool ueber alle Ziele.

Eine feste Anzahl Worker holt Ziele aus einer Queue. Sobald ein Worker
fertig ist, nimmt er sofort das naechste Ziel (keine Wellen/Batches).
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional

from ..errors import FatalScanError
from ..models.scan_result import ComparisonResult, ComparisonTarget


DEFAULT_CONCURRENCY = 5


async def run_bounded(
    targets: list[ComparisonTarget],
    worker_fn: Callable[[ComparisonTarget], Awaitable[ComparisonResult]],
    concurrency_limit: int = DEFAULT_CONCURRENCY,
    on_result: Optional[Callable[[ComparisonResult], None]] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> list[ComparisonResult]:
    """Fuehrt worker_fn fuer alle Ziele mit begrenzter Parallelitaet aus.

    Args:
        targets: Die Ziele in Eingabe-Reihenfolge.
        worker_fn: Async-Funktion, die genau ein Ergebnis pro Ziel liefert.
        concurrency_limit: Maximale Anzahl gleichzeitig laufender Tasks.
        on_result: Callback fuer jedes einzelne Ergebnis.
        on_progress: Callback fuer Fortschritt (fertig, gesamt).

    Returns:
        Ein Ergebnis pro Ziel, in Eingabe-Reihenfolge.

    Raises:
        ValueError: Wenn concurrency_limit kleiner als 1 ist.
        FatalScanError: Bei Infrastruktur-Fehlern; laufende Worker werden
            vorher abgebrochen.
    """
    if concurrency_limit < 1:
        raise ValueError("concurrency_limit muss mindestens 1 sein")

    total = len(targets)
    queue: asyncio.Queue[tuple[int, ComparisonTarget]] = asyncio.Queue()
    for item in enumerate(targets):
        queue.put_nowait(item)

    results: dict[int, ComparisonResult] = {}

    async def worker() -> None:
        while True:
            try:
                index, target = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            start_time = time.monotonic()
            try:
                result = await worker_fn(target)
            except FatalScanError:
                raise
            except Exception as e:
                # Fehler pro Ziel duerfen die Geschwister-Tasks nie abbrechen
                result = ComparisonResult.failed(
                    target,
                    error=f"{type(e).__name__}: {e}",
                    duration_ms=int((time.monotonic() - start_time) * 1000),
                )

            results[index] = result
            if on_result:
                on_result(result)
            if on_progress:
                on_progress(len(results), total)

    workers = [asyncio.create_task(worker()) for _ in range(min(concurrency_limit, total))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise

    return [results[index] for index in range(total)]
