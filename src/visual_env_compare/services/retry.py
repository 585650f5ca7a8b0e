"""Retry-Policy - Einheitliche Wiederholungslogik fuer transiente Fehler."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Beschreibt, wie oft und mit welcher Wartezeit wiederholt wird.

    Attributes:
        max_attempts: Maximale Anzahl Versuche (inklusive dem ersten).
        backoff: 'none' (konstante Wartezeit), 'linear' oder 'exponential'.
        delay_seconds: Basis-Wartezeit zwischen zwei Versuchen.
        retryable: Fehlertypen, die eine Wiederholung ausloesen.
    """

    max_attempts: int = 3
    backoff: str = "none"
    delay_seconds: float = 0.0
    retryable: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts muss mindestens 1 sein")
        if self.backoff not in ("none", "linear", "exponential"):
            raise ValueError(f"Unbekannter Backoff: {self.backoff}")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds darf nicht negativ sein")

    def delay_for(self, failed_attempt: int) -> float:
        """Wartezeit nach dem n-ten fehlgeschlagenen Versuch (1-basiert)."""
        if self.backoff == "linear":
            return self.delay_seconds * failed_attempt
        if self.backoff == "exponential":
            return self.delay_seconds * (2 ** (failed_attempt - 1))
        return self.delay_seconds

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retryable)

    async def run(
        self,
        operation: Callable[[int], Awaitable[T]],
        on_retry: Optional[Callable[[int, Exception, float], Awaitable[None]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        """Fuehrt eine Operation mit Wiederholungen aus.

        Args:
            operation: Async-Funktion, erhaelt die Versuchsnummer (ab 1).
            on_retry: Optionaler Hook vor jeder Wiederholung mit
                (fehlgeschlagener Versuch, Fehler, Wartezeit).
            sleep: Warte-Funktion (in Tests austauschbar).

        Returns:
            Das Ergebnis des ersten erfolgreichen Versuchs.

        Raises:
            Exception: Der letzte Fehler, wenn alle Versuche scheitern oder
                der Fehler nicht wiederholbar ist.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation(attempt)
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    raise
                wait_time = self.delay_for(attempt)
                if on_retry:
                    await on_retry(attempt, e, wait_time)
                if wait_time > 0:
                    await sleep(wait_time)

        raise AssertionError("unreachable")
