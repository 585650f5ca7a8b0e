"""Konfiguration eines Vergleichslaufs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Optional
from urllib.parse import urlparse

from ..errors import VisualCompareError


# Realistischer Chrome User-Agent (kein HeadlessChrome, kein Playwright)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

RETRY_BACKOFF_MODES = ("none", "linear", "exponential")
SCREENSHOT_FORMATS = ("png", "jpeg")
REFERENCE_LABELS = ("dev", "stage")


class ConfigError(VisualCompareError, ValueError):
    """Ungueltige Konfiguration."""
    pass


@dataclass
class CompareConfig:
    """Alle Optionen eines Laufs Referenz- (Stage/Dev) gegen Vergleichs-Umgebung (Prod)."""

    reference_base_url: str
    comparison_base_url: str
    concurrency_limit: int = 5
    diff_threshold: float = 0.1
    navigation_timeout_ms: int = 60000
    settle_delay_ms: int = 3000
    max_retries: int = 3
    retry_backoff: str = "none"
    retry_delay_ms: int = 0
    screenshots_dir: str = "./screenshots"
    reference_label: str = "stage"
    screenshot_format: str = "png"
    viewport_width: int = 1920
    viewport_height: int = 1080
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    cookies: list[dict[str, str]] = field(default_factory=list)
    storage_state: Optional[str] = None
    dismiss_consent: bool = True
    inject_css: str = ""
    wait_for_network: bool = True

    def validate(self) -> CompareConfig:
        """Prueft alle Werte und gibt die Konfiguration zurueck.

        Raises:
            ConfigError: Bei ungueltigen Werten.
        """
        for name in ("reference_base_url", "comparison_base_url"):
            value = getattr(self, name)
            parsed = urlparse(value or "")
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ConfigError(f"{name} muss eine http(s)-URL sein: {value!r}")

        if self.concurrency_limit < 1:
            raise ConfigError("concurrency_limit muss mindestens 1 sein")
        if not 0.0 <= self.diff_threshold <= 1.0:
            raise ConfigError("diff_threshold muss zwischen 0 und 1 liegen")
        if self.navigation_timeout_ms <= 0:
            raise ConfigError("navigation_timeout_ms muss positiv sein")
        if self.settle_delay_ms < 0 or self.retry_delay_ms < 0:
            raise ConfigError("Wartezeiten duerfen nicht negativ sein")
        if self.max_retries < 1:
            raise ConfigError("max_retries muss mindestens 1 sein")
        if self.retry_backoff not in RETRY_BACKOFF_MODES:
            raise ConfigError(f"retry_backoff muss einer von {RETRY_BACKOFF_MODES} sein")
        if self.screenshot_format not in SCREENSHOT_FORMATS:
            raise ConfigError(f"screenshot_format muss einer von {SCREENSHOT_FORMATS} sein")
        if self.reference_label not in REFERENCE_LABELS:
            raise ConfigError(f"reference_label muss einer von {REFERENCE_LABELS} sein")
        if self.viewport_width <= 0 or self.viewport_height <= 0:
            raise ConfigError("Viewport-Groesse muss positiv sein")
        for cookie in self.cookies:
            if not cookie.get("name"):
                raise ConfigError(f"Cookie ohne Namen: {cookie!r}")

        return self

    @property
    def viewport(self) -> str:
        """Viewport als String (z.B. '1920x1080')."""
        return f"{self.viewport_width}x{self.viewport_height}"

    @property
    def screenshot_extension(self) -> str:
        """Dateiendung der Screenshots."""
        return "jpg" if self.screenshot_format == "jpeg" else "png"

    def to_dict(self) -> dict:
        """Konvertiert die Konfiguration in ein Dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> CompareConfig:
        """Erstellt eine Konfiguration aus einem Dictionary.

        Unbekannte Schluessel werden ignoriert.

        Args:
            data: Dictionary mit Konfigurationswerten.

        Returns:
            Validierte CompareConfig.

        Raises:
            ConfigError: Bei fehlenden oder ungueltigen Werten.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        try:
            config = cls(**values)
        except TypeError as e:
            raise ConfigError(f"Unvollstaendige Konfiguration: {e}") from e
        return config.validate()
