"""Screenshotter-Service - Erstellt Full-Page-Screenshots mit Playwright."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Optional
from urllib.parse import urlparse

import httpx
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from ..errors import FatalScanError, VisualCompareError
from ..models.config import CompareConfig


# Accept-Buttons gaengiger Consent-Tools, erster sichtbarer Treffer wird geklickt
CONSENT_SELECTORS = [
    # CookieYes
    'button.cky-btn-accept',
    # Usercentrics
    '[data-testid="uc-accept-all-button"]',
    '#uc-btn-accept-banner',
    # OneTrust
    '#onetrust-accept-btn-handler',
    # CookieBot
    '#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll',
    '#CybotCookiebotDialogBodyButtonAccept',
    # Generische Consent-Buttons
    'button:has-text("Alle akzeptieren")',
    'button:has-text("Accept all")',
    '[data-cookie-accept]',
    '[data-consent-accept]',
    '.cookie-consent-accept-all',
    '.cc-btn.cc-allow',
]

HIDE_CONSENT_SCRIPT = """() => {
    var selectors = [
        '.cky-consent-container',
        '#usercentrics-root',
        '#onetrust-banner-sdk',
        '#onetrust-consent-sdk',
        '#CybotCookiebotDialog',
        '#CybotCookiebotDialogBodyUnderlay',
        '.cookie-banner',
        '.cookie-consent',
        '[class*="cookie-banner"]',
        '[id*="cookie-banner"]',
        '[class*="consent-banner"]',
    ];
    selectors.forEach(function(sel) {
        document.querySelectorAll(sel).forEach(function(el) { el.style.display = 'none'; });
    });
    // Consent-Banner blockieren oft das Scrollen
    document.body.style.overflow = '';
    document.documentElement.style.overflow = '';
}"""


@dataclass
class ConsentState:
    """Merkt sich pro Lauf, auf welchen Hosts der Consent bereits akzeptiert wurde.

    Wird explizit an capture() uebergeben, damit parallele Tasks keinen
    globalen Zustand teilen.
    """

    handled_hosts: set[str] = field(default_factory=set)

    def is_handled(self, host: str) -> bool:
        return host in self.handled_hosts

    def mark_handled(self, host: str) -> None:
        self.handled_hosts.add(host)


class Screenshotter:
    """Erstellt Full-Page-Screenshots beider Umgebungen.

    Ein Browser und ein gemeinsamer Browser-Context pro Lauf (Session und
    Consent-Cookie gelten fuer alle Tabs). Jeder Versuch bekommt einen
    frischen Tab ueber open_page().
    """

    def __init__(
        self,
        config: CompareConfig,
        on_log: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config = config
        self.on_log = on_log
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._browser_lock = asyncio.Lock()

    def _log(self, msg: str) -> None:
        if self.on_log:
            self.on_log(msg)

    async def __aenter__(self) -> Screenshotter:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Startet Playwright, Browser und den gemeinsamen Context.

        Raises:
            BrowserLaunchError: Wenn der Browser nicht gestartet werden kann.
        """
        try:
            self._playwright = await async_playwright().start()
        except PlaywrightError as e:
            raise BrowserLaunchError(f"Playwright konnte nicht gestartet werden: {e}") from e
        try:
            await self._launch()
        except BaseException:
            # __aexit__ laeuft nicht, wenn __aenter__ scheitert
            await self.close()
            raise
        self._log(
            f"Browser gestartet (Viewport: {self.config.viewport}, "
            f"headless: {self.config.headless})"
        )

    async def _launch(self) -> None:
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=[
                    "--disable-gpu",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                    "--disable-blink-features=AutomationControlled",
                ],
            )
            self._context = await self._new_context(self._browser)
        except PlaywrightError as e:
            raise BrowserLaunchError(f"Browser konnte nicht gestartet werden: {e}") from e

    async def _new_context(self, browser: Browser) -> BrowserContext:
        context = await browser.new_context(
            ignore_https_errors=True,
            java_script_enabled=True,
            user_agent=self.config.user_agent,
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            storage_state=self.config.storage_state or None,
        )

        # Custom Cookies fuer beide Umgebungen setzen (z.B. Auth-Cookies)
        if self.config.cookies:
            cookie_list = [
                {
                    "name": c["name"],
                    "value": c["value"],
                    "domain": host,
                    "path": "/",
                }
                for host in self._hosts()
                for c in self.config.cookies
            ]
            await context.add_cookies(cookie_list)

        return context

    def _hosts(self) -> list[str]:
        hosts = []
        for url in (self.config.reference_base_url, self.config.comparison_base_url):
            host = urlparse(url).hostname or ""
            if host and host not in hosts:
                hosts.append(host)
        return hosts

    async def _ensure_browser(self) -> BrowserContext:
        """Gibt den Context zurueck, startet den Browser bei Bedarf neu."""
        async with self._browser_lock:
            if self._playwright is None:
                raise BrowserLaunchError("Screenshotter wurde nicht gestartet")
            if not self._browser or not self._browser.is_connected():
                self._log("  Browser-Recovery...")
                await self._launch()
            return self._context

    @asynccontextmanager
    async def open_page(self) -> AsyncIterator[Page]:
        """Oeffnet einen frischen Tab und schliesst ihn danach wieder.

        Raises:
            BrowserLaunchError: Wenn der Browser nicht (wieder) startbar ist.
        """
        context = await self._ensure_browser()
        page = await context.new_page()
        try:
            page.set_default_timeout(self.config.navigation_timeout_ms)
            yield page
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                self._log(f"    Tab konnte nicht geschlossen werden: {e}")

    async def capture(
        self,
        page: Page,
        url: str,
        destination: str,
        consent: Optional[ConsentState] = None,
    ) -> None:
        """Laedt eine URL und speichert einen Full-Page-Screenshot.

        Args:
            page: Frischer Playwright-Tab.
            url: Die zu ladende URL.
            destination: Zielpfad des Screenshots.
            consent: Consent-Zustand des Laufs (optional).

        Raises:
            NavigationTimeoutError: Seite nicht innerhalb des Timeouts geladen.
            NavigationError: Navigation aus anderem Grund fehlgeschlagen.
            ScreenshotError: Screenshot konnte nicht erstellt werden.
        """
        timeout_ms = self.config.navigation_timeout_ms
        start_time = time.monotonic()
        try:
            response = await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError(f"Timeout nach {timeout_ms / 1000:.0f}s: {url}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Navigation fehlgeschlagen: {url} ({e})") from e

        load_ms = int((time.monotonic() - start_time) * 1000)
        if response is not None and response.status >= 400:
            self._log(f"    [yellow]HTTP {response.status}[/yellow] {url}")
        else:
            self._log(f"    Geladen in {load_ms / 1000:.1f}s: {url}")

        if self.config.dismiss_consent:
            await self._accept_consent(page, urlparse(url).hostname or "", consent)

        if self.config.inject_css:
            try:
                await page.add_style_tag(content=self.config.inject_css)
            except PlaywrightError as e:
                self._log(f"    CSS konnte nicht eingefuegt werden: {e}")

        await self._trigger_lazy_loading(page)

        if self.config.settle_delay_ms > 0:
            await page.wait_for_timeout(self.config.settle_delay_ms)

        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        options = {"path": destination, "full_page": True, "type": self.config.screenshot_format}
        if self.config.screenshot_format == "jpeg":
            options["quality"] = 100
        try:
            await page.screenshot(**options)
        except PlaywrightError as e:
            raise ScreenshotError(f"Screenshot fehlgeschlagen: {url} ({e})") from e

    async def _accept_consent(
        self,
        page: Page,
        host: str,
        consent: Optional[ConsentState],
    ) -> None:
        """Akzeptiert Cookie-Consent-Banner (best effort, wirft nie).

        Ist der Host bereits erledigt, wird nur noch per CSS versteckt.

        Args:
            page: Die Playwright-Page.
            host: Hostname der geladenen Seite.
            consent: Consent-Zustand des Laufs.
        """
        if consent is None or not consent.is_handled(host):
            for selector in CONSENT_SELECTORS:
                try:
                    button = page.locator(selector).first
                    if await button.is_visible():
                        await button.click(timeout=2000)
                        self._log(f"    Consent-Button geklickt: {selector}")
                        await page.wait_for_timeout(500)
                        if consent is not None:
                            consent.mark_handled(host)
                        break
                except PlaywrightError:
                    continue

        await self._hide_consent_banners(page)

    async def _hide_consent_banners(self, page: Page) -> None:
        """Versteckt gaengige Consent-Banner per CSS display:none."""
        try:
            await page.evaluate(HIDE_CONSENT_SCRIPT)
        except PlaywrightError as e:
            self._log(f"    Consent-Banner konnten nicht versteckt werden: {e}")

    async def _trigger_lazy_loading(self, page: Page) -> None:
        """Scrollt die Seite durch, um Lazy-Loading-Inhalte zu triggern.

        Scrollt schrittweise um eine Viewport-Hoehe nach unten und danach
        zurueck nach oben.
        """
        try:
            scroll_height = await page.evaluate("() => document.body.scrollHeight")
            current_pos = 0

            while current_pos < scroll_height:
                current_pos += self.config.viewport_height
                await page.evaluate(f"window.scrollTo(0, {current_pos})")
                await page.wait_for_timeout(200)

            await page.evaluate("window.scrollTo(0, 0)")
        except PlaywrightError as e:
            self._log(f"    Lazy-Loading-Check fehlgeschlagen: {e}")

    async def check_network(self, url: str) -> bool:
        """Prueft ob eine Umgebung erreichbar ist.

        Args:
            url: Basis-URL der Umgebung.

        Returns:
            True wenn die Umgebung antwortet (Status < 500).
        """
        try:
            async with httpx.AsyncClient(timeout=5.0, verify=False) as client:
                response = await client.head(url)
                return response.status_code < 500
        except httpx.HTTPError:
            return False

    async def wait_for_network(self, url: str, max_wait: float = 60) -> bool:
        """Wartet bis eine Umgebung wieder erreichbar ist.

        Args:
            url: Basis-URL der Umgebung.
            max_wait: Maximale Wartezeit in Sekunden.

        Returns:
            True wenn die Umgebung innerhalb der Wartezeit erreichbar wurde.
        """
        start = time.monotonic()
        while time.monotonic() - start < max_wait:
            if await self.check_network(url):
                return True
            await asyncio.sleep(2)
        return False

    async def close(self) -> None:
        """Raeumt Context, Browser und Playwright auf."""
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        except PlaywrightError as e:
            self._log(f"Browser konnte nicht sauber beendet werden: {e}")

        if self._playwright:
            await self._playwright.stop()

        self._context = None
        self._browser = None
        self._playwright = None
        self._log("Browser geschlossen")


class CaptureError(VisualCompareError):
    """Transienter Fehler beim Erfassen eines Screenshots (wiederholbar)."""
    pass


class NavigationTimeoutError(CaptureError):
    """Seite wurde nicht innerhalb des Navigations-Timeouts geladen."""
    pass


class NavigationError(CaptureError):
    """Navigation fehlgeschlagen (DNS, Verbindung, abgebrochen, ...)."""
    pass


class ScreenshotError(CaptureError):
    """Screenshot konnte nicht erstellt oder geschrieben werden."""
    pass


class BrowserLaunchError(FatalScanError):
    """Browser/Playwright nicht verfuegbar - bricht den Lauf ab."""
    pass
