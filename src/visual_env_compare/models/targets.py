"""Ziel-Quelle - Laedt die zu vergleichenden Pfade aus Datei oder Sitemap."""

from __future__ import annotations

import asyncio
import csv
import xml.etree.ElementTree as ET
from pathlib import Path
from urllib.parse import urlparse, urlunparse

import httpx

from ..errors import VisualCompareError
from .scan_result import ComparisonTarget


# Standard-Namespace fuer Sitemaps
SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"

# Spaltennamen, an denen eine CSV-Kopfzeile erkannt wird
CSV_HEADER_NAMES = frozenset({"url", "urls", "path", "paths", "pfad", "pfade", "link", "page", "seite", "target"})


class TargetSource:
    """Liefert die geordnete Liste der Vergleichs-Ziele.

    Unterstuetzte Quellen:
        - Textdatei: ein Pfad oder eine URL pro Zeile, '#' leitet Kommentare ein
        - CSV-Datei: erste Spalte, Kopfzeile wird erkannt und uebersprungen
        - Sitemap-URL: XML per HTTP, die <loc>-Eintraege werden zu Pfaden
    """

    def __init__(
        self,
        source: str,
        url_filter: str = "",
        cookies: list[dict[str, str]] | None = None,
    ) -> None:
        self.source = source
        self.url_filter = url_filter
        self.cookies = cookies or []

    async def load(self) -> list[ComparisonTarget]:
        """Laedt die Ziele, filtert und entfernt Duplikate.

        Returns:
            Ziele in Eingabe-Reihenfolge (erstes Vorkommen gewinnt).

        Raises:
            TargetSourceError: Wenn die Quelle nicht gelesen werden kann.
        """
        if _is_url(self.source):
            xml_content = await self._fetch_sitemap()
            entries = [_url_to_path(url) for url in self._parse_xml(xml_content)]
        else:
            entries = self._read_file(Path(self.source))

        if self.url_filter:
            filter_lower = self.url_filter.lower()
            entries = [e for e in entries if filter_lower in e.lower()]

        return targets_from_paths(entries)

    def _read_file(self, path: Path) -> list[str]:
        """Liest Pfade aus einer Text- oder CSV-Datei.

        Args:
            path: Pfad zur Eingabedatei.

        Returns:
            Liste der Eintraege (noch nicht dedupliziert).

        Raises:
            TargetSourceError: Wenn die Datei nicht gelesen werden kann.
        """
        try:
            content = path.read_text(encoding="utf-8-sig")
        except OSError as e:
            raise TargetSourceError(f"Eingabedatei konnte nicht gelesen werden: {e}") from e

        if path.suffix.lower() == ".csv":
            rows = [row for row in csv.reader(content.splitlines()) if row and row[0].strip()]
            # Kopfzeile (z.B. "url,notes") ueberspringen
            if rows and _is_header_cell(rows[0][0]):
                rows = rows[1:]
            return [row[0].strip() for row in rows]

        entries = []
        for line in content.splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                entries.append(line)
        return entries

    async def _fetch_sitemap(self) -> str:
        """Laedt die Sitemap per HTTP mit Retry-Logik.

        Returns:
            XML-Inhalt der Sitemap als String.

        Raises:
            TargetSourceError: Wenn die Sitemap nach 3 Versuchen nicht geladen werden kann.
        """
        max_retries = 3
        last_error = None

        jar = httpx.Cookies()
        for c in self.cookies:
            jar.set(c["name"], c["value"])

        for attempt in range(max_retries):
            try:
                async with httpx.AsyncClient(
                    timeout=30.0,
                    follow_redirects=True,
                    verify=False,
                    cookies=jar,
                ) as client:
                    response = await client.get(self.source)
                    response.raise_for_status()
                    return response.text
            except httpx.HTTPError as e:
                last_error = e
                if attempt < max_retries - 1:
                    await asyncio.sleep(5 * (2 ** attempt))

        raise TargetSourceError(
            f"Sitemap konnte nach {max_retries} Versuchen nicht geladen werden: {last_error}"
        )

    def _parse_xml(self, xml_content: str) -> list[str]:
        """Parst den XML-Inhalt und extrahiert URLs.

        Args:
            xml_content: XML-String der Sitemap.

        Returns:
            Liste der gefundenen URLs.

        Raises:
            TargetSourceError: Wenn das XML nicht geparst werden kann.
        """
        try:
            root = ET.fromstring(xml_content)
        except ET.ParseError as e:
            raise TargetSourceError(f"Sitemap-XML konnte nicht geparst werden: {e}") from e

        urls = [
            entry.text.strip()
            for entry in root.findall(f"{{{SITEMAP_NS}}}url/{{{SITEMAP_NS}}}loc")
            if entry.text
        ]

        # Fallback ohne Namespace (manche Sitemaps haben keinen)
        if not urls:
            urls = [entry.text.strip() for entry in root.findall("url/loc") if entry.text]

        return urls


def targets_from_paths(paths: list[str]) -> list[ComparisonTarget]:
    """Erzeugt Ziele aus Pfaden, Duplikate werden entfernt.

    Args:
        paths: Pfade oder URLs in Eingabe-Reihenfolge.

    Returns:
        Eindeutige ComparisonTargets.
    """
    seen: set[str] = set()
    targets = []
    for path in paths:
        path = path.strip()
        if not path or path in seen:
            continue
        seen.add(path)
        targets.append(ComparisonTarget(path))
    return targets


def _is_url(value: str) -> bool:
    return urlparse(value).scheme in ("http", "https")


def _is_header_cell(value: str) -> bool:
    return value.strip().lower() in CSV_HEADER_NAMES


def _url_to_path(url: str) -> str:
    """Reduziert eine absolute URL auf Pfad, Query und Fragment."""
    parsed = urlparse(url)
    return urlunparse(("", "", parsed.path or "/", parsed.params, parsed.query, parsed.fragment))


class TargetSourceError(VisualCompareError):
    """Fehler beim Laden der Ziel-Liste."""
    pass
