"""Entry Point fuer Visual Env Compare."""

from __future__ import annotations

import argparse
import asyncio
import sys

from rich.console import Console
from rich.table import Table

from . import __version__
from .errors import FatalScanError
from .models.config import DEFAULT_USER_AGENT, CompareConfig, ConfigError
from .models.scan_result import ComparisonResult, RunSummary
from .models.targets import TargetSource, TargetSourceError
from .services.compare_run import CompareRun, RunReport
from .services.reporter import Reporter


BANNER = f"""
  Visual Env Compare v{__version__}
  Vergleicht Stage/Dev und Prod per Full-Page-Screenshot und Pixel-Diff
"""

USAGE_EXAMPLES = """
Beispiele:
  visual-env-compare urls.txt --reference-url https://stage.example.com --comparison-url https://example.com
  visual-env-compare urls.csv -r http://localhost:3000 -p https://example.com --reference-label dev
  visual-env-compare https://example.com/sitemap.xml -r https://stage.example.com -p https://example.com
  visual-env-compare urls.txt -r ... -p ... --storage-state auth-session.json --output-html report.html

Exit-Codes:
  0 = alle Pfade identisch   1 = Abweichungen oder Fehler   2 = Abbruch
"""

STATUS_STYLES = {
    "OK": "green",
    "DIFF": "red",
    "ERR": "bold red",
    "T/O": "yellow",
}


def build_parser() -> argparse.ArgumentParser:
    """Erstellt den Argument-Parser."""
    parser = argparse.ArgumentParser(
        prog="visual-env-compare",
        description=BANNER,
        epilog=USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "targets",
        nargs="?",
        default="",
        metavar="TARGETS",
        help="Textdatei, CSV-Datei oder Sitemap-URL mit den zu vergleichenden Pfaden",
    )
    parser.add_argument(
        "--reference-url", "-r",
        default="",
        metavar="URL",
        help="Basis-URL der Referenz-Umgebung (Stage/Dev)",
    )
    parser.add_argument(
        "--comparison-url", "-p",
        default="",
        metavar="URL",
        help="Basis-URL der Vergleichs-Umgebung (Prod)",
    )
    parser.add_argument(
        "--reference-label",
        choices=["stage", "dev"],
        default="stage",
        help="Verzeichnisname der Referenz-Screenshots (default: stage)",
    )
    parser.add_argument(
        "--screenshots-dir", "-d",
        default="./screenshots",
        metavar="PATH",
        help="Root-Verzeichnis fuer Screenshots (default: ./screenshots)",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=0.1,
        metavar="FLOAT",
        help="Perzeptuelle Diff-Schwelle zwischen 0 und 1 (default: 0.1)",
    )
    parser.add_argument(
        "--concurrency", "-c",
        type=int,
        default=5,
        metavar="N",
        help="Max parallele Browser-Tabs (default: 5)",
    )
    parser.add_argument(
        "--timeout", "-t",
        type=int,
        default=60,
        metavar="SEC",
        help="Navigations-Timeout pro Seite in Sekunden (default: 60)",
    )
    parser.add_argument(
        "--settle-delay",
        type=float,
        default=3.0,
        metavar="SEC",
        help="Wartezeit vor dem Screenshot in Sekunden (default: 3)",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=3,
        metavar="N",
        help="Max Versuche pro Pfad (default: 3)",
    )
    parser.add_argument(
        "--retry-backoff",
        choices=["none", "linear", "exponential"],
        default="none",
        help="Wartezeit-Strategie zwischen Versuchen (default: none)",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=0.0,
        metavar="SEC",
        help="Basis-Wartezeit zwischen Versuchen in Sekunden (default: 0)",
    )
    parser.add_argument(
        "--format",
        choices=["png", "jpeg"],
        default="png",
        help="Bildformat der Screenshots (default: png)",
    )
    parser.add_argument(
        "--viewport",
        default="1920x1080",
        metavar="WIDTHxHEIGHT",
        help="Viewport-Groesse (default: 1920x1080)",
    )
    parser.add_argument(
        "--output-json",
        default="",
        metavar="PATH",
        help="JSON-Report speichern",
    )
    parser.add_argument(
        "--output-html",
        default="",
        metavar="PATH",
        help="HTML-Report speichern",
    )
    parser.add_argument(
        "--no-headless",
        action="store_true",
        default=False,
        help="Browser sichtbar starten (Debugging)",
    )
    parser.add_argument(
        "--no-consent",
        action="store_true",
        default=False,
        help="Cookie-Consent-Banner nicht automatisch akzeptieren",
    )
    parser.add_argument(
        "--inject-css",
        default="",
        metavar="FILE",
        help="CSS-Datei, die vor jedem Screenshot eingefuegt wird",
    )
    parser.add_argument(
        "--filter", "-f",
        default="",
        metavar="TEXT",
        help="Nur Pfade vergleichen die TEXT enthalten",
    )
    parser.add_argument(
        "--user-agent",
        default="",
        metavar="UA",
        help="Custom User-Agent String (default: Chrome 131)",
    )
    parser.add_argument(
        "--cookie",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Cookie fuer beide Umgebungen setzen (z.B. --cookie auth=token). Mehrfach verwendbar.",
    )
    parser.add_argument(
        "--storage-state",
        default="",
        metavar="PATH",
        help="Gespeicherte Browser-Session (Playwright storage state JSON)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> CompareConfig:
    """Uebersetzt die CLI-Argumente in eine CompareConfig.

    Raises:
        ConfigError: Bei ungueltigen Werten.
    """
    # Cookies parsen: "NAME=VALUE" -> {"name": "NAME", "value": "VALUE"}
    cookies = []
    for cookie_str in args.cookie:
        if "=" not in cookie_str:
            raise ConfigError(f"Ungueltig: --cookie {cookie_str} (Format: NAME=VALUE)")
        name, value = cookie_str.split("=", 1)
        cookies.append({"name": name.strip(), "value": value.strip()})

    parts = args.viewport.lower().split("x")
    try:
        viewport_width, viewport_height = int(parts[0]), int(parts[1])
    except (IndexError, ValueError) as e:
        raise ConfigError(f"Ungueltig: --viewport {args.viewport} (Format: WIDTHxHEIGHT)") from e

    inject_css = ""
    if args.inject_css:
        try:
            with open(args.inject_css, "r", encoding="utf-8") as f:
                inject_css = f.read()
        except OSError as e:
            raise ConfigError(f"CSS-Datei konnte nicht gelesen werden: {e}") from e

    return CompareConfig(
        reference_base_url=args.reference_url,
        comparison_base_url=args.comparison_url,
        concurrency_limit=args.concurrency,
        diff_threshold=args.threshold,
        navigation_timeout_ms=args.timeout * 1000,
        settle_delay_ms=int(args.settle_delay * 1000),
        max_retries=args.retries,
        retry_backoff=args.retry_backoff,
        retry_delay_ms=int(args.retry_delay * 1000),
        screenshots_dir=args.screenshots_dir,
        reference_label=args.reference_label,
        screenshot_format=args.format,
        viewport_width=viewport_width,
        viewport_height=viewport_height,
        headless=not args.no_headless,
        user_agent=args.user_agent or DEFAULT_USER_AGENT,
        cookies=cookies,
        storage_state=args.storage_state or None,
        dismiss_consent=not args.no_consent,
        inject_css=inject_css,
    ).validate()


def render_summary(console: Console, results: list[ComparisonResult], summary: RunSummary) -> None:
    """Gibt Ergebnis-Tabelle und Zusammenfassung auf der Konsole aus."""
    table = Table(title="Ergebnisse", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Status")
    table.add_column("Pfad")
    table.add_column("Pixel", justify="right")
    table.add_column("Diff %", justify="right")
    table.add_column("Dauer", justify="right")

    for idx, r in enumerate(results, 1):
        icon = r.status_icon
        table.add_row(
            str(idx),
            f"[{STATUS_STYLES.get(icon, 'white')}]{icon}[/]",
            r.target.path,
            f"{r.differing_pixel_count:,}" if r.differing_pixel_count else "-",
            f"{r.diff_percentage:.2f}" if r.differing_pixel_count else "-",
            f"{r.duration_ms / 1000:.1f}s",
        )

    console.print(table)
    console.print(
        f"[bold]{summary.total}[/bold] Pfade | "
        f"[green]{summary.matched_count} OK[/green] | "
        f"[red]{summary.different_count} Diffs[/red] | "
        f"[bold red]{summary.errored_count} Fehler[/bold red] | "
        f"Schnitt {summary.average_duration_ms / 1000:.1f}s | "
        f"Gesamt {summary.run_duration_ms / 1000:.1f}s"
    )


async def run(args: argparse.Namespace, console: Console) -> RunReport:
    """Laedt die Ziele und fuehrt den Vergleich aus."""
    config = config_from_args(args)
    source = TargetSource(args.targets, url_filter=args.filter, cookies=config.cookies)
    targets = await source.load()
    if not targets:
        console.print("[yellow]Keine Pfade zum Vergleichen gefunden.[/yellow]")

    compare_run = CompareRun(config, on_log=console.print)
    return await compare_run.run(targets)


def main() -> None:
    """Haupteinstiegspunkt fuer die CLI."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.targets:
        parser.print_help()
        sys.exit(2)

    console = Console(highlight=False)

    try:
        report = asyncio.run(run(args, console))
    except (ConfigError, TargetSourceError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    except FatalScanError as e:
        console.print(f"[bold red]Kritischer Fehler: {e}[/bold red]")
        sys.exit(2)

    render_summary(console, report.results, report.summary)

    if args.output_json:
        path = Reporter.save_json(report.results, report.summary, args.output_json)
        console.print(f"JSON-Report: {path}")
    if args.output_html:
        path = Reporter.save_html(report.results, report.summary, args.output_html)
        console.print(f"HTML-Report: {path}")

    sys.exit(1 if report.summary.has_failures else 0)


if __name__ == "__main__":
    main()
