"""Shared test helpers: image factories and a fake screenshotter."""

from __future__ import annotations

import asyncio
import io
from contextlib import asynccontextmanager
from pathlib import Path

from PIL import Image

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
WHITE = (255, 255, 255, 255)


def make_image_bytes(size: tuple[int, int], color, fmt: str = "PNG") -> bytes:
    """Creates an encoded solid-color image."""
    mode = "RGB" if fmt == "JPEG" else "RGBA"
    fill = color[:3] if mode == "RGB" else color
    buffer = io.BytesIO()
    Image.new(mode, size, fill).save(buffer, fmt)
    return buffer.getvalue()


def write_image(path: Path | str, size: tuple[int, int], color, fmt: str = "PNG") -> str:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_image_bytes(size, color, fmt))
    return str(path)


class FakePage:
    """Stands in for a Playwright page; only tracks whether it was closed."""

    def __init__(self, number: int) -> None:
        self.number = number
        self.closed = False


class FakeScreenshotter:
    """Screenshotter double that writes solid PNGs instead of driving a browser.

    Args:
        colors: Maps a URL to the color rendered for it (default white).
        failures: Maps a URL to a list of exceptions raised on successive
            captures; once the list is exhausted captures succeed.
        always_fail: URLs whose capture fails on every attempt.
        size: Screenshot size, or a dict URL -> size.
        delay: Seconds each capture takes.
    """

    def __init__(
        self,
        colors=None,
        failures=None,
        always_fail=None,
        size=(20, 20),
        delay: float = 0.0,
    ) -> None:
        self.colors = colors or {}
        self.failures = {url: list(errors) for url, errors in (failures or {}).items()}
        self.always_fail = always_fail or {}
        self.size = size
        self.delay = delay
        self.pages_opened = 0
        self.open_pages = 0
        self.max_open_pages = 0
        self.captured: list[tuple[int, str]] = []
        self.started = False
        self.closed = False

    async def __aenter__(self):
        self.started = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    @asynccontextmanager
    async def open_page(self):
        self.pages_opened += 1
        self.open_pages += 1
        self.max_open_pages = max(self.max_open_pages, self.open_pages)
        page = FakePage(self.pages_opened)
        try:
            yield page
        finally:
            page.closed = True
            self.open_pages -= 1

    async def capture(self, page, url, destination, consent=None):
        assert not page.closed
        if self.delay:
            await asyncio.sleep(self.delay)
        if url in self.always_fail:
            raise self.always_fail[url]
        pending = self.failures.get(url)
        if pending:
            raise pending.pop(0)
        size = self.size.get(url, (20, 20)) if isinstance(self.size, dict) else self.size
        write_image(destination, size, self.colors.get(url, WHITE))
        self.captured.append((page.number, url))

    async def check_network(self, url):
        return True

    async def wait_for_network(self, url, max_wait=60):
        return True
