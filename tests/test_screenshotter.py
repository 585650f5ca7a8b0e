"""Tests for the Playwright screenshotter with a mocked page."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from visual_env_compare.services import screenshotter as screenshotter_module
from visual_env_compare.services.screenshotter import (
    BrowserLaunchError,
    ConsentState,
    NavigationError,
    NavigationTimeoutError,
    Screenshotter,
    ScreenshotError,
)

URL = "https://stage.example.com/de/page"


def make_page(visible_button=False):
    page = MagicMock()
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.evaluate = AsyncMock(return_value=0)
    page.screenshot = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.add_style_tag = AsyncMock()

    button = MagicMock()
    button.is_visible = AsyncMock(return_value=visible_button)
    button.click = AsyncMock()
    page.locator.return_value.first = button
    return page


class TestCapture:

    @pytest.mark.asyncio
    async def test_full_page_png(self, compare_config, tmp_path):
        page = make_page()
        destination = str(tmp_path / "out" / "shot.png")

        await Screenshotter(compare_config).capture(page, URL, destination)

        page.goto.assert_awaited_once_with(URL, wait_until="networkidle", timeout=60000)
        page.screenshot.assert_awaited_once_with(path=destination, full_page=True, type="png")
        assert (tmp_path / "out").is_dir()

    @pytest.mark.asyncio
    async def test_jpeg_uses_full_quality(self, compare_config, tmp_path):
        compare_config.screenshot_format = "jpeg"
        page = make_page()

        await Screenshotter(compare_config).capture(page, URL, str(tmp_path / "shot.jpg"))

        assert page.screenshot.await_args.kwargs["quality"] == 100

    @pytest.mark.asyncio
    async def test_timeout_maps_to_navigation_timeout(self, compare_config, tmp_path):
        page = make_page()
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 60000ms exceeded")

        with pytest.raises(NavigationTimeoutError):
            await Screenshotter(compare_config).capture(page, URL, str(tmp_path / "shot.png"))
        page.screenshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_navigation_failure(self, compare_config, tmp_path):
        page = make_page()
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED"):
            await Screenshotter(compare_config).capture(page, URL, str(tmp_path / "shot.png"))

    @pytest.mark.asyncio
    async def test_screenshot_failure(self, compare_config, tmp_path):
        page = make_page()
        page.screenshot.side_effect = PlaywrightError("Target closed")

        with pytest.raises(ScreenshotError):
            await Screenshotter(compare_config).capture(page, URL, str(tmp_path / "shot.png"))

    @pytest.mark.asyncio
    async def test_injects_css(self, compare_config, tmp_path):
        compare_config.inject_css = ".clock { visibility: hidden; }"
        page = make_page()

        await Screenshotter(compare_config).capture(page, URL, str(tmp_path / "shot.png"))

        page.add_style_tag.assert_awaited_once_with(content=".clock { visibility: hidden; }")

    @pytest.mark.asyncio
    async def test_http_error_status_is_logged_not_raised(self, compare_config, tmp_path):
        lines = []
        page = make_page()
        page.goto.return_value = MagicMock(status=404)

        await Screenshotter(compare_config, on_log=lines.append).capture(page, URL, str(tmp_path / "s.png"))

        assert any("HTTP 404" in line for line in lines)
        page.screenshot.assert_awaited_once()


class TestConsent:

    @pytest.mark.asyncio
    async def test_first_visit_clicks_and_marks_host(self, compare_config, tmp_path):
        consent = ConsentState()
        page = make_page(visible_button=True)

        await Screenshotter(compare_config).capture(page, URL, str(tmp_path / "s.png"), consent)

        page.locator.return_value.first.click.assert_awaited_once()
        assert consent.is_handled("stage.example.com")

    @pytest.mark.asyncio
    async def test_handled_host_skips_button_search(self, compare_config, tmp_path):
        consent = ConsentState({"stage.example.com"})
        page = make_page(visible_button=True)

        await Screenshotter(compare_config).capture(page, URL, str(tmp_path / "s.png"), consent)

        page.locator.assert_not_called()
        # Banner werden trotzdem versteckt
        assert page.evaluate.await_count >= 1

    @pytest.mark.asyncio
    async def test_hosts_are_tracked_separately(self, compare_config, tmp_path):
        consent = ConsentState({"stage.example.com"})
        page = make_page(visible_button=True)

        await Screenshotter(compare_config).capture(
            page, "https://example.com/de/page", str(tmp_path / "s.png"), consent
        )

        page.locator.return_value.first.click.assert_awaited_once()
        assert consent.is_handled("example.com")

    @pytest.mark.asyncio
    async def test_disabled(self, compare_config, tmp_path):
        compare_config.dismiss_consent = False
        page = make_page(visible_button=True)

        await Screenshotter(compare_config).capture(page, URL, str(tmp_path / "s.png"), ConsentState())

        page.locator.assert_not_called()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_open_page_requires_start(self, compare_config):
        with pytest.raises(BrowserLaunchError):
            async with Screenshotter(compare_config).open_page():
                pass

    @pytest.mark.asyncio
    async def test_failed_launch_stops_playwright(self, compare_config, monkeypatch):
        driver = MagicMock()
        driver.chromium.launch = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
        driver.stop = AsyncMock()
        starter = MagicMock()
        starter.start = AsyncMock(return_value=driver)
        monkeypatch.setattr(screenshotter_module, "async_playwright", lambda: starter)

        shooter = Screenshotter(compare_config)
        with pytest.raises(BrowserLaunchError):
            async with shooter:
                pass

        driver.stop.assert_awaited_once()
        assert shooter._playwright is None

    def test_hosts_are_unique(self, compare_config):
        compare_config.comparison_base_url = "https://stage.example.com:8443"
        assert Screenshotter(compare_config)._hosts() == ["stage.example.com"]
