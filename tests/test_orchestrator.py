"""Tests for the per-target capture and compare flow."""

import os

import pytest

from visual_env_compare.models.scan_result import ComparisonStatus, ComparisonTarget
from visual_env_compare.services.comparator import Comparator
from visual_env_compare.services.orchestrator import CaptureOrchestrator, artifact_paths
from visual_env_compare.services.screenshotter import (
    BrowserLaunchError,
    NavigationError,
    NavigationTimeoutError,
    ScreenshotError,
)

from .helpers import BLUE, RED, FakeScreenshotter

REF = "https://stage.example.com/de/page"
CMP = "https://example.com/de/page"


def make_orchestrator(config, shooter, **kwargs):
    return CaptureOrchestrator(shooter, Comparator(config.diff_threshold), config, **kwargs)


class TestArtifactPaths:

    def test_layout(self, compare_config):
        paths = artifact_paths(compare_config, ComparisonTarget("/de/page?x=1"))
        root = os.path.abspath(compare_config.screenshots_dir)
        assert os.path.dirname(paths.reference) == os.path.join(root, "stage")
        assert os.path.dirname(paths.comparison) == os.path.join(root, "prod")
        assert os.path.dirname(paths.diff) == os.path.join(root, "diff")
        assert os.path.basename(paths.reference).startswith("de_page_x_1_")
        assert paths.diff.endswith("_diff.png")

    def test_dev_label_and_jpeg(self, compare_config):
        compare_config.reference_label = "dev"
        compare_config.screenshot_format = "jpeg"
        paths = artifact_paths(compare_config, ComparisonTarget("/a"))
        assert os.sep + "dev" + os.sep in paths.reference
        assert paths.reference.endswith(".jpg")


class TestProcess:

    @pytest.mark.asyncio
    async def test_identical_environments_match(self, compare_config):
        shooter = FakeScreenshotter(colors={REF: RED, CMP: RED})
        result = await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert result.status == ComparisonStatus.MATCH
        assert result.matched
        assert result.error == ""
        assert result.attempts == 1
        assert result.reference_url == REF
        assert result.comparison_url == CMP
        assert os.path.exists(result.reference_path)
        assert os.path.exists(result.comparison_path)
        assert os.path.exists(result.diff_image_path)

    @pytest.mark.asyncio
    async def test_different_environments_diff(self, compare_config):
        shooter = FakeScreenshotter(colors={REF: RED, CMP: BLUE}, size=(10, 10))
        result = await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert result.status == ComparisonStatus.DIFF
        assert not result.matched
        assert result.differing_pixel_count == 100

    @pytest.mark.asyncio
    async def test_different_sizes_are_padded(self, compare_config):
        shooter = FakeScreenshotter(size={REF: (20, 30), CMP: (20, 20)})
        result = await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert result.matched
        assert result.total_pixel_count == 20 * 30

    @pytest.mark.asyncio
    async def test_two_timeouts_then_success_records_success(self, compare_config):
        shooter = FakeScreenshotter(failures={
            REF: [NavigationTimeoutError("t1"), NavigationTimeoutError("t2")],
        })
        result = await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert result.status == ComparisonStatus.MATCH
        assert result.error == ""
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_each_attempt_uses_a_fresh_page(self, compare_config):
        shooter = FakeScreenshotter(failures={CMP: [NavigationError("reset")]})
        await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert shooter.pages_opened == 2
        assert shooter.open_pages == 0
        # Erfolgreicher Versuch lief komplett auf Tab 2
        assert {number for number, url in shooter.captured if url == CMP} == {2}

    @pytest.mark.asyncio
    async def test_exhausted_retries_carry_last_error(self, compare_config):
        shooter = FakeScreenshotter(failures={
            REF: [NavigationError("a"), NavigationError("b"), ScreenshotError("last one")],
        })
        result = await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert result.status == ComparisonStatus.ERROR
        assert result.errored
        assert not result.matched
        assert "last one" in result.error
        assert result.attempts == 3
        assert result.reference_path == ""
        assert result.diff_image_path == ""

    @pytest.mark.asyncio
    async def test_final_timeout_resolves_as_timeout(self, compare_config):
        shooter = FakeScreenshotter(always_fail={CMP: NavigationTimeoutError("too slow")})
        result = await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert result.status == ComparisonStatus.TIMEOUT
        assert result.errored
        # Referenz wurde im letzten Versuch erfasst
        assert os.path.exists(result.reference_path)
        assert result.comparison_path == ""

    @pytest.mark.asyncio
    async def test_non_capture_errors_are_not_retried(self, compare_config):
        shooter = FakeScreenshotter(always_fail={REF: RuntimeError("bug")})
        result = await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert result.status == ComparisonStatus.ERROR
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_fatal_errors_propagate(self, compare_config):
        shooter = FakeScreenshotter(always_fail={REF: BrowserLaunchError("gone")})
        with pytest.raises(BrowserLaunchError):
            await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

    @pytest.mark.asyncio
    async def test_undecodable_screenshot_is_an_error_result(self, compare_config):
        class BrokenShooter(FakeScreenshotter):
            async def capture(self, page, url, destination, consent=None):
                os.makedirs(os.path.dirname(destination), exist_ok=True)
                with open(destination, "wb") as f:
                    f.write(b"not an image")

        result = await make_orchestrator(compare_config, BrokenShooter()).process(ComparisonTarget("/x"))

        assert result.status == ComparisonStatus.ERROR
        assert "Vergleich fehlgeschlagen" in result.error

    @pytest.mark.asyncio
    async def test_status_transitions(self, compare_config):
        seen = []
        shooter = FakeScreenshotter(failures={REF: [NavigationError("once")]})
        orchestrator = make_orchestrator(
            compare_config,
            shooter,
            on_status=lambda target, status, attempt: seen.append((status, attempt)),
        )
        await orchestrator.process(ComparisonTarget("/de/page"))

        assert seen == [
            (ComparisonStatus.CAPTURING, 1),
            (ComparisonStatus.CAPTURING, 2),
            (ComparisonStatus.COMPARING, 2),
            (ComparisonStatus.MATCH, 2),
        ]

    @pytest.mark.asyncio
    async def test_logs_retry(self, compare_config):
        lines = []
        shooter = FakeScreenshotter(failures={REF: [NavigationError("flaky")]})
        await make_orchestrator(compare_config, shooter, on_log=lines.append).process(
            ComparisonTarget("/de/page")
        )

        assert any("Retry 1/3" in line and "flaky" in line for line in lines)
        assert any("[OK]" in line for line in lines)

    @pytest.mark.asyncio
    async def test_failed_result_only_reports_files_from_last_attempt(self, compare_config):
        class LateFailure(FakeScreenshotter):
            async def capture(self, page, url, destination, consent=None):
                # Tab 1: Referenz ok, Vergleich scheitert. Tab 2: Referenz scheitert.
                if (page.number, url) in ((1, CMP), (2, REF)):
                    raise NavigationError(f"failed on tab {page.number}")
                await super().capture(page, url, destination, consent)

        compare_config.max_retries = 2
        shooter = LateFailure()
        result = await make_orchestrator(compare_config, shooter).process(ComparisonTarget("/de/page"))

        assert result.status == ComparisonStatus.ERROR
        assert "tab 2" in result.error
        assert result.reference_path == ""
        assert result.comparison_path == ""
        assert not os.path.exists(artifact_paths(compare_config, ComparisonTarget("/de/page")).reference)
