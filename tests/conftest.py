"""Pytest configuration and shared fixtures."""

import pytest

from visual_env_compare.models.config import CompareConfig


@pytest.fixture
def compare_config(tmp_path) -> CompareConfig:
    """Config pointing at a temp screenshots dir, no delays."""
    return CompareConfig(
        reference_base_url="https://stage.example.com",
        comparison_base_url="https://example.com",
        screenshots_dir=str(tmp_path / "screenshots"),
        settle_delay_ms=0,
        retry_delay_ms=0,
        wait_for_network=False,
    )
