"""timebooker test configuration — shared fixtures for unit tests."""

from __future__ import annotations

import pytest

from tests.fakes import FakeOverlay, FakePage


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from timebooker.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def selectors():
    from timebooker.settings.config import SelectorSettings

    return SelectorSettings()


@pytest.fixture()
def policy():
    """Default policy with every wait and delay set to zero."""
    from timebooker.settings.config import PolicySettings

    fields = PolicySettings.model_fields
    overrides: dict[str, float] = {name: 0 for name in fields if name.endswith("_ms")}
    overrides.update({name: 0.0 for name in fields if name.endswith("_s")})
    overrides.update(watchdog_timeout_s=5.0, watchdog_debug_timeout_s=5.0)
    return PolicySettings(**overrides)


@pytest.fixture()
def aliases():
    from timebooker.booking.categories import CategoryAliasSet

    return CategoryAliasSet(
        {
            "Remote": ["Remote", "Homeoffice", "Home Office"],
            "Office": ["Office", "Büro"],
        }
    )


# ---------------------------------------------------------------------------
# Fake remote tree
# ---------------------------------------------------------------------------


@pytest.fixture()
def page() -> FakePage:
    return FakePage()


@pytest.fixture()
def overlay(page: FakePage, selectors) -> FakeOverlay:
    return FakeOverlay(page, selectors)


@pytest.fixture()
def tree(page: FakePage, selectors):
    from timebooker.booking.tree import OverlayTree

    return OverlayTree(page, selectors)


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that drive a real browser")
