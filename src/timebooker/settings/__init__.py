"""Settings package — re-exports the cached settings accessor."""

from timebooker.settings.config import (
    BookingSettings,
    BrowserSettings,
    CategorySettings,
    PolicySettings,
    PortalSettings,
    SelectorSettings,
    Settings,
    get_settings,
)

__all__ = [
    "BookingSettings",
    "BrowserSettings",
    "CategorySettings",
    "PolicySettings",
    "PortalSettings",
    "SelectorSettings",
    "Settings",
    "get_settings",
]
