"""Configuration loader for timebooker using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (TIMEBOOKER_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml

The booking engine never calls ``get_settings()`` itself: entry points pass
the relevant sections (``PolicySettings``, ``SelectorSettings``,
``CategorySettings``) explicitly so tests can inject fixtures.
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("TIMEBOOKER_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "TIMEBOOKER_ENV"
DEFAULT_ENV = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


def parse_clock(value: str) -> str:
    """Validate an ``HH:MM`` clock time and return it zero-padded."""
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Time out of range: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


DEFAULT_CATEGORY_ALIASES: dict[str, list[str]] = {
    "Remote": ["Remote", "Homeoffice", "Home Office", "Home-Office", "Mobiles Arbeiten", "Mobile Arbeit"],
    "Office": ["Office", "Büro", "Office Stuttgart", "Office Nürnberg", "Vor Ort", "Onsite"],
}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class PortalSettings(BaseSettings):
    """Remote portal location and credentials."""

    model_config = SettingsConfigDict(env_prefix="TIMEBOOKER_PORTAL__")

    base_url: str = "https://example.rexx-systems.com"
    login_path: str = "/login.php"
    username: str = ""
    password: SecretStr = SecretStr("")

    @property
    def login_url(self) -> str:
        return self.base_url.rstrip("/") + "/" + self.login_path.lstrip("/")


class BrowserSettings(BaseSettings):
    """Playwright browser settings."""

    model_config = SettingsConfigDict(env_prefix="TIMEBOOKER_BROWSER__")

    headless: bool = True
    slow_mo_ms: int = 0
    debug_slow_mo_ms: int = 50
    navigation_timeout_ms: int = 60_000
    action_timeout_ms: int = 25_000
    sandbox: bool = False


class BookingSettings(BaseSettings):
    """What gets booked: times, which days, and which category per weekday."""

    model_config = SettingsConfigDict(env_prefix="TIMEBOOKER_BOOKING__")

    start_time: str = "09:00"
    end_time: str = "18:00"
    balance_filter: str = "-8:00"
    default_category: str = "Office"
    # "Mon:Remote,Tue:Office" style mapping; remote_days/office_days override it
    weekday_modes: str = ""
    remote_days: list[str] = Field(default_factory=list)
    office_days: list[str] = Field(default_factory=list)
    dry_run: bool = False
    item_pause_s: float = 0.8

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        """Accept ``HH:MM`` only."""
        return parse_clock(v)


class CategorySettings(BaseSettings):
    """Canonical categories and their accepted display-label variants."""

    model_config = SettingsConfigDict(env_prefix="TIMEBOOKER_CATEGORIES__")

    aliases: dict[str, list[str]] = Field(default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_ALIASES.items()})

    @field_validator("aliases")
    @classmethod
    def validate_aliases(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        """A category with zero (non-blank) aliases is a configuration error."""
        if not v:
            raise ValueError("At least one category must be configured")
        cleaned: dict[str, list[str]] = {}
        for name, labels in v.items():
            kept = [label.strip() for label in labels if label and label.strip()]
            if not kept:
                raise ValueError(f"Category {name!r} has no aliases configured")
            cleaned[name] = kept
        return cleaned


class PolicySettings(BaseSettings):
    """Timeouts, settle delays, retry counts and watchdog deadlines.

    One consistent policy for the whole engine; all durations in ms unless
    the name says ``_s``.
    """

    model_config = SettingsConfigDict(env_prefix="TIMEBOOKER_POLICY__")

    poll_interval_ms: int = 100

    # Overlay discovery
    strategy_timeout_ms: int = 2_000
    keyboard_timeout_ms: int = 1_500
    double_activation_timeout_ms: int = 1_500
    overlay_ready_timeout_ms: int = 15_000
    close_stale_timeout_ms: int = 3_000

    # Category selection
    leaf_probe_timeout_ms: int = 800
    folder_probe_timeout_ms: int = 2_000
    expand_verify_timeout_ms: int = 1_500
    expand_final_timeout_ms: int = 800
    expand_click_delay_ms: int = 140
    node_anim_delay_ms: int = 180
    post_select_delay_ms: int = 250
    select_wait_timeout_ms: int = 3_000

    # Apply / confirm
    apply_attempts: int = Field(default=2, ge=1, le=5)
    apply_settle_ms: int = 150
    apply_close_timeout_ms: int = 1_000
    alert_clear_timeout_ms: int = 2_000
    alert_settle_ms: int = 250
    apply_late_close_timeout_ms: int = 3_000
    apply_final_timeout_ms: int = 6_000

    # Sub-form
    sub_form_timeout_ms: int = 15_000
    time_inputs_timeout_ms: int = 8_000
    save_close_timeout_ms: int = 30_000
    fill_attempts: int = Field(default=3, ge=1, le=10)
    fill_retry_delay_s: float = 1.0

    # Per-item retry and watchdog
    item_attempts: int = Field(default=3, ge=1, le=10)
    item_retry_delay_s: float = 2.0
    item_retry_backoff: float = 2.0
    item_retry_max_delay_s: float = 15.0
    watchdog_timeout_s: float = 120.0
    watchdog_debug_timeout_s: float = 600.0

    def watchdog_for(self, debug: bool) -> float:
        """Return the per-item deadline for interactive or unattended runs."""
        return self.watchdog_debug_timeout_s if debug else self.watchdog_timeout_s


class SelectorSettings(BaseSettings):
    """Remote-UI selectors and vocabularies.

    Selectors use Playwright syntax (CSS by default, ``xpath=`` prefix for
    XPath).  Vocabularies are matched case-insensitively as substrings of a
    node's normalized text.
    """

    model_config = SettingsConfigDict(env_prefix="TIMEBOOKER_SELECTORS__")

    # Login and navigation
    login_username: str = "#loginform_username"
    login_password: str = "#password"
    login_submit: str = "#submit"
    start_frame: str = "iframe#Start"
    time_menu_item: str = "#menu_666_item"
    list_frame: str = "iframe#Unten"
    list_widget: str = "div#my_timemanagement_widget"

    # Work item listing
    list_row: str = "tr.grid_row"
    row_balance_cell: str = "td:nth-child(5) div"
    row_id_class_prefix: str = "grid_row_pr_"
    row_booking_links: list[str] = Field(
        default_factory=lambda: ['a[aria-label="Zeitbuchung erfassen"]', 'a[title*="Zeitbuchung"]', "a"]
    )

    # Sub-form
    sub_form_frame: str = "iframe#time_workflow_form_layer_iframe"
    time_inputs: str = "#row_ZEIT input.stdformelem_time"
    start_input_candidates: list[str] = Field(default_factory=lambda: ['[id="1173_from"]', '[name="1173[from]"]'])
    end_input_candidates: list[str] = Field(default_factory=lambda: ['[id="1173_to"]', '[name="1173[to]"]'])
    save_button: str = "a#application_creation_toolbar_save"
    save_vocabulary: list[str] = Field(default_factory=lambda: ["Beantragen", "Speichern"])
    discard_vocabulary: list[str] = Field(default_factory=lambda: ["Abbrechen", "Schließen"])

    # Overlay triggers
    trigger_candidates: list[str] = Field(
        default_factory=lambda: [
            'a[aria-label*="Projekt"]',
            'button[aria-label*="Projekt"]',
            'a[title*="Projekt"]',
            'button[title*="Projekt"]',
            'a[href*="project"]',
            "button:has(span)",
            "a:has(span)",
        ]
    )
    trigger_vocabulary: list[str] = Field(default_factory=lambda: ["Projekttätigkeit", "Projekt", "Project"])
    text_scan: str = "a, button, [role=button], span, label, td"
    label_scan: str = "label, .stdformlabel, th, td, span, a, button"
    label_row: str = (
        "xpath=ancestor-or-self::*[self::tr or contains(concat(' ', normalize-space(@class), ' '), ' row ')"
        " or contains(@class, 'cf_row') or contains(@class, 'stdformrow')][1]"
    )
    label_field: str = 'input, a[role="button"], button, a'

    # Overlay content
    overlay: str = "#time_pze_selection_layer"
    tree: str = "#rexxtree"
    tree_node: str = "span.dynatree-node"
    folder_class: str = "dynatree-folder"
    selected_class: str = "dynatree-selected"
    node_title: str = ".dynatree-title"
    node_expander: str = ".dynatree-expander"
    node_radio: str = ".dynatree-radio input, input[type=radio]"
    children_container: str = "xpath=following-sibling::ul"
    overlay_cancel_vocabulary: list[str] = Field(default_factory=lambda: ["Abbrechen", "Schließen"])
    overlay_controls: str = "a, button"
    form_controls: str = "a, button"

    # Apply / confirm
    apply_button: str = '#aside_navbar_collapse a[aria-label="Übernehmen"]'
    apply_vocabulary: list[str] = Field(default_factory=lambda: ["Übernehmen"])
    alert: str = "#confirmBoxOuter"
    alert_ok_candidates: list[str] = Field(
        default_factory=lambda: ['#confirmButtons .btn.primary[name="ok"]', "#confirmButtons .btn.primary"]
    )


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root timebooker settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="TIMEBOOKER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)

    portal: PortalSettings = Field(default_factory=PortalSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    booking: BookingSettings = Field(default_factory=BookingSettings)
    categories: CategorySettings = Field(default_factory=CategorySettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)
    selectors: SelectorSettings = Field(default_factory=SelectorSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _check_default_category(self) -> "Settings":
        """The fallback category must be one the alias map knows."""
        if self.booking.default_category not in self.categories.aliases:
            known = ", ".join(self.categories.aliases)
            raise ValueError(f"default_category {self.booking.default_category!r} is not one of: {known}")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
