"""Service layer: settings and persistence contracts."""

from .settings import (
    DEFAULT_TEMPLATES,
    Settings,
    SettingsProvider,
    Template,
    apply_env_overrides,
    redact_secret,
    validate_settings,
)

__all__ = [
    "DEFAULT_TEMPLATES",
    "Settings",
    "SettingsProvider",
    "Template",
    "apply_env_overrides",
    "redact_secret",
    "validate_settings",
]
