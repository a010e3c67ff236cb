"""Settings dataclasses, host mapping conversion and environment overrides.

Persistence is owned by the host: it hands the core a plain mapping through a
:class:`SettingsProvider` and receives one back on save. The core only ever
works with immutable :class:`Settings` snapshots, so a change made while a
request is in flight takes effect on the next call.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Protocol

from ..ai.client import check_endpoint
from ..ai.errors import ConfigurationError

__all__ = [
    "Template",
    "Settings",
    "SettingsProvider",
    "DEFAULT_TEMPLATES",
    "DEFAULT_SYSTEM_PROMPT",
    "apply_env_overrides",
    "validate_settings",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a professional writing and editing assistant helping the user improve and "
    "edit text. Keep answers concise, accurate and useful. Current date and time: {{datetime}}."
)

_ENV_OVERRIDES: Mapping[str, str] = {
    "INKWELL_API_KEY": "api_key",
    "INKWELL_BASE_URL": "base_url",
    "INKWELL_MODEL": "model",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "INKWELL_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "INKWELL_REQUEST_TIMEOUT": "request_timeout",
    "INKWELL_TEMPERATURE": "temperature",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "INKWELL_MAX_OUTPUT_TOKENS": "max_output_tokens",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}

# Key names used by the original plugin's persisted data.
_LEGACY_ALIASES: Mapping[str, str] = {
    "baseUrl": "base_url",
    "apiKey": "api_key",
    "maxTokens": "max_output_tokens",
    "max_tokens": "max_output_tokens",
    "systemPrompt": "system_prompt",
    "requestTimeout": "request_timeout",
}


@dataclass(frozen=True, slots=True)
class Template:
    """User-configurable one-click instruction."""

    id: str
    name: str
    instruction: str
    icon: str = "bot"
    enabled: bool = True

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Template":
        template_id = str(payload.get("id") or "").strip()
        if not template_id:
            raise ValueError("Template id is required")
        instruction = payload.get("instruction")
        if instruction is None:
            instruction = payload.get("prompt", "")
        return cls(
            id=template_id,
            name=str(payload.get("name") or template_id),
            instruction=str(instruction),
            icon=str(payload.get("icon") or "bot"),
            enabled=bool(payload.get("enabled", True)),
        )

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "instruction": self.instruction,
            "icon": self.icon,
            "enabled": self.enabled,
        }


DEFAULT_TEMPLATES: tuple[Template, ...] = (
    Template(
        id="expand",
        name="Expand",
        instruction=(
            "Expand the following text with more detail, examples and explanation so that "
            "it is richer and more complete:"
        ),
        icon="expand",
    ),
    Template(
        id="rewrite",
        name="Rewrite",
        instruction=(
            "Rewrite the following text, keeping its meaning but using different wording so "
            "that it reads more fluently and elegantly:"
        ),
        icon="edit",
    ),
    Template(
        id="translate",
        name="Translate",
        instruction="Translate the following text into English, keeping its meaning and tone:",
        icon="globe",
    ),
)


@dataclass(frozen=True, slots=True)
class Settings:
    """Snapshot of the user-configurable assistant settings."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    max_output_tokens: int = 2000
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    templates: tuple[Template, ...] = DEFAULT_TEMPLATES
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    reveal_chars_per_tick: int = 20
    reveal_tick_seconds: float = 0.03
    summary_turn_threshold: int = 5
    selection_debounce_seconds: float = 0.15
    affordance_margin: float = 10.0
    debug_logging: bool = False
    default_headers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "Settings":
        """Build settings from a host-persisted mapping, ignoring unknown keys."""

        if not payload:
            return cls()
        allowed = {item.name: item for item in fields(cls)}
        defaults = cls()
        data: Dict[str, Any] = {}
        for raw_key, value in payload.items():
            key = _LEGACY_ALIASES.get(raw_key, raw_key)
            if key not in allowed:
                LOGGER.debug("Ignoring unknown settings key %s", raw_key)
                continue
            if value is None:
                continue
            if key == "templates":
                data[key] = _coerce_templates(value)
                continue
            data[key] = _coerce_value(key, value, getattr(defaults, key))
        return replace(defaults, **data)

    def to_mapping(self) -> Dict[str, Any]:
        """Serialize to the mapping handed back to the host for persistence."""

        payload: Dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if item.name == "templates":
                payload[item.name] = [template.to_mapping() for template in value]
            elif item.name == "default_headers":
                payload[item.name] = dict(value)
            else:
                payload[item.name] = value
        return payload

    def enabled_templates(self) -> tuple[Template, ...]:
        return tuple(template for template in self.templates if template.enabled)

    def with_overrides(self, overrides: Mapping[str, Any], *, source: str = "runtime") -> "Settings":
        """Return a copy with ``overrides`` applied; ``None`` values are skipped."""

        allowed = {item.name for item in fields(self)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if not filtered:
            return self
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        return replace(self, **filtered)


class SettingsProvider(Protocol):
    """Host-side persistence for the settings mapping."""

    def load(self) -> Mapping[str, Any]:
        ...

    def save(self, payload: Mapping[str, Any]) -> None:
        ...


def apply_env_overrides(settings: Settings, environ: Mapping[str, str] | None = None) -> Settings:
    """Apply ``INKWELL_*`` environment overrides on top of ``settings``."""

    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is not None:
            overrides[field_name] = value
    for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is not None:
            overrides[field_name] = value.strip().lower() in _TRUE_VALUES
    for env_name, field_name in _INT_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = int(value, 10)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
    for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = float(value)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
    return settings.with_overrides(overrides, source="environment")


def validate_settings(settings: Settings) -> None:
    """Raise :class:`ConfigurationError` when the endpoint cannot be called."""

    check_endpoint(settings.api_key, settings.base_url)
    if not (settings.model or "").strip():
        raise ConfigurationError(message="No model is configured")


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"


def _coerce_templates(value: Any) -> tuple[Template, ...]:
    if not isinstance(value, (list, tuple)):
        LOGGER.warning("Ignoring templates payload of type %s", type(value).__name__)
        return DEFAULT_TEMPLATES
    templates: list[Template] = []
    seen: set[str] = set()
    for entry in value:
        if isinstance(entry, Template):
            template = entry
        elif isinstance(entry, Mapping):
            try:
                template = Template.from_mapping(entry)
            except ValueError as exc:
                LOGGER.warning("Skipping invalid template %r: %s", entry, exc)
                continue
        else:
            LOGGER.warning("Skipping template entry of type %s", type(entry).__name__)
            continue
        if template.id in seen:
            LOGGER.warning("Skipping duplicate template id %s", template.id)
            continue
        seen.add(template.id)
        templates.append(template)
    return tuple(templates)


def _coerce_value(key: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_VALUES
        return bool(value)
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            LOGGER.warning("Settings value %s=%r is not a valid integer; using %s", key, value, default)
            return default
    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            LOGGER.warning("Settings value %s=%r is not a valid number; using %s", key, value, default)
            return default
    if isinstance(default, Mapping):
        if isinstance(value, Mapping):
            return {str(k): str(v) for k, v in value.items()}
        LOGGER.warning("Settings value %s is not a mapping; using defaults", key)
        return default
    return str(value)
