"""Host-facing facade that wires the assistant core together."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import httpx

from .ai.client import ClientSettings, CompletionClient
from .ai.conversation import ConversationContextAssembler
from .ai.errors import AnchorInvalidError, ConfigurationError
from .ai.prompts import QUICK_ACTIONS, QuickAction, instruction_messages, quick_action_instruction
from .ai.templates import MenuItem, TemplateRegistry
from .chat.session import ChatSession
from .editor.anchor import SelectionAnchor
from .editor.document_model import EditorHost, TextPosition
from .editor.geometry import AffordanceLayout
from .editor.selection_tracker import SelectionTrackingController, TrackerConfig
from .events import EventBus, SettingsChanged
from .review.manager import ReviewManager, SurfaceFactory
from .review.models import Notifier, RevealSettings
from .review.session import ReviewSession
from .services.settings import Settings, SettingsProvider, apply_env_overrides, redact_secret, validate_settings
from .utils.logging import configure_logging as configure_log_output
from .utils.logging import shutdown_logging

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AssistantContext:
    """What the assistant dialog works on when opened from an editor."""

    document_id: str
    text: str
    anchor: SelectionAnchor
    cursor: TextPosition
    from_selection: bool
    quick_actions: tuple[QuickAction, ...]
    templates: tuple[MenuItem, ...]


class AssistantPlugin:
    """Entry point used by the host editor.

    Owns one completion client, the template table, the selection tracker,
    the review manager and the chat session. Settings are read through the
    host's :class:`SettingsProvider` and every change is pushed to each of
    those parts; requests already in flight keep the settings they started
    with.
    """

    def __init__(
        self,
        *,
        settings_provider: SettingsProvider | None = None,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        surface_factory: SurfaceFactory | None = None,
        bus: EventBus | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        environ: Mapping[str, str] | None = None,
        log_dir: Path | str | None = None,
        configure_logging: bool = False,
    ) -> None:
        self._provider = settings_provider
        self._notifier = notifier
        self._environ = environ
        self._stored = settings or Settings.from_mapping(settings_provider.load() if settings_provider else None)
        self._settings = apply_env_overrides(self._stored, environ)
        self._owns_logging = configure_logging
        self._log_path: Path | None = None
        if configure_logging:
            self._log_path = configure_log_output(self._settings, log_dir=log_dir, environ=environ)

        self.bus = bus or EventBus()
        self.client = CompletionClient(ClientSettings.from_settings(self._settings), transport=transport)
        self.templates = TemplateRegistry(self._settings.templates)
        self.tracker = SelectionTrackingController(self.bus, config=self._tracker_config(self._settings))
        self.reviews = ReviewManager(
            self.bus,
            notifier=notifier,
            surface_factory=surface_factory,
            reveal=self._reveal_settings(self._settings),
        )
        self.assembler = ConversationContextAssembler(
            self.client,
            system_prompt=self._settings.system_prompt,
            turn_threshold=self._settings.summary_turn_threshold,
        )
        self.chat = ChatSession(self.client, self.assembler, bus=self.bus)
        self._unloaded = False
        LOGGER.info(
            "Assistant ready: model=%s endpoint=%s key=%s",
            self._settings.model,
            self._settings.base_url,
            redact_secret(self._settings.api_key),
        )
        self._report_settings_problem()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def settings_problem(self) -> ConfigurationError | None:
        """Why the current settings cannot reach the endpoint, or ``None``."""

        try:
            validate_settings(self._settings)
        except ConfigurationError as exc:
            return exc
        return None

    @property
    def log_path(self) -> Path | None:
        """Log file written by this plugin, when it configured logging."""
        return self._log_path

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def open_assistant(self, editor: EditorHost) -> AssistantContext:
        """Capture the selection, or the cursor line when nothing is selected."""

        selection = editor.get_selection()
        if selection:
            anchor = SelectionAnchor.capture(editor, view_revision=self.tracker.view_revision)
        else:
            anchor = SelectionAnchor.capture_line(editor)
        return AssistantContext(
            document_id=editor.document_id,
            text=anchor.text,
            anchor=anchor,
            cursor=editor.get_cursor_position(),
            from_selection=bool(selection),
            quick_actions=QUICK_ACTIONS,
            templates=tuple(self.templates.menu_items()),
        )

    def menu_contributions(self) -> list[MenuItem]:
        return self.templates.menu_items()

    async def invoke_template(
        self,
        template_id: str,
        editor: EditorHost,
        *,
        anchor: SelectionAnchor | None = None,
    ) -> ReviewSession | None:
        """Run an enabled template; raises ``KeyError`` for unknown ids."""

        return await self.invoke_instruction(self.templates.instruction_for(template_id), editor, anchor=anchor)

    async def invoke_quick_action(
        self,
        action_id: str,
        editor: EditorHost,
        *,
        language: str = "English",
        anchor: SelectionAnchor | None = None,
    ) -> ReviewSession | None:
        instruction = quick_action_instruction(action_id, language=language)
        return await self.invoke_instruction(instruction, editor, anchor=anchor)

    async def invoke_instruction(
        self,
        instruction: str,
        editor: EditorHost,
        *,
        anchor: SelectionAnchor | None = None,
    ) -> ReviewSession | None:
        """Stream a suggestion for the anchored text into a new review session.

        Returns once the suggestion is revealed (or the session failed and
        closed). ``None`` means there was nothing to work on.
        """

        if self._unloaded:
            raise RuntimeError("The assistant has been unloaded")
        if anchor is None:
            anchor = self._anchor_for(editor)
            if anchor is None:
                return None
        if not anchor.text.strip():
            self._notify("Select some text first", level="warning")
            return None

        session = self.reviews.open_session(editor=editor, anchor=anchor, instruction=instruction)
        messages = instruction_messages(self._settings.system_prompt, instruction, anchor.text)
        request = self.client.build_request(messages)
        await self.reviews.run(session, self.client, request)
        return session

    # ------------------------------------------------------------------
    # Settings surface
    # ------------------------------------------------------------------
    def read_settings(self) -> dict[str, Any]:
        """Stored settings as shown in the settings surface."""
        return self._stored.to_mapping()

    def write_settings(self, mapping: Mapping[str, Any]) -> Settings:
        """Merge ``mapping`` into the stored settings, persist and apply them."""

        merged = {**self._stored.to_mapping(), **dict(mapping)}
        stored = Settings.from_mapping(merged)
        if self._provider is not None:
            self._provider.save(stored.to_mapping())
        self._stored = stored
        self.apply_settings(apply_env_overrides(stored, self._environ))
        return self._settings

    def apply_settings(self, settings: Settings) -> None:
        previous = self._settings
        changed = tuple(
            item.name for item in fields(Settings) if getattr(previous, item.name) != getattr(settings, item.name)
        )
        self._settings = settings
        if not changed:
            return
        self.client.update_settings(ClientSettings.from_settings(settings))
        self.templates.update(settings.templates)
        self.tracker.update_config(self._tracker_config(settings))
        self.reviews.update_reveal(self._reveal_settings(settings))
        self.assembler.configure(
            system_prompt=settings.system_prompt,
            turn_threshold=settings.summary_turn_threshold,
        )
        if self._owns_logging and {"debug_logging", "api_key"} & set(changed):
            configure_log_output(settings, environ=self._environ)
        LOGGER.debug("Settings changed: %s", ", ".join(changed))
        self._report_settings_problem()
        self.bus.publish(SettingsChanged(changed))

    async def list_models(self, *, force_refresh: bool = False) -> list[str]:
        return await self.client.list_models(force_refresh=force_refresh)

    # ------------------------------------------------------------------
    # Host lifecycle
    # ------------------------------------------------------------------
    def on_document_closed(self, document_id: str) -> None:
        self.reviews.close_for_document(document_id)
        self.tracker.on_document_closed(document_id)

    async def unload(self) -> None:
        """Tear down every session, timer and network resource."""

        if self._unloaded:
            return
        self._unloaded = True
        self.tracker.close()
        closed = self.reviews.close_all()
        await self.chat.aclose()
        self.chat.clear()
        await self.client.aclose()
        LOGGER.debug("Assistant unloaded (%d review session(s) closed)", closed)
        if self._owns_logging:
            shutdown_logging()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _anchor_for(self, editor: EditorHost) -> SelectionAnchor | None:
        tracked = self.tracker.anchor
        if tracked is not None and tracked.document_id == editor.document_id:
            try:
                return self.tracker.consume_anchor()
            except AnchorInvalidError as exc:
                LOGGER.debug("Tracked selection is stale (%s); capturing afresh", exc.reason)
        if editor.get_selection():
            return SelectionAnchor.capture(editor, view_revision=self.tracker.view_revision)
        self._notify("Select some text first", level="warning")
        return None

    def _report_settings_problem(self) -> None:
        problem = self.settings_problem
        if problem is not None:
            LOGGER.warning("Assistant settings are incomplete: %s", problem.message)

    def _notify(self, message: str, *, level: str = "info") -> None:
        if self._notifier is not None:
            self._notifier.notify(message, level=level)  # type: ignore[arg-type]

    @staticmethod
    def _tracker_config(settings: Settings) -> TrackerConfig:
        return TrackerConfig(
            debounce_seconds=settings.selection_debounce_seconds,
            layout=AffordanceLayout(margin=settings.affordance_margin),
        )

    @staticmethod
    def _reveal_settings(settings: Settings) -> RevealSettings:
        return RevealSettings(
            chars_per_tick=settings.reveal_chars_per_tick,
            tick_seconds=settings.reveal_tick_seconds,
        )


__all__ = ["AssistantContext", "AssistantPlugin"]
