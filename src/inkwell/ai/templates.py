"""Lookup table from template ids to instructions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from ..services.settings import Template

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MenuItem:
    """Contextual-menu contribution for one enabled template.

    The icon is display metadata only.
    """

    template_id: str
    title: str
    icon: str


class TemplateRegistry:
    """Read-only view over the configured templates."""

    def __init__(self, templates: Iterable[Template] = ()) -> None:
        self._templates: dict[str, Template] = {}
        self.update(templates)

    def update(self, templates: Iterable[Template]) -> None:
        mapping: dict[str, Template] = {}
        for template in templates:
            if template.id in mapping:
                LOGGER.warning("Duplicate template id %s; keeping the first definition", template.id)
                continue
            mapping[template.id] = template
        self._templates = mapping

    def get(self, template_id: str) -> Template | None:
        return self._templates.get(template_id)

    def enabled(self) -> tuple[Template, ...]:
        return tuple(template for template in self._templates.values() if template.enabled)

    def menu_items(self) -> list[MenuItem]:
        return [
            MenuItem(template_id=template.id, title=template.name, icon=template.icon)
            for template in self.enabled()
        ]

    def instruction_for(self, template_id: str) -> str:
        """Return the instruction of an enabled template.

        Raises:
            KeyError: unknown or disabled template id.
        """

        template = self._templates.get(template_id)
        if template is None or not template.enabled:
            raise KeyError(template_id)
        return template.instruction

    def __len__(self) -> int:
        return len(self._templates)


__all__ = ["MenuItem", "TemplateRegistry"]
