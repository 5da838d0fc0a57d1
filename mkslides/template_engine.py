"""
Template rendering for the final presentation document.

The packager talks to a TemplateEngine through a single call,
``render(template_text, context) -> str``. Jinja2 is the default engine; the
context always carries ``title``, its alias ``slide_title``, and
``ingested_files`` (slide bodies in presentation order).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping
import logging

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError, Undefined

from mkslides.errors import TemplateRenderError
from mkslides.models import PresentationManifest

logger = logging.getLogger(__name__)


class TemplateEngine(ABC):
    """Stateless renderer injected into the packager."""

    @abstractmethod
    def render(self, template_text: str, context: Mapping[str, Any]) -> str:
        """
        Render *template_text* with *context*.

        Raises:
            TemplateRenderError: The engine's own error, message kept verbatim
        """
        pass


class Jinja2TemplateEngine(TemplateEngine):
    """Jinja2 engine with autoescaping off (slide bodies are markup already)."""

    def __init__(self, strict: bool = False):
        self.env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined if strict else Undefined,
        )

    def render(self, template_text: str, context: Mapping[str, Any]) -> str:
        try:
            template = self.env.from_string(template_text)
            return template.render(**context)
        except TemplateError as e:
            logger.error(f"Template rendering failed: {e}")
            raise TemplateRenderError(str(e)) from e


def build_context(manifest: PresentationManifest) -> Dict[str, Any]:
    """Template context for *manifest*."""
    return {
        "title": manifest.title,
        "slide_title": manifest.title,
        "ingested_files": manifest.ingested_files,
    }
