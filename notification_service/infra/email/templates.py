"""E-mail template cache backed by Jinja2.

Every template named in the type mapping is compiled once at startup. A
lookup miss at send time is a delivery failure (``InvalidTemplateException``),
never a crash.
"""

from __future__ import annotations

from html import unescape
import logging
from pathlib import Path
import re
from typing import TYPE_CHECKING, Any

from jinja2 import (
    BaseLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    Template,
    TemplateError,
    select_autoescape,
)

from notification_service.core.exceptions import InvalidTemplateException

if TYPE_CHECKING:
    from collections.abc import Mapping

    from notification_service.core.settings.email import EmailSettings

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).parent.parent.parent


class TemplateCache:
    """Compiled templates keyed by template name.

    Example:
        cache = TemplateCache.from_settings(settings)
        html, text = cache.render("task_assigned", {"title": "Review PR"})
    """

    def __init__(
        self,
        loader: BaseLoader,
        template_names: list[str],
        extension: str = ".html",
        default_context: Mapping[str, Any] | None = None,
    ) -> None:
        self.extension = extension
        self.default_context = dict(default_context or {})
        self.env = Environment(
            loader=loader,
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["html_to_text"] = html_to_text

        self._templates: dict[str, Template] = {}
        self.errors: dict[str, str] = {}
        for name in dict.fromkeys(template_names):
            self._compile(name)

        logger.info(
            "Email template cache populated",
            extra={"templates": sorted(self._templates), "failed": sorted(self.errors)},
        )

    @classmethod
    def from_settings(cls, settings: EmailSettings) -> TemplateCache:
        template_dir = Path(settings.template_dir)
        if not template_dir.is_absolute():
            template_dir = PACKAGE_ROOT / template_dir
        return cls.from_directory(
            template_dir,
            list(settings.template_mapping.values()),
            extension=settings.template_extension,
            default_context={"from_name": settings.from_name},
        )

    @classmethod
    def from_directory(
        cls,
        directory: str | Path,
        template_names: list[str],
        extension: str = ".html",
        default_context: Mapping[str, Any] | None = None,
    ) -> TemplateCache:
        return cls(
            FileSystemLoader(str(directory)),
            template_names,
            extension=extension,
            default_context=default_context,
        )

    @classmethod
    def from_strings(cls, sources: Mapping[str, str], extension: str = ".html") -> TemplateCache:
        """Build a cache from in-memory sources keyed by template name."""
        return cls(
            DictLoader({f"{name}{extension}": source for name, source in sources.items()}),
            list(sources),
            extension=extension,
        )

    def _compile(self, name: str) -> None:
        try:
            self._templates[name] = self.env.get_template(f"{name}{self.extension}")
        except TemplateError as e:
            self.errors[name] = str(e) or type(e).__name__
            logger.error(
                "Failed to compile email template",
                extra={"template": name, "error": self.errors[name]},
            )

    @property
    def names(self) -> list[str]:
        return sorted(self._templates)

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def render(self, template_name: str, context: Mapping[str, Any]) -> tuple[str, str]:
        """Render ``template_name`` and return ``(html, text)``.

        Raises:
            InvalidTemplateException: If the template is not cached or fails to render.
        """
        template = self._templates.get(template_name)
        if template is None:
            raise InvalidTemplateException(
                template_name,
                self.errors.get(template_name, f"Template not found: {template_name}"),
            )

        try:
            html = template.render(**{**self.default_context, **context})
        except TemplateError as e:
            raise InvalidTemplateException(template_name, f"Failed to render {template_name}: {e}") from e

        return html, html_to_text(html)


def html_to_text(html: str) -> str:
    """Convert HTML to plain text.

    Links become ``text (url)``, block elements become blank lines and
    whitespace is normalized.
    """
    html = re.sub(
        r'<a[^>]+href=["\']([^"\']+)["\'][^>]*>([^<]+)</a>',
        r"\2 (\1)",
        html,
        flags=re.IGNORECASE,
    )
    html = re.sub(r"<(style|title)[^>]*>.*?</\1>", "", html, flags=re.IGNORECASE | re.DOTALL)
    html = re.sub(r"</?(p|div|h[1-6]|tr)[^>]*>", r"\n\n", html, flags=re.IGNORECASE)
    html = re.sub(r"<br\s*/?>", r"\n", html, flags=re.IGNORECASE)
    html = re.sub(r"<li[^>]*>", r"\n  * ", html, flags=re.IGNORECASE)
    html = re.sub(r"<[^>]+>", "", html)

    text = unescape(html)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s*\n", "\n\n", text)
    return text.strip()
