"""Jinja2 rendering of the configuration templates shipped with hooks."""
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from regenconf.core.logger import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class TemplateRenderer:
    """Render ``<template_dir>/<hook>/<name>`` with strict variable checking."""

    def __init__(self, template_dir: Optional[Path] = None):
        self.template_dir = Path(template_dir) if template_dir else TEMPLATE_DIR
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    def render(self, name: str, **variables: Any) -> str:
        """Render a template.

        Raises:
            TemplateError: If the template is missing or a variable is undefined
        """
        try:
            return self.jinja_env.get_template(name).render(**variables)
        except TemplateError as e:
            logger.error(f"Failed to render template {name}: {e}")
            raise
