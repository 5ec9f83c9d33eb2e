"""Manifest template loading, rendering and splitting.

Templates use Jinja2 syntax. Plain substitutions such as ``{{ image_tag }}``
render as they did with Handlebars, but block helpers do not: rewrite
``{{#if x}}...{{/if}}`` as ``{% if x %}...{% endif %}`` and
``{{#each xs}}...{{/each}}`` as ``{% for x in xs %}...{% endfor %}``. A
Handlebars block fails to render with a TemplateError.

SECURITY: File reads enforce a size limit. Rendering uses a plain Jinja2
environment with autoescaping disabled because the output is YAML, not HTML.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path

from jinja2 import Environment, TemplateError as JinjaTemplateError

logger = logging.getLogger(__name__)

MAX_TEMPLATE_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max manifest template

# A document separator is a line holding only "---"
DOCUMENT_SEPARATOR = re.compile(r"^---[ \t]*$", re.MULTILINE)


class TemplateError(Exception):
    """Raised when the manifest template cannot be read or rendered."""

    pass


def load_template(path: Path | str) -> str:
    """Read the manifest template from disk.

    Args:
        path: Path to the template file.

    Returns:
        The template text.

    Raises:
        TemplateError: If the file is missing, too large or unreadable.
    """
    template_path = Path(path)

    if not template_path.is_file():
        raise TemplateError(f"Template file not found: {template_path}")

    # SECURITY: Check file size before reading
    try:
        file_size = template_path.stat().st_size
    except OSError as e:
        raise TemplateError(f"Failed to stat template file {template_path}: {e}") from e

    if file_size > MAX_TEMPLATE_FILE_SIZE_BYTES:
        raise TemplateError(
            f"Template file exceeds maximum size of "
            f"{MAX_TEMPLATE_FILE_SIZE_BYTES} bytes: {template_path}"
        )

    try:
        content = template_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateError(f"Failed to read template file {template_path}: {e}") from e

    logger.info("Loaded template from %s", template_path)
    return content


def render_template(text: str, variables: Mapping[str, str]) -> str:
    """Render the template with the harvested variables.

    Undefined variables render as empty strings.

    Raises:
        TemplateError: On syntax or render failures.
    """
    environment = Environment(
        autoescape=False,
        keep_trailing_newline=True,
    )
    try:
        return environment.from_string(text).render(**variables)
    except JinjaTemplateError as e:
        raise TemplateError(f"Failed to render template: {e}") from e


def _is_blank(document: str) -> bool:
    return all(
        not line.strip() or line.lstrip().startswith("#") for line in document.splitlines()
    )


def split_documents(text: str) -> list[str]:
    """Split a rendered manifest into its ``---``-separated documents.

    Empty and comment-only parts are dropped. Order is preserved.
    """
    documents = []
    for part in DOCUMENT_SEPARATOR.split(text):
        part = part.strip()
        if _is_blank(part):
            continue
        documents.append(part)
    return documents
