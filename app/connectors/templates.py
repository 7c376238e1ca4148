"""
app/connectors/templates.py

Strict ``{placeholder}`` expansion shared by URL templates and header templates.
"""

from __future__ import annotations

import string
from collections.abc import Mapping
from typing import Any


class TemplateRenderError(ValueError):
    """
    Raised when a template references a value that was not provided.
    """


def template_fields(template: str) -> list[str]:
    return [field_name for _, field_name, _, _ in string.Formatter().parse(template) if field_name is not None]


def render_template(template: str, values: Mapping[str, Any]) -> str:
    """
    Expand ``{placeholder}`` fields in `template`.

    Raises TemplateRenderError naming every placeholder `values` lacks.
    Empty strings and None count as missing.
    """

    missing: list[str] = []
    for field_name in template_fields(template):
        if field_name == "" or field_name not in values or values[field_name] in (None, ""):
            missing.append(field_name or "<positional>")
    if missing:
        raise TemplateRenderError(f"Template '{template}' is missing values for: {', '.join(sorted(set(missing)))}.")
    return template.format_map({key: value for key, value in values.items()})
