"""
Record rendering with Jinja2 templates.

A template sees the record's fields as top-level variables and the whole
record as `record`, which also reaches keys that are not valid names:

    [{{ container_name | default("-") }}] {{ message }}
    {{ record["@timestamp"] }} {{ message }}

Undefined references fail loudly (StrictUndefined) unless guarded with
the `default` filter.
"""

import jinja2

from .errors import RenderError
from .models import NormalizedRecord


DEFAULT_TEMPLATE = '[{{ container_name | default("-") }}] {{ message }}'


class TemplateRenderer:
    """Compiled output template."""

    def __init__(self, source: str, name: str = "default"):
        self.name = name
        self._env = jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            autoescape=False,
            keep_trailing_newline=False
        )
        try:
            self._template = self._env.from_string(source)
        except jinja2.TemplateSyntaxError as e:
            raise RenderError(f"Invalid template {name}: {e}") from e

    def render(self, record: NormalizedRecord) -> str:
        context = {"record": record}
        context.update(record)
        try:
            return self._template.render(context)
        except jinja2.TemplateError as e:
            raise RenderError(str(e)) from e
        except (TypeError, ValueError) as e:
            raise RenderError(f"{type(e).__name__}: {e}") from e
