"""Release configuration rendering backed by Jinja2."""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    UndefinedError,
)

from zerodeploy.errors import ConfigRenderError
from zerodeploy.errors_catalog import actionable_error


class TemplateRenderer:
    """Renders configuration files from a key/value context."""

    def __init__(self, logger, search_paths: Optional[Iterable[str]] = None):
        self.logger = logger
        loaders: List[Any] = []
        if search_paths:
            loaders.append(FileSystemLoader([str(path) for path in search_paths]))
        loaders.append(PackageLoader("zerodeploy", "templates"))
        self.environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.environment.filters["php"] = php_literal

    def render(
        self,
        template_name: str,
        context: Dict[str, Any],
        required: Iterable[str] = (),
    ) -> str:
        missing = [key for key in required if self._lookup(context, key) in (None, "")]
        if missing:
            raise ConfigRenderError(
                actionable_error(
                    "missing_template_value",
                    template=template_name,
                    detail=", ".join(missing),
                )
            )

        try:
            template = self.environment.get_template(template_name)
            return template.render(**context)
        except TemplateNotFound as exc:
            raise ConfigRenderError(f"Configuration template not found: {template_name}") from exc
        except UndefinedError as exc:
            raise ConfigRenderError(
                actionable_error("missing_template_value", template=template_name, detail=str(exc))
            ) from exc
        except TemplateError as exc:
            raise ConfigRenderError(f"Could not render {template_name}: {exc}") from exc

    @staticmethod
    def template_location(template: Optional[str], default_name: str):
        """Splits a configured template path into (search dir, template name)."""
        if not template:
            return None, default_name
        path = Path(template)
        return str(path.parent.resolve()), path.name

    @staticmethod
    def _lookup(context: Dict[str, Any], dotted_key: str) -> Any:
        value: Any = context
        for part in dotted_key.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value


def php_literal(value: Any) -> str:
    """Formats a value as a single-quoted PHP literal."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"
