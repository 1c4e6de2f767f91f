"""Template renderer — turns Jinja2 templates into CloudFormation template bodies."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
)
from jinja2 import TemplateError as JinjaTemplateError

from ..config.models import ProjectConfig, StackConfig
from ..errors import TemplateError

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
TEMPLATE_SUFFIX = ".yml.j2"


class TemplateRenderer:
    """Renders stack templates by id.

    Templates in *project_templates* shadow the built-in ones, so a project
    can override ``service`` without touching the others.
    """

    def __init__(self, project_templates: Path | None = None) -> None:
        loaders = []
        if project_templates is not None and project_templates.is_dir():
            loaders.append(FileSystemLoader(str(project_templates)))
        loaders.append(FileSystemLoader(str(TEMPLATES_DIR)))
        self._env = Environment(
            loader=ChoiceLoader(loaders),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )

    def render(self, template_id: str, data: dict[str, Any]) -> str:
        """Render the template *template_id* with *data* as its context."""
        try:
            template = self._env.get_template(f"{template_id}{TEMPLATE_SUFFIX}")
        except TemplateNotFound as exc:
            raise TemplateError(f"template '{template_id}' not found") from exc
        try:
            return template.render(**data)
        except JinjaTemplateError as exc:
            raise TemplateError(f"render template '{template_id}': {exc}") from exc


def build_context(config: ProjectConfig, stack: StackConfig, env: str) -> dict:
    """Build a Jinja2 template context for *stack* in *env*."""
    return {
        "project_name": config.project_name,
        "env": env,
        "aws_region": config.get_region(env),
        "stack": stack,
        "stack_name": config.get_stack_name(stack, env),
        "parameters": config.get_parameters(stack, env),
        "has_addons": stack.addons_template_url is not None,
        "addons_template_url": stack.addons_template_url,
        "tags": config.get_tags(stack, env),
    }
