"""Load ProjectConfig from darth-deploy.toml."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import-not-found]

from .models import (
    DeploySettings,
    EnvironmentOverride,
    ProjectConfig,
    StackConfig,
    StackKind,
)

CONFIG_FILENAME = "darth-deploy.toml"


def find_config(start: Path | None = None) -> Path:
    """Walk up from *start* (default: cwd) to find ``darth-deploy.toml``."""
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            raise FileNotFoundError(
                f"Could not find {CONFIG_FILENAME} in {start or Path.cwd()} "
                f"or any parent directory"
            )
        current = parent


def load_config(path: Path | None = None) -> ProjectConfig:
    """Parse ``darth-deploy.toml`` into a ``ProjectConfig``."""
    config_path = path or find_config()
    with open(config_path, "rb") as f:
        raw = tomllib.load(f)

    return parse_project(raw)


def parse_project(raw: dict[str, Any]) -> ProjectConfig:
    project = raw.get("project", {})
    stacks_raw = raw.get("stacks", [])
    deploy_raw = raw.get("deploy", {})
    env_overrides_raw = raw.get("environments", {})

    if "name" not in project:
        raise ValueError("[project] name is required")

    environment_overrides = {
        name: _parse_env_override(data)
        for name, data in env_overrides_raw.items()
        if isinstance(data, dict)
    }

    return ProjectConfig(
        project_name=project["name"],
        aws_region=project.get("aws_region", "us-east-1"),
        environments=list(project.get("environments", ["prod"])),
        tags=_strings(project.get("tags", {})),
        stacks=[_parse_stack(s) for s in stacks_raw],
        deploy=_parse_deploy(deploy_raw),
        environment_overrides=environment_overrides,
    )


def _strings(raw: dict[str, Any]) -> dict[str, str]:
    # CloudFormation parameters and tags are always strings.
    return {str(k): str(v) for k, v in raw.items()}


def _parse_stack(raw: dict[str, Any]) -> StackConfig:
    kind_str = raw.get("kind", "service")
    return StackConfig(
        name=raw["name"],
        kind=StackKind(kind_str),
        template=raw.get("template"),
        description=raw.get("description"),
        parameters=_strings(raw.get("parameters", {})),
        addons_template_url=raw.get("addons_template_url"),
        depends_on=list(raw.get("depends_on", [])),
    )


def _parse_deploy(raw: dict[str, Any]) -> DeploySettings:
    return DeploySettings(
        poll_interval_seconds=float(raw.get("poll_interval_seconds", 3.0)),
        stack_poll_interval_seconds=float(raw.get("stack_poll_interval_seconds", 3.0)),
        change_set_wait_delay_seconds=raw.get("change_set_wait_delay_seconds", 5),
        change_set_wait_max_attempts=raw.get("change_set_wait_max_attempts", 120),
        change_set_prefix=raw.get("change_set_prefix", "darth"),
    )


def _parse_env_override(raw: dict[str, Any]) -> EnvironmentOverride:
    return EnvironmentOverride(
        parameters={
            stack: _strings(params)
            for stack, params in raw.get("parameters", {}).items()
        },
        aws_region=raw.get("aws_region"),
        tags=_strings(raw.get("tags", {})),
    )
